#!/usr/bin/env python3
"""Stream audio files to a running STT service over WebSocket.

Sends each file as PCM16 chunks, then EOS, and prints the partial and final
texts. Several concurrent streams exercise the server's request batching.

Usage:
    uvicorn whisper_stt.server:app_from_env --factory &
    uv run scripts/stream_file.py recording.wav --uri ws://localhost:8000/v1/stream
    uv run scripts/stream_file.py a.wav b.wav --concurrency 8 --realtime

Dependencies:
    uv pip install -e ".[client]"
"""

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

import websockets

from whisper_stt.audio import chunk_audio, duration_bytes, float32_to_pcm16, load_audio


async def run_one(
    uri: str,
    path: Path,
    chunk_ms: int,
    realtime: bool = False,
) -> tuple[str, str, float]:
    """Stream one file and return its joined text and wall time."""
    pcm = float32_to_pcm16(load_audio(path))
    parts = []
    start = time.perf_counter()

    async with websockets.connect(uri, max_size=2**24) as ws:

        async def sender():
            for chunk in chunk_audio(pcm, duration_bytes(chunk_ms)):
                await ws.send(chunk)
                if realtime:
                    await asyncio.sleep(chunk_ms / 1000.0)
            await ws.send(b"EOS")

        async def receiver():
            while True:
                data = json.loads(await ws.recv())
                if "error" in data:
                    print(f"{path.name}: server error: {data['error']}", file=sys.stderr)
                if data.get("text"):
                    parts.append(data["text"])
                    kind = "final" if data.get("final") else "partial"
                    print(f"{path.name} [{kind}] {data['text']}")
                if data.get("status") == "complete":
                    break

        await asyncio.gather(sender(), receiver())

    return path.name, " ".join(parts).strip(), time.perf_counter() - start


async def main() -> int:
    ap = argparse.ArgumentParser(description="Stream audio files to the STT service")
    ap.add_argument("files", nargs="+", type=Path, help="Audio files to stream")
    ap.add_argument("--uri", default="ws://localhost:8000/v1/stream")
    ap.add_argument("--concurrency", type=int, default=1, help="Number of concurrent streams")
    ap.add_argument("--chunk-ms", type=int, default=500, help="Audio chunk size in milliseconds")
    ap.add_argument("--realtime", action="store_true", help="Send audio at real-time pace")
    args = ap.parse_args()

    missing = [p for p in args.files if not p.exists()]
    if missing:
        print(f"Error: not found: {', '.join(map(str, missing))}", file=sys.stderr)
        return 1

    jobs = [args.files[i % len(args.files)] for i in range(max(args.concurrency, len(args.files)))]
    results = await asyncio.gather(
        *(run_one(args.uri, path, args.chunk_ms, args.realtime) for path in jobs)
    )

    print()
    for name, text, elapsed in results:
        print(f"{name} ({elapsed:.2f}s): {text}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
