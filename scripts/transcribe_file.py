#!/usr/bin/env python3
"""Transcribe an audio file with a pretrained Whisper model.

Usage:
    uv run scripts/transcribe_file.py recording.wav --model base
    uv run scripts/transcribe_file.py interview.flac --language auto --timestamps
    uv run scripts/transcribe_file.py --list-models
"""

import argparse
import json
import logging
import sys

from whisper_stt.config import available_models
from whisper_stt.decoding import TASKS
from whisper_stt.hub import download_model, list_downloaded_models
from whisper_stt.transcribe import transcribe_file


def format_timestamp(seconds: float) -> str:
    minutes, secs = divmod(seconds, 60)
    return f"{int(minutes):02d}:{secs:05.2f}"


def main() -> int:
    ap = argparse.ArgumentParser(description="Transcribe audio with Whisper")
    ap.add_argument("audio", nargs="?", help="Audio file (wav, flac, ogg, mp3)")
    ap.add_argument("--model", default="tiny", choices=available_models())
    ap.add_argument("--language", default="en", help="Language code, or 'auto' to detect it")
    ap.add_argument("--task", default="transcribe", choices=TASKS)
    ap.add_argument("--timestamps", action="store_true", help="Print timestamped segments")
    ap.add_argument("--device", default="auto", help="auto, cpu or cuda")
    ap.add_argument("--dtype", default="auto", choices=["auto", "float16", "float32"])
    ap.add_argument("--json", action="store_true", help="Print the result as JSON")
    ap.add_argument("--download", action="store_true", help="Download the model and exit")
    ap.add_argument("--list-models", action="store_true", help="List cached models and exit")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_models:
        cached = set(list_downloaded_models())
        for name in available_models():
            print(f"{name:10s} {'cached' if name in cached else '-'}")
        return 0

    if args.download:
        print(download_model(args.model))
        return 0

    if not args.audio:
        ap.error("an audio file is required")

    language = None if args.language == "auto" else args.language
    try:
        result = transcribe_file(
            args.audio,
            model_name=args.model,
            language=language,
            task=args.task,
            timestamps=args.timestamps,
            device=args.device,
            dtype=args.dtype,
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(
            json.dumps(
                {
                    "text": result.text,
                    "language": result.language,
                    "model": result.model,
                    "duration": result.duration,
                    "segments": [
                        {"start": s.start, "end": s.end, "text": s.text} for s in result.segments
                    ],
                },
                ensure_ascii=False,
                indent=2,
            )
        )
    elif args.timestamps:
        for segment in result.segments:
            print(f"[{format_timestamp(segment.start)} -> {format_timestamp(segment.end)}] {segment.text}")
    else:
        print(result.text)

    return 0


if __name__ == "__main__":
    sys.exit(main())
