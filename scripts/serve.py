#!/usr/bin/env python3
"""Run the STT service locally.

Usage:
    uv run scripts/serve.py --model base --port 8000
    uv run scripts/serve.py --fake   # no weights, deterministic output

Dependencies:
    uv pip install -e ".[serve]"
"""

import argparse
import logging
import os

import uvicorn

from whisper_stt.config import available_models


def main() -> None:
    ap = argparse.ArgumentParser(description="Whisper STT service")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8000)
    ap.add_argument("--model", default=os.environ.get("WHISPER_MODEL", "tiny"), choices=available_models())
    ap.add_argument("--device", default=os.environ.get("WHISPER_DEVICE", "auto"))
    ap.add_argument("--fake", action="store_true", help="Serve the fake engine instead of a model")
    ap.add_argument("--no-batching", action="store_true", help="Call the engine directly per request")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    from whisper_stt.server import create_app

    if args.fake:
        from whisper_stt.engine.fake import FakeEngine

        app = create_app(FakeEngine(), use_batching=not args.no_batching, model_name="fake")
    else:
        from whisper_stt.engine.whisper import WhisperEngine

        engine = WhisperEngine(model_name=args.model, device=args.device)
        app = create_app(engine, use_batching=not args.no_batching, model_name=args.model, warmup=True)

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
