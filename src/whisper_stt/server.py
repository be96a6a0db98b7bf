"""FastAPI server exposing Whisper transcription over HTTP and WebSocket.

The app depends only on the Engine protocol, so it runs the same way with
the real engine or the fake one used in tests.

Run with a real model:
    uvicorn whisper_stt.server:app_from_env --factory
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

import numpy as np
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect

from whisper_stt.audio import pcm16_to_float32, validate_audio_format
from whisper_stt.batching import BatchingTranscriber
from whisper_stt.constants import CHUNK_BYTES, CHUNK_SAMPLES, MIN_AUDIO_BYTES, MODEL_NAME, SAMPLE_RATE
from whisper_stt.engine.protocol import Engine

logger = logging.getLogger(__name__)

EOS_MARKER = b"EOS"
INVALID_AUDIO_MESSAGE = "Invalid audio format (must be PCM16)"


class StreamSession:
    """Audio buffer of a single WebSocket connection."""

    def __init__(self, session_id: str, chunk_threshold: int = CHUNK_BYTES):
        """Initialize a stream session.

        Args:
            session_id: Unique identifier for this session.
            chunk_threshold: Buffered bytes that trigger a transcription.
        """
        self.session_id = session_id
        self.chunk_threshold = chunk_threshold
        self._buffer = bytearray()

    @property
    def buffer_bytes(self) -> int:
        """Current buffer size in bytes."""
        return len(self._buffer)

    @property
    def buffer_samples(self) -> int:
        """Current buffer size in samples."""
        return len(self._buffer) // 2

    def append(self, data: bytes) -> None:
        """Append PCM16 audio to the buffer."""
        self._buffer.extend(data)

    def flush(self) -> np.ndarray:
        """Return the buffer as a float32 array and clear it."""
        audio = pcm16_to_float32(bytes(self._buffer))
        self._buffer.clear()
        return audio

    def has_enough_data(self) -> bool:
        """Check if the buffer reached the chunk threshold."""
        return len(self._buffer) >= self.chunk_threshold

    def has_minimum_audio(self, min_bytes: int = MIN_AUDIO_BYTES) -> bool:
        """Check if the buffer holds at least one second of audio.

        Shorter tails are mostly silence and make Whisper hallucinate.
        """
        return len(self._buffer) >= min_bytes


def create_app(
    engine: Engine,
    use_batching: bool = True,
    model_name: str = MODEL_NAME,
    warmup: bool = False,
) -> FastAPI:
    """Create a FastAPI application with the given engine.

    Args:
        engine: STT engine implementation (real or fake).
        use_batching: Whether requests go through the batching transcriber.
        model_name: Model name reported by ``/health``.
        warmup: Load the model and run a dummy inference at startup.

    Returns:
        Configured FastAPI application.
    """
    batcher: BatchingTranscriber | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal batcher
        if warmup:
            await asyncio.get_running_loop().run_in_executor(None, engine.warmup)
        if use_batching:
            batcher = BatchingTranscriber(engine, max_batch_size=8, max_wait_ms=50)
            await batcher.start()
        yield
        if batcher:
            await batcher.stop()
            batcher = None

    app = FastAPI(title="Whisper STT Service", lifespan=lifespan)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "model": model_name,
            "sample_rate": SAMPLE_RATE,
            "chunk_samples": CHUNK_SAMPLES,
        }

    @app.post("/v1/transcribe")
    async def transcribe(request: Request):
        """Transcribe a whole recording sent as raw PCM16 (16kHz mono)."""
        data = await request.body()
        if not data:
            raise HTTPException(status_code=400, detail="Empty audio")
        if not validate_audio_format(data):
            raise HTTPException(status_code=400, detail=INVALID_AUDIO_MESSAGE)

        audio = pcm16_to_float32(data)
        text = await _transcribe_audio(audio, str(id(request)), batcher, engine)
        return {"text": text}

    @app.websocket("/v1/stream")
    async def stream_transcribe(websocket: WebSocket):
        """WebSocket endpoint for streaming audio transcription.

        Protocol:
        - Client sends binary PCM16 audio chunks (16kHz mono)
        - Client sends b"EOS" to signal end of stream
        - Server responds with JSON: {"text": "...", "final": bool}
        - Server sends {"status": "complete"} when done
        """
        await websocket.accept()
        session = StreamSession(str(id(websocket)))

        try:
            while True:
                data = await websocket.receive_bytes()

                if data == EOS_MARKER:
                    if session.has_minimum_audio():
                        text = await _transcribe_session(session, batcher, engine)
                        if text and text.strip():
                            await websocket.send_json({"text": text, "final": True})
                    await websocket.send_json({"status": "complete"})
                    break

                if not validate_audio_format(data):
                    await websocket.send_json({"error": INVALID_AUDIO_MESSAGE})
                    continue

                session.append(data)

                if session.has_enough_data():
                    text = await _transcribe_session(session, batcher, engine)
                    if text and text.strip():
                        await websocket.send_json({"text": text, "final": False})

        except WebSocketDisconnect:
            logger.debug("Session %s disconnected", session.session_id)

    return app


async def _transcribe_session(
    session: StreamSession,
    batcher: BatchingTranscriber | None,
    engine: Engine,
) -> str:
    return await _transcribe_audio(session.flush(), session.session_id, batcher, engine)


async def _transcribe_audio(
    audio: np.ndarray,
    session_id: str,
    batcher: BatchingTranscriber | None,
    engine: Engine,
) -> str:
    """Transcribe audio using the batcher or a direct engine call."""
    if batcher:
        return await batcher.transcribe(audio, session_id)

    loop = asyncio.get_running_loop()
    results = await loop.run_in_executor(None, engine.transcribe_batch, [audio])
    return results[0] if results else ""


def app_from_env() -> FastAPI:
    """Build the service around a WhisperEngine configured from the environment.

    Reads ``WHISPER_MODEL`` (default "tiny") and ``WHISPER_DEVICE``
    (default "auto").
    """
    from whisper_stt.engine.whisper import WhisperEngine

    model_name = os.environ.get("WHISPER_MODEL", MODEL_NAME)
    device = os.environ.get("WHISPER_DEVICE", "auto")
    logger.info("Starting service with model %s on device %s", model_name, device)

    engine = WhisperEngine(model_name=model_name, device=device)
    return create_app(engine, model_name=model_name, warmup=True)
