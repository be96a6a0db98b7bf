"""Request batcher shared by all open streams.

Concurrent transcription requests are queued and handed to the engine
together, so a single worker thread serves every connection.
"""

import asyncio
import logging
from dataclasses import dataclass

import numpy as np

from whisper_stt.engine.protocol import Engine

logger = logging.getLogger(__name__)


@dataclass
class BatchRequest:
    """One waveform waiting for its transcription."""

    audio: np.ndarray
    future: asyncio.Future[str]
    session_id: str


class BatchingTranscriber:
    """Collects requests from many sessions and runs them as batches.

    A batch closes when it reaches ``max_batch_size`` or when ``max_wait_ms``
    has passed since its first request arrived.
    """

    def __init__(
        self,
        engine: Engine,
        max_batch_size: int = 8,
        max_wait_ms: int = 50,
    ):
        """Initialize the batcher.

        Args:
            engine: Engine doing the actual transcription.
            max_batch_size: Maximum number of requests per batch.
            max_wait_ms: How long to wait for more requests after the first.
        """
        if max_batch_size < 1:
            raise ValueError(f"max_batch_size must be positive, got {max_batch_size}")
        self._engine = engine
        self._max_batch_size = max_batch_size
        self._max_wait_ms = max_wait_ms
        self._queue: asyncio.Queue[BatchRequest] = asyncio.Queue()
        self._running = False
        self._task: asyncio.Task | None = None
        self._batches_processed = 0

    async def start(self) -> None:
        """Start the background batch loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._batch_loop())

    async def stop(self) -> None:
        """Stop the background batch loop.

        Requests still queued are cancelled, so their callers see
        ``asyncio.CancelledError`` instead of waiting forever.
        """
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        while not self._queue.empty():
            req = self._queue.get_nowait()
            if not req.future.done():
                req.future.cancel()

    async def transcribe(self, audio: np.ndarray, session_id: str) -> str:
        """Queue audio and wait for its text.

        Args:
            audio: Float32 waveform at 16kHz.
            session_id: Identifier of the requesting stream.

        Returns:
            Transcription string.

        Raises:
            Exception: Whatever the engine raised for the batch.
        """
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        await self._queue.put(BatchRequest(audio, future, session_id))
        return await future

    async def _batch_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running:
            try:
                first = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            batch = [first]
            deadline = loop.time() + self._max_wait_ms / 1000

            try:
                while len(batch) < self._max_batch_size:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        break
                    try:
                        batch.append(await asyncio.wait_for(self._queue.get(), timeout=remaining))
                    except asyncio.TimeoutError:
                        break

                await self._process_batch(batch)
            except asyncio.CancelledError:
                # Stopped mid-batch; no caller may be left waiting
                for req in batch:
                    req.future.cancel()
                raise

    async def _process_batch(self, batch: list[BatchRequest]) -> None:
        """Run the engine in the default executor and resolve the futures."""
        if not batch:
            return

        audio_arrays = [req.audio for req in batch]
        loop = asyncio.get_running_loop()

        try:
            results = await loop.run_in_executor(None, self._engine.transcribe_batch, audio_arrays)
        except Exception as e:
            logger.exception("Batch of %d requests failed", len(batch))
            for req in batch:
                if not req.future.done():
                    req.future.set_exception(e)
            return

        self._batches_processed += 1
        logger.debug("Processed batch of %d requests", len(batch))
        for req, text in zip(batch, results):
            if not req.future.done():
                req.future.set_result(text)

    @property
    def queue_size(self) -> int:
        """Current number of pending requests."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        """Whether the batch loop is running."""
        return self._running

    @property
    def batches_processed(self) -> int:
        """Number of batches that completed successfully."""
        return self._batches_processed
