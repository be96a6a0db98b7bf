"""Fake engine for testing the service without model weights.

Returns deterministic output based on audio characteristics.
"""

import hashlib
import time

import numpy as np

from whisper_stt.constants import SAMPLE_RATE


class FakeEngine:
    """Deterministic CPU engine for testing.

    Generates predictable transcriptions from audio length and content hash.
    """

    def __init__(self, latency_ms: float = 0.0):
        """Initialize the fake engine.

        Args:
            latency_ms: Simulated inference latency in milliseconds.
        """
        self._latency_ms = latency_ms
        self._call_count = 0

    def transcribe_batch(self, audio_list: list[np.ndarray]) -> list[str]:
        """Describe each audio array as "[fake:<hash>|<duration>s]"."""
        if self._latency_ms > 0:
            time.sleep(self._latency_ms / 1000.0)

        self._call_count += 1
        results = []

        for audio in audio_list:
            duration_s = len(audio) / SAMPLE_RATE
            audio_hash = self._hash_audio(audio)
            results.append(f"[fake:{audio_hash[:8]}|{duration_s:.2f}s]")

        return results

    def warmup(self) -> None:
        pass

    @property
    def call_count(self) -> int:
        """Number of transcribe_batch calls made."""
        return self._call_count

    @staticmethod
    def _hash_audio(audio: np.ndarray) -> str:
        # First 100 samples are enough to tell test inputs apart
        samples = np.asarray(audio[: min(100, len(audio))])
        return hashlib.sha256(samples.tobytes()).hexdigest()
