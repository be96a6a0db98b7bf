"""Engine protocol defining the interface for STT inference backends.

This is the boundary that isolates model-dependent code from the rest of the
system (server, batching, tests).
"""

from typing import Protocol

import numpy as np


class Engine(Protocol):
    """Protocol for speech-to-text inference engines.

    Implementations must provide batched transcription and warmup methods.
    This allows swapping between the real Whisper engine and a fake engine
    for testing.
    """

    def transcribe_batch(self, audio_list: list[np.ndarray]) -> list[str]:
        """Transcribe a batch of audio arrays.

        Args:
            audio_list: List of float32 numpy arrays, each normalized to [-1, 1].
                       All arrays should be 16kHz mono audio.

        Returns:
            List of transcription strings, one per input audio array.
        """
        ...

    def warmup(self) -> None:
        """Load the model and run one dummy inference."""
        ...
