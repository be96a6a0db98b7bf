"""Engine backed by a pretrained Whisper checkpoint."""

import logging
import threading
from pathlib import Path

import numpy as np
import torch

from whisper_stt.constants import MODEL_NAME, SAMPLE_RATE
from whisper_stt.decoding import DecodingOptions
from whisper_stt.devices import resolve_device, resolve_dtype
from whisper_stt.model import Whisper
from whisper_stt.tokenizer import Tokenizer
from whisper_stt.transcribe import TranscriptionResult, transcribe_audio

logger = logging.getLogger(__name__)


class WhisperEngine:
    """STT engine running greedy Whisper decoding.

    The model is loaded lazily on first use, once per engine, and reused for
    all requests. Each audio array is transcribed independently.
    """

    def __init__(
        self,
        model_name: str = MODEL_NAME,
        device: str | torch.device = "auto",
        dtype: str | torch.dtype = "auto",
        options: DecodingOptions | None = None,
        weights_file: str | Path | None = None,
    ):
        """Initialize the engine.

        Args:
            model_name: Model size to load.
            device: "auto", "cpu", "cuda" or a ``torch.device``.
            dtype: "auto", "float16", "float32" or a ``torch.dtype``.
            options: Decoding options used for every request.
            weights_file: Local safetensors file instead of the hub download.
        """
        self._model_name = model_name
        self._device = resolve_device(device)
        self._dtype = resolve_dtype(dtype, self._device)
        self._options = options or DecodingOptions()
        self._weights_file = Path(weights_file) if weights_file else None

        self._model: Whisper | None = None
        self._tokenizer: Tokenizer | None = None
        self._lock = threading.Lock()

    def _load_model(self) -> None:
        """Load model and tokenizer (lazy initialization)."""
        with self._lock:
            if self._model is not None:
                return

            from whisper_stt.config import get_config
            from whisper_stt.hub import load_model
            from whisper_stt.weights import load_safetensors, load_weights

            if self._weights_file is not None:
                model = Whisper(get_config(self._model_name))
                load_weights(model, load_safetensors(self._weights_file))
                model.to(device=self._device, dtype=self._dtype)
                model.eval()
            else:
                model = load_model(self._model_name, device=self._device, dtype=self._dtype)

            self._tokenizer = Tokenizer.from_pretrained(model.config)
            self._model = model

    def transcribe(self, audio: np.ndarray) -> TranscriptionResult:
        """Transcribe one waveform and return the full result."""
        self._load_model()
        return transcribe_audio(self._model, self._tokenizer, audio, self._options)

    def transcribe_batch(self, audio_list: list[np.ndarray]) -> list[str]:
        """Transcribe a batch of 16kHz float32 arrays, one after another."""
        if not audio_list:
            return []
        return [self.transcribe(audio).text for audio in audio_list]

    def warmup(self) -> None:
        """Load model and decode one second of noise."""
        self._load_model()

        dummy_audio = np.random.randn(SAMPLE_RATE).astype(np.float32) * 0.1
        warmup_options = DecodingOptions(
            language=self._options.language or "en",
            task=self._options.task,
            max_length=8,
        )
        transcribe_audio(self._model, self._tokenizer, dummy_audio, warmup_options)

        logger.info("WhisperEngine warmed up on %s", self._device)

    @property
    def device(self) -> torch.device:
        """Return the device the model is running on."""
        return self._device

    @property
    def is_loaded(self) -> bool:
        """Check if the model is loaded."""
        return self._model is not None
