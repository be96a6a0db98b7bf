"""Whisper speech recognition with greedy decoding and an STT service."""

from whisper_stt.config import (
    MODEL_CONFIGS,
    ModelConfig,
    UnknownLanguageError,
    UnknownModelError,
    available_models,
    get_config,
)
from whisper_stt.constants import (
    CHUNK_BYTES,
    CHUNK_SAMPLES,
    MODEL_NAME,
    N_SAMPLES,
    SAMPLE_RATE,
)
from whisper_stt.decoding import DecodingOptions, GreedyDecoder
from whisper_stt.transcribe import TranscriptionResult, transcribe_audio, transcribe_file

__all__ = [
    "SAMPLE_RATE",
    "N_SAMPLES",
    "CHUNK_SAMPLES",
    "CHUNK_BYTES",
    "MODEL_NAME",
    "MODEL_CONFIGS",
    "ModelConfig",
    "UnknownLanguageError",
    "UnknownModelError",
    "available_models",
    "get_config",
    "DecodingOptions",
    "GreedyDecoder",
    "TranscriptionResult",
    "transcribe_audio",
    "transcribe_file",
]
