"""Whisper encoder-decoder modules."""

from whisper_stt.model.attention import (
    CrossAttention,
    DecoderCache,
    KVCache,
    LayerCache,
    MultiHeadAttention,
    SelfAttention,
)
from whisper_stt.model.decoder import TextDecoder
from whisper_stt.model.encoder import AudioEncoder
from whisper_stt.model.whisper import Whisper

__all__ = [
    "AudioEncoder",
    "CrossAttention",
    "DecoderCache",
    "KVCache",
    "LayerCache",
    "MultiHeadAttention",
    "SelfAttention",
    "TextDecoder",
    "Whisper",
]
