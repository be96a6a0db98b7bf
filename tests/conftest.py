"""Shared fixtures: a small randomly initialized model and a toy tokenizer."""

import pytest
import torch

from whisper_stt.config import ModelConfig, resolve_special_tokens
from whisper_stt.model import Whisper
from whisper_stt.tokenizer import Tokenizer


@pytest.fixture
def small_config() -> ModelConfig:
    """Real vocabulary layout, tiny widths, short contexts."""
    return ModelConfig(
        name="test",
        n_mels=80,
        n_audio_ctx=50,
        n_audio_state=32,
        n_audio_head=2,
        n_audio_layer=1,
        n_vocab=51865,
        n_text_ctx=24,
        n_text_state=32,
        n_text_head=2,
        n_text_layer=2,
        hf_repo="test/none",
    )


@pytest.fixture
def small_model(small_config) -> Whisper:
    torch.manual_seed(0)
    return Whisper(small_config).eval()


@pytest.fixture
def special(small_config):
    return resolve_special_tokens(small_config)


@pytest.fixture
def toy_tokenizer(special) -> Tokenizer:
    """Three-word vocabulary; "Ġ" is the byte-level stand-in for a space."""
    vocab = {"Hello": 10, "Ġworld": 11, "!": 12}
    return Tokenizer(vocab, [], special)
