"""Unit tests for model configurations and special token resolution."""

from dataclasses import replace

import pytest

from whisper_stt.config import (
    MODEL_CONFIGS,
    ModelConfig,
    UnknownLanguageError,
    UnknownModelError,
    available_models,
    get_config,
    resolve_special_tokens,
)


class TestModelConfigs:
    def test_known_sizes(self):
        assert available_models() == ["tiny", "base", "small", "medium", "large-v3"]

    def test_tiny_dimensions(self):
        config = get_config("tiny")
        assert (config.n_audio_state, config.n_audio_head, config.n_audio_layer) == (384, 6, 4)
        assert config.n_mels == 80
        assert config.n_audio_ctx == 1500
        assert config.n_text_ctx == 448
        assert config.hf_repo == "openai/whisper-tiny"

    def test_large_v3_uses_128_mels(self):
        config = get_config("large-v3")
        assert config.n_mels == 128
        assert config.n_vocab == 51866
        assert config.num_languages == 100
        assert config.is_multilingual

    def test_english_only_vocab(self):
        config = replace(get_config("tiny"), n_vocab=51864)
        assert not config.is_multilingual

    def test_every_config_divides_evenly(self):
        for config in MODEL_CONFIGS.values():
            assert config.n_audio_state % config.n_audio_head == 0
            assert config.n_text_state % config.n_text_head == 0

    def test_unknown_model(self):
        """Unknown names raise a ValueError subclass listing the choices."""
        with pytest.raises(UnknownModelError, match="tiny"):
            get_config("huge")
        with pytest.raises(ValueError):
            get_config("huge")

    def test_indivisible_heads_rejected(self):
        with pytest.raises(ValueError, match="not divisible"):
            replace(get_config("tiny"), n_text_head=5)

    def test_config_is_frozen(self):
        config = get_config("base")
        with pytest.raises(AttributeError):
            config.n_mels = 128  # type: ignore[misc]


class TestSpecialTokens:
    """Fallback ids when added_tokens.json is not available."""

    def test_multilingual_fallbacks(self):
        special = resolve_special_tokens(get_config("tiny"))
        assert special.eot == 50257
        assert special.sot == 50258
        assert special.language_token("en") == 50259
        assert special.translate == 50358
        assert special.transcribe == 50359
        assert special.sot_lm == 50360
        assert special.sot_prev == 50361
        assert special.no_speech == 50362
        assert special.no_timestamps == 50363
        assert special.timestamp_begin == 50364

    def test_large_v3_shifts_after_languages(self):
        """The extra Cantonese token pushes every later id up by one."""
        special = resolve_special_tokens(get_config("large-v3"))
        assert special.language_token("yue") == 50358
        assert special.translate == 50359
        assert special.transcribe == 50360
        assert special.no_speech == 50363
        assert special.no_timestamps == 50364
        assert special.timestamp_begin == 50365

    def test_language_count_follows_vocab(self):
        assert len(resolve_special_tokens(get_config("tiny")).language_tokens) == 99
        assert len(resolve_special_tokens(get_config("large-v3")).language_tokens) == 100

    def test_unknown_language(self):
        special = resolve_special_tokens(get_config("tiny"))
        with pytest.raises(UnknownLanguageError):
            special.language_token("yue")
        with pytest.raises(UnknownLanguageError):
            special.language_token("xx")

    def test_is_special(self):
        special = resolve_special_tokens(get_config("tiny"))
        assert not special.is_special(50256)
        assert special.is_special(special.eot)
        assert special.is_special(special.timestamp_begin + 10)

    def test_added_tokens_override_fallbacks(self):
        added = {"<|endoftext|>": 1, "<|nocaptions|>": 7, "<|en|>": 99}
        special = resolve_special_tokens(get_config("tiny"), added)
        assert special.eot == 1
        assert special.no_speech == 7
        assert special.language_token("en") == 99
        assert special.sot == 50258

    def test_nospeech_preferred_over_nocaptions(self):
        added = {"<|nospeech|>": 5, "<|nocaptions|>": 7}
        assert resolve_special_tokens(get_config("tiny"), added).no_speech == 5
