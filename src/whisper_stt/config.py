"""Model configurations, language table and special token resolution.

Special token ids are not constant across model sizes: large-v3 adds a
language (Cantonese), which shifts every task and timestamp token by one.
The ids are resolved once per model into a ``SpecialTokens`` object that is
passed explicitly to the tokenizer and the decoding loop.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field


class UnknownModelError(ValueError):
    """Raised for a model name that has no configuration."""


class UnknownLanguageError(ValueError):
    """Raised for a language code the model has no token for."""


# Language codes in token order; the language token id is
# ``sot + 1 + index``.
LANGUAGES: dict[str, str] = {
    "en": "english",
    "zh": "chinese",
    "de": "german",
    "es": "spanish",
    "ru": "russian",
    "ko": "korean",
    "fr": "french",
    "ja": "japanese",
    "pt": "portuguese",
    "tr": "turkish",
    "pl": "polish",
    "ca": "catalan",
    "nl": "dutch",
    "ar": "arabic",
    "sv": "swedish",
    "it": "italian",
    "id": "indonesian",
    "hi": "hindi",
    "fi": "finnish",
    "vi": "vietnamese",
    "he": "hebrew",
    "uk": "ukrainian",
    "el": "greek",
    "ms": "malay",
    "cs": "czech",
    "ro": "romanian",
    "da": "danish",
    "hu": "hungarian",
    "ta": "tamil",
    "no": "norwegian",
    "th": "thai",
    "ur": "urdu",
    "hr": "croatian",
    "bg": "bulgarian",
    "lt": "lithuanian",
    "la": "latin",
    "mi": "maori",
    "ml": "malayalam",
    "cy": "welsh",
    "sk": "slovak",
    "te": "telugu",
    "fa": "persian",
    "lv": "latvian",
    "bn": "bengali",
    "sr": "serbian",
    "az": "azerbaijani",
    "sl": "slovenian",
    "kn": "kannada",
    "et": "estonian",
    "mk": "macedonian",
    "br": "breton",
    "eu": "basque",
    "is": "icelandic",
    "hy": "armenian",
    "ne": "nepali",
    "mn": "mongolian",
    "bs": "bosnian",
    "kk": "kazakh",
    "sq": "albanian",
    "sw": "swahili",
    "gl": "galician",
    "mr": "marathi",
    "pa": "punjabi",
    "si": "sinhala",
    "km": "khmer",
    "sn": "shona",
    "yo": "yoruba",
    "so": "somali",
    "af": "afrikaans",
    "oc": "occitan",
    "ka": "georgian",
    "be": "belarusian",
    "tg": "tajik",
    "sd": "sindhi",
    "gu": "gujarati",
    "am": "amharic",
    "yi": "yiddish",
    "lo": "lao",
    "uz": "uzbek",
    "fo": "faroese",
    "ht": "haitian creole",
    "ps": "pashto",
    "tk": "turkmen",
    "nn": "nynorsk",
    "mt": "maltese",
    "sa": "sanskrit",
    "lb": "luxembourgish",
    "my": "myanmar",
    "bo": "tibetan",
    "tl": "tagalog",
    "mg": "malagasy",
    "as": "assamese",
    "tt": "tatar",
    "haw": "hawaiian",
    "ln": "lingala",
    "ha": "hausa",
    "ba": "bashkir",
    "jw": "javanese",
    "su": "sundanese",
    "yue": "cantonese",
}

# Fallback ids used when the hub's added_tokens.json is unavailable
EOT_ID: int = 50257
SOT_ID: int = 50258


@dataclass(frozen=True)
class ModelConfig:
    """Dimensions of one Whisper model size.

    Attributes:
        name: Short model name ("tiny", "base", ...).
        n_mels: Mel bins of the input spectrogram.
        n_audio_ctx: Encoder positions (1500 for a 30s window).
        n_audio_state: Encoder hidden width.
        n_audio_head: Encoder attention heads.
        n_audio_layer: Encoder blocks.
        n_vocab: Vocabulary size including special tokens.
        n_text_ctx: Maximum decoder positions.
        n_text_state: Decoder hidden width.
        n_text_head: Decoder attention heads.
        n_text_layer: Decoder blocks.
        hf_repo: Hugging Face repository holding weights and tokenizer files.
    """

    name: str
    n_mels: int
    n_audio_ctx: int
    n_audio_state: int
    n_audio_head: int
    n_audio_layer: int
    n_vocab: int
    n_text_ctx: int
    n_text_state: int
    n_text_head: int
    n_text_layer: int
    hf_repo: str

    def __post_init__(self) -> None:
        if self.n_audio_state % self.n_audio_head != 0:
            raise ValueError(
                f"{self.name}: n_audio_state={self.n_audio_state} is not divisible "
                f"by n_audio_head={self.n_audio_head}"
            )
        if self.n_text_state % self.n_text_head != 0:
            raise ValueError(
                f"{self.name}: n_text_state={self.n_text_state} is not divisible "
                f"by n_text_head={self.n_text_head}"
            )

    @property
    def is_multilingual(self) -> bool:
        """False for English-only vocabularies, which have no language tokens to detect."""
        return self.n_vocab >= 51865

    @property
    def num_languages(self) -> int:
        """Number of language tokens in the vocabulary."""
        return 100 if self.n_vocab >= 51866 else 99


def _config(name: str, n_mels: int, state: int, head: int, layer: int, vocab: int = 51865) -> ModelConfig:
    return ModelConfig(
        name=name,
        n_mels=n_mels,
        n_audio_ctx=1500,
        n_audio_state=state,
        n_audio_head=head,
        n_audio_layer=layer,
        n_vocab=vocab,
        n_text_ctx=448,
        n_text_state=state,
        n_text_head=head,
        n_text_layer=layer,
        hf_repo=f"openai/whisper-{name}",
    )


MODEL_CONFIGS: dict[str, ModelConfig] = {
    "tiny": _config("tiny", 80, 384, 6, 4),
    "base": _config("base", 80, 512, 8, 6),
    "small": _config("small", 80, 768, 12, 12),
    "medium": _config("medium", 80, 1024, 16, 24),
    "large-v3": _config("large-v3", 128, 1280, 20, 32, vocab=51866),
}


def available_models() -> list[str]:
    """Names of all supported model sizes."""
    return list(MODEL_CONFIGS)


def get_config(name: str) -> ModelConfig:
    """Return the configuration for a model size.

    Raises:
        UnknownModelError: If ``name`` is not a supported model.
    """
    try:
        return MODEL_CONFIGS[name]
    except KeyError:
        raise UnknownModelError(
            f"Unknown model: {name!r}. Choose from: {', '.join(MODEL_CONFIGS)}"
        ) from None


@dataclass(frozen=True)
class SpecialTokens:
    """Special token ids of one model."""

    sot: int
    eot: int
    translate: int
    transcribe: int
    sot_lm: int
    sot_prev: int
    no_speech: int
    no_timestamps: int
    timestamp_begin: int
    language_tokens: Mapping[str, int] = field(default_factory=dict)

    def language_token(self, language: str) -> int:
        """Token id for a language code.

        Raises:
            UnknownLanguageError: If the model has no token for ``language``.
        """
        try:
            return self.language_tokens[language]
        except KeyError:
            raise UnknownLanguageError(f"Unknown language: {language!r}") from None

    def is_special(self, token: int) -> bool:
        """True for any id from the end-of-text token upwards."""
        return token >= self.eot


def resolve_special_tokens(
    config: ModelConfig,
    added_tokens: Mapping[str, int] | None = None,
) -> SpecialTokens:
    """Resolve special token ids for a model.

    Ids found in ``added_tokens`` (the hub's added_tokens.json) win; anything
    missing falls back to the layout implied by the model's language count.
    """
    added = dict(added_tokens or {})
    n_langs = config.num_languages
    codes = list(LANGUAGES)[:n_langs]
    first_lang = SOT_ID + 1
    after_langs = first_lang + n_langs

    def get_token(name: str, default: int) -> int:
        return int(added.get(name, default))

    language_tokens = {
        code: get_token(f"<|{code}|>", first_lang + index) for index, code in enumerate(codes)
    }
    no_speech_default = after_langs + 4
    no_speech = get_token("<|nospeech|>", get_token("<|nocaptions|>", no_speech_default))

    return SpecialTokens(
        sot=get_token("<|startoftranscript|>", SOT_ID),
        eot=get_token("<|endoftext|>", EOT_ID),
        translate=get_token("<|translate|>", after_langs),
        transcribe=get_token("<|transcribe|>", after_langs + 1),
        sot_lm=get_token("<|startoflm|>", after_langs + 2),
        sot_prev=get_token("<|startofprev|>", after_langs + 3),
        no_speech=no_speech,
        no_timestamps=get_token("<|notimestamps|>", after_langs + 5),
        timestamp_begin=get_token("<|0.00|>", after_langs + 6),
        language_tokens=language_tokens,
    )
