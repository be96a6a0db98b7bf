"""Greedy autoregressive decoding.

A ``GreedyDecoder`` drives one transcription call:

    INIT -> ENCODING -> PROMPTED -> GENERATING -> STOPPED_EOT | STOPPED_MAX_LENGTH

The prompt pass is generation step zero: the logits of its last position
already pick the first generated token. Every later step feeds only the
previously generated token together with the cache.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Literal

import torch

from whisper_stt.config import LANGUAGES, SpecialTokens, UnknownLanguageError
from whisper_stt.model import DecoderCache, Whisper

Task = Literal["transcribe", "translate"]
TASKS: tuple[str, ...] = ("transcribe", "translate")


class DecodingState(Enum):
    INIT = "init"
    ENCODING = "encoding"
    PROMPTED = "prompted"
    GENERATING = "generating"
    STOPPED_EOT = "stopped_eot"
    STOPPED_MAX_LENGTH = "stopped_max_length"


@dataclass(frozen=True)
class DecodingOptions:
    """Options of one decoding call.

    Attributes:
        language: Language code, or None to detect it from the audio.
        task: "transcribe", or "translate" to English.
        timestamps: Let the model emit timestamp tokens.
        max_length: Ceiling on prompt plus generated tokens; defaults to the
            model's text context.
    """

    language: str | None = "en"
    task: Task = "transcribe"
    timestamps: bool = False
    max_length: int | None = None

    def __post_init__(self) -> None:
        if self.task not in TASKS:
            raise ValueError(f"Unknown task: {self.task!r}. Choose from: {', '.join(TASKS)}")
        if self.language is not None and self.language not in LANGUAGES:
            raise UnknownLanguageError(f"Unknown language: {self.language!r}")
        if self.max_length is not None and self.max_length < 1:
            raise ValueError(f"max_length must be positive, got {self.max_length}")


@dataclass
class DecodingResult:
    """Generated tokens of one call, without prompt and end-of-text."""

    tokens: list[int]
    prompt: list[int]
    language: str | None
    stop_reason: DecodingState = DecodingState.STOPPED_EOT
    audio_features: torch.Tensor | None = field(default=None, repr=False)


def build_prompt(special: SpecialTokens, options: DecodingOptions) -> list[int]:
    """Start-of-transcript, language, task and optionally no-timestamps tokens.

    Raises:
        UnknownLanguageError: If the language has no token in this model.
    """
    tokens = [special.sot]
    if options.language is not None:
        tokens.append(special.language_token(options.language))
    tokens.append(special.transcribe if options.task == "transcribe" else special.translate)
    if not options.timestamps:
        tokens.append(special.no_timestamps)
    return tokens


@torch.inference_mode()
def detect_language(model: Whisper, special: SpecialTokens, audio_features: torch.Tensor) -> str:
    """Most likely language of encoded audio.

    Runs the decoder once over the start-of-transcript token and compares the
    logits of the language tokens only.
    """
    codes = list(special.language_tokens)
    ids = torch.tensor([special.language_tokens[c] for c in codes], device=audio_features.device)
    tokens = torch.tensor([[special.sot]], device=audio_features.device)

    logits, _ = model.decode(tokens, audio_features)
    language_logits = logits[0, -1].index_select(0, ids)
    return codes[int(language_logits.argmax())]


class GreedyDecoder:
    """Argmax decoding for a single window of audio.

    Instances are single use; create a new one for every call so no cache is
    shared between calls.

    Args:
        model: Whisper model in eval mode.
        special: Special token ids of the model.
        options: Language, task, timestamps and length limit.
    """

    def __init__(self, model: Whisper, special: SpecialTokens, options: DecodingOptions):
        self.model = model
        self.special = special
        self.options = options
        # Never beyond the decoder's positional table
        n_text_ctx = model.config.n_text_ctx
        self.max_length = min(options.max_length or n_text_ctx, n_text_ctx)
        self.state = DecodingState.INIT
        self.cache: DecoderCache | None = None

        # Fails fast on an unknown language, before any numeric work
        if options.language is not None:
            special.language_token(options.language)

    @torch.inference_mode()
    def run(
        self,
        mel: torch.Tensor | None = None,
        audio_features: torch.Tensor | None = None,
    ) -> DecodingResult:
        """Encode (unless features are given) and generate until a stop state.

        Args:
            mel: Spectrogram (n_mels, n_frames) or (1, n_mels, n_frames).
            audio_features: Precomputed encoder output (1, n_ctx, n_state).

        Returns:
            The generated tokens and why generation stopped.
        """
        if self.state is not DecodingState.INIT:
            raise RuntimeError("GreedyDecoder instances can only run once")
        if mel is None and audio_features is None:
            raise ValueError("Either mel or audio_features is required")

        self.state = DecodingState.ENCODING
        if audio_features is None:
            audio_features = self.model.embed_audio(mel)

        language = self.options.language
        options = self.options
        if language is None:
            if self.model.config.is_multilingual:
                language = detect_language(self.model, self.special, audio_features)
                options = replace(options, language=language)
            else:
                # English-only prompts carry no language token
                language = "en"

        prompt = build_prompt(self.special, options)
        generated = self._generate(prompt, audio_features)

        return DecodingResult(
            tokens=generated,
            prompt=prompt,
            language=language,
            stop_reason=self.state,
            audio_features=audio_features,
        )

    def _generate(self, prompt: list[int], audio_features: torch.Tensor) -> list[int]:
        device = audio_features.device
        generated: list[int] = []
        tokens = torch.tensor([prompt], dtype=torch.long, device=device)
        self.state = DecodingState.PROMPTED

        while True:
            if len(prompt) + len(generated) >= self.max_length:
                self.state = DecodingState.STOPPED_MAX_LENGTH
                break

            logits, self.cache = self.model.decode(tokens, audio_features, self.cache)
            self.state = DecodingState.GENERATING

            # argmax returns the first maximum, so ties go to the lowest id
            next_token = int(logits[0, -1].argmax())
            if next_token == self.special.eot:
                self.state = DecodingState.STOPPED_EOT
                break

            generated.append(next_token)
            tokens = torch.tensor([[next_token]], dtype=torch.long, device=device)

        return generated
