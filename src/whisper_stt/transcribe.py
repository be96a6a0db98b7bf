"""Transcription of whole recordings, one 30 second window at a time."""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path

import numpy as np
import torch

from whisper_stt.audio import extract_features, load_audio, split_audio
from whisper_stt.constants import CHUNK_LENGTH, N_SAMPLES, SAMPLE_RATE, WINDOW_OVERLAP
from whisper_stt.decoding import DecodingOptions, GreedyDecoder, Task
from whisper_stt.model import Whisper
from whisper_stt.segments import Segment, extract_segments
from whisper_stt.tokenizer import Tokenizer, clean_text

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionResult:
    """Text of a recording plus what was resolved while producing it."""

    text: str
    language: str | None
    segments: list[Segment] = field(default_factory=list)
    model: str | None = None
    duration: float | None = None


@dataclass
class WindowTranscript:
    text: str
    language: str | None
    tokens: list[int]
    segments: list[Segment]


def transcribe_window(
    model: Whisper,
    tokenizer: Tokenizer,
    audio: np.ndarray | torch.Tensor,
    options: DecodingOptions,
    time_offset: float = 0.0,
) -> WindowTranscript:
    """Transcribe up to 30 seconds of audio with a fresh decoder."""
    mel = extract_features(audio, n_mels=model.config.n_mels, device=model.device)
    result = GreedyDecoder(model, tokenizer.special, options).run(mel=mel)

    text = clean_text(tokenizer.decode_without_special(result.tokens))
    segments = []
    if options.timestamps:
        segments = extract_segments(result.tokens, tokenizer, time_offset=time_offset)

    return WindowTranscript(
        text=text,
        language=result.language,
        tokens=result.tokens,
        segments=segments,
    )


def transcribe_audio(
    model: Whisper,
    tokenizer: Tokenizer,
    audio: np.ndarray | torch.Tensor,
    options: DecodingOptions | None = None,
) -> TranscriptionResult:
    """Transcribe a 16kHz waveform of any length.

    Audio longer than one window is split into windows overlapping by one
    second. Each window is decoded independently and the texts are joined
    with spaces; words repeated across a window boundary are kept.

    Args:
        model: Loaded model.
        tokenizer: Tokenizer of the same model.
        audio: Mono float32 waveform at 16kHz.
        options: Decoding options; defaults to English transcription.

    Returns:
        Joined text, resolved language and, with timestamps on, segments
        shifted to recording time.
    """
    options = options or DecodingOptions()
    if torch.is_tensor(audio):
        audio = audio.detach().cpu().numpy()
    audio = np.asarray(audio, dtype=np.float32)
    duration = len(audio) / SAMPLE_RATE

    if len(audio) <= N_SAMPLES:
        window = transcribe_window(model, tokenizer, audio, options)
        return TranscriptionResult(
            text=window.text,
            language=window.language,
            segments=window.segments,
            model=model.config.name,
            duration=duration,
        )

    windows = split_audio(audio, chunk_length=CHUNK_LENGTH, overlap=WINDOW_OVERLAP)
    logger.info("Transcribing %.1fs of audio in %d windows", duration, len(windows))

    texts = []
    segments: list[Segment] = []
    language = options.language
    for i, window in enumerate(windows, start=1):
        logger.debug("Window %d/%d at %.1fs", i, len(windows), window.start)
        transcript = transcribe_window(model, tokenizer, window.audio, options, time_offset=window.start)
        if language is None:
            # Detected once, then kept for the remaining windows
            language = transcript.language
            if model.config.is_multilingual:
                options = replace(options, language=language)
        texts.append(transcript.text)
        segments.extend(transcript.segments)

    return TranscriptionResult(
        text=clean_text(" ".join(texts)),
        language=language,
        segments=segments,
        model=model.config.name,
        duration=duration,
    )


def transcribe_file(
    path: str | Path,
    model_name: str = "tiny",
    language: str | None = "en",
    task: Task = "transcribe",
    timestamps: bool = False,
    device: str | torch.device = "auto",
    dtype: str | torch.dtype = "auto",
) -> TranscriptionResult:
    """Load a model and its tokenizer, then transcribe an audio file."""
    from whisper_stt.hub import load_model

    options = DecodingOptions(language=language, task=task, timestamps=timestamps)
    audio = load_audio(path)

    logger.info("Loading model: %s", model_name)
    model = load_model(model_name, device=device, dtype=dtype)
    tokenizer = Tokenizer.from_pretrained(model.config)

    return transcribe_audio(model, tokenizer, audio, options)
