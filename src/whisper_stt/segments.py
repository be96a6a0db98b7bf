"""Timestamp tokens and text segments."""

from collections.abc import Iterable
from dataclasses import dataclass

from whisper_stt.config import SpecialTokens
from whisper_stt.constants import TIME_PRECISION, TRAILING_SEGMENT_SECONDS
from whisper_stt.tokenizer import Tokenizer, clean_text


@dataclass
class Segment:
    """A stretch of text with its start and end in seconds."""

    start: float
    end: float
    text: str


def is_timestamp(token: int, special: SpecialTokens) -> bool:
    """True for timestamp tokens (the timestamp-begin id and above)."""
    return token >= special.timestamp_begin


def decode_timestamp(token: int, special: SpecialTokens) -> float:
    """Seconds encoded by a timestamp token.

    Raises:
        ValueError: If ``token`` is not a timestamp token.
    """
    if not is_timestamp(token, special):
        raise ValueError(f"Token {token} is not a timestamp token")
    return (token - special.timestamp_begin) * TIME_PRECISION


def extract_segments(
    tokens: Iterable[int],
    tokenizer: Tokenizer,
    time_offset: float = 0.0,
) -> list[Segment]:
    """Group generated tokens into timestamped segments.

    Text tokens between two timestamps form one segment. Other special
    tokens are ignored. A trailing run of text with no closing timestamp ends
    ``TRAILING_SEGMENT_SECONDS`` after its start, which is an estimate.

    Args:
        tokens: Generated token ids.
        tokenizer: Tokenizer of the model that produced them.
        time_offset: Start of the audio window in seconds.

    Returns:
        Segments in order; segments whose text cleans to nothing are dropped.
    """
    special = tokenizer.special
    segments = []
    current_start = time_offset
    current_tokens: list[int] = []

    for token in tokens:
        if is_timestamp(token, special):
            timestamp = decode_timestamp(token, special) + time_offset
            if current_tokens:
                text = clean_text(tokenizer.decode(current_tokens))
                if text:
                    segments.append(Segment(start=current_start, end=timestamp, text=text))
                current_tokens = []
            current_start = timestamp
        elif special.is_special(token):
            continue
        else:
            current_tokens.append(token)

    if current_tokens:
        text = clean_text(tokenizer.decode(current_tokens))
        if text:
            segments.append(
                Segment(start=current_start, end=current_start + TRAILING_SEGMENT_SECONDS, text=text)
            )

    return segments
