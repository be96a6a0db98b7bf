"""Byte-level BPE tokenizer for Whisper vocabularies.

Text is encoded as UTF-8, every byte is mapped to a printable stand-in
character, and merges are applied in rank order. Decoding reverses the byte
mapping completely, so any text survives an encode/decode round trip when the
vocabulary covers its symbols.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from functools import lru_cache
from pathlib import Path

from whisper_stt.config import ModelConfig, SpecialTokens, get_config, resolve_special_tokens

_SPECIAL_TOKEN_RE = re.compile(r"<\|[^>]+\|>")
_WHITESPACE_RE = re.compile(r"\s+")


@lru_cache(maxsize=None)
def bytes_to_unicode() -> dict[int, str]:
    """Map every byte to a printable character.

    Printable Latin-1 bytes map to themselves; the rest (control bytes, space,
    DEL and a few others) map in order onto code points from 256 upwards, so
    space becomes "Ġ" (U+0120).
    """
    bs = (
        list(range(ord("!"), ord("~") + 1))
        + list(range(ord("¡"), ord("¬") + 1))
        + list(range(ord("®"), ord("ÿ") + 1))
    )
    cs = bs[:]
    n = 0
    for b in range(256):
        if b not in bs:
            bs.append(b)
            cs.append(256 + n)
            n += 1
    return dict(zip(bs, (chr(c) for c in cs)))


def read_merges(path: str | Path) -> list[tuple[str, str]]:
    """Parse merges.txt into rank-ordered symbol pairs.

    Header lines starting with "#" and lines that are not exactly two
    symbols are skipped.
    """
    merges = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.rstrip("\r\n")
            if not line or line.startswith("#"):
                continue
            parts = line.split(" ")
            if len(parts) == 2:
                merges.append((parts[0], parts[1]))
    return merges


def clean_text(text: str) -> str:
    """Strip leftover special tokens and normalize whitespace."""
    text = _SPECIAL_TOKEN_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


class Tokenizer:
    """BPE tokenizer bound to one model's vocabulary and special tokens.

    Args:
        vocab: Symbol -> id mapping.
        merges: Merge rules, highest priority first.
        special: Special token ids of the model.
        added_tokens: Extra symbol -> id entries (special tokens) used for
            decoding.
    """

    def __init__(
        self,
        vocab: Mapping[str, int],
        merges: Iterable[tuple[str, str]],
        special: SpecialTokens,
        added_tokens: Mapping[str, int] | None = None,
    ):
        self.vocab = dict(vocab)
        self.special = special
        self.merge_ranks = {tuple(pair): rank for rank, pair in enumerate(merges)}

        self.id_to_token = {token_id: token for token, token_id in self.vocab.items()}
        for token, token_id in (added_tokens or {}).items():
            self.id_to_token.setdefault(int(token_id), token)

        self.byte_encoder = bytes_to_unicode()
        self.byte_decoder = {c: b for b, c in self.byte_encoder.items()}

    @classmethod
    def from_files(
        cls,
        vocab_path: str | Path,
        merges_path: str | Path,
        special: SpecialTokens,
        added_tokens_path: str | Path | None = None,
    ) -> Tokenizer:
        """Load vocab.json, merges.txt and optionally added_tokens.json."""
        with open(vocab_path, encoding="utf-8") as f:
            vocab = json.load(f)
        added_tokens = None
        if added_tokens_path is not None and Path(added_tokens_path).exists():
            with open(added_tokens_path, encoding="utf-8") as f:
                added_tokens = json.load(f)
        return cls(vocab, read_merges(merges_path), special, added_tokens)

    @classmethod
    def from_pretrained(cls, config: ModelConfig | str) -> Tokenizer:
        """Fetch the tokenizer files of a model from the hub."""
        from whisper_stt import hub

        if isinstance(config, str):
            config = get_config(config)
        vocab_path, merges_path = hub.tokenizer_files(config)
        added_tokens = hub.load_added_tokens(config)
        special = resolve_special_tokens(config, added_tokens)

        with open(vocab_path, encoding="utf-8") as f:
            vocab = json.load(f)
        return cls(vocab, read_merges(merges_path), special, added_tokens)

    @property
    def n_vocab(self) -> int:
        return len(self.id_to_token)

    def bpe(self, symbols: list[str]) -> list[str]:
        """Merge adjacent symbols, always taking the lowest-ranked pair first.

        Every iteration scans all adjacent pairs; on equal ranks the leftmost
        pair wins.
        """
        symbols = list(symbols)
        while len(symbols) > 1:
            best_rank = None
            best_index = -1
            for i in range(len(symbols) - 1):
                rank = self.merge_ranks.get((symbols[i], symbols[i + 1]))
                if rank is not None and (best_rank is None or rank < best_rank):
                    best_rank = rank
                    best_index = i
            if best_rank is None:
                break
            symbols[best_index : best_index + 2] = [symbols[best_index] + symbols[best_index + 1]]
        return symbols

    def encode(self, text: str) -> list[int]:
        """Encode text to token ids.

        Symbols missing from the vocabulary become the end-of-text id.
        """
        if not text:
            return []
        symbols = [self.byte_encoder[b] for b in text.encode("utf-8")]
        eot = self.special.eot
        return [self.vocab.get(symbol, eot) for symbol in self.bpe(symbols)]

    def decode(self, ids: Iterable[int]) -> str:
        """Decode token ids to text. Unknown ids render as nothing."""
        text = "".join(self.id_to_token.get(int(i), "") for i in ids)
        data = bytearray()
        for char in text:
            byte = self.byte_decoder.get(char)
            if byte is None:
                data.extend(char.encode("utf-8"))
            else:
                data.append(byte)
        return data.decode("utf-8", errors="replace")

    def decode_without_special(self, ids: Iterable[int]) -> str:
        """Decode only the text tokens, dropping every special and timestamp id."""
        return self.decode(i for i in ids if not self.special.is_special(int(i)))
