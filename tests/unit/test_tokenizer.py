"""Unit tests for the byte-level BPE tokenizer."""

import json

import pytest

from whisper_stt.tokenizer import Tokenizer, bytes_to_unicode, clean_text, read_merges


@pytest.fixture
def byte_vocab():
    """One vocabulary entry per byte, ids 0-255."""
    return {char: i for i, char in enumerate(bytes_to_unicode().values())}


class TestByteMapping:
    def test_covers_every_byte_once(self):
        mapping = bytes_to_unicode()
        assert sorted(mapping) == list(range(256))
        assert len(set(mapping.values())) == 256

    def test_printable_bytes_map_to_themselves(self):
        mapping = bytes_to_unicode()
        assert mapping[ord("A")] == "A"
        assert mapping[ord("~")] == "~"

    def test_unprintable_bytes_shift_past_latin1(self):
        mapping = bytes_to_unicode()
        assert mapping[0] == chr(256)
        assert mapping[ord(" ")] == "Ġ"


class TestBPE:
    def test_merges_lowest_rank_first(self, special):
        merges = [("l", "o"), ("h", "e"), ("he", "l"), ("hel", "lo")]
        tokenizer = Tokenizer({"hello": 5}, merges, special)

        assert tokenizer.bpe(list("hello")) == ["hello"]
        assert tokenizer.encode("hello") == [5]

    def test_partial_merges(self, special):
        tokenizer = Tokenizer({}, [("l", "o"), ("h", "e")], special)
        assert tokenizer.bpe(list("hello")) == ["he", "l", "lo"]

    def test_leftmost_pair_wins_ties(self, special):
        tokenizer = Tokenizer({}, [("a", "a")], special)
        assert tokenizer.bpe(list("aaa")) == ["aa", "a"]

    def test_unknown_symbol_becomes_end_of_text(self, special):
        tokenizer = Tokenizer({"a": 1}, [], special)
        assert tokenizer.encode("az") == [1, special.eot]

    def test_empty_text(self, special):
        assert Tokenizer({}, [], special).encode("") == []

    def test_deterministic(self, special, byte_vocab):
        tokenizer = Tokenizer(byte_vocab, [("Ġ", "w")], special)
        assert tokenizer.encode("hello world") == tokenizer.encode("hello world")


class TestDecode:
    def test_space_stand_in_is_reversed(self, toy_tokenizer):
        assert toy_tokenizer.decode([10, 11, 12]) == "Hello world!"

    def test_utf8_round_trip(self, special, byte_vocab):
        """Multi-byte characters survive encode then decode."""
        tokenizer = Tokenizer(byte_vocab, [], special)
        text = "héllo wörld, 日本語 ✓"
        assert tokenizer.decode(tokenizer.encode(text)) == text

    def test_unknown_ids_render_empty(self, toy_tokenizer):
        assert toy_tokenizer.decode([10, 4242, 12]) == "Hello!"

    def test_special_tokens_dropped(self, toy_tokenizer, special):
        ids = [special.sot, 10, 11, special.timestamp_begin, special.eot]
        assert toy_tokenizer.decode_without_special(ids) == "Hello world"

    def test_added_tokens_decode_by_name(self, special):
        tokenizer = Tokenizer({"Hi": 3}, [], special, {"<|en|>": 50259})
        assert tokenizer.decode([50259, 3]) == "<|en|>Hi"
        assert tokenizer.n_vocab == 2


class TestFiles:
    def test_read_merges_skips_header_and_bad_lines(self, tmp_path):
        path = tmp_path / "merges.txt"
        path.write_text("#version: 0.2\nh e\nl o\nnot a merge\n\n", encoding="utf-8")
        assert read_merges(path) == [("h", "e"), ("l", "o")]

    def test_from_files(self, tmp_path, special):
        vocab_path = tmp_path / "vocab.json"
        vocab_path.write_text(json.dumps({"he": 0, "l": 1, "lo": 2}), encoding="utf-8")
        merges_path = tmp_path / "merges.txt"
        merges_path.write_text("#version: 0.2\nh e\nl o\n", encoding="utf-8")

        tokenizer = Tokenizer.from_files(vocab_path, merges_path, special, tmp_path / "missing.json")
        assert tokenizer.encode("hello") == [0, 1, 2]
        assert tokenizer.decode([0, 1, 2]) == "hello"


class TestCleanText:
    def test_strips_special_tokens_and_whitespace(self):
        assert clean_text("<|en|> Hello   world <|0.00|>") == "Hello world"

    def test_newlines_collapse(self):
        assert clean_text("one\n\ntwo\t three ") == "one two three"
