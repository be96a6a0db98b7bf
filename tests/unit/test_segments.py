"""Unit tests for timestamp tokens and segment extraction."""

import pytest

from whisper_stt.segments import Segment, decode_timestamp, extract_segments, is_timestamp


class TestTimestamps:
    def test_fifty_steps_is_one_second(self, special):
        assert decode_timestamp(special.timestamp_begin + 50, special) == pytest.approx(1.0)

    def test_begin_is_zero(self, special):
        assert decode_timestamp(special.timestamp_begin, special) == 0.0

    def test_non_timestamp_rejected(self, special):
        assert not is_timestamp(special.no_timestamps, special)
        with pytest.raises(ValueError):
            decode_timestamp(special.no_timestamps, special)


class TestExtractSegments:
    def test_text_between_timestamps(self, toy_tokenizer, special):
        ts = special.timestamp_begin
        segments = extract_segments([ts, 10, 11, ts + 100, 12, ts + 150], toy_tokenizer)

        assert segments == [
            Segment(start=0.0, end=pytest.approx(2.0), text="Hello world"),
            Segment(start=pytest.approx(2.0), end=pytest.approx(3.0), text="!"),
        ]

    def test_trailing_text_gets_estimated_end(self, toy_tokenizer, special):
        segments = extract_segments([special.timestamp_begin + 50, 10], toy_tokenizer)
        assert len(segments) == 1
        assert segments[0].start == pytest.approx(1.0)
        assert segments[0].end == pytest.approx(1.5)

    def test_offset_shifts_times(self, toy_tokenizer, special):
        ts = special.timestamp_begin
        segments = extract_segments([ts, 10, ts + 50], toy_tokenizer, time_offset=29.0)
        assert segments[0].start == pytest.approx(29.0)
        assert segments[0].end == pytest.approx(30.0)

    def test_other_special_tokens_ignored(self, toy_tokenizer, special):
        ts = special.timestamp_begin
        segments = extract_segments([ts, special.no_timestamps, 10, special.eot, ts + 25], toy_tokenizer)
        assert [s.text for s in segments] == ["Hello"]

    def test_empty_segments_dropped(self, toy_tokenizer, special):
        ts = special.timestamp_begin
        assert extract_segments([ts, ts + 10, ts + 20], toy_tokenizer) == []
