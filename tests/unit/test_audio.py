"""Unit tests for audio conversion, windowing and log-mel features."""

import numpy as np
import pytest
import torch

from whisper_stt.audio import (
    chunk_audio,
    duration_bytes,
    duration_samples,
    extract_features,
    float32_to_pcm16,
    hz_to_mel,
    load_audio,
    log_mel_spectrogram,
    mel_filters,
    mel_to_hz,
    pad_or_trim,
    pcm16_to_float32,
    samples_to_bytes,
    split_audio,
    validate_audio_format,
)
from whisper_stt.constants import (
    CHUNK_BYTES,
    CHUNK_SAMPLES,
    MIN_AUDIO_BYTES,
    N_FFT,
    N_FRAMES,
    N_SAMPLES,
    SAMPLE_RATE,
)


def sine(freq: float, seconds: float = 1.0) -> np.ndarray:
    t = np.arange(int(SAMPLE_RATE * seconds)) / SAMPLE_RATE
    return (0.5 * np.sin(2 * np.pi * freq * t)).astype(np.float32)


class TestPCM16Conversion:
    """Tests for PCM16 <-> float32 conversion."""

    def test_pcm16_to_float32_zeros(self):
        """Zero bytes should produce zero array."""
        result = pcm16_to_float32(bytes(100))
        assert result.dtype == np.float32
        assert len(result) == 50
        np.testing.assert_array_equal(result, np.zeros(50, dtype=np.float32))

    def test_pcm16_to_float32_extremes(self):
        """Max int16 should map to ~1.0 and min to -1.0."""
        result = pcm16_to_float32(np.array([32767, -32768], dtype=np.int16).tobytes())
        np.testing.assert_allclose(result, [1.0, -1.0], atol=0.0001)

    def test_float32_to_pcm16_roundtrip(self):
        """Conversion should be reversible within precision limits."""
        original = np.array([0.0, 0.5, -0.5, 0.99, -0.99], dtype=np.float32)
        recovered = pcm16_to_float32(float32_to_pcm16(original))
        np.testing.assert_allclose(recovered, original, atol=0.0001)

    def test_float32_to_pcm16_clipping(self):
        """Values outside [-1, 1] should be clipped."""
        recovered = pcm16_to_float32(float32_to_pcm16(np.array([2.0, -2.0], dtype=np.float32)))
        np.testing.assert_allclose(recovered, [1.0, -1.0], atol=0.0001)


class TestChunking:
    """Tests for byte chunking and format validation."""

    def test_chunk_audio_with_remainder(self):
        chunks = list(chunk_audio(bytes(100), 30))
        assert [len(c) for c in chunks] == [30, 30, 30, 10]

    def test_chunk_audio_empty(self):
        assert list(chunk_audio(b"", 10)) == []

    def test_validate_audio_format(self):
        """Even byte counts are valid PCM16, odd ones are not."""
        assert validate_audio_format(bytes(0))
        assert validate_audio_format(bytes(100))
        assert not validate_audio_format(bytes(1))
        assert not validate_audio_format(bytes(101))


class TestHelperFunctions:
    """Tests for size conversions and their constants."""

    def test_durations(self):
        """Stream chunk and minimum sizes match their durations in PCM16."""
        assert samples_to_bytes(CHUNK_SAMPLES) == CHUNK_BYTES
        assert duration_samples(5000) == CHUNK_SAMPLES
        assert duration_bytes(5000) == CHUNK_BYTES
        assert duration_bytes(1000) == MIN_AUDIO_BYTES

    def test_window_constants(self):
        """A 30s window is 480000 samples and 3000 mel frames."""
        assert N_SAMPLES == 480000
        assert N_FRAMES == 3000


class TestPadOrTrim:
    def test_pads_numpy_with_zeros(self):
        result = pad_or_trim(np.ones(10, dtype=np.float32), 15)
        assert result.shape == (15,)
        np.testing.assert_array_equal(result[10:], 0.0)

    def test_trims_numpy(self):
        result = pad_or_trim(np.arange(20, dtype=np.float32), 5)
        np.testing.assert_array_equal(result, [0, 1, 2, 3, 4])

    def test_tensor_stays_tensor(self):
        result = pad_or_trim(torch.ones(2, 10), 12)
        assert torch.is_tensor(result)
        assert result.shape == (2, 12)
        assert torch.all(result[:, 10:] == 0)

    def test_exact_length_unchanged(self):
        audio = np.ones(8, dtype=np.float32)
        assert pad_or_trim(audio, 8) is audio


class TestMelFilters:
    def test_shape(self):
        assert mel_filters(80).shape == (80, N_FFT // 2 + 1)
        assert mel_filters(128).shape == (128, N_FFT // 2 + 1)

    def test_cached_per_size(self):
        assert mel_filters(80) is mel_filters(80)

    def test_unsupported_size(self):
        with pytest.raises(ValueError, match="Unsupported n_mels"):
            mel_filters(64)

    def test_mel_scale_inverse(self):
        hz = np.array([0.0, 440.0, 1000.0, 8000.0])
        np.testing.assert_allclose(mel_to_hz(hz_to_mel(hz)), hz, rtol=1e-9, atol=1e-9)

    def test_mel_helpers_use_htk_scale(self):
        """The helpers are HTK; the filterbank itself is built on the Slaney scale."""
        from transformers.audio_utils import hertz_to_mel

        assert hz_to_mel(1000.0) == pytest.approx(hertz_to_mel(1000.0, mel_scale="htk"))
        assert hz_to_mel(1000.0) != pytest.approx(hertz_to_mel(1000.0, mel_scale="slaney"))


class TestLogMelSpectrogram:
    """Tests for log-mel feature extraction."""

    def test_frame_count(self):
        """N samples give N // HOP_LENGTH frames."""
        mel = log_mel_spectrogram(np.zeros(SAMPLE_RATE, dtype=np.float32))
        assert mel.shape == (80, 100)
        assert mel.dtype == torch.float32

    def test_silence_is_constant(self):
        """Silence clamps to 1e-10, i.e. (log10(1e-10) + 4) / 4 everywhere."""
        mel = log_mel_spectrogram(np.zeros(SAMPLE_RATE, dtype=np.float32))
        assert torch.allclose(mel, torch.full_like(mel, -1.5))

    def test_dynamic_range_is_bounded(self):
        """Values sit within 8 log10 units below the peak, scaled by 1/4."""
        mel = log_mel_spectrogram(sine(440.0))
        assert float(mel.max() - mel.min()) <= 2.0 + 1e-5

    def test_deterministic(self):
        audio = sine(440.0)
        assert torch.equal(log_mel_spectrogram(audio), log_mel_spectrogram(audio))

    def test_tone_peaks_at_matching_band(self):
        """A 440Hz tone peaks in the band whose filter covers FFT bin 11."""
        mel = log_mel_spectrogram(sine(440.0))
        peak_band = int(mel[:, 10:-10].mean(dim=1).argmax())

        fft_bin = round(440.0 * N_FFT / SAMPLE_RATE)
        expected_band = int(mel_filters(80)[:, fft_bin].argmax())
        assert abs(peak_band - expected_band) <= 1

    def test_higher_tone_peaks_higher(self):
        low = log_mel_spectrogram(sine(440.0))[:, 10:-10].mean(dim=1).argmax()
        high = log_mel_spectrogram(sine(2000.0))[:, 10:-10].mean(dim=1).argmax()
        assert int(high) > int(low)

    def test_padding_adds_frames(self):
        mel = log_mel_spectrogram(np.zeros(SAMPLE_RATE, dtype=np.float32), padding=1600)
        assert mel.shape == (80, 110)

    def test_extract_features_shape(self):
        """Any input becomes exactly one 30s window of features."""
        assert extract_features(sine(440.0)).shape == (80, N_FRAMES)
        assert extract_features(np.zeros(N_SAMPLES + 5000, dtype=np.float32)).shape == (80, N_FRAMES)
        assert extract_features(sine(440.0), n_mels=128).shape == (128, N_FRAMES)


class TestSplitAudio:
    """Tests for splitting long recordings into windows."""

    def test_single_window(self):
        windows = split_audio(np.zeros(N_SAMPLES, dtype=np.float32))
        assert len(windows) == 1
        assert windows[0].start == 0.0

    def test_overlapping_windows(self):
        """61s with a 1s overlap needs windows starting at 0, 29 and 58."""
        audio = np.arange(61 * SAMPLE_RATE, dtype=np.float32)
        windows = split_audio(audio)

        assert [w.start for w in windows] == [0.0, 29.0, 58.0]
        assert all(len(w.audio) == N_SAMPLES for w in windows)
        # Second window starts one second before the first one ends
        assert windows[1].audio[0] == audio[29 * SAMPLE_RATE]

    def test_last_window_zero_padded(self):
        audio = np.ones(31 * SAMPLE_RATE, dtype=np.float32)
        last = split_audio(audio)[-1]
        assert last.audio[-1] == 0.0

    @pytest.mark.parametrize("overlap", [-1.0, 30.0, 45.0])
    def test_invalid_overlap(self, overlap):
        with pytest.raises(ValueError, match="overlap"):
            split_audio(np.zeros(100, dtype=np.float32), overlap=overlap)


class TestLoadAudio:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_audio(tmp_path / "missing.wav")

    def test_stereo_downmix(self, tmp_path):
        import soundfile as sf

        left = np.full(SAMPLE_RATE, 0.5, dtype=np.float32)
        right = np.zeros(SAMPLE_RATE, dtype=np.float32)
        path = tmp_path / "stereo.wav"
        sf.write(str(path), np.stack([left, right], axis=1), SAMPLE_RATE, subtype="FLOAT")

        audio = load_audio(path)
        assert audio.dtype == np.float32
        assert audio.shape == (SAMPLE_RATE,)
        np.testing.assert_allclose(audio, 0.25, atol=1e-6)

    def test_resamples_to_16k(self, tmp_path):
        import soundfile as sf

        path = tmp_path / "8k.wav"
        sf.write(str(path), np.zeros(8000, dtype=np.float32), 8000)

        assert len(load_audio(path)) == SAMPLE_RATE
