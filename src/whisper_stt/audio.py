"""Audio conversion, windowing and log-mel feature extraction.

All functions work with 16kHz mono audio, either as PCM16 bytes or as float32
arrays normalized to [-1, 1].
"""

from collections.abc import Iterator
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import numpy as np
import torch
import torch.nn.functional as F
from transformers.audio_utils import mel_filter_bank

from whisper_stt.constants import (
    BYTES_PER_SAMPLE,
    CHUNK_LENGTH,
    HOP_LENGTH,
    N_FFT,
    N_SAMPLES,
    SAMPLE_RATE,
    SUPPORTED_N_MELS,
    WINDOW_OVERLAP,
)


def pcm16_to_float32(data: bytes) -> np.ndarray:
    """Convert PCM16 bytes to float32 array normalized to [-1, 1].

    Args:
        data: Raw PCM16 little-endian audio bytes.

    Returns:
        Float32 numpy array with values in [-1, 1].
    """
    audio = np.frombuffer(data, dtype=np.int16).astype(np.float32)
    audio /= 32768.0
    return audio


def float32_to_pcm16(audio: np.ndarray) -> bytes:
    """Convert float32 array [-1, 1] to PCM16 bytes."""
    clipped = np.clip(audio, -1.0, 1.0)
    pcm = (clipped * 32767.0).astype(np.int16)
    return pcm.tobytes()


def chunk_audio(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """Split audio bytes into fixed-size chunks. The last chunk may be smaller."""
    for i in range(0, len(data), chunk_size):
        yield data[i : i + chunk_size]


def validate_audio_format(data: bytes) -> bool:
    """True if data length is even (valid PCM16)."""
    return len(data) % BYTES_PER_SAMPLE == 0


def samples_to_bytes(num_samples: int) -> int:
    """Convert sample count to byte count for PCM16."""
    return num_samples * BYTES_PER_SAMPLE


def duration_samples(duration_ms: int) -> int:
    """Calculate number of samples for a given duration in milliseconds."""
    return SAMPLE_RATE * duration_ms // 1000


def duration_bytes(duration_ms: int) -> int:
    """Calculate number of bytes for a given duration in milliseconds."""
    return samples_to_bytes(duration_samples(duration_ms))


def load_audio(path: str | Path, sr: int = SAMPLE_RATE) -> np.ndarray:
    """Load an audio file as mono float32 at ``sr``.

    Args:
        path: Path to any format libsndfile can read (WAV, FLAC, OGG, MP3).
        sr: Target sample rate.

    Returns:
        Float32 numpy array with values in [-1, 1].

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """
    import soundfile as sf

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")

    data, file_sr = sf.read(str(path), dtype="float32", always_2d=True)
    audio = data.mean(axis=1)

    if file_sr != sr:
        import torchaudio.functional as AF

        audio = AF.resample(torch.from_numpy(audio), file_sr, sr).numpy()

    return np.ascontiguousarray(audio, dtype=np.float32)


def pad_or_trim(array: np.ndarray | torch.Tensor, length: int = N_SAMPLES):
    """Pad with trailing zeros or trim the last axis to exactly ``length``.

    Works on numpy arrays and torch tensors and returns the same kind.
    """
    n = array.shape[-1]
    if torch.is_tensor(array):
        if n > length:
            return array[..., :length]
        if n < length:
            return F.pad(array, (0, length - n))
        return array

    array = np.asarray(array)
    if n > length:
        return array[..., :length]
    if n < length:
        pad_widths = [(0, 0)] * array.ndim
        pad_widths[-1] = (0, length - n)
        return np.pad(array, pad_widths)
    return array


def hz_to_mel(hz):
    """Convert frequency in Hz to the HTK mel scale.

    Reference conversion only. The filterbank in ``mel_filters`` uses the
    Slaney scale, which is linear below 1kHz and differs from this one.
    """
    return 2595.0 * np.log10(1.0 + np.asarray(hz, dtype=np.float64) / 700.0)


def mel_to_hz(mel):
    """Inverse of ``hz_to_mel`` (HTK scale, not the filterbank's Slaney scale)."""
    return 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


@lru_cache(maxsize=None)
def mel_filters(n_mels: int) -> torch.Tensor:
    """Mel filterbank matrix shaped (n_mels, N_FFT // 2 + 1).

    Slaney-scale, Slaney-normalized filters, the same table the Whisper
    checkpoints were trained with. Built once per ``n_mels`` and cached;
    callers must not modify the returned tensor.

    Raises:
        ValueError: If ``n_mels`` is not 80 or 128.
    """
    if n_mels not in SUPPORTED_N_MELS:
        raise ValueError(f"Unsupported n_mels: {n_mels}. Supported: {SUPPORTED_N_MELS}")

    filters = mel_filter_bank(
        num_frequency_bins=1 + N_FFT // 2,
        num_mel_filters=n_mels,
        min_frequency=0.0,
        max_frequency=SAMPLE_RATE / 2,
        sampling_rate=SAMPLE_RATE,
        norm="slaney",
        mel_scale="slaney",
    )
    return torch.from_numpy(np.ascontiguousarray(filters.T, dtype=np.float32))


def stft_power(audio: torch.Tensor) -> torch.Tensor:
    """Power spectrum of a centered, reflect-padded Hann STFT.

    The last frame is dropped, so N samples give N // HOP_LENGTH frames.

    Returns:
        Tensor shaped (..., N_FFT // 2 + 1, frames).
    """
    window = torch.hann_window(N_FFT, device=audio.device)
    stft = torch.stft(
        audio,
        N_FFT,
        HOP_LENGTH,
        window=window,
        center=True,
        pad_mode="reflect",
        onesided=True,
        return_complex=True,
    )
    return stft[..., :-1].abs() ** 2


def log_mel_spectrogram(
    audio: str | Path | np.ndarray | torch.Tensor,
    n_mels: int = 80,
    padding: int = 0,
    device: str | torch.device | None = None,
) -> torch.Tensor:
    """Compute the normalized log-mel spectrogram Whisper expects.

    Args:
        audio: Path to an audio file, or a float32 waveform at 16kHz.
        n_mels: Number of mel bins (80, or 128 for large-v3).
        padding: Number of zero samples appended before the STFT.
        device: Device for the computation, defaults to the input's device.

    Returns:
        Float32 tensor shaped (n_mels, n_frames).
    """
    if isinstance(audio, (str, Path)):
        audio = load_audio(audio)
    if not torch.is_tensor(audio):
        audio = torch.from_numpy(np.asarray(audio, dtype=np.float32))

    audio = audio.to(torch.float32)
    if device is not None:
        audio = audio.to(device)
    if padding > 0:
        audio = F.pad(audio, (0, padding))

    magnitudes = stft_power(audio)
    filters = mel_filters(n_mels).to(audio.device)
    mel_spec = filters @ magnitudes

    log_spec = torch.clamp(mel_spec, min=1e-10).log10()
    log_spec = torch.maximum(log_spec, log_spec.max() - 8.0)
    log_spec = (log_spec + 4.0) / 4.0
    return log_spec


def extract_features(
    audio: np.ndarray | torch.Tensor,
    n_mels: int = 80,
    device: str | torch.device | None = None,
) -> torch.Tensor:
    """Pad or trim to one 30s window and return its (n_mels, 3000) spectrogram."""
    return log_mel_spectrogram(pad_or_trim(audio, N_SAMPLES), n_mels=n_mels, device=device)


@dataclass
class AudioWindow:
    """One fixed-length slice of a longer recording."""

    audio: np.ndarray
    start: float  # seconds from the beginning of the recording


def split_audio(
    audio: np.ndarray,
    chunk_length: float = CHUNK_LENGTH,
    overlap: float = WINDOW_OVERLAP,
    sample_rate: int = SAMPLE_RATE,
) -> list[AudioWindow]:
    """Split audio into overlapping, zero-padded windows covering all of it.

    Args:
        audio: Float32 waveform.
        chunk_length: Window length in seconds.
        overlap: Seconds shared by consecutive windows.
        sample_rate: Sample rate of ``audio``.

    Returns:
        Windows in order; each holds exactly ``chunk_length`` seconds.

    Raises:
        ValueError: If ``overlap`` is negative or not shorter than the window.
    """
    if overlap < 0 or overlap >= chunk_length:
        raise ValueError(f"overlap must be in [0, {chunk_length}), got {overlap}")

    audio = np.asarray(audio, dtype=np.float32)
    chunk_samples = int(chunk_length * sample_rate)
    hop_samples = chunk_samples - int(overlap * sample_rate)
    n_samples = len(audio)

    windows = []
    start = 0
    while True:
        end = min(start + chunk_samples, n_samples)
        chunk = pad_or_trim(audio[start:end], chunk_samples)
        windows.append(AudioWindow(audio=chunk, start=start / sample_rate))
        if end >= n_samples:
            break
        start += hop_samples

    return windows
