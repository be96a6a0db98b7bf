"""Device and dtype selection."""

import torch


def default_device() -> torch.device:
    """CUDA when available, otherwise CPU."""
    return torch.device("cuda" if torch.cuda.is_available() else "cpu")


def resolve_device(device: str | torch.device = "auto") -> torch.device:
    """Turn "auto", a device string or a device into a ``torch.device``."""
    if isinstance(device, torch.device):
        return device
    if device == "auto":
        return default_device()
    return torch.device(device)


def resolve_dtype(dtype: str | torch.dtype = "auto", device: torch.device | None = None) -> torch.dtype:
    """Pick float16 on CUDA and float32 elsewhere for "auto".

    Raises:
        ValueError: For an unsupported dtype name.
    """
    if isinstance(dtype, torch.dtype):
        return dtype
    if dtype == "auto":
        device = device or default_device()
        return torch.float16 if device.type == "cuda" else torch.float32
    if dtype == "float16":
        return torch.float16
    if dtype == "float32":
        return torch.float32
    raise ValueError(f"Unknown dtype: {dtype!r}. Supported: auto, float16, float32")
