"""Model files from the Hugging Face hub: download, cache checks, loading."""

import json
import logging
from pathlib import Path

import torch
from huggingface_hub import hf_hub_download, snapshot_download
from huggingface_hub.errors import HfHubHTTPError

from whisper_stt.config import ModelConfig, SpecialTokens, available_models, get_config, resolve_special_tokens
from whisper_stt.devices import resolve_device, resolve_dtype
from whisper_stt.model import Whisper
from whisper_stt.weights import load_safetensors, load_weights

logger = logging.getLogger(__name__)

WEIGHTS_FILE = "model.safetensors"
VOCAB_FILE = "vocab.json"
MERGES_FILE = "merges.txt"
ADDED_TOKENS_FILE = "added_tokens.json"
MODEL_FILES = [WEIGHTS_FILE, "config.json", VOCAB_FILE, MERGES_FILE, ADDED_TOKENS_FILE]

_HUB_ERRORS = (OSError, ValueError, HfHubHTTPError)


def model_exists(name: str) -> bool:
    """True if the model's weights are already in the local hub cache."""
    config = get_config(name)
    try:
        hf_hub_download(config.hf_repo, WEIGHTS_FILE, local_files_only=True)
    except _HUB_ERRORS:
        return False
    return True


def list_downloaded_models() -> list[str]:
    """Supported model names whose weights are cached locally."""
    return [name for name in available_models() if model_exists(name)]


def download_model(name: str, force: bool = False) -> Path:
    """Download weights and tokenizer files for a model.

    Returns:
        Local snapshot directory.
    """
    config = get_config(name)
    logger.info("Downloading %s from %s", name, config.hf_repo)
    path = snapshot_download(
        repo_id=config.hf_repo,
        allow_patterns=MODEL_FILES,
        force_download=force,
    )
    return Path(path)


def weights_path(name: str) -> Path:
    """Path of the locally cached safetensors file.

    Raises:
        FileNotFoundError: If the model has not been downloaded.
    """
    config = get_config(name)
    try:
        return Path(hf_hub_download(config.hf_repo, WEIGHTS_FILE, local_files_only=True))
    except _HUB_ERRORS:
        raise FileNotFoundError(
            f"Model weights not found. Run download_model({name!r}) first."
        ) from None


def load_added_tokens(config: ModelConfig, local_files_only: bool = False) -> dict[str, int] | None:
    """Read added_tokens.json for a model, or None when it cannot be fetched."""
    try:
        path = hf_hub_download(config.hf_repo, ADDED_TOKENS_FILE, local_files_only=local_files_only)
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except _HUB_ERRORS as e:
        logger.info("No %s for %s (%s); using fallback ids", ADDED_TOKENS_FILE, config.name, e)
        return None


def load_special_tokens(config: ModelConfig, local_files_only: bool = False) -> SpecialTokens:
    """Resolve special token ids for a model from the hub, with fallbacks."""
    return resolve_special_tokens(config, load_added_tokens(config, local_files_only))


def tokenizer_files(config: ModelConfig) -> tuple[Path, Path]:
    """Download (or reuse cached) vocab.json and merges.txt."""
    vocab = hf_hub_download(config.hf_repo, VOCAB_FILE)
    merges = hf_hub_download(config.hf_repo, MERGES_FILE)
    return Path(vocab), Path(merges)


def load_model(
    name: str = "tiny",
    device: str | torch.device = "auto",
    dtype: str | torch.dtype = "auto",
    download: bool = True,
) -> Whisper:
    """Build a model and fill it with pretrained weights.

    Args:
        name: Model size.
        device: "auto", "cpu", "cuda" or a ``torch.device``.
        dtype: "auto", "float16", "float32" or a ``torch.dtype``.
        download: Fetch the weights when they are not cached yet.

    Returns:
        Model in eval mode on the requested device and dtype.
    """
    config = get_config(name)
    device = resolve_device(device)
    dtype = resolve_dtype(dtype, device)

    if download and not model_exists(name):
        download_model(name)

    model = Whisper(config)
    path = weights_path(name)
    logger.info("Loading weights from %s", path)
    report = load_weights(model, load_safetensors(path))
    if report.missing:
        logger.debug("Missing tensors: %s", ", ".join(report.missing))

    model.to(device=device, dtype=dtype)
    model.eval()
    return model
