"""Copy checkpoint tensors into a ``Whisper`` module by canonical name.

Checkpoints use the Hugging Face parameter names
(``encoder.layers.0.self_attn.q_proj.weight``), optionally prefixed with
``model.``. Loading is best effort: tensors that are absent or have the wrong
shape are skipped and reported, leaving the module's initial values in place.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import torch

from whisper_stt.config import ModelConfig
from whisper_stt.model import Whisper

logger = logging.getLogger(__name__)

HF_PREFIX = "model."
# Tied to decoder.embed_tokens.weight, so never copied
TIED_OUTPUT = "proj_out.weight"

_ATTENTION_PARAMS = {
    "query.weight": "q_proj.weight",
    "query.bias": "q_proj.bias",
    "key.weight": "k_proj.weight",
    "value.weight": "v_proj.weight",
    "value.bias": "v_proj.bias",
    "out.weight": "out_proj.weight",
    "out.bias": "out_proj.bias",
}

_MLP_PARAMS = {
    "mlp.0.weight": "fc1.weight",
    "mlp.0.bias": "fc1.bias",
    "mlp.2.weight": "fc2.weight",
    "mlp.2.bias": "fc2.bias",
}


@dataclass
class WeightLoadReport:
    """Outcome of copying a checkpoint into a model."""

    matched: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    mismatched: list[str] = field(default_factory=list)
    unexpected: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        """True when every model parameter was filled from the checkpoint."""
        return not self.missing and not self.mismatched


def _layer_norm(ours: str, theirs: str) -> dict[str, str]:
    return {f"{ours}.weight": f"{theirs}.weight", f"{ours}.bias": f"{theirs}.bias"}


def _attention(ours: str, theirs: str) -> dict[str, str]:
    return {f"{ours}.{k}": f"{theirs}.{v}" for k, v in _ATTENTION_PARAMS.items()}


def parameter_name_map(config: ModelConfig) -> dict[str, str]:
    """Map each module state name to its checkpoint name."""
    names = {
        "encoder.conv1.weight": "encoder.conv1.weight",
        "encoder.conv1.bias": "encoder.conv1.bias",
        "encoder.conv2.weight": "encoder.conv2.weight",
        "encoder.conv2.bias": "encoder.conv2.bias",
        "encoder.positional_embedding": "encoder.embed_positions.weight",
    }
    for i in range(config.n_audio_layer):
        ours, theirs = f"encoder.blocks.{i}", f"encoder.layers.{i}"
        names.update(_layer_norm(f"{ours}.attn_ln", f"{theirs}.self_attn_layer_norm"))
        names.update(_attention(f"{ours}.attn", f"{theirs}.self_attn"))
        names.update(_layer_norm(f"{ours}.mlp_ln", f"{theirs}.final_layer_norm"))
        names.update({f"{ours}.{k}": f"{theirs}.{v}" for k, v in _MLP_PARAMS.items()})
    names.update(_layer_norm("encoder.ln_post", "encoder.layer_norm"))

    names["decoder.token_embedding.weight"] = "decoder.embed_tokens.weight"
    names["decoder.positional_embedding.weight"] = "decoder.embed_positions.weight"
    for i in range(config.n_text_layer):
        ours, theirs = f"decoder.blocks.{i}", f"decoder.layers.{i}"
        names.update(_layer_norm(f"{ours}.attn_ln", f"{theirs}.self_attn_layer_norm"))
        names.update(_attention(f"{ours}.attn", f"{theirs}.self_attn"))
        names.update(_layer_norm(f"{ours}.cross_attn_ln", f"{theirs}.encoder_attn_layer_norm"))
        names.update(_attention(f"{ours}.cross_attn", f"{theirs}.encoder_attn"))
        names.update(_layer_norm(f"{ours}.mlp_ln", f"{theirs}.final_layer_norm"))
        names.update({f"{ours}.{k}": f"{theirs}.{v}" for k, v in _MLP_PARAMS.items()})
    names.update(_layer_norm("decoder.ln", "decoder.layer_norm"))
    return names


def _lookup(weights: Mapping[str, torch.Tensor], name: str) -> torch.Tensor | None:
    if name in weights:
        return weights[name]
    return weights.get(HF_PREFIX + name)


def load_weights(model: Whisper, weights: Mapping[str, torch.Tensor]) -> WeightLoadReport:
    """Copy tensors from a name -> tensor mapping into ``model`` in place.

    Args:
        model: Target model; its parameters keep their values where the
            checkpoint has nothing usable.
        weights: Checkpoint tensors keyed by canonical name.

    Returns:
        Report of matched, missing, mismatched and unexpected names.
    """
    report = WeightLoadReport()
    name_map = parameter_name_map(model.config)
    state = model.state_dict()

    with torch.no_grad():
        for ours, theirs in name_map.items():
            source = _lookup(weights, theirs)
            if source is None:
                report.missing.append(theirs)
                continue

            target = state[ours]
            if ours == "encoder.positional_embedding" and source.dim() == 2:
                # Checkpoints may carry more positions than the module keeps
                n_ctx = min(target.size(0), source.size(0))
                if source.size(1) == target.size(1):
                    target[:n_ctx].copy_(source[:n_ctx])
                    report.matched.append(theirs)
                else:
                    report.mismatched.append(theirs)
                continue

            if source.shape != target.shape:
                report.mismatched.append(theirs)
                continue

            target.copy_(source)
            report.matched.append(theirs)

    known = set(name_map.values()) | {TIED_OUTPUT}
    report.unexpected = sorted(
        name for name in weights if name.removeprefix(HF_PREFIX) not in known
    )

    if report.missing or report.mismatched:
        logger.warning(
            "Loaded %d tensors; %d missing, %d with mismatched shapes",
            len(report.matched),
            len(report.missing),
            len(report.mismatched),
        )
    else:
        logger.info("Loaded all %d tensors", len(report.matched))
    return report


def export_weights(model: Whisper) -> dict[str, torch.Tensor]:
    """Return the model's tensors keyed by canonical checkpoint name."""
    state = model.state_dict()
    return {
        theirs: state[ours].detach().clone()
        for ours, theirs in parameter_name_map(model.config).items()
    }


def load_safetensors(path: str | Path) -> dict[str, torch.Tensor]:
    """Read all tensors of a safetensors file onto the CPU."""
    from safetensors.torch import load_file

    return load_file(str(path), device="cpu")


def save_safetensors(model: Whisper, path: str | Path) -> None:
    """Write the model's tensors under their canonical names."""
    from safetensors.torch import save_file

    tensors = {name: t.contiguous() for name, t in export_weights(model).items()}
    save_file(tensors, str(path))
