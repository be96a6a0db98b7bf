"""Multi-head attention with an explicit key/value cache.

The attention mode is a tagged value rather than a set of optional
arguments: ``SelfAttention`` grows its cache by the new positions,
``CrossAttention`` projects the encoder output once and then reuses it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import torch
import torch.nn as nn
import torch.nn.functional as F


@dataclass
class KVCache:
    """Projected keys and values shaped (batch, n_head, time, head_dim)."""

    key: torch.Tensor
    value: torch.Tensor

    @property
    def length(self) -> int:
        return self.key.size(2)


@dataclass
class LayerCache:
    """Caches of one decoder block. None means not computed yet."""

    self_attn: KVCache | None = None
    cross_attn: KVCache | None = None


@dataclass
class DecoderCache:
    """Per-layer caches for one decoding call, indexed by block."""

    layers: list[LayerCache] = field(default_factory=list)

    @classmethod
    def empty(cls, n_layer: int) -> DecoderCache:
        return cls(layers=[LayerCache() for _ in range(n_layer)])

    @property
    def length(self) -> int:
        """Number of token positions already held in the self-attention cache."""
        if not self.layers or self.layers[0].self_attn is None:
            return 0
        return self.layers[0].self_attn.length

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, index: int) -> LayerCache:
        return self.layers[index]


@dataclass
class SelfAttention:
    """Keys/values come from the query input and extend ``cache``."""

    cache: KVCache | None = None


@dataclass
class CrossAttention:
    """Keys/values come from ``source``, or from ``cache`` when present."""

    source: torch.Tensor
    cache: KVCache | None = None


AttentionMode = SelfAttention | CrossAttention


class MultiHeadAttention(nn.Module):
    """Scaled dot-product attention over ``n_head`` heads.

    Args:
        n_state: Hidden width.
        n_head: Number of heads; must divide ``n_state``.
    """

    def __init__(self, n_state: int, n_head: int):
        super().__init__()
        if n_state % n_head != 0:
            raise ValueError(f"n_state={n_state} is not divisible by n_head={n_head}")

        self.n_state = n_state
        self.n_head = n_head
        self.head_dim = n_state // n_head
        self.scale = self.head_dim ** -0.5

        self.query = nn.Linear(n_state, n_state)
        self.key = nn.Linear(n_state, n_state, bias=False)
        self.value = nn.Linear(n_state, n_state)
        self.out = nn.Linear(n_state, n_state)

    def forward(
        self,
        x: torch.Tensor,
        mode: AttentionMode,
        mask: torch.Tensor | None = None,
    ) -> tuple[torch.Tensor, KVCache]:
        """Attend from ``x`` to the keys/values selected by ``mode``.

        Args:
            x: Query input (batch, seq_len, n_state).
            mode: ``SelfAttention`` or ``CrossAttention``.
            mask: Additive mask broadcastable to (seq_len, key_len).

        Returns:
            Output (batch, seq_len, n_state) and the cache to use next time.
        """
        q = self._split_heads(self.query(x))

        if isinstance(mode, SelfAttention):
            k = self._split_heads(self.key(x))
            v = self._split_heads(self.value(x))
            if mode.cache is not None:
                k = torch.cat([mode.cache.key, k], dim=2)
                v = torch.cat([mode.cache.value, v], dim=2)
            cache = KVCache(k, v)
        elif isinstance(mode, CrossAttention):
            if mode.cache is not None:
                cache = mode.cache
            else:
                cache = KVCache(
                    self._split_heads(self.key(mode.source)),
                    self._split_heads(self.value(mode.source)),
                )
        else:
            raise TypeError(f"Unsupported attention mode: {type(mode).__name__}")

        attn = self._attend(q, cache.key, cache.value, mask)
        return self.out(attn), cache

    def _attend(
        self,
        q: torch.Tensor,
        k: torch.Tensor,
        v: torch.Tensor,
        mask: torch.Tensor | None,
    ) -> torch.Tensor:
        # (batch, head, q_len, head_dim) @ (batch, head, head_dim, k_len)
        scores = (q @ k.transpose(-1, -2)) * self.scale
        if mask is not None:
            scores = scores + mask
        weights = F.softmax(scores.float(), dim=-1).to(q.dtype)
        out = weights @ v

        batch, _, seq_len, _ = out.shape
        return out.transpose(1, 2).reshape(batch, seq_len, self.n_state)

    def _split_heads(self, x: torch.Tensor) -> torch.Tensor:
        # (batch, seq, n_state) -> (batch, n_head, seq, head_dim)
        batch, seq_len, _ = x.shape
        return x.view(batch, seq_len, self.n_head, self.head_dim).transpose(1, 2)


class MLP(nn.Sequential):
    """Position-wise feed-forward: 4x expansion, GELU, projection back."""

    def __init__(self, n_state: int):
        super().__init__(
            nn.Linear(n_state, n_state * 4),
            nn.GELU(),
            nn.Linear(n_state * 4, n_state),
        )
