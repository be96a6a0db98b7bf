"""Text decoder with self-attention, cross-attention and an incremental cache."""

import torch
import torch.nn as nn

from whisper_stt.model.attention import (
    MLP,
    CrossAttention,
    DecoderCache,
    LayerCache,
    MultiHeadAttention,
    SelfAttention,
)


class DecoderBlock(nn.Module):
    """Pre-norm block: causal self-attention, cross-attention, MLP."""

    def __init__(self, n_state: int, n_head: int):
        super().__init__()
        self.attn_ln = nn.LayerNorm(n_state)
        self.attn = MultiHeadAttention(n_state, n_head)
        self.cross_attn_ln = nn.LayerNorm(n_state)
        self.cross_attn = MultiHeadAttention(n_state, n_head)
        self.mlp_ln = nn.LayerNorm(n_state)
        self.mlp = MLP(n_state)

    def forward(
        self,
        x: torch.Tensor,
        audio_features: torch.Tensor,
        cache: LayerCache,
        mask: torch.Tensor | None = None,
    ) -> tuple[torch.Tensor, LayerCache]:
        attn_out, self_kv = self.attn(self.attn_ln(x), SelfAttention(cache.self_attn), mask=mask)
        x = x + attn_out

        cross_out, cross_kv = self.cross_attn(
            self.cross_attn_ln(x), CrossAttention(audio_features, cache.cross_attn)
        )
        x = x + cross_out

        x = x + self.mlp(self.mlp_ln(x))
        return x, LayerCache(self_attn=self_kv, cross_attn=cross_kv)


class TextDecoder(nn.Module):
    """Whisper decoder with learned positions and tied output projection.

    Args:
        n_vocab: Vocabulary size.
        n_ctx: Maximum token positions.
        n_state: Hidden width.
        n_head: Attention heads.
        n_layer: Transformer blocks.
    """

    def __init__(self, n_vocab: int, n_ctx: int, n_state: int, n_head: int, n_layer: int):
        super().__init__()
        self.n_vocab = n_vocab
        self.n_ctx = n_ctx
        self.n_state = n_state
        self.n_layer = n_layer

        self.token_embedding = nn.Embedding(n_vocab, n_state)
        self.positional_embedding = nn.Embedding(n_ctx, n_state)

        self.blocks = nn.ModuleList([DecoderBlock(n_state, n_head) for _ in range(n_layer)])
        self.ln = nn.LayerNorm(n_state)

        mask = torch.full((n_ctx, n_ctx), float("-inf")).triu(1)
        self.register_buffer("mask", mask, persistent=False)

    def forward(
        self,
        tokens: torch.Tensor,
        audio_features: torch.Tensor,
        cache: DecoderCache | None = None,
    ) -> tuple[torch.Tensor, DecoderCache]:
        """Run the decoder over the newly supplied tokens.

        Args:
            tokens: (batch, seq_len) token ids not yet held in ``cache``.
            audio_features: Encoder output (batch, n_audio_ctx, n_audio_state).
            cache: Caches from previous calls of the same decoding run.

        Returns:
            Hidden states (batch, seq_len, n_state) and the extended cache.
        """
        if cache is None:
            cache = DecoderCache.empty(self.n_layer)
        elif len(cache) != self.n_layer:
            raise ValueError(f"Cache has {len(cache)} layers, decoder has {self.n_layer}")

        offset = cache.length
        seq_len = tokens.size(1)
        if offset + seq_len > self.n_ctx:
            raise ValueError(
                f"Decoder context exceeded: {offset + seq_len} positions > n_ctx={self.n_ctx}"
            )

        positions = torch.arange(offset, offset + seq_len, device=tokens.device)
        x = self.token_embedding(tokens) + self.positional_embedding(positions)
        x = x.to(audio_features.dtype)

        # A single new token may attend to everything cached, so it needs no mask
        mask = None
        if seq_len > 1:
            mask = self.mask[offset : offset + seq_len, : offset + seq_len]

        layers = []
        for block, layer_cache in zip(self.blocks, cache.layers):
            x, new_layer_cache = block(x, audio_features, layer_cache, mask=mask)
            layers.append(new_layer_cache)

        return self.ln(x), DecoderCache(layers=layers)

    def logits(self, hidden_states: torch.Tensor) -> torch.Tensor:
        """Project hidden states onto the vocabulary with the token embedding."""
        weight = self.token_embedding.weight.to(hidden_states.dtype)
        return (hidden_states @ weight.transpose(0, 1)).float()
