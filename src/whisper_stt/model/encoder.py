"""Audio encoder: convolutional stem, sinusoidal positions, transformer blocks."""

import math

import torch
import torch.nn as nn
import torch.nn.functional as F

from whisper_stt.model.attention import MLP, MultiHeadAttention, SelfAttention


def sinusoids(length: int, channels: int, max_timescale: float = 10000.0) -> torch.Tensor:
    """Fixed positional encoding: sine on even channels, cosine on odd ones."""
    pe = torch.zeros(length, channels)
    position = torch.arange(0, length, dtype=torch.float32).unsqueeze(1)
    div_term = torch.exp(
        torch.arange(0, channels, 2, dtype=torch.float32) * (-math.log(max_timescale) / channels)
    )
    pe[:, 0::2] = torch.sin(position * div_term)
    pe[:, 1::2] = torch.cos(position * div_term)
    return pe


class EncoderBlock(nn.Module):
    """Pre-norm block: bidirectional self-attention, then MLP."""

    def __init__(self, n_state: int, n_head: int):
        super().__init__()
        self.attn_ln = nn.LayerNorm(n_state)
        self.attn = MultiHeadAttention(n_state, n_head)
        self.mlp_ln = nn.LayerNorm(n_state)
        self.mlp = MLP(n_state)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        attn_out, _ = self.attn(self.attn_ln(x), SelfAttention())
        x = x + attn_out
        x = x + self.mlp(self.mlp_ln(x))
        return x


class AudioEncoder(nn.Module):
    """Whisper encoder.

    Args:
        n_mels: Mel bins of the input spectrogram.
        n_ctx: Maximum output positions (1500 for a 30s window).
        n_state: Hidden width.
        n_head: Attention heads.
        n_layer: Transformer blocks.
    """

    def __init__(self, n_mels: int, n_ctx: int, n_state: int, n_head: int, n_layer: int):
        super().__init__()
        self.n_mels = n_mels
        self.n_ctx = n_ctx
        self.n_state = n_state

        self.conv1 = nn.Conv1d(n_mels, n_state, kernel_size=3, padding=1)
        self.conv2 = nn.Conv1d(n_state, n_state, kernel_size=3, stride=2, padding=1)
        self.register_buffer("positional_embedding", sinusoids(n_ctx, n_state))

        self.blocks = nn.ModuleList([EncoderBlock(n_state, n_head) for _ in range(n_layer)])
        self.ln_post = nn.LayerNorm(n_state)

    def forward(self, mel: torch.Tensor) -> torch.Tensor:
        """Encode a spectrogram.

        Args:
            mel: (batch, n_mels, n_frames), or (n_mels, n_frames) for one item.

        Returns:
            (batch, min(ceil(n_frames / 2), n_ctx), n_state)
        """
        if mel.dim() == 2:
            mel = mel.unsqueeze(0)

        x = F.gelu(self.conv1(mel))
        x = F.gelu(self.conv2(x))
        x = x.permute(0, 2, 1)

        # Trailing frames beyond the context are dropped
        if x.size(1) > self.n_ctx:
            x = x[:, : self.n_ctx, :]

        x = x + self.positional_embedding[: x.size(1)].to(x.dtype)

        for block in self.blocks:
            x = block(x)

        return self.ln_post(x)
