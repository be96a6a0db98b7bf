"""Full encoder-decoder model."""

import torch
import torch.nn as nn

from whisper_stt.config import ModelConfig
from whisper_stt.model.attention import DecoderCache
from whisper_stt.model.decoder import TextDecoder
from whisper_stt.model.encoder import AudioEncoder


class Whisper(nn.Module):
    """Whisper speech model built from a ``ModelConfig``."""

    def __init__(self, config: ModelConfig):
        super().__init__()
        self.config = config
        self.encoder = AudioEncoder(
            n_mels=config.n_mels,
            n_ctx=config.n_audio_ctx,
            n_state=config.n_audio_state,
            n_head=config.n_audio_head,
            n_layer=config.n_audio_layer,
        )
        self.decoder = TextDecoder(
            n_vocab=config.n_vocab,
            n_ctx=config.n_text_ctx,
            n_state=config.n_text_state,
            n_head=config.n_text_head,
            n_layer=config.n_text_layer,
        )

    @property
    def device(self) -> torch.device:
        return next(self.parameters()).device

    @property
    def dtype(self) -> torch.dtype:
        return next(self.parameters()).dtype

    def embed_audio(self, mel: torch.Tensor) -> torch.Tensor:
        """Encode a spectrogram once per call."""
        return self.encoder(mel.to(device=self.device, dtype=self.dtype))

    def decode(
        self,
        tokens: torch.Tensor,
        audio_features: torch.Tensor,
        cache: DecoderCache | None = None,
    ) -> tuple[torch.Tensor, DecoderCache]:
        """Decode new tokens against encoded audio.

        Returns:
            Float32 logits (batch, seq_len, n_vocab) and the extended cache.
        """
        hidden, cache = self.decoder(tokens, audio_features, cache)
        return self.decoder.logits(hidden), cache

    def forward(self, mel: torch.Tensor, tokens: torch.Tensor) -> torch.Tensor:
        """Logits for a full token sequence, without caching."""
        logits, _ = self.decode(tokens, self.embed_audio(mel))
        return logits
