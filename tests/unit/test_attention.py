"""Unit tests for multi-head attention and its caches."""

import pytest
import torch

from whisper_stt.model import CrossAttention, DecoderCache, KVCache, MultiHeadAttention, SelfAttention


@pytest.fixture
def attn():
    torch.manual_seed(0)
    return MultiHeadAttention(16, 2).eval()


class TestMultiHeadAttention:
    def test_indivisible_heads(self):
        with pytest.raises(ValueError, match="not divisible"):
            MultiHeadAttention(10, 3)

    def test_output_shape(self, attn):
        out, cache = attn(torch.randn(2, 5, 16), SelfAttention())
        assert out.shape == (2, 5, 16)
        assert cache.key.shape == (2, 2, 5, 8)

    def test_key_has_no_bias(self, attn):
        assert attn.key.bias is None
        assert attn.query.bias is not None

    def test_unknown_mode(self, attn):
        with pytest.raises(TypeError):
            attn(torch.randn(1, 1, 16), "self")


class TestSelfAttentionCache:
    def test_cache_grows_by_new_positions(self, attn):
        _, cache = attn(torch.randn(1, 3, 16), SelfAttention())
        assert cache.length == 3

        _, cache = attn(torch.randn(1, 1, 16), SelfAttention(cache))
        assert cache.length == 4

    def test_incremental_matches_full(self, attn):
        """Attending step by step equals one masked pass over all positions."""
        x = torch.randn(1, 4, 16)
        mask = torch.full((4, 4), float("-inf")).triu(1)
        full, _ = attn(x, SelfAttention(), mask=mask)

        _, cache = attn(x[:, :3], SelfAttention(), mask=mask[:3, :3])
        last, _ = attn(x[:, 3:], SelfAttention(cache))

        torch.testing.assert_close(last, full[:, 3:], atol=1e-5, rtol=1e-5)


class TestCrossAttentionCache:
    def test_cache_reused_by_identity(self, attn):
        source = torch.randn(1, 6, 16)
        _, cache = attn(torch.randn(1, 1, 16), CrossAttention(source))
        assert cache.length == 6

        _, again = attn(torch.randn(1, 1, 16), CrossAttention(source, cache))
        assert again is cache

    def test_cached_source_is_not_reprojected(self, attn):
        """With a cache present the new source is ignored."""
        source = torch.randn(1, 6, 16)
        x = torch.randn(1, 1, 16)
        expected, cache = attn(x, CrossAttention(source))

        out, _ = attn(x, CrossAttention(torch.zeros(1, 6, 16), cache))
        torch.testing.assert_close(out, expected)


class TestDecoderCache:
    def test_empty(self):
        cache = DecoderCache.empty(3)
        assert len(cache) == 3
        assert cache.length == 0
        assert cache[0].self_attn is None
        assert cache[0].cross_attn is None

    def test_length_from_first_layer(self):
        kv = KVCache(torch.zeros(1, 2, 7, 4), torch.zeros(1, 2, 7, 4))
        cache = DecoderCache.empty(2)
        cache.layers[0].self_attn = kv
        assert cache.length == 7
