"""Tests for block-wise local noise analysis."""

import numpy as np

from forensic_maps.config import ForensicConfig
from forensic_maps.noisemap import block_variance, lna_analyze


def _checkerboard(h: int, w: int, lo: int = 0, hi: int = 10) -> np.ndarray:
    yy, xx = np.mgrid[0:h, 0:w]
    return np.where((yy + xx) % 2 == 0, lo, hi).astype(np.uint8)


def test_uniform_image_has_zero_intensity():
    result = lna_analyze(np.full((32, 32), 200, dtype=np.uint8))
    assert result.max_intensity == 0.0
    assert (result.heatmap[..., :3] == 0).all()
    assert (result.heatmap[..., 3] == 255).all()


def test_checkerboard_block_values():
    result = lna_analyze(_checkerboard(16, 16))
    # variance 25 -> sqrt 5 -> intensity 25, red/blue at 20 %
    assert np.allclose(result.block_variance, 25.0)
    assert (result.heatmap[..., 1] == 25).all()
    assert (result.heatmap[..., 0] == 5).all()
    assert (result.heatmap[..., 2] == 5).all()


def test_every_block_is_uniform():
    rng = np.random.default_rng(6)
    gray = rng.integers(0, 256, size=(64, 64), dtype=np.uint8)
    heatmap = lna_analyze(gray).heatmap
    for by in range(0, 64, 8):
        for bx in range(0, 64, 8):
            block = heatmap[by:by + 8, bx:bx + 8].reshape(-1, 4)
            assert (block == block[0]).all()


def test_partial_blocks_are_truncated():
    gray = np.zeros((12, 20), dtype=np.uint8)
    gray[8:, 16:] = _checkerboard(4, 4)
    variance, row_sizes, col_sizes = block_variance(gray, 8)
    assert variance.shape == (2, 3)
    assert row_sizes.tolist() == [8, 4]
    assert col_sizes.tolist() == [8, 8, 4]
    # only the 4x4 corner block is textured
    assert variance[1, 2] == 25.0
    assert variance[0].sum() == 0.0

    result = lna_analyze(gray)
    assert result.grid == (2, 3)
    assert result.size == (20, 12)
    assert (result.heatmap[8:, 16:, 1] == 25).all()
    assert (result.heatmap[:8, :, 1] == 0).all()


def test_intensity_is_clamped():
    result = lna_analyze(_checkerboard(8, 8, 0, 255))
    assert result.max_intensity == 255.0
    assert (result.heatmap[..., 1] == 255).all()
    assert (result.heatmap[..., 0] == 51).all()


def test_block_size_from_config():
    result = lna_analyze(_checkerboard(16, 16), config=ForensicConfig(lna_block_size=4))
    assert result.grid == (4, 4)
    assert result.block_size == 4


def test_oversized_grayscale_buffer_is_capped():
    result = lna_analyze(np.full((600, 1000), 30, dtype=np.uint8))
    assert result.size == (512, 307)
    assert result.grid == (39, 64)
