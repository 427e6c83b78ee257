"""Tests for Error Level Analysis."""

import io

import numpy as np
from PIL import Image

from forensic_maps.config import ForensicConfig
from forensic_maps.ela import compression_diff, ela_analyze, percentile_scale


def _jpeg_roundtrip(rgb: np.ndarray, quality: int) -> np.ndarray:
    buf = io.BytesIO()
    Image.fromarray(rgb).save(buf, format="JPEG", quality=quality)
    return np.array(Image.open(io.BytesIO(buf.getvalue())).convert("RGB"))


def _tampered_fixture() -> np.ndarray:
    """1000x1000 single-generation JPEG with a 50x50 block pasted from the
    uncompressed original at (row 600, col 600)."""
    rng = np.random.default_rng(7)
    yy, xx = np.mgrid[0:1000, 0:1000].astype(np.float64)
    base = np.stack([60 + xx * 0.12, 60 + yy * 0.12, 90 + (xx + yy) * 0.05], axis=-1)
    raw = np.clip(base + rng.normal(0.0, 25.0, size=base.shape), 0, 255).astype(np.uint8)

    tampered = _jpeg_roundtrip(raw, quality=60)
    tampered[600:650, 600:650] = raw[100:150, 100:150]
    return tampered


def test_percentile_scale_uses_fallback_for_zero_field():
    p, scale = percentile_scale(np.zeros((40, 40), dtype=np.float32))
    assert p == 0.0
    assert scale == 50.0


def test_percentile_scale_from_p98():
    diff = np.concatenate([np.zeros(50), np.full(50, 12.0)]).astype(np.float32)
    p, scale = percentile_scale(diff)
    assert p == 12.0
    assert np.isclose(scale, 255.0 / (12.0 * 1.2))


def test_percentile_scale_ignores_outliers_above_p98():
    diff = np.full(10_000, 4.0, dtype=np.float32)
    diff[::1000] = 250.0  # 10 of the 2000 samples
    p, _ = percentile_scale(diff)
    assert p == 4.0


def test_percentile_samples_span_the_whole_field():
    # non-zero values only in the second half of a field just under 2 * sample_size
    diff = np.concatenate([np.zeros(2000), np.full(1999, 10.0)]).astype(np.float32)
    p, scale = percentile_scale(diff)
    assert p == 10.0
    assert np.isclose(scale, 255.0 / (10.0 * 1.2))


def test_compression_diff_is_mean_of_channel_differences():
    a = np.zeros((1, 2, 4), dtype=np.uint8)
    b = np.zeros((1, 2, 3), dtype=np.uint8)
    a[0, 0, :3] = (30, 0, 0)
    b[0, 1] = (3, 6, 9)
    diff = compression_diff(a, b)
    assert np.allclose(diff, [[10.0, 6.0]])


def test_uniform_image_falls_back_to_fixed_scale():
    img = Image.new("RGB", (300, 200), (128, 128, 128))
    result = ela_analyze(img)

    assert result.p98 == 0.0
    assert result.used_fallback
    assert result.scale == 50.0
    assert np.isfinite(result.normalized).all()
    assert result.size == (300, 200)
    # zero error everywhere -> coldest colour
    assert (result.heatmap[..., 0] == 0).all()
    assert (result.heatmap[..., 2] == 255).all()
    assert (result.heatmap[..., 3] == 255).all()


def test_output_is_at_working_resolution():
    rng = np.random.default_rng(1)
    rgb = rng.integers(0, 256, size=(300, 900, 3), dtype=np.uint8)
    result = ela_analyze(rgb)
    assert result.size == (512, 171)
    decoded = Image.open(io.BytesIO(result.png))
    assert decoded.size == (512, 171)
    assert decoded.mode == "RGBA"


def test_ela_is_deterministic():
    rng = np.random.default_rng(2)
    rgb = rng.integers(0, 256, size=(64, 80, 3), dtype=np.uint8)
    first = ela_analyze(rgb)
    second = ela_analyze(rgb)
    assert first.png == second.png
    assert first.p98 == second.p98


def test_normalized_field_is_in_unit_range():
    rng = np.random.default_rng(3)
    rgb = rng.integers(0, 256, size=(64, 64, 3), dtype=np.uint8)
    result = ela_analyze(rgb)
    assert result.normalized.min() >= 0.0
    assert result.normalized.max() <= 1.0
    assert (result.diff >= 0).all()


def test_custom_config_changes_working_resolution():
    rgb = np.full((100, 200, 3), 90, dtype=np.uint8)
    result = ela_analyze(rgb, config=ForensicConfig(max_dim=50))
    assert result.size == (50, 25)


def test_saves_png_when_output_dir_given(tmp_path):
    rgb = np.full((32, 32, 3), 128, dtype=np.uint8)
    result = ela_analyze(rgb, output_dir=tmp_path, prefix="x")
    assert (tmp_path / "x_ela.png").read_bytes() == result.png
    assert result.to_dict()["saved_images"]["ela"].endswith("x_ela.png")


def test_pasted_region_shows_higher_error_level():
    result = ela_analyze(_tampered_fixture())
    assert result.size == (512, 512)

    # 1000 -> 512: rows/cols 600..650 map to ~307..333; stay inside the block
    pasted = result.normalized[310:331, 310:331].mean()
    untouched = result.normalized[105:126, 410:431].mean()
    assert pasted > untouched * 1.2
