"""
Error Level Analysis (ELA).

Re-encodes the working image once as JPEG, decodes it again and measures the
per-pixel mean absolute RGB difference against the original.  Regions with
a different compression history than their surroundings (splices, local
edits, pasted content) tend to stand out in the resulting map.

Contrast is set per image with percentile scaling instead of a fixed
divisor:

* sample up to ``sample_size`` evenly-strided values of the difference
  field and sort them;
* take the value at ``percentile`` (p98 by default);
* ``scale = 255 / (p98 * contrast)`` when p98 > 0, otherwise the fixed
  ``fallback_scale`` (a uniform image has zero error everywhere).

Scaled values are clamped to [0, 255], divided by 255 and rendered through
the thermal colormap.

Usage
-----
    from forensic_maps.ela import ela_analyze
    result = ela_analyze(Path("photo.jpg"))
    result.png          # PNG-encoded RGBA heatmap
    result.p98, result.scale
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .codec import DEFAULT_CODEC, ImageCodec
from .colormap import apply_jet
from .config import DEFAULT_CONFIG, ForensicConfig
from .utils import ImageSource, as_rgba, save_png

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data class
# ---------------------------------------------------------------------------

@dataclass
class ELAResult:
    """ELA heatmap plus the fields it was derived from."""

    # Maps
    diff: np.ndarray              # ScalarField: mean |orig - recompressed| per pixel (float32)
    normalized: np.ndarray        # NormalizedField in [0, 1] (float32)
    heatmap: np.ndarray           # RGBA thermal heatmap (uint8)
    png: bytes                    # PNG-encoded heatmap

    # Scaling
    p98: float                    # percentile value of the sampled diff
    scale: float                  # multiplier applied before clamping
    used_fallback: bool           # True when p98 == 0

    # Statistics
    mean_diff: float
    max_diff: float
    quality: float

    saved_images: Dict[str, str] = field(default_factory=dict)

    @property
    def size(self) -> Tuple[int, int]:
        """Working ``(width, height)``."""
        return int(self.heatmap.shape[1]), int(self.heatmap.shape[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.size[0],
            "height": self.size[1],
            "quality": self.quality,
            "p98": round(self.p98, 4),
            "scale": round(self.scale, 4),
            "used_fallback": self.used_fallback,
            "mean_diff": round(self.mean_diff, 4),
            "max_diff": round(self.max_diff, 4),
            "saved_images": dict(self.saved_images),
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def compression_diff(original: np.ndarray, compressed: np.ndarray) -> np.ndarray:
    """``(|dR| + |dG| + |dB|) / 3`` per pixel, as float32 (H x W)."""
    o = original[..., :3].astype(np.int16)
    c = compressed[..., :3].astype(np.int16)
    return (np.abs(o - c).sum(axis=2) / 3.0).astype(np.float32)


def percentile_scale(
    diff: np.ndarray,
    *,
    percentile: float = 0.98,
    contrast: float = 1.2,
    sample_size: int = 2000,
    fallback_scale: float = 50.0,
) -> Tuple[float, float]:
    """
    Compute the display scale for a difference field.

    Returns
    -------
    (float, float)
        ``(percentile_value, scale)``.  ``scale`` is ``fallback_scale``
        when the percentile value is zero.
    """
    flat = diff.ravel()
    if flat.size == 0:
        return 0.0, float(fallback_scale)

    step = max(1, math.ceil(flat.size / sample_size))
    samples = np.sort(flat[::step])
    idx = min(samples.size - 1, int(math.floor(samples.size * percentile)))
    p = float(samples[idx])

    if p > 0:
        return p, 255.0 / (p * contrast)
    return p, float(fallback_scale)


# ---------------------------------------------------------------------------
# Main analysis function
# ---------------------------------------------------------------------------

def ela_analyze(
    source: ImageSource,
    *,
    config: Optional[ForensicConfig] = None,
    codec: Optional[ImageCodec] = None,
    output_dir: Optional[Path] = None,
    prefix: str = "",
) -> ELAResult:
    """Run Error Level Analysis on *source*.

    Parameters
    ----------
    source:
        HxWx4 uint8 working buffer, or anything ``load_working_rgba`` accepts.
    config:
        Quality, percentile, contrast and fallback constants.
    codec:
        JPEG/PNG collaborator (default: Pillow).
    output_dir:
        If provided, save the heatmap PNG to this directory.
    prefix:
        Filename prefix for saved images.

    Returns
    -------
    ELAResult
    """
    cfg = config or DEFAULT_CONFIG
    codec = codec or DEFAULT_CODEC

    original = as_rgba(source, max_dim=cfg.max_dim, codec=codec)
    h, w = original.shape[:2]

    # 1. JPEG round trip
    compressed = codec.jpeg_roundtrip(original[..., :3], cfg.ela_quality)

    # 2. Difference field
    diff = compression_diff(original, compressed)

    # 3. Percentile scaling
    p98, scale = percentile_scale(
        diff,
        percentile=cfg.ela_percentile,
        contrast=cfg.ela_contrast,
        sample_size=cfg.ela_sample_size,
        fallback_scale=cfg.ela_fallback_scale,
    )
    used_fallback = not p98 > 0
    logger.debug("ELA %dx%d: p98=%.4f scale=%.4f fallback=%s", w, h, p98, scale, used_fallback)

    # 4. Normalize + colormap
    normalized = np.clip(diff.astype(np.float64) * scale, 0.0, 255.0) / 255.0
    heatmap = np.empty((h, w, 4), dtype=np.uint8)
    heatmap[..., :3] = apply_jet(normalized)
    heatmap[..., 3] = 255

    png = codec.encode_png(heatmap)

    saved_images: Dict[str, str] = {}
    if output_dir is not None:
        name = f"{prefix}_ela.png" if prefix else "ela.png"
        saved_images["ela"] = str(save_png(png, output_dir, name))

    return ELAResult(
        diff=diff,
        normalized=normalized.astype(np.float32),
        heatmap=heatmap,
        png=png,
        p98=p98,
        scale=float(scale),
        used_fallback=used_fallback,
        mean_diff=float(diff.mean()),
        max_diff=float(diff.max()),
        quality=float(cfg.ela_quality),
        saved_images=saved_images,
    )
