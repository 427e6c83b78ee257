"""
Median Filter Residual (MFR).

Two passes over the grayscale working buffer:

1. Residual: for each interior pixel (1-pixel border left at 0),
   ``residual = |center - median(3x3)| * gain``.
2. Density: for each pixel with a full ``radius`` neighbourhood
   (5x5 for radius 2), ``density = min(255, mean(residual window))``;
   pixels without a full window stay 0.

Raw residuals are sparse and speckled; the box average turns isolated
high-residual pixels into a density map of suspicious regions.  The density
is written to R, G and B.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from .codec import DEFAULT_CODEC, ImageCodec
from .config import DEFAULT_CONFIG, ForensicConfig
from .utils import ImageSource, as_gray, gray_to_rgba, save_png

logger = logging.getLogger(__name__)


@dataclass
class MFRResult:
    """Median-filter residual density heatmap."""

    residual: np.ndarray    # ScalarField: |center - median| * gain, border 0 (float32)
    density: np.ndarray     # ScalarField: box-averaged residual in [0, 255] (float32)
    heatmap: np.ndarray     # RGBA grayscale heatmap (uint8)
    png: bytes

    radius: int
    mean_residual: float
    max_residual: float
    mean_density: float
    max_density: float

    saved_images: Dict[str, str] = field(default_factory=dict)

    @property
    def size(self) -> Tuple[int, int]:
        return int(self.heatmap.shape[1]), int(self.heatmap.shape[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.size[0],
            "height": self.size[1],
            "radius": self.radius,
            "mean_residual": round(self.mean_residual, 4),
            "max_residual": round(self.max_residual, 4),
            "mean_density": round(self.mean_density, 4),
            "max_density": round(self.max_density, 4),
            "saved_images": dict(self.saved_images),
        }


def median_residual(gray: np.ndarray, gain: float = 10.0) -> np.ndarray:
    """``|center - median3x3| * gain`` for interior pixels (float32, border 0)."""
    h, w = gray.shape[:2]
    residual = np.zeros((h, w), dtype=np.float32)
    if h < 3 or w < 3:
        return residual

    med = cv2.medianBlur(np.ascontiguousarray(gray, dtype=np.uint8), 3)
    diff = np.abs(gray[1:-1, 1:-1].astype(np.int16) - med[1:-1, 1:-1].astype(np.int16))
    residual[1:-1, 1:-1] = diff.astype(np.float32) * gain
    return residual


def box_mean(values: np.ndarray, radius: int) -> np.ndarray:
    """Mean over a (2r+1)^2 window where the window fits; 0 elsewhere.

    Uses a float64 summed-area table so integer-valued inputs average exactly.
    """
    h, w = values.shape[:2]
    k = 2 * radius + 1
    out = np.zeros((h, w), dtype=np.float64)
    if h < k or w < k:
        return out

    sat = np.zeros((h + 1, w + 1), dtype=np.float64)
    sat[1:, 1:] = np.cumsum(np.cumsum(values.astype(np.float64), axis=0), axis=1)
    window = sat[k:, k:] - sat[:-k, k:] - sat[k:, :-k] + sat[:-k, :-k]
    out[radius:h - radius, radius:w - radius] = window / float(k * k)
    return out


def mfr_analyze(
    source: ImageSource,
    *,
    config: Optional[ForensicConfig] = None,
    codec: Optional[ImageCodec] = None,
    output_dir: Optional[Path] = None,
    prefix: str = "",
) -> MFRResult:
    """Compute the MFR density heatmap of *source* (grayscale or any image source)."""
    cfg = config or DEFAULT_CONFIG
    codec = codec or DEFAULT_CODEC

    gray = as_gray(source, max_dim=cfg.max_dim, codec=codec)
    radius = int(cfg.mfr_radius)

    residual = median_residual(gray, gain=cfg.mfr_gain)
    # clip also absorbs float rounding below 0
    density = np.clip(box_mean(residual, radius), 0.0, 255.0)

    heatmap = gray_to_rgba(np.floor(density).astype(np.uint8))
    png = codec.encode_png(heatmap)

    logger.debug("MFR %dx%d: max residual=%.1f max density=%.1f",
                 gray.shape[1], gray.shape[0], float(residual.max()), float(density.max()))

    saved_images: Dict[str, str] = {}
    if output_dir is not None:
        name = f"{prefix}_mfr.png" if prefix else "mfr.png"
        saved_images["mfr"] = str(save_png(png, output_dir, name))

    return MFRResult(
        residual=residual,
        density=density.astype(np.float32),
        heatmap=heatmap,
        png=png,
        radius=radius,
        mean_residual=float(residual.mean()),
        max_residual=float(residual.max()),
        mean_density=float(density.mean()),
        max_density=float(density.max()),
        saved_images=saved_images,
    )
