"""
Sobel edge map.

Applies the 3x3 Sobel operator to the grayscale working buffer:

    Gx = -p(-1,-1) + p(-1,1) - 2p(0,-1) + 2p(0,1) - p(1,-1) + p(1,1)
    Gy = -p(-1,-1) - 2p(-1,0) - p(-1,1) + p(1,-1) + 2p(1,0) + p(1,1)
    magnitude = min(255, sqrt(Gx^2 + Gy^2))

Only interior pixels are processed; the 1-pixel border stays black.  The
magnitude is written to R, G and B (grayscale heatmap, no colormap).
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
class SobelResult:
    """Sobel gradient-magnitude heatmap."""

    magnitude: np.ndarray   # ScalarField, clamped to [0, 255], border 0 (float32)
    heatmap: np.ndarray     # RGBA grayscale heatmap (uint8)
    png: bytes

    mean_magnitude: float
    max_magnitude: float

    saved_images: Dict[str, str] = field(default_factory=dict)

    @property
    def size(self) -> Tuple[int, int]:
        return int(self.heatmap.shape[1]), int(self.heatmap.shape[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.size[0],
            "height": self.size[1],
            "mean_magnitude": round(self.mean_magnitude, 4),
            "max_magnitude": round(self.max_magnitude, 4),
            "saved_images": dict(self.saved_images),
        }


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """Clamped gradient magnitude with a zero 1-pixel border (float32)."""
    h, w = gray.shape[:2]
    mag = np.zeros((h, w), dtype=np.float32)
    if h < 3 or w < 3:
        return mag

    gray_f = gray.astype(np.float32)
    gx = cv2.Sobel(gray_f, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray_f, cv2.CV_32F, 0, 1, ksize=3)
    inner = np.sqrt(gx[1:-1, 1:-1] ** 2 + gy[1:-1, 1:-1] ** 2)
    mag[1:-1, 1:-1] = np.minimum(255.0, inner)
    return mag


def sobel_analyze(
    source: ImageSource,
    *,
    config: Optional[ForensicConfig] = None,
    codec: Optional[ImageCodec] = None,
    output_dir: Optional[Path] = None,
    prefix: str = "",
) -> SobelResult:
    """Compute the Sobel edge heatmap of *source* (grayscale or any image source)."""
    cfg = config or DEFAULT_CONFIG
    codec = codec or DEFAULT_CODEC

    gray = as_gray(source, max_dim=cfg.max_dim, codec=codec)
    mag = sobel_magnitude(gray)
    heatmap = gray_to_rgba(mag.astype(np.uint8))
    png = codec.encode_png(heatmap)

    logger.debug("Sobel %dx%d: max=%.1f", gray.shape[1], gray.shape[0], float(mag.max()))

    saved_images: Dict[str, str] = {}
    if output_dir is not None:
        name = f"{prefix}_sobel.png" if prefix else "sobel.png"
        saved_images["sobel"] = str(save_png(png, output_dir, name))

    return SobelResult(
        magnitude=mag,
        heatmap=heatmap,
        png=png,
        mean_magnitude=float(mag.mean()),
        max_magnitude=float(mag.max()),
        saved_images=saved_images,
    )
