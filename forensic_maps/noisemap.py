"""
Local Noise Analysis (LNA).

Natural sensor noise has a roughly constant local variance across an
authentic photograph; smoothed, inpainted or pasted regions usually show an
abrupt change.  The grayscale working buffer is split into non-overlapping
``block_size`` x ``block_size`` blocks (partial blocks on the right/bottom
edge are truncated to the image, not padded).  Per block:

    variance  = E[x^2] - mean^2
    intensity = min(255, sqrt(max(0, variance)) * gain)

The intensity is written to every pixel of the block: green at full
strength, red and blue at ``tint`` (20 %), alpha 255.

Usage
-----
    from forensic_maps.noisemap import lna_analyze
    result = lna_analyze(gray)
    result.block_intensity.shape   # (block rows, block cols)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .codec import DEFAULT_CODEC, ImageCodec
from .config import DEFAULT_CONFIG, ForensicConfig
from .utils import ImageSource, as_gray, save_png

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data class
# ---------------------------------------------------------------------------

@dataclass
class LNAResult:
    """Block-variance noise heatmap."""

    # Block-level data
    block_variance: np.ndarray    # variance per block, clamped at 0 (float64)
    block_intensity: np.ndarray   # min(255, sqrt(var) * gain) per block (float64)

    # Maps
    intensity: np.ndarray         # ScalarField: block intensity expanded to pixels (float32)
    heatmap: np.ndarray           # RGBA green-tinted heatmap (uint8)
    png: bytes

    # Statistics
    block_size: int
    mean_intensity: float
    max_intensity: float

    saved_images: Dict[str, str] = field(default_factory=dict)

    @property
    def size(self) -> Tuple[int, int]:
        return int(self.heatmap.shape[1]), int(self.heatmap.shape[0])

    @property
    def grid(self) -> Tuple[int, int]:
        """``(rows, cols)`` of the block grid."""
        return int(self.block_intensity.shape[0]), int(self.block_intensity.shape[1])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.size[0],
            "height": self.size[1],
            "block_size": self.block_size,
            "grid": list(self.grid),
            "mean_intensity": round(self.mean_intensity, 4),
            "max_intensity": round(self.max_intensity, 4),
            "saved_images": dict(self.saved_images),
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def block_variance(gray: np.ndarray, block_size: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Per-block variance over a truncated block grid.

    Returns
    -------
    (variance, row_sizes, col_sizes)
        ``variance`` has shape ``(rows, cols)``; the size arrays give the
        pixel height of each block row and width of each block column.
    """
    h, w = gray.shape[:2]
    row_starts = np.arange(0, h, block_size)
    col_starts = np.arange(0, w, block_size)
    row_sizes = np.diff(np.append(row_starts, h))
    col_sizes = np.diff(np.append(col_starts, w))

    g = gray.astype(np.float64)
    sums = np.add.reduceat(np.add.reduceat(g, row_starts, axis=0), col_starts, axis=1)
    sq_sums = np.add.reduceat(np.add.reduceat(g * g, row_starts, axis=0), col_starts, axis=1)
    counts = np.outer(row_sizes, col_sizes).astype(np.float64)

    mean = sums / counts
    variance = np.maximum(0.0, sq_sums / counts - mean * mean)
    return variance, row_sizes, col_sizes


# ---------------------------------------------------------------------------
# Main analysis function
# ---------------------------------------------------------------------------

def lna_analyze(
    source: ImageSource,
    *,
    config: Optional[ForensicConfig] = None,
    codec: Optional[ImageCodec] = None,
    output_dir: Optional[Path] = None,
    prefix: str = "",
) -> LNAResult:
    """Perform block-wise local noise analysis.

    Parameters
    ----------
    source:
        Single-channel (H, W) uint8 grayscale buffer, or any image source.
    config:
        Supplies ``lna_block_size``, ``lna_gain`` and ``lna_tint``.
    output_dir:
        If provided, save the heatmap PNG to this directory.
    prefix:
        Filename prefix for saved images.

    Returns
    -------
    LNAResult
    """
    cfg = config or DEFAULT_CONFIG
    codec = codec or DEFAULT_CODEC

    gray = as_gray(source, max_dim=cfg.max_dim, codec=codec)
    h, w = gray.shape[:2]
    bs = int(cfg.lna_block_size)

    variance, row_sizes, col_sizes = block_variance(gray, bs)
    block_intensity = np.minimum(255.0, np.sqrt(variance) * cfg.lna_gain)

    # Expand block values back to pixel resolution
    intensity = np.repeat(np.repeat(block_intensity, row_sizes, axis=0), col_sizes, axis=1)

    green = np.floor(intensity).astype(np.uint8)
    tinted = np.floor(intensity * cfg.lna_tint).astype(np.uint8)
    heatmap = np.empty((h, w, 4), dtype=np.uint8)
    heatmap[..., 0] = tinted
    heatmap[..., 1] = green
    heatmap[..., 2] = tinted
    heatmap[..., 3] = 255

    png = codec.encode_png(heatmap)
    logger.debug("LNA %dx%d: %dx%d blocks of %d px", w, h, variance.shape[0], variance.shape[1], bs)

    saved_images: Dict[str, str] = {}
    if output_dir is not None:
        name = f"{prefix}_lna.png" if prefix else "lna.png"
        saved_images["lna"] = str(save_png(png, output_dir, name))

    return LNAResult(
        block_variance=variance,
        block_intensity=block_intensity,
        intensity=intensity.astype(np.float32),
        heatmap=heatmap,
        png=png,
        block_size=bs,
        mean_intensity=float(block_intensity.mean()),
        max_intensity=float(block_intensity.max()),
        saved_images=saved_images,
    )
