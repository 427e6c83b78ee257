"""
Thermal ("jet"-style) colormap.

Four linear segments, blue -> cyan -> yellow -> red:

    v < 0.25          R = 0                G = 4v * 255          B = 255
    0.25 <= v < 0.5   R = 0                G = 255               B = 255 (1 - 4(v - 0.25))
    0.5  <= v < 0.75  R = 4(v - 0.5) 255   G = 255               B = 0
    v >= 0.75         R = 255              G = 255 (1 - 4(v - 0.75))  B = 0

Channel values are floored to integers.  ``jet_color`` maps a single value,
``apply_jet`` maps a whole normalized field with identical results.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np


def jet_color(v: float) -> Tuple[int, int, int]:
    """Map ``v`` in [0, 1] to an ``(r, g, b)`` triple."""
    v = min(1.0, max(0.0, float(v)))
    if v < 0.25:
        r, g, b = 0.0, 4.0 * v * 255.0, 255.0
    elif v < 0.5:
        r, g, b = 0.0, 255.0, 255.0 * (1.0 - 4.0 * (v - 0.25))
    elif v < 0.75:
        r, g, b = 4.0 * (v - 0.5) * 255.0, 255.0, 0.0
    else:
        r, g, b = 255.0, 255.0 * (1.0 - 4.0 * (v - 0.75)), 0.0
    return int(np.floor(r)), int(np.floor(g)), int(np.floor(b))


def apply_jet(field01: np.ndarray) -> np.ndarray:
    """
    Vectorised ``jet_color`` over a 2-D field.

    Parameters
    ----------
    field01 : np.ndarray
        HxW float array; values are clamped to [0, 1].

    Returns
    -------
    np.ndarray
        HxWx3 uint8 RGB array.
    """
    v = np.clip(field01.astype(np.float64), 0.0, 1.0)
    r = np.zeros_like(v)
    g = np.zeros_like(v)
    b = np.zeros_like(v)

    s0 = v < 0.25
    s1 = (v >= 0.25) & (v < 0.5)
    s2 = (v >= 0.5) & (v < 0.75)
    s3 = v >= 0.75

    g[s0] = 4.0 * v[s0] * 255.0
    b[s0] = 255.0

    g[s1] = 255.0
    b[s1] = 255.0 * (1.0 - 4.0 * (v[s1] - 0.25))

    r[s2] = 4.0 * (v[s2] - 0.5) * 255.0
    g[s2] = 255.0

    r[s3] = 255.0
    g[s3] = 255.0 * (1.0 - 4.0 * (v[s3] - 0.75))

    rgb = np.stack([r, g, b], axis=-1)
    return np.floor(rgb).astype(np.uint8)
