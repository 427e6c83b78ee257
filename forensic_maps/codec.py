"""
Image codec collaborator.

The engines never touch a decoder or encoder directly; they receive an
``ImageCodec`` and call ``decode`` / ``encode_jpeg`` / ``encode_png`` on it.
``PillowCodec`` is the default implementation.  Each call works on its own
in-memory buffer, so a single codec instance can be shared between engines
running in parallel.
"""

from __future__ import annotations

import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, EncodeError


class ImageCodec:
    """Decode/encode capability passed into the forensic engines."""

    def decode(self, data: bytes) -> Image.Image:
        raise NotImplementedError

    def encode_jpeg(self, rgb: np.ndarray, quality: float) -> bytes:
        raise NotImplementedError

    def encode_png(self, rgba: np.ndarray) -> bytes:
        raise NotImplementedError

    def jpeg_roundtrip(self, rgb: np.ndarray, quality: float) -> np.ndarray:
        """Re-encode *rgb* as JPEG and decode it back (HxWx3 uint8)."""
        jpeg = self.encode_jpeg(rgb, quality)
        img = self.decode(jpeg)
        return np.array(img.convert("RGB"), dtype=np.uint8)


def jpeg_quality_percent(quality: float) -> int:
    """Map a fractional quality in (0, 1] to Pillow's 1..100 scale."""
    if not 0.0 < quality <= 1.0:
        raise ValueError(f"JPEG quality must be in (0, 1], got {quality}")
    return max(1, min(100, int(round(quality * 100))))


class PillowCodec(ImageCodec):
    """``ImageCodec`` backed by Pillow."""

    def decode(self, data: bytes) -> Image.Image:
        if not data:
            raise DecodeError("Empty image data")
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError, ValueError, EOFError, SyntaxError) as exc:
            raise DecodeError(f"Cannot decode image: {exc}") from exc
        if img.width <= 0 or img.height <= 0:
            raise DecodeError(f"Decoded image has no pixels ({img.width}x{img.height})")
        return img

    def encode_jpeg(self, rgb: np.ndarray, quality: float) -> bytes:
        q = jpeg_quality_percent(quality)
        try:
            img = Image.fromarray(np.ascontiguousarray(rgb[..., :3], dtype=np.uint8))
            buf = io.BytesIO()
            img.save(buf, format="JPEG", quality=q)
        except (OSError, ValueError, TypeError) as exc:
            raise EncodeError(f"JPEG encoding failed: {exc}") from exc
        return buf.getvalue()

    def encode_png(self, rgba: np.ndarray) -> bytes:
        try:
            img = Image.fromarray(np.ascontiguousarray(rgba, dtype=np.uint8))
            buf = io.BytesIO()
            img.save(buf, format="PNG")
        except (OSError, ValueError, TypeError) as exc:
            raise EncodeError(f"PNG encoding failed: {exc}") from exc
        return buf.getvalue()


DEFAULT_CODEC = PillowCodec()
