"""
Shared utilities for the forensic map toolkit.

Provides:
- Working-resolution computation and the pixel buffer source
  (``load_working_rgba``) that every engine reads from
- URL fetching for remote sources (``fetch_image_bytes``)
- Grayscale reduction (BT.601 luma, truncated)
- Output helpers (base64 / data URL, PNG + JSON saving)
"""

from __future__ import annotations

import base64
import binascii
import json
import math
from dataclasses import asdict
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional, Tuple, Union

import numpy as np
import requests
from PIL import Image

from .codec import DEFAULT_CODEC, ImageCodec
from .errors import DecodeError, FetchError


ImageSource = Union[bytes, bytearray, memoryview, str, Path, BinaryIO, Image.Image, np.ndarray]

PROCESSING_MAX_DIM = 512


# ── Working resolution ───────────────────────────────────────────────

def working_resolution(width: int, height: int, max_dim: int = PROCESSING_MAX_DIM) -> Tuple[int, int]:
    """
    Cap ``(width, height)`` so the larger side equals *max_dim*.

    The aspect ratio is preserved and each side is rounded half-up to the
    nearest pixel (never below 1).  Sizes already within the cap are
    returned unchanged.

    Parameters
    ----------
    width, height : int
        Native image dimensions.
    max_dim : int
        Working-resolution cap (default 512).

    Returns
    -------
    (int, int)
        Working ``(width, height)``.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if max_dim <= 0:
        raise ValueError(f"max_dim must be positive, got {max_dim}")

    if width <= max_dim and height <= max_dim:
        return width, height

    ratio = min(max_dim / width, max_dim / height)
    w = max(1, int(math.floor(width * ratio + 0.5)))
    h = max(1, int(math.floor(height * ratio + 0.5)))
    return min(w, max_dim), min(h, max_dim)


def check_rgba(rgba: np.ndarray) -> np.ndarray:
    """Validate an HxWx4 uint8 pixel buffer and return it unchanged."""
    if not isinstance(rgba, np.ndarray) or rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError(f"Expected an HxWx4 RGBA array, got shape {getattr(rgba, 'shape', None)}")
    if rgba.dtype != np.uint8:
        raise ValueError(f"Expected uint8 samples, got {rgba.dtype}")
    if rgba.shape[0] <= 0 or rgba.shape[1] <= 0:
        raise ValueError("RGBA buffer must have at least one pixel")
    return rgba


# ── Pixel buffer source ──────────────────────────────────────────────

def _decode_base64(text: str) -> bytes:
    payload = text.split(",", 1)[1] if text.startswith("data:") else text
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Invalid base64 image payload: {exc}") from exc


def _array_to_image(arr: np.ndarray) -> Image.Image:
    if arr.dtype != np.uint8:
        raise DecodeError(f"Pixel arrays must be uint8, got {arr.dtype}")
    if arr.ndim == 2:
        return Image.fromarray(arr).convert("RGBA")
    if arr.ndim == 3 and arr.shape[2] in (3, 4):
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise DecodeError("Pixel array has no pixels")
        return Image.fromarray(np.ascontiguousarray(arr)).convert("RGBA")
    raise DecodeError(f"Unsupported pixel array shape {arr.shape}")


def open_image(source: ImageSource, codec: Optional[ImageCodec] = None) -> Image.Image:
    """
    Decode *source* into a PIL image at its native resolution.

    Accepted sources: raw bytes, a filesystem path, a binary file-like
    object, a base64 string or ``data:`` URL, a PIL image, or a uint8
    array (HxW, HxWx3, HxWx4).

    Raises
    ------
    DecodeError
        When the data cannot be interpreted as a raster image.
    FileNotFoundError
        When a path source does not exist.
    """
    codec = codec or DEFAULT_CODEC

    if isinstance(source, Image.Image):
        return source
    if isinstance(source, np.ndarray):
        return _array_to_image(source)
    if isinstance(source, (bytes, bytearray, memoryview)):
        return codec.decode(bytes(source))
    if isinstance(source, str) and source.startswith("data:"):
        return codec.decode(_decode_base64(source))
    if isinstance(source, (str, Path)):
        return codec.decode(Path(source).read_bytes())
    if hasattr(source, "read"):
        return codec.decode(source.read())
    raise TypeError(f"Unsupported image source type: {type(source).__name__}")


def _to_rgba(img: Image.Image) -> Image.Image:
    if img.mode == "RGBA":
        return img
    try:
        return img.convert("RGBA")
    except (ValueError, OSError) as exc:
        raise DecodeError(f"Cannot convert image mode '{img.mode}' to RGBA: {exc}") from exc


def load_working_rgba(
    source: ImageSource,
    max_dim: int = PROCESSING_MAX_DIM,
    codec: Optional[ImageCodec] = None,
) -> np.ndarray:
    """
    Decode *source* and return an RGBA buffer at working resolution.

    The source is never mutated.  Images above the cap are downscaled with
    an anti-aliased bilinear resampler; smaller images pass through.

    Returns
    -------
    np.ndarray
        HxWx4 uint8 array, ``max(H, W) <= max_dim``.
    """
    return load_working(source, max_dim=max_dim, codec=codec)[0]


def load_working(
    source: ImageSource,
    max_dim: int = PROCESSING_MAX_DIM,
    codec: Optional[ImageCodec] = None,
) -> Tuple[np.ndarray, Tuple[int, int]]:
    """Like ``load_working_rgba`` but also return the native ``(width, height)``."""
    img = _to_rgba(open_image(source, codec=codec))
    native = (int(img.width), int(img.height))
    w, h = working_resolution(img.width, img.height, max_dim)
    if (w, h) != img.size:
        img = img.resize((w, h), Image.Resampling.BILINEAR)
    return np.array(img, dtype=np.uint8), native


def fetch_image_bytes(url: str, timeout: float = 30.0) -> bytes:
    """
    Download an image from *url*.

    Raises
    ------
    FetchError
        On connection failures, timeouts, HTTP errors or an empty body.
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.Timeout as exc:
        raise FetchError(f"Timed out fetching {url} (timeout={timeout}s)") from exc
    except requests.HTTPError as exc:
        raise FetchError(f"Server returned an HTTP error for {url}: {exc}") from exc
    except requests.RequestException as exc:
        raise FetchError(f"Failed to fetch image from {url}: {exc}") from exc

    if not response.content:
        raise FetchError(f"Empty response body from {url}")
    return response.content


def load_url_rgba(
    url: str,
    max_dim: int = PROCESSING_MAX_DIM,
    codec: Optional[ImageCodec] = None,
    timeout: float = 30.0,
) -> np.ndarray:
    """Fetch *url* and return its working-resolution RGBA buffer."""
    return load_working_rgba(fetch_image_bytes(url, timeout=timeout), max_dim=max_dim, codec=codec)


# ── Grayscale reducer ────────────────────────────────────────────────

def to_gray_u8(rgba: np.ndarray) -> np.ndarray:
    """
    Reduce an RGB(A) buffer to 8-bit luma.

    ``luma = 0.299 R + 0.587 G + 0.114 B`` (ITU-R BT.601), truncated.
    Alpha is ignored.
    """
    rgb = rgba[..., :3].astype(np.float64)
    luma = 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]
    return np.floor(luma).clip(0, 255).astype(np.uint8)


def as_gray(source: Union[np.ndarray, ImageSource], max_dim: int = PROCESSING_MAX_DIM,
            codec: Optional[ImageCodec] = None) -> np.ndarray:
    """Accept a 2-D grayscale buffer (downscaled above *max_dim*), otherwise load and reduce *source*."""
    if isinstance(source, np.ndarray) and source.ndim == 2:
        if source.dtype != np.uint8:
            raise ValueError(f"Grayscale buffers must be uint8, got {source.dtype}")
        if source.size == 0:
            raise ValueError("Grayscale buffer must have at least one pixel")
        if max(source.shape) > max_dim:
            w, h = working_resolution(source.shape[1], source.shape[0], max_dim)
            img = Image.fromarray(np.ascontiguousarray(source)).resize((w, h), Image.Resampling.BILINEAR)
            return np.array(img, dtype=np.uint8)
        return source
    return to_gray_u8(as_rgba(source, max_dim=max_dim, codec=codec))


def as_rgba(source: Union[np.ndarray, ImageSource], max_dim: int = PROCESSING_MAX_DIM,
            codec: Optional[ImageCodec] = None) -> np.ndarray:
    """Accept a prepared HxWx4 buffer as-is, otherwise load *source*."""
    if isinstance(source, np.ndarray) and source.ndim == 3 and source.shape[2] == 4 \
            and source.dtype == np.uint8 and max(source.shape[:2]) <= max_dim:
        return check_rgba(source)
    return load_working_rgba(source, max_dim=max_dim, codec=codec)


# ── Output helpers ───────────────────────────────────────────────────

def gray_to_rgba(values: np.ndarray) -> np.ndarray:
    """Replicate a HxW uint8 map into R, G and B of an opaque RGBA raster."""
    h, w = values.shape[:2]
    out = np.empty((h, w, 4), dtype=np.uint8)
    out[..., 0] = values
    out[..., 1] = values
    out[..., 2] = values
    out[..., 3] = 255
    return out


def to_base64(png: bytes) -> str:
    return base64.b64encode(png).decode("ascii")


def to_data_url(png: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{to_base64(png)}"


def ensure_dir(path: Union[str, Path]) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def save_png(png: bytes, output_dir: Union[str, Path], name: str) -> Path:
    """Write already-encoded PNG bytes to ``output_dir / name``."""
    path = ensure_dir(output_dir) / name
    path.write_bytes(png)
    return path


def json_sanitize(obj: Any) -> Any:
    """Convert numpy types + Path + dataclasses to JSON-safe Python types."""
    if obj is None:
        return None
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (bytes, bytearray)):
        return to_base64(bytes(obj))
    if hasattr(obj, "__dataclass_fields__"):
        return {k: json_sanitize(v) for k, v in asdict(obj).items()}
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return json_sanitize(float(obj))
    if isinstance(obj, np.ndarray):
        return json_sanitize(obj.tolist())
    if isinstance(obj, (list, tuple)):
        return [json_sanitize(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): json_sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (int, float, str, bool)):
        # normalize NaN/inf
        if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
            return None
        return obj
    return str(obj)


def save_json(data: Dict[str, Any], out_path: Union[str, Path]) -> str:
    out_path = str(out_path)
    safe = json_sanitize(data)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(safe, f, ensure_ascii=False, indent=2)
    return out_path
