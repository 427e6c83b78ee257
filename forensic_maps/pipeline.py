"""
ForensicPipeline: runs the forensic engines over one image and collects
their heatmaps.

Flow
----
  1. load_working     decode once, downscale to the working resolution
  2. to_gray_u8       shared luma buffer for Sobel / LNA / MFR
  3. engines          ela, mfr (essential), sobel, lna (secondary),
                      sequentially or in a thread pool
  4. ForensicReport   per-map results, timings, JSON + PNG export

Every engine reads the shared RGBA / grayscale buffers and writes only to
its own output arrays, so running them in parallel gives the same bytes as
running them one after the other.

Usage
-----
    from forensic_maps.pipeline import ForensicPipeline
    fp = ForensicPipeline(output_dir="outputs/forensic")
    report = fp.analyze("photo.jpg", parallel=True)
    report.data_urls()["ela"]   # "data:image/png;base64,..."
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple, Union

import numpy as np

from .codec import DEFAULT_CODEC, ImageCodec
from .config import DEFAULT_CONFIG, ForensicConfig
from .edges import sobel_analyze
from .ela import ela_analyze
from .mfr import mfr_analyze
from .noisemap import lna_analyze
from .utils import (
    ImageSource,
    ensure_dir,
    fetch_image_bytes,
    load_working,
    save_json,
    save_png,
    to_data_url,
    to_gray_u8,
)

logger = logging.getLogger(__name__)

ESSENTIAL_MAPS: Tuple[str, ...] = ("ela", "mfr")
SECONDARY_MAPS: Tuple[str, ...] = ("sobel", "lna")
ALL_MAPS: Tuple[str, ...] = ESSENTIAL_MAPS + SECONDARY_MAPS

# map name -> (engine, input buffer)
_ENGINES: Dict[str, Tuple[Callable[..., Any], str]] = {
    "ela": (ela_analyze, "rgba"),
    "mfr": (mfr_analyze, "gray"),
    "sobel": (sobel_analyze, "gray"),
    "lna": (lna_analyze, "gray"),
}


def resolve_maps(maps: Optional[Union[str, Iterable[str]]]) -> Tuple[str, ...]:
    """Normalise a map selection (``None``, ``"all"``, CSV string or list)."""
    if maps is None:
        return ALL_MAPS
    if isinstance(maps, str):
        if maps.strip().lower() == "all":
            return ALL_MAPS
        if maps.strip().lower() == "essential":
            return ESSENTIAL_MAPS
        maps = maps.split(",")

    names = []
    for m in maps:
        name = m.strip().lower()
        if not name:
            continue
        if name not in _ENGINES:
            raise ValueError(f"Unknown forensic map '{m}'. Expected one of: {', '.join(ALL_MAPS)}")
        if name not in names:
            names.append(name)
    if not names:
        raise ValueError("No forensic maps selected")
    return tuple(names)


# ─────────────────────────────────────────────────────────────────────────────
# ForensicReport
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class ForensicReport:
    """Heatmaps produced for a single image."""

    source: str
    native_size: Tuple[int, int]            # (width, height) of the decoded source
    working_size: Tuple[int, int]           # (width, height) shared by all maps
    results: Dict[str, Any] = field(default_factory=dict)       # map name -> engine result
    timing_ms: Dict[str, int] = field(default_factory=dict)
    saved_images: Dict[str, str] = field(default_factory=dict)

    def png(self, name: str) -> bytes:
        return self.results[name].png

    def data_urls(self) -> Dict[str, str]:
        """``data:image/png;base64,...`` per map, in run order."""
        return {name: to_data_url(res.png) for name, res in self.results.items()}

    def to_dict(self, include_images: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "source": self.source,
            "native_size": list(self.native_size),
            "working_size": list(self.working_size),
            "maps": {name: res.to_dict() for name, res in self.results.items()},
            "timing_ms": dict(self.timing_ms),
            "saved_images": dict(self.saved_images),
        }
        if include_images:
            out["images"] = self.data_urls()
        return out

    def save(self, output_dir: Union[str, Path], prefix: str = "") -> str:
        """Write one PNG per map plus ``forensic_report.json``; return the JSON path."""
        outp = ensure_dir(output_dir)
        for name, res in self.results.items():
            fname = f"{prefix}_{name}.png" if prefix else f"{name}.png"
            path = save_png(res.png, outp, fname)
            res.saved_images[name] = str(path)
            self.saved_images[name] = str(path)
        json_path = save_json(self.to_dict(), outp / "forensic_report.json")
        logger.info("Saved %d forensic maps to %s", len(self.results), outp)
        return json_path


# ─────────────────────────────────────────────────────────────────────────────
# ForensicPipeline
# ─────────────────────────────────────────────────────────────────────────────

class ForensicPipeline:
    """
    Decodes an image once and runs the selected forensic engines on it.

    Parameters
    ----------
    config : ForensicConfig, optional
        Engine constants and worker count (default: built-in defaults).
    codec : ImageCodec, optional
        Decode/encode collaborator shared by every engine.
    output_dir : str or Path, optional
        When set, every report is saved under ``output_dir / <image stem>``.
    """

    def __init__(
        self,
        config: Optional[ForensicConfig] = None,
        codec: Optional[ImageCodec] = None,
        output_dir: Optional[Union[str, Path]] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.codec = codec or DEFAULT_CODEC
        self.output_dir = Path(output_dir) if output_dir is not None else None

    def prepare(self, source: ImageSource) -> Tuple[np.ndarray, np.ndarray, Tuple[int, int]]:
        """Return ``(rgba, gray, native_size)`` at working resolution."""
        rgba, native = load_working(source, max_dim=self.config.max_dim, codec=self.codec)
        return rgba, to_gray_u8(rgba), native

    def analyze(
        self,
        source: ImageSource,
        maps: Optional[Union[str, Sequence[str]]] = None,
        *,
        parallel: bool = False,
        label: Optional[str] = None,
    ) -> ForensicReport:
        """
        Run the selected engines on *source*.

        Parameters
        ----------
        source : ImageSource
            Path, bytes, file object, PIL image, array or data URL.
        maps : str or sequence of str, optional
            Map names (``ela``, ``mfr``, ``sobel``, ``lna``), ``"essential"``,
            ``"all"`` or ``None`` (all).
        parallel : bool
            Run the engines in a thread pool of ``config.max_workers``.
        label : str, optional
            Source label stored in the report (defaults to the path name).

        Raises
        ------
        DecodeError, EncodeError
            Propagated unchanged from the loader / engines.
        ValueError
            For unknown map names.
        """
        names = resolve_maps(maps)
        t0 = time.time()
        rgba, gray, native = self.prepare(source)
        buffers = {"rgba": rgba, "gray": gray}
        h, w = gray.shape[:2]

        report = ForensicReport(
            source=label or _source_label(source),
            native_size=native,
            working_size=(int(w), int(h)),
        )
        report.timing_ms["decode"] = int((time.time() - t0) * 1000)

        def run(name: str) -> Tuple[str, Any, int]:
            engine, buf = _ENGINES[name]
            t = time.time()
            res = engine(buffers[buf], config=self.config, codec=self.codec)
            return name, res, int((time.time() - t) * 1000)

        if parallel and len(names) > 1:
            workers = min(self.config.max_workers, len(names))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(run, names))
        else:
            outcomes = [run(name) for name in names]

        for name, res, ms in outcomes:
            report.results[name] = res
            report.timing_ms[name] = ms
            logger.debug("%s: %s done in %d ms", report.source, name, ms)

        report.timing_ms["total"] = int((time.time() - t0) * 1000)

        if self.output_dir is not None:
            stem = Path(report.source).stem or "image"
            report.save(self.output_dir / stem)

        return report

    def analyze_essential(self, source: ImageSource, **kwargs: Any) -> ForensicReport:
        """ELA + MFR only."""
        return self.analyze(source, ESSENTIAL_MAPS, **kwargs)

    def analyze_url(
        self,
        url: str,
        maps: Optional[Union[str, Sequence[str]]] = None,
        **kwargs: Any,
    ) -> ForensicReport:
        """Fetch *url* and analyze it; the report is labelled with the URL's file name."""
        data = fetch_image_bytes(url, timeout=self.config.fetch_timeout)
        name = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1] or "image_from_url"
        kwargs.setdefault("label", name)
        return self.analyze(data, maps, **kwargs)


def _source_label(source: ImageSource) -> str:
    if isinstance(source, Path):
        return source.name
    if isinstance(source, str) and not source.startswith("data:"):
        return Path(source).name
    name = getattr(source, "name", None)
    if isinstance(name, str):
        return Path(name).name
    return "image"
