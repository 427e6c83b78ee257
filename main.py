"""CLI for the forensic heatmap toolkit."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from tqdm import tqdm

from forensic_maps.config import load_config
from forensic_maps.errors import DecodeError
from forensic_maps.pipeline import ALL_MAPS, ForensicPipeline
from forensic_maps.utils import ensure_dir, save_json

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}

logger = logging.getLogger("forensic_maps.cli")


def _build_pipeline(args: argparse.Namespace) -> ForensicPipeline:
    return ForensicPipeline(config=load_config(args.config))


# -------------------- CLI commands --------------------

def cmd_analyze(args: argparse.Namespace) -> str:
    pipeline = _build_pipeline(args)
    if args.url:
        report = pipeline.analyze_url(args.url, args.maps, parallel=args.parallel)
    else:
        report = pipeline.analyze(Path(args.image), args.maps, parallel=args.parallel)

    json_path = report.save(args.out, prefix=args.prefix)
    print(json_path)
    return json_path


def cmd_batch(args: argparse.Namespace) -> str:
    pipeline = _build_pipeline(args)
    images_dir = Path(args.images)
    if not images_dir.is_dir():
        raise FileNotFoundError(f"Image directory not found: {images_dir}")

    images = sorted(p for p in images_dir.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS)
    outp = ensure_dir(args.out)

    processed: list[dict[str, Any]] = []
    failed: list[dict[str, str]] = []
    for image in tqdm(images, desc="forensic maps", unit="img", ncols=80):
        try:
            report = pipeline.analyze(image, args.maps, parallel=args.parallel)
        except DecodeError as exc:
            logger.warning("Skipping %s: %s", image.name, exc)
            failed.append({"image": str(image), "error": str(exc)})
            continue
        json_path = report.save(outp / image.stem, prefix=args.prefix)
        processed.append({"image": str(image), "report": json_path})

    summary = {
        "images_dir": str(images_dir),
        "total": len(images),
        "processed": processed,
        "failed": failed,
    }
    summary_path = save_json(summary, outp / "batch_summary.json")
    print(json.dumps({"processed": len(processed), "failed": len(failed), "summary": summary_path}))
    return summary_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forensic heatmaps: ELA, MFR, Sobel, LNA")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--out", required=True, help="Output directory")
        p.add_argument("--maps", default="all",
                       help=f"Comma-separated maps ({','.join(ALL_MAPS)}), 'essential' or 'all'")
        p.add_argument("--config", default=None, help="Optional YAML config (see configs/forensics.yaml)")
        p.add_argument("--parallel", action="store_true", help="Run engines in a thread pool")
        p.add_argument("--prefix", default="", help="Filename prefix for saved PNGs")

    analyze_p = sub.add_parser("analyze", help="Generate heatmaps for a single image")
    src = analyze_p.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", help="Path to a JPEG/PNG/WebP image")
    src.add_argument("--url", help="Image URL to fetch")
    add_common(analyze_p)

    batch_p = sub.add_parser("batch", help="Generate heatmaps for every image in a directory")
    batch_p.add_argument("--images", required=True, help="Directory of images")
    add_common(batch_p)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(name)s] %(levelname)s %(message)s",
    )

    commands = {
        "analyze": cmd_analyze,
        "batch": cmd_batch,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
