"""Tests for the command line entry point."""

import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

import main as cli


def _make_img(path: Path, w: int = 60, h: int = 40) -> Path:
    arr = np.random.default_rng(11).integers(0, 256, size=(h, w, 3), dtype=np.uint8)
    Image.fromarray(arr).save(path)
    return path


def test_analyze_command(tmp_path, capsys):
    img = _make_img(tmp_path / "a.png")
    out = tmp_path / "out"
    cli.main(["analyze", "--image", str(img), "--out", str(out), "--maps", "ela,sobel"])

    assert (out / "ela.png").exists()
    assert (out / "sobel.png").exists()
    assert not (out / "lna.png").exists()
    printed = capsys.readouterr().out.strip()
    assert printed.endswith("forensic_report.json")


def test_batch_command_skips_undecodable_images(tmp_path, capsys):
    images = tmp_path / "images"
    images.mkdir()
    _make_img(images / "good.png")
    (images / "broken.jpg").write_bytes(b"garbage")
    (images / "notes.txt").write_text("ignored", encoding="utf-8")
    out = tmp_path / "out"

    cli.main(["batch", "--images", str(images), "--out", str(out), "--maps", "essential", "--parallel"])

    summary = json.loads((out / "batch_summary.json").read_text(encoding="utf-8"))
    assert summary["total"] == 2
    assert len(summary["processed"]) == 1
    assert summary["failed"][0]["image"].endswith("broken.jpg")
    assert (out / "good" / "ela.png").exists()
    assert (out / "good" / "mfr.png").exists()
    assert '"failed": 1' in capsys.readouterr().out


def test_batch_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        cli.main(["batch", "--images", str(tmp_path / "nope"), "--out", str(tmp_path / "out")])


def test_image_and_url_are_mutually_exclusive(tmp_path):
    with pytest.raises(SystemExit):
        cli.main(["analyze", "--image", "a.png", "--url", "http://x/a.png", "--out", str(tmp_path)])
