"""Tests for ForensicPipeline and ForensicReport."""

import io
import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from forensic_maps import pipeline as pipeline_mod
from forensic_maps.codec import PillowCodec
from forensic_maps.errors import DecodeError
from forensic_maps.pipeline import ALL_MAPS, ForensicPipeline, resolve_maps


def _make_img(path: Path, w: int = 700, h: int = 350, seed: int = 0) -> Path:
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, size=(h, w, 3), dtype=np.uint8)
    Image.fromarray(arr).save(path, format="JPEG", quality=85)
    return path


def test_all_maps_share_working_resolution(tmp_path):
    img = _make_img(tmp_path / "photo.jpg")
    report = ForensicPipeline().analyze(img)

    assert tuple(report.results) == ALL_MAPS
    assert report.native_size == (700, 350)
    assert report.working_size == (512, 256)
    for name in ALL_MAPS:
        decoded = Image.open(io.BytesIO(report.png(name)))
        assert decoded.size == (512, 256)
        assert decoded.mode == "RGBA"


def test_parallel_matches_sequential(tmp_path):
    img = _make_img(tmp_path / "photo.jpg", w=300, h=200)
    fp = ForensicPipeline()
    seq = fp.analyze(img)
    par = fp.analyze(img, parallel=True)
    for name in ALL_MAPS:
        assert seq.png(name) == par.png(name)


def test_essential_maps_only(tmp_path):
    img = _make_img(tmp_path / "photo.jpg", w=64, h=64)
    report = ForensicPipeline().analyze_essential(img)
    assert tuple(report.results) == ("ela", "mfr")


@pytest.mark.parametrize(
    "maps, expected",
    [
        (None, ALL_MAPS),
        ("all", ALL_MAPS),
        ("essential", ("ela", "mfr")),
        ("sobel, ELA", ("sobel", "ela")),
        (["lna", "lna", "mfr"], ("lna", "mfr")),
    ],
)
def test_resolve_maps(maps, expected):
    assert resolve_maps(maps) == expected


@pytest.mark.parametrize("maps", ["ela,fft", ["noise"], ",,"])
def test_resolve_maps_rejects_bad_selection(maps):
    with pytest.raises(ValueError):
        resolve_maps(maps)


def test_decode_error_propagates():
    with pytest.raises(DecodeError):
        ForensicPipeline().analyze(b"definitely not a picture")


def test_report_save_writes_pngs_and_json(tmp_path):
    img = _make_img(tmp_path / "photo.jpg", w=80, h=60)
    report = ForensicPipeline().analyze(img, "ela,lna")
    json_path = report.save(tmp_path / "out", prefix="case1")

    out = tmp_path / "out"
    assert (out / "case1_ela.png").read_bytes() == report.png("ela")
    assert (out / "case1_lna.png").exists()
    assert not (out / "case1_sobel.png").exists()

    data = json.loads(Path(json_path).read_text(encoding="utf-8"))
    assert data["source"] == "photo.jpg"
    assert data["working_size"] == [80, 60]
    assert set(data["maps"]) == {"ela", "lna"}
    assert data["saved_images"]["ela"].endswith("case1_ela.png")
    assert "total" in data["timing_ms"]


def test_output_dir_saves_under_image_stem(tmp_path):
    img = _make_img(tmp_path / "receipt.jpg", w=40, h=40)
    ForensicPipeline(output_dir=tmp_path / "maps").analyze(img, "sobel")
    assert (tmp_path / "maps" / "receipt" / "sobel.png").exists()
    assert (tmp_path / "maps" / "receipt" / "forensic_report.json").exists()


def test_data_urls_and_inline_images(tmp_path):
    img = _make_img(tmp_path / "photo.jpg", w=32, h=32)
    report = ForensicPipeline().analyze(img, ["mfr"])
    urls = report.data_urls()
    assert list(urls) == ["mfr"]
    assert urls["mfr"].startswith("data:image/png;base64,")
    assert report.to_dict(include_images=True)["images"] == urls


def test_injected_codec_is_used(tmp_path):
    class CountingCodec(PillowCodec):
        def __init__(self):
            self.calls = []

        def decode(self, data):
            self.calls.append("decode")
            return super().decode(data)

        def encode_jpeg(self, rgb, quality):
            self.calls.append("jpeg")
            return super().encode_jpeg(rgb, quality)

        def encode_png(self, rgba):
            self.calls.append("png")
            return super().encode_png(rgba)

    codec = CountingCodec()
    img = _make_img(tmp_path / "photo.jpg", w=32, h=32)
    ForensicPipeline(codec=codec).analyze(img)
    assert codec.calls.count("decode") == 2  # source + ELA round trip
    assert codec.calls.count("jpeg") == 1
    assert codec.calls.count("png") == len(ALL_MAPS)


def test_analyze_url(monkeypatch, tmp_path):
    data = _make_img(tmp_path / "remote.jpg", w=48, h=24).read_bytes()
    seen = {}

    def fake_fetch(url, timeout):
        seen["url"] = url
        seen["timeout"] = timeout
        return data

    monkeypatch.setattr(pipeline_mod, "fetch_image_bytes", fake_fetch)
    report = ForensicPipeline().analyze_url("https://example.com/img/scan.jpg?x=1", "ela")

    assert seen == {"url": "https://example.com/img/scan.jpg?x=1", "timeout": 30.0}
    assert report.source == "scan.jpg"
    assert report.working_size == (48, 24)
