"""
Configuration for the forensic heatmap engines.

All knobs have built-in defaults.  A YAML file (see ``configs/forensics.yaml``)
can override any subset of them;
keys are grouped in sections that mirror the engines:

    processing: max_dim
    ela:        quality, percentile, contrast, sample_size, fallback_scale
    lna:        block_size, gain, tint
    mfr:        gain, radius
    pipeline:   max_workers
    fetch:      timeout

Usage
-----
    from forensic_maps.config import load_config
    cfg = load_config("configs/forensics.yaml")
    cfg.max_dim   # -> 512
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


CONFIG_PATH = Path(__file__).parent.parent / "configs" / "forensics.yaml"

# (section, key) -> dataclass field
_YAML_KEYS: Dict[tuple, str] = {
    ("processing", "max_dim"): "max_dim",
    ("ela", "quality"): "ela_quality",
    ("ela", "percentile"): "ela_percentile",
    ("ela", "contrast"): "ela_contrast",
    ("ela", "sample_size"): "ela_sample_size",
    ("ela", "fallback_scale"): "ela_fallback_scale",
    ("lna", "block_size"): "lna_block_size",
    ("lna", "gain"): "lna_gain",
    ("lna", "tint"): "lna_tint",
    ("mfr", "gain"): "mfr_gain",
    ("mfr", "radius"): "mfr_radius",
    ("pipeline", "max_workers"): "max_workers",
    ("fetch", "timeout"): "fetch_timeout",
}


@dataclass(frozen=True)
class ForensicConfig:
    """Tunable constants shared by the loader, the engines and the pipeline."""

    # Working resolution
    max_dim: int = 512

    # ELA
    ela_quality: float = 0.90
    ela_percentile: float = 0.98
    ela_contrast: float = 1.2
    ela_sample_size: int = 2000
    ela_fallback_scale: float = 50.0

    # LNA
    lna_block_size: int = 8
    lna_gain: float = 5.0
    lna_tint: float = 0.2

    # MFR
    mfr_gain: float = 10.0
    mfr_radius: int = 2

    # Orchestration / boundary
    max_workers: int = 4
    fetch_timeout: float = 30.0

    def validate(self) -> "ForensicConfig":
        """Raise ``ValueError`` when a value is outside its usable range."""
        if self.max_dim < 1:
            raise ValueError(f"max_dim must be >= 1, got {self.max_dim}")
        if not 0.0 < self.ela_quality <= 1.0:
            raise ValueError(f"ela.quality must be in (0, 1], got {self.ela_quality}")
        if not 0.0 < self.ela_percentile <= 1.0:
            raise ValueError(f"ela.percentile must be in (0, 1], got {self.ela_percentile}")
        if self.ela_contrast <= 0:
            raise ValueError(f"ela.contrast must be > 0, got {self.ela_contrast}")
        if self.ela_sample_size < 1:
            raise ValueError(f"ela.sample_size must be >= 1, got {self.ela_sample_size}")
        if self.ela_fallback_scale <= 0:
            raise ValueError(f"ela.fallback_scale must be > 0, got {self.ela_fallback_scale}")
        if self.lna_block_size < 1:
            raise ValueError(f"lna.block_size must be >= 1, got {self.lna_block_size}")
        if not 0.0 <= self.lna_tint <= 1.0:
            raise ValueError(f"lna.tint must be in [0, 1], got {self.lna_tint}")
        if self.mfr_radius < 0:
            raise ValueError(f"mfr.radius must be >= 0, got {self.mfr_radius}")
        if self.max_workers < 1:
            raise ValueError(f"pipeline.max_workers must be >= 1, got {self.max_workers}")
        if self.fetch_timeout <= 0:
            raise ValueError(f"fetch.timeout must be > 0, got {self.fetch_timeout}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_CONFIG = ForensicConfig()


def config_from_mapping(cfg: Optional[Dict[str, Any]]) -> ForensicConfig:
    """Build a validated config from a parsed (sectioned) YAML mapping."""
    if not cfg:
        return DEFAULT_CONFIG

    known_sections = {section for section, _ in _YAML_KEYS}
    types = {f.name: f.type for f in fields(ForensicConfig)}
    overrides: Dict[str, Any] = {}

    for section, values in cfg.items():
        if section not in known_sections:
            raise ValueError(f"Unknown config section '{section}'")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Config section '{section}' must be a mapping")
        for key, value in values.items():
            name = _YAML_KEYS.get((section, key))
            if name is None:
                raise ValueError(f"Unknown config key '{section}.{key}'")
            overrides[name] = int(value) if types[name] == "int" else float(value)

    return ForensicConfig(**overrides).validate()


def load_config(path: Optional[Union[str, Path]] = None) -> ForensicConfig:
    """Load a YAML config file; ``None`` returns the built-in defaults."""
    if path is None:
        return DEFAULT_CONFIG
    with open(path, encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    return config_from_mapping(cfg)
