"""
Load config.yaml into typed settings.

String values of the form ``ENV:NAME`` are replaced by the environment
variable ``NAME`` (``None`` when unset), so secrets and deployment URLs
stay out of the file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_ENV_PREFIX = "ENV:"
_REPRESENTATIVE_MODES = ("midpoint", "min", "max")


class ConfigError(Exception):
    """Config file absent, unreadable or holding out-of-range values."""


def _resolve(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v) for v in value]
    if not (isinstance(value, str) and value.startswith(_ENV_PREFIX)):
        return value
    name = value[len(_ENV_PREFIX):]
    if name not in os.environ:
        logger.debug("%s is not set; %s resolves to None", name, value)
    return os.environ.get(name)


@dataclass
class ResolutionConfig:
    discrepancy_threshold: float = 0.5
    tariff_representative: str = "midpoint"


def _default_divisors() -> dict[str, float]:
    return {"air": 5000.0, "express": 5000.0, "courier": 5000.0, "sea": 6000.0, "ground": 6000.0}


@dataclass
class VolumetricConfig:
    default_divisor: float = 5000.0
    carrier_divisors: dict[str, float] = field(default_factory=_default_divisors)


@dataclass
class ValuationConfig:
    default_method: str = "auto"


@dataclass
class StorageConfig:
    snapshots_dir: str = "tariff_snapshots"
    reports_dir: str = "reports"
    retain_count: int = 12
    tariff_csv: str | None = None
    tariff_url: str | None = None


@dataclass
class RuntimeConfig:
    timezone: str = "UTC"
    log_level: str = "INFO"


@dataclass
class AppConfig:
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    volumetric: VolumetricConfig = field(default_factory=VolumetricConfig)
    valuation: ValuationConfig = field(default_factory=ValuationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)


def _positive(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if number <= 0:
        raise ConfigError(f"{name} must be > 0, got {number}")
    return number


def _section(raw: dict, name: str) -> dict:
    # "resolution:" with nothing under it loads as None
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name} must be a mapping, got {type(section).__name__}")
    return section


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config.yaml; ``None`` returns the built-in defaults."""
    if path is None:
        return AppConfig()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            raw: dict = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    raw = _resolve(raw)

    cfg = AppConfig()

    res = _section(raw, "resolution")
    representative = str(res.get("tariff_representative", "midpoint")).lower()
    if representative not in _REPRESENTATIVE_MODES:
        raise ConfigError(
            f"resolution.tariff_representative must be one of {_REPRESENTATIVE_MODES}, "
            f"got {representative!r}"
        )
    cfg.resolution = ResolutionConfig(
        discrepancy_threshold=_positive(
            res.get("discrepancy_threshold", 0.5), "resolution.discrepancy_threshold"
        ),
        tariff_representative=representative,
    )

    vol = _section(raw, "volumetric")
    divisors = _default_divisors()
    for carrier, divisor in (vol.get("carrier_divisors") or {}).items():
        divisors[str(carrier).lower()] = _positive(divisor, f"volumetric.carrier_divisors.{carrier}")
    cfg.volumetric = VolumetricConfig(
        default_divisor=_positive(vol.get("default_divisor", 5000), "volumetric.default_divisor"),
        carrier_divisors=divisors,
    )

    val = _section(raw, "valuation")
    cfg.valuation = ValuationConfig(default_method=str(val.get("default_method", "auto")))

    sto = _section(raw, "storage")
    cfg.storage = StorageConfig(
        snapshots_dir=sto.get("snapshots_dir", "tariff_snapshots"),
        reports_dir=sto.get("reports_dir", "reports"),
        retain_count=int(sto.get("retain_count", 12)),
        tariff_csv=sto.get("tariff_csv"),
        tariff_url=sto.get("tariff_url"),
    )

    rt = _section(raw, "runtime")
    cfg.runtime = RuntimeConfig(
        timezone=rt.get("timezone", "UTC"),
        log_level=rt.get("log_level", "INFO"),
    )

    logging.basicConfig(level=getattr(logging, cfg.runtime.log_level.upper(), logging.INFO))
    return cfg
