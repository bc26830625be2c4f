#!/usr/bin/env python3
"""suhi.config

Run configuration for the SUHI time-series pipeline.

A run is described by one YAML file (config/suhi.yaml by default) whose keys
map 1:1 onto RunConfig fields. CLI flags can override any of them.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Unknown keys are rejected so typos don't silently fall back to defaults.
- validate() runs before any backend call; a bad config never touches a source.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from suhi.errors import ConfigurationError


# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------

DEFAULT_CONFIG_YAML = Path("config/suhi.yaml")

DEFAULT_RASTER_SOURCE = "YALE/YCEO/UHI/Summer_UHI_yearly_pixel/v4"
DEFAULT_EXPORT_PREFIX = "YCEO_SUHI_TS"
DEFAULT_BANDS = {"day": "Daytime", "night": "Nighttime"}

BACKENDS = ("local", "earthengine")
EXPORT_TARGETS = ("local", "drive")


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises ConfigurationError on missing file or invalid format (non-mapping).
    """
    if not path.exists():
        raise ConfigurationError(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected YAML mapping at {path}")
    return data


# -----------------------------------------------------------------------------
# RunConfig
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class RunConfig:
    polygon_source: str = ""
    name_field: str = "name"
    start_year: int = 2003
    end_year: int = 2018  # exclusive
    output_folder: str = "YCEO_SUHI_TS_EXPORTS"
    reduce_scale_m: float = 300.0
    max_pixels: int = 10**13
    run_all: bool = True
    single_target_name: Optional[str] = None

    raster_source: str = DEFAULT_RASTER_SOURCE
    bands: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_BANDS))
    export_prefix: str = DEFAULT_EXPORT_PREFIX
    export_empty: bool = False

    backend: str = "local"
    export_target: str = "local"
    ee_project: Optional[str] = None
    polygon_layer: Optional[str] = None
    raster_glob: str = "*.tif"

    @property
    def day_band(self) -> str:
        return self.bands["day"]

    @property
    def night_band(self) -> str:
        return self.bands["night"]

    @property
    def target_name(self) -> Optional[str]:
        """Name filter for the polygon loader; None means every polygon."""
        return None if self.run_all else self.single_target_name

    def validate(self) -> "RunConfig":
        """Check the config and return it unchanged.

        Raises ConfigurationError on the first problem found.
        """
        for key in ("polygon_source", "name_field", "raster_source", "output_folder", "export_prefix"):
            value = getattr(self, key)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"'{key}' must be a non-empty string")

        if not isinstance(self.start_year, int) or not isinstance(self.end_year, int):
            raise ConfigurationError("start_year and end_year must be integers")
        if self.start_year >= self.end_year:
            raise ConfigurationError(
                f"start_year ({self.start_year}) must be < end_year ({self.end_year}); end_year is exclusive"
            )

        if not self.reduce_scale_m or self.reduce_scale_m <= 0:
            raise ConfigurationError(f"reduce_scale_m must be positive, got {self.reduce_scale_m}")
        if not isinstance(self.max_pixels, int) or self.max_pixels <= 0:
            raise ConfigurationError(f"max_pixels must be a positive integer, got {self.max_pixels}")

        if not self.run_all and not (self.single_target_name or "").strip():
            raise ConfigurationError("single_target_name is required when run_all is false")

        if set(self.bands) != {"day", "night"} or not all(isinstance(v, str) and v for v in self.bands.values()):
            raise ConfigurationError(f"bands must map 'day' and 'night' to band names, got {self.bands}")

        if self.backend not in BACKENDS:
            raise ConfigurationError(f"Unknown backend '{self.backend}' (expected one of {BACKENDS})")
        if self.export_target not in EXPORT_TARGETS:
            raise ConfigurationError(
                f"Unknown export_target '{self.export_target}' (expected one of {EXPORT_TARGETS})"
            )
        if self.export_target == "drive" and self.backend != "earthengine":
            raise ConfigurationError("export_target 'drive' requires backend 'earthengine'")
        return self

    def with_overrides(self, **overrides: Any) -> "RunConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **_coerce(changes)) if changes else self


def _coerce(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize YAML scalars (1e13 parses as float, years may come as strings)."""
    out = dict(data)
    for key in ("start_year", "end_year", "max_pixels"):
        if key in out:
            value = out[key]
            try:
                as_float = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
            if not math.isfinite(as_float):
                raise ConfigurationError(f"'{key}' must be finite, got {value!r}")
            if as_float != int(as_float):
                raise ConfigurationError(f"'{key}' must be a whole number, got {value!r}")
            out[key] = int(as_float)
    if "reduce_scale_m" in out:
        try:
            out["reduce_scale_m"] = float(out["reduce_scale_m"])
        except (TypeError, ValueError):
            raise ConfigurationError(f"'reduce_scale_m' must be a number, got {out['reduce_scale_m']!r}")
        if not math.isfinite(out["reduce_scale_m"]):
            raise ConfigurationError(f"'reduce_scale_m' must be finite, got {out['reduce_scale_m']!r}")
    if "bands" in out:
        if not isinstance(out["bands"], dict):
            raise ConfigurationError("'bands' must be a mapping like {day: Daytime, night: Nighttime}")
        out["bands"] = {**DEFAULT_BANDS, **{str(k): str(v) for k, v in out["bands"].items()}}
    for key in ("polygon_source", "name_field", "raster_source", "output_folder", "single_target_name"):
        if key in out and out[key] is not None:
            out[key] = str(out[key])
    return out


def config_from_mapping(data: Dict[str, Any]) -> RunConfig:
    """Build a RunConfig from a parsed YAML mapping (not yet validated)."""
    known = {f.name for f in fields(RunConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {unknown}. Known keys: {sorted(known)}")
    return RunConfig(**_coerce(data))


def load_config(path: Optional[Path]) -> RunConfig:
    """Load a RunConfig from YAML; None returns the defaults."""
    if path is None:
        return RunConfig()
    return config_from_mapping(load_yaml(path))
