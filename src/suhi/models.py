#!/usr/bin/env python3
"""suhi.models

Plain data records passed between the loader, extractor and exporter.

None of these are mutated after creation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Polygon:
    """A named zone read from the vector source.

    `geometry` is backend-specific: a shapely geometry for the local backend,
    an ee.Geometry for Earth Engine. `crs` is only set by the local backend.
    """

    name: str
    geometry: Any
    attributes: Dict[str, Any] = field(default_factory=dict)
    crs: Optional[str] = None


@dataclass(frozen=True)
class RasterImage:
    """One dated image of the raster series. `ref` is backend-specific."""

    image_id: str
    timestamp: datetime
    ref: Any = None

    @property
    def year(self) -> int:
        return self.timestamp.year


@dataclass(frozen=True)
class YearRecord:
    year: int
    day_value: float
    night_value: float

    def as_row(self) -> Dict[str, Any]:
        return {"year": self.year, "suhi_day": self.day_value, "suhi_night": self.night_value}


EXPORT_COLUMNS: Tuple[str, ...] = ("year", "suhi_day", "suhi_night")


@dataclass(frozen=True)
class ExportJob:
    description: str
    folder: str
    rows: Tuple[YearRecord, ...]
    selectors: Tuple[str, ...] = EXPORT_COLUMNS
    polygon_name: str = ""
    # server-side FeatureCollection for Drive exports; rows stay empty then
    table: Any = field(default=None, compare=False)
