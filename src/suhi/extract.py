#!/usr/bin/env python3
"""suhi.extract

Per-polygon yearly time series: one mean Daytime / Nighttime value per year.

A year is kept only when both band means are defined. Years with no valid
pixels (coverage gaps, masked pixels, degenerate geometry) are dropped, so an
empty result is normal and is reported by the driver, not raised here.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional

from suhi.backends.base import ReductionBackend
from suhi.config import RunConfig
from suhi.models import Polygon, RasterImage, YearRecord


def _defined(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


def extract(
    polygon: Polygon,
    raster_series: Iterable[RasterImage],
    config: RunConfig,
    backend: ReductionBackend,
) -> List[YearRecord]:
    """Reduce every image in [start_year, end_year) over `polygon`.

    Records come back in ascending year order, at most one per year. If the
    series holds two images for the same year only the first is used.
    """
    bands = (config.day_band, config.night_band)
    images = sorted(
        (im for im in raster_series if config.start_year <= im.year < config.end_year),
        key=lambda im: im.timestamp,
    )

    records: List[YearRecord] = []
    seen = set()
    for image in images:
        if image.year in seen:
            print(f"  - warning: {polygon.name}: second image for {image.year} ({image.image_id}) ignored")
            continue
        seen.add(image.year)

        stats = backend.reduce_mean(
            image,
            polygon,
            bands,
            scale_m=config.reduce_scale_m,
            max_pixels=config.max_pixels,
        )
        day = _defined(stats.get(config.day_band))
        night = _defined(stats.get(config.night_band))
        if day is None or night is None:
            continue
        records.append(YearRecord(year=image.year, day_value=day, night_value=night))

    return records
