#!/usr/bin/env python3
"""suhi.backends.base

The capability the pipeline needs from a geospatial backend.

Polygon clipping, the spatial mean and the pixel-budget degradation all live
behind this interface, so the pipeline keeps the same shape whether the work
runs on Earth Engine or in-process with rasterio.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Sequence

from suhi.models import Polygon, RasterImage


class ReductionBackend(ABC):
    name = "base"

    @abstractmethod
    def polygon_names(self, source: str, name_field: str, target_name: Optional[str] = None) -> List[str]:
        """Names of the polygons a run will process, in source order.

        One metadata round trip. Raises SourceNotFound if `source` doesn't resolve.
        """

    @abstractmethod
    def iter_polygons(
        self, source: str, name_field: str, target_name: Optional[str] = None
    ) -> Iterator[Polygon]:
        """Yield polygons lazily, same order as polygon_names()."""

    @abstractmethod
    def load_images(
        self, source: str, bands: Sequence[str], start_year: int, end_year: int
    ) -> List[RasterImage]:
        """Images with start_year <= year < end_year, sorted by timestamp."""

    @abstractmethod
    def reduce_mean(
        self,
        image: RasterImage,
        polygon: Polygon,
        bands: Sequence[str],
        scale_m: float,
        max_pixels: int,
    ) -> Dict[str, Optional[float]]:
        """Mean of each band over the polygon; None where no pixel is valid."""

    def series_table(self, polygon: Polygon, config):
        """Server-side year/suhi_day/suhi_night table for `polygon`, or None.

        Backends that can keep the whole reduction remote return a handle the
        Drive writer exports directly. None means: reduce client-side with
        reduce_mean().
        """
        return None


def get_backend(config) -> ReductionBackend:
    """Instantiate the backend named in `config.backend`."""
    # Lazy imports: earthengine-api is only needed for the remote backend
    if config.backend == "earthengine":
        from suhi.backends.earthengine import EarthEngineBackend

        return EarthEngineBackend(project=config.ee_project)

    from suhi.backends.local import LocalBackend

    return LocalBackend(polygon_layer=config.polygon_layer, raster_glob=config.raster_glob)
