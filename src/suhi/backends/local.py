#!/usr/bin/env python3
"""suhi.backends.local

In-process backend: polygons from a vector file, yearly rasters from a folder
of GeoTIFFs.

This is the substitute for the Earth Engine backend when the UHI product has
been downloaded locally (one GeoTIFF per year, bands Daytime/Nighttime).

Conventions:
- polygon_source is a GeoPackage / GeoJSON / Shapefile path
- raster_source is a directory; the year is the first 4-digit token in each
  file name (e.g. suhi_yearly_2010.tif)
- bands are matched by band description, or positionally when the GeoTIFF
  has no descriptions (band 1 = day, band 2 = night)

Required deps (typical conda geo stack): geopandas, shapely, rasterio, numpy
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import rasterio
from rasterio.enums import Resampling
from rasterio.errors import WindowError
from rasterio.features import geometry_mask, geometry_window
from rasterio.transform import Affine
from shapely.geometry import mapping

from suhi.backends.base import ReductionBackend
from suhi.errors import ConfigurationError, SourceNotFound
from suhi.models import Polygon, RasterImage


# Rough metres per degree at the equator; only used to turn the reduction
# scale into a pixel size for rasters in geographic CRSs.
METERS_PER_DEGREE = 111_320.0

_YEAR_RE = re.compile(r"(?<!\d)(\d{4})(?!\d)")


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------

def _year_from_name(name: str) -> Optional[int]:
    """Pull the first plausible year out of a file name."""
    for token in _YEAR_RE.findall(name):
        year = int(token)
        if 1900 <= year <= 2100:
            return year
    return None


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Fix invalid geometries (self-intersections etc.) before reducing."""
    gdf = gdf.copy()
    if hasattr(gdf.geometry, "make_valid"):
        gdf["geometry"] = gdf.geometry.make_valid()
    else:
        gdf["geometry"] = gdf.geometry.buffer(0)
    return gdf


def _safe_round_window(win):
    """Round window offsets/lengths to integers (GDAL prefers integer windows)."""
    return win.round_offsets().round_lengths()


def _band_indexes(src, bands: Sequence[str]) -> List[int]:
    descriptions = list(src.descriptions or ())
    if any(descriptions):
        missing = [b for b in bands if b not in descriptions]
        if missing:
            raise ConfigurationError(
                f"Bands {missing} not found in {src.name}; available: {descriptions}"
            )
        return [descriptions.index(b) + 1 for b in bands]
    if src.count < len(bands):
        raise ConfigurationError(f"{src.name} has {src.count} band(s), need {len(bands)}")
    return list(range(1, len(bands) + 1))


def _coarsening_factor(src, win, scale_m: float, max_pixels: int) -> float:
    """Output pixel size as a multiple of the native pixel size.

    Starts from the requested scale (never finer than native), then grows
    until the window fits in max_pixels. Exceeding the budget coarsens, it
    never fails.
    """
    native = abs(src.res[0])
    target = scale_m / METERS_PER_DEGREE if (src.crs is not None and src.crs.is_geographic) else scale_m
    factor = max(1.0, target / native)

    n_pixels = (win.width / factor) * (win.height / factor)
    if n_pixels > max_pixels:
        factor *= math.sqrt(n_pixels / max_pixels)
    return factor


def _masked_mean(values: np.ndarray, invalid: np.ndarray) -> Optional[float]:
    values = np.asarray(values, dtype="float64")
    keep = ~invalid & np.isfinite(values)
    if not keep.any():
        return None
    return float(values[keep].mean())


# -----------------------------------------------------------------------------
# Backend
# -----------------------------------------------------------------------------

class LocalBackend(ReductionBackend):
    name = "local"

    def __init__(self, polygon_layer: Optional[str] = None, raster_glob: str = "*.tif"):
        self.polygon_layer = polygon_layer
        self.raster_glob = raster_glob
        self._frames: Dict[Tuple[str, Optional[str]], gpd.GeoDataFrame] = {}

    # --- polygons ---

    def _read_polygons(self, source: str) -> gpd.GeoDataFrame:
        key = (source, self.polygon_layer)
        if key not in self._frames:
            path = Path(source)
            if not path.exists():
                raise SourceNotFound(f"Polygon source not found: {path}")
            kwargs = {"layer": self.polygon_layer} if self.polygon_layer else {}
            gdf = gpd.read_file(path, **kwargs)
            if gdf.crs is None:
                raise ConfigurationError(
                    f"Polygon source has no CRS: {path}. Fix that first; reprojection depends on it."
                )
            self._frames[key] = _make_valid(gdf)
        return self._frames[key]

    def _select(self, source: str, name_field: str, target_name: Optional[str]) -> gpd.GeoDataFrame:
        gdf = self._read_polygons(source)
        if name_field not in gdf.columns:
            raise ConfigurationError(
                f"Name field '{name_field}' not in {source}. Available columns: {list(gdf.columns)}"
            )
        unnamed = gdf[name_field].isna()
        if unnamed.any():
            print(f"  - warning: {int(unnamed.sum())} polygon(s) in {source} have no '{name_field}'; skipped")
            gdf = gdf[~unnamed]
        if target_name is None:
            return gdf
        return gdf[gdf[name_field].astype(str) == target_name]

    def polygon_names(self, source: str, name_field: str, target_name: Optional[str] = None) -> List[str]:
        return [str(v) for v in self._select(source, name_field, target_name)[name_field].tolist()]

    def iter_polygons(
        self, source: str, name_field: str, target_name: Optional[str] = None
    ) -> Iterator[Polygon]:
        gdf = self._select(source, name_field, target_name)
        crs = gdf.crs.to_string()
        for _, row in gdf.iterrows():
            attributes = {k: v for k, v in row.items() if k != "geometry"}
            yield Polygon(name=str(row[name_field]), geometry=row.geometry, attributes=attributes, crs=crs)

    # --- rasters ---

    def load_images(
        self, source: str, bands: Sequence[str], start_year: int, end_year: int
    ) -> List[RasterImage]:
        root = Path(source)
        if not root.is_dir():
            raise SourceNotFound(f"Raster source directory not found: {root}")

        images: List[RasterImage] = []
        for path in sorted(root.glob(self.raster_glob)):
            year = _year_from_name(path.name)
            if year is None:
                print(f"[SKIP] {path.name} (no year in file name)")
                continue
            if start_year <= year < end_year:
                images.append(RasterImage(image_id=path.stem, timestamp=datetime(year, 1, 1), ref=path))

        # Band lookup fails here, before the driver queues any export
        for image in images:
            with rasterio.open(image.ref) as src:
                _band_indexes(src, bands)

        images.sort(key=lambda im: (im.timestamp, im.image_id))
        return images

    def reduce_mean(
        self,
        image: RasterImage,
        polygon: Polygon,
        bands: Sequence[str],
        scale_m: float,
        max_pixels: int,
    ) -> Dict[str, Optional[float]]:
        empty = {b: None for b in bands}
        geom = polygon.geometry
        if geom is None or geom.is_empty:
            return empty

        with rasterio.open(image.ref) as src:
            indexes = _band_indexes(src, bands)

            if polygon.crs is not None and src.crs is not None:
                geom = gpd.GeoSeries([geom], crs=polygon.crs).to_crs(src.crs).iloc[0]
            if geom is None or geom.is_empty:
                return empty
            shapes = [mapping(geom)]

            try:
                win = _safe_round_window(geometry_window(src, shapes))
            except WindowError:
                # polygon entirely outside the raster
                return empty
            if win.width < 1 or win.height < 1:
                return empty

            factor = _coarsening_factor(src, win, scale_m, max_pixels)
            out_h = max(1, int(math.ceil(win.height / factor)))
            out_w = max(1, int(math.ceil(win.width / factor)))

            data = src.read(
                indexes,
                window=win,
                out_shape=(len(indexes), out_h, out_w),
                resampling=Resampling.average,
                masked=True,
            )
            transform = src.window_transform(win) * Affine.scale(win.width / out_w, win.height / out_h)

        outside = geometry_mask(shapes, out_shape=(out_h, out_w), transform=transform)
        return {
            band: _masked_mean(data[i].data, np.ma.getmaskarray(data[i]) | outside)
            for i, band in enumerate(bands)
        }
