#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import box

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

NODATA = -9999.0
CRS = "EPSG:3857"


def write_year_raster(path, day, night, *, size=10, res=100.0, descriptions=("Daytime", "Nighttime")):
    """Write a 2-band float32 GeoTIFF covering x/y 0..size*res in EPSG:3857.

    `day` / `night` may be a scalar, a 2D array, or None (all nodata).
    """
    bands = []
    for value in (day, night):
        if value is None:
            bands.append(np.full((size, size), NODATA, dtype="float32"))
        else:
            bands.append(np.broadcast_to(np.asarray(value, dtype="float32"), (size, size)).copy())

    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=size,
        width=size,
        count=2,
        dtype="float32",
        crs=CRS,
        transform=from_origin(0.0, size * res, res, res),
        nodata=NODATA,
    ) as dst:
        for i, arr in enumerate(bands, start=1):
            dst.write(arr, i)
            if descriptions:
                dst.set_band_description(i, descriptions[i - 1])
    return path


def write_polygons(path, names, geoms, crs=CRS):
    gdf = gpd.GeoDataFrame({"name": list(names)}, geometry=list(geoms), crs=crs)
    gdf.to_file(path, driver="GPKG")
    return path


@pytest.fixture
def uhi_rasters(tmp_path):
    """Three yearly rasters: Daytime [1.0, 2.0, missing], Nighttime [0.5, 1.5, 2.5]."""
    folder = tmp_path / "rasters"
    folder.mkdir()
    write_year_raster(folder / "suhi_yearly_2010.tif", 1.0, 0.5)
    write_year_raster(folder / "suhi_yearly_2011.tif", 2.0, 1.5)
    write_year_raster(folder / "suhi_yearly_2012.tif", None, 2.5)
    return folder


@pytest.fixture
def city_gpkg(tmp_path):
    return write_polygons(tmp_path / "cities.gpkg", ["Test City"], [box(200, 200, 800, 800)])
