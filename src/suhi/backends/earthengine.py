#!/usr/bin/env python3
"""suhi.backends.earthengine

Google Earth Engine backend.

The reduction runs server-side with bestEffort=True, so polygons too large
for max_pixels are reduced at a coarser scale instead of failing.

Two ways to use it:
- Drive exports: series_table() maps the reduction over the yearly images
  and returns a FeatureCollection; nothing comes back to the client until
  the export task writes the CSV
- local exports: reduce_mean() pulls one (polygon, year) mean per getInfo()

Polygons with no value in the name field are dropped before anything else,
so names and geometries always come from the same filtered collection.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import ee

from suhi.backends.base import ReductionBackend
from suhi.errors import SourceNotFound
from suhi.models import EXPORT_COLUMNS, ExportJob, Polygon, RasterImage


def initialize_ee(project: Optional[str] = None) -> None:
    """Initialize Earth Engine, authenticating first if no credentials are cached."""
    try:
        ee.Initialize(project=project)
    except ee.EEException:
        print("Authenticating Earth Engine...")
        ee.Authenticate()
        ee.Initialize(project=project)
    print(f"[SUHI] Earth Engine initialized (project={project})")


def _image_collection(source: str, bands: Sequence[str], start_year: int, end_year: int):
    """Yearly images in [start_year, end_year), bands selected, oldest first."""
    start = ee.Date.fromYMD(start_year, 1, 1)
    end = ee.Date.fromYMD(end_year, 1, 1)
    return (
        ee.ImageCollection(source)
        .filterDate(start, end)
        .select(list(bands))
        .sort("system:time_start")
    )


class EarthEngineBackend(ReductionBackend):
    name = "earthengine"

    def __init__(self, project: Optional[str] = None, initialize: bool = True):
        if initialize:
            initialize_ee(project)
        self._names: Dict[Tuple[str, str, Optional[str]], List[str]] = {}

    # --- polygons ---

    def _collection(self, source: str, name_field: str, target_name: Optional[str]):
        fc = ee.FeatureCollection(source)
        if target_name is not None:
            fc = fc.filter(ee.Filter.eq(name_field, target_name))
        return fc

    def polygon_names(self, source: str, name_field: str, target_name: Optional[str] = None) -> List[str]:
        key = (source, name_field, target_name)
        if key not in self._names:
            fc_all = self._collection(source, name_field, target_name)
            fc = fc_all.filter(ee.Filter.notNull([name_field]))
            try:
                info = ee.Dictionary({
                    "names": fc.aggregate_array(name_field),
                    "total": fc_all.size(),
                }).getInfo()
            except ee.EEException as e:
                raise SourceNotFound(f"Polygon source did not resolve: {source}: {e}") from e
            names = [str(n) for n in info["names"]]
            skipped = int(info["total"]) - len(names)
            if skipped:
                print(f"  - warning: {skipped} polygon(s) in {source} have no '{name_field}'; skipped")
            self._names[key] = names
        return list(self._names[key])

    def iter_polygons(
        self, source: str, name_field: str, target_name: Optional[str] = None
    ) -> Iterator[Polygon]:
        names = self.polygon_names(source, name_field, target_name)
        fc = self._collection(source, name_field, target_name).filter(ee.Filter.notNull([name_field]))
        features = fc.toList(max(len(names), 1))
        for i, name in enumerate(names):
            feat = ee.Feature(features.get(i))
            yield Polygon(name=name, geometry=feat.geometry(), attributes={name_field: name})

    # --- rasters ---

    def load_images(
        self, source: str, bands: Sequence[str], start_year: int, end_year: int
    ) -> List[RasterImage]:
        col = _image_collection(source, bands, start_year, end_year)
        try:
            info = ee.Dictionary({
                "ids": col.aggregate_array("system:index"),
                "times": col.aggregate_array("system:time_start"),
            }).getInfo()
        except ee.EEException as e:
            raise SourceNotFound(f"Raster source did not resolve: {source}: {e}") from e

        images = []
        for image_id, millis in zip(info["ids"], info["times"]):
            ts = datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
            ref = ee.Image(f"{source}/{image_id}").select(list(bands))
            images.append(RasterImage(image_id=str(image_id), timestamp=ts, ref=ref))
        return images

    def reduce_mean(
        self,
        image: RasterImage,
        polygon: Polygon,
        bands: Sequence[str],
        scale_m: float,
        max_pixels: int,
    ) -> Dict[str, Optional[float]]:
        geom = polygon.geometry
        stats = image.ref.clip(geom).reduceRegion(
            reducer=ee.Reducer.mean(),
            geometry=geom,
            scale=scale_m,
            maxPixels=max_pixels,
            bestEffort=True,
        ).getInfo() or {}
        return {b: stats.get(b) for b in bands}

    def series_table(self, polygon: Polygon, config):
        """One feature per year with both means; years missing either are filtered out."""
        geom = polygon.geometry
        day, night = config.day_band, config.night_band
        col = _image_collection(config.raster_source, [day, night], config.start_year, config.end_year)

        def _per_year(img):
            stats = img.clip(geom).reduceRegion(
                reducer=ee.Reducer.mean(),
                geometry=geom,
                scale=config.reduce_scale_m,
                maxPixels=config.max_pixels,
                bestEffort=True,
            )
            return ee.Feature(None, {
                "year": ee.Date(img.get("system:time_start")).get("year"),
                "suhi_day": stats.get(day),
                "suhi_night": stats.get(night),
            })

        return ee.FeatureCollection(col.map(_per_year)).filter(
            ee.Filter.notNull(["suhi_day", "suhi_night"])
        )


# -----------------------------------------------------------------------------
# Drive export
# -----------------------------------------------------------------------------

def start_drive_export(job: ExportJob):
    """Start an Export.table.toDrive task for one polygon and return it.

    Uses the job's server-side table when it has one, otherwise its rows.
    """
    if job.table is not None:
        collection = job.table
    else:
        collection = ee.FeatureCollection([ee.Feature(None, r.as_row()) for r in job.rows])
    task = ee.batch.Export.table.toDrive(
        collection=collection,
        description=job.description,
        fileNamePrefix=job.description,
        folder=job.folder,
        fileFormat="CSV",
        selectors=list(job.selectors or EXPORT_COLUMNS),
    )
    task.start()
    return task
