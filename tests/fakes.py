#!/usr/bin/env python3
"""In-memory backend and writer for driver tests."""

from __future__ import annotations

from datetime import datetime

from suhi.backends.base import ReductionBackend
from suhi.errors import SourceNotFound
from suhi.export import COMPLETED, FAILED, ExportHandle
from suhi.models import Polygon, RasterImage


class FakeBackend(ReductionBackend):
    """values: {(polygon_name, year): {band: value}}"""

    name = "fake"

    def __init__(self, names, years, values=None, source="polys", raster_source="rasters"):
        self.names = list(names)
        self.years = list(years)
        self.values = values or {}
        self.source = source
        self.raster_source = raster_source
        self.reduce_calls = []

    def polygon_names(self, source, name_field, target_name=None):
        if source != self.source:
            raise SourceNotFound(source)
        return [n for n in self.names if target_name is None or n == target_name]

    def iter_polygons(self, source, name_field, target_name=None):
        for name in self.polygon_names(source, name_field, target_name):
            yield Polygon(name=name, geometry=name, attributes={name_field: name})

    def load_images(self, source, bands, start_year, end_year):
        if source != self.raster_source:
            raise SourceNotFound(source)
        return [
            RasterImage(image_id=str(y), timestamp=datetime(y, 1, 1))
            for y in sorted(self.years)
            if start_year <= y < end_year
        ]

    def reduce_mean(self, image, polygon, bands, scale_m, max_pixels):
        self.reduce_calls.append((polygon.name, image.year, scale_m, max_pixels))
        stats = self.values.get((polygon.name, image.year), {})
        return {b: stats.get(b) for b in bands}


class _DoneHandle(ExportHandle):
    def __init__(self, job, state=COMPLETED):
        super().__init__(job)
        self._state = state

    def state(self):
        return self._state

    def error(self):
        return "boom" if self._state == FAILED else None


class RecordingWriter:
    def __init__(self, fail=()):
        self.jobs = []
        self.fail = set(fail)
        self.closed = False

    def submit(self, job):
        self.jobs.append(job)
        return _DoneHandle(job, FAILED if job.polygon_name in self.fail else COMPLETED)

    def close(self):
        self.closed = True
