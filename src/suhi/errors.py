#!/usr/bin/env python3
"""suhi.errors

Error types raised by the suhi pipeline.

Config and source errors abort a run before any export is queued.
Empty per-polygon results are not errors (the driver warns and moves on).
"""

from __future__ import annotations


class SuhiError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(SuhiError, ValueError):
    """Invalid or incomplete run configuration."""


class SourceNotFound(SuhiError, LookupError):
    """A polygon or raster source identifier did not resolve."""


class NamingCollision(ConfigurationError):
    """Differently named polygons map to the same export description."""

    def __init__(self, collisions):
        self.collisions = dict(collisions)
        lines = [f"  - {desc}: {', '.join(repr(n) for n in names)}" for desc, names in sorted(self.collisions.items())]
        super().__init__(
            "Polygon names collide after sanitizing; rename them or narrow the run:\n" + "\n".join(lines)
        )
