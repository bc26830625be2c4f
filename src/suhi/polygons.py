#!/usr/bin/env python3
"""suhi.polygons

Resolve the configured vector source into the polygons a run will process.

The name list is fetched once up front (one metadata round trip); the
geometries themselves are pulled lazily while the driver iterates.

Export names:
- polygons sharing the same name are all processed; the 2nd, 3rd, ... get a
  _2, _3, ... suffix on their export description, in source order
- distinct names that sanitize to the same description abort the run
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Dict, Iterator, List

from suhi.backends.base import ReductionBackend
from suhi.config import RunConfig
from suhi.errors import NamingCollision
from suhi.models import Polygon


class PolygonSet:
    """Sized, lazily iterated view over the polygons selected for a run."""

    def __init__(self, names: List[str], factory: Callable[[], Iterator[Polygon]]):
        self.names = list(names)
        self._factory = factory

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self) -> Iterator[Polygon]:
        return self._factory()


def load(config: RunConfig, backend: ReductionBackend) -> PolygonSet:
    """Load polygons named by `config.polygon_source`.

    With run_all=false only polygons whose name field equals
    single_target_name are kept. Zero matches is an empty run, not an error.

    Raises SourceNotFound if the source doesn't resolve.
    """
    target = config.target_name
    names = backend.polygon_names(config.polygon_source, config.name_field, target)
    return PolygonSet(
        names,
        lambda: backend.iter_polygons(config.polygon_source, config.name_field, target),
    )


def assign_descriptions(names: List[str], describe: Callable[[str], str]) -> List[str]:
    """One export description per name, same order as `names`.

    Repeated names get _2, _3, ... appended. Raises NamingCollision when
    different names still end up with the same description.
    """
    seen: Dict[str, int] = defaultdict(int)
    descriptions = []
    for name in names:
        seen[name] += 1
        desc = describe(name)
        if seen[name] > 1:
            desc = f"{desc}_{seen[name]}"
        descriptions.append(desc)

    by_desc: Dict[str, List[str]] = defaultdict(list)
    for name, desc in zip(names, descriptions):
        by_desc[desc].append(name)
    collisions = {desc: group for desc, group in by_desc.items() if len(group) > 1}
    if collisions:
        raise NamingCollision(collisions)
    return descriptions
