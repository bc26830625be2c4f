#!/usr/bin/env python3
"""suhi.pipeline

Driver: load polygons, select the yearly images, then extract and queue one
export per polygon, in list order.

Polygons share no state, so a failure or empty result for one never stops
the rest. Config and source errors abort before anything is queued.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from suhi import polygons
from suhi.backends.base import ReductionBackend, get_backend
from suhi.config import RunConfig
from suhi.export import COMPLETED, ExportHandle, export, export_description, get_writer
from suhi.extract import extract


@dataclass
class RunSummary:
    polygons: int = 0
    images: int = 0
    handles: List[ExportHandle] = field(default_factory=list)
    empty: List[str] = field(default_factory=list)
    states: Dict[str, str] = field(default_factory=dict)

    @property
    def queued(self) -> int:
        return len(self.handles)

    @property
    def failed(self) -> List[str]:
        return [desc for desc, state in self.states.items() if state != COMPLETED]


def _describer(config: RunConfig):
    return lambda name: export_description(name, config.export_prefix)


def plan(config: RunConfig, backend: Optional[ReductionBackend] = None) -> Dict[str, object]:
    """Resolve sources and print what a run would do, without reducing anything."""
    config.validate()
    backend = backend or get_backend(config)

    polys = polygons.load(config, backend)
    descriptions = polygons.assign_descriptions(polys.names, _describer(config))
    images = backend.load_images(
        config.raster_source, (config.day_band, config.night_band), config.start_year, config.end_year
    )

    print(f"[dry-run] Polygons to process: {len(polys)}")
    print(f"[dry-run] UHI yearly images selected: {len(images)} ({', '.join(str(im.year) for im in images)})")
    print(f"[dry-run] Output folder: {config.output_folder} (target={config.export_target})")
    for name, desc in zip(polys.names, descriptions):
        print(f"  - {name} -> {desc}")

    return {
        "polygons": list(polys.names),
        "descriptions": descriptions,
        "years": [im.year for im in images],
    }


def wait_for_exports(
    handles: List[ExportHandle], timeout: Optional[float] = None, poll_seconds: float = 10.0
) -> Dict[str, str]:
    """Wait on every handle and report its final state."""
    states: Dict[str, str] = {}
    for handle in handles:
        state = handle.wait(timeout=timeout, poll_seconds=poll_seconds)
        states[handle.description] = state
        line = f"[{state}] {handle.description}"
        err = handle.error()
        if err:
            line += f" ({err})"
        print(line)
    return states


def run(
    config: RunConfig,
    backend: Optional[ReductionBackend] = None,
    writer=None,
    *,
    wait: bool = False,
    poll_seconds: float = 10.0,
) -> RunSummary:
    """Run the full pipeline for `config`.

    Returns a RunSummary with one handle per queued export. With wait=True
    every export is awaited and its final state lands in summary.states.
    """
    config.validate()
    backend = backend or get_backend(config)

    polys = polygons.load(config, backend)
    descriptions = polygons.assign_descriptions(polys.names, _describer(config))

    images = backend.load_images(
        config.raster_source, (config.day_band, config.night_band), config.start_year, config.end_year
    )

    summary = RunSummary(polygons=len(polys), images=len(images))
    print(f"[SUHI] Polygons to process: {summary.polygons}")
    print(f"[SUHI] UHI yearly images selected: {summary.images}")

    own_writer = writer is None
    writer = writer or get_writer(config)
    try:
        for polygon, desc in zip(polys, descriptions):
            # Drive exports keep the reduction server-side when the backend can
            table = backend.series_table(polygon, config) if config.export_target == "drive" else None
            if table is not None:
                handle = export(polygon, (), config, writer, description=desc, table=table)
                summary.handles.append(handle)
                print(f"Queued export: {handle.description} (server-side)")
                continue

            records = extract(polygon, images, config, backend)
            if not records:
                summary.empty.append(polygon.name)
                print(f"  - warning: {polygon.name}: no valid years in [{config.start_year}, {config.end_year})")
                if not config.export_empty:
                    print(f"[SKIP] {desc}")
                    continue

            handle = export(polygon, records, config, writer, description=desc)
            summary.handles.append(handle)
            print(f"Queued export: {handle.description} ({len(records)} years)")

        if wait:
            summary.states = wait_for_exports(summary.handles, poll_seconds=poll_seconds)
    finally:
        if own_writer:
            writer.close()

    print(
        f"[SUHI] Done: {summary.queued} queued, {len(summary.empty)} empty"
        + (f", {len(summary.failed)} failed" if wait else "")
    )
    return summary
