#!/usr/bin/env python3
"""suhi.export

Queue one table per polygon and hand back a handle to check on it.

Two writers:
- LocalCsvWriter: writes <output_folder>/<description>.csv on a worker thread
- DriveWriter: starts an Earth Engine Export.table.toDrive task

Both return immediately. Call handle.wait() (or `run --wait`) to learn
whether the write actually succeeded.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as futures_wait
from pathlib import Path
from typing import Any, Optional, Sequence

import pandas as pd

from suhi.config import RunConfig
from suhi.models import EXPORT_COLUMNS, ExportJob, Polygon, YearRecord


# Handle states (same vocabulary as Earth Engine task states)
READY = "READY"
RUNNING = "RUNNING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"
CANCELLED = "CANCELLED"
FINAL_STATES = (COMPLETED, FAILED, CANCELLED)


# -----------------------------------------------------------------------------
# Naming
# -----------------------------------------------------------------------------

def sanitize(name: str) -> str:
    """Make a polygon name filename-safe: spaces and slashes become underscores."""
    return str(name).replace(" ", "_").replace("/", "_")


def export_description(name: str, prefix: str) -> str:
    """Job id and file name prefix for a polygon, e.g. YCEO_SUHI_TS_Los_Angeles."""
    return f"{prefix}_{sanitize(name)}"


# -----------------------------------------------------------------------------
# Handles
# -----------------------------------------------------------------------------

class ExportHandle(ABC):
    """Tracks one queued export."""

    def __init__(self, job: ExportJob):
        self.job = job

    @property
    def description(self) -> str:
        return self.job.description

    @abstractmethod
    def state(self) -> str:
        """Current state: READY, RUNNING, COMPLETED, FAILED or CANCELLED."""

    def error(self) -> Optional[str]:
        return None

    def wait(self, timeout: Optional[float] = None, poll_seconds: float = 10.0) -> str:
        """Block until the export reaches a final state (or timeout); return the state."""
        deadline = None if timeout is None else time.monotonic() + timeout
        state = self.state()
        while state not in FINAL_STATES:
            if deadline is not None and time.monotonic() >= deadline:
                break
            time.sleep(poll_seconds)
            state = self.state()
        return state


class LocalExportHandle(ExportHandle):
    def __init__(self, job: ExportJob, future: Future):
        super().__init__(job)
        self.future = future

    def state(self) -> str:
        if self.future.cancelled():
            return CANCELLED
        if not self.future.done():
            return RUNNING if self.future.running() else READY
        return FAILED if self.future.exception() is not None else COMPLETED

    def error(self) -> Optional[str]:
        if self.future.done() and not self.future.cancelled() and self.future.exception() is not None:
            return str(self.future.exception())
        return None

    @property
    def path(self) -> Optional[Path]:
        if self.state() != COMPLETED:
            return None
        return self.future.result()

    def wait(self, timeout: Optional[float] = None, poll_seconds: float = 10.0) -> str:
        futures_wait([self.future], timeout=timeout)
        return self.state()


class DriveExportHandle(ExportHandle):
    def __init__(self, job: ExportJob, task):
        super().__init__(job)
        self.task = task

    def _status(self) -> dict:
        return self.task.status() or {}

    def state(self) -> str:
        return str(self._status().get("state", READY))

    def error(self) -> Optional[str]:
        return self._status().get("error_message")


# -----------------------------------------------------------------------------
# Writers
# -----------------------------------------------------------------------------

def write_csv(job: ExportJob) -> Path:
    """Write a job's rows to <folder>/<description>.csv and return the path."""
    out_dir = Path(job.folder)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{job.description}.csv"
    df = pd.DataFrame([r.as_row() for r in job.rows], columns=list(EXPORT_COLUMNS))
    df[list(job.selectors)].to_csv(out_path, index=False)
    return out_path


class LocalCsvWriter:
    """Queue CSV writes on a small thread pool."""

    def __init__(self, max_workers: int = 1):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="suhi-export")

    def submit(self, job: ExportJob) -> ExportHandle:
        return LocalExportHandle(job, self._executor.submit(write_csv, job))

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class DriveWriter:
    """Start one Earth Engine table export per job."""

    def submit(self, job: ExportJob) -> ExportHandle:
        # Lazy import: only needed when exporting to Drive
        from suhi.backends.earthengine import start_drive_export

        return DriveExportHandle(job, start_drive_export(job))

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def get_writer(config: RunConfig):
    if config.export_target == "drive":
        return DriveWriter()
    return LocalCsvWriter()


# -----------------------------------------------------------------------------
# Export
# -----------------------------------------------------------------------------

def build_job(
    polygon: Polygon,
    records: Sequence[YearRecord],
    config: RunConfig,
    description: Optional[str] = None,
    table: Any = None,
) -> ExportJob:
    return ExportJob(
        description=description or export_description(polygon.name, config.export_prefix),
        folder=config.output_folder,
        rows=tuple(records),
        selectors=EXPORT_COLUMNS,
        polygon_name=polygon.name,
        table=table,
    )


def export(
    polygon: Polygon,
    records: Sequence[YearRecord],
    config: RunConfig,
    writer,
    description: Optional[str] = None,
    table: Any = None,
) -> ExportHandle:
    """Queue the export for `polygon`; returns without waiting.

    `table` is a server-side collection (Drive exports) used instead of `records`.
    """
    return writer.submit(build_job(polygon, records, config, description=description, table=table))
