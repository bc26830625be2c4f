#!/usr/bin/env python3

from __future__ import annotations

import pandas as pd
import pytest

from suhi.config import RunConfig
from suhi.export import (
    COMPLETED,
    FAILED,
    ExportHandle,
    LocalCsvWriter,
    build_job,
    export,
    export_description,
    sanitize,
)
from suhi.models import Polygon, YearRecord

NAMES = ["Los Angeles", "Winston-Salem", "a/b c", "  ", "Already_Safe", "x//y  z", ""]


@pytest.mark.parametrize("name", NAMES)
def test_sanitize_idempotent_and_safe(name):
    once = sanitize(name)
    assert sanitize(once) == once
    assert " " not in once
    assert "/" not in once
    assert len(once) == len(name)


def test_sanitize_replaces_every_occurrence():
    assert sanitize("New York / Newark NJ") == "New_York___Newark_NJ"


def test_export_description():
    assert export_description("Test City", "YCEO_SUHI_TS") == "YCEO_SUHI_TS_Test_City"


def test_build_job_copies_records():
    cfg = RunConfig(polygon_source="p", output_folder="out")
    records = [YearRecord(2010, 1.0, 0.5)]
    job = build_job(Polygon(name="Test City", geometry=None), records, cfg)
    records.append(YearRecord(2011, 2.0, 1.5))
    assert job.rows == (YearRecord(2010, 1.0, 0.5),)
    assert job.description == "YCEO_SUHI_TS_Test_City"
    assert job.folder == "out"
    assert job.selectors == ("year", "suhi_day", "suhi_night")


def test_local_writer_writes_csv(tmp_path):
    cfg = RunConfig(polygon_source="p", output_folder=str(tmp_path / "exports"))
    records = [YearRecord(2004, 1.23, 0.87), YearRecord(2005, 1.31, 0.90)]
    with LocalCsvWriter() as writer:
        handle = export(Polygon(name="Los Angeles", geometry=None), records, cfg, writer)
        assert handle.wait(timeout=30) == COMPLETED

    out = tmp_path / "exports" / "YCEO_SUHI_TS_Los_Angeles.csv"
    assert handle.path == out
    assert out.read_text().splitlines()[0] == "year,suhi_day,suhi_night"
    df = pd.read_csv(out)
    assert df["year"].tolist() == [2004, 2005]
    assert df["suhi_day"].tolist() == pytest.approx([1.23, 1.31])
    assert df["suhi_night"].tolist() == pytest.approx([0.87, 0.90])


def test_local_writer_reports_failure(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("")
    cfg = RunConfig(polygon_source="p", output_folder=str(blocker))
    with LocalCsvWriter() as writer:
        handle = export(Polygon(name="X", geometry=None), [YearRecord(2010, 1.0, 1.0)], cfg, writer)
        assert handle.wait(timeout=30) == FAILED
    assert handle.error()
    assert handle.path is None


def test_export_handle_requires_state():
    job = build_job(Polygon(name="X", geometry=None), [], RunConfig(polygon_source="p"))
    with pytest.raises(TypeError):
        ExportHandle(job)

    class NoState(ExportHandle):
        pass

    with pytest.raises(TypeError):
        NoState(job)
