#!/usr/bin/env python3

from __future__ import annotations

import json

import pandas as pd

from suhi.__main__ import main


def _write_config(tmp_path, polygons, rasters, **extra):
    lines = [
        f"polygon_source: {polygons}",
        f"raster_source: {rasters}",
        "start_year: 2010",
        "end_year: 2013",
        "reduce_scale_m: 100",
        f"output_folder: {tmp_path / 'exports'}",
    ]
    lines += [f"{k}: {v}" for k, v in extra.items()]
    path = tmp_path / "suhi.yaml"
    path.write_text("\n".join(lines) + "\n")
    return path


def test_run_writes_csv(tmp_path, uhi_rasters, city_gpkg):
    cfg = _write_config(tmp_path, city_gpkg, uhi_rasters)
    assert main(["--config", str(cfg), "run", "--wait", "--poll-seconds", "0.01"]) == 0
    df = pd.read_csv(tmp_path / "exports" / "YCEO_SUHI_TS_Test_City.csv")
    assert df["year"].tolist() == [2010, 2011]


def test_flags_override_yaml(tmp_path, uhi_rasters, city_gpkg):
    cfg = _write_config(tmp_path, city_gpkg, uhi_rasters)
    out = tmp_path / "other"
    assert main(["--config", str(cfg), "--end-year", "2011", "--output-folder", str(out), "run"]) == 0
    df = pd.read_csv(out / "YCEO_SUHI_TS_Test_City.csv")
    assert df["year"].tolist() == [2010]


def test_only_with_no_match_is_empty_run(tmp_path, uhi_rasters, city_gpkg, capsys):
    cfg = _write_config(tmp_path, city_gpkg, uhi_rasters)
    assert main(["--config", str(cfg), "--only", "Nowhere", "run"]) == 0
    assert "Polygons to process: 0" in capsys.readouterr().out
    assert not (tmp_path / "exports").exists()


def test_config_error_exit_code(tmp_path, uhi_rasters, city_gpkg, capsys):
    cfg = _write_config(tmp_path, city_gpkg, uhi_rasters)
    assert main(["--config", str(cfg), "--start-year", "2013", "run"]) == 2
    assert "Config error" in capsys.readouterr().err


def test_missing_polygon_source_exit_code(tmp_path, uhi_rasters):
    cfg = _write_config(tmp_path, tmp_path / "missing.gpkg", uhi_rasters)
    assert main(["--config", str(cfg), "run"]) == 3


def test_verify_json(tmp_path, uhi_rasters, city_gpkg, capsys):
    cfg = _write_config(tmp_path, city_gpkg, uhi_rasters)
    assert main(["--config", str(cfg), "verify", "--json"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["ok"] is True
    assert [r["count"] for r in report["results"]] == [1, 3]
    assert report["results"][1]["years"] == [2010, 2011, 2012]


def test_verify_reports_missing_rasters(tmp_path, city_gpkg):
    cfg = _write_config(tmp_path, city_gpkg, tmp_path / "no_rasters")
    assert main(["--config", str(cfg), "verify"]) == 2


def test_list_polygons(tmp_path, uhi_rasters, city_gpkg, capsys):
    cfg = _write_config(tmp_path, city_gpkg, uhi_rasters)
    assert main(["--config", str(cfg), "list-polygons"]) == 0
    assert "Test City\tYCEO_SUHI_TS_Test_City" in capsys.readouterr().out


def test_dry_run_writes_nothing(tmp_path, uhi_rasters, city_gpkg, capsys):
    cfg = _write_config(tmp_path, city_gpkg, uhi_rasters)
    assert main(["--config", str(cfg), "run", "--dry-run"]) == 0
    assert "YCEO_SUHI_TS_Test_City" in capsys.readouterr().out
    assert not (tmp_path / "exports").exists()
