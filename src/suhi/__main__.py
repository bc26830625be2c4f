#!/usr/bin/env python3
"""suhi

CLI for the yearly Summer Urban Heat Island (SUHI) time-series exporter.

For each polygon in a vector source, reduces the Yale YCEO Summer UHI yearly
product (bands Daytime / Nighttime) to a spatial mean per year and exports one
CSV per polygon:

    year,suhi_day,suhi_night
    2004,1.23,0.87

Subcommands:
- run           → extract and queue one export per polygon
- plan          → print polygons, export names and selected years (no reduction)
- verify        → check that the polygon and raster sources resolve
- list-polygons → print polygon names and their export descriptions

Design notes:
- Every option lives in config/suhi.yaml; flags override the YAML.
- Backends are lazy-imported so `plan --backend local` never needs earthengine-api.

Examples:
  # All polygons, local GeoTIFFs, CSVs into exports/
  python -m suhi run --config config/suhi.yaml --output-folder exports --wait

  # One city on Earth Engine, exported to Drive
  python -m suhi run --backend earthengine --export-target drive \
    --polygon-source users/me/cities311 --only Los_Angeles
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from suhi.config import DEFAULT_CONFIG_YAML, RunConfig, load_config
from suhi.errors import ConfigurationError, SourceNotFound


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="suhi",
        description="Yearly Summer UHI time series per polygon",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # --- Global args ---
    ap.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to run config YAML (default: {DEFAULT_CONFIG_YAML} if it exists)",
    )
    ap.add_argument("--polygon-source", default=None, help="Vector file path or Earth Engine asset id")
    ap.add_argument("--polygon-layer", default=None, help="Layer inside the vector file (local backend)")
    ap.add_argument("--name-field", default=None, help="Attribute used to name polygons and files")
    ap.add_argument("--raster-source", default=None, help="GeoTIFF folder or Earth Engine collection id")
    ap.add_argument("--start-year", type=int, default=None, help="First year (inclusive)")
    ap.add_argument("--end-year", type=int, default=None, help="Last year (exclusive)")
    ap.add_argument("--output-folder", default=None, help="Export folder (local dir or Drive folder)")
    ap.add_argument("--scale", dest="reduce_scale_m", type=float, default=None, help="Reduction scale in metres")
    ap.add_argument("--max-pixels", type=float, default=None, help="Pixel budget per reduction")
    ap.add_argument("--backend", choices=["local", "earthengine"], default=None)
    ap.add_argument("--export-target", choices=["local", "drive"], default=None)
    ap.add_argument("--ee-project", default=None, help="Google Cloud project for Earth Engine")

    scope = ap.add_mutually_exclusive_group()
    scope.add_argument("--all", dest="run_all", action="store_const", const=True, default=None,
                       help="Process every polygon in the source")
    scope.add_argument("--only", dest="single_target_name", default=None, metavar="NAME",
                       help="Process only polygons whose name field equals NAME")

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Extract and queue one export per polygon")
    run.add_argument("--wait", action="store_true", help="Wait for every export and report its final state")
    run.add_argument("--poll-seconds", type=float, default=10.0, help="Status poll interval with --wait")
    run.add_argument("--dry-run", action="store_true", help="Same as `plan`")

    sub.add_parser("plan", help="Print polygons, export names and selected years")

    ver = sub.add_parser("verify", help="Check that both sources resolve")
    ver.add_argument("--json", action="store_true", help="Emit JSON to stdout")

    sub.add_parser("list-polygons", help="Print polygon names and export descriptions")

    return ap


def resolve_config(args: argparse.Namespace) -> RunConfig:
    """YAML config (if any) with CLI flags layered on top, validated."""
    path = args.config
    if path is None and DEFAULT_CONFIG_YAML.exists():
        path = DEFAULT_CONFIG_YAML
    config = load_config(path)

    run_all = args.run_all
    if args.single_target_name is not None:
        run_all = False

    return config.with_overrides(
        polygon_source=args.polygon_source,
        polygon_layer=args.polygon_layer,
        name_field=args.name_field,
        raster_source=args.raster_source,
        start_year=args.start_year,
        end_year=args.end_year,
        output_folder=args.output_folder,
        reduce_scale_m=args.reduce_scale_m,
        max_pixels=args.max_pixels,
        backend=args.backend,
        export_target=args.export_target,
        ee_project=args.ee_project,
        run_all=run_all,
        single_target_name=args.single_target_name,
    ).validate()


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_run(args: argparse.Namespace, config: RunConfig) -> int:
    from suhi.pipeline import plan, run

    if args.dry_run:
        plan(config)
        return 0

    summary = run(config, wait=args.wait, poll_seconds=args.poll_seconds)
    if args.wait and summary.failed:
        return 1
    return 0


def _handle_plan(args: argparse.Namespace, config: RunConfig) -> int:
    from suhi.pipeline import plan

    plan(config)
    return 0


def _handle_verify(args: argparse.Namespace, config: RunConfig) -> int:
    """Resolve both sources and report counts. Exit 0 if both resolve."""
    from suhi.backends.base import get_backend

    backend = get_backend(config)
    results = []
    try:
        names = backend.polygon_names(config.polygon_source, config.name_field, config.target_name)
        results.append({"source": config.polygon_source, "kind": "polygons", "ok": True, "count": len(names)})
    except SourceNotFound as e:
        results.append({"source": config.polygon_source, "kind": "polygons", "ok": False, "reason": str(e)})
    try:
        images = backend.load_images(
            config.raster_source, (config.day_band, config.night_band), config.start_year, config.end_year
        )
        results.append({
            "source": config.raster_source,
            "kind": "rasters",
            "ok": True,
            "count": len(images),
            "years": [im.year for im in images],
        })
    except SourceNotFound as e:
        results.append({"source": config.raster_source, "kind": "rasters", "ok": False, "reason": str(e)})

    ok = all(r["ok"] for r in results)
    if args.json:
        print(json.dumps({"ok": ok, "results": results}, indent=2))
    else:
        for r in results:
            status = "OK" if r["ok"] else "MISSING"
            print(f"[{status}] {r['kind']}: {r['source']}")
            if "reason" in r:
                print(f"  - reason: {r['reason']}")
            if "count" in r:
                print(f"  - count: {r['count']}")
        print(f"Overall: {'OK' if ok else 'NOT OK'}")
    return 0 if ok else 2


def _handle_list_polygons(args: argparse.Namespace, config: RunConfig) -> int:
    from suhi.backends.base import get_backend
    from suhi.export import export_description
    from suhi.polygons import assign_descriptions

    backend = get_backend(config)
    names = backend.polygon_names(config.polygon_source, config.name_field, config.target_name)
    descriptions = assign_descriptions(names, lambda n: export_description(n, config.export_prefix))
    for name, desc in zip(names, descriptions):
        print(f"{name}\t{desc}")
    print(f"({len(names)} polygons)")
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "run": _handle_run,
        "plan": _handle_plan,
        "verify": _handle_verify,
        "list-polygons": _handle_list_polygons,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    try:
        config = resolve_config(args)
        return handler(args, config)
    except ConfigurationError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except SourceNotFound as e:
        print(f"Source not found: {e}", file=sys.stderr)
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
