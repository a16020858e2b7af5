#!/usr/bin/env python3
"""vinesite.model

Suitability analysis CLI for vinesite.

This is one of several vinesite subsystem CLIs:
- vinesite.registry → region definition and bounds
- vinesite.ingest   → data ingestion (TerraClimate, DEM)
- vinesite.geo      → raster utilities (clip, mask area)
- vinesite.model    → suitability analysis (this file)

Consumes what the other subsystems wrote:
- regions GeoPackage (vinesite.registry prep-regions)
- TerraClimate / DEM AOI subsets (vinesite.ingest)
- the vineyard file named in sources.yaml

Examples:
  # Full analysis (threshold mask + random forest) for one county
  python -m vinesite.model analyze --region Kent --year 2023 --out-dir data/processed/kent_2023

  # Threshold mask only
  python -m vinesite.model mask --region Kent --year 2023 --out data/processed/kent_2023_mask.tif

  # Suitable area per year, and cells suitable every year
  python -m vinesite.model area-series --region Kent --start-year 2010 --end-year 2023
  python -m vinesite.model persistent --region Kent --start-year 2010 --end-year 2023 --out persistent.tif

  # Which regions have any suitable land
  python -m vinesite.model screen --year 2023
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from vinesite.config import (
    DEFAULT_REGIONS_GPKG,
    DEFAULT_SETTINGS_YAML,
    DEFAULT_SOURCES_YAML,
)


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for vinesite.model."""
    ap = argparse.ArgumentParser(
        prog="vinesite.model",
        description="Grape-growing suitability analysis for vinesite",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m vinesite.registry  # Region definition
  python -m vinesite.ingest    # Data ingestion
  python -m vinesite.geo       # Raster utilities
  python -m vinesite.model     # Suitability analysis (this)
        """,
    )

    ap.add_argument(
        "--sources-yaml",
        type=Path,
        default=DEFAULT_SOURCES_YAML,
        help=f"Path to sources.yaml (default: {DEFAULT_SOURCES_YAML})",
    )
    ap.add_argument(
        "--settings-yaml",
        type=Path,
        default=None,
        help=f"Pipeline settings overrides (default: {DEFAULT_SETTINGS_YAML} if present)",
    )
    ap.add_argument(
        "--regions-gpkg",
        type=Path,
        default=DEFAULT_REGIONS_GPKG,
        help=f"Regions GeoPackage from vinesite.registry (default: {DEFAULT_REGIONS_GPKG})",
    )
    ap.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing output files",
    )
    ap.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log pipeline progress to stderr",
    )

    sub = ap.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Threshold mask + random forest for one region/year")
    analyze.add_argument("--region", required=True, help="Region name")
    analyze.add_argument("--year", type=int, required=True)
    analyze.add_argument("--out-dir", type=Path, default=None, help="Write GeoTIFFs and summary.json here")
    analyze.add_argument("--save-model", action="store_true", help="Also dump the classifier (joblib) to --out-dir")

    mask = sub.add_parser("mask", help="Threshold suitability mask for one region/year")
    mask.add_argument("--region", required=True, help="Region name")
    mask.add_argument("--year", type=int, required=True)
    mask.add_argument("--out", type=Path, default=None, help="Output GeoTIFF")

    series = sub.add_parser("area-series", help="Suitable area (km²) per year")
    series.add_argument("--region", required=True, help="Region name")
    series.add_argument("--start-year", type=int, default=2010)
    series.add_argument("--end-year", type=int, default=2023)
    series.add_argument("--out", type=Path, default=None, help="Output CSV")

    persistent = sub.add_parser("persistent", help="Cells suitable in every year of a range")
    persistent.add_argument("--region", required=True, help="Region name")
    persistent.add_argument("--start-year", type=int, required=True)
    persistent.add_argument("--end-year", type=int, required=True)
    persistent.add_argument("--out", type=Path, required=True, help="Output GeoTIFF")

    screen = sub.add_parser("screen", help="Split regions by whether any land is suitable")
    screen.add_argument("--year", type=int, required=True)
    screen.add_argument("--region", nargs="+", default=None, help="Region names (default: every region in the GeoPackage)")
    screen.add_argument("--json", action="store_true", help="Emit JSON to stdout")

    return ap


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _session(args: argparse.Namespace):
    from vinesite.model.pipeline import session_from_config

    settings_yaml = args.settings_yaml
    if settings_yaml is None and DEFAULT_SETTINGS_YAML.exists():
        settings_yaml = DEFAULT_SETTINGS_YAML
    return session_from_config(args.sources_yaml, settings_yaml, args.regions_gpkg)


def _writable(path: Path, overwrite: bool) -> bool:
    if path.exists() and not overwrite:
        print(f"[SKIP] {path} exists (use --overwrite)")
        return False
    return True


def _summary(result) -> Dict[str, Any]:
    """JSON-ready digest of an AnalysisResult."""
    ml = result.ml_results
    out: Dict[str, Any] = {
        "region": result.region.name,
        "year": result.year,
        "success": ml.success,
    }
    if not ml.success:
        out.update({"reason": ml.reason, "stage": ml.stage})
        return out
    out.update({
        "area_km2": round(ml.area_km2, 3),
        "accuracy": round(ml.accuracy, 4),
        "accuracy_method": ml.accuracy_method,
        "confusion_matrix": ml.confusion_matrix.tolist(),
        "importance_pct": {k: round(v * 100.0, 2) for k, v in ml.importance.items()},
        "positive_count": ml.positive_count,
        "negative_count": ml.negative_count,
        "training_count": ml.training_count,
        "testing_count": ml.testing_count,
    })
    return out


def _print_summary(summary: Dict[str, Any]) -> None:
    print(f"[ANALYZE] {summary['region']} {summary['year']}")
    if not summary["success"]:
        print(f"  - ML skipped at {summary['stage']}: {summary['reason']}")
        print("  - threshold mask is the result")
        return
    print(f"  - samples: {summary['positive_count']} positive / {summary['negative_count']} negative")
    print(f"  - split: {summary['training_count']} training / {summary['testing_count']} testing")
    print(f"  - accuracy: {summary['accuracy'] * 100:.1f}% ({summary['accuracy_method']})")
    print("  - importance:")
    for name, pct in sorted(summary["importance_pct"].items(), key=lambda kv: -kv[1]):
        print(f"      {name:<10} {pct:5.1f}%")
    print(f"  - high suitability area: {summary['area_km2']:.2f} km2")


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_analyze(args: argparse.Namespace) -> int:
    from vinesite.geo.raster import write_raster
    from vinesite.model.pipeline import analyze_suitability

    session = _session(args)
    result = analyze_suitability(session, args.region, args.year)
    summary = _summary(result)
    _print_summary(summary)

    if args.out_dir is None:
        return 0

    out_dir: Path = args.out_dir
    out_dir.mkdir(parents=True, exist_ok=True)
    if not _writable(out_dir / "summary.json", args.overwrite):
        return 0

    write_raster(out_dir / "suitability_mask.tif", result.suitability_mask, dtype="uint8")
    ml = result.ml_results
    if ml.success:
        write_raster(out_dir / "suitability_score.tif", ml.suitability_score)
        write_raster(out_dir / "high_suitability_areas.tif", ml.high_suitability_areas, dtype="uint8")
        ml.sampled_points.to_file(out_dir / "samples.gpkg", layer="samples", driver="GPKG")
        if args.save_model:
            import joblib

            joblib.dump(ml.classifier, out_dir / "classifier.joblib")
            print(f"  - model -> {out_dir / 'classifier.joblib'}")

    with (out_dir / "summary.json").open("w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)
    print(f"Wrote outputs -> {out_dir}")
    return 0


def _handle_mask(args: argparse.Namespace) -> int:
    from vinesite.features.build_features import compute_factors
    from vinesite.geo.area import compute_area
    from vinesite.geo.raster import write_raster
    from vinesite.model.mask import compute_suitability_mask

    session = _session(args)
    region = session.resolve(args.region)
    factors = compute_factors(region, args.year, session.providers.gridded, session.settings)
    mask = compute_suitability_mask(factors, session.settings.thresholds)
    print(f"[MASK] {region.name} {args.year}: {compute_area(mask, region):.2f} km2 suitable")

    if args.out is not None and _writable(args.out, args.overwrite):
        write_raster(args.out, mask, dtype="uint8")
        print(f"Wrote mask -> {args.out}")
    return 0


def _handle_area_series(args: argparse.Namespace) -> int:
    from vinesite.model.timeseries import suitable_area_series

    session = _session(args)
    df = suitable_area_series(session, args.region, range(args.start_year, args.end_year + 1))
    for row in df.itertuples(index=False):
        print(f"  {row.year}: {row.area_km2:10.2f} km2")

    if args.out is not None and _writable(args.out, args.overwrite):
        args.out.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(args.out, index=False)
        print(f"Wrote series -> {args.out}")
    return 0


def _handle_persistent(args: argparse.Namespace) -> int:
    from vinesite.geo.area import compute_area
    from vinesite.geo.raster import write_raster
    from vinesite.model.timeseries import persistent_suitability

    if not _writable(args.out, args.overwrite):
        return 0
    session = _session(args)
    region = session.resolve(args.region)
    raster = persistent_suitability(session, region, args.start_year, args.end_year)
    print(
        f"[PERSISTENT] {region.name} {args.start_year}-{args.end_year}: "
        f"{compute_area(raster, region):.2f} km2 suitable every year"
    )
    write_raster(args.out, raster, dtype="uint8")
    print(f"Wrote raster -> {args.out}")
    return 0


def _handle_screen(args: argparse.Namespace) -> int:
    from vinesite.model.timeseries import screen_regions

    session = _session(args)
    names = args.region or session.providers.boundaries.names()
    screening = screen_regions(session, names, args.year)

    if args.json:
        print(json.dumps({
            "year": args.year,
            "suitable": screening.suitable,
            "unsuitable": screening.unsuitable,
        }, indent=2))
        return 0

    print(f"[SCREEN] {args.year}: {len(screening.suitable)} of {len(names)} regions have suitable land")
    for name in screening.suitable:
        print(f"  [OK] {name}")
    for name in screening.unsuitable:
        print(f"  [--] {name}")
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for vinesite.model CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    handlers = {
        "analyze": _handle_analyze,
        "mask": _handle_mask,
        "area-series": _handle_area_series,
        "persistent": _handle_persistent,
        "screen": _handle_screen,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
