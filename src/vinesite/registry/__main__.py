#!/usr/bin/env python3
"""vinesite.registry

Region definition CLI for vinesite.

This is one of several vinesite subsystem CLIs:
- vinesite.registry → region definition and bounds (this file)
- vinesite.ingest   → data ingestion (TerraClimate, DEM)
- vinesite.geo      → raster utilities (clip, mask area)
- vinesite.model    → suitability analysis

vinesite.registry is the source of truth for analysis regions. Every other
subsystem resolves a region name through its GeoPackage.

Responsibilities:
- Fetch the UK ADM2 boundary file
- Clean, dissolve, and normalize region geometries
- Assign stable IDs from regions YAML
- Compute bounding boxes

Outputs:
- data/interim/vectors/regions_uk.gpkg             → canonical geometries
- data/interim/tables/regions_uk_bounds.parquet    → computed bounds

Examples:
  python -m vinesite.registry fetch-boundaries

  python -m vinesite.registry prep-regions \
    --boundaries data/raw/boundaries/gbr_adm2/geoBoundaries-GBR-ADM2.geojson
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from vinesite.config import (
    load_yaml,
    load_regions_yaml,
    DEFAULT_BOUNDS_PARQUET,
    DEFAULT_REGIONS_GPKG,
    DEFAULT_REGIONS_YAML,
    DEFAULT_SOURCES_YAML,
)


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for vinesite.registry."""
    ap = argparse.ArgumentParser(
        prog="vinesite.registry",
        description="Region definition for vinesite (source of truth for analysis regions)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m vinesite.registry  # Region definition (this)
  python -m vinesite.ingest    # Data ingestion
  python -m vinesite.geo       # Raster utilities
  python -m vinesite.model     # Suitability analysis
        """,
    )

    ap.add_argument(
        "--regions-yaml",
        type=Path,
        default=DEFAULT_REGIONS_YAML,
        help=f"Path to regions YAML (default: {DEFAULT_REGIONS_YAML})",
    )
    ap.add_argument(
        "--sources-yaml",
        type=Path,
        default=DEFAULT_SOURCES_YAML,
        help=f"Path to sources YAML (default: {DEFAULT_SOURCES_YAML})",
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without writing files",
    )
    ap.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing output files",
    )

    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser(
        "fetch-boundaries",
        help="Download the UK ADM2 boundary file",
        description="Download the boundary file named in sources.yaml (sources -> boundaries).",
    )

    prep = sub.add_parser(
        "prep-regions",
        help="Prepare regions from the boundary file",
        description="""
Process the boundary file into canonical registry outputs.

This command:
1. Reads region definitions from regions YAML
2. Filters the boundary file to requested regions (by name)
3. Cleans and dissolves geometries
4. Computes bounding boxes
5. Writes canonical outputs
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    prep.add_argument(
        "--boundaries",
        required=True,
        type=Path,
        help="Boundary file (GeoJSON, shapefile, GeoPackage)",
    )
    prep.add_argument(
        "--out-gpkg",
        type=Path,
        default=DEFAULT_REGIONS_GPKG,
        help=f"Output GeoPackage path (default: {DEFAULT_REGIONS_GPKG})",
    )
    prep.add_argument(
        "--out-bounds",
        type=Path,
        default=DEFAULT_BOUNDS_PARQUET,
        help=f"Output bounds parquet (default: {DEFAULT_BOUNDS_PARQUET})",
    )
    prep.add_argument(
        "--layer",
        default="regions",
        help="Layer name in output GeoPackage (default: regions)",
    )
    prep.add_argument(
        "--scheme",
        default="GBR_ADM2",
        help="Region scheme to filter (default: GBR_ADM2)",
    )
    prep.add_argument(
        "--name-field",
        default=None,
        help="Boundary column containing the region name (auto-detected if not specified)",
    )
    prep.add_argument(
        "--area-crs",
        default="EPSG:27700",
        help="CRS for area calculations (default: EPSG:27700 / British National Grid)",
    )
    prep.add_argument(
        "--no-dissolve",
        action="store_false",
        dest="dissolve",
        help="Don't dissolve multipart features",
    )

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_fetch_boundaries(args: argparse.Namespace) -> int:
    sources_yaml = load_yaml(args.sources_yaml)

    from vinesite.registry.fetch_boundaries import fetch_boundaries

    return fetch_boundaries(
        sources_yaml=sources_yaml,
        overwrite=args.overwrite,
        dry_run=args.dry_run,
    )


def _handle_prep_regions(args: argparse.Namespace) -> int:
    """Handle the prep-regions subcommand.

    Writes the canonical GeoPackage, then the bounds parquet computed from it.
    """
    if not args.regions_yaml.exists():
        raise SystemExit(f"Regions YAML not found: {args.regions_yaml}")

    if args.out_gpkg.exists() and not args.overwrite and not args.dry_run:
        print(f"[SKIP] {args.out_gpkg} exists (use --overwrite)")
        return 0

    if args.dry_run:
        print("[dry-run] Would prepare regions:")
        print(f"  Boundary file: {args.boundaries}")
        print(f"  Output GeoPackage: {args.out_gpkg}")
        print(f"  Output bounds: {args.out_bounds}")
        print(f"  Regions YAML: {args.regions_yaml}")
        print(f"  Scheme: {args.scheme}")
        print(f"  Dissolve: {args.dissolve}")
        return 0

    regions = load_regions_yaml(args.regions_yaml)

    # Lazy import to keep CLI startup fast
    from vinesite.registry.prep_regions import prep_regions

    gdf = prep_regions(
        regions=regions,
        boundaries=args.boundaries,
        out_gpkg=args.out_gpkg,
        layer=args.layer,
        scheme=args.scheme,
        name_field=args.name_field,
        area_crs=args.area_crs,
        dissolve=args.dissolve,
    )

    _write_bounds_parquet(gdf, args.out_bounds)

    return 0


def _write_bounds_parquet(gdf, out_path: Path) -> None:
    """Per-region bbox (EPSG:4326) and area table.

    vinesite.ingest reads the AOI from the regions YAML; this table is for
    checking that YAML against the real county outlines.
    """
    cols = [c for c in ("uid", "name", "area_km2") if c in gdf.columns]
    df = gdf[cols].copy()
    df[["xmin", "ymin", "xmax", "ymax"]] = gdf.to_crs("EPSG:4326").bounds.to_numpy()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(out_path, index=False)

    xmin, ymin = df["xmin"].min(), df["ymin"].min()
    xmax, ymax = df["xmax"].max(), df["ymax"].max()
    print(f"Wrote bounds for {len(df)} regions -> {out_path}")
    print(f"  union: [{xmin:.3f}, {ymin:.3f}, {xmax:.3f}, {ymax:.3f}]")


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for vinesite.registry CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "fetch-boundaries": _handle_fetch_boundaries,
        "prep-regions": _handle_prep_regions,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
