#!/usr/bin/env python3
"""vinesite.geo

Raster utilities CLI for vinesite.

This is one of several vinesite subsystem CLIs:
- vinesite.registry → region definition and bounds (fetch-boundaries, prep-regions)
- vinesite.ingest   → data ingestion (TerraClimate, DEM)
- vinesite.geo      → raster utilities (this file)
- vinesite.model    → suitability analysis

vinesite.geo handles raster operations on *already-fetched* data:
- Clipping a GeoTIFF to a region (cells outside become nodata)
- Area of a 0/1 mask GeoTIFF within regions

It does NOT handle region definition (that's vinesite.registry).

Design notes:
- Consumes the regions GeoPackage written by vinesite.registry
- Lazy-imports raster modules to keep CLI startup fast

Examples:
  python -m vinesite.geo clip-raster \
    --raster data/interim/rasters/clipped/dem/dem_AOI.tif --region Kent \
    --out data/processed/kent_dem.tif

  python -m vinesite.geo mask-area --mask data/processed/kent_2023/mask.tif --region Kent
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from vinesite.config import DEFAULT_REGIONS_GPKG


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for vinesite.geo."""
    ap = argparse.ArgumentParser(
        prog="vinesite.geo",
        description="Raster utilities for vinesite",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m vinesite.registry  # Region definition
  python -m vinesite.ingest    # Data ingestion
  python -m vinesite.geo       # Raster utilities (this)
  python -m vinesite.model     # Suitability analysis
        """,
    )

    # --- Global args ---
    ap.add_argument(
        "--regions-gpkg",
        type=Path,
        default=DEFAULT_REGIONS_GPKG,
        help=f"Regions GeoPackage from vinesite.registry (default: {DEFAULT_REGIONS_GPKG})",
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

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    clip = sub.add_parser(
        "clip-raster",
        help="Clip a GeoTIFF to a region",
        description="""
Clip one band of a GeoTIFF to a region geometry.

Cells whose centre lies outside the region become nodata; the grid is
cropped to the region bounds.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    clip.add_argument("--raster", required=True, type=Path, help="Input GeoTIFF")
    clip.add_argument("--region", required=True, help="Region name (from the regions GeoPackage)")
    clip.add_argument("--out", required=True, type=Path, help="Output GeoTIFF")
    clip.add_argument("--band", type=int, default=1, help="Band to clip (default: 1)")

    area = sub.add_parser(
        "mask-area",
        help="Area (km²) of a 0/1 mask within regions",
    )
    area.add_argument("--mask", required=True, type=Path, help="Mask GeoTIFF (1 = selected)")
    area.add_argument("--region", nargs="+", required=True, help="Region name(s)")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_clip_raster(args: argparse.Namespace) -> int:
    """Handle the clip-raster subcommand."""
    if not args.raster.exists():
        raise SystemExit(f"Raster not found: {args.raster}")

    if args.out.exists() and not args.overwrite and not args.dry_run:
        print(f"[SKIP] {args.out} exists (use --overwrite)")
        return 0

    if args.dry_run:
        print("[dry-run] Would clip raster:")
        print(f"  Raster: {args.raster} (band {args.band})")
        print(f"  Region: {args.region}")
        print(f"  Output: {args.out}")
        return 0

    from vinesite.geo.raster import read_raster, write_raster
    from vinesite.ingest.providers import GeoPackageBoundaryProvider

    region = GeoPackageBoundaryProvider(args.regions_gpkg).region(args.region)
    raster = read_raster(args.raster, band=args.band, bounds=region.bounds).clip(region.geometry)
    write_raster(args.out, raster)
    print(f"[CLIP] {args.region}: {raster.valid.sum()} cells -> {args.out}")
    return 0


def _handle_mask_area(args: argparse.Namespace) -> int:
    """Handle the mask-area subcommand."""
    if not args.mask.exists():
        raise SystemExit(f"Mask not found: {args.mask}")

    from vinesite.geo.area import compute_area
    from vinesite.geo.raster import read_raster
    from vinesite.ingest.providers import GeoPackageBoundaryProvider

    boundaries = GeoPackageBoundaryProvider(args.regions_gpkg)
    mask = read_raster(args.mask)
    for name in args.region:
        region = boundaries.region(name)
        print(f"[AREA] {region.name}: {compute_area(mask, region):.2f} km2")
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for vinesite.geo CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "clip-raster": _handle_clip_raster,
        "mask-area": _handle_mask_area,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
