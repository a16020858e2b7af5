#!/usr/bin/env python3
"""prep_regions.py

Turn a UK administrative boundary file (ADM2: counties, unitary
authorities) into a clean, filtered GeoPackage based on the regions listed
in a YAML config (regions_uk.yaml).

This module exposes two interfaces:
1. prep_regions() - callable function for programmatic use / CLI dispatch
2. main() - standalone CLI wrapper (for direct invocation)

Example (standalone):
  python src/vinesite/registry/prep_regions.py \
    --regions-yaml config/regions_uk.yaml \
    --boundaries data/raw/boundaries/gbr_adm2/geoBoundaries-GBR-ADM2.geojson \
    --out-gpkg data/interim/vectors/regions_uk.gpkg

Example (via vinesite.registry):
  python -m vinesite.registry prep-regions \
    --boundaries data/raw/boundaries/gbr_adm2/geoBoundaries-GBR-ADM2.geojson

Notes:
- Boundary sources disagree on the name column (ADM2_NAME, shapeName, NAME_2);
  it is inferred unless given.
- Names are normalized so "Kent", " KENT " and "kent" match, as do
  "Brighton & Hove" and "Brighton and Hove".
"""

from __future__ import annotations

import argparse
import re
from pathlib import Path
from typing import Dict, List, Optional

import geopandas as gpd

from vinesite.config import load_regions_yaml


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------
# These are internal utilities. The public interface is prep_regions().

def _normalize_name(x) -> str:
    """Normalize a region name to a comparable key.

    Case-folds, treats '&' as 'and', drops punctuation and collapses
    whitespace. Returns empty string for invalid inputs.
    """
    if x is None:
        return ""
    s = str(x).strip().casefold()
    s = s.replace("&", " and ")
    s = re.sub(r"[^\w\s]", " ", s)
    return " ".join(s.split())


def _pick_name_field(columns: List[str], preferred: Optional[str] = None) -> str:
    """Infer which boundary column holds the region name.

    If preferred is provided and exists, use it. Otherwise score columns by
    likelihood (ADM2 name fields first, generic 'name' fields next).
    """
    if preferred:
        if preferred in columns:
            return preferred
        raise ValueError(f"--name-field '{preferred}' not found. Available columns: {columns}")

    candidates = []
    for c in columns:
        cl = c.lower()
        score = 0
        if "name" in cl:
            score += 3
        if "adm2" in cl or cl.endswith("_2") or "county" in cl:
            score += 3
        if cl == "shapename":
            score += 2
        # ids, codes, and parent-level names are not what we want
        if "id" in cl or "code" in cl or "iso" in cl or "type" in cl:
            score -= 3
        if "adm0" in cl or "adm1" in cl or cl.endswith("_0") or cl.endswith("_1"):
            score -= 2
        candidates.append((score, c))

    candidates.sort(reverse=True)
    best_score, best_col = candidates[0]
    if best_score < 3:
        raise ValueError(
            "Couldn't confidently infer the region name column. "
            "Pass --name-field explicitly.\n"
            f"Columns: {columns}\n"
            f"Top guesses: {candidates[:8]}"
        )
    return best_col


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Fix invalid geometries (self-intersections are common in simplified boundaries)."""
    gdf = gdf.copy()
    gdf["geometry"] = gdf.geometry.make_valid()
    return gdf


def _compute_area_km2(gdf: gpd.GeoDataFrame, area_crs: str = "EPSG:27700") -> List[float]:
    """Compute polygon area in km² using a projected CRS.

    Default CRS is EPSG:27700 (British National Grid); pass another one for
    regions outside Great Britain.
    """
    if gdf.crs is None:
        raise ValueError("Input geometries have no CRS; can't compute area safely.")
    tmp = gdf.to_crs(area_crs)
    return (tmp.geometry.area / 1_000_000.0).astype(float).tolist()


# -----------------------------------------------------------------------------
# Core function (called by CLI or vinesite.registry)
# -----------------------------------------------------------------------------

def prep_regions(
    regions: List[dict],
    boundaries: Path,
    out_gpkg: Path,
    *,
    layer: str = "regions",
    scheme: str = "GBR_ADM2",
    name_field: Optional[str] = None,
    target_crs: str = "EPSG:4326",
    area_crs: str = "EPSG:27700",
    dissolve: bool = True,
    qa_csv: Optional[Path] = None,
) -> gpd.GeoDataFrame:
    """Filter a boundary file to the configured regions and write a GeoPackage.

    Steps:
    1. Filters the boundary file to the requested regions (by normalized name)
    2. Fixes invalid geometries
    3. Optionally dissolves multipart features into one row per uid
    4. Computes areas in km²
    5. Reprojects to target CRS
    6. Writes output GeoPackage (and optional QA CSV)

    Args:
        regions: Region dicts from regions YAML (must have 'name' and 'uid')
        boundaries: Path to a boundary file readable by geopandas
        out_gpkg: Output GeoPackage path
        layer: Layer name in output GeoPackage
        scheme: Which scheme to filter from the regions list
        name_field: Explicit boundary column for the name (auto-detected if None)
        target_crs: CRS for output geometries (default WGS84)
        area_crs: CRS for area calculations (default British National Grid)
        dissolve: If True, dissolve multipart features into one row per uid
        qa_csv: Optional path to write QA summary CSV

    Returns:
        The processed GeoDataFrame (also written to out_gpkg).

    Raises:
        SystemExit: On missing files, no matching regions, or processing errors.
    """
    if not boundaries.exists():
        raise SystemExit(f"Boundary file not found: {boundaries}")

    wanted = [r for r in regions if r.get("scheme", scheme) == scheme]
    if not wanted:
        raise SystemExit(f"No regions found for scheme={scheme}")

    wanted_by_name: Dict[str, dict] = {}
    for r in wanted:
        key = _normalize_name(r.get("name"))
        if not key:
            raise SystemExit(f"Region missing/invalid name: {r}")
        if key in wanted_by_name:
            raise SystemExit(f"Duplicate region name in regions YAML ({key}).")
        if not r.get("uid"):
            raise SystemExit(f"Region missing uid: {r}")
        wanted_by_name[key] = r

    wanted_keys = set(wanted_by_name.keys())

    gdf = gpd.read_file(boundaries)

    if gdf.empty:
        raise SystemExit("Loaded boundary file but it contains zero features. Wrong file?")

    if gdf.crs is None:
        raise SystemExit(
            "Boundary file has no CRS. "
            "Fix that first; everything downstream depends on CRS."
        )

    detected_name_field = _pick_name_field(list(gdf.columns), preferred=name_field)
    gdf["_name_norm"] = gdf[detected_name_field].apply(_normalize_name)

    matches = gdf[gdf["_name_norm"].isin(wanted_keys)]
    if matches.empty:
        sample_names = sorted(set(n for n in gdf[detected_name_field].astype(str).unique().tolist() if n))[:25]
        raise SystemExit(
            "None of the requested regions matched the boundary file.\n"
            f"Using name field: {detected_name_field}\n"
            f"Requested: {sorted(wanted_keys)}\n"
            f"Sample names in file: {sample_names}\n"
            "Try --name-field explicitly if the inferred field is wrong."
        )

    out = matches.copy()

    # Canonical metadata from YAML, regardless of the boundary file's schema
    out["scheme"] = scheme
    out["uid"] = out["_name_norm"].map(lambda k: wanted_by_name[k]["uid"])
    out["name"] = out["_name_norm"].map(lambda k: wanted_by_name[k]["name"])

    out = _make_valid(out)
    out = out[~out.geometry.is_empty & out.geometry.notna()].copy()

    if dissolve:
        meta_cols = ["uid", "scheme", "name"]
        out = out[meta_cols + ["geometry"]].dissolve(by="uid", as_index=False)

    out["area_km2"] = _compute_area_km2(out, area_crs=area_crs)

    # Rasters are read in EPSG:4326, so regions are stored that way
    out = out.to_crs(target_crs)

    keep_cols = ["uid", "scheme", "name", "area_km2", "geometry"]
    keep_cols = [c for c in keep_cols if c in out.columns]
    out = out[keep_cols].copy()

    found = set(out["name"].map(_normalize_name).tolist())
    missing = wanted_keys - found
    if missing:
        raise SystemExit(
            f"Missing requested regions after processing: {sorted(missing)}\n"
            "This usually means the boundary file doesn't include them, or names are spelled differently."
        )

    out_gpkg.parent.mkdir(parents=True, exist_ok=True)
    out.to_file(out_gpkg, layer=layer, driver="GPKG")

    if qa_csv:
        qa_csv.parent.mkdir(parents=True, exist_ok=True)
        qa = out.drop(columns="geometry").copy()
        qa.to_csv(qa_csv, index=False)

    print(f"Wrote {len(out)} features -> {out_gpkg} (layer={layer})")
    print("Selected regions:")
    for _, row in out.drop(columns="geometry").sort_values(["name"]).iterrows():
        print(f"  - {row['uid']} | area_km2={row['area_km2']:.1f} | {row['name']}")
    print(f"(Used name field: {detected_name_field}; output CRS: {target_crs})")

    return out


# -----------------------------------------------------------------------------
# CLI wrapper (standalone invocation)
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for standalone use."""
    ap = argparse.ArgumentParser(
        description="Filter a UK boundary file to the configured regions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument("--regions-yaml", required=True, type=Path, help="YAML listing regions to select.")
    ap.add_argument("--boundaries", required=True, type=Path, help="Boundary file (GeoJSON, shapefile, GeoPackage).")
    ap.add_argument("--out-gpkg", required=True, type=Path, help="Output GeoPackage path.")
    ap.add_argument("--layer", default="regions", help="GeoPackage layer name.")
    ap.add_argument("--scheme", default="GBR_ADM2", help="Which scheme to select from regions YAML.")
    ap.add_argument("--name-field", default=None, help="Boundary column containing the region name.")
    ap.add_argument("--target-crs", default="EPSG:4326", help="CRS for output geometries (default WGS84).")
    ap.add_argument("--area-crs", default="EPSG:27700", help="CRS for area calculations (default British National Grid).")
    ap.add_argument("--no-dissolve", action="store_false", dest="dissolve", help="Keep multipart features as separate rows.")
    ap.add_argument("--qa-csv", default=None, type=Path, help="Optional path to write a QA CSV summary.")
    args = ap.parse_args(argv)

    if not args.regions_yaml.exists():
        raise SystemExit(f"Regions YAML not found: {args.regions_yaml}")

    regions = load_regions_yaml(args.regions_yaml)

    prep_regions(
        regions=regions,
        boundaries=args.boundaries,
        out_gpkg=args.out_gpkg,
        layer=args.layer,
        scheme=args.scheme,
        name_field=args.name_field,
        target_crs=args.target_crs,
        area_crs=args.area_crs,
        dissolve=args.dissolve,
        qa_csv=args.qa_csv,
    )

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
