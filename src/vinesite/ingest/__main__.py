#!/usr/bin/env python3
"""vinesite.ingest

Data ingestion CLI for vinesite.

This is one of several vinesite subsystem CLIs:
- vinesite.registry → region definition (fetch-boundaries, prep-regions)
- vinesite.ingest   → data ingestion (this file)
- vinesite.geo      → raster utilities (clip, mask area)
- vinesite.model    → suitability analysis

Each gridded source ends up as AOI subsets on disk, which is what
vinesite.ingest.providers reads at analysis time. `verify` checks those
subsets (and the manual vineyard file) before a long model run.

Examples:
  # TerraClimate (window-read + write AOI subsets, one file per var/year)
  python -m vinesite.ingest terraclimate --start-year 2010 --end-year 2023

  # Elevation
  python -m vinesite.ingest dem

  # Is everything the model needs for 2010-2023 on disk?
  python -m vinesite.ingest verify --years 2010 2023
  python -m vinesite.ingest verify --source vineyards
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from vinesite.config import (
    load_yaml,
    aoi_from_regions_yaml,
    format_bbox,
    DEFAULT_SOURCES_YAML,
    DEFAULT_REGIONS_YAML,
)


# -----------------------------
# Verify
# -----------------------------

def _file_result(source_id: str, rule: str, paths: Sequence[Path]) -> Dict[str, Any]:
    missing = [str(p) for p in paths if not p.is_file()]
    result: Dict[str, Any] = {
        "source": source_id,
        "ok": not missing,
        "rule": rule,
        "count": len(paths) - len(missing),
    }
    if missing:
        result["reason"] = f"{len(missing)} of {len(paths)} file(s) missing"
        result["missing"] = missing[:5]
    return result


def _yearly_subsets(cfg: Dict[str, Any], years: Sequence[int]) -> List[Path]:
    subset_dir = Path(cfg["subset_dir"])
    template = str(cfg.get("subset_name_template", "{var}_{year}.tif"))
    variables = sorted({str(b.get("var", name)) for name, b in (cfg.get("bands") or {}).items()})
    return [subset_dir / template.format(var=v, year=y) for v in variables for y in years]


def _verify_source(
    source_id: str,
    sources_yaml: Dict[str, Any],
    years: Optional[Sequence[int]] = None,
) -> Dict[str, Any]:
    """Check that one source's inputs are on disk.

    - single files (`local_path`, `subset_path`) must exist
    - with `years`, a `subset_dir` source must hold one subset per band
      variable and year; without it, the directory must be non-empty
    - `cache_dir` must be a non-empty directory
    - anything else (a bare url) has nothing local to check
    """
    cfg = (sources_yaml.get("sources") or {}).get(source_id)
    if cfg is None:
        return {"source": source_id, "ok": False, "reason": "unknown source"}
    if not isinstance(cfg, dict):
        return {"source": source_id, "ok": False, "reason": "bad config block"}

    for key in ("local_path", "subset_path"):
        if cfg.get(key):
            return _file_result(source_id, key, [Path(cfg[key])])

    if cfg.get("subset_dir") and years:
        return _file_result(source_id, "subset_dir", _yearly_subsets(cfg, years))

    for key in ("subset_dir", "cache_dir"):
        if cfg.get(key):
            d = Path(cfg[key])
            n = sum(1 for x in d.rglob("*") if x.is_file()) if d.is_dir() else 0
            result = {"source": source_id, "ok": n > 0, "rule": key, "count": n}
            if n == 0:
                result["reason"] = f"empty or missing dir: {d}"
            return result

    return {"source": source_id, "ok": True, "rule": "none", "count": 0}


def _print_verify(results: List[Dict[str, Any]], ok: bool) -> None:
    for r in results:
        status = "OK" if r["ok"] else "MISSING"
        print(f"[{status}] {r['source']} ({r.get('rule', '?')}, {r.get('count', 0)} file(s))")
        if "reason" in r:
            print(f"  - {r['reason']}")
        for m in r.get("missing", []):
            print(f"    - {m}")
    print("All inputs present" if ok else "Some inputs are missing")


# -----------------------------
# CLI
# -----------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="vinesite.ingest", description="Data ingestion for vinesite")

    ap.add_argument("--sources-yaml", type=Path, default=DEFAULT_SOURCES_YAML, help=f"Path to sources.yaml (default: {DEFAULT_SOURCES_YAML})")
    ap.add_argument("--regions-yaml", type=Path, default=DEFAULT_REGIONS_YAML, help=f"Path to regions YAML; its bounds are the AOI (default: {DEFAULT_REGIONS_YAML})")
    ap.add_argument("--overwrite", action="store_true", help="Rewrite AOI subsets that already exist")
    ap.add_argument("--dry-run", action="store_true", help="Print planned reads/writes only")
    ap.add_argument("--limit", type=int, default=None, help="Stop after N var/year subsets")

    sub = ap.add_subparsers(dest="command", required=True)

    tc = sub.add_parser("terraclimate", help="Write TerraClimate AOI subsets (one GeoTIFF per var/year)")
    tc.add_argument("--vars", nargs="+", default=None, help="Variables to fetch (default: vars_active from sources.yaml)")
    tc.add_argument("--start-year", type=int, required=True)
    tc.add_argument("--end-year", type=int, required=True)

    sub.add_parser("dem", help="Write the elevation AOI subset")

    ver = sub.add_parser("verify", help="Check that the analysis inputs are on disk")
    ver.add_argument("--source", default="all", help="Source id from sources.yaml, or 'all'")
    ver.add_argument("--years", nargs=2, type=int, metavar=("START", "END"), default=None,
                     help="Require a yearly subset for every year in START..END")
    ver.add_argument("--json", action="store_true", help="Emit JSON to stdout")

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    sources_yaml = load_yaml(args.sources_yaml)

    if args.command == "verify":
        sources = sources_yaml.get("sources")
        if not isinstance(sources, dict):
            raise SystemExit("sources.yaml must contain top-level 'sources:' mapping")

        years = range(args.years[0], args.years[1] + 1) if args.years else None
        ids = sorted(sources) if args.source == "all" else [args.source]
        results = [_verify_source(sid, sources_yaml, years) for sid in ids]

        ok = all(r["ok"] for r in results)
        if args.json:
            print(json.dumps({"ok": ok, "results": results}, indent=2))
        else:
            _print_verify(results, ok)
        return 0 if ok else 2

    # Everything else needs the AOI
    regions_yaml = load_yaml(args.regions_yaml)
    aoi_bbox = aoi_from_regions_yaml(regions_yaml)
    if not aoi_bbox:
        raise SystemExit(
            f"Could not resolve AOI bounds from {args.regions_yaml}. "
            "Add top-level 'bounds: [xmin,ymin,xmax,ymax]' or per-region bounds under 'regions:'"
        )
    print(f"AOI bbox from config: {format_bbox(aoi_bbox)}")

    if args.command == "terraclimate":
        src_cfg = sources_yaml.get("sources", {}).get("terraclimate")
        if not isinstance(src_cfg, dict):
            raise SystemExit("sources.yaml missing sources: -> terraclimate")

        if args.vars is None:
            vars_active = src_cfg.get("vars_active")
            if isinstance(vars_active, list) and vars_active:
                vars_to_get = [str(v) for v in vars_active]
            else:
                raise SystemExit("No --vars provided and sources.yaml has no vars_active for terraclimate")
        else:
            vars_to_get = args.vars

        # rasterio is only needed from here on
        from vinesite.ingest.fetch_terraclimate import fetch_terraclimate

        return fetch_terraclimate(
            sources_yaml=sources_yaml,
            aoi_bbox=aoi_bbox,
            vars_to_get=vars_to_get,
            start_year=args.start_year,
            end_year=args.end_year,
            overwrite=args.overwrite,
            dry_run=args.dry_run,
            limit=args.limit,
        )

    if args.command == "dem":
        from vinesite.ingest.fetch_dem import fetch_dem

        return fetch_dem(
            sources_yaml=sources_yaml,
            aoi_bbox=aoi_bbox,
            overwrite=args.overwrite,
            dry_run=args.dry_run,
        )

    raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())
