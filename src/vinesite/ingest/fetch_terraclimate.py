#!/usr/bin/env python3
"""fetch_terraclimate.py

Fetch TerraClimate yearly files by reading ONLY an AOI window and writing a
small local GeoTIFF subset (12 bands, one per calendar month).

This module is called by `python -m vinesite.ingest terraclimate ...`.

Scope:
- Render URL from sources.yaml + loop vars (var/year)
- Remote window read over HTTP (via GDAL /vsicurl/)
- Write AOI subset GeoTIFF to data/interim/...
- Respect dry_run / overwrite / limit
- No aggregation; growing-season arithmetic lives in vinesite.features

Values are written as stored upstream (temperatures in tenths of a degree);
scaling is applied by the reader using sources.yaml band settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.warp import transform_bounds
from rasterio.windows import from_bounds


BBox = Tuple[float, float, float, float]

# GDAL needs these to avoid listing remote directories on open
_ENV_OPTS = {
    "GDAL_DISABLE_READDIR_ON_OPEN": "EMPTY_DIR",
    "CPL_VSIL_CURL_ALLOWED_EXTENSIONS": ".tif,.nc",
}


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _render_url(template: str, context: Dict[str, Any]) -> str:
    try:
        return template.format(**context)
    except KeyError as e:
        missing = e.args[0]
        raise KeyError(f"Missing key for url_template: {missing}") from e


def _vsi_url(url: str, subdataset: Optional[str] = None) -> str:
    """GDAL path for an HTTP range-request read; NetCDF variables go through the NETCDF: prefix."""
    vsi = url if url.startswith("/vsicurl/") else f"/vsicurl/{url}"
    if subdataset:
        return f'NETCDF:"{vsi}":{subdataset}'
    return vsi


def _read_aoi_window(path: str, aoi_bbox: BBox) -> Optional[Tuple[np.ndarray, Dict[str, Any]]]:
    """Window-read every band of `path` over the AOI.

    Returns (data, profile) ready for a GeoTIFF write, or None when the
    window holds nothing but nodata.
    """
    with rasterio.Env(**_ENV_OPTS):
        with rasterio.open(path) as src:
            # NetCDF grids without a CRS are plain lon/lat
            raster_crs = src.crs or "EPSG:4326"

            bbox = aoi_bbox
            if str(raster_crs).upper() not in ("EPSG:4326", "WGS84"):
                bbox = transform_bounds("EPSG:4326", raster_crs, *aoi_bbox, densify_pts=21)

            win = from_bounds(*bbox, transform=src.transform)
            win = win.round_offsets().round_lengths()

            data = src.read(window=win, boundless=True)

            nodata = src.nodata
            if nodata is not None:
                if np.issubdtype(data.dtype, np.floating) and np.isnan(nodata):
                    all_nodata = np.isnan(data).all()
                else:
                    all_nodata = (data == nodata).all()
                if all_nodata:
                    return None

            profile = {
                "driver": "GTiff",
                "dtype": data.dtype.name,
                "nodata": nodata,
                "crs": raster_crs,
                "height": data.shape[1],
                "width": data.shape[2],
                "transform": src.window_transform(win),
                "count": data.shape[0],
                "tiled": True,
                "compress": "deflate",
            }
    return data, profile


def _write_subset(out_path: Path, data: np.ndarray, profile: Dict[str, Any]) -> None:
    _ensure_dir(out_path.parent)
    with rasterio.open(out_path, "w", **profile) as dst:
        dst.write(data)


def fetch_terraclimate(
    *,
    sources_yaml: Dict[str, Any],
    aoi_bbox: BBox,
    vars_to_get: Sequence[str],
    start_year: int,
    end_year: int,
    overwrite: bool = False,
    dry_run: bool = False,
    limit: Optional[int] = None,
) -> int:
    """Fetch AOI subsets of TerraClimate yearly files.

    Parameters
    ----------
    sources_yaml : dict
        Parsed sources.yaml.
    aoi_bbox : (xmin, ymin, xmax, ymax)
        AOI bounds in EPSG:4326.
    vars_to_get : list[str]
        Upstream variable names (e.g., ["tmax", "tmin", "ppt"]).
    start_year, end_year : int
        Inclusive year range.
    overwrite : bool
        If False, skip outputs that already exist.
    dry_run : bool
        If True, print planned actions without reading/writing.
    limit : int | None
        Debug: only process first N items (counts both skipped and written).
    """
    sources = sources_yaml.get("sources", {})
    cfg = sources.get("terraclimate")
    if not isinstance(cfg, dict):
        raise SystemExit("sources.yaml missing sources: -> terraclimate")

    template = cfg.get("url_template")
    if not template:
        raise SystemExit("TerraClimate config missing url_template")

    name_template = cfg.get("subset_name_template", "TerraClimate_{var}_{year}_AOI.tif")
    out_dir = Path(cfg.get("subset_dir", "data/interim/rasters/clipped/terraclimate"))

    if start_year > end_year:
        raise SystemExit(f"start_year ({start_year}) must be <= end_year ({end_year})")

    base_ctx: Dict[str, Any] = {"base_url": cfg.get("base_url")}
    netcdf = bool(cfg.get("netcdf", True))

    n_planned = 0
    for var in vars_to_get:
        for year in range(int(start_year), int(end_year) + 1):
            n_planned += 1
            if limit is not None and n_planned > int(limit):
                print(f"[TERRACLIMATE] Reached --limit {limit}; stopping")
                return 0

            ctx = dict(base_ctx)
            ctx.update({"var": str(var), "year": int(year)})
            url = _render_url(str(template), ctx)
            out_path = out_dir / str(name_template).format(var=var, year=year)

            if out_path.exists() and not overwrite:
                print(f"[SKIP] {out_path.name}")
                continue

            print(f"[TERRACLIMATE] {var} {year}")
            print(f"  - url: {url}")
            print(f"  - out: {out_path}")

            if dry_run:
                continue

            try:
                result = _read_aoi_window(_vsi_url(url, str(var) if netcdf else None), aoi_bbox)
            except Exception as e:
                raise SystemExit(f"TerraClimate fetch failed for {url}: {e}") from e

            if result is None:
                print("  - warning: AOI window is all nodata; skipping write")
                continue

            data, profile = result
            if data.shape[0] != 12:
                print(f"  - warning: expected 12 monthly bands, got {data.shape[0]}")
            _write_subset(out_path, data, profile)

    print("[TERRACLIMATE] Done")
    return 0


if __name__ == "__main__":
    raise SystemExit(
        "This module is not meant to be run directly. "
        "Use: python -m vinesite.ingest terraclimate --start-year ... --end-year ..."
    )
