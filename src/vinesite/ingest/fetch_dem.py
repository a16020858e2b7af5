#!/usr/bin/env python3
"""fetch_dem.py

Window-read the elevation COG over the AOI and write a local GeoTIFF subset.

Called by:
  python -m vinesite.ingest dem

The subset lands at sources.yaml `dem.subset_path`, which is where
LocalGriddedProvider reads the static elevation source from.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Tuple

from vinesite.ingest.fetch_terraclimate import _read_aoi_window, _vsi_url, _write_subset


BBox = Tuple[float, float, float, float]


def fetch_dem(
    *,
    sources_yaml: Dict[str, Any],
    aoi_bbox: BBox,
    overwrite: bool = False,
    dry_run: bool = False,
) -> int:
    """Fetch the AOI subset of the DEM named in sources.yaml (sources -> dem)."""
    sources = sources_yaml.get("sources", {})
    cfg = sources.get("dem")
    if not isinstance(cfg, dict):
        raise SystemExit("sources.yaml missing sources: -> dem")

    url = cfg.get("url")
    if not url:
        raise SystemExit(
            "DEM config has no url. Set sources -> dem -> url to a GeoTIFF/COG, "
            "or place a subset at sources -> dem -> subset_path yourself."
        )

    out_path = Path(cfg.get("subset_path", "data/interim/rasters/clipped/dem/dem_AOI.tif"))

    if out_path.exists() and not overwrite:
        print(f"[SKIP] {out_path.name}")
        return 0

    print("[DEM] AOI window read")
    print(f"  - url: {url}")
    print(f"  - out: {out_path}")

    if dry_run:
        return 0

    try:
        result = _read_aoi_window(_vsi_url(str(url)), aoi_bbox)
    except Exception as e:
        raise SystemExit(f"DEM fetch failed for {url}: {e}") from e

    if result is None:
        raise SystemExit(f"DEM window over the AOI is all nodata: {url}")

    data, profile = result
    _write_subset(out_path, data, profile)
    print("[DEM] Done")
    return 0


if __name__ == "__main__":
    raise SystemExit(
        "This module is not meant to be run directly. "
        "Use: python -m vinesite.ingest dem"
    )
