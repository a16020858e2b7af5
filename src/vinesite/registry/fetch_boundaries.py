#!/usr/bin/env python3
"""fetch_boundaries.py

Fetch UK administrative boundaries (ADM2).

This handler:
- Renders the download URL from sources.yaml config
- Downloads to data/raw/boundaries/<dataset>/
- Extracts ZIP archives (shapefile bundles); GeoJSON is used as-is
- Respects --dry-run and --overwrite

Called by:
  python -m vinesite.registry fetch-boundaries

The downloaded file is then processed by prep_regions.py.
"""

from __future__ import annotations

import urllib.request
import zipfile
from pathlib import Path
from typing import Any, Dict


def _render_url(template: str, context: Dict[str, Any]) -> str:
    """Render URL template with context dict."""
    try:
        return template.format(**context)
    except KeyError as e:
        raise KeyError(f"Missing key for boundaries url_template: {e.args[0]}") from e


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _extract_zip(zip_path: Path, extract_to: Path) -> Path:
    """Extract a ZIP into a subdirectory named after it; returns that directory."""
    extract_dir = extract_to / zip_path.stem
    _ensure_dir(extract_dir)

    print(f"[BOUNDARIES] Extracting to: {extract_dir}")
    with zipfile.ZipFile(zip_path, "r") as zf:
        print(f"[BOUNDARIES] ZIP contains {len(zf.namelist())} files")
        zf.extractall(extract_dir)
    print("[BOUNDARIES] Extraction complete")
    return extract_dir


def fetch_boundaries(
    *,
    sources_yaml: Dict[str, Any],
    overwrite: bool = False,
    dry_run: bool = False,
) -> int:
    """Download the boundary file named in sources.yaml (and unzip it if needed).

    Parameters
    ----------
    sources_yaml : dict
        Parsed sources.yaml
    overwrite : bool
        If True, re-download even if the file exists
    dry_run : bool
        If True, print planned actions without downloading

    Returns
    -------
    int
        Exit code (0 = success)
    """
    sources = sources_yaml.get("sources", {})
    cfg = sources.get("boundaries")
    if not isinstance(cfg, dict):
        raise SystemExit("sources.yaml missing sources: -> boundaries")

    template = cfg.get("url_template")
    if not template:
        raise SystemExit("boundaries config missing url_template")

    cache_dir = Path(cfg.get("cache_dir", "data/raw/boundaries/gbr_adm2"))

    context: Dict[str, Any] = {
        "base_url": cfg.get("base_url"),
        "country": cfg.get("country", "GBR"),
        "level": cfg.get("level", "ADM2"),
    }
    url = _render_url(str(template), context)
    out_path = cache_dir / Path(url).name
    is_zip = out_path.suffix.lower() == ".zip"

    if out_path.exists() and not overwrite:
        print(f"[SKIP] Boundary file already exists: {out_path}")
        if is_zip and not (cache_dir / out_path.stem).exists() and not dry_run:
            _extract_zip(out_path, cache_dir)
        return 0

    print(f"[BOUNDARIES] URL: {url}")
    print(f"[BOUNDARIES] out: {out_path}")

    if dry_run:
        print("[DRY-RUN] No download performed")
        if is_zip:
            print(f"[DRY-RUN] Would extract to: {cache_dir / out_path.stem}")
        return 0

    _ensure_dir(cache_dir)
    try:
        print("[BOUNDARIES] Downloading...")
        urllib.request.urlretrieve(url, out_path)
        print("[BOUNDARIES] Download complete")
    except Exception as e:
        raise SystemExit(f"Failed to download boundaries from {url}: {e}") from e

    if is_zip:
        _extract_zip(out_path, cache_dir)

    return 0


if __name__ == "__main__":
    raise SystemExit(
        "This module is not meant to be run directly. "
        "Use: python -m vinesite.registry fetch-boundaries"
    )
