#!/usr/bin/env python3
"""vinesite.ingest.providers

Injectable data providers consumed by the suitability pipeline.

Three collaborators, each a Protocol with a file-backed implementation
(reading what `python -m vinesite.ingest` / `vinesite.registry` wrote) and
an in-memory one (tests, notebooks, callers with their own arrays):

- BoundaryProvider:  region name -> Region
- GriddedProvider:   (source id, date range, bbox) -> dated multi-band rasters
                     at the source's native resolution
- VineyardProvider:  dataset id -> GeoDataFrame of vineyard points/polygons

Providers return what they have. Deciding that "nothing" is an error is the
caller's job (see vinesite.features.build_features).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

import geopandas as gpd
import numpy as np
import shapely

from vinesite.errors import ProviderError
from vinesite.geo.raster import GridSpec, Raster, read_stack
from vinesite.geo.region import Region
from vinesite.registry.prep_regions import _normalize_name

log = logging.getLogger(__name__)

BBox = Tuple[float, float, float, float]


# -----------------------------------------------------------------------------
# Gridded data
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class RasterRecord:
    """Named bands sharing one grid; `when` is None for static sources (e.g. a DEM)."""

    when: Optional[date]
    bands: Mapping[str, np.ndarray]
    grid: GridSpec

    def band(self, name: str) -> Raster:
        if name not in self.bands:
            raise ProviderError(f"Band '{name}' not present (have: {sorted(self.bands)})")
        return Raster(np.asarray(self.bands[name], dtype=float), self.grid, name)


class GriddedProvider(Protocol):
    def read(self, source_id: str, start: date, end: date, bounds: BBox) -> List[RasterRecord]:
        ...


def _in_range(when: Optional[date], start: date, end: date) -> bool:
    return when is None or start <= when <= end


@dataclass
class InMemoryGriddedProvider:
    records: Dict[str, List[RasterRecord]] = field(default_factory=dict)

    def read(self, source_id: str, start: date, end: date, bounds: BBox) -> List[RasterRecord]:
        if source_id not in self.records:
            raise ProviderError(f"Unknown gridded source: {source_id}")
        return [r for r in self.records[source_id] if _in_range(r.when, start, end)]


class LocalGriddedProvider:
    """Reads the AOI GeoTIFF subsets written by vinesite.ingest.

    Monthly sources: one file per (var, year), one band per calendar month.
    Static sources: one file, bands picked by index.
    """

    def __init__(self, sources_yaml: Dict[str, Any]):
        sources = sources_yaml.get("sources")
        if not isinstance(sources, dict):
            raise SystemExit("sources.yaml must contain top-level 'sources:' mapping")
        self._sources = sources

    def _cfg(self, source_id: str) -> Dict[str, Any]:
        cfg = self._sources.get(source_id)
        if not isinstance(cfg, dict):
            raise ProviderError(f"sources.yaml missing sources: -> {source_id}")
        if not isinstance(cfg.get("bands"), dict) or not cfg["bands"]:
            raise ProviderError(f"Source '{source_id}' has no 'bands:' mapping")
        return cfg

    def read(self, source_id: str, start: date, end: date, bounds: BBox) -> List[RasterRecord]:
        cfg = self._cfg(source_id)
        kind = cfg.get("kind", "monthly")
        if kind == "static":
            return self._read_static(source_id, cfg, bounds)
        if kind == "monthly":
            return self._read_monthly(source_id, cfg, start, end, bounds)
        raise ProviderError(f"Source '{source_id}' has unknown kind: {kind}")

    def _read_static(self, source_id: str, cfg: Dict[str, Any], bounds: BBox) -> List[RasterRecord]:
        path = Path(cfg.get("subset_path", ""))
        if not path.is_file():
            log.warning(f"No subset for static source '{source_id}' at {path}")
            return []
        stack, grid = read_stack(path, bounds=bounds)
        bands = {}
        for name, spec in cfg["bands"].items():
            idx = int(spec.get("band", 1)) - 1
            if idx >= stack.shape[0]:
                raise ProviderError(f"{path} has no band {idx + 1} for '{name}'")
            bands[name] = stack[idx] * float(spec.get("scale", 1.0))
        return [RasterRecord(None, bands, grid)]

    def _read_monthly(
        self, source_id: str, cfg: Dict[str, Any], start: date, end: date, bounds: BBox
    ) -> List[RasterRecord]:
        subset_dir = Path(cfg.get("subset_dir", f"data/interim/rasters/clipped/{source_id}"))
        template = cfg.get("subset_name_template")
        if not template:
            raise ProviderError(f"Source '{source_id}' missing subset_name_template")

        records: List[RasterRecord] = []
        for year in range(start.year, end.year + 1):
            stacks: Dict[str, np.ndarray] = {}
            grid: Optional[GridSpec] = None
            for name, spec in cfg["bands"].items():
                path = subset_dir / str(template).format(var=spec.get("var", name), year=year)
                if not path.is_file():
                    log.warning(f"[{source_id}] missing subset {path}; skipping {year}")
                    stacks = {}
                    break
                stack, g = read_stack(path, bounds=bounds)
                if grid is not None and g != grid:
                    raise ProviderError(f"[{source_id}] {path} is not on the same grid as its siblings")
                grid = g
                stacks[name] = stack * float(spec.get("scale", 1.0))
            if not stacks or grid is None:
                continue

            n_months = min(s.shape[0] for s in stacks.values())
            for month in range(1, min(n_months, 12) + 1):
                when = date(year, month, 1)
                if not _in_range(when, start, end):
                    continue
                bands = {name: s[month - 1] for name, s in stacks.items()}
                records.append(RasterRecord(when, bands, grid))
        return records


# -----------------------------------------------------------------------------
# Vineyards
# -----------------------------------------------------------------------------

class VineyardProvider(Protocol):
    def vineyards(self, dataset_id: str) -> gpd.GeoDataFrame:
        ...


def _to_wgs84(gdf: gpd.GeoDataFrame, what: str) -> gpd.GeoDataFrame:
    if gdf.crs is None:
        raise ProviderError(f"{what} has no CRS; can't align it with the rasters")
    if gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs("EPSG:4326")
    return gdf


@dataclass
class InMemoryVineyardProvider:
    datasets: Dict[str, gpd.GeoDataFrame] = field(default_factory=dict)

    def vineyards(self, dataset_id: str) -> gpd.GeoDataFrame:
        if dataset_id not in self.datasets:
            raise ProviderError(f"Unknown vineyard dataset: {dataset_id}")
        return _to_wgs84(self.datasets[dataset_id], f"Vineyard dataset '{dataset_id}'")


class FileVineyardProvider:
    """Vector file (GeoPackage, GeoJSON, shapefile) named in sources.yaml."""

    def __init__(self, sources_yaml: Dict[str, Any]):
        self._sources = sources_yaml.get("sources", {})

    def vineyards(self, dataset_id: str) -> gpd.GeoDataFrame:
        cfg = self._sources.get(dataset_id)
        if not isinstance(cfg, dict) or not cfg.get("local_path"):
            raise ProviderError(f"sources.yaml missing sources: -> {dataset_id} -> local_path")
        path = Path(cfg["local_path"])
        if not path.exists():
            raise ProviderError(f"Vineyard file not found: {path}")
        gdf = gpd.read_file(path, layer=cfg.get("layer")) if cfg.get("layer") else gpd.read_file(path)
        gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
        return _to_wgs84(gdf, str(path))


# -----------------------------------------------------------------------------
# Boundaries
# -----------------------------------------------------------------------------

class BoundaryProvider(Protocol):
    def region(self, name: str) -> Region:
        ...


@dataclass
class InMemoryBoundaryProvider:
    regions: Dict[str, Region] = field(default_factory=dict)

    def region(self, name: str) -> Region:
        wanted = _normalize_name(name)
        for key, region in self.regions.items():
            if _normalize_name(key) == wanted:
                return region
        raise ProviderError(f"Unknown region: {name}")

    def names(self) -> List[str]:
        return list(self.regions)


class GeoPackageBoundaryProvider:
    """Regions from the registry GeoPackage (vinesite.registry prep-regions)."""

    def __init__(self, gpkg: Path, layer: str = "regions", name_field: str = "name"):
        self.gpkg = Path(gpkg)
        self.layer = layer
        self.name_field = name_field

    def _load(self) -> gpd.GeoDataFrame:
        if not self.gpkg.exists():
            raise ProviderError(
                f"Regions GeoPackage not found: {self.gpkg}. "
                "Run: python -m vinesite.registry prep-regions"
            )
        gdf = gpd.read_file(self.gpkg, layer=self.layer)
        if self.name_field not in gdf.columns:
            raise ProviderError(f"{self.gpkg} layer '{self.layer}' has no '{self.name_field}' column")
        return _to_wgs84(gdf, str(self.gpkg))

    def names(self) -> List[str]:
        return sorted(self._load()[self.name_field].astype(str).unique().tolist())

    def region(self, name: str) -> Region:
        gdf = self._load()
        wanted = _normalize_name(name)
        rows = gdf[gdf[self.name_field].map(_normalize_name) == wanted]
        if rows.empty:
            raise ProviderError(f"Region '{name}' not found in {self.gpkg}")
        geometry = shapely.make_valid(shapely.union_all(rows.geometry.values))
        return Region(str(rows.iloc[0][self.name_field]), geometry)
