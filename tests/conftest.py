#!/usr/bin/env python3

from __future__ import annotations

import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import box

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from vinesite.config import ModelSettings, Settings
from vinesite.geo.raster import GridSpec
from vinesite.geo.region import Region
from vinesite.ingest.providers import (
    InMemoryBoundaryProvider,
    InMemoryGriddedProvider,
    InMemoryVineyardProvider,
    RasterRecord,
)
from vinesite.model.pipeline import AnalysisSession, Providers


# -----------------------------------------------------------------------------
# A small synthetic county
# -----------------------------------------------------------------------------
# Region: lon 0..1, lat 51..51.5.
# Climate: tmean = 12 + 4*lon every month, so GST is suitable for lon >= 0.5
#   and GDD (7 months x 30 days) for lon ~0.63..0.99. 50 mm rain a month.
# DEM: a ridge pattern along rows (15 m per 0.0025° row, 8-row period), so
#   slope is ~3° on the flanks and 0° on crests and troughs.
# Vineyards: small squares in the suitable longitude band.

WORLD_BOUNDS = (-0.2, 50.8, 1.2, 51.7)
CLIMATE_GRID = GridSpec.from_bounds(WORLD_BOUNDS, 0.04)
DEM_GRID = GridSpec.from_bounds(WORLD_BOUNDS, 0.0025)


def climate_records(year: int, warming: float = 0.0, months=range(1, 13)):
    xs, _ = CLIMATE_GRID.cell_centers()
    tmean = 12.0 + 4.0 * xs + warming
    bands = {
        "tmmx": (tmean + 5.0) * 10.0,
        "tmmn": (tmean - 5.0) * 10.0,
        "pr": np.full(CLIMATE_GRID.shape, 50.0),
    }
    return [RasterRecord(date(year, m, 1), bands, CLIMATE_GRID) for m in months]


def dem_record():
    rows = np.arange(DEM_GRID.height) % 8
    tri = np.where(rows <= 4, rows, 8 - rows).astype(float)
    elevation = np.repeat((100.0 + 15.0 * tri)[:, None], DEM_GRID.width, axis=1)
    return RasterRecord(None, {"elevation": elevation}, DEM_GRID)


def vineyard_frame(n: int = 8) -> gpd.GeoDataFrame:
    squares = [
        box(0.70 + 0.03 * i, 51.10 + 0.035 * i, 0.71 + 0.03 * i, 51.11 + 0.035 * i)
        for i in range(n)
    ]
    return gpd.GeoDataFrame({"vineyard": list(range(n))}, geometry=squares, crs="EPSG:4326")


def fast_settings() -> Settings:
    """Coarser grids than the defaults so the suite stays quick."""
    return replace(
        Settings(),
        analysis_scale_m=1000.0,
        model=replace(ModelSettings(), score_scale_m=2500.0),
    )


def make_session(n_vineyards: int = 8, years=(2023,), gridded=None, regions=None) -> AnalysisSession:
    if gridded is None:
        records = []
        for year in years:
            records.extend(climate_records(year))
        gridded = InMemoryGriddedProvider({"terraclimate": records, "dem": [dem_record()]})
    if regions is None:
        regions = {"Testshire": Region("Testshire", box(0.0, 51.0, 1.0, 51.5))}
    providers = Providers(
        boundaries=InMemoryBoundaryProvider(regions),
        gridded=gridded,
        vineyards=InMemoryVineyardProvider({"vineyards": vineyard_frame(n_vineyards)}),
    )
    return AnalysisSession(providers, fast_settings())


@pytest.fixture
def region():
    return Region("Testshire", box(0.0, 51.0, 1.0, 51.5))


@pytest.fixture
def session():
    return make_session()


@pytest.fixture
def factors(session, region):
    from vinesite.features.build_features import compute_factors

    return compute_factors(region, 2023, session.providers.gridded, session.settings)
