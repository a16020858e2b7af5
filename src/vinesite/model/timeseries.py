"""vinesite.model.timeseries

Threshold-mask summaries across years and regions.

These only need the factors and the mask, so they never touch the vineyard
data or the classifier:
- suitable_area_series: km² of suitable land per year
- persistent_suitability: cells suitable in every year with data
- screen_regions: which regions have any suitable cell in a year
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import shapely

from vinesite.features.build_features import compute_factors
from vinesite.geo.area import compute_area
from vinesite.geo.raster import Raster
from vinesite.geo.region import Region
from vinesite.model.mask import compute_suitability_mask
from vinesite.model.results import BUILD_FACTORS, BUILD_MASK

log = logging.getLogger(__name__)

DEFAULT_YEARS = range(2010, 2024)


def _mask_for(session, region: Region, year: int) -> Raster:
    session.token.check(BUILD_FACTORS)
    factors = compute_factors(region, year, session.providers.gridded, session.settings)
    session.token.check(BUILD_MASK)
    return compute_suitability_mask(factors, session.settings.thresholds)


def suitable_area_series(session, region: Union[Region, str], years: Iterable[int] = DEFAULT_YEARS) -> pd.DataFrame:
    """Area (km²) of the threshold suitability mask for each year."""
    region = session.resolve(region)
    records = []
    for year in years:
        mask = _mask_for(session, region, int(year))
        records.append({"year": int(year), "area_km2": compute_area(mask, region)})
    return pd.DataFrame(records, columns=["year", "area_km2"])


def persistent_suitability(session, region: Union[Region, str], start_year: int, end_year: int) -> Raster:
    """1 where every year with data is suitable, 0 where any year is not, NaN where no year has data."""
    if start_year > end_year:
        raise ValueError(f"start_year ({start_year}) must be <= end_year ({end_year})")
    region = session.resolve(region)

    all_suitable: Optional[np.ndarray] = None
    any_valid: Optional[np.ndarray] = None
    grid = None
    for year in range(start_year, end_year + 1):
        mask = _mask_for(session, region, year)
        if grid is None:
            grid = mask.grid
            all_suitable = np.ones(grid.shape, dtype=bool)
            any_valid = np.zeros(grid.shape, dtype=bool)
        # a missing year doesn't break persistence
        all_suitable &= np.where(mask.valid, mask.data == 1.0, True)
        any_valid |= mask.valid

    data = np.where(any_valid, all_suitable.astype(float), np.nan)
    return Raster(data, grid, "persistent_suitability")


@dataclass(frozen=True)
class RegionScreening:
    suitable: List[str]
    unsuitable: List[str]
    unsuitable_geometry: Optional[shapely.Geometry]


def screen_regions(session, regions: Sequence[Union[Region, str]], year: int) -> RegionScreening:
    """Split regions by whether their threshold mask has any suitable cell in `year`."""
    suitable: List[str] = []
    unsuitable: List[Region] = []
    for r in regions:
        region = session.resolve(r)
        mask = _mask_for(session, region, year)
        if mask.as_bool().any():
            suitable.append(region.name)
        else:
            unsuitable.append(region)
    log.info(f"Screened {len(regions)} regions for {year}: {len(suitable)} with suitable land")

    geometry = shapely.union_all([r.geometry for r in unsuitable]) if unsuitable else None
    return RegionScreening(suitable, [r.name for r in unsuitable], geometry)
