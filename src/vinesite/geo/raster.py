#!/usr/bin/env python3
"""vinesite.geo.raster

In-memory raster model shared by every pipeline stage.

A Raster is a 2-D float array on a GridSpec (north-up affine transform,
shape, CRS). Missing data is NaN everywhere: outside the region, where a
source has no value, and where an upstream input was missing. Boolean
layers (masks) are stored as 1.0 / 0.0 / NaN so "unsuitable" and "unknown"
stay distinguishable.

Design notes:
- Grids are built from bounds + a resolution in degrees; nominal scales in
  metres are converted with scale_to_degrees().
- Resampling goes through rasterio.warp.reproject on in-memory arrays
  (nearest neighbour unless told otherwise).
- Clipping tests pixel centres against the region geometry.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from rasterio.transform import Affine, from_origin
from rasterio.warp import Resampling, reproject
from rasterio.windows import from_bounds
from shapely.geometry import mapping

BBox = Tuple[float, float, float, float]

# Length of one degree of latitude (and of longitude at the equator), metres.
METRES_PER_DEGREE = 111_320.0


def scale_to_degrees(scale_m: float) -> float:
    """Convert a nominal pixel scale in metres to degrees."""
    if scale_m <= 0:
        raise ValueError(f"scale must be positive, got {scale_m}")
    return float(scale_m) / METRES_PER_DEGREE


@dataclass(frozen=True)
class GridSpec:
    transform: Affine
    width: int
    height: int
    crs: str = "EPSG:4326"

    @classmethod
    def from_bounds(cls, bounds: BBox, resolution: float, crs: str = "EPSG:4326") -> "GridSpec":
        """Smallest grid of square `resolution` cells covering `bounds`."""
        xmin, ymin, xmax, ymax = bounds
        if xmax <= xmin or ymax <= ymin:
            raise ValueError(f"Degenerate bounds: {bounds}")
        width = max(1, int(math.ceil((xmax - xmin) / resolution - 1e-9)))
        height = max(1, int(math.ceil((ymax - ymin) / resolution - 1e-9)))
        return cls(from_origin(xmin, ymax, resolution, resolution), width, height, crs)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def bounds(self) -> BBox:
        t = self.transform
        x0, y0 = t.c, t.f
        x1 = x0 + t.a * self.width
        y1 = y0 + t.e * self.height
        return (min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))

    @property
    def is_geographic(self) -> bool:
        return CRS.from_user_input(self.crs).is_geographic

    def cell_centers(self) -> Tuple[np.ndarray, np.ndarray]:
        """(xs, ys) arrays of cell-centre coordinates, each shaped like the grid."""
        t = self.transform
        cols = np.arange(self.width) + 0.5
        rows = np.arange(self.height) + 0.5
        cc, rr = np.meshgrid(cols, rows)
        xs = t.a * cc + t.b * rr + t.c
        ys = t.d * cc + t.e * rr + t.f
        return xs, ys

    def index(self, xs: Sequence[float], ys: Sequence[float]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Row/col indices of the cells containing each point, plus an in-grid flag."""
        inv = ~self.transform
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        cols = np.floor(inv.a * xs + inv.b * ys + inv.c).astype(int)
        rows = np.floor(inv.d * xs + inv.e * ys + inv.f).astype(int)
        inside = (rows >= 0) & (rows < self.height) & (cols >= 0) & (cols < self.width)
        return rows, cols, inside

    def region_mask(self, geometry) -> np.ndarray:
        """True for cells whose centre falls inside `geometry`."""
        if geometry is None or geometry.is_empty:
            return np.zeros(self.shape, dtype=bool)
        return geometry_mask(
            [mapping(geometry)],
            out_shape=self.shape,
            transform=self.transform,
            invert=True,
        )


@dataclass(frozen=True)
class Raster:
    data: np.ndarray
    grid: GridSpec
    name: str = ""

    def __post_init__(self):
        if self.data.shape != self.grid.shape:
            raise ValueError(
                f"Raster '{self.name}' data shape {self.data.shape} does not match grid {self.grid.shape}"
            )

    @classmethod
    def full(cls, grid: GridSpec, value: float = np.nan, name: str = "") -> "Raster":
        return cls(np.full(grid.shape, value, dtype=float), grid, name)

    @property
    def valid(self) -> np.ndarray:
        return np.isfinite(self.data)

    def renamed(self, name: str) -> "Raster":
        return Raster(self.data, self.grid, name)

    def as_bool(self) -> np.ndarray:
        """Mask view: True only where the value is exactly 1 (NaN counts as False)."""
        return self.data == 1.0

    def clip(self, geometry) -> "Raster":
        inside = self.grid.region_mask(geometry)
        return Raster(np.where(inside, self.data, np.nan), self.grid, self.name)

    def resample(self, grid: GridSpec, resampling: Resampling = Resampling.nearest) -> "Raster":
        """Reproject onto `grid`; cells the source does not cover become NaN."""
        if grid == self.grid:
            return self
        dst = np.full(grid.shape, np.nan, dtype="float64")
        reproject(
            source=np.asarray(self.data, dtype="float64"),
            destination=dst,
            src_transform=self.grid.transform,
            src_crs=self.grid.crs,
            src_nodata=np.nan,
            dst_transform=grid.transform,
            dst_crs=grid.crs,
            dst_nodata=np.nan,
            resampling=resampling,
        )
        return Raster(dst, grid, self.name)

    def sample(self, xs: Sequence[float], ys: Sequence[float]) -> np.ndarray:
        """Nearest-cell values at the given points; NaN off-grid."""
        rows, cols, inside = self.grid.index(xs, ys)
        out = np.full(rows.shape, np.nan, dtype=float)
        out[inside] = self.data[rows[inside], cols[inside]]
        return out


def latitude_raster(grid: GridSpec) -> Raster:
    """Per-pixel latitude (cell centre) for a geographic grid."""
    _, ys = grid.cell_centers()
    return Raster(ys.astype(float), grid, "latitude")


# -----------------------------------------------------------------------------
# GeoTIFF I/O
# -----------------------------------------------------------------------------

def read_stack(path: Path, bounds: Optional[BBox] = None) -> Tuple[np.ndarray, GridSpec]:
    """Read every band of a GeoTIFF (optionally only an AOI window).

    Returns a (bands, rows, cols) float array with nodata as NaN, and its grid.
    `bounds` are in the file's CRS.
    """
    with rasterio.open(path) as src:
        window = None
        transform = src.transform
        if bounds is not None:
            # GDAL prefers integer windows
            window = from_bounds(*bounds, transform=src.transform)
            window = window.round_offsets().round_lengths()
            transform = src.window_transform(window)
        data = src.read(window=window, boundless=window is not None, masked=True)
        arr = np.ma.filled(data.astype("float64"), np.nan)
        crs = src.crs.to_string() if src.crs else "EPSG:4326"
    grid = GridSpec(transform, arr.shape[2], arr.shape[1], crs)
    return arr, grid


def read_raster(path: Path, band: int = 1, bounds: Optional[BBox] = None, name: str = "") -> Raster:
    """Read one band (optionally an AOI window) of a GeoTIFF as a Raster."""
    stack, grid = read_stack(path, bounds=bounds)
    return Raster(stack[band - 1], grid, name or Path(path).stem)


def write_raster(path: Path, raster: Raster, dtype: str = "float32") -> Path:
    """Write a Raster as a single-band, tiled, deflate-compressed GeoTIFF."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    profile = dict(
        driver="GTiff",
        height=raster.grid.height,
        width=raster.grid.width,
        count=1,
        dtype=dtype,
        crs=raster.grid.crs,
        transform=raster.grid.transform,
        nodata=np.nan if np.dtype(dtype).kind == "f" else 255,
        tiled=True,
        compress="deflate",
    )
    data = raster.data
    if np.dtype(dtype).kind != "f":
        data = np.where(np.isfinite(data), data, 255)
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data.astype(dtype), 1)
        if raster.name:
            dst.set_band_description(1, raster.name)
    return path
