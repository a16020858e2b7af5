"""vinesite.geo.region

The Region value object handed from the boundary provider to the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True)
class Region:
    """A named analysis area in EPSG:4326. Never mutated by the pipeline."""

    name: str
    geometry: BaseGeometry

    def __post_init__(self):
        if self.geometry is None or self.geometry.is_empty:
            raise ValueError(f"Region '{self.name}' has an empty geometry")
        if not self.geometry.is_valid:
            raise ValueError(f"Region '{self.name}' has an invalid geometry")

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return tuple(self.geometry.bounds)  # type: ignore[return-value]
