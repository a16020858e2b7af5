"""vinesite.geo.points

Uniform random points inside a geometry.

Points are drawn per polygon part, with the number of points per part
drawn multinomially by part area, then rejection-sampled inside each
part's bounding box. The result is uniform over the whole geometry in
lon/lat space and fully determined by the generator passed in.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry

# Candidates drawn per rejection round, as a multiple of the points still needed.
_OVERSAMPLE = 4
_MAX_ROUNDS = 200


def _sample_part(part: BaseGeometry, n: int, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    xmin, ymin, xmax, ymax = part.bounds
    shapely.prepare(part)
    xs_out, ys_out = [], []
    need = n
    for _ in range(_MAX_ROUNDS):
        if need <= 0:
            break
        k = max(need * _OVERSAMPLE, 16)
        xs = rng.uniform(xmin, xmax, k)
        ys = rng.uniform(ymin, ymax, k)
        hit = shapely.contains_xy(part, xs, ys)
        xs_out.append(xs[hit][:need])
        ys_out.append(ys[hit][:need])
        need -= int(min(hit.sum(), need))
    if not xs_out:
        return np.empty(0), np.empty(0)
    return np.concatenate(xs_out), np.concatenate(ys_out)


def random_points(geometry: BaseGeometry, n: int, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """Up to `n` uniformly random (x, y) points inside `geometry`.

    Fewer than `n` points come back only when the geometry has no area or
    a part is too sliver-like to hit within the rejection budget.
    """
    if n <= 0 or geometry is None or geometry.is_empty:
        return np.empty(0), np.empty(0)

    parts = [p for p in shapely.get_parts(geometry) if p.area > 0]
    if not parts:
        return np.empty(0), np.empty(0)

    areas = np.array([p.area for p in parts], dtype=float)
    counts = rng.multinomial(n, areas / areas.sum())

    xs_all, ys_all = [], []
    for part, count in zip(parts, counts):
        if count == 0:
            continue
        xs, ys = _sample_part(part, int(count), rng)
        xs_all.append(xs)
        ys_all.append(ys)
    if not xs_all:
        return np.empty(0), np.empty(0)
    return np.concatenate(xs_all), np.concatenate(ys_all)
