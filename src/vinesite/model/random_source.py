"""vinesite.model.random_source

Seeded randomness for the pipeline, injected through the analysis session.

Each stream (positive samples, negative samples, model, train/test split)
has its own documented seed. Every call builds a fresh PCG64 generator from
that seed, so identical inputs give identical draws no matter how many
analyses run before or alongside this one.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from vinesite.config import Seeds

STREAMS = ("positive", "negative", "model", "split")


@dataclass(frozen=True)
class RandomSource:
    seeds: Seeds = Seeds()

    def seed(self, stream: str) -> int:
        if stream not in STREAMS:
            raise ValueError(f"Unknown random stream '{stream}' (have: {STREAMS})")
        return int(getattr(self.seeds, stream))

    def generator(self, stream: str) -> np.random.Generator:
        return np.random.default_rng(self.seed(stream))

    def uniform(self, stream: str, size: int) -> np.ndarray:
        """`size` draws from [0, 1) for the named stream."""
        return self.generator(stream).random(size)
