"""vinesite.model.pipeline

End-to-end suitability analysis for one region and year.

Stages run in a fixed order:
    build_factors -> build_mask -> generate_samples -> extract_features
    -> train_evaluate -> score

A stage that runs short of data ends the run with MLFailure, carrying the
threshold mask as the fallback result. Missing upstream data (NoDataError)
and provider faults propagate to the caller. The session's cancellation
token is checked before every stage.

Everything an analysis needs travels in the AnalysisSession; nothing is
read from module state, so independent sessions (or one session across
threads) can run side by side.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from vinesite.config import DEFAULT_REGIONS_GPKG, Settings, load_settings, load_yaml
from vinesite.errors import AnalysisCancelled
from vinesite.features.build_features import FEATURE_NAMES, build_feature_image, compute_factors
from vinesite.geo.region import Region
from vinesite.ingest.providers import (
    BoundaryProvider,
    FileVineyardProvider,
    GeoPackageBoundaryProvider,
    GriddedProvider,
    LocalGriddedProvider,
    VineyardProvider,
)
from vinesite.model.classifier import train_and_evaluate
from vinesite.model.extract import extract_features
from vinesite.model.mask import compute_suitability_mask
from vinesite.model.random_source import RandomSource
from vinesite.model.results import (
    BUILD_FACTORS,
    BUILD_MASK,
    EXTRACT_FEATURES,
    GENERATE_SAMPLES,
    SCORE,
    TRAIN_EVALUATE,
    AnalysisResult,
    MLFailure,
    MLSuccess,
    StageFailure,
)
from vinesite.model.samples import generate_samples
from vinesite.model.scorer import score

log = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancel flag shared by the analyses of one session."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, stage: str) -> None:
        if self._event.is_set():
            raise AnalysisCancelled(stage)


@dataclass(frozen=True)
class Providers:
    boundaries: BoundaryProvider
    gridded: GriddedProvider
    vineyards: VineyardProvider


@dataclass(frozen=True)
class AnalysisSession:
    providers: Providers
    settings: Settings = field(default_factory=Settings)
    random: Optional[RandomSource] = None
    token: CancellationToken = field(default_factory=CancellationToken)

    def __post_init__(self):
        if self.random is None:
            object.__setattr__(self, "random", RandomSource(self.settings.seeds))

    def resolve(self, region: Union[Region, str]) -> Region:
        if isinstance(region, Region):
            return region
        return self.providers.boundaries.region(region)


def analyze_suitability(session: AnalysisSession, region: Union[Region, str], year: int) -> AnalysisResult:
    """Run every stage for one region/year and return the combined result.

    Raises NoDataError when the climate or elevation source has nothing for
    the request, and AnalysisCancelled when the session token is cancelled.
    """
    token = session.token
    settings = session.settings
    providers = session.providers

    region = session.resolve(region)
    log.info(f"[{region.name}] analysing {year}")

    token.check(BUILD_FACTORS)
    factors = compute_factors(region, year, providers.gridded, settings)

    token.check(BUILD_MASK)
    mask = compute_suitability_mask(factors, settings.thresholds)

    def done(ml) -> AnalysisResult:
        return AnalysisResult(region, year, factors, mask, ml)

    def failed(failure: StageFailure) -> AnalysisResult:
        log.info(f"[{region.name}] {failure.stage}: {failure.reason}")
        return done(MLFailure(failure.reason, failure.stage, mask))

    token.check(GENERATE_SAMPLES)
    vineyards = providers.vineyards.vineyards(settings.sampling.vineyard_dataset)
    samples = generate_samples(mask, region, vineyards, session.random, settings.sampling)
    if isinstance(samples, StageFailure):
        return failed(samples)

    token.check(EXTRACT_FEATURES)
    feature_image = build_feature_image(factors)
    table = extract_features(feature_image, samples, settings.sampling.min_extracted_rows)
    if isinstance(table, StageFailure):
        return failed(table)

    token.check(TRAIN_EVALUATE)
    trained = train_and_evaluate(table, FEATURE_NAMES, session.random, settings.model)
    if isinstance(trained, StageFailure):
        return failed(trained)

    token.check(SCORE)
    scored = score(trained.classifier, feature_image, region, settings.model)

    return done(MLSuccess(
        suitability_score=scored.probability,
        high_suitability_areas=scored.high_suitability,
        area_km2=scored.area_km2,
        accuracy=trained.accuracy,
        accuracy_method=trained.accuracy_method,
        confusion_matrix=trained.confusion_matrix,
        importance=trained.importance,
        feature_image=feature_image,
        classifier=trained.classifier,
        sampled_points=samples.points,
        positive_count=len(samples.positives),
        negative_count=len(samples.negatives),
        training_count=trained.training_count,
        testing_count=trained.testing_count,
    ))


def analyze_regions(
    session: AnalysisSession,
    regions: Sequence[Union[Region, str]],
    year: int,
    max_workers: int = 4,
) -> Dict[str, AnalysisResult]:
    """Analyse several regions concurrently; results keyed by region name.

    The first exception raised by any analysis is re-raised here.
    """
    resolved = [session.resolve(r) for r in regions]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {r.name: pool.submit(analyze_suitability, session, r, year) for r in resolved}
        return {name: f.result() for name, f in futures.items()}


def session_from_config(
    sources_yaml: Path,
    settings_yaml: Optional[Path] = None,
    regions_gpkg: Path = DEFAULT_REGIONS_GPKG,
) -> AnalysisSession:
    """Session backed by the files the ingest/registry CLIs write."""
    sources = load_yaml(sources_yaml)
    settings = load_settings(settings_yaml)
    providers = Providers(
        boundaries=GeoPackageBoundaryProvider(regions_gpkg),
        gridded=LocalGriddedProvider(sources),
        vineyards=FileVineyardProvider(sources),
    )
    return AnalysisSession(providers, settings)
