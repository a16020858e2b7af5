"""vinesite.errors

Exception hierarchy for conditions that abort an analysis.

Expected shortfalls (too few vineyards, samples or rows, degenerate
accuracy) are NOT exceptions: they travel as values through the pipeline
(see vinesite.model.results). Everything here is for the cases where no
usable answer exists.
"""


class VinesiteError(Exception):
    """Base class for vinesite runtime failures."""


class NoDataError(VinesiteError):
    """A data source has nothing for the requested region/period.

    Raised instead of letting downstream arithmetic run over an empty
    collection and quietly produce meaningless rasters.
    """


class ProviderError(VinesiteError):
    """A data provider is unreachable, misconfigured or returned malformed data."""


class AnalysisCancelled(VinesiteError):
    """The analysis token was cancelled before the named stage could start."""

    def __init__(self, stage: str):
        super().__init__(f"Analysis cancelled before stage: {stage}")
        self.stage = stage
