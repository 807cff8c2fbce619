"""
Canopy establishment epochs.

The post-baseline period is cut into fixed-width bins starting at
``start_year + epoch_width_years``. Each bin gets its own seasonal composite;
the epoch of a pixel is the label (first year) of the earliest bin whose
composite reaches the dense threshold. Only pixels that moved from a
non-dense baseline state to a dense current state are tracked.

With the defaults (1985-2025, 5-year bins) the bins are 1990-1994, ...,
2015-2019 and 2020-2025; a trailing bin shorter than
``min_final_epoch_years`` is folded into the bin before it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config.settings import AnalysisConfig
from .classifiers import StateClass
from .compositor import composite, window_for_years
from .observations import HarmonizedObservation


@dataclass(frozen=True)
class EpochBin:
    first_year: int
    last_year: int

    @property
    def label(self) -> int:
        return self.first_year


def epoch_bins(config: AnalysisConfig) -> List[EpochBin]:
    width = config.epoch_width_years
    bins: List[EpochBin] = []
    first = config.start_year + width
    while first <= config.end_year:
        last = min(first + width - 1, config.end_year)
        span = last - first + 1
        if bins and span < width and span < config.min_final_epoch_years:
            bins[-1] = EpochBin(bins[-1].first_year, last)
        else:
            bins.append(EpochBin(first, last))
        first += width
    return bins


def establishment_mask(start: Optional[StateClass], end: Optional[StateClass]) -> bool:
    """Non-dense baseline state and dense current state."""
    if start is None or end is None:
        return False
    return start is not StateClass.DENSE and end is StateClass.DENSE


def first_dense_epoch(series: Sequence[HarmonizedObservation], bins: Sequence[EpochBin],
                      config: AnalysisConfig) -> Optional[int]:
    """Label of the earliest bin whose seasonal composite is >= the dense threshold."""
    threshold = config.dense
    for epoch in bins:
        value = composite(series, window_for_years(epoch.first_year, epoch.last_year, config))
        if value is not None and value >= threshold:
            return epoch.label
    return None


def track_establishment(series: Sequence[HarmonizedObservation], start: Optional[StateClass],
                        end: Optional[StateClass], config: AnalysisConfig,
                        bins: Optional[Sequence[EpochBin]] = None) -> Optional[int]:
    if not establishment_mask(start, end):
        return None
    if bins is None:
        bins = epoch_bins(config)
    return first_dense_epoch(series, bins, config)
