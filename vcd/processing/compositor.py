"""
Seasonal NDVI compositing.

A composite is the median NDVI of every harmonized observation that falls
inside a date range and a calendar-month season. Empty windows yield None
(no data) rather than a number.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..config.settings import AnalysisConfig
from .observations import HarmonizedObservation


def in_season(month: int, start_month: int, end_month: int) -> bool:
    """Month membership test, handling seasons that wrap the year end (e.g. Nov-Feb)."""
    if start_month <= end_month:
        return start_month <= month <= end_month
    return month >= start_month or month <= end_month


@dataclass(frozen=True)
class CompositeWindow:
    """Inclusive date range intersected with a calendar-month season."""
    start: datetime.date
    end: datetime.date
    season_start_month: int = 1
    season_end_month: int = 12

    def contains(self, timestamp) -> bool:
        d = timestamp.date() if isinstance(timestamp, datetime.datetime) else timestamp
        if d < self.start or d > self.end:
            return False
        return in_season(d.month, self.season_start_month, self.season_end_month)


def window_for_years(first_year: int, last_year: int, config: AnalysisConfig) -> CompositeWindow:
    """Window covering whole calendar years ``first_year..last_year`` in the configured season."""
    return CompositeWindow(
        start=datetime.date(first_year, 1, 1),
        end=datetime.date(last_year, 12, 31),
        season_start_month=config.season_start_month,
        season_end_month=config.season_end_month,
    )


def window_observations(series: Sequence[HarmonizedObservation],
                        window: CompositeWindow) -> List[HarmonizedObservation]:
    return [obs for obs in series if window.contains(obs.timestamp)]


def window_ndvi(series: Sequence[HarmonizedObservation], window: CompositeWindow) -> np.ndarray:
    """NDVI of every usable observation in the window (undefined NDVI dropped)."""
    values = np.array([obs.ndvi for obs in window_observations(series, window)], dtype=np.float64)
    return values[np.isfinite(values)]


def composite(series: Sequence[HarmonizedObservation], window: CompositeWindow) -> Optional[float]:
    """Median NDVI over the window, or None when the window holds no usable observation."""
    values = window_ndvi(series, window)
    if values.size == 0:
        return None
    return float(np.median(values))


def baseline_composite(series: Sequence[HarmonizedObservation], config: AnalysisConfig) -> Optional[float]:
    last = config.start_year + config.baseline_years - 1
    return composite(series, window_for_years(config.start_year, last, config))


def current_composite(series: Sequence[HarmonizedObservation], config: AnalysisConfig) -> Optional[float]:
    first = config.end_year - config.current_years + 1
    return composite(series, window_for_years(first, config.end_year, config))
