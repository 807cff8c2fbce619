"""
Per-pixel NDVI trend estimation.

The trend is fitted over the raw seasonal observation series (not over
composites): ordinary least squares of NDVI against decimal year, optionally
accompanied by Kendall's tau as a non-parametric test of the no-trend null.

A series with fewer than two points, or with every point at the same time,
is degenerate and yields no trend (None).
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.stats import kendalltau

from ..config.settings import AnalysisConfig
from .compositor import window_for_years, window_observations
from .observations import HarmonizedObservation


class TrendClass(enum.IntEnum):
    GAINING = 1
    STABLE = 2
    LOSING = 3


class Momentum(enum.IntEnum):
    CONSISTENT = 1
    ACCELERATING = 2
    DECELERATING = 3


@dataclass(frozen=True)
class TrendResult:
    """Linear fit of NDVI against decimal year."""
    slope: float  # NDVI per year
    intercept: float
    n_observations: int
    tau: Optional[float] = None
    p_value: Optional[float] = None

    def predict(self, year_fraction: float) -> float:
        return self.intercept + self.slope * year_fraction


def trend_series(series: Sequence[HarmonizedObservation], first_year: int, last_year: int,
                 config: AnalysisConfig) -> Tuple[np.ndarray, np.ndarray]:
    """(decimal_year, ndvi) arrays for every usable seasonal observation in the years given."""
    window = window_for_years(first_year, last_year, config)
    obs = window_observations(series, window)
    t = np.array([o.year_fraction for o in obs], dtype=np.float64)
    y = np.array([o.ndvi for o in obs], dtype=np.float64)
    valid = np.isfinite(y)
    return t[valid], y[valid]


def fit_trend(t: np.ndarray, y: np.ndarray, significance: bool = False) -> Optional[TrendResult]:
    """
    Fit NDVI = intercept + slope * t by ordinary least squares.

    Args:
        t: decimal years
        y: NDVI values, same length as ``t``
        significance: also compute Kendall's tau and its two-sided p-value

    Returns:
        TrendResult, or None for a degenerate series
    """
    t = np.asarray(t, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    n = t.size
    if n < 2:
        return None

    t_mean = t.mean()
    y_mean = y.mean()
    denom = np.sum((t - t_mean) ** 2)
    if denom == 0:
        return None
    slope = float(np.sum((t - t_mean) * (y - y_mean)) / denom)
    intercept = float(y_mean - slope * t_mean)

    tau = p_value = None
    if significance:
        stat, p = kendalltau(t, y)
        tau = None if math.isnan(stat) else float(stat)
        p_value = None if math.isnan(p) else float(p)

    return TrendResult(slope=slope, intercept=intercept, n_observations=int(n),
                       tau=tau, p_value=p_value)


def is_significant(result: TrendResult, level: Optional[float]) -> bool:
    """
    Significance gate. With no level configured every trend passes; with a
    level, a missing p-value counts as not significant.
    """
    if level is None:
        return True
    if result.p_value is None:
        return False
    return result.p_value < level


def classify_trend(result: Optional[TrendResult], config: AnalysisConfig) -> Optional[TrendClass]:
    if result is None:
        return None
    if not is_significant(result, config.significance_level):
        return TrendClass.STABLE
    if result.slope > config.gaining_slope:
        return TrendClass.GAINING
    if result.slope < config.losing_slope:
        return TrendClass.LOSING
    return TrendClass.STABLE


def long_term_trend(series: Sequence[HarmonizedObservation], config: AnalysisConfig) -> Optional[TrendResult]:
    t, y = trend_series(series, config.start_year, config.end_year, config)
    return fit_trend(t, y, significance=config.significance_level is not None)


def recent_trend(series: Sequence[HarmonizedObservation], config: AnalysisConfig) -> Optional[TrendResult]:
    """Trend over the trailing window ``end_year - recent_window_years .. end_year``."""
    t, y = trend_series(series, config.recent_start_year, config.end_year, config)
    return fit_trend(t, y, significance=config.significance_level is not None)


def momentum(long_slope: Optional[float], recent_slope: Optional[float],
             tolerance: float = 0.002) -> Optional[Momentum]:
    """Compare the recent slope with the long-term slope (reporting only)."""
    if long_slope is None or recent_slope is None:
        return None
    if abs(recent_slope - long_slope) < tolerance:
        return Momentum.CONSISTENT
    if recent_slope > long_slope + tolerance:
        return Momentum.ACCELERATING
    return Momentum.DECELERATING
