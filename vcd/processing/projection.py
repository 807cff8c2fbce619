"""
Trajectory projection towards the dense canopy threshold.

years = (dense_threshold - current_ndvi) / slope, clamped to [0, cap].

This is a straight-line extrapolation of the fitted NDVI trend, not a growth
curve: canopy closure usually slows near saturation, so projected years are
an optimistic lower bound for slowly gaining pixels.
"""
from __future__ import annotations

import enum
import math
from typing import Optional, Tuple

from ..config.settings import AnalysisConfig
from .classifiers import StateClass
from .trend import TrendClass


class CanopyStatus(enum.IntEnum):
    ESTABLISHED_IN_EPOCH = 1
    DENSE_THROUGHOUT = 2
    ESTIMATED_CROSSING = 3
    RECENTLY_CROSSED = 4
    PROJECTED = 5
    PROJECTED_BEYOND_CAP = 6
    DECLINING = 7
    SLIGHT_DECLINE = 8
    STABLE = 9


def project_years_to_dense(current_ndvi: Optional[float], slope: Optional[float],
                           threshold: float, cap: float) -> Optional[float]:
    """Years until ``current_ndvi`` reaches ``threshold`` at ``slope`` NDVI/year."""
    if current_ndvi is None or math.isnan(current_ndvi):
        return None
    if current_ndvi >= threshold:
        return 0.0
    if slope is None or slope <= 0:
        return None
    years = (threshold - current_ndvi) / abs(slope)
    return float(min(max(years, 0.0), cap))


def projection_for_pixel(current_ndvi: Optional[float], end_state: Optional[StateClass],
                         trend_class: Optional[TrendClass], long_term_slope: Optional[float],
                         recent_slope: Optional[float], config: AnalysisConfig) -> Optional[float]:
    """Projected years for gaining pixels that are not yet dense; None otherwise."""
    if trend_class is not TrendClass.GAINING or end_state is None:
        return None
    if end_state is StateClass.DENSE:
        return None
    slope = recent_slope if config.projection_slope == "recent" else long_term_slope
    return project_years_to_dense(current_ndvi, slope, config.dense, config.projection_cap_years)


def canopy_status(start_state: Optional[StateClass], current_ndvi: Optional[float],
                  slope: Optional[float], epoch: Optional[int],
                  config: AnalysisConfig) -> Tuple[Optional[CanopyStatus], Optional[int]]:
    """
    Dense canopy status of a pixel and the year attached to it.

    The year is the epoch label, the estimated year the threshold was crossed,
    or the projected year it will be reached, depending on the status.
    """
    if epoch is not None:
        return CanopyStatus.ESTABLISHED_IN_EPOCH, epoch
    if start_state is None or current_ndvi is None or math.isnan(current_ndvi):
        return None, None

    dense = config.dense
    started_dense = start_state is StateClass.DENSE
    now_dense = current_ndvi >= dense

    if started_dense and now_dense:
        return CanopyStatus.DENSE_THROUGHOUT, None
    if now_dense:
        if slope is not None and slope > 0:
            years_ago = (current_ndvi - dense) / slope
            return CanopyStatus.ESTIMATED_CROSSING, int(round(config.end_year - years_ago))
        return CanopyStatus.RECENTLY_CROSSED, None

    if slope is None:
        return None, None
    if slope > 0:
        years_needed = (dense - current_ndvi) / slope
        projected_year = config.end_year + int(round(years_needed))
        if years_needed <= config.projection_cap_years:
            return CanopyStatus.PROJECTED, projected_year
        return CanopyStatus.PROJECTED_BEYOND_CAP, projected_year
    if slope < config.losing_slope:
        return CanopyStatus.DECLINING, None
    if slope < 0:
        return CanopyStatus.SLIGHT_DECLINE, None
    return CanopyStatus.STABLE, None
