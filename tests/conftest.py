"""Pytest configuration and shared fixtures."""

import datetime

import pytest

from vcd.config.settings import AnalysisConfig
from vcd.processing.observations import Observation

REFLECTANCE_SCALE = 0.0000275
REFLECTANCE_OFFSET = -0.2
YEARS = range(1985, 2026)


def to_dn(reflectance: float) -> float:
    """Collection-2 digital number for a surface reflectance value."""
    return (reflectance - REFLECTANCE_OFFSET) / REFLECTANCE_SCALE


def make_observation(when, target_ndvi, sensor="LE07", qa_pixel=0, red=0.05):
    """Observation whose (unharmonized) NDVI equals ``target_ndvi``."""
    nir = red * (1 + target_ndvi) / (1 - target_ndvi)
    return Observation(timestamp=when, sensor=sensor, red=to_dn(red), nir=to_dn(nir),
                       qa_pixel=qa_pixel)


def yearly_history(ndvi_for_year, years=YEARS, month=7, day=15, sensor="LE07"):
    """One mid-season observation per year, NDVI given by ``ndvi_for_year(year)``."""
    return [make_observation(datetime.date(y, month, day), ndvi_for_year(y), sensor=sensor)
            for y in years]


@pytest.fixture
def config():
    return AnalysisConfig()


@pytest.fixture
def establishment_history():
    """Bare in the baseline, dense by the end, +0.0125 NDVI/yr."""
    return yearly_history(lambda y: 0.15 + 0.0125 * (y - 1985))


@pytest.fixture
def densification_history():
    """Dense throughout, +0.006 NDVI/yr."""
    return yearly_history(lambda y: 0.61 + 0.006 * (y - 1985))


@pytest.fixture
def loss_history():
    """Dense in the baseline, sparse by the end, -0.0075 NDVI/yr."""
    return yearly_history(lambda y: 0.67 - 0.0075 * (y - 1985))


@pytest.fixture
def no_env(monkeypatch):
    """Clear configuration environment variables for the duration of a test."""
    from vcd.config.settings import _ENV_OVERRIDES

    for var in list(_ENV_OVERRIDES) + ["ENVIRONMENT"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def histories(establishment_history, densification_history, loss_history):
    """4x5 grid cycling through establishment, densification, loss and a gappy pixel."""
    shapes = [establishment_history, densification_history, loss_history,
              yearly_history(lambda y: 0.3, years=range(1995, 2010))]
    # a distinct list per pixel
    return {(r, c): list(shapes[(r * 5 + c) % len(shapes)]) for r in range(4) for c in range(5)}
