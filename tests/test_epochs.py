"""Establishment epoch bins and first-crossing detection."""

import pytest

from vcd.config.settings import AnalysisConfig
from vcd.processing.classifiers import StateClass
from vcd.processing.epochs import (
    EpochBin,
    epoch_bins,
    establishment_mask,
    first_dense_epoch,
    track_establishment,
)
from vcd.processing.observations import prepare_series

from conftest import yearly_history

D, T, S, B = StateClass.DENSE, StateClass.TRANSITIONAL, StateClass.SPARSE, StateClass.BARE


def test_default_bins(config):
    bins = epoch_bins(config)
    assert [b.label for b in bins] == [1990, 1995, 2000, 2005, 2010, 2015, 2020]
    assert bins[-1] == EpochBin(2020, 2025)


@pytest.mark.parametrize("end_year, last_bin", [
    (2026, EpochBin(2020, 2026)),   # 2025-2026 is too short and is folded in
    (2027, EpochBin(2025, 2027)),
    (2024, EpochBin(2020, 2024)),
])
def test_final_bin_remainder(end_year, last_bin):
    bins = epoch_bins(AnalysisConfig(end_year=end_year))
    assert bins[-1] == last_bin
    # contiguous, non-overlapping
    for prev, nxt in zip(bins, bins[1:]):
        assert nxt.first_year == prev.last_year + 1


@pytest.mark.parametrize("start, end, expected", [
    (S, D, True),
    (B, D, True),
    (T, D, True),
    (D, D, False),
    (S, T, False),
    (None, D, False),
    (S, None, False),
])
def test_establishment_mask(start, end, expected):
    assert establishment_mask(start, end) is expected


def test_first_crossing_epoch(config):
    history = yearly_history(lambda y: 0.15 if y < 2003 else 0.7)
    series = prepare_series(history, config)
    # 2000-2004 holds 0.15 x3 and 0.7 x2; 2005-2009 is the first dense bin
    assert first_dense_epoch(series, epoch_bins(config), config) == 2005


def test_epoch_never_precedes_first_bin(config):
    history = yearly_history(lambda y: 0.8)
    series = prepare_series(history, config)
    assert first_dense_epoch(series, epoch_bins(config), config) == config.start_year + config.epoch_width_years


def test_no_crossing_within_horizon(config):
    series = prepare_series(yearly_history(lambda y: 0.5), config)
    assert first_dense_epoch(series, epoch_bins(config), config) is None


def test_mask_gates_tracking(config):
    series = prepare_series(yearly_history(lambda y: 0.8), config)
    assert track_establishment(series, D, D, config) is None
    assert track_establishment(series, S, D, config) == 1990


def test_epoch_bins_follow_width():
    bins = epoch_bins(AnalysisConfig(start_year=2000, end_year=2010, epoch_width_years=2))
    assert [b.label for b in bins] == [2002, 2004, 2006, 2008]
    assert bins[-1] == EpochBin(2008, 2010)
