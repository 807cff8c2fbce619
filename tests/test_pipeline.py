"""End-to-end per-pixel analysis and the tile processor."""

import datetime

import numpy as np
import pandas as pd
import pytest

from vcd.config.settings import AnalysisConfig, InvalidConfiguration, ProcessingConfig
from vcd.processing.classifiers import ChangeClass, StateClass
from vcd.processing.pipeline import (
    CHANGE_CLASS_NODATA,
    NO_DATA_RESULT,
    VegetationChangeProcessor,
    analyse_pixel,
)
from vcd.processing.projection import CanopyStatus
from vcd.processing.trend import TrendClass

from conftest import make_observation, yearly_history


class TestScenarios:

    def test_establishment(self, establishment_history):
        cfg = AnalysisConfig(significance_level=0.05)
        result = analyse_pixel(establishment_history, cfg)
        assert result.start_state is StateClass.BARE
        assert result.end_state is StateClass.DENSE
        assert result.trend_class is TrendClass.GAINING
        assert result.long_term_slope == pytest.approx(0.0125, rel=1e-2)
        assert result.significance < 0.05
        assert result.change_class is ChangeClass.CANOPY_ESTABLISHMENT
        # 2015-2019 median 0.55, 2020-2025 median 0.61875
        assert result.establishment_epoch == 2020
        assert result.projected_years is None
        assert result.canopy_status is CanopyStatus.ESTABLISHED_IN_EPOCH
        assert result.status_year == 2020

    def test_densification(self, config, densification_history):
        result = analyse_pixel(densification_history, config)
        assert result.start_state is StateClass.DENSE
        assert result.end_state is StateClass.DENSE
        assert result.trend_class is TrendClass.GAINING
        assert result.change_class is ChangeClass.CANOPY_DENSIFICATION
        assert result.projected_years is None
        assert result.establishment_epoch is None
        assert result.canopy_status is CanopyStatus.DENSE_THROUGHOUT

    def test_canopy_loss(self, config, loss_history):
        result = analyse_pixel(loss_history, config)
        assert result.start_state is StateClass.DENSE
        assert result.end_state is StateClass.SPARSE
        assert result.trend_class is TrendClass.LOSING
        assert result.change_class is ChangeClass.CANOPY_LOSS
        assert result.projected_years is None
        assert result.canopy_status is CanopyStatus.DECLINING

    def test_empty_baseline_window_propagates_no_data(self, config):
        history = yearly_history(lambda y: 0.5, years=range(1995, 2016))
        result = analyse_pixel(history, config)
        assert result.baseline_ndvi is None
        assert result.start_state is None
        assert result.end_state is None
        assert result.change_class is None
        assert result.establishment_epoch is None
        assert result.projected_years is None
        assert result.canopy_status is None

    def test_fully_clouded_pixel(self, config):
        history = [make_observation(datetime.date(y, 7, 15), 0.7, qa_pixel=1 << 3)
                   for y in range(1985, 2026)]
        assert analyse_pixel(history, config) == NO_DATA_RESULT

    def test_clouds_do_not_affect_result(self, config, loss_history):
        clouds = [make_observation(datetime.date(y, 8, 1), 0.95, qa_pixel=1 << 4)
                  for y in range(1985, 2026)]
        assert analyse_pixel(loss_history + clouds, config) == analyse_pixel(loss_history, config)

    def test_projection_for_gaining_pixel(self, config):
        # transitional at the end, still gaining
        history = yearly_history(lambda y: 0.1 + 0.008 * (y - 1985))
        result = analyse_pixel(history, config)
        assert result.end_state is StateClass.TRANSITIONAL
        assert result.trend_class is TrendClass.GAINING
        assert 0.0 < result.projected_years <= config.projection_cap_years
        assert result.canopy_status is CanopyStatus.PROJECTED

    def test_taxonomy_changes_result(self):
        # sparse -> transitional on a flat trend
        history = (yearly_history(lambda y: 0.3, years=range(1985, 2021))
                   + yearly_history(lambda y: 0.45, years=range(2021, 2026)))
        edge = analyse_pixel(history, AnalysisConfig(active_taxonomy="edge"))
        strict = analyse_pixel(history, AnalysisConfig(active_taxonomy="strict"))
        assert edge.trend_class is TrendClass.STABLE
        assert edge.change_class is ChangeClass.EDGE_EXPANSION
        assert strict.change_class is ChangeClass.NO_CHANGE

    def test_order_of_observations_is_irrelevant(self, config, establishment_history):
        assert (analyse_pixel(list(reversed(establishment_history)), config)
                == analyse_pixel(establishment_history, config))


class TestProcessor:

    def test_partition_independence(self, config, histories):
        one = VegetationChangeProcessor(config, ProcessingConfig(max_workers=1, tile_size=64))
        many = VegetationChangeProcessor(config, ProcessingConfig(max_workers=4, tile_size=1))
        a = one.process(histories)
        b = many.process(histories)
        assert a.results == b.results
        assert len(a.tile_results) == 1
        assert len(b.tile_results) == 20
        assert a.change_class_layer().tobytes() == b.change_class_layer().tobytes()
        assert a.epoch_layer().tobytes() == b.epoch_layer().tobytes()

    def test_idempotent(self, config, histories):
        processor = VegetationChangeProcessor(config, ProcessingConfig(tile_size=2))
        a = processor.process(histories)
        b = processor.process(histories)
        assert a.change_class_layer().tobytes() == b.change_class_layer().tobytes()
        pd.testing.assert_frame_equal(a.to_dataframe(), b.to_dataframe())

    def test_layers(self, config, histories):
        grid = VegetationChangeProcessor(config).process(histories, shape=(5, 6))
        change = grid.change_class_layer()
        epochs = grid.epoch_layer()
        assert change.dtype == np.uint8 and change.shape == (5, 6)
        assert epochs.dtype == np.int16
        assert change[0, 0] == ChangeClass.CANOPY_ESTABLISHMENT
        assert change[0, 1] == ChangeClass.CANOPY_DENSIFICATION
        assert change[0, 2] == ChangeClass.CANOPY_LOSS
        assert change[0, 3] == CHANGE_CLASS_NODATA      # no baseline data
        assert change[4, 5] == CHANGE_CLASS_NODATA      # outside the input
        assert epochs[0, 0] == 2020
        assert epochs[0, 1] == 0
        assert grid.projection_layer().mask.all()
        assert grid.state_layer("start")[0, 0] == StateClass.BARE
        assert grid.state_layer("end")[0, 3] == 0

    def test_to_dataframe(self, config, histories):
        frame = VegetationChangeProcessor(config).process(histories).to_dataframe()
        assert len(frame) == 20
        assert list(frame[["row", "col"]].iloc[0]) == [0, 0]
        assert frame.loc[0, "change_class"] == int(ChangeClass.CANOPY_ESTABLISHMENT)
        assert frame.loc[3, "change_class"] is pd.NA

    def test_invalid_configuration_rejected_before_processing(self):
        with pytest.raises(InvalidConfiguration):
            VegetationChangeProcessor(AnalysisConfig(sparse_threshold=0.5))

    @pytest.mark.parametrize("tile_size", [1, 2, 64])
    def test_failing_pixel_does_not_affect_neighbours(self, config, histories, tile_size):
        histories[(0, 0)] = [make_observation(datetime.date(2000, 7, 15), 0.5, sensor="S2A")]
        grid = VegetationChangeProcessor(config, ProcessingConfig(tile_size=tile_size)).process(histories)

        assert grid.failed_pixels == [(0, 0)]
        assert grid.failed_tiles == []
        assert sum(t.pixels_failed for t in grid.tile_results) == 1
        assert grid.get(0, 0) is NO_DATA_RESULT
        assert grid.get(0, 1).change_class is ChangeClass.CANOPY_DENSIFICATION
        assert grid.get(1, 1).change_class is not None

    def test_failing_pixel_results_independent_of_tiling(self, config, histories):
        histories[(0, 0)] = [make_observation(datetime.date(2000, 7, 15), 0.5, sensor="S2A")]
        small = VegetationChangeProcessor(config, ProcessingConfig(tile_size=1)).process(histories)
        large = VegetationChangeProcessor(config, ProcessingConfig(tile_size=64)).process(histories)
        pd.testing.assert_frame_equal(small.to_dataframe(), large.to_dataframe())

    def test_failed_tile_is_recorded(self, config, histories, monkeypatch):
        real = VegetationChangeProcessor.process_single_tile

        def flaky(self, tile_id, tile_histories, coordinates):
            if tile_id == "000_000":
                raise RuntimeError("worker lost")
            return real(self, tile_id, tile_histories, coordinates)

        monkeypatch.setattr(VegetationChangeProcessor, "process_single_tile", flaky)
        grid = VegetationChangeProcessor(config, ProcessingConfig(tile_size=2)).process(histories)
        assert [t.tile_id for t in grid.failed_tiles] == ["000_000"]
        assert "worker lost" in grid.failed_tiles[0].error_message
        assert grid.get(0, 0) is NO_DATA_RESULT
        assert grid.get(2, 2).change_class is not None

    def test_tile_ids_are_unambiguous(self, config):
        processor = VegetationChangeProcessor(config, ProcessingConfig(tile_size=1))
        tiles = processor.partition([(100, 1002), (1001, 2)])
        assert sorted(tiles) == ["100_1002", "1001_002"]

    def test_coordinates_outside_shape(self, config, histories):
        with pytest.raises(ValueError):
            VegetationChangeProcessor(config).process(histories, shape=(2, 2))

    def test_empty_input(self, config):
        grid = VegetationChangeProcessor(config).process({})
        assert grid.shape == (0, 0)
        assert grid.results == {}
