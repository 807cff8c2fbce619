"""
Core vegetation change processing pipeline.

``analyse_pixel`` runs the full per-pixel chain:

    filter/harmonize -> composites -> states + trends -> change class
    -> establishment epoch + trajectory projection

``VegetationChangeProcessor`` applies it to a grid of pixel histories. Pixels
never depend on each other, so the grid is cut into square tiles that are
processed concurrently; results are gathered by coordinate so the output does
not depend on the tiling or on the order in which tiles finish.
"""

import logging
import time
import concurrent.futures
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..config.settings import AnalysisConfig, ProcessingConfig
from .observations import Observation, prepare_series
from .compositor import baseline_composite, current_composite
from .classifiers import (
    ChangeClass,
    StateClass,
    StateThresholds,
    Taxonomy,
    classify_change,
    classify_state,
)
from .trend import Momentum, TrendClass, classify_trend, long_term_trend, momentum, recent_trend
from .epochs import EpochBin, epoch_bins, track_establishment
from .projection import CanopyStatus, canopy_status, projection_for_pixel

logger = logging.getLogger(__name__)

Coordinate = Tuple[int, int]

CHANGE_CLASS_NODATA = 255
EPOCH_NODATA = 0
STATE_NODATA = 0


@dataclass(frozen=True)
class PixelResult:
    """Classification and trend outcome for one pixel. None means no data."""
    start_state: Optional[StateClass]
    end_state: Optional[StateClass]
    change_class: Optional[ChangeClass]
    trend_class: Optional[TrendClass]
    recent_trend_class: Optional[TrendClass]
    long_term_slope: Optional[float]
    recent_slope: Optional[float]
    significance: Optional[float]
    baseline_ndvi: Optional[float]
    current_ndvi: Optional[float]
    establishment_epoch: Optional[int]
    projected_years: Optional[float]
    momentum: Optional[Momentum] = None
    canopy_status: Optional[CanopyStatus] = None
    status_year: Optional[int] = None


NO_DATA_RESULT = PixelResult(
    start_state=None, end_state=None, change_class=None, trend_class=None,
    recent_trend_class=None, long_term_slope=None, recent_slope=None,
    significance=None, baseline_ndvi=None, current_ndvi=None,
    establishment_epoch=None, projected_years=None,
)


def analyse_pixel(observations: Sequence[Observation], config: AnalysisConfig,
                  bins: Optional[Sequence[EpochBin]] = None) -> PixelResult:
    """
    Classify one pixel from its observation history.

    Args:
        observations: raw observations of the pixel over the analysis period
        config: validated analysis configuration
        bins: precomputed epoch bins (derived from ``config`` when omitted)

    Returns:
        PixelResult; missing windows propagate as None through every field
    """
    series = prepare_series(observations, config)
    thresholds = StateThresholds.from_config(config)

    baseline_ndvi = baseline_composite(series, config)
    current_ndvi = current_composite(series, config)
    start_state = classify_state(baseline_ndvi, thresholds)
    end_state = classify_state(current_ndvi, thresholds)

    long_fit = long_term_trend(series, config)
    recent_fit = recent_trend(series, config)
    trend_class = classify_trend(long_fit, config)
    recent_class = classify_trend(recent_fit, config)
    long_slope = long_fit.slope if long_fit is not None else None
    recent_slope = recent_fit.slope if recent_fit is not None else None

    change_class = classify_change(start_state, end_state, trend_class, recent_class,
                                   Taxonomy(config.active_taxonomy))

    epoch = None
    if change_class is not None:
        epoch = track_establishment(series, start_state, end_state, config, bins)

    projected = projection_for_pixel(current_ndvi, end_state, trend_class,
                                     long_slope, recent_slope, config)
    status, status_year = canopy_status(start_state, current_ndvi, long_slope, epoch, config)

    return PixelResult(
        start_state=start_state,
        end_state=end_state,
        change_class=change_class,
        trend_class=trend_class,
        recent_trend_class=recent_class,
        long_term_slope=long_slope,
        recent_slope=recent_slope,
        significance=long_fit.p_value if long_fit is not None else None,
        baseline_ndvi=baseline_ndvi,
        current_ndvi=current_ndvi,
        establishment_epoch=epoch,
        projected_years=projected,
        momentum=momentum(long_slope, recent_slope, config.momentum_tolerance),
        canopy_status=status,
        status_year=status_year,
    )


@dataclass
class TileResult:
    """Result of processing one tile of pixels."""
    success: bool
    tile_id: str
    processing_time: float
    pixels_processed: int
    pixels_classified: int = 0
    failed_pixels: List[Coordinate] = field(default_factory=list)
    error_message: str = None

    @property
    def pixels_failed(self) -> int:
        return len(self.failed_pixels)


@dataclass
class ChangeGrid:
    """Coordinate-indexed pixel results plus the raster layers derived from them."""
    shape: Tuple[int, int]
    results: Dict[Coordinate, PixelResult] = field(default_factory=dict)
    tile_results: List[TileResult] = field(default_factory=list)

    def get(self, row: int, col: int) -> PixelResult:
        return self.results.get((row, col), NO_DATA_RESULT)

    @property
    def failed_tiles(self) -> List[TileResult]:
        return [t for t in self.tile_results if not t.success]

    @property
    def failed_pixels(self) -> List[Coordinate]:
        return sorted(c for t in self.tile_results for c in t.failed_pixels)

    def _layer(self, attr: str, dtype, fill) -> np.ndarray:
        layer = np.full(self.shape, fill, dtype=dtype)
        for (row, col), result in self.results.items():
            value = getattr(result, attr)
            if value is not None:
                layer[row, col] = value
        return layer

    def change_class_layer(self) -> np.ndarray:
        """8-bit change classes; 0 = no change, 255 = no data."""
        return self._layer("change_class", np.uint8, CHANGE_CLASS_NODATA)

    def epoch_layer(self) -> np.ndarray:
        """16-bit establishment epoch labels; 0 where no epoch applies."""
        return self._layer("establishment_epoch", np.int16, EPOCH_NODATA)

    def projection_layer(self) -> np.ma.MaskedArray:
        layer = self._layer("projected_years", np.float32, np.nan)
        return np.ma.masked_invalid(layer)

    def state_layer(self, which: str = "end") -> np.ndarray:
        """8-bit state classes for the baseline (``start``) or current (``end``) window."""
        return self._layer(f"{which}_state", np.uint8, STATE_NODATA)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per pixel, ordered by (row, col)."""
        rows = []
        for (row, col) in sorted(self.results):
            record = asdict(self.results[(row, col)])
            record = {k: (int(v) if isinstance(v, (ChangeClass, StateClass, TrendClass,
                                                     Momentum, CanopyStatus)) else v)
                      for k, v in record.items()}
            rows.append({"row": row, "col": col, **record})
        frame = pd.DataFrame(rows, columns=["row", "col"] + list(PixelResult.__dataclass_fields__))
        int_columns = ["start_state", "end_state", "change_class", "trend_class",
                       "recent_trend_class", "establishment_epoch", "momentum",
                       "canopy_status", "status_year"]
        return frame.astype({c: "Int64" for c in int_columns})


class VegetationChangeProcessor:
    """
    Runs the per-pixel analysis over a grid of observation histories.

    The analysis configuration is validated once, before any pixel is
    touched; an invalid configuration raises InvalidConfiguration.
    """

    def __init__(self, config: AnalysisConfig, processing: ProcessingConfig = None):
        """
        Initialize the processor.

        Args:
            config: Analysis configuration
            processing: Tile and worker settings (defaults when None)
        """
        self.config = config.validate()
        self.processing = processing or ProcessingConfig()
        self.bins = epoch_bins(self.config)

        logger.info(f"Vegetation change processor initialized: {self.config.start_year}-"
                    f"{self.config.end_year}, taxonomy={self.config.active_taxonomy}, "
                    f"{len(self.bins)} epochs, tile_size={self.processing.tile_size}")

    def partition(self, coordinates) -> Dict[str, List[Coordinate]]:
        """Group coordinates into square tiles keyed by tile id."""
        size = self.processing.tile_size
        tiles: Dict[str, List[Coordinate]] = {}
        for row, col in sorted(coordinates):
            tile_id = f"{row // size:03d}_{col // size:03d}"
            tiles.setdefault(tile_id, []).append((row, col))
        return tiles

    def process_single_tile(self, tile_id: str, histories: Mapping[Coordinate, Sequence[Observation]],
                            coordinates: Sequence[Coordinate]) -> Tuple[TileResult, Dict[Coordinate, PixelResult]]:
        start_time = time.time()
        results: Dict[Coordinate, PixelResult] = {}
        failed: List[Coordinate] = []
        for coord in coordinates:
            try:
                results[coord] = analyse_pixel(histories[coord], self.config, self.bins)
            except Exception as e:
                logger.error(f"Exception analysing pixel {coord} in tile {tile_id}: {e}")
                results[coord] = NO_DATA_RESULT
                failed.append(coord)

        classified = sum(1 for r in results.values() if r.change_class is not None)
        processing_time = time.time() - start_time
        logger.debug(f"Tile {tile_id}: {len(results)} pixels, {classified} classified "
                     f"in {processing_time:.2f}s")
        return TileResult(
            success=True,
            tile_id=tile_id,
            processing_time=processing_time,
            pixels_processed=len(results),
            pixels_classified=classified,
            failed_pixels=failed,
        ), results

    def process(self, histories: Mapping[Coordinate, Sequence[Observation]],
                shape: Optional[Tuple[int, int]] = None) -> ChangeGrid:
        """
        Process every pixel history in parallel tiles.

        Args:
            histories: observation history per (row, col)
            shape: grid shape; inferred from the largest coordinate when None

        Returns:
            ChangeGrid holding one PixelResult per input coordinate
        """
        if shape is None:
            rows = [r for r, _ in histories] or [-1]
            cols = [c for _, c in histories] or [-1]
            shape = (max(rows) + 1, max(cols) + 1)
        for row, col in histories:
            if not (0 <= row < shape[0] and 0 <= col < shape[1]):
                raise ValueError(f"Pixel ({row}, {col}) lies outside grid shape {shape}")

        tiles = self.partition(histories.keys())
        grid = ChangeGrid(shape=shape)
        logger.info(f"Starting vegetation change analysis of {len(histories)} pixels "
                    f"in {len(tiles)} tiles")

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.processing.max_workers
        ) as executor:

            future_to_tile = {
                executor.submit(self.process_single_tile, tile_id, histories, coords): tile_id
                for tile_id, coords in tiles.items()
            }

            for future in concurrent.futures.as_completed(future_to_tile):
                tile_id = future_to_tile[future]
                try:
                    tile_result, results = future.result()
                except Exception as e:
                    logger.error(f"Exception processing tile {tile_id}: {e}")
                    tile_result, results = TileResult(
                        success=False,
                        tile_id=tile_id,
                        processing_time=0,
                        pixels_processed=0,
                        error_message=str(e),
                    ), {}
                grid.results.update(results)
                grid.tile_results.append(tile_result)

        grid.tile_results.sort(key=lambda t: t.tile_id)

        successful = sum(1 for t in grid.tile_results if t.success)
        classified = sum(t.pixels_classified for t in grid.tile_results)
        failed_pixels = sum(t.pixels_failed for t in grid.tile_results)
        total_time = sum(t.processing_time for t in grid.tile_results)
        logger.info(f"Analysis complete: {successful}/{len(tiles)} tiles successful, "
                    f"{classified}/{len(histories)} pixels classified, {failed_pixels} failed, "
                    f"{total_time:.2f}s total processing time")
        return grid
