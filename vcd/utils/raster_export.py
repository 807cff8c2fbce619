"""
GeoTIFF export of the derived change layers.

Writes the 8-bit change-class layer and the 16-bit establishment epoch layer
(plus, optionally, the float32 projection layer) as single-band,
LZW-compressed, tiled GeoTIFFs for downstream rendering.
"""

import os
import logging
from typing import Dict, Optional

import numpy as np
import rasterio
from rasterio.transform import Affine

from ..processing.pipeline import CHANGE_CLASS_NODATA, EPOCH_NODATA, ChangeGrid

logger = logging.getLogger(__name__)


def write_layer(path: str, layer: np.ndarray, nodata, transform: Optional[Affine] = None,
                crs=None) -> str:
    """Write one 2-D array as a single-band GeoTIFF."""
    height, width = layer.shape
    meta = {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": 1,
        "dtype": layer.dtype.name,
        "nodata": nodata,
        "transform": transform or Affine.identity(),
        "compress": "lzw",
    }
    if crs is not None:
        meta["crs"] = crs
    # GTiff block sizes must be multiples of 16
    if height >= 256 and width >= 256:
        meta.update(tiled=True, blockxsize=256, blockysize=256)

    with rasterio.open(path, "w", **meta) as dst:
        dst.write(layer, 1)
    logger.info(f"Wrote {path} ({width}x{height}, {layer.dtype.name})")
    return path


def write_change_layers(grid: ChangeGrid, output_dir: str, transform: Optional[Affine] = None,
                        crs=None, prefix: str = "vegetation",
                        include_projection: bool = False) -> Dict[str, str]:
    """
    Export the derived layers of a processed grid.

    Args:
        grid: processed ChangeGrid
        output_dir: destination directory (created when missing)
        transform: affine geotransform of the grid (identity when None)
        crs: coordinate reference system, anything rasterio accepts
        prefix: file name prefix
        include_projection: also write the projected-years layer

    Returns:
        Mapping of layer name to written file path
    """
    if 0 in grid.shape:
        raise ValueError(f"Cannot export layers of an empty {grid.shape} grid")
    os.makedirs(output_dir, exist_ok=True)
    written = {
        "change_class": write_layer(
            os.path.join(output_dir, f"{prefix}_change_class.tif"),
            grid.change_class_layer(), CHANGE_CLASS_NODATA, transform, crs),
        "epoch": write_layer(
            os.path.join(output_dir, f"{prefix}_establishment_epoch.tif"),
            grid.epoch_layer(), EPOCH_NODATA, transform, crs),
    }
    if include_projection:
        projection = grid.projection_layer().filled(np.nan).astype(np.float32)
        written["projection"] = write_layer(
            os.path.join(output_dir, f"{prefix}_projected_years.tif"),
            projection, np.nan, transform, crs)
    return written
