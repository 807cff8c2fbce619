"""
Loading pixel observation histories from tabular exports.

The expected input is a long CSV with one row per (pixel, acquisition):

    row,col,date,sensor,red,nir,qa_pixel
    0,0,1986-07-14,LT05,8123,14512,21824

``red``/``nir`` are Collection-2 surface reflectance digital numbers already
reduced to the Red/NIR bands of the row's sensor. Alternatively the raw band
columns (``SR_B3``, ``SR_B4``, ``SR_B5``) may be supplied and the Red/NIR pair
is picked per sensor.
"""

import logging
from pathlib import Path
from typing import Dict, List, Tuple, Union

import pandas as pd

from ..processing.observations import SENSOR_BANDS, Observation, sensor_family

logger = logging.getLogger(__name__)

Coordinate = Tuple[int, int]

REQUIRED_COLUMNS = ("row", "col", "sensor", "qa_pixel")
BAND_COLUMNS = sorted({band for bands in SENSOR_BANDS.values() for band in bands})


def detect_date_column(df: pd.DataFrame) -> str:
    """
    Try to guess a date/time column name.
    Priorities: 'date', 'time', 'datetime', 'timestamp'.
    """
    for cand in ["date", "time", "datetime", "timestamp"]:
        if cand in df.columns:
            return cand
    raise ValueError(
        "Could not find a date-like column. "
        "Expected one of: 'date', 'time', 'datetime', 'timestamp'. "
        f"Columns available: {list(df.columns)}"
    )


def histories_from_frame(df: pd.DataFrame) -> Dict[Coordinate, List[Observation]]:
    """Group an observation table into per-pixel histories keyed by (row, col)."""
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Observation table is missing column(s): {', '.join(missing)}")

    has_red_nir = "red" in df.columns and "nir" in df.columns
    if not has_red_nir and not all(b in df.columns for b in BAND_COLUMNS):
        raise ValueError(
            f"Observation table needs either red/nir or {'/'.join(BAND_COLUMNS)} columns"
        )

    date_col = detect_date_column(df)
    dates = pd.to_datetime(df[date_col]).dt.date

    histories: Dict[Coordinate, List[Observation]] = {}
    for idx, rec in enumerate(df.itertuples(index=False)):
        rec = rec._asdict()
        sensor = str(rec["sensor"])
        sensor_family(sensor)  # rejects unknown platforms
        if has_red_nir:
            obs = Observation(timestamp=dates.iloc[idx], sensor=sensor, red=float(rec["red"]),
                              nir=float(rec["nir"]), qa_pixel=int(rec["qa_pixel"]))
        else:
            obs = Observation.from_collection2(sensor, dates.iloc[idx],
                                               {b: float(rec[b]) for b in BAND_COLUMNS},
                                               rec["qa_pixel"])
        histories.setdefault((int(rec["row"]), int(rec["col"])), []).append(obs)

    logger.info(f"Loaded {len(df)} observations for {len(histories)} pixels")
    return histories


def load_observations_csv(path: Union[str, Path]) -> Dict[Coordinate, List[Observation]]:
    """Read a long observation CSV into per-pixel histories."""
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Observation CSV not found: {path}")
    return histories_from_frame(pd.read_csv(path))
