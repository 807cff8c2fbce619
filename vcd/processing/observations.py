"""
Observation filtering and cross-sensor harmonization.

Each pixel arrives as a sequence of Landsat Collection-2 Level-2 surface
reflectance observations. Before any compositing an observation is:

    - rejected if QA_PIXEL flags fill (bit 0), cloud (bit 3) or cloud shadow (bit 4),
    - reduced to Red/NIR (band names differ between TM/ETM+ and OLI),
    - rescaled from digital numbers to reflectance,
    - optionally harmonized from OLI onto the ETM+ radiometric scale using the
      Roy et al. (2016) OLS coefficients.

Everything here is a pure function of its inputs and the AnalysisConfig.
"""
from __future__ import annotations

import datetime
import enum
import math
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple, Union

from ..config.settings import AnalysisConfig

# QA_PIXEL bits
QA_FILL_BIT = 0
QA_CLOUD_BIT = 3
QA_CLOUD_SHADOW_BIT = 4

# Roy et al. (2016) OLS coefficients, OLI -> ETM+
HARMONIZATION_COEFFICIENTS = {
    "red": (0.9785, -0.0095),
    "nir": (0.9548, 0.0068),
}

Timestamp = Union[datetime.date, datetime.datetime]


class SensorFamily(enum.Enum):
    LEGACY = "legacy"  # TM / ETM+, radiometric reference
    OLI = "oli"


SENSOR_FAMILIES = {
    "LT04": SensorFamily.LEGACY,
    "LT05": SensorFamily.LEGACY,
    "LE07": SensorFamily.LEGACY,
    "LC08": SensorFamily.OLI,
    "LC09": SensorFamily.OLI,
}

# Collection-2 band names for (red, nir)
SENSOR_BANDS = {
    SensorFamily.LEGACY: ("SR_B3", "SR_B4"),
    SensorFamily.OLI: ("SR_B4", "SR_B5"),
}


def sensor_family(sensor: str) -> SensorFamily:
    """Map a platform code (LT05, LE07, LC08, ...) to its sensor family."""
    try:
        return SENSOR_FAMILIES[sensor.strip().upper()[:4]]
    except KeyError:
        raise ValueError(f"Unknown Landsat sensor {sensor!r}") from None


def decimal_year(timestamp: Timestamp) -> float:
    """Year plus the fraction of the year elapsed at ``timestamp``."""
    d = timestamp.date() if isinstance(timestamp, datetime.datetime) else timestamp
    jan1 = datetime.date(d.year, 1, 1)
    dec31 = datetime.date(d.year, 12, 31)
    doy = (d - jan1).days
    days = (dec31 - jan1).days + 1
    return d.year + doy / days


def ndvi(red: float, nir: float) -> float:
    """
    Normalized difference of NIR and Red.

    NaN (masked) when either reflectance is not positive or the result falls
    outside [-1, 1].
    """
    if red <= 0 or nir <= 0:
        return math.nan
    value = (nir - red) / (nir + red)
    if not -1.0 <= value <= 1.0:
        return math.nan
    return value


@dataclass(frozen=True)
class Observation:
    """One raw surface reflectance observation of a pixel."""
    timestamp: Timestamp
    sensor: str
    red: float
    nir: float
    qa_pixel: int = 0

    @classmethod
    def from_collection2(cls, sensor: str, timestamp: Timestamp,
                         bands: Mapping[str, float], qa_pixel: int) -> "Observation":
        """Select the Red/NIR digital numbers for ``sensor`` from a band mapping."""
        red_band, nir_band = SENSOR_BANDS[sensor_family(sensor)]
        return cls(timestamp=timestamp, sensor=sensor, red=bands[red_band],
                   nir=bands[nir_band], qa_pixel=int(qa_pixel))

    @property
    def family(self) -> SensorFamily:
        return sensor_family(self.sensor)


@dataclass(frozen=True)
class HarmonizedObservation:
    """Red/NIR reflectance on the common (ETM+) radiometric reference."""
    timestamp: Timestamp
    red: float
    nir: float

    @property
    def ndvi(self) -> float:
        return ndvi(self.red, self.nir)

    @property
    def year_fraction(self) -> float:
        return decimal_year(self.timestamp)


def is_clear(qa_pixel: int) -> bool:
    """True when none of the fill, cloud or cloud-shadow QA bits is set."""
    qa = int(qa_pixel)
    rejected = (1 << QA_FILL_BIT) | (1 << QA_CLOUD_BIT) | (1 << QA_CLOUD_SHADOW_BIT)
    return not qa & rejected


def harmonize(red: float, nir: float) -> Tuple[float, float]:
    """Apply the OLI -> ETM+ affine transform to reflectance values."""
    red_slope, red_intercept = HARMONIZATION_COEFFICIENTS["red"]
    nir_slope, nir_intercept = HARMONIZATION_COEFFICIENTS["nir"]
    return red * red_slope + red_intercept, nir * nir_slope + nir_intercept


def deharmonize(red: float, nir: float) -> Tuple[float, float]:
    """Inverse of :func:`harmonize`."""
    red_slope, red_intercept = HARMONIZATION_COEFFICIENTS["red"]
    nir_slope, nir_intercept = HARMONIZATION_COEFFICIENTS["nir"]
    return (red - red_intercept) / red_slope, (nir - nir_intercept) / nir_slope


def filter_observation(obs: Observation, config: AnalysisConfig) -> Optional[HarmonizedObservation]:
    """
    Clean and harmonize a single observation.

    Returns None when the observation is flagged as fill, cloud or cloud shadow.
    Legacy-family reflectance passes through unchanged; OLI reflectance is
    harmonized only when ``config.harmonize_sensors`` is set, otherwise the
    native calibration is trusted.
    """
    if not is_clear(obs.qa_pixel):
        return None

    red = obs.red * config.reflectance_scale + config.reflectance_offset
    nir = obs.nir * config.reflectance_scale + config.reflectance_offset
    if obs.family is SensorFamily.OLI and config.harmonize_sensors:
        red, nir = harmonize(red, nir)
    return HarmonizedObservation(timestamp=obs.timestamp, red=red, nir=nir)


def prepare_series(observations: Iterable[Observation],
                   config: AnalysisConfig) -> Tuple[HarmonizedObservation, ...]:
    """Filter and harmonize a pixel history once, ordered by timestamp."""
    cleaned = (filter_observation(obs, config) for obs in observations)
    kept = [h for h in cleaned if h is not None]
    kept.sort(key=lambda h: decimal_year(h.timestamp))
    return tuple(kept)
