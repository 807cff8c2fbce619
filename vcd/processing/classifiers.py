"""
Vegetation state and change classification.

State classes (NDVI thresholds, >= semantics, shifted by the sensitivity offset):

    1 Dense         NDVI >= dense (0.6)
    2 Transitional  NDVI >= transitional (0.4)
    3 Sparse        NDVI >= sparse (0.2)
    4 Bare          otherwise

Change classes are assigned by an ordered rule list, first match wins:

    1  Canopy Loss            Dense -> Sparse/Bare
    2  Canopy Thinning        Dense -> Transitional, losing
    3  Emerging Biomass       Sparse -> Transitional, gaining
    4  Canopy Thickening      Transitional -> Dense, gaining
    5  Canopy Densification   Dense -> Dense, gaining
    6  Canopy Establishment   Sparse/Bare -> Dense
    7  Edge Expansion         Sparse -> Transitional, stable        (edge taxonomy)
    8  Edge Colonization      Transitional -> Dense, stable         (edge taxonomy)
    9  Edge Retreat           Dense -> Transitional, stable         (edge taxonomy)
    10 Sparse Accumulation    Sparse -> Sparse, gaining (any trend) (hybrid taxonomy)
    11 Trans. Accumulation    Trans -> Trans, gaining (any trend)   (hybrid taxonomy)

"gaining (any trend)" means gaining by the long-term or the recent trend.
Edge classes fire only on a Stable long-term trend; a Gaining or Losing pixel
with an edge transition that no gated rule covers stays NO_CHANGE.
Pixels matched by no rule are NO_CHANGE (0); pixels with no data for either
state or for the long-term trend get no class at all (None).
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..config.settings import AnalysisConfig
from .trend import TrendClass


class StateClass(enum.IntEnum):
    DENSE = 1
    TRANSITIONAL = 2
    SPARSE = 3
    BARE = 4


class Taxonomy(enum.Enum):
    STRICT = "strict"
    EDGE = "edge"
    HYBRID = "hybrid"


class ChangeClass(enum.IntEnum):
    NO_CHANGE = 0
    CANOPY_LOSS = 1
    CANOPY_THINNING = 2
    EMERGING_BIOMASS = 3
    CANOPY_THICKENING = 4
    CANOPY_DENSIFICATION = 5
    CANOPY_ESTABLISHMENT = 6
    EDGE_EXPANSION = 7
    EDGE_COLONIZATION = 8
    EDGE_RETREAT = 9
    SPARSE_ACCUMULATION = 10
    TRANSITIONAL_ACCUMULATION = 11


STATE_LABELS = {
    StateClass.DENSE: "Dense Canopy",
    StateClass.TRANSITIONAL: "Transitional",
    StateClass.SPARSE: "Sparse",
    StateClass.BARE: "Bare",
}

CHANGE_CLASS_LABELS = {
    ChangeClass.NO_CHANGE: "No Change",
    ChangeClass.CANOPY_LOSS: "Canopy Loss",
    ChangeClass.CANOPY_THINNING: "Canopy Thinning",
    ChangeClass.EMERGING_BIOMASS: "Emerging Biomass",
    ChangeClass.CANOPY_THICKENING: "Canopy Thickening",
    ChangeClass.CANOPY_DENSIFICATION: "Canopy Densification",
    ChangeClass.CANOPY_ESTABLISHMENT: "Canopy Establishment",
    ChangeClass.EDGE_EXPANSION: "Edge Expansion",
    ChangeClass.EDGE_COLONIZATION: "Edge Colonization",
    ChangeClass.EDGE_RETREAT: "Edge Retreat",
    ChangeClass.SPARSE_ACCUMULATION: "Sparse Accumulation",
    ChangeClass.TRANSITIONAL_ACCUMULATION: "Transitional Accumulation",
}

# Hex colours for the rendering collaborator
CHANGE_CLASS_PALETTE = {
    ChangeClass.CANOPY_LOSS: "FF00FF",
    ChangeClass.CANOPY_THINNING: "FFA500",
    ChangeClass.EMERGING_BIOMASS: "ADFF2F",
    ChangeClass.CANOPY_THICKENING: "90EE90",
    ChangeClass.CANOPY_DENSIFICATION: "006400",
    ChangeClass.CANOPY_ESTABLISHMENT: "0000FF",
    ChangeClass.EDGE_EXPANSION: "FFFF00",
    ChangeClass.EDGE_COLONIZATION: "00CED1",
    ChangeClass.EDGE_RETREAT: "DDA0DD",
    ChangeClass.SPARSE_ACCUMULATION: "D2B48C",
    ChangeClass.TRANSITIONAL_ACCUMULATION: "6B8E23",
}


@dataclass(frozen=True)
class StateThresholds:
    dense: float = 0.6
    transitional: float = 0.4
    sparse: float = 0.2

    @classmethod
    def from_config(cls, config: AnalysisConfig) -> "StateThresholds":
        return cls(dense=config.dense, transitional=config.transitional, sparse=config.sparse)


def classify_state(ndvi: Optional[float], thresholds: StateThresholds) -> Optional[StateClass]:
    """Density class of an NDVI value; no data (None/NaN) stays None, never Bare."""
    if ndvi is None or math.isnan(ndvi):
        return None
    if ndvi >= thresholds.dense:
        return StateClass.DENSE
    if ndvi >= thresholds.transitional:
        return StateClass.TRANSITIONAL
    if ndvi >= thresholds.sparse:
        return StateClass.SPARSE
    return StateClass.BARE


def state_rank(state: StateClass) -> int:
    """Density rank, 0 for Bare up to 3 for Dense."""
    return len(StateClass) - int(state)


@dataclass(frozen=True)
class ChangeInputs:
    start: StateClass
    end: StateClass
    trend: TrendClass
    recent_trend: Optional[TrendClass] = None

    @property
    def gaining(self) -> bool:
        return self.trend is TrendClass.GAINING

    @property
    def gaining_any(self) -> bool:
        return self.gaining or self.recent_trend is TrendClass.GAINING

    def moved(self, start: Tuple[StateClass, ...], end: Tuple[StateClass, ...]) -> bool:
        return self.start in start and self.end in end


Rule = Tuple[ChangeClass, Callable[[ChangeInputs], bool]]

_D = (StateClass.DENSE,)
_T = (StateClass.TRANSITIONAL,)
_S = (StateClass.SPARSE,)
_SB = (StateClass.SPARSE, StateClass.BARE)

_CORE_RULES: Tuple[Rule, ...] = (
    (ChangeClass.CANOPY_LOSS, lambda c: c.moved(_D, _SB)),
    (ChangeClass.CANOPY_THINNING, lambda c: c.moved(_D, _T) and c.trend is TrendClass.LOSING),
    (ChangeClass.EMERGING_BIOMASS, lambda c: c.moved(_S, _T) and c.gaining),
    (ChangeClass.CANOPY_THICKENING, lambda c: c.moved(_T, _D) and c.gaining),
    (ChangeClass.CANOPY_DENSIFICATION, lambda c: c.moved(_D, _D) and c.gaining),
    (ChangeClass.CANOPY_ESTABLISHMENT, lambda c: c.moved(_SB, _D)),
)

_EDGE_RULES: Tuple[Rule, ...] = (
    (ChangeClass.EDGE_EXPANSION, lambda c: c.moved(_S, _T) and c.trend is TrendClass.STABLE),
    (ChangeClass.EDGE_COLONIZATION, lambda c: c.moved(_T, _D) and c.trend is TrendClass.STABLE),
    (ChangeClass.EDGE_RETREAT, lambda c: c.moved(_D, _T) and c.trend is TrendClass.STABLE),
)

_ACCUMULATION_RULES: Tuple[Rule, ...] = (
    (ChangeClass.SPARSE_ACCUMULATION, lambda c: c.moved(_S, _S) and c.gaining_any),
    (ChangeClass.TRANSITIONAL_ACCUMULATION, lambda c: c.moved(_T, _T) and c.gaining_any),
)

TAXONOMY_RULES: Dict[Taxonomy, Tuple[Rule, ...]] = {
    Taxonomy.STRICT: _CORE_RULES,
    Taxonomy.EDGE: _CORE_RULES + _EDGE_RULES,
    Taxonomy.HYBRID: _CORE_RULES + _ACCUMULATION_RULES,
}


def taxonomy_classes(taxonomy: Taxonomy) -> List[ChangeClass]:
    """Change classes a taxonomy can emit, in rule order."""
    return [cls for cls, _ in TAXONOMY_RULES[taxonomy]]


def matching_rules(start: StateClass, end: StateClass, trend: TrendClass,
                   recent_trend: Optional[TrendClass] = None,
                   taxonomy: Taxonomy = Taxonomy.EDGE) -> List[ChangeClass]:
    """Every rule of ``taxonomy`` whose guard holds; at most one by construction."""
    inputs = ChangeInputs(start, end, trend, recent_trend)
    return [cls for cls, guard in TAXONOMY_RULES[taxonomy] if guard(inputs)]


def classify_change(start: Optional[StateClass], end: Optional[StateClass],
                    trend: Optional[TrendClass], recent_trend: Optional[TrendClass] = None,
                    taxonomy: Taxonomy = Taxonomy.EDGE) -> Optional[ChangeClass]:
    """
    First matching change class for a pixel.

    Returns None when either state or the long-term trend is missing. A
    missing recent trend only removes the recent half of the accumulation
    gaining test.
    """
    if start is None or end is None or trend is None:
        return None
    inputs = ChangeInputs(start, end, trend, recent_trend)
    for change_class, guard in TAXONOMY_RULES[taxonomy]:
        if guard(inputs):
            return change_class
    return ChangeClass.NO_CHANGE
