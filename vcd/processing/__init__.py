"""
Processing package initialization.
"""

from .classifiers import ChangeClass, StateClass, Taxonomy, classify_change, classify_state
from .pipeline import ChangeGrid, PixelResult, TileResult, VegetationChangeProcessor, analyse_pixel
from .trend import TrendClass, TrendResult, fit_trend

__all__ = [
    'ChangeClass',
    'ChangeGrid',
    'PixelResult',
    'StateClass',
    'Taxonomy',
    'TileResult',
    'TrendClass',
    'TrendResult',
    'VegetationChangeProcessor',
    'analyse_pixel',
    'classify_change',
    'classify_state',
    'fit_trend',
]
