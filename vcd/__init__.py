"""
Main package initialization for the VCD system.
"""

__version__ = "1.0.0"
__title__ = "VCD - Vegetation Cover Change Detection"
__description__ = (
    "Multi-decadal per-pixel vegetation change classification from Landsat NDVI"
)
