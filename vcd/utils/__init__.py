"""
Utilities package initialization.
"""

from .observation_io import histories_from_frame, load_observations_csv
from .reporting import class_summary, epoch_summary, format_report, transition_matrix

__all__ = [
    "class_summary",
    "epoch_summary",
    "format_report",
    "histories_from_frame",
    "load_observations_csv",
    "transition_matrix",
]
