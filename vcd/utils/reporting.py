"""
Summary tables and a plain-text report for a processed change grid.
"""

from datetime import datetime
from typing import List, Optional

import pandas as pd

from ..config.settings import AnalysisConfig
from ..processing.classifiers import (
    CHANGE_CLASS_LABELS,
    STATE_LABELS,
    ChangeClass,
    StateClass,
    Taxonomy,
    taxonomy_classes,
)
from ..processing.pipeline import ChangeGrid


def class_summary(grid: ChangeGrid, pixel_area_ha: float = 0.09,
                  taxonomy: Optional[Taxonomy] = None) -> pd.DataFrame:
    """
    Pixel count, area and share of each change class.

    Percentages are relative to classified pixels; NoData pixels are
    excluded. With a taxonomy, every class it can emit is listed even when
    its count is zero.
    """
    codes = pd.Series([int(r.change_class) for r in grid.results.values() if r.change_class is not None],
                      dtype="Int64")
    counts = codes.value_counts()

    if taxonomy is not None:
        classes: List[ChangeClass] = [ChangeClass.NO_CHANGE] + taxonomy_classes(taxonomy)
    else:
        classes = sorted(ChangeClass(int(c)) for c in counts.index)

    total = int(counts.sum())
    rows = []
    for cls in classes:
        pixels = int(counts.get(int(cls), 0))
        rows.append({
            "code": int(cls),
            "change_class": CHANGE_CLASS_LABELS[cls],
            "pixels": pixels,
            "area_ha": pixels * pixel_area_ha,
            "percent": 100.0 * pixels / total if total else 0.0,
        })
    return pd.DataFrame(rows, columns=["code", "change_class", "pixels", "area_ha", "percent"])


def transition_matrix(grid: ChangeGrid) -> pd.DataFrame:
    """Baseline state (rows) by current state (columns) pixel counts."""
    labels = [STATE_LABELS[s] for s in StateClass]
    pairs = [(STATE_LABELS[r.start_state], STATE_LABELS[r.end_state])
             for r in grid.results.values()
             if r.start_state is not None and r.end_state is not None]
    if not pairs:
        return pd.DataFrame(0, index=labels, columns=labels)
    frame = pd.DataFrame(pairs, columns=["start_state", "end_state"])
    matrix = pd.crosstab(frame["start_state"], frame["end_state"])
    return matrix.reindex(index=labels, columns=labels, fill_value=0).astype(int)


def epoch_summary(grid: ChangeGrid) -> pd.DataFrame:
    """Number of pixels first reaching dense canopy in each epoch."""
    epochs = pd.Series([int(r.establishment_epoch) for r in grid.results.values()
                        if r.establishment_epoch is not None], dtype="Int64")
    counts = epochs.value_counts().sort_index()
    return pd.DataFrame({"epoch": counts.index.astype(int), "pixels": counts.values.astype(int)})


def format_report(grid: ChangeGrid, config: AnalysisConfig, pixel_area_ha: float = 0.09) -> str:
    """Render the summary tables as a text report."""
    taxonomy = Taxonomy(config.active_taxonomy)
    summary = class_summary(grid, pixel_area_ha, taxonomy)
    classified = int(summary["pixels"].sum())

    lines = [
        "VEGETATION CHANGE SUMMARY REPORT",
        "=" * 70,
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"Period: {config.start_year}-{config.end_year} "
        f"(months {config.season_start_month}-{config.season_end_month}), taxonomy: {taxonomy.value}",
        f"Pixels: {len(grid.results):,} analysed, {classified:,} classified, "
        f"{len(grid.results) - classified:,} no data",
    ]
    if grid.failed_tiles:
        lines.append(f"Failed tiles: {', '.join(t.tile_id for t in grid.failed_tiles)}")
    if grid.failed_pixels:
        lines.append(f"Failed pixels: {len(grid.failed_pixels):,}")

    lines += ["", "CHANGE CLASSES", "-" * 50, summary.to_string(index=False, float_format="%.2f")]
    lines += ["", "STATE TRANSITIONS (baseline rows, current columns)", "-" * 50,
              transition_matrix(grid).to_string()]

    epochs = epoch_summary(grid)
    if not epochs.empty:
        lines += ["", "DENSE CANOPY ESTABLISHMENT BY EPOCH", "-" * 50, epochs.to_string(index=False)]
    return "\n".join(lines)
