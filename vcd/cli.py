#!/usr/bin/env python
"""
VCD CLI - run the vegetation change analysis over an observation table.

Examples:
  # Classify every pixel in a long observation CSV, writing layers and a report
  vcd-change run observations.csv --output-dir out/

  # Same, with the strict 6-class taxonomy and Kendall significance gating
  vcd-change run observations.csv --taxonomy strict --significance 0.05

  # Show the effective configuration (defaults <- JSON file <- environment)
  vcd-change show-config --config analysis.json

  # List the establishment epoch bins for a period
  vcd-change epochs --start-year 1985 --end-year 2025
"""
from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import asdict, replace

from .config.settings import TAXONOMIES, InvalidConfiguration, SystemConfig, configure_logging, load_config

logger = logging.getLogger(__name__)


def _load(args: argparse.Namespace) -> SystemConfig:
    cfg = load_config(args.config, args.env_file)

    overrides = {}
    if getattr(args, "start_year", None) is not None:
        overrides["start_year"] = args.start_year
    if getattr(args, "end_year", None) is not None:
        overrides["end_year"] = args.end_year
    if getattr(args, "taxonomy", None):
        overrides["active_taxonomy"] = args.taxonomy
    if getattr(args, "significance", None) is not None:
        overrides["significance_level"] = args.significance
    if getattr(args, "no_harmonize", False):
        overrides["harmonize_sensors"] = False
    if overrides:
        cfg.analysis = replace(cfg.analysis, **overrides)

    if getattr(args, "workers", None):
        cfg.processing.max_workers = args.workers
    if getattr(args, "tile_size", None):
        cfg.processing.tile_size = args.tile_size
    if getattr(args, "output_dir", None):
        cfg.processing.output_directory = args.output_dir
    if getattr(args, "log_level", None):
        cfg.logging.level = args.log_level.upper()
    return cfg


def cmd_run(args: argparse.Namespace) -> int:
    from .processing.pipeline import VegetationChangeProcessor
    from .utils.observation_io import load_observations_csv
    from .utils.reporting import class_summary, format_report
    from .processing.classifiers import Taxonomy

    cfg = _load(args)
    configure_logging(cfg.logging)
    processor = VegetationChangeProcessor(cfg.analysis, cfg.processing)

    histories = load_observations_csv(args.input)
    if not histories:
        raise ValueError(f"No observations in {args.input}")
    grid = processor.process(histories)

    out_dir = cfg.processing.output_directory
    os.makedirs(out_dir, exist_ok=True)

    results_path = os.path.join(out_dir, "pixel_results.csv")
    grid.to_dataframe().to_csv(results_path, index=False)
    summary_path = os.path.join(out_dir, "change_class_summary.csv")
    class_summary(grid, cfg.processing.pixel_area_ha,
                  Taxonomy(cfg.analysis.active_taxonomy)).to_csv(summary_path, index=False)
    print(f"Pixel results: {results_path}")
    print(f"Class summary: {summary_path}")

    if not args.no_rasters:
        from .utils.raster_export import write_change_layers

        written = write_change_layers(grid, out_dir, include_projection=args.projection_layer)
        for name, path in written.items():
            print(f"{name} layer: {path}")

    print()
    print(format_report(grid, cfg.analysis, cfg.processing.pixel_area_ha))
    return 1 if grid.failed_tiles or grid.failed_pixels else 0


def cmd_show_config(args: argparse.Namespace) -> int:
    cfg = _load(args)
    cfg.analysis.validate()
    print(json.dumps({
        "analysis": asdict(cfg.analysis),
        "processing": asdict(cfg.processing),
        "logging": asdict(cfg.logging),
        "environment": cfg.environment,
    }, indent=2))
    return 0


def cmd_epochs(args: argparse.Namespace) -> int:
    from .processing.epochs import epoch_bins

    cfg = _load(args)
    for epoch in epoch_bins(cfg.analysis.validate()):
        print(f"{epoch.label}: {epoch.first_year}-{epoch.last_year}")
    return 0


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", help="JSON configuration file")
    p.add_argument("--env-file", default=".env", help="Environment file (default .env)")
    p.add_argument("--start-year", type=int)
    p.add_argument("--end-year", type=int)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Multi-decadal vegetation change classification")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Classify every pixel in an observation CSV")
    p_run.add_argument("input", help="Long observation CSV (row,col,date,sensor,red,nir,qa_pixel)")
    _add_common(p_run)
    p_run.add_argument("--output-dir", help="Output directory for tables and layers")
    p_run.add_argument("--taxonomy", choices=TAXONOMIES)
    p_run.add_argument("--significance", type=float,
                       help="Kendall tau significance level (disabled when omitted)")
    p_run.add_argument("--no-harmonize", action="store_true",
                       help="Trust native OLI calibration instead of harmonizing to ETM+")
    p_run.add_argument("--workers", type=int)
    p_run.add_argument("--tile-size", type=int)
    p_run.add_argument("--no-rasters", action="store_true", help="Skip GeoTIFF export")
    p_run.add_argument("--projection-layer", action="store_true",
                       help="Also export the projected-years layer")
    p_run.add_argument("--log-level")
    p_run.set_defaults(func=cmd_run)

    p_cfg = sub.add_parser("show-config", help="Print the effective configuration")
    _add_common(p_cfg)
    p_cfg.set_defaults(func=cmd_show_config)

    p_ep = sub.add_parser("epochs", help="List establishment epoch bins")
    _add_common(p_ep)
    p_ep.set_defaults(func=cmd_epochs)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except (InvalidConfiguration, FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        print(f"Error: {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
