"""
Gun Law Justifiable Homicide Analysis - Main Pipeline Script

This script runs the analysis from prepared panels to result tables.

Usage:
    python run_pipeline.py --all                      # Run complete pipeline
    python run_pipeline.py --step models              # Main tables only
    python run_pipeline.py --step placebo --iterations 200 --workers 4
"""

import sys
import argparse
from pathlib import Path
from datetime import datetime

from gunlaws.pipeline import AnalysisPipeline, save_results
from gunlaws.utils.config import get_project_dir, load_config
from gunlaws.utils.logging import setup_logger


def main():
    parser = argparse.ArgumentParser(
        description='SYG / RTC Justifiable Homicide Analysis Pipeline'
    )
    parser.add_argument(
        '--all', action='store_true',
        help='Run main models, event study and placebo test'
    )
    parser.add_argument(
        '--step', type=str, action='append',
        choices=['models', 'event', 'placebo'],
        help='Run a specific step (repeatable)'
    )
    parser.add_argument(
        '--config', type=Path,
        help='Config file or directory (default: config/analysis.yaml)'
    )
    parser.add_argument(
        '--iterations', type=int,
        help='Number of placebo permutations'
    )
    parser.add_argument(
        '--seed', type=int,
        help='Placebo master seed'
    )
    parser.add_argument(
        '--workers', type=int,
        help='Parallel workers for the placebo batch'
    )
    parser.add_argument(
        '--policy', type=str, choices=['strict', 'lenient'],
        help='Failed iteration handling'
    )
    parser.add_argument(
        '--checkpoint', type=Path,
        help='CSV checkpoint for finished placebo iterations'
    )
    parser.add_argument(
        '--output', type=Path,
        help='Output directory (default from config)'
    )
    parser.add_argument(
        '--log-level', type=str, default='INFO',
        help='Logging level'
    )

    args = parser.parse_args()

    config = load_config(args.config)

    log_dir = get_project_dir() / config.paths.get('log_dir', 'logs')
    logger = setup_logger('gunlaws', log_dir=log_dir, level=args.log_level)

    if args.all:
        steps = ['models', 'event', 'placebo']
    elif args.step:
        steps = args.step
    else:
        parser.print_help()
        return 0

    logger.info(f"Started at: {datetime.now()}")

    pipeline = AnalysisPipeline(config)
    result = pipeline.run(
        steps=steps,
        n_iterations=args.iterations,
        seed=args.seed,
        n_workers=args.workers,
        failure_policy=args.policy,
        checkpoint_path=args.checkpoint,
    )

    output_dir = args.output or get_project_dir() / config.paths.get('output_dir', 'outputs')
    save_results(result, output_dir)

    if result.placebo_pvalues is not None:
        print(result.placebo_pvalues.to_string(index=False))

    logger.info(f"Finished at: {datetime.now()}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
