#!/usr/bin/env python3
"""
predict_endpoints.py

Kinematic template matching for pointing movements:
- Input: a movement log (CSV: ID, X, Y, T, isError?, targX, targY) recorded in
  a 1D or 2D pointing task
- Output: accuracy reports, or real-time prediction traces, for predicting
  where a movement will stop before it does

Pipeline:
1) Group the log by path id, drop duplicate samples, and turn every path into
   a template: resampled velocity profile + straight-line distance.
2) For a movement in progress, resample and smooth the velocity seen so far
   (Gaussian kernel) and find the template whose profile matches best.
3) Lay the winner's distance from the movement's start, along x (1D) or along
   the chord to the latest point (2D), to get the predicted endpoint.

Usage:
  python predict_endpoints.py --log Log_2D.csv --mode 2D --evaluate
  python predict_endpoints.py --log Log_1D.csv --mode 1D --against Other_1D.csv
  python predict_endpoints.py --log Log_2D.csv --mode 2D --replay Session_2D.csv --trace rt_output.csv

Notes:
- The task mode is always given explicitly; it is never guessed from a file name.
- Nearest-neighbour search is a linear scan - libraries hold tens of movements.
"""

import argparse
import logging
import sys
from typing import List, Optional

import numpy as np
import pandas as pd

from ktm import (
    KTMError, InsufficientData, MatcherConfig, RTTemplate, TRACE_COLUMNS, Template,
    TemplateLibrary, load_log, load_settings,
)


# -------------------- Replay --------------------

def replay_movements(library: TemplateLibrary, movements: List[Template],
                     predictor: Optional[RTTemplate] = None) -> pd.DataFrame:
    """Feed recorded movements through a streaming predictor, one point at a time.

    The actual click is taken to be the last recorded point and the target the
    logged target centre. Returns the concatenated prediction traces.
    """
    predictor = predictor or RTTemplate.for_library(library)
    frames = []
    for movement in movements:
        predictor.clear()
        for pt in movement.raw_points:
            if not predictor.add_point(pt) or len(predictor) < 2:
                continue
            try:
                predictor.predict(library)
            except InsufficientData:
                # not one full resampling step yet
                continue
        frame = predictor.trace_frame(click=movement.raw_points[-1], target=movement.target)
        frame.insert(0, 'path_id', movement.id)
        frames.append(frame)
    if not frames:
        return pd.DataFrame(columns=['path_id'] + TRACE_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def summarize_report(report: pd.DataFrame) -> str:
    """A few lines describing an evaluation report."""
    if report.empty:
        return "No prefixes evaluated."
    lines = [
        f"Candidates: {report['candidate_id'].nunique()}  prefixes: {len(report)}",
        f"1D error (unsigned): mean={report['win_crow_1d_error_unsigned'].mean():.2f}",
        f"2D error: mean={report['win_2d_error'].mean():.2f}  median={report['win_2d_error'].median():.2f}",
        f"In target: {100.0 * report['in_target'].mean():.1f}%",
    ]
    # accuracy as the movement unfolds
    bins = np.clip((report['pct_time'] * 10).astype(int), 0, 9)
    for decile, hits in report.groupby(bins)['in_target'].mean().items():
        lines.append(f"  {decile * 10:3d}-{decile * 10 + 10:3d}% of time: {100.0 * hits:5.1f}% in target")
    return '\n'.join(lines)


# -------------------- Main --------------------

def build_config(args: argparse.Namespace) -> MatcherConfig:
    """Settings from --config overlaid with command-line flags; the mode must come from one of them."""
    settings = load_settings(args.config) if args.config else {}
    if args.mode is None and 'mode' not in settings:
        raise ValueError("task mode not given: pass --mode 1D|2D or set mode in the --config file")
    config = MatcherConfig.from_dict(settings)
    return config.replace(mode=args.mode, hz=args.hz, stdev=args.stdev, hit_radius=args.hit_radius,
                          trim_overshoot=True if args.trim_overshoot else None)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Predict pointing endpoints by kinematic template matching")
    parser.add_argument('--log', required=True, help='Movement log used as the template library')
    parser.add_argument('--mode', choices=['1D', '2D'], default=None, help='Task geometry of the log (required unless set in --config)')
    parser.add_argument('--config', default=None, help='YAML file with matcher settings')
    parser.add_argument('--hz', type=int, default=None, help='Resampling rate (samples per second)')
    parser.add_argument('--stdev', type=int, default=None, help='Gaussian kernel std-dev in samples')
    parser.add_argument('--hit_radius', type=float, default=None, help='Endpoint error still counted as a hit')
    parser.add_argument('--trim_overshoot', action='store_true', help='Match on the pre-overshoot part of templates')
    parser.add_argument('--size', type=int, default=None, help='Randomly shrink the library to this many templates')
    parser.add_argument('--seed', type=int, default=None, help='Seed for random choices')
    parser.add_argument('--evaluate', action='store_true', help='Leave-one-out evaluation of the library')
    parser.add_argument('--against', default=None, help='Evaluate the movements of another log against the library')
    parser.add_argument('--replay', default=None, help='Stream the movements of another log through the predictor')
    parser.add_argument('--output', default='analysis.csv', help='Where to write evaluation reports')
    parser.add_argument('--trace', default='rt_output.csv', help='Where to write replay traces')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        config = build_config(args)
        rng = np.random.default_rng(args.seed)

        print(f"Loading template library: {args.log}")
        library = TemplateLibrary.load(args.log, config, size=args.size, random=rng)
        print(f"Library: {len(library)} templates  ({config.mode.value}, {config.hz} Hz, stdev {config.stdev})")

        if args.evaluate or args.against:
            if args.against:
                other = TemplateLibrary.load(args.against, config)
                report = library.evaluate_against(other)
            else:
                report = library.evaluate(rng)
            report.to_csv(args.output, index=False)
            print('\n' + summarize_report(report))
            print(f"\nReport: {args.output}")

        if args.replay:
            trace = replay_movements(library, load_log(args.replay, config))
            trace.to_csv(args.trace, index=False)
            print(f"\nReplayed {trace['path_id'].nunique()} movements, {len(trace)} predictions")
            print(f"Trace: {args.trace}")
    except (KTMError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
