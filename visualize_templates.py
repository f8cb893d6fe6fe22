#!/usr/bin/env python3
"""
visualize_templates.py

Creates visualizations of a template library and of how well it predicts
movement endpoints.

Features:
- One figure per template: raw path with start/end markers and the overshoot
  tail highlighted, next to its resampled and smoothed velocity profile
- Summary figure from a leave-one-out evaluation: endpoint error against the
  share of the movement already observed, and hit rate per decile
- Plain-text summary of the library and the evaluation
"""

import argparse
import os
import sys
from typing import List, Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from ktm import KTMError, MatcherConfig, Mode, Template, TemplateLibrary


class TemplateVisualizer:
    """Plots for a template library and its evaluation report."""

    def __init__(self, config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()
        self.library: Optional[TemplateLibrary] = None
        self.report: Optional[pd.DataFrame] = None

    def load_library(self, log_path: str, size: Optional[int] = None, seed: Optional[int] = None):
        """Load the movement log and, if asked, shrink the library."""
        print(f"Loading templates from {log_path}...")
        self.library = TemplateLibrary.load(log_path, self.config, size=size, random=seed)
        print(f"Loaded {len(self.library)} templates "
              f"({sum(t.is_overshoot for t in self.library)} with overshoot)")

    def evaluate(self, seed: Optional[int] = None) -> pd.DataFrame:
        """Run the leave-one-out evaluation used by the summary plot."""
        if self.library is None:
            raise ValueError("Library not loaded. Call load_library() first.")
        print("Running leave-one-out evaluation...")
        self.report = self.library.evaluate(seed)
        return self.report

    def create_template_plot(self, ax_path: plt.Axes, ax_vel: plt.Axes, template: Template):
        """Path on the left, velocity profile on the right."""
        pts = template.productive_points
        ax_path.plot(pts[:, 0], pts[:, 1], 'b-', linewidth=2, alpha=0.8, label='Path')
        if template.is_overshoot:
            tail = np.vstack([pts[-1:], template.filtered_points])
            ax_path.plot(tail[:, 0], tail[:, 1], '-', color='orange', linewidth=2, label='Overshoot')
        raw = template.raw_points
        ax_path.plot(raw[0, 0], raw[0, 1], 'go', markersize=8, label='Start')
        ax_path.plot(raw[-1, 0], raw[-1, 1], 'ro', markersize=8, label='End')
        if template.target is not None:
            ax_path.plot(*template.target, 'kx', markersize=10, label='Target')

        ax_path.set_title(f'Template {template.id} (distance: {template.dist_crow:.1f})',
                          fontsize=14, fontweight='bold')
        ax_path.set_xlabel('X', fontsize=12)
        ax_path.set_ylabel('Y', fontsize=12)
        ax_path.grid(True, alpha=0.3)
        ax_path.legend()
        ax_path.set_aspect('equal', adjustable='datalim')
        # screen coordinates: y grows downward
        ax_path.invert_yaxis()

        vel = template.resampled_vel
        smoothed = template.smoothed_vel
        if len(vel):
            ax_vel.plot(vel[:, 0], vel[:, 1], color='lightgray', linewidth=1, label='Resampled')
            ax_vel.plot(smoothed[:, 0], smoothed[:, 1], 'b-', linewidth=2, label='Smoothed')
        ax_vel.set_title(f'Velocity ({template.hz} Hz, stdev {template.stdev})', fontsize=14, fontweight='bold')
        ax_vel.set_xlabel('Time (ms)', fontsize=12)
        ax_vel.set_ylabel('Speed (px/ms)', fontsize=12)
        ax_vel.grid(True, alpha=0.3)
        ax_vel.legend()

    def create_summary_plot(self, fig: plt.Figure, report: pd.DataFrame):
        """Endpoint error and hit rate as the movement unfolds."""
        ax1, ax2 = fig.subplots(1, 2)

        error_col = 'win_crow_1d_error_unsigned' if self.config.mode is Mode.ONE_D else 'win_2d_error'
        ax1.scatter(report['pct_time'] * 100.0, report[error_col], s=6, alpha=0.4, color='navy')
        ax1.axhline(self.config.hit_radius, color='red', linestyle='--', label='Hit radius')
        ax1.set_title('Prediction Error', fontsize=16, fontweight='bold')
        ax1.set_xlabel('Movement time elapsed (%)', fontsize=12)
        ax1.set_ylabel('Endpoint error', fontsize=12)
        ax1.grid(True, alpha=0.3)
        ax1.legend()

        deciles = np.clip((report['pct_time'] * 10).astype(int), 0, 9)
        rates = report.groupby(deciles)['in_target'].mean() * 100.0
        bars = ax2.bar(rates.index * 10 + 5, rates.values, width=8,
                       color='skyblue', alpha=0.7, edgecolor='navy')
        for bar, rate in zip(bars, rates.values):
            ax2.text(bar.get_x() + bar.get_width() / 2., bar.get_height() + 1,
                     f'{rate:.0f}', ha='center', va='bottom', fontweight='bold')
        ax2.set_title('Hit Rate by Time Elapsed', fontsize=16, fontweight='bold')
        ax2.set_xlabel('Movement time elapsed (%)', fontsize=12)
        ax2.set_ylabel('In target (%)', fontsize=12)
        ax2.set_xlim(0, 100)
        ax2.set_ylim(0, 105)
        ax2.grid(True, alpha=0.3, axis='y')

    def visualize_all_templates(self, output_dir: str = "template_visualizations") -> List[str]:
        """Write every figure and the text summary to ``output_dir``."""
        if self.library is None:
            raise ValueError("Library not loaded. Call load_library() first.")

        os.makedirs(output_dir, exist_ok=True)
        written = []

        print(f"\nCreating visualizations for {len(self.library)} templates...")
        for template in self.library:
            fig, (ax_path, ax_vel) = plt.subplots(1, 2, figsize=(16, 7))
            self.create_template_plot(ax_path, ax_vel, template)
            filepath = os.path.join(output_dir, f"template_{template.id:03d}.png")
            plt.tight_layout()
            plt.savefig(filepath, dpi=150, bbox_inches='tight', facecolor='white')
            plt.close(fig)
            written.append(filepath)

        if self.report is not None and not self.report.empty:
            print("Creating summary visualization...")
            fig = plt.figure(figsize=(16, 7))
            self.create_summary_plot(fig, self.report)
            fig.tight_layout()
            filepath = os.path.join(output_dir, "summary_analysis.png")
            fig.savefig(filepath, dpi=150, bbox_inches='tight', facecolor='white')
            plt.close(fig)
            written.append(filepath)

        filepath = os.path.join(output_dir, "template_summary.txt")
        with open(filepath, 'w') as f:
            f.write(self.create_text_summary())
        written.append(filepath)

        print(f"\nVisualization complete! Output saved to: {output_dir}")
        return written

    def create_text_summary(self) -> str:
        """Library statistics, plus evaluation results when available."""
        lib = self.library
        dists = np.array([t.dist_crow for t in lib], float)
        durations = np.array([t.duration for t in lib], float)

        summary = "TEMPLATE LIBRARY SUMMARY\n"
        summary += "=" * 50 + "\n\n"
        summary += f"Mode: {self.config.mode.value}  Hz: {self.config.hz}  Stdev: {self.config.stdev}\n"
        summary += f"Templates: {len(lib)}\n"
        summary += f"Overshoots: {sum(t.is_overshoot for t in lib)}\n"
        summary += f"Errors: {sum(t.is_error for t in lib)}\n"
        if len(lib):
            summary += f"Distance: mean {dists.mean():.1f}, std {dists.std():.1f}\n"
            summary += f"Duration (ms): mean {durations.mean():.0f}, std {durations.std():.0f}\n"

        summary += "\nTEMPLATES:\n"
        summary += "-" * 30 + "\n"
        for t in lib:
            flags = ' overshoot' if t.is_overshoot else ''
            flags += ' error' if t.is_error else ''
            summary += f"Template {t.id:3d}: {len(t):4d} points, distance {t.dist_crow:7.1f}, " \
                       f"{t.duration:6.0f} ms{flags}\n"

        if self.report is not None and not self.report.empty:
            report = self.report
            summary += "\nEVALUATION:\n"
            summary += "-" * 30 + "\n"
            summary += f"Candidates: {report['candidate_id'].nunique()}\n"
            summary += f"Prefixes: {len(report)}\n"
            summary += f"Mean 2D error: {report['win_2d_error'].mean():.2f}\n"
            summary += f"In target: {100.0 * report['in_target'].mean():.1f}%\n"
        return summary


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Visualize a template library")
    parser.add_argument('--log', required=True, help='Movement log to build the library from')
    parser.add_argument('--mode', choices=['1D', '2D'], required=True, help='Task geometry of the log')
    parser.add_argument('--hz', type=int, default=20, help='Resampling rate (samples per second)')
    parser.add_argument('--stdev', type=int, default=7, help='Gaussian kernel std-dev in samples')
    parser.add_argument('--size', type=int, default=None, help='Randomly shrink the library to this many templates')
    parser.add_argument('--seed', type=int, default=None, help='Seed for random choices')
    parser.add_argument('--no_evaluate', action='store_true', help='Skip the evaluation summary')
    parser.add_argument('--output', default='template_visualizations', help='Output directory for visualizations')
    args = parser.parse_args(argv)

    if not os.path.exists(args.log):
        print(f"Error: log file '{args.log}' not found!")
        return 1

    print("=== TEMPLATE VISUALIZATION TOOL ===\n")
    visualizer = TemplateVisualizer(MatcherConfig(hz=args.hz, stdev=args.stdev, mode=args.mode))
    try:
        visualizer.load_library(args.log, size=args.size, seed=args.seed)
        if not args.no_evaluate and len(visualizer.library) >= 2:
            visualizer.evaluate(args.seed)
        visualizer.visualize_all_templates(args.output)
    except KTMError as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
