"""
Generate figures for the rank sort benchmarks.
Reads CSV results from experiments/results/ and produces PNGs.
"""
import os
import sys

import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib import rcParams

rcParams['font.family'] = 'serif'
rcParams['font.size'] = 11
rcParams['axes.labelsize'] = 12
rcParams['axes.titlesize'] = 13
rcParams['legend.fontsize'] = 9

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
RESULTS_DIR = os.path.join(SCRIPT_DIR, 'results')
PLOTS_DIR = os.path.join(SCRIPT_DIR, 'plots')


def fig1_runtime_vs_N(results_dir=RESULTS_DIR, plots_dir=PLOTS_DIR):
    """Figure 1: runtime and speedup vs N."""
    df = pd.read_csv(os.path.join(results_dir, 'exp1_scalability_N.csv'))

    fig, axes = plt.subplots(1, 2, figsize=(12, 4.5))

    # Panel A: absolute timing (log scale)
    ax = axes[0]
    for algo, style in (('RankSort', '-o'), ('MergeSort', '--s')):
        sub = df[df['algorithm'] == algo]
        ax.errorbar(sub['N'], sub['mean_ns'] / 1e6, yerr=sub['std_ns'] / 1e6,
                    fmt=style, label=algo, linewidth=2, markersize=6)
    ax.set_xlabel('Array size N')
    ax.set_ylabel('Time (ms)')
    ax.set_yscale('log')
    ax.set_title('(a) Sort runtime')
    ax.legend()
    ax.grid(True, alpha=0.3)

    # Panel B: speedup
    ax = axes[1]
    pivot = df.pivot(index='N', columns='algorithm', values='mean_ns')
    ax.plot(pivot.index, pivot['MergeSort'] / pivot['RankSort'], '-o', linewidth=2)
    ax.axhline(1.0, color='grey', linestyle=':')
    ax.set_xlabel('Array size N')
    ax.set_ylabel('Speedup (MergeSort / RankSort)')
    ax.set_title('(b) Rank sort speedup')
    ax.grid(True, alpha=0.3)

    fig.tight_layout()
    os.makedirs(plots_dir, exist_ok=True)
    path = os.path.join(plots_dir, 'fig1_runtime_vs_N.png')
    fig.savefig(path, dpi=200)
    plt.close(fig)
    print(f"  Saved {path}")
    return path


def fig2_duplicates(results_dir=RESULTS_DIR, plots_dir=PLOTS_DIR):
    """Figure 2: rank sort time vs number of distinct values."""
    df = pd.read_csv(os.path.join(results_dir, 'exp2_duplicates.csv'))

    fig, ax = plt.subplots(figsize=(6, 4.5))
    ax.errorbar(df['distinct'], df['mean_ns'] / 1e6, yerr=df['std_ns'] / 1e6,
                fmt='-o', linewidth=2, markersize=6)
    ax.set_xscale('log')
    ax.set_xlabel('Distinct values')
    ax.set_ylabel('Device time (ms)')
    ax.set_title(f"Collision cost (N={int(df['N'].iloc[0])})")
    ax.grid(True, alpha=0.3)

    fig.tight_layout()
    os.makedirs(plots_dir, exist_ok=True)
    path = os.path.join(plots_dir, 'fig2_duplicates.png')
    fig.savefig(path, dpi=200)
    plt.close(fig)
    print(f"  Saved {path}")
    return path


if __name__ == '__main__':
    figures = [fig1_runtime_vs_N, fig2_duplicates]
    failed = 0
    for fig in figures:
        try:
            fig()
        except FileNotFoundError as e:
            print(f"  [SKIP] {fig.__name__}: {e}")
            failed += 1
    sys.exit(1 if failed == len(figures) else 0)
