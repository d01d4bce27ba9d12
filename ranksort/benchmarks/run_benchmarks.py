"""
Benchmark Runner — rank sort device time vs merge sort host time.

Usage:
    python -m ranksort.benchmarks.run_benchmarks [--all | --smoke | --exp N]

Experiments:
    1. Scalability with N (uniform input)
    2. Duplicate density (fixed N, shrinking max_value)
    3. Speedup curve (derived from 1)
"""

import argparse
import os
import traceback

import numpy as np
import pandas as pd
from tqdm import tqdm

from ranksort.benchmarks.generate_inputs import generate_input
from ranksort.cpu.merge_sort import timed_merge_sort
from ranksort.python_gpu.context import BACKENDS, create_context, get_backend
from ranksort.python_gpu.rank_sort_cupy import RankSorter

RESULTS_DIR = os.path.join(os.path.dirname(__file__), '..', '..', 'experiments', 'results')


# =====================================================================
# Helper: run an algorithm and return timing
# =====================================================================

def _run_algo(name, data, sorter=None, repeats=5):
    """Run an algorithm *repeats* times and return timing statistics.

    Parameters
    ----------
    name : str
        'RankSort' or 'MergeSort'.
    data : np.ndarray of int32
    sorter : RankSorter, required for 'RankSort'
    repeats : int

    Returns
    -------
    dict with keys: mean_ns, std_ns, result (from last run), unplaced
    """
    times = []
    result = None
    unplaced = 0

    for _ in range(repeats):
        if name == 'RankSort':
            result = sorter.sort(data)
            times.append(sorter.device_time_ns)
            unplaced = max(unplaced, sorter.last_unplaced)
        elif name == 'MergeSort':
            result, t = timed_merge_sort(data.tolist())
            times.append(t)
        else:
            raise ValueError(f"Unknown algorithm: {name}")

    return {
        'mean_ns': float(np.mean(times)),
        'std_ns': float(np.std(times)),
        'result': result,
        'unplaced': unplaced,
    }


def _save(df, filename):
    os.makedirs(RESULTS_DIR, exist_ok=True)
    path = os.path.join(RESULTS_DIR, filename)
    df.to_csv(path, index=False)
    print(f"  Saved to {path}")
    return path


# =====================================================================
# Experiment 1: Scalability with N
# =====================================================================

def exp1_scalability_N(sorter, smoke=False, repeats=5):
    """Runtime vs array size N."""
    print("\n" + "=" * 60)
    print("EXPERIMENT 1: Scalability with N")
    print("=" * 60)

    N_vals = [100, 500, 1000, 2000] if smoke else [100, 500, 1000, 2000, 5000, 10000]
    max_value = 1_000_000

    rows = []
    for N in tqdm(N_vals, desc='N'):
        data = generate_input('uniform', N, max_value, seed=42)
        for algo in ('RankSort', 'MergeSort'):
            res = _run_algo(algo, data, sorter=sorter, repeats=repeats)
            rows.append({
                'N': N, 'max_value': max_value, 'algorithm': algo,
                'mean_ns': res['mean_ns'], 'std_ns': res['std_ns'],
                'unplaced': res['unplaced'],
            })

    df = pd.DataFrame(rows)
    _save(df, 'exp1_scalability_N.csv')
    return df


# =====================================================================
# Experiment 2: Duplicate density
# =====================================================================

def exp2_duplicates(sorter, smoke=False, repeats=5):
    """Runtime vs number of distinct values (more collisions, longer probes)."""
    print("\n" + "=" * 60)
    print("EXPERIMENT 2: Duplicate density")
    print("=" * 60)

    N = 1000 if smoke else 5000
    max_vals = [N * 10, N, N // 10, 10, 1]

    rows = []
    for max_value in tqdm(max_vals, desc='max_value'):
        data = generate_input('uniform', N, max_value, seed=42)
        res = _run_algo('RankSort', data, sorter=sorter, repeats=repeats)
        rows.append({
            'N': N, 'max_value': max_value,
            'distinct': int(np.unique(data).size),
            'mean_ns': res['mean_ns'], 'std_ns': res['std_ns'],
            'unplaced': res['unplaced'],
        })

    df = pd.DataFrame(rows)
    _save(df, 'exp2_duplicates.csv')
    return df


# =====================================================================
# Experiment 3: Speedup
# =====================================================================

def exp3_speedup(sorter, smoke=False, repeats=5):
    """Compute speedup = MergeSort time / RankSort device time."""
    print("\n" + "=" * 60)
    print("EXPERIMENT 3: Speedup")
    print("=" * 60)

    df1 = exp1_scalability_N(sorter, smoke=smoke, repeats=repeats)
    pivot = df1.pivot(index='N', columns='algorithm', values='mean_ns').reset_index()
    pivot['speedup'] = np.where(pivot['RankSort'] > 0,
                                pivot['MergeSort'] / pivot['RankSort'], np.nan)
    for _, row in pivot.iterrows():
        print(f"  N={int(row['N']):6d}: merge={row['MergeSort']:14.0f} ns  "
              f"rank={row['RankSort']:14.0f} ns  speedup={row['speedup']:8.2f}x")

    _save(pivot, 'exp3_speedup.csv')
    return pivot


# =====================================================================
# Main
# =====================================================================

def main(argv=None):
    parser = argparse.ArgumentParser(description='Rank Sort Benchmark Runner')
    parser.add_argument('--all', action='store_true', help='Run all experiments')
    parser.add_argument('--smoke', action='store_true', help='Quick smoke test (small sizes)')
    parser.add_argument('--exp', type=int, nargs='+', help='Run specific experiment(s)')
    parser.add_argument('--repeats', type=int, default=5)
    parser.add_argument('--backend', choices=BACKENDS, default='auto')
    args = parser.parse_args(argv)

    sorter = RankSorter(create_context(args.backend, seed=0))
    print(f"Backend: {get_backend(sorter.context)}")
    print(f"Results dir: {os.path.abspath(RESULTS_DIR)}")

    experiments = {
        1: exp1_scalability_N,
        2: exp2_duplicates,
        3: exp3_speedup,
    }

    to_run = list(experiments.keys()) if (args.all or args.smoke) else (args.exp or [])

    if not to_run:
        print("No experiments specified. Use --all, --smoke, or --exp N")
        return

    for exp_id in sorted(to_run):
        try:
            experiments[exp_id](sorter, smoke=args.smoke, repeats=args.repeats)
        except Exception as e:
            print(f"\n[ERROR] Experiment {exp_id} FAILED: {e}")
            traceback.print_exc()

    print("\n" + "=" * 60)
    print("ALL DONE")
    print("=" * 60)


if __name__ == '__main__':
    main()
