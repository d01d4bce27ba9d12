"""
Correctness Verification for the Parallel Rank Sort

Compares the output of:
  - Rank sort  (accelerator, or its NumPy simulation)
  - Merge sort (CPU baseline)
  - np.sort    (oracle)

For every (kind, N, max_value, seed) configuration, asserts that the rank
sort output is ascending, is a permutation of the input, leaves no slot
unplaced, and equals both baselines.  Equal values are indistinguishable
in an int array, so exact equality is the right check even with
duplicates.

Usage:
    python -m ranksort.benchmarks.correctness_check [--backend numpy]
"""

import argparse
import sys

import numpy as np

from ranksort.benchmarks.generate_inputs import generate_input
from ranksort.cpu.merge_sort import merge_sort
from ranksort.python_gpu.context import BACKENDS, create_context, get_backend
from ranksort.python_gpu.rank_sort_cupy import RankSorter

KINDS = ['uniform', 'sorted', 'descending', 'high_duplicates']


def check_sorted_permutation(data, result):
    """Return a list of problems with *result* as a sort of *data*."""
    problems = []
    if len(result) != len(data):
        problems.append(f"length {len(result)} != {len(data)}")
        return problems
    if len(result) > 1 and np.any(result[:-1] > result[1:]):
        k = int(np.flatnonzero(result[:-1] > result[1:])[0])
        problems.append(f"out of order at {k}: {result[k]} > {result[k + 1]}")
    if not np.array_equal(np.sort(result), np.sort(data)):
        problems.append("not a permutation of the input")
    return problems


def run_correctness_check(backend='auto', verbose=True):
    """Run correctness checks across multiple configurations.

    Returns
    -------
    all_pass : bool
    results : list of dict
    """
    configs = []
    for kind in KINDS:
        for N in [1, 2, 17, 256, 1000]:
            for max_value in [4, 100, 100000]:
                for seed in [0, 1]:
                    configs.append({'kind': kind, 'N': N, 'max_value': max_value, 'seed': seed})

    sorter = RankSorter(create_context(backend, seed=0))
    if verbose:
        print(f"Backend: {get_backend(sorter.context)}")
        print(f"{'Kind':<16} {'N':>6} {'max':>7} {'Seed':>4}  "
              f"{'MERGE':>6} {'NUMPY':>6} {'UNPL':>5}  {'Status'}")
        print("-" * 70)

    results = []
    pass_count = 0
    fail_count = 0

    for cfg in configs:
        data = generate_input(cfg['kind'], cfg['N'], cfg['max_value'], seed=cfg['seed'])
        result = sorter.sort(data)

        problems = check_sorted_permutation(data, result)
        ok_merge = result.tolist() == merge_sort(data.tolist())
        ok_numpy = np.array_equal(result, np.sort(data))
        unplaced = sorter.last_unplaced

        all_ok = ok_merge and ok_numpy and unplaced == 0 and not problems
        if all_ok:
            pass_count += 1
        else:
            fail_count += 1

        results.append({**cfg, 'pass': all_ok, 'unplaced': unplaced, 'problems': problems})

        if verbose:
            sym = lambda ok: 'Y' if ok else 'N'
            status = 'PASS' if all_ok else 'FAIL'
            print(f"{cfg['kind']:<16} {cfg['N']:>6} {cfg['max_value']:>7} {cfg['seed']:>4}  "
                  f"{sym(ok_merge):>6} {sym(ok_numpy):>6} {unplaced:>5}  {status}")
            for p in problems:
                print(f"    {p}")

    if verbose:
        print("-" * 70)
        print(f"Total: {pass_count} PASS, {fail_count} FAIL out of {len(configs)}")

    if fail_count > 0:
        print("\n[FAIL] CORRECTNESS CHECK FAILED")
        return False, results

    print("\n[OK] All correctness checks PASSED.")
    return True, results


def main(argv=None):
    parser = argparse.ArgumentParser(description='Rank sort correctness check')
    parser.add_argument('--backend', choices=BACKENDS, default='auto')
    parser.add_argument('--quiet', action='store_true')
    args = parser.parse_args(argv)
    all_pass, _ = run_correctness_check(backend=args.backend, verbose=not args.quiet)
    return 0 if all_pass else 1


if __name__ == '__main__':
    sys.exit(main())
