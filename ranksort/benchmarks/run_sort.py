"""
Single-run driver: sort one random array on the accelerator and with the
CPU merge sort, and print both results with their durations.

Usage:
    python -m ranksort.benchmarks.run_sort [--max-value V] [--size N]

Values not given on the command line are asked for on stdin.
"""

import argparse
import logging
import sys

import numpy as np

from ranksort.benchmarks.generate_inputs import generate_uniform
from ranksort.cpu.merge_sort import timed_merge_sort
from ranksort.python_gpu.context import BACKENDS, create_context, get_backend
from ranksort.python_gpu.rank_sort_cupy import RankSorter


def prompt_int(message, stdin=None):
    """Ask for an integer; anything unparseable counts as 0."""
    stdin = stdin or sys.stdin
    print(message)
    line = stdin.readline()
    try:
        return int(line.strip())
    except ValueError:
        return 0


def print_device_info(context):
    for key, value in context.describe().items():
        print(f"\t{key}: {value}")
    print()


def print_array(title, values):
    print(title)
    print(' '.join(str(v) for v in values))
    print()


def main(argv=None, stdin=None):
    parser = argparse.ArgumentParser(description='Parallel rank sort vs merge sort')
    parser.add_argument('--max-value', type=int, help='Exclusive upper bound on values')
    parser.add_argument('--size', type=int, help='Array size')
    parser.add_argument('--backend', choices=BACKENDS, default='auto')
    parser.add_argument('--seed', type=int, default=None, help='Input seed')
    parser.add_argument('--quiet', action='store_true', help='Do not print the arrays')
    parser.add_argument('--verbose', action='store_true', help='DEBUG logging')
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    context = create_context(args.backend, seed=args.seed)
    print(f"Backend: {get_backend(context)}")
    print_device_info(context)

    max_value = args.max_value
    if max_value is None:
        max_value = prompt_int("Choose a max value:", stdin)
    size = args.size
    if size is None:
        size = prompt_int("Choose an array size:", stdin)

    try:
        # no values are drawn for an empty array, so any max value is accepted
        if size == 0:
            data = np.empty(0, dtype=np.int32)
        else:
            data = generate_uniform(size, max_value, seed=args.seed)
    except ValueError as e:
        print(f"[ERROR] {e}")
        return 1

    sorter = RankSorter(context)
    result = sorter.sort(data)

    if not args.quiet:
        print_array("Array to Sort", data)
        print_array("Parallel Sorted Array", result)
    print(f"Parallel execution duration (ns): {sorter.device_time_ns}")
    print(f"  rank_count   : {sorter.count_time_ns} ns")
    print(f"  rank_scatter : {sorter.scatter_time_ns} ns")
    if sorter.last_unplaced:
        print(f"  WARNING: {sorter.last_unplaced} elements unplaced")
    print()

    merged, merge_ns = timed_merge_sort(data.tolist())
    if not args.quiet:
        print_array("MergeSort Sorted Array", merged)
    print(f"MergeSort execution duration (ns): {merge_ns}")
    print()

    return 0


if __name__ == '__main__':
    sys.exit(main())
