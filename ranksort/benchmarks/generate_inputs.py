"""
Input generators for the rank sort benchmarks.

All generators return int32 arrays of shape (N,) with values in
[0, max_value), matching the input contract of the accelerator sort.

  uniform          : i.i.d. uniform integers (the default workload)
  sorted           : uniform, then sorted ascending
  descending       : strictly descending where max_value allows it
  high_duplicates  : long runs of equal values at the top of the range
"""

import numpy as np


def generate_input(kind, N, max_value, seed=42):
    """Generate N integers of the given *kind* in [0, max_value).

    Parameters
    ----------
    kind : str
        One of 'uniform', 'sorted', 'descending', 'high_duplicates'.
    N : int
        Number of elements.
    max_value : int
        Exclusive upper bound on values.
    seed : int
        Random seed for reproducibility.

    Returns
    -------
    np.ndarray of int32, shape (N,)
    """
    funcs = {
        'uniform': generate_uniform,
        'sorted': generate_sorted,
        'descending': generate_descending,
        'high_duplicates': generate_high_duplicates,
    }
    if kind not in funcs:
        raise ValueError(f"kind must be one of {sorted(funcs)}, got {kind!r}")
    return funcs[kind](N, max_value, seed)


def _check(N, max_value):
    if N < 0:
        raise ValueError(f"N must be >= 0, got {N}")
    if max_value <= 0:
        raise ValueError(f"max_value must be > 0, got {max_value}")


def generate_uniform(N, max_value, seed=42):
    _check(N, max_value)
    rng = np.random.default_rng(seed)
    return rng.integers(0, max_value, size=N, dtype=np.int32)


def generate_sorted(N, max_value, seed=42):
    return np.sort(generate_uniform(N, max_value, seed))


def generate_descending(N, max_value, seed=42):
    """Descending sequence; strictly descending when N <= max_value."""
    _check(N, max_value)
    values = np.arange(N - 1, -1, -1, dtype=np.int64)
    if N > max_value:
        values = values * max_value // N
    return values.astype(np.int32)


def generate_high_duplicates(N, max_value, seed=42, n_distinct=4):
    """Runs of equal values drawn from the top *n_distinct* values.

    Puts the largest duplicate runs at the highest ranks, where a scatter
    probe has the least room before the end of the array.
    """
    _check(N, max_value)
    rng = np.random.default_rng(seed)
    lo = max(0, max_value - n_distinct)
    return rng.integers(lo, max_value, size=N, dtype=np.int32)
