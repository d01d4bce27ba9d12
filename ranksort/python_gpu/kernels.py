"""
Rank sort kernels.

The CUDA sources live in ``ranksort/gpu_kernels/*.cu`` and are compiled at
runtime by CuPy (see ``context.CupyContext``).  This module loads them and
also provides NumPy renditions of both kernel bodies, used by the CPU
context so the same two-stage algorithm can run without a GPU:

  rank_count   : N x N comparisons, one atomic increment per pair i > j
  rank_scatter : compare-and-swap into counts[id], probing forward on
                 collision until a free slot is claimed or the end is hit
"""

import os

import numpy as np

KERNEL_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'gpu_kernels'))

RANK_COUNT_NAME = 'rank_count'
RANK_SCATTER_NAME = 'rank_scatter'

# Empty-slot marker in the results buffer.  Inputs are non-negative.
SENTINEL = -1

# Launch geometry for the CUDA kernels.
COUNT_BLOCK = (16, 16)
SCATTER_BLOCK = 256


def load_kernel_source(name):
    """Return the CUDA C source of kernel *name* from ``KERNEL_DIR``."""
    with open(os.path.join(KERNEL_DIR, name + '.cu'), 'r') as f:
        return f.read()


def count_launch_dims(n):
    """Grid and block for ``rank_count`` over an n x n index space."""
    bx, by = COUNT_BLOCK
    grid = ((n + bx - 1) // bx, (n + by - 1) // by)
    return grid, COUNT_BLOCK


def scatter_launch_dims(n):
    """Grid and block for ``rank_scatter`` over n indices."""
    grid = ((n + SCATTER_BLOCK - 1) // SCATTER_BLOCK,)
    return grid, (SCATTER_BLOCK,)


# =====================================================================
# Host renditions (NumPy)
# =====================================================================

def rank_count_host(source, counts, tile_size=256):
    """CPU execution of ``rank_count``.

    Walks the N x N grid in row tiles of *tile_size*.  For every pair
    (i, j) with source[i] > source[j] a single unbuffered increment is
    applied to counts[i] with ``np.add.at``, which accumulates repeated
    indices the way atomicAdd does.

    Parameters
    ----------
    source : np.ndarray of int32, shape (N,)
    counts : np.ndarray of int32, shape (N,)   -- mutated
    tile_size : int
    """
    n = source.shape[0]
    for lo in range(0, n, tile_size):
        hi = min(lo + tile_size, n)
        greater = source[lo:hi, None] > source[None, :]
        rows, _ = np.nonzero(greater)
        np.add.at(counts, rows + lo, 1)


def rank_scatter_host(source, counts, results, sentinel=SENTINEL, rng=None):
    """CPU execution of ``rank_scatter``.

    All N work items run in lock-step rounds.  In each round every item
    that has not yet placed its value tries ``results[counts[id] + offset]``.
    When several items target the same empty slot exactly one of them wins;
    the winner is picked from a random permutation of the contenders, which
    stands in for the arbitrary interleaving of atomicCAS on the device.
    Everyone who did not win moves one slot forward.  An item whose probe
    reaches N is dropped, exactly like the bounded loop in the kernel.

    Parameters
    ----------
    source, counts : np.ndarray of int32, shape (N,)
    results : np.ndarray of int32, shape (N,)   -- mutated, sentinel-filled
    sentinel : int
    rng : np.random.Generator or None

    Returns
    -------
    int
        Number of items dropped because their probe ran off the end.
    """
    if rng is None:
        rng = np.random.default_rng()

    n = source.shape[0]
    active = np.arange(n)
    offset = np.zeros(n, dtype=np.int64)
    dropped = 0

    while active.size:
        slots = counts[active].astype(np.int64) + offset[active]

        in_bounds = slots < n
        dropped += int(np.count_nonzero(~in_bounds))
        active = active[in_bounds]
        slots = slots[in_bounds]
        if not active.size:
            break

        order = rng.permutation(active.size)
        active = active[order]
        slots = slots[order]

        free = results[slots] == sentinel
        free_slots = slots[free]
        claimed, first = np.unique(free_slots, return_index=True)
        winners = active[free][first]
        results[claimed] = source[winners]

        lost = np.ones(active.size, dtype=bool)
        lost[np.flatnonzero(free)[first]] = False
        active = active[lost]
        offset[active] += 1

    return dropped
