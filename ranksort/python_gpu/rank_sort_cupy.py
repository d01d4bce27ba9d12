"""
Parallel Rank Sort — orchestration

Sorts an int32 array with two dependent kernel launches:

  Stage 1: uploads        source, zeroed counts, sentinel-filled results
  Stage 2: rank_count     N x N comparisons, counts[i] = #{j : src[j] < src[i]}
  Stage 3: rank_scatter   results[counts[i] (+ probe)] = src[i] via atomicCAS
  Stage 4: download       results, gated on both kernel events

Every launch carries an explicit list of predecessor events; nothing relies
on submission order.  Device time is measured per kernel from its own
start/end events.

Input:  sequence of N ints in [0, 2**31 - 1]
Output: np.ndarray(N,) int32, ascending
"""

import logging

import numpy as np

from ranksort.python_gpu.context import create_context
from ranksort.python_gpu.kernels import SENTINEL

logger = logging.getLogger(__name__)

INT32_MAX = np.iinfo(np.int32).max


class RankSorter:
    """Comparison-matrix rank sort on an accelerator context.

    Parameters
    ----------
    context : CupyContext or NumpyContext
        Owns the device, streams and compiled kernels.  See context.py.

    Attributes
    ----------
    count_time_ns, scatter_time_ns : int
        Device time of each kernel in the last call to ``sort``.
    last_unplaced : int
        Result slots still holding the sentinel after the last sort.  Always
        0 unless a scatter probe ran off the end of the array.
    """

    def __init__(self, context):
        self.context = context
        self.count_time_ns = 0
        self.scatter_time_ns = 0
        self.last_unplaced = 0

    @property
    def device_time_ns(self):
        """End-to-end parallel sort time: both kernels summed."""
        return self.count_time_ns + self.scatter_time_ns

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def sort(self, source, return_counts=False):
        """Sort *source* ascending.

        Parameters
        ----------
        source : sequence of int
        return_counts : bool
            If True, also download and return the rank counts.

        Returns
        -------
        result : np.ndarray of int32, shape (N,)
        counts : np.ndarray of int32, shape (N,)  (only if *return_counts*)

        Raises
        ------
        ValueError
            If *source* is not a 1-D integer sequence in [0, 2**31 - 1].
        RankSortError
            Allocation, launch or synchronisation failure; no partial
            result is returned.
        """
        values = _as_source_array(source)
        n = values.shape[0]

        self.count_time_ns = 0
        self.scatter_time_ns = 0
        self.last_unplaced = 0

        if n == 0:
            empty = np.empty(0, dtype=np.int32)
            return (empty, empty.copy()) if return_counts else empty

        ctx = self.context

        src_buf, src_evt = ctx.upload(values)
        cnt_buf, cnt_evt = ctx.fill(n, 0)
        res_buf, res_evt = ctx.fill(n, SENTINEL)

        count_evt = ctx.launch_rank_count(
            src_buf, cnt_buf, n, wait_for=[src_evt, cnt_evt])
        scatter_evt = ctx.launch_rank_scatter(
            src_buf, cnt_buf, res_buf, n, SENTINEL, wait_for=[res_evt, count_evt])

        result = ctx.download(res_buf, wait_for=[count_evt, scatter_evt])
        counts = ctx.download(cnt_buf, wait_for=[count_evt]) if return_counts else None

        self.count_time_ns = ctx.elapsed_ns(count_evt)
        self.scatter_time_ns = ctx.elapsed_ns(scatter_evt)

        self.last_unplaced = int(np.count_nonzero(result == SENTINEL))
        if self.last_unplaced:
            logger.warning('rank_scatter left %d of %d elements unplaced',
                           self.last_unplaced, n)

        logger.debug('rank sort N=%d: count=%d ns scatter=%d ns',
                     n, self.count_time_ns, self.scatter_time_ns)

        if return_counts:
            return result, counts
        return result


def _as_source_array(source):
    """Validate *source* and return it as a 1-D int32 array."""
    values = np.asarray(source)
    if values.ndim != 1:
        raise ValueError(f"source must be 1-D, got shape {values.shape}")
    if values.size == 0:
        return values.astype(np.int32)
    if not np.issubdtype(values.dtype, np.integer):
        raise ValueError(f"source must hold integers, got dtype {values.dtype}")
    lo, hi = int(values.min()), int(values.max())
    if lo < 0 or hi > INT32_MAX:
        raise ValueError(
            f"source values must lie in [0, {INT32_MAX}], got [{lo}, {hi}]")
    return values.astype(np.int32)


# =====================================================================
# Convenience function (auto-detects backend)
# =====================================================================

def rank_sort(values, backend='auto', return_counts=False, seed=None):
    """Run the rank sort and return (result, device_time_ns[, counts]).

    Parameters
    ----------
    values : sequence of int
    backend : {'auto', 'cupy', 'numpy'}
    return_counts : bool
    seed : int or None
        Only used by the NumPy backend.

    Returns
    -------
    result : np.ndarray of int32, shape (N,)
    device_time_ns : int
    counts : np.ndarray of int32  (only if *return_counts*)
    """
    sorter = RankSorter(create_context(backend, seed=seed))
    if return_counts:
        result, counts = sorter.sort(values, return_counts=True)
        return result, sorter.device_time_ns, counts
    result = sorter.sort(values)
    return result, sorter.device_time_ns
