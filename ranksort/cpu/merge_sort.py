"""
CPU Baseline: Recursive Merge Sort

Sequential divide-and-conquer sort used as the correctness and timing
baseline for the accelerator rank sort.  It shares nothing with the device
path.

  1. Split the sequence at its midpoint
  2. Recursively sort each half
  3. Merge by repeatedly taking the smaller front element
     (ties go to the left run, so the sort is stable)

Input:  sequence of comparable elements
Output: new list, ascending
"""

import time


def merge_sort(values):
    """Return a new ascending list with the elements of *values*.

    Parameters
    ----------
    values : sequence
        Never mutated.

    Returns
    -------
    list

    Complexity
    ----------
    O(N log N) time, O(N) extra space per level.
    """
    values = list(values)
    if len(values) < 2:
        return values

    mid = len(values) // 2
    left = merge_sort(values[:mid])
    right = merge_sort(values[mid:])
    return merge(left, right)


def merge(left, right):
    """Merge two ascending lists; on ties the left element goes first."""
    i = 0
    j = 0
    merged = []

    while i < len(left) and j < len(right):
        if right[j] < left[i]:
            merged.append(right[j])
            j += 1
        else:
            merged.append(left[i])
            i += 1

    merged.extend(left[i:])
    merged.extend(right[j:])
    return merged


def timed_merge_sort(values):
    """Merge sort *values* and measure it with the host clock.

    Returns
    -------
    result : list
    time_ns : int
    """
    t0 = time.perf_counter_ns()
    result = merge_sort(values)
    t1 = time.perf_counter_ns()
    return result, t1 - t0
