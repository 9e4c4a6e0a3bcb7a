# salon/core.py

from datetime import datetime
from typing import Iterable, List, Tuple

Interval = Tuple[datetime, datetime]


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    # half-open intervals: touching ends do not overlap
    return a_start < b_end and b_start < a_end


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort intervals by start and merge the ones that overlap or touch.

    Empty or inverted intervals are dropped.
    """
    merged: List[Interval] = []
    for start, end in sorted(i for i in intervals if i[0] < i[1]):
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def has_overlapping(intervals: Iterable[Interval]) -> bool:
    ordered = sorted(i for i in intervals if i[0] < i[1])
    return any(ordered[n][0] < ordered[n - 1][1] for n in range(1, len(ordered)))
