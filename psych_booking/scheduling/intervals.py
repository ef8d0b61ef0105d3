"""Half-open minute intervals within a single day.

An interval is a ``(start, end)`` pair of minutes since midnight with
``start < end``; it covers ``[start, end)``.
"""

from datetime import time

MINUTES_PER_DAY = 24 * 60

Interval = tuple[int, int]


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'{minutes} is outside a single day.')
    return time(minutes // 60, minutes % 60)


def overlaps(first: Interval, second: Interval) -> bool:
    return first[0] < second[1] and second[0] < first[1]


def contains(outer: Interval, inner: Interval) -> bool:
    return outer[0] <= inner[0] and inner[1] <= outer[1]


def merge(intervals: list[Interval]) -> list[Interval]:
    merged: list[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract(intervals: list[Interval], removals: list[Interval]) -> list[Interval]:
    """Return the parts of ``intervals`` not covered by any removal, sorted."""
    remaining: list[Interval] = []
    cuts = merge(removals)

    for start, end in sorted(intervals):
        cursor = start
        for cut_start, cut_end in cuts:
            if cut_end <= cursor:
                continue
            if cut_start >= end:
                break
            if cut_start > cursor:
                remaining.append((cursor, cut_start))
            cursor = max(cursor, cut_end)
            if cursor >= end:
                break
        if cursor < end:
            remaining.append((cursor, end))

    return remaining


def chunk(interval: Interval, step: int) -> list[Interval]:
    """Split an interval into ``step``-minute pieces; a short tail is dropped."""
    if step <= 0:
        raise ValueError('step must be positive.')

    pieces: list[Interval] = []
    current = interval[0]
    while current + step <= interval[1]:
        pieces.append((current, current + step))
        current += step
    return pieces
