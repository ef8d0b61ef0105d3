from datetime import time

import pytest

from psych_booking.scheduling.intervals import chunk, contains, from_minutes, merge, overlaps, subtract, to_minutes


def test_minutes_conversion_drops_seconds() -> None:
    assert to_minutes(time(9, 30, 45)) == 570
    assert from_minutes(570) == time(9, 30)


@pytest.mark.parametrize('minutes', [-1, 1440])
def test_from_minutes_rejects_values_outside_a_day(minutes: int) -> None:
    with pytest.raises(ValueError):
        from_minutes(minutes)


def test_adjacent_intervals_do_not_overlap() -> None:
    assert not overlaps((540, 600), (600, 660))
    assert overlaps((540, 601), (600, 660))
    assert contains((540, 720), (600, 660))
    assert not contains((540, 720), (700, 760))


def test_merge_joins_touching_and_overlapping_intervals() -> None:
    assert merge([(600, 660), (540, 600), (700, 760), (720, 800)]) == [(540, 660), (700, 800)]


def test_subtract_removes_booked_time_from_blocks() -> None:
    assert subtract([(540, 720)], [(600, 660)]) == [(540, 600), (660, 720)]


def test_subtract_handles_removals_spanning_several_blocks() -> None:
    blocks = [(840, 900), (540, 600), (610, 700)]

    assert subtract(blocks, [(580, 620), (0, 545)]) == [(545, 580), (620, 700), (840, 900)]


def test_subtract_with_full_cover_leaves_nothing() -> None:
    assert subtract([(540, 600)], [(0, 1440)]) == []


def test_chunk_drops_short_tail() -> None:
    assert chunk((540, 690), 60) == [(540, 600), (600, 660)]
    assert chunk((540, 570), 60) == []


def test_chunk_rejects_non_positive_step() -> None:
    with pytest.raises(ValueError):
        chunk((540, 600), 0)
