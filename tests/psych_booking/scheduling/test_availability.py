from datetime import date, datetime, time

import pytest

from psych_booking.core.errors import NotFound, ValidationError
from psych_booking.models.appointment import Appointment, AppointmentStatus
from psych_booking.models.unavailability import Unavailability
from psych_booking.scheduling import lifecycle
from psych_booking.scheduling.availability import Slot, compute_available_slots, resolve_date_range

DAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 6, 12, 0)


def _book(db, people, start: time, end: time, status: AppointmentStatus) -> Appointment:
    appointment = Appointment(
        student_id=people['student'],
        psychologist_id=people['psychologist'],
        date=DAY,
        start_time=start,
        end_time=end,
        duration_minutes=(end.hour - start.hour) * 60 + end.minute - start.minute,
        status=status,
        reason='Consulta',
    )
    db.add(appointment)
    db.commit()
    return appointment


def _slots(db, callers, people, **kwargs):
    return compute_available_slots(
        db,
        callers['student'],
        people['psychologist'],
        kwargs.pop('date_from', DAY),
        kwargs.pop('date_to', DAY),
        now=kwargs.pop('now', NOW),
        **kwargs,
    )


def test_empty_schedule_yields_hourly_slots(db, people, callers, add_block) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(12, 0))

    assert _slots(db, callers, people) == [
        Slot(DAY, time(9, 0), time(10, 0)),
        Slot(DAY, time(10, 0), time(11, 0)),
        Slot(DAY, time(11, 0), time(12, 0)),
    ]


def test_confirmed_appointment_removes_its_slot(db, people, callers, add_block) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(12, 0))
    _book(db, people, time(10, 0), time(11, 0), AppointmentStatus.CONFIRMED)

    assert [slot.start_time for slot in _slots(db, callers, people)] == [time(9, 0), time(11, 0)]


@pytest.mark.parametrize('status', [AppointmentStatus.PENDING, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW])
def test_every_non_cancelled_status_occupies_time(db, people, callers, add_block, status) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(10, 0))
    _book(db, people, time(9, 0), time(10, 0), status)

    assert _slots(db, callers, people) == []


def test_cancelling_a_confirmed_appointment_frees_the_slot_again(db, people, callers, add_block) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(12, 0))
    appointment = _book(db, people, time(10, 0), time(11, 0), AppointmentStatus.CONFIRMED)
    assert [slot.start_time for slot in _slots(db, callers, people)] == [time(9, 0), time(11, 0)]

    lifecycle.cancel_appointment(db, callers['student'], appointment.id, reason='Feeling better')

    assert [slot.start_time for slot in _slots(db, callers, people)] == [time(9, 0), time(10, 0), time(11, 0)]


def test_repeated_queries_return_the_same_slots(db, people, callers, add_block) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(12, 0))
    _book(db, people, time(9, 30), time(10, 0), AppointmentStatus.PENDING)

    first = _slots(db, callers, people, granularity_minutes=30)

    assert first == _slots(db, callers, people, granularity_minutes=30)
    assert [slot.start_time for slot in first] == [time(9, 0), time(10, 0), time(10, 30), time(11, 0), time(11, 30)]


def test_blocked_and_unavailable_blocks_offer_nothing(db, people, callers, add_block) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(10, 0), is_blocked=True, block_reason='Training')
    add_block(people['psychologist'], DAY, time(10, 0), time(11, 0), is_available=False)
    add_block(people['psychologist'], DAY, time(11, 0), time(12, 0))

    assert _slots(db, callers, people) == [Slot(DAY, time(11, 0), time(12, 0))]


def test_unavailability_cuts_into_blocks(db, people, callers, add_block) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(12, 0))
    db.add(Unavailability(psychologist_id=people['psychologist'], date=DAY, start_time=time(9, 0), end_time=time(10, 0)))
    db.commit()

    assert [slot.start_time for slot in _slots(db, callers, people)] == [time(10, 0), time(11, 0)]


def test_whole_day_unavailability_removes_the_day(db, people, callers, add_block) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(12, 0))
    db.add(Unavailability(psychologist_id=people['psychologist'], date=DAY, reason='Conference'))
    db.commit()

    assert _slots(db, callers, people) == []


def test_today_only_offers_slots_after_now(db, people, callers, add_block) -> None:
    add_block(people['psychologist'], DAY, time(9, 0), time(12, 0))

    slots = _slots(db, callers, people, now=datetime(2030, 1, 7, 9, 0))

    assert [slot.start_time for slot in slots] == [time(10, 0), time(11, 0)]


def test_slots_are_ordered_across_days(db, people, callers, add_block) -> None:
    next_day = date(2030, 1, 8)
    add_block(people['psychologist'], next_day, time(8, 0), time(9, 0))
    add_block(people['psychologist'], DAY, time(14, 0), time(15, 0))
    add_block(people['psychologist'], DAY, time(9, 0), time(10, 0))

    slots = _slots(db, callers, people, date_to=next_day)

    assert slots == sorted(slots)
    assert [(slot.date, slot.start_time) for slot in slots] == [
        (DAY, time(9, 0)),
        (DAY, time(14, 0)),
        (next_day, time(8, 0)),
    ]


def test_other_psychologists_blocks_are_ignored(db, people, callers, add_block) -> None:
    add_block(people['other_psychologist'], DAY, time(9, 0), time(12, 0))

    assert _slots(db, callers, people) == []


def test_unknown_or_inactive_psychologist_is_not_found(db, people, callers) -> None:
    with pytest.raises(NotFound):
        compute_available_slots(db, callers['student'], people['inactive'], DAY, DAY, now=NOW)

    with pytest.raises(NotFound):
        compute_available_slots(db, callers['student'], 9999, DAY, DAY, now=NOW)


@pytest.mark.parametrize('granularity', [4, 481])
def test_granularity_outside_bounds_is_rejected(db, people, callers, granularity) -> None:
    with pytest.raises(ValidationError):
        _slots(db, callers, people, granularity_minutes=granularity)


def test_resolve_date_range_clamps_start_to_today() -> None:
    assert resolve_date_range(date(2030, 1, 1), date(2030, 1, 10), NOW) == (date(2030, 1, 6), date(2030, 1, 10))


@pytest.mark.parametrize(
    ('date_from', 'date_to'),
    [
        (date(2030, 1, 10), date(2030, 1, 9)),
        (date(2029, 12, 1), date(2029, 12, 5)),
        (date(2030, 1, 6), date(2030, 2, 10)),
    ],
)
def test_resolve_date_range_rejects_bad_ranges(date_from: date, date_to: date) -> None:
    with pytest.raises(ValidationError):
        resolve_date_range(date_from, date_to, NOW)
