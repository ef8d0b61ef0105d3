"""Free slot computation for a psychologist over a range of days."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from psych_booking.core import config
from psych_booking.core.caller import Caller
from psych_booking.core.errors import ValidationError
from psych_booking.scheduling import queries
from psych_booking.scheduling.intervals import Interval, chunk, from_minutes, subtract, to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class Slot:
    date: date
    start_time: time
    end_time: time


def validate_granularity(granularity_minutes: int) -> None:
    if not config.SLOT_MIN_GRANULARITY_MINUTES <= granularity_minutes <= config.SLOT_MAX_GRANULARITY_MINUTES:
        raise ValidationError(
            f'Slot granularity must be between {config.SLOT_MIN_GRANULARITY_MINUTES} '
            f'and {config.SLOT_MAX_GRANULARITY_MINUTES} minutes.'
        )


def resolve_date_range(date_from: date, date_to: date, now: datetime) -> tuple[date, date]:
    """Clamp a requested range to the bookable window or reject it."""
    if date_to < date_from:
        raise ValidationError('The end of the range must not be before its start.')

    if (date_to - date_from).days + 1 > config.AVAILABILITY_MAX_RANGE_DAYS:
        raise ValidationError(f'Ranges can span at most {config.AVAILABILITY_MAX_RANGE_DAYS} days.')

    first_bookable_day = now.date() if config.AVAILABILITY_INCLUDE_TODAY else now.date() + timedelta(days=1)
    if date_to < first_bookable_day:
        raise ValidationError('The requested range is entirely in the past.')

    return max(date_from, first_bookable_day), date_to


def free_intervals(
    blocks: list[Interval],
    booked: list[Interval],
    unavailable: list[Interval],
) -> list[Interval]:
    return subtract(blocks, booked + unavailable)


def compute_available_slots(
    db: Session,
    caller: Caller,
    psychologist_id: int,
    date_from: date,
    date_to: date,
    granularity_minutes: int | None = None,
    now: datetime | None = None,
) -> list[Slot]:
    """List bookable slots ordered by date then start time.

    Slots come from available, unblocked schedule blocks minus every
    non-cancelled appointment and every unavailability record. Each free
    stretch is cut into ``granularity_minutes`` pieces from its start; a
    tail shorter than one piece is not offered.
    """
    granularity = granularity_minutes or config.SLOT_DEFAULT_GRANULARITY_MINUTES
    validate_granularity(granularity)
    now = now or datetime.now()
    range_start, range_end = resolve_date_range(date_from, date_to, now)

    queries.get_psychologist(db, psychologist_id)

    blocks_by_day: dict[date, list[Interval]] = defaultdict(list)
    for block in queries.bookable_blocks(db, psychologist_id, range_start, range_end):
        blocks_by_day[block.date].append(queries.block_interval(block))

    booked_by_day: dict[date, list[Interval]] = defaultdict(list)
    for appointment in queries.occupying_appointments(db, psychologist_id, range_start, range_end):
        booked_by_day[appointment.date].append(queries.appointment_interval(appointment))

    unavailable_by_day: dict[date, list[Interval]] = defaultdict(list)
    for record in queries.unavailabilities(db, psychologist_id, range_start, range_end):
        unavailable_by_day[record.date].append(queries.unavailability_interval(record))

    slots: list[Slot] = []
    for day in sorted(blocks_by_day):
        earliest_start = -1
        if day == now.date():
            earliest_start = to_minutes(now.time())

        for free in free_intervals(blocks_by_day[day], booked_by_day[day], unavailable_by_day[day]):
            for start, end in chunk(free, granularity):
                if start <= earliest_start:
                    continue
                slots.append(Slot(date=day, start_time=from_minutes(start), end_time=from_minutes(end)))

    logger.debug(
        'Computed %d slots for psychologist %s between %s and %s (requested by user %s)',
        len(slots),
        psychologist_id,
        range_start,
        range_end,
        caller.user_id,
    )
    return slots
