"""Schedule blocks and unavailability records of psychologists.

The one invariant enforced on write: blocks of one psychologist on one
date never overlap on ``[start_time, end_time)``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from psych_booking.core import config
from psych_booking.core.caller import Caller
from psych_booking.core.errors import Forbidden, NotFound, OverlapError, SchedulingError, ValidationError
from psych_booking.models.appointment import OCCUPYING_STATUSES, Appointment
from psych_booking.models.schedule import ScheduleBlock
from psych_booking.models.unavailability import Unavailability
from psych_booking.scheduling import queries
from psych_booking.scheduling.booking import lock_day, normalize_text
from psych_booking.scheduling.intervals import overlaps, to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockSpec:
    psychologist_id: int
    date: date
    start_time: time
    end_time: time
    is_available: bool = True
    block_reason: str | None = None


@dataclass
class BulkResult:
    created: list[ScheduleBlock] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ScheduleStats:
    total_blocks: int
    available_blocks: int
    blocked_blocks: int
    unavailable_blocks: int
    booked_appointments: int


def authorize_schedule_write(caller: Caller, psychologist_id: int) -> None:
    if caller.is_admin:
        return
    if caller.is_psychologist and caller.user_id == psychologist_id:
        return
    raise Forbidden('Only the psychologist or an admin can manage this schedule.')


def validate_times(start_time: time, end_time: time) -> None:
    if to_minutes(start_time) >= to_minutes(end_time):
        raise ValidationError('start_time must be before end_time.')


def validate_block_date(block_date: date, today: date) -> None:
    if block_date < today:
        raise ValidationError('Schedule blocks cannot be created in the past.')


def overlapping_blocks(
    blocks: list[ScheduleBlock],
    start_time: time,
    end_time: time,
    exclude_id: int | None = None,
) -> list[ScheduleBlock]:
    requested = (to_minutes(start_time), to_minutes(end_time))
    return [
        block
        for block in blocks
        if block.id != exclude_id and overlaps(queries.block_interval(block), requested)
    ]


def find_overlapping_blocks(
    db: Session,
    psychologist_id: int,
    block_date: date,
    start_time: time,
    end_time: time,
) -> list[ScheduleBlock]:
    blocks = db.query(ScheduleBlock).filter(
        ScheduleBlock.psychologist_id == psychologist_id,
        ScheduleBlock.date == block_date,
    ).all()
    return overlapping_blocks(blocks, start_time, end_time)


def _insert_block(db: Session, spec: BlockSpec) -> ScheduleBlock:
    day_blocks = lock_day(db, spec.psychologist_id, spec.date)
    if overlapping_blocks(day_blocks, spec.start_time, spec.end_time):
        raise OverlapError(
            f'A schedule block already overlaps {spec.start_time:%H:%M}-{spec.end_time:%H:%M} on {spec.date}.'
        )

    block_reason = normalize_text(spec.block_reason, config.MAX_REASON_LENGTH, 'Block reason')
    block = ScheduleBlock(
        psychologist_id=spec.psychologist_id,
        date=spec.date,
        start_time=spec.start_time,
        end_time=spec.end_time,
        is_available=spec.is_available,
        is_blocked=block_reason is not None,
        block_reason=block_reason,
    )
    db.add(block)
    db.flush()
    return block


def _prepare(db: Session, caller: Caller, spec: BlockSpec, today: date) -> BlockSpec:
    authorize_schedule_write(caller, spec.psychologist_id)
    spec = BlockSpec(
        psychologist_id=spec.psychologist_id,
        date=spec.date,
        start_time=spec.start_time.replace(second=0, microsecond=0),
        end_time=spec.end_time.replace(second=0, microsecond=0),
        is_available=spec.is_available,
        block_reason=spec.block_reason,
    )
    validate_times(spec.start_time, spec.end_time)
    validate_block_date(spec.date, today)
    queries.get_psychologist(db, spec.psychologist_id)
    return spec


def create_block(db: Session, caller: Caller, spec: BlockSpec, today: date | None = None) -> ScheduleBlock:
    spec = _prepare(db, caller, spec, today or date.today())

    try:
        block = _insert_block(db, spec)
        db.commit()
    except SchedulingError:
        db.rollback()
        raise

    db.refresh(block)
    logger.info(
        'Schedule block %s created for psychologist %s on %s %s-%s',
        block.id,
        block.psychologist_id,
        block.date,
        block.start_time,
        block.end_time,
    )
    return block


def create_blocks_bulk(
    db: Session,
    caller: Caller,
    specs: list[BlockSpec],
    today: date | None = None,
) -> BulkResult:
    """Insert each block independently; rejected items are reported, not raised."""
    today = today or date.today()
    result = BulkResult()

    for index, spec in enumerate(specs, start=1):
        try:
            prepared = _prepare(db, caller, spec, today)
            result.created.append(_insert_block(db, prepared))
        except Forbidden:
            db.rollback()
            raise
        except SchedulingError as exc:
            result.errors.append(f'Block {index}: {exc.message}')

    db.commit()
    for block in result.created:
        db.refresh(block)

    logger.info(
        'Bulk schedule insert by user %s: %d created, %d rejected',
        caller.user_id,
        len(result.created),
        len(result.errors),
    )
    return result


def expand_weekly_pattern(
    psychologist_id: int,
    weekdays: list[int],
    start_time: time,
    end_time: time,
    date_from: date,
    date_to: date,
    is_available: bool = True,
) -> list[BlockSpec]:
    """One block per matching weekday (Monday is 0) between the two dates."""
    if date_to < date_from:
        raise ValidationError('date_to must not be before date_from.')
    if (date_to - date_from).days + 1 > config.SCHEDULE_PATTERN_MAX_DAYS:
        raise ValidationError(f'Weekly patterns can span at most {config.SCHEDULE_PATTERN_MAX_DAYS} days.')
    if any(day < 0 or day > 6 for day in weekdays):
        raise ValidationError('Weekdays must be between 0 (Monday) and 6 (Sunday).')

    wanted = set(weekdays)
    specs: list[BlockSpec] = []
    current = date_from
    while current <= date_to:
        if current.weekday() in wanted:
            specs.append(
                BlockSpec(
                    psychologist_id=psychologist_id,
                    date=current,
                    start_time=start_time,
                    end_time=end_time,
                    is_available=is_available,
                )
            )
        current += timedelta(days=1)
    return specs


def get_block(db: Session, caller: Caller, block_id: int) -> ScheduleBlock:
    block = db.query(ScheduleBlock).filter(ScheduleBlock.id == block_id).first()
    if block is None:
        raise NotFound('Schedule block not found.')
    authorize_schedule_write(caller, block.psychologist_id)
    return block


def update_block(
    db: Session,
    caller: Caller,
    block_id: int,
    start_time: time | None = None,
    end_time: time | None = None,
    is_available: bool | None = None,
    is_blocked: bool | None = None,
    block_reason: str | None = None,
) -> ScheduleBlock:
    block = get_block(db, caller, block_id)

    new_start = (start_time if start_time is not None else block.start_time).replace(second=0, microsecond=0)
    new_end = (end_time if end_time is not None else block.end_time).replace(second=0, microsecond=0)
    validate_times(new_start, new_end)

    if is_blocked:
        block_reason = normalize_text(
            block_reason or block.block_reason, config.MAX_REASON_LENGTH, 'Block reason', required=True
        )

    try:
        if start_time is not None or end_time is not None:
            day_blocks = lock_day(db, block.psychologist_id, block.date)
            if overlapping_blocks(day_blocks, new_start, new_end, exclude_id=block.id):
                raise OverlapError('The updated times overlap another schedule block.')
            block.start_time = new_start
            block.end_time = new_end

        if is_available is not None:
            block.is_available = is_available
        if is_blocked is not None:
            block.is_blocked = is_blocked
            block.block_reason = block_reason if is_blocked else None

        db.commit()
    except SchedulingError:
        db.rollback()
        raise

    db.refresh(block)
    logger.info('Schedule block %s updated by user %s', block.id, caller.user_id)
    return block


def set_block_state(db: Session, caller: Caller, block_id: int, blocked: bool, reason: str | None = None) -> ScheduleBlock:
    block = get_block(db, caller, block_id)

    if blocked:
        block.block_reason = normalize_text(reason, config.MAX_REASON_LENGTH, 'Block reason', required=True)
    else:
        block.block_reason = None
    block.is_blocked = blocked

    db.commit()
    db.refresh(block)
    logger.info('Schedule block %s %s by user %s', block.id, 'blocked' if blocked else 'unblocked', caller.user_id)
    return block


def delete_block(db: Session, caller: Caller, block_id: int) -> None:
    block = get_block(db, caller, block_id)
    db.delete(block)
    db.commit()
    logger.info('Schedule block %s deleted by user %s', block_id, caller.user_id)


def list_blocks(
    db: Session,
    psychologist_id: int,
    date_from: date | None = None,
    date_to: date | None = None,
    is_available: bool | None = None,
    is_blocked: bool | None = None,
) -> list[ScheduleBlock]:
    query = db.query(ScheduleBlock).filter(ScheduleBlock.psychologist_id == psychologist_id)

    if date_from is not None:
        query = query.filter(ScheduleBlock.date >= date_from)
    if date_to is not None:
        query = query.filter(ScheduleBlock.date <= date_to)
    if is_available is not None:
        query = query.filter(ScheduleBlock.is_available.is_(is_available))
    if is_blocked is not None:
        query = query.filter(ScheduleBlock.is_blocked.is_(is_blocked))

    return query.order_by(ScheduleBlock.date.asc(), ScheduleBlock.start_time.asc()).all()


def find_conflicts(
    db: Session,
    psychologist_id: int,
    block_date: date,
    start_time: time,
    end_time: time,
) -> list[ScheduleBlock]:
    validate_times(start_time, end_time)
    return find_overlapping_blocks(db, psychologist_id, block_date, start_time, end_time)


def schedule_stats(db: Session, psychologist_id: int, date_from: date, date_to: date) -> ScheduleStats:
    if date_to < date_from:
        raise ValidationError('date_to must not be before date_from.')

    blocks = list_blocks(db, psychologist_id, date_from, date_to)
    booked = db.query(func.count(Appointment.id)).filter(
        Appointment.psychologist_id == psychologist_id,
        Appointment.date >= date_from,
        Appointment.date <= date_to,
        Appointment.status.in_(OCCUPYING_STATUSES),
    ).scalar()

    return ScheduleStats(
        total_blocks=len(blocks),
        available_blocks=sum(1 for block in blocks if block.is_bookable),
        blocked_blocks=sum(1 for block in blocks if block.is_blocked),
        unavailable_blocks=sum(1 for block in blocks if not block.is_available),
        booked_appointments=booked or 0,
    )


def create_unavailability(
    db: Session,
    caller: Caller,
    psychologist_id: int,
    unavailable_date: date,
    start_time: time | None = None,
    end_time: time | None = None,
    reason: str | None = None,
    today: date | None = None,
) -> Unavailability:
    authorize_schedule_write(caller, psychologist_id)
    validate_block_date(unavailable_date, today or date.today())
    if start_time is not None and end_time is not None:
        validate_times(start_time, end_time)
    queries.get_psychologist(db, psychologist_id)

    record = Unavailability(
        psychologist_id=psychologist_id,
        date=unavailable_date,
        start_time=start_time,
        end_time=end_time,
        reason=normalize_text(reason, config.MAX_REASON_LENGTH, 'Reason'),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info('Unavailability %s recorded for psychologist %s on %s', record.id, psychologist_id, unavailable_date)
    return record


def list_unavailabilities(
    db: Session,
    psychologist_id: int,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Unavailability]:
    query = db.query(Unavailability).filter(Unavailability.psychologist_id == psychologist_id)
    if date_from is not None:
        query = query.filter(Unavailability.date >= date_from)
    if date_to is not None:
        query = query.filter(Unavailability.date <= date_to)
    return query.order_by(Unavailability.date.asc(), Unavailability.start_time.asc()).all()


def delete_unavailability(db: Session, caller: Caller, unavailability_id: int) -> None:
    record = db.query(Unavailability).filter(Unavailability.id == unavailability_id).first()
    if record is None:
        raise NotFound('Unavailability not found.')
    authorize_schedule_write(caller, record.psychologist_id)

    db.delete(record)
    db.commit()
    logger.info('Unavailability %s removed by user %s', unavailability_id, caller.user_id)
