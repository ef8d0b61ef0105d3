from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from psych_booking.auth.dependencies import get_current_caller
from psych_booking.core.caller import Caller
from psych_booking.core.errors import SchedulingError
from psych_booking.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from psych_booking.scheduling import schedule_store
from psych_booking.scheduling.availability import compute_available_slots
from psych_booking.scheduling.schedule_store import BlockSpec

router = APIRouter(tags=['schedule'])


class CreateScheduleRequest(BaseModel):
    psychologist_id: int | None = None
    date: date
    start_time: time
    end_time: time
    is_available: bool = True
    block_reason: str | None = None

    class Config:
        extra = 'forbid'


class WeeklyPatternRequest(BaseModel):
    psychologist_id: int | None = None
    weekdays: list[int] = Field(min_length=1)
    start_time: time
    end_time: time
    date_from: date
    date_to: date
    is_available: bool = True

    class Config:
        extra = 'forbid'

    @field_validator('weekdays')
    @classmethod
    def validate_weekdays(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError('Weekdays must be between 0 (Monday) and 6 (Sunday).')
        return sorted(set(value))


class BulkScheduleRequest(BaseModel):
    schedules: list[CreateScheduleRequest] = Field(default_factory=list)
    weekly: WeeklyPatternRequest | None = None

    class Config:
        extra = 'forbid'


class UpdateScheduleRequest(BaseModel):
    start_time: time | None = None
    end_time: time | None = None
    is_available: bool | None = None
    is_blocked: bool | None = None
    block_reason: str | None = None

    class Config:
        extra = 'forbid'


class BlockScheduleRequest(BaseModel):
    reason: str

    class Config:
        extra = 'forbid'


class CreateUnavailabilityRequest(BaseModel):
    psychologist_id: int | None = None
    date: date
    start_time: time | None = None
    end_time: time | None = None
    reason: str | None = None

    class Config:
        extra = 'forbid'


class ScheduleBlockResponse(BaseModel):
    id: int
    psychologist_id: int
    date: date
    start_time: time
    end_time: time
    is_available: bool
    is_blocked: bool
    block_reason: str | None = None

    class Config:
        from_attributes = True


class BulkScheduleResponse(BaseModel):
    created: list[ScheduleBlockResponse]
    errors: list[str]


class SlotResponse(BaseModel):
    date: date
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class UnavailabilityResponse(BaseModel):
    id: int
    psychologist_id: int
    date: date
    start_time: time | None = None
    end_time: time | None = None
    reason: str | None = None

    class Config:
        from_attributes = True


class ScheduleStatsResponse(BaseModel):
    total_blocks: int
    available_blocks: int
    blocked_blocks: int
    unavailable_blocks: int
    booked_appointments: int

    class Config:
        from_attributes = True


def resolve_psychologist_id(caller: Caller, psychologist_id: int | None) -> int:
    if psychologist_id is not None:
        return psychologist_id
    if caller.is_psychologist:
        return caller.user_id
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail='psychologist_id is required.',
    )


def to_block_spec(caller: Caller, data: CreateScheduleRequest) -> BlockSpec:
    return BlockSpec(
        psychologist_id=resolve_psychologist_id(caller, data.psychologist_id),
        date=data.date,
        start_time=data.start_time,
        end_time=data.end_time,
        is_available=data.is_available,
        block_reason=data.block_reason,
    )


@router.get('/available/{psychologist_id}', response_model=list[SlotResponse])
def list_available_slots(
    psychologist_id: int,
    start_date: date | None = Query(default=None, alias='date'),
    range_days: int = Query(default=1, ge=1, alias='range'),
    granularity: int | None = Query(default=None),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        date_from = start_date or date.today()
        date_to = date_from + timedelta(days=range_days - 1)
        return compute_available_slots(db, caller, psychologist_id, date_from, date_to, granularity)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/psychologist/{psychologist_id}', response_model=list[ScheduleBlockResponse])
def list_psychologist_schedule(
    psychologist_id: int,
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    is_available: bool | None = Query(default=None),
    is_blocked: bool | None = Query(default=None),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    del caller
    ensure_database_ready()

    try:
        return schedule_store.list_blocks(db, psychologist_id, date_from, date_to, is_available, is_blocked)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=ScheduleBlockResponse, status_code=status.HTTP_201_CREATED)
def create_schedule_block(
    data: CreateScheduleRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.create_block(db, caller, to_block_spec(caller, data))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/bulk', response_model=BulkScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule_blocks_bulk(
    data: BulkScheduleRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    if not data.schedules and data.weekly is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Provide at least one schedule or a weekly pattern.',
        )

    ensure_database_ready()

    try:
        specs = [to_block_spec(caller, item) for item in data.schedules]
        if data.weekly is not None:
            weekly = data.weekly
            specs.extend(
                schedule_store.expand_weekly_pattern(
                    psychologist_id=resolve_psychologist_id(caller, weekly.psychologist_id),
                    weekdays=weekly.weekdays,
                    start_time=weekly.start_time,
                    end_time=weekly.end_time,
                    date_from=weekly.date_from,
                    date_to=weekly.date_to,
                    is_available=weekly.is_available,
                )
            )

        result = schedule_store.create_blocks_bulk(db, caller, specs)
        return BulkScheduleResponse(
            created=[ScheduleBlockResponse.model_validate(block) for block in result.created],
            errors=result.errors,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/conflicts', response_model=list[ScheduleBlockResponse])
def list_schedule_conflicts(
    psychologist_id: int = Query(...),
    block_date: date = Query(..., alias='date'),
    start_time: time = Query(...),
    end_time: time = Query(...),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    del caller
    ensure_database_ready()

    try:
        return schedule_store.find_conflicts(db, psychologist_id, block_date, start_time, end_time)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/stats', response_model=ScheduleStatsResponse)
def get_schedule_stats(
    psychologist_id: int | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    today = datetime.now().date()
    start = date_from or today.replace(day=1)
    end = date_to or (start.replace(day=28) + timedelta(days=4)).replace(day=1) - timedelta(days=1)

    try:
        return schedule_store.schedule_stats(db, resolve_psychologist_id(caller, psychologist_id), start, end)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/unavailability', response_model=UnavailabilityResponse, status_code=status.HTTP_201_CREATED)
def create_unavailability(
    data: CreateUnavailabilityRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.create_unavailability(
            db,
            caller,
            resolve_psychologist_id(caller, data.psychologist_id),
            data.date,
            data.start_time,
            data.end_time,
            data.reason,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/unavailability/{psychologist_id}', response_model=list[UnavailabilityResponse])
def list_unavailability(
    psychologist_id: int,
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    del caller
    ensure_database_ready()

    try:
        return schedule_store.list_unavailabilities(db, psychologist_id, date_from, date_to)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/unavailability/{unavailability_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_unavailability(
    unavailability_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        schedule_store.delete_unavailability(db, caller, unavailability_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{block_id}', response_model=ScheduleBlockResponse)
def update_schedule_block(
    block_id: int,
    data: UpdateScheduleRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.update_block(
            db,
            caller,
            block_id,
            start_time=data.start_time,
            end_time=data.end_time,
            is_available=data.is_available,
            is_blocked=data.is_blocked,
            block_reason=data.block_reason,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_schedule_block(
    block_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        schedule_store.delete_block(db, caller, block_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{block_id}/block', response_model=ScheduleBlockResponse)
def block_schedule_block(
    block_id: int,
    data: BlockScheduleRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.set_block_state(db, caller, block_id, blocked=True, reason=data.reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{block_id}/unblock', response_model=ScheduleBlockResponse)
def unblock_schedule_block(
    block_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.set_block_state(db, caller, block_id, blocked=False)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
