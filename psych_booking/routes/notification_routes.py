from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from psych_booking.auth.dependencies import get_current_caller
from psych_booking.core.caller import Caller
from psych_booking.core.errors import SchedulingError
from psych_booking.models.notification import NotificationType, RelatedKind
from psych_booking.routes.common import database_unavailable, get_db, to_http_exception
from psych_booking.services import notifications

router = APIRouter(tags=['notifications'])


class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    is_read: bool
    related_kind: RelatedKind | None = None
    related_id: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get('', response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(default=False),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    try:
        return notifications.list_notifications(db, caller, unread_only)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{notification_id}/read', response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    try:
        return notifications.mark_read(db, caller, notification_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
