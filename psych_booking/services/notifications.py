"""Stored notifications derived from appointment events."""

import logging
from collections.abc import Callable

from sqlalchemy.orm import Session

from psych_booking.core.caller import Caller
from psych_booking.core.errors import NotFound
from psych_booking.models.appointment import AppointmentStatus
from psych_booking.models.notification import Notification, NotificationType, RelatedEntity, RelatedKind
from psych_booking.scheduling.events import (
    APPOINTMENT_CREATED,
    APPOINTMENT_RESCHEDULED,
    APPOINTMENT_STATUS_CHANGED,
    AppointmentEvent,
    Listener,
)

logger = logging.getLogger(__name__)

STATUS_TITLES = {
    AppointmentStatus.CONFIRMED.value: 'Appointment confirmed',
    AppointmentStatus.CANCELLED.value: 'Appointment cancelled',
    AppointmentStatus.COMPLETED.value: 'Appointment completed',
    AppointmentStatus.NO_SHOW.value: 'Appointment marked as missed',
}


def _when(event: AppointmentEvent) -> str:
    return f'{event.date:%d/%m/%Y} at {event.start_time:%H:%M}'


def build_notifications(event: AppointmentEvent) -> list[Notification]:
    related = RelatedEntity(kind=RelatedKind.APPOINTMENT, id=event.appointment_id)
    notifications: list[Notification] = []

    if event.name == APPOINTMENT_CREATED:
        if event.status == AppointmentStatus.PENDING.value:
            notifications.append(
                Notification(
                    user_id=event.psychologist_id,
                    type=NotificationType.APPOINTMENT,
                    title='New appointment request',
                    message=f'A student requested an appointment on {_when(event)}.',
                )
            )
            student_message = f'Your appointment request for {_when(event)} is awaiting confirmation.'
        else:
            student_message = f'An appointment was scheduled for you on {_when(event)}.'
        notifications.append(
            Notification(
                user_id=event.student_id,
                type=NotificationType.APPOINTMENT,
                title='Appointment booked',
                message=student_message,
            )
        )

    elif event.name == APPOINTMENT_STATUS_CHANGED:
        title = STATUS_TITLES.get(event.status, 'Appointment updated')
        message = f'Your appointment on {_when(event)} is now {event.status}.'
        if event.note:
            message = f'{message} {event.note}'

        recipients = [event.student_id]
        if event.actor_id == event.student_id:
            recipients = [event.psychologist_id]
            message = f'The appointment on {_when(event)} was {event.status} by the student.'

        for user_id in recipients:
            notifications.append(
                Notification(user_id=user_id, type=NotificationType.STATUS, title=title, message=message)
            )

    elif event.name == APPOINTMENT_RESCHEDULED:
        recipient = event.psychologist_id if event.actor_id == event.student_id else event.student_id
        message = f'The appointment was moved to {_when(event)}.'
        if event.note:
            message = f'{message} {event.note}'
        notifications.append(
            Notification(
                user_id=recipient,
                type=NotificationType.APPOINTMENT,
                title='Appointment rescheduled',
                message=message,
            )
        )

    for notification in notifications:
        notification.related = related
    return notifications


def make_notification_listener(session_factory: Callable[[], Session]) -> Listener:
    def record_notifications(event: AppointmentEvent) -> None:
        notifications = build_notifications(event)
        if not notifications:
            return

        db = session_factory()
        try:
            db.add_all(notifications)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.debug('Stored %d notifications for %s', len(notifications), event.name)

    return record_notifications


def list_notifications(db: Session, caller: Caller, unread_only: bool = False) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == caller.user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def mark_read(db: Session, caller: Caller, notification_id: int) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == caller.user_id,
    ).first()
    if notification is None:
        raise NotFound('Notification not found.')

    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
