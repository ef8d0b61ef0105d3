"""In-process publication of booking events.

Publishing happens after the originating transaction commits. A failing
listener is logged and does not affect the others or the caller.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time

logger = logging.getLogger(__name__)

APPOINTMENT_CREATED = 'appointment.created'
APPOINTMENT_STATUS_CHANGED = 'appointment.status_changed'
APPOINTMENT_RESCHEDULED = 'appointment.rescheduled'


@dataclass(frozen=True)
class AppointmentEvent:
    name: str
    appointment_id: int
    student_id: int
    psychologist_id: int
    date: date
    start_time: time
    status: str
    previous_status: str | None = None
    actor_id: int | None = None
    note: str | None = None
    occurred_at: datetime = field(default_factory=datetime.now)


Listener = Callable[[AppointmentEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self) -> None:
        self._listeners.clear()

    def publish(self, event: AppointmentEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception('Listener %r failed for %s on appointment %s', listener, event.name, event.appointment_id)


event_bus = EventBus()
