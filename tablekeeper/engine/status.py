"""
Booking status transitions outside of creation.

These only free or flag a resource, so they do not take the booking locks.
A cancellation hands the freed capacity to the waitlist.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from tablekeeper.core.exceptions import InvalidStatusTransition
from tablekeeper.engine import events
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)

# target status -> statuses it may be reached from
ALLOWED_TRANSITIONS = {
    BookingStatus.confirmed.value: {BookingStatus.pending.value},
    BookingStatus.cancelled.value: {BookingStatus.pending.value, BookingStatus.confirmed.value},
    BookingStatus.completed.value: {BookingStatus.confirmed.value},
    BookingStatus.no_show.value: {BookingStatus.pending.value, BookingStatus.confirmed.value},
}


class BookingStatusService:
    def __init__(self, repository: BookingRepository, publisher: events.EventPublisher, waitlist=None) -> None:
        self.repository = repository
        self.publisher = publisher
        self.waitlist = waitlist

    def get_by_code(self, confirmation_code: str) -> Booking:
        return self.repository.get_booking_by_code(confirmation_code)

    def _transition(self, booking: Booking, target: str) -> bool:
        """Move ``booking`` to ``target``. False when it already was there."""
        if booking.status == target:
            return False
        if booking.status not in ALLOWED_TRANSITIONS[target]:
            raise InvalidStatusTransition(
                f"Cannot mark a {booking.status} booking as {target}",
                {"booking_id": str(booking.id), "status": booking.status, "target": target},
            )
        self.repository.set_status(booking, target)
        return True

    def cancel(self, booking_id: UUID, now: Optional[datetime] = None) -> Booking:
        """Idempotent: cancelling a cancelled booking returns it unchanged."""
        booking = self.repository.get_booking(booking_id)
        return self._cancel(booking, now)

    def cancel_by_code(self, confirmation_code: str, now: Optional[datetime] = None) -> Booking:
        booking = self.repository.get_booking_by_code(confirmation_code)
        return self._cancel(booking, now)

    def _cancel(self, booking: Booking, now: Optional[datetime]) -> Booking:
        if not self._transition(booking, BookingStatus.cancelled.value):
            return booking
        logger.info("Booking %s cancelled", booking.confirmation_code)
        self.publisher.publish(events.BOOKING_CANCELLED, booking.restaurant_id, events.booking_event_payload(booking))

        if self.waitlist is not None:
            self.waitlist.promote(booking.restaurant_id, booking.booking_date, now=now)
        return booking

    def mark_no_show(self, booking_id: UUID) -> Booking:
        """The table stays blocked for the booked window."""
        return self._update(booking_id, BookingStatus.no_show.value)

    def confirm(self, booking_id: UUID) -> Booking:
        return self._update(booking_id, BookingStatus.confirmed.value)

    def complete(self, booking_id: UUID) -> Booking:
        return self._update(booking_id, BookingStatus.completed.value)

    def _update(self, booking_id: UUID, target: str) -> Booking:
        booking = self.repository.get_booking(booking_id)
        if self._transition(booking, target):
            logger.info("Booking %s marked %s", booking.confirmation_code, target)
            self.publisher.publish(events.BOOKING_UPDATED, booking.restaurant_id, events.booking_event_payload(booking))
        return booking
