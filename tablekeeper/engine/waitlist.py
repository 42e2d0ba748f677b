"""
Waitlist: FIFO queue of requests for a fully booked slot.

Entries are ordered by ``requested_at`` and promoted to bookings, oldest
first, whenever a cancellation frees capacity on their date. Promotion goes
through the orchestrator, so it takes the same locks as any other booking.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from tablekeeper.core.exceptions import BookingError, InvalidStatusTransition, PersistenceError, WaitlistDisabled
from tablekeeper.engine import events
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.engine.types import BookingRequest
from tablekeeper.models.waitlist import WaitlistEntry, WaitlistStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaitlistReceipt:
    entry_id: UUID
    restaurant_id: UUID
    booking_date: date
    requested_time: time
    party_size: int
    position: int


def _entry_payload(entry: WaitlistEntry) -> dict:
    return {
        "entry_id": entry.id,
        "date": entry.booking_date,
        "requested_time": entry.requested_time,
        "party_size": entry.party_size,
        "status": entry.status,
    }


def append_to_waitlist(
    repository: BookingRepository,
    publisher: events.EventPublisher,
    request: BookingRequest,
    enabled: bool = True,
) -> WaitlistReceipt:
    if not enabled:
        raise WaitlistDisabled("This restaurant does not keep a waitlist", {"restaurant_id": str(request.restaurant_id)})

    entry = repository.add_waitlist_entry(WaitlistEntry(
        restaurant_id=request.restaurant_id,
        booking_date=request.booking_date,
        requested_time=request.start_time,
        party_size=request.party_size,
        customer_name=request.customer_name,
        customer_email=request.customer_email,
        customer_phone=request.customer_phone,
        notes=request.notes,
    ))
    queue = repository.list_waitlist(request.restaurant_id, request.booking_date)
    position = next((i for i, e in enumerate(queue, start=1) if e.id == entry.id), len(queue))
    logger.info("Waitlisted party of %d for %s %s (position %d)", entry.party_size, entry.booking_date, entry.requested_time, position)

    publisher.publish(events.WAITLIST_ADDED, request.restaurant_id, dict(_entry_payload(entry), position=position))
    return WaitlistReceipt(
        entry_id=entry.id,
        restaurant_id=entry.restaurant_id,
        booking_date=entry.booking_date,
        requested_time=entry.requested_time,
        party_size=entry.party_size,
        position=position,
    )


class WaitlistService:
    def __init__(self, repository: BookingRepository, orchestrator, publisher: events.EventPublisher) -> None:
        self.repository = repository
        self.orchestrator = orchestrator
        self.publisher = publisher

    def list_entries(self, restaurant_id: UUID, on_date: date) -> list[WaitlistEntry]:
        return self.repository.list_waitlist(restaurant_id, on_date)

    def remove(self, entry_id: UUID) -> WaitlistEntry:
        entry = self.repository.get_waitlist_entry(entry_id)
        if entry.status == WaitlistStatus.removed.value:
            return entry
        if entry.status != WaitlistStatus.waiting.value:
            raise InvalidStatusTransition(
                "Only waiting entries can be removed",
                {"entry_id": str(entry_id), "status": entry.status},
            )
        return self.repository.update_waitlist_entry(entry, status=WaitlistStatus.removed.value)

    def promote(self, restaurant_id: UUID, on_date: date, now: Optional[datetime] = None) -> list[WaitlistEntry]:
        """
        Offer freed capacity to waiting entries in FIFO order.

        Each entry is tried at its requested time; entries that still do not
        fit stay in the queue. The booking and the entry's ``promoted`` mark
        are written in one commit. Failures are logged, never raised, so the
        cancellation that triggered promotion always stands. Returns the
        entries that became bookings.
        """
        try:
            queue = self.repository.list_waitlist(restaurant_id, on_date)
        except PersistenceError as e:
            logger.error("Could not read the waitlist for %s %s: %s", restaurant_id, on_date, e.message)
            return []

        promoted = []
        for entry in queue:
            request = BookingRequest(
                restaurant_id=entry.restaurant_id,
                booking_date=entry.booking_date,
                start_time=entry.requested_time,
                party_size=entry.party_size,
                customer_name=entry.customer_name,
                customer_email=entry.customer_email,
                customer_phone=entry.customer_phone,
                notes=entry.notes,
                source="waitlist",
                waitlist_entry_id=entry.id,
            )
            try:
                result = self.orchestrator.create_booking(request, now=now)
            except BookingError as e:
                logger.error("Waitlist entry %s could not be promoted: %s", entry.id, e.message)
                continue
            if not result.ok or result.booking is None:
                if isinstance(result.error, PersistenceError):
                    logger.error("Waitlist entry %s not promoted: %s", entry.id, result.error.message)
                else:
                    logger.debug("Waitlist entry %s not promoted: %s", entry.id, result.state.value)
                continue

            logger.info("Promoted waitlist entry %s to booking %s", entry.id, result.booking.confirmation_code)
            self.publisher.publish(
                events.WAITLIST_PROMOTED,
                restaurant_id,
                dict(_entry_payload(entry), booking_id=result.booking.id),
            )
            promoted.append(entry)
        return promoted
