"""
Booking engine error taxonomy.

Every error carries a machine-readable ``code``, whether the caller may retry
the same request, and enough ``details`` for a UI to offer the next-best
action (another time, the waitlist, or calling the restaurant).
"""

from typing import Any, Optional


class BookingError(Exception):
    code = "booking_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


# --- Bad input: the user must correct the request ---

class ValidationError(BookingError):
    code = "validation_failed"
    status_code = 400


class InvalidPartySize(ValidationError):
    code = "invalid_party_size"


class PolicyConfigurationError(ValidationError):
    code = "invalid_policy"


# --- Legitimate business outcomes ---

class RestaurantClosed(BookingError):
    code = "restaurant_closed"
    status_code = 422


class NoCapacity(BookingError):
    code = "no_capacity"
    status_code = 409


class TablesUnavailable(NoCapacity):
    code = "tables_unavailable"


class NoCombinationAvailable(NoCapacity):
    code = "no_combination_available"


class WaitlistDisabled(BookingError):
    code = "waitlist_disabled"
    status_code = 409


class InvalidStatusTransition(BookingError):
    code = "invalid_status_transition"
    status_code = 409


class BookingNotFound(BookingError):
    code = "not_found"
    status_code = 404


# --- Transient / infrastructure faults ---

class LockTimeout(BookingError):
    code = "lock_timeout"
    status_code = 503
    retryable = True


class PersistenceError(BookingError):
    code = "persistence_error"
    status_code = 500


class AttemptCancelled(BookingError):
    code = "attempt_cancelled"
    status_code = 409
