import secrets
import string

from sqlalchemy.orm import Session

from tablekeeper.models.booking import Booking

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


def generate_confirmation_code() -> str:
    """Opaque 8-character code, e.g. 'K7Q2ZP0M'."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def make_unique_confirmation_code(db: Session) -> str:
    """Generate a code not yet used by any booking. The unique index stays the final arbiter."""
    while True:
        code = generate_confirmation_code()
        if db.query(Booking.id).filter(Booking.confirmation_code == code).first() is None:
            return code
