from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from tablekeeper.core.config import settings
from tablekeeper.core.security import decode_token, is_staff_claims
from tablekeeper.db.session import SessionLocal, get_db
from tablekeeper.engine.cache import PolicyCache
from tablekeeper.engine.events import EventPublisher, build_event_publisher
from tablekeeper.engine.locks import BookingLockCoordinator, build_lock_coordinator
from tablekeeper.engine.orchestrator import BookingOrchestrator
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.engine.status import BookingStatusService
from tablekeeper.engine.waitlist import WaitlistService

# Tokens are issued by the staff login service; this API only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/staff/login", auto_error=False)


# ---------------------------------------------------------------------------
# Process-wide collaborators
# ---------------------------------------------------------------------------

@lru_cache
def get_policy_cache() -> PolicyCache:
    return PolicyCache(ttl_seconds=settings.POLICY_CACHE_TTL_SECONDS)


@lru_cache
def get_lock_coordinator() -> BookingLockCoordinator:
    return build_lock_coordinator(settings, SessionLocal)


@lru_cache
def get_event_publisher() -> EventPublisher:
    return build_event_publisher(settings)


# ---------------------------------------------------------------------------
# Per-request services
# ---------------------------------------------------------------------------

def get_repository(
    db: Session = Depends(get_db),
    cache: PolicyCache = Depends(get_policy_cache),
) -> BookingRepository:
    return BookingRepository(db, cache)


def get_orchestrator(
    repository: BookingRepository = Depends(get_repository),
    locks: BookingLockCoordinator = Depends(get_lock_coordinator),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> BookingOrchestrator:
    return BookingOrchestrator(
        repository,
        locks,
        publisher,
        max_combination_tables=settings.MAX_COMBINATION_TABLES,
        persistence_retries=settings.PERSISTENCE_RETRIES,
    )


def get_waitlist_service(
    repository: BookingRepository = Depends(get_repository),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> WaitlistService:
    return WaitlistService(repository, orchestrator, publisher)


def get_status_service(
    repository: BookingRepository = Depends(get_repository),
    publisher: EventPublisher = Depends(get_event_publisher),
    waitlist: WaitlistService = Depends(get_waitlist_service),
) -> BookingStatusService:
    return BookingStatusService(repository, publisher, waitlist)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def get_optional_staff(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[dict]:
    """Staff claims when a valid staff token was sent, else None."""
    if not token:
        return None
    claims = decode_token(token)
    return claims if is_staff_claims(claims) else None


def get_current_staff(token: Optional[str] = Depends(oauth2_scheme)) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception
    claims = decode_token(token)
    if claims is None:
        raise credentials_exception
    if not is_staff_claims(claims):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return claims
