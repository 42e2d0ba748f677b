import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from tablekeeper.api.deps import get_current_staff, get_repository
from tablekeeper.engine.repository import BookingRepository
from tablekeeper.models.rules import TimeSlotRule, TurnTimeRule
from tablekeeper.schemas.rules import (
    TimeSlotRule as TimeSlotRuleSchema,
    TimeSlotRuleCreate,
    TurnTimeRule as TurnTimeRuleSchema,
    TurnTimeRuleCreate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/staff/restaurants", tags=["Booking Rules"])


# ---------------------------------------------------------------------------
# Rule configuration: every write drops the cached policy
# ---------------------------------------------------------------------------


@router.post(
    "/{restaurant_id}/time-slot-rules",
    response_model=TimeSlotRuleSchema,
    status_code=status.HTTP_201_CREATED,
)
def create_time_slot_rule(
    restaurant_id: UUID,
    payload: TimeSlotRuleCreate,
    staff: dict = Depends(get_current_staff),
    repository: BookingRepository = Depends(get_repository),
):
    repository.load_policy(restaurant_id)
    rule = repository.add_time_slot_rule(TimeSlotRule(
        restaurant_id=restaurant_id,
        name=payload.name,
        day_of_week=getattr(payload, "day_of_week", None),
        start_time=payload.start_time,
        end_time=payload.end_time,
        slot_duration=payload.slot_duration,
        max_concurrent_bookings=payload.max_concurrent_bookings,
        turn_time_minutes=payload.turn_time_minutes,
        priority=payload.priority,
        is_active=payload.is_active,
    ))
    logger.info("Time slot rule %r added to restaurant %s by %s", rule.name, restaurant_id, staff.get("sub"))
    return rule


@router.post(
    "/{restaurant_id}/turn-time-rules",
    response_model=TurnTimeRuleSchema,
    status_code=status.HTTP_201_CREATED,
)
def create_turn_time_rule(
    restaurant_id: UUID,
    payload: TurnTimeRuleCreate,
    staff: dict = Depends(get_current_staff),
    repository: BookingRepository = Depends(get_repository),
):
    """New rules apply to bookings made from now on; existing durations never change."""
    repository.load_policy(restaurant_id)
    rule = repository.add_turn_time_rule(TurnTimeRule(restaurant_id=restaurant_id, **payload.model_dump()))
    logger.info(
        "Turn time rule %d-%d -> %d min added to restaurant %s by %s",
        rule.min_party_size, rule.max_party_size, rule.turn_time_minutes, restaurant_id, staff.get("sub"),
    )
    return rule
