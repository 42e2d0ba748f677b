from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field, UUID4, model_validator
from datetime import time, datetime


# ---------------------------------------------------------------------------
# Time slot rules: tagged by scope
# ---------------------------------------------------------------------------

class _TimeSlotRuleBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    start_time: time
    end_time: time
    slot_duration: int = Field(default=30, gt=0)
    max_concurrent_bookings: Optional[int] = Field(default=None, gt=0)
    turn_time_minutes: Optional[int] = Field(default=None, gt=0)
    priority: int = 0
    is_active: bool = True

    @model_validator(mode="after")
    def check_range(self):
        # 00:00 as end means midnight
        if self.end_time != time(0, 0) and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class DaySpecificTimeSlotRule(_TimeSlotRuleBase):
    kind: Literal["day"] = "day"
    day_of_week: int = Field(ge=0, le=6)     # 0 = Monday


class AllDaysTimeSlotRule(_TimeSlotRuleBase):
    kind: Literal["all_days"] = "all_days"


TimeSlotRuleCreate = Annotated[
    Union[DaySpecificTimeSlotRule, AllDaysTimeSlotRule],
    Field(discriminator="kind"),
]


class TimeSlotRule(BaseModel):
    id: UUID4
    restaurant_id: UUID4
    name: str
    day_of_week: Optional[int] = None
    start_time: time
    end_time: time
    slot_duration: int
    max_concurrent_bookings: Optional[int] = None
    turn_time_minutes: Optional[int] = None
    priority: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# Turn time rules
# ---------------------------------------------------------------------------

class TurnTimeRuleCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    min_party_size: int = Field(ge=1)
    max_party_size: int = Field(ge=1)
    turn_time_minutes: int = Field(gt=0)
    priority: int = 0
    is_active: bool = True

    @model_validator(mode="after")
    def check_party_range(self):
        if self.min_party_size > self.max_party_size:
            raise ValueError("min_party_size cannot exceed max_party_size")
        return self


class TurnTimeRule(BaseModel):
    id: UUID4
    restaurant_id: UUID4
    name: Optional[str] = None
    min_party_size: int
    max_party_size: int
    turn_time_minutes: int
    priority: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
