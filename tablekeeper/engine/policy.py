"""
Configuration Resolver.

Merges a restaurant's opening hours and defaults with its ``TimeSlotRule``
and ``TurnTimeRule`` sets into the effective policy for one date and party
size.

Precedence for overlapping time-slot rules: a weekday-scoped rule beats an
all-days rule, then the higher ``priority`` wins, then the narrower time
range. A winning rule replaces every opening-hours period it overlaps; rules
never open a weekday on which the restaurant has no opening hours.

Turn time for a party: the active ``TurnTimeRule`` containing the party size
with the highest priority (ties: narrowest party-size range), else the
service period's rule turn time, else the restaurant default.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from tablekeeper.core.exceptions import InvalidPartySize, PolicyConfigurationError, RestaurantClosed
from tablekeeper.engine.types import (
    EffectivePeriod,
    OpeningPeriod,
    ResolvedPolicy,
    RestaurantPolicy,
    TimeSlotRuleSpec,
    TurnTimeRuleSpec,
)
from tablekeeper.utils.timeslots import MINUTES_PER_DAY, WEEKDAY_NAMES, format_minutes

logger = logging.getLogger(__name__)


def _check_range(label: str, start: int, end: int) -> None:
    if not 0 <= start < end <= MINUTES_PER_DAY:
        raise PolicyConfigurationError(
            f"{label}: end time must be after start time on the same day",
            {"start": format_minutes(start % MINUTES_PER_DAY), "end": format_minutes(end % MINUTES_PER_DAY)},
        )


def _check_positive(label: str, value: Optional[int], field: str) -> None:
    if value is not None and value <= 0:
        raise PolicyConfigurationError(f"{label}: {field} must be positive", {field: value})


def _check_weekday(label: str, day_of_week: Optional[int]) -> None:
    if day_of_week is not None and not 0 <= day_of_week <= 6:
        raise PolicyConfigurationError(f"{label}: day_of_week must be 0-6", {"day_of_week": day_of_week})


def validate_policy(policy: RestaurantPolicy) -> None:
    """Reject malformed opening hours and rules before any slot is computed."""
    _check_positive("restaurant", policy.default_slot_duration, "default_slot_duration")
    _check_positive("restaurant", policy.default_turn_time, "default_turn_time")
    _check_positive("restaurant", policy.max_party_size, "max_party_size")
    if policy.buffer_minutes < 0:
        raise PolicyConfigurationError("restaurant: buffer_minutes cannot be negative")

    for period in policy.opening_periods:
        label = f"opening period '{period.name}'"
        _check_weekday(label, period.day_of_week)
        _check_range(label, period.start_minute, period.end_minute)
        _check_positive(label, period.slot_duration, "slot_duration")

    for rule in policy.time_slot_rules:
        label = f"time slot rule '{rule.name}'"
        _check_weekday(label, rule.day_of_week)
        _check_range(label, rule.start_minute, rule.end_minute)
        _check_positive(label, rule.slot_duration, "slot_duration")
        _check_positive(label, rule.turn_time_minutes, "turn_time_minutes")
        _check_positive(label, rule.max_concurrent_bookings, "max_concurrent_bookings")

    for rule in policy.turn_time_rules:
        label = f"turn time rule {rule.id}"
        _check_positive(label, rule.turn_time_minutes, "turn_time_minutes")
        if rule.min_party_size < 1 or rule.min_party_size > rule.max_party_size:
            raise PolicyConfigurationError(
                f"{label}: party size range must satisfy 1 <= min <= max",
                {"min_party_size": rule.min_party_size, "max_party_size": rule.max_party_size},
            )


def _overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and b_start < a_end


def time_slot_rule_precedence(rule: TimeSlotRuleSpec) -> tuple:
    """Sort key, best rule first."""
    return (0 if rule.is_day_specific else 1, -rule.priority, rule.span, rule.start_minute, str(rule.id))


def select_time_slot_rules(rules: Iterable[TimeSlotRuleSpec], day_of_week: int) -> list[TimeSlotRuleSpec]:
    """
    Rules in force on ``day_of_week``, with overlaps resolved.

    Rules are taken best-first; a rule overlapping one already accepted is
    shadowed for that day.
    """
    candidates = [r for r in rules if r.day_of_week is None or r.day_of_week == day_of_week]
    accepted: list[TimeSlotRuleSpec] = []
    for rule in sorted(candidates, key=time_slot_rule_precedence):
        winner = next(
            (a for a in accepted if _overlaps(a.start_minute, a.end_minute, rule.start_minute, rule.end_minute)),
            None,
        )
        if winner is not None:
            logger.debug("Time slot rule %r shadowed by %r on %s", rule.name, winner.name, WEEKDAY_NAMES[day_of_week])
            continue
        accepted.append(rule)
    return sorted(accepted, key=lambda r: r.start_minute)


def select_turn_time_rule(rules: Iterable[TurnTimeRuleSpec], party_size: int) -> Optional[TurnTimeRuleSpec]:
    matching = [r for r in rules if r.matches(party_size)]
    if not matching:
        return None
    return min(matching, key=lambda r: (-r.priority, r.span, r.min_party_size, str(r.id)))


def resolve_turn_time(policy: RestaurantPolicy, party_size: int) -> int:
    rule = select_turn_time_rule(policy.turn_time_rules, party_size)
    return rule.turn_time_minutes if rule else policy.default_turn_time


def validate_party_size(policy: RestaurantPolicy, party_size: int) -> None:
    if party_size <= 0:
        raise InvalidPartySize("Party size must be at least 1", {"party_size": party_size})
    if party_size > policy.max_party_size:
        raise InvalidPartySize(
            f"Maximum party size is {policy.max_party_size}",
            {"party_size": party_size, "max_party_size": policy.max_party_size},
        )


def resolve(policy: RestaurantPolicy, on_date: date, party_size: int) -> ResolvedPolicy:
    """Effective service periods and turn time for ``party_size`` on ``on_date``."""
    validate_policy(policy)
    validate_party_size(policy, party_size)

    day_of_week = on_date.weekday()
    opening: list[OpeningPeriod] = [p for p in policy.opening_periods if p.day_of_week == day_of_week]
    if not opening:
        raise RestaurantClosed(
            f"Restaurant is closed on {WEEKDAY_NAMES[day_of_week].capitalize()}s",
            {"date": on_date.isoformat(), "day_of_week": day_of_week},
        )

    party_rule = select_turn_time_rule(policy.turn_time_rules, party_size)
    rules = select_time_slot_rules(policy.time_slot_rules, day_of_week)

    periods: list[EffectivePeriod] = []
    for period in opening:
        if any(_overlaps(r.start_minute, r.end_minute, period.start_minute, period.end_minute) for r in rules):
            continue
        periods.append(EffectivePeriod(
            name=period.name,
            start_minute=period.start_minute,
            end_minute=period.end_minute,
            slot_duration=period.slot_duration or policy.default_slot_duration,
            turn_time_minutes=party_rule.turn_time_minutes if party_rule else policy.default_turn_time,
        ))

    for rule in rules:
        if party_rule:
            turn_time = party_rule.turn_time_minutes
        else:
            turn_time = rule.turn_time_minutes or policy.default_turn_time
        periods.append(EffectivePeriod(
            name=rule.name,
            start_minute=rule.start_minute,
            end_minute=rule.end_minute,
            slot_duration=rule.slot_duration,
            turn_time_minutes=turn_time,
            max_concurrent_bookings=rule.max_concurrent_bookings,
            source="rule",
        ))

    periods.sort(key=lambda p: (p.start_minute, p.end_minute))
    return ResolvedPolicy(
        policy=policy,
        day_of_week=day_of_week,
        party_size=party_size,
        turn_time_minutes=party_rule.turn_time_minutes if party_rule else policy.default_turn_time,
        periods=tuple(periods),
    )
