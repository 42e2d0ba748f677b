"""Slot Generator: candidate start times for one date."""

import heapq
from typing import Iterable, Iterator

from tablekeeper.engine.types import EffectivePeriod


def period_starts(period: EffectivePeriod) -> Iterator[int]:
    """
    ``start, start + slot, start + 2*slot, ...`` while ``start + turn <= end``.

    The last start is the largest one satisfying the inequality, so a party is
    never seated at a time that would run it past closing.
    """
    last_start = period.end_minute - period.turn_time_minutes
    minute = period.start_minute
    while minute <= last_start:
        yield minute
        minute += period.slot_duration


class SlotSequence:
    """
    Lazy, finite, restartable sequence of ``(minute, period)`` candidates.

    Every ``iter()`` starts from the first slot again. Periods are merged in
    start-time order and a start time offered by two adjacent periods is
    yielded once, attributed to the earlier period.
    """

    def __init__(self, periods: Iterable[EffectivePeriod]) -> None:
        self._periods = tuple(periods)

    def __iter__(self) -> Iterator[tuple[int, EffectivePeriod]]:
        streams = [
            ((minute, index, period) for minute in period_starts(period))
            for index, period in enumerate(self._periods)
        ]
        previous = None
        for minute, _, period in heapq.merge(*streams):
            if minute == previous:
                continue
            previous = minute
            yield minute, period

    def minutes(self) -> list[int]:
        return [minute for minute, _ in self]

    @property
    def periods(self) -> tuple[EffectivePeriod, ...]:
        return self._periods
