"""Table selector: best single fit and combination fallback."""

import uuid

import pytest

from tablekeeper.core.exceptions import NoCapacity, NoCombinationAvailable, TablesUnavailable
from tablekeeper.engine.tables import best_combination, select_tables, try_select_tables
from tablekeeper.engine.types import TableSnapshot


def _table(number, max_capacity, min_capacity=1, priority=0, combinable=True) -> TableSnapshot:
    return TableSnapshot(
        id=uuid.uuid4(),
        number=str(number),
        min_capacity=min_capacity,
        max_capacity=max_capacity,
        is_combinable=combinable,
        priority=priority,
    )


class TestSingleTable:
    def test_tightest_fit_wins(self):
        tables = [_table(1, 2), _table(2, 4), _table(3, 6)]

        assignment = select_tables(tables, 3)

        assert [t.number for t in assignment.tables] == ["2"]
        assert not assignment.is_combination

    def test_priority_breaks_ties(self):
        tables = [_table(1, 4, priority=2), _table(2, 4, priority=1)]

        assert select_tables(tables, 4).tables[0].number == "2"

    def test_table_number_breaks_remaining_ties(self):
        tables = [_table(7, 4), _table(3, 4)]

        assert select_tables(tables, 2).tables[0].number == "3"

    def test_min_capacity_respected(self):
        tables = [_table(1, 8, min_capacity=5), _table(2, 10)]

        assert select_tables(tables, 2).tables[0].number == "2"


class TestCombinations:
    def test_three_twos_seat_five(self):
        tables = [_table(1, 2), _table(2, 2), _table(3, 2)]

        assignment = select_tables(tables, 5)

        assert assignment.is_combination
        assert len(assignment.tables) == 3
        assert assignment.total_capacity == 6

    def test_party_too_big_for_any_combination(self):
        tables = [_table(1, 2), _table(2, 2), _table(3, 2)]

        with pytest.raises(NoCombinationAvailable) as exc_info:
            select_tables(tables, 7)

        assert exc_info.value.details["reason"] == "combination"
        assert isinstance(exc_info.value, NoCapacity)

    def test_smallest_total_capacity_then_fewest_tables(self):
        tables = [_table(1, 4), _table(2, 4), _table(3, 2), _table(4, 2), _table(5, 2)]

        assignment = select_tables(tables, 6)

        # 4+2 = 6 beats 2+2+2 = 6 on table count, and both beat 4+4 = 8
        assert sorted(t.max_capacity for t in assignment.tables) == [2, 4]

    def test_max_tables_limits_search(self):
        tables = [_table(1, 2), _table(2, 2), _table(3, 2)]

        with pytest.raises(NoCombinationAvailable):
            select_tables(tables, 5, max_tables=2)

    def test_non_combinable_tables_excluded(self):
        tables = [_table(1, 2), _table(2, 2, combinable=False), _table(3, 2)]

        assert best_combination(tables, 5) is None
        assert len(best_combination(tables, 4)) == 2

    def test_fewer_than_two_combinable_tables(self):
        tables = [_table(1, 2), _table(2, 2, combinable=False)]

        with pytest.raises(TablesUnavailable) as exc_info:
            select_tables(tables, 4)

        assert exc_info.value.details["reason"] == "tables"

    def test_no_free_tables(self):
        with pytest.raises(TablesUnavailable):
            select_tables([], 2)

    def test_try_select_returns_none(self):
        assert try_select_tables([_table(1, 2)], 6) is None
        assert try_select_tables([_table(1, 6)], 6) is not None
