"""
Table Selector.

1. Tightest single table whose capacity range holds the party; ties go to
   the lower ``priority`` value, then the table number.
2. Otherwise combinations of combinable tables, 2 up to ``max_tables``
   members: smallest total capacity that seats the party, then fewest
   tables, then lowest priority sum.
3. Nothing fits: ``TablesUnavailable``, or ``NoCombinationAvailable`` when a
   combination search ran and came up empty.
"""

from itertools import combinations
from typing import Iterable, Optional

from tablekeeper.core.exceptions import NoCombinationAvailable, TablesUnavailable
from tablekeeper.engine.types import TableAssignment, TableSnapshot

DEFAULT_MAX_COMBINATION_TABLES = 3


def _single_key(table: TableSnapshot, party_size: int) -> tuple:
    return (table.max_capacity - party_size, table.priority, table.number, str(table.id))


def best_single_table(tables: Iterable[TableSnapshot], party_size: int) -> Optional[TableSnapshot]:
    fitting = [t for t in tables if t.fits(party_size)]
    if not fitting:
        return None
    return min(fitting, key=lambda t: _single_key(t, party_size))


def _combination_key(combo: tuple[TableSnapshot, ...]) -> tuple:
    return (
        sum(t.max_capacity for t in combo),
        len(combo),
        sum(t.priority for t in combo),
        tuple(sorted(t.number for t in combo)),
    )


def best_combination(
    tables: Iterable[TableSnapshot],
    party_size: int,
    max_tables: int = DEFAULT_MAX_COMBINATION_TABLES,
) -> Optional[tuple[TableSnapshot, ...]]:
    combinable = sorted((t for t in tables if t.is_combinable), key=lambda t: (t.number, str(t.id)))
    best = None
    best_key = None
    for size in range(2, max_tables + 1):
        if size > len(combinable):
            break
        for combo in combinations(combinable, size):
            if sum(t.max_capacity for t in combo) < party_size:
                continue
            if max(t.min_capacity for t in combo) > party_size:
                continue
            key = _combination_key(combo)
            if best_key is None or key < best_key:
                best, best_key = combo, key
    return best


def select_tables(
    free_tables: Iterable[TableSnapshot],
    party_size: int,
    max_tables: int = DEFAULT_MAX_COMBINATION_TABLES,
) -> TableAssignment:
    free_tables = list(free_tables)
    single = best_single_table(free_tables, party_size)
    if single is not None:
        return TableAssignment(tables=(single,))

    combinable = [t for t in free_tables if t.is_combinable]
    if len(combinable) < 2 or max_tables < 2:
        raise TablesUnavailable(
            f"No free table seats a party of {party_size}",
            {"party_size": party_size, "free_tables": len(free_tables), "reason": "tables"},
        )

    combo = best_combination(combinable, party_size, max_tables)
    if combo is None:
        raise NoCombinationAvailable(
            f"No combination of up to {max_tables} tables seats a party of {party_size}",
            {
                "party_size": party_size,
                "max_tables": max_tables,
                "combinable_capacity": sum(t.max_capacity for t in combinable),
                "reason": "combination",
            },
        )
    return TableAssignment(tables=combo)


def try_select_tables(
    free_tables: Iterable[TableSnapshot],
    party_size: int,
    max_tables: int = DEFAULT_MAX_COMBINATION_TABLES,
) -> Optional[TableAssignment]:
    """Non-raising variant for availability scans."""
    try:
        return select_tables(free_tables, party_size, max_tables)
    except (TablesUnavailable, NoCombinationAvailable):
        return None
