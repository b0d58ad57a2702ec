"""
Table distribution engine.

Assignment policy:
    round robin: each unseated user joins the non-full table with the
        fewest members, first table wins ties, a new table is opened
        when every table is full.
    location: unseated users are bucketed by rounded coordinates and
        every bucket fills its own fresh tables.
    shuffle: all seated members are permuted uniformly and re-chunked.
All functions work on snapshots and never mutate their inputs.
"""
from __future__ import annotations

import math
import random
from typing import Dict, Iterable, List, Optional, Sequence

from .models import (
    DistributionStats,
    Member,
    MoveFailure,
    MoveResult,
    Settings,
    Table,
    User,
    table_id_for,
    table_name_for,
)

UNKNOWN_LOCATION = "unknown"


# ----------------------------- helpers -----------------------------
def seated_user_ids(tables: Iterable[Table]) -> set[str]:
    return {m.id for t in tables for m in t.members}


def _valid_users(users: Iterable[User]) -> List[User]:
    """Drop records without a usable id."""
    return [u for u in users if u is not None and isinstance(u.id, str) and u.id.strip()]


def _free_ordinal(result: Sequence[Table]) -> int:
    """Lowest ``N`` whose ``table-N`` id is not taken in ``result``.

    Ids can have gaps once an emptied table is deleted, so the length of
    ``result`` is not a safe choice.
    """
    used = {t.id for t in result}
    ordinal = 1
    while table_id_for(ordinal) in used:
        ordinal += 1
    return ordinal


def _new_table(result: List[Table]) -> Table:
    ordinal = _free_ordinal(result)
    return Table(id=table_id_for(ordinal), name=table_name_for(ordinal), members=[])


def _round_robin(users: Sequence[User], result: List[Table], max_people: int) -> List[Table]:
    """Seat ``users`` into ``result`` in place, least occupied table first."""
    for user in users:
        target: Optional[Table] = None
        fewest = max_people
        for table in result:
            if len(table.members) < fewest:
                target = table
                fewest = len(table.members)
        if target is None:
            target = _new_table(result)
            result.append(target)
        target.members.append(Member.from_user(user))
    return result


def group_by_location(users: Iterable[User]) -> Dict[str, List[User]]:
    """Bucket users by rounded location, keeping first-seen bucket order."""
    groups: Dict[str, List[User]] = {}
    for user in users:
        key = user.location.bucket_key() if user.location else UNKNOWN_LOCATION
        groups.setdefault(key, []).append(user)
    return groups


# ----------------------------- public API -----------------------------
def assign_users_to_tables(
    users: Iterable[User],
    settings: Settings,
    existing_tables: Sequence[Table] = (),
) -> List[Table]:
    """Seat every unseated user and return the complete table list."""
    max_people = settings.max_people_per_table
    result = [t.copy() for t in existing_tables]
    seated = seated_user_ids(result)

    unassigned: List[User] = []
    for user in _valid_users(users):
        if user.id in seated:
            continue
        seated.add(user.id)
        unassigned.append(user)

    if not settings.consider_location:
        return _round_robin(unassigned, result, max_people)

    # Existing tables are kept as they are but never receive location groups.
    for group in group_by_location(unassigned).values():
        for table in _round_robin(group, [], max_people):
            ordinal = _free_ordinal(result)
            table.id = table_id_for(ordinal)
            table.name = table_name_for(ordinal)
            result.append(table)
    return result


def shuffle_tables(
    tables: Iterable[Table],
    max_people_per_table: int,
    rng: Optional[random.Random] = None,
) -> List[Table]:
    """Randomly redistribute every seated member into fresh tables."""
    rng = rng or random.Random()
    members = [m for t in tables for m in t.copy().members]
    # random.shuffle is Fisher-Yates
    rng.shuffle(members)

    new_tables: List[Table] = []
    for i in range(0, len(members), max_people_per_table):
        table = _new_table(new_tables)
        table.members = members[i:i + max_people_per_table]
        new_tables.append(table)
    return new_tables


def move_user_between_tables(
    tables: Sequence[Table],
    user_id: str,
    from_table_id: str,
    to_table_id: str,
    max_people_per_table: int,
) -> MoveResult:
    """Move one member between tables, validating before touching anything."""
    result = [t.copy() for t in tables]
    source = next((t for t in result if t.id == from_table_id), None)
    destination = next((t for t in result if t.id == to_table_id), None)

    if source is None or destination is None:
        return MoveResult(ok=False, tables=result, reason=MoveFailure.TABLE_NOT_FOUND)
    if len(destination.members) >= max_people_per_table:
        return MoveResult(ok=False, tables=result, reason=MoveFailure.DESTINATION_FULL)

    index = next((i for i, m in enumerate(source.members) if m.id == user_id), -1)
    if index == -1:
        return MoveResult(ok=False, tables=result, reason=MoveFailure.USER_NOT_IN_SOURCE)

    destination.members.append(source.members.pop(index))
    return MoveResult(ok=True, tables=result)


def compute_distribution_stats(total_users: int, max_people_per_table: int) -> DistributionStats:
    """Smallest table count for ``total_users`` and how evenly they split."""
    total_users = max(0, int(total_users))
    min_tables = math.ceil(total_users / max_people_per_table) if max_people_per_table > 0 else 0
    if min_tables == 0:
        return DistributionStats(0, 0, 0, 0)
    per_table = total_users // min_tables
    extra = total_users % min_tables
    return DistributionStats(
        total_tables=min_tables,
        average_per_table=per_table,
        tables_with_extra_person=extra,
        tables_with_normal_count=min_tables - extra,
    )
