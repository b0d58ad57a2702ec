"""CSV loading and export utilities."""
from __future__ import annotations

import math
from pathlib import Path
from typing import IO, Any, Iterable, List

import pandas as pd

from .models import Location, Table, User, parse_bool, parse_text

PREFERENCE_COLUMNS = ("dietary", "interests", "experience")


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def load_users(path: Path | str | IO[Any]) -> List[User]:
    """Load participants from ``users.csv``.

    Requires ``id`` and ``name`` columns. Rows without an id are kept so
    the engine can skip them the same way it skips corrupt store records.
    Latitude and longitude must be given together.
    """
    df = pd.read_csv(path, dtype={"id": str})
    missing = [c for c in ("id", "name") if c not in df.columns]
    if missing:
        raise ValueError(f"users.csv is missing columns: {', '.join(missing)}")

    users: List[User] = []
    for _, row in df.iterrows():
        lat = _optional_float(row.get("latitude"))
        lon = _optional_float(row.get("longitude"))
        if (lat is None) != (lon is None):
            raise ValueError(f"User {parse_text(row['name'])} needs both latitude and longitude")
        location = None
        if lat is not None and lon is not None:
            location = Location(lat, lon, _optional_float(row.get("accuracy")) or 0.0)

        preferences = {}
        for column in PREFERENCE_COLUMNS:
            value = parse_text(row.get(column))
            if value:
                preferences[column] = value

        name = parse_text(row["name"])
        users.append(
            User(
                id=parse_text(row["id"]),
                name=name,
                display_name=name,
                full_name=parse_text(row.get("full_name")),
                email=parse_text(row.get("email")),
                gender=parse_text(row.get("gender")),
                preferences=preferences,
                location=location,
                role=parse_text(row.get("role")),
                is_anonymous=parse_bool(row.get("anonymous", "false")),
            )
        )

    ids = [u.id for u in users if u.id]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"Duplicate user ids: {', '.join(duplicates)}")
    return users


def tables_to_frame(tables: Iterable[Table]) -> pd.DataFrame:
    """One row per seated member: ``user_id, user, table_id, table``."""
    rows = [
        {"user_id": m.id, "user": m.name, "table_id": t.id, "table": t.name}
        for t in tables
        for m in t.members
    ]
    return pd.DataFrame(rows, columns=["user_id", "user", "table_id", "table"])


def write_assignments(tables: Iterable[Table], path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tables_to_frame(tables).to_csv(path, index=False)
    return path
