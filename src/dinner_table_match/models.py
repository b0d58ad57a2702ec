"""Data models for DinnerTableMatch."""
from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super-admin"

DEFAULT_MAX_PEOPLE_PER_TABLE = 5
MIN_PEOPLE_PER_TABLE = 2


def parse_pipe_list(value: object) -> List[str]:
    """Split a pipe separated string into a list.

    Empty values such as ``""`` or ``None`` return an empty list.
    ``pandas`` often provides ``float('nan')`` for missing values which is
    also treated as empty.
    """
    if value is None:
        return []
    if isinstance(value, float) and math.isnan(value):
        return []
    text = str(value).strip()
    if not text or text.lower() == "nan":
        return []
    return [part.strip() for part in text.split("|") if part.strip()]


def parse_bool(value: object) -> bool:
    """Parse common truthy strings into bool."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def parse_text(value: object) -> str:
    """Return a stripped string, treating ``None`` and NaN as empty."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    text = str(value).strip()
    return "" if text.lower() == "nan" else text


def table_id_for(ordinal: int) -> str:
    return f"table-{ordinal}"


def table_name_for(ordinal: int) -> str:
    return f"Table {ordinal}"


@dataclass
class Location:
    """Geographic position reported by the geolocation provider."""

    latitude: float
    longitude: float
    accuracy: float = 0.0

    def bucket_key(self) -> str:
        """Key used to cluster people at roughly the same place (~2 decimals).

        Halves round up, also for negative coordinates.
        """
        lat = math.floor(self.latitude * 100 + 0.5)
        lon = math.floor(self.longitude * 100 + 0.5)
        return f"{lat}-{lon}"

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude, "accuracy": self.accuracy}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Location"]:
        if not data:
            return None
        try:
            return cls(
                latitude=float(data["latitude"]),
                longitude=float(data["longitude"]),
                accuracy=float(data.get("accuracy") or 0.0),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass
class User:
    """A participant's profile as stored in the ``users`` collection."""

    id: str
    name: str = ""
    display_name: str = ""
    full_name: str = ""
    email: str = ""
    photo_url: str = ""
    gender: str = ""
    preferences: Dict[str, str] = field(default_factory=dict)
    location: Optional[Location] = None
    role: str = ""
    is_anonymous: bool = False
    created_at: str = ""
    last_updated: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.name

    @property
    def is_admin(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_SUPER_ADMIN)

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "displayName": self.display_name,
            "fullName": self.full_name,
            "email": self.email,
            "photoURL": self.photo_url,
            "gender": self.gender,
            "preferences": dict(self.preferences),
            "location": self.location.to_dict() if self.location else None,
            "role": self.role,
            "isAnonymous": self.is_anonymous,
            "createdAt": self.created_at,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], key: str = "") -> "User":
        return cls(
            id=parse_text(data.get("id") or key),
            name=parse_text(data.get("name")),
            display_name=parse_text(data.get("displayName")),
            full_name=parse_text(data.get("fullName")),
            email=parse_text(data.get("email")),
            photo_url=parse_text(data.get("photoURL")),
            gender=parse_text(data.get("gender")),
            preferences=dict(data.get("preferences") or {}),
            location=Location.from_dict(data.get("location")),
            role=parse_text(data.get("role")),
            is_anonymous=bool(data.get("isAnonymous", False)),
            created_at=parse_text(data.get("createdAt")),
            last_updated=parse_text(data.get("lastUpdated")),
        )


@dataclass
class Member:
    """Copy of a user's public fields, frozen at the time they were seated."""

    id: str
    name: str = ""
    full_name: str = ""
    photo_url: str = ""
    gender: str = ""
    preferences: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_user(cls, user: User) -> "Member":
        return cls(
            id=user.id,
            name=user.label,
            full_name=user.full_name,
            photo_url=user.photo_url,
            gender=user.gender,
            preferences=dict(user.preferences),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name,
            "photoURL": self.photo_url,
            "gender": self.gender,
            "preferences": dict(self.preferences),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Member":
        return cls(
            id=parse_text(data.get("id")),
            name=parse_text(data.get("name")),
            full_name=parse_text(data.get("fullName")),
            photo_url=parse_text(data.get("photoURL")),
            gender=parse_text(data.get("gender")),
            preferences=dict(data.get("preferences") or {}),
        )


@dataclass
class Table:
    """A capacity bounded group of seated members."""

    id: str
    name: str
    members: List[Member] = field(default_factory=list)

    def member_ids(self) -> List[str]:
        return [m.id for m in self.members]

    def has_member(self, user_id: str) -> bool:
        return any(m.id == user_id for m in self.members)

    def copy(self) -> "Table":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "members": [m.to_dict() for m in self.members],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], key: str = "") -> "Table":
        table_id = parse_text(data.get("id") or key)
        return cls(
            id=table_id,
            name=parse_text(data.get("name")) or table_id,
            members=[Member.from_dict(m) for m in data.get("members") or []],
        )


@dataclass
class Settings:
    """Process wide seating settings stored at ``settings/main``."""

    max_people_per_table: int = DEFAULT_MAX_PEOPLE_PER_TABLE
    consider_location: bool = False
    admin_emails: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxPeoplePerTable": self.max_people_per_table,
            "considerLocation": self.consider_location,
            "adminEmails": list(self.admin_emails),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        data = data or {}
        try:
            max_people = int(data.get("maxPeoplePerTable", DEFAULT_MAX_PEOPLE_PER_TABLE))
        except (TypeError, ValueError):
            max_people = DEFAULT_MAX_PEOPLE_PER_TABLE
        return cls(
            max_people_per_table=max(MIN_PEOPLE_PER_TABLE, max_people),
            consider_location=parse_bool(data.get("considerLocation", False)),
            admin_emails=[e for e in (data.get("adminEmails") or []) if e],
        )


class MoveFailure(str, Enum):
    TABLE_NOT_FOUND = "TableNotFound"
    DESTINATION_FULL = "DestinationFull"
    USER_NOT_IN_SOURCE = "UserNotInSource"


_MOVE_MESSAGES = {
    None: "User moved successfully",
    MoveFailure.TABLE_NOT_FOUND: "Table not found",
    MoveFailure.DESTINATION_FULL: "Destination table is full",
    MoveFailure.USER_NOT_IN_SOURCE: "User not found in source table",
}


@dataclass
class MoveResult:
    """Outcome of moving one member between tables."""

    ok: bool
    tables: List[Table]
    reason: Optional[MoveFailure] = None

    @property
    def message(self) -> str:
        return _MOVE_MESSAGES[self.reason]


@dataclass
class DistributionStats:
    """Optimal table distribution for a head count."""

    total_tables: int
    average_per_table: int
    tables_with_extra_person: int
    tables_with_normal_count: int

    def seats_accounted(self) -> int:
        return (
            self.tables_with_normal_count * self.average_per_table
            + self.tables_with_extra_person * (self.average_per_table + 1)
        )
