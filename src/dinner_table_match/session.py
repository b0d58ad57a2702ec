"""Sign in, profile updates and the sign out cleanup hook."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol

import structlog

from .config import Config, get_config
from .exceptions import StoreError
from .membership import find_user_table, tables_from_documents
from .models import Location, User
from .store import TABLES, USERS, DocumentStore

logger = structlog.get_logger(__name__)


@dataclass
class Identity:
    """What the identity provider tells us about a signed in account."""

    uid: str
    display_name: str = ""
    email: str = ""
    photo_url: str = ""
    is_anonymous: bool = False


class GeolocationProvider(Protocol):
    def current_location(self) -> Optional[Location]:
        ...


class PhotoStorage(Protocol):
    def upload(self, user_id: str, filename: str, data: bytes) -> str:
        """Store the image and return a URL for it."""
        ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def remove_user_from_table(store: DocumentStore, user_id: str, guarded: bool = True) -> bool:
    """Unseat ``user_id``, deleting the table when it becomes empty.

    Every failure is logged and swallowed so that leaving can never be
    blocked by a cleanup error. Returns whether a table was changed.
    """
    try:
        snapshot = store.list(TABLES)
        revisions = {doc.key: doc.revision for doc in snapshot}
        table = find_user_table(tables_from_documents(snapshot), user_id)
        if table is None:
            return False

        precondition = revisions.get(table.id) if guarded else None
        table.members = [m for m in table.members if m.id != user_id]
        batch = store.batch()
        if table.members:
            batch.set(TABLES, table.id, table.to_dict(), precondition=precondition)
            logger.info("member_removed", user_id=user_id, table=table.id, remaining=len(table.members))
        else:
            batch.delete(TABLES, table.id, precondition=precondition)
            logger.info("empty_table_deleted", user_id=user_id, table=table.id)
        batch.commit()
        return True
    except Exception as e:  # any cleanup failure, departure still proceeds
        logger.warning("Failed to remove user from table", user_id=user_id, error=str(e))
        return False


class SessionManager:
    """Keeps the ``users`` collection in step with sign in and sign out."""

    def __init__(
        self,
        store: DocumentStore,
        geolocation: GeolocationProvider | None = None,
        photo_storage: PhotoStorage | None = None,
        config: Config | None = None,
        clock: Callable[[], str] = _now,
    ) -> None:
        self.store = store
        self.geolocation = geolocation
        self.photo_storage = photo_storage
        self.config = config or get_config()
        self.clock = clock

    def load_profile(self, user_id: str) -> Optional[User]:
        doc = self.store.get(USERS, user_id)
        return User.from_dict(doc.data, doc.key) if doc else None

    def sign_in(self, identity: Identity) -> User:
        """Load or create the profile, then try to attach a location."""
        profile = self.load_profile(identity.uid)
        if profile is None:
            now = self.clock()
            profile = User(
                id=identity.uid,
                name=identity.display_name,
                display_name=identity.display_name,
                email=identity.email,
                photo_url=identity.photo_url,
                is_anonymous=identity.is_anonymous,
                created_at=now,
                last_updated=now,
            )
            self.store.set(USERS, identity.uid, profile.to_dict())
            logger.info("profile_created", user_id=identity.uid, anonymous=identity.is_anonymous)

        location = self.current_location()
        if location is not None:
            self.store.set(USERS, identity.uid, {"location": location.to_dict()}, merge=True)
            profile.location = location
        return profile

    def sign_in_with_name(self, identity: Identity, name: str) -> User:
        """Ephemeral sign in where the typed name is the whole profile."""
        identity.is_anonymous = True
        self.sign_in(identity)
        return self.update_profile(
            identity.uid, display_name=name, name=name, full_name=name, is_anonymous=True
        )

    def current_location(self) -> Optional[Location]:
        if self.geolocation is None:
            return None
        try:
            return self.geolocation.current_location()
        except Exception as e:  # provider failures mean "no location"
            logger.warning("Could not get location", error=str(e))
            return None

    def update_profile(self, user_id: str, **changes: Any) -> User:
        """Merge the given fields into the stored profile.

        Only fields passed in ``changes`` are overwritten; preferences are
        merged key by key. ``role`` and ``created_at`` are kept unless given.
        """
        current = self.load_profile(user_id) or User(id=user_id, created_at=self.clock())
        data = current.to_dict()
        update = User(id=user_id, **{k: v for k, v in changes.items() if k != "preferences"})
        update_data = update.to_dict()

        for field_name, value in changes.items():
            if field_name == "preferences":
                data["preferences"] = {**data["preferences"], **dict(value or {})}
            elif field_name == "location":
                data["location"] = update_data["location"]
            else:
                key = _DOC_KEYS[field_name]
                data[key] = update_data[key]
        if changes.get("display_name") and not changes.get("name"):
            data["name"] = changes["display_name"]
        data["id"] = user_id
        data["lastUpdated"] = self.clock()
        if not data.get("createdAt"):
            data["createdAt"] = data["lastUpdated"]

        self.store.set(USERS, user_id, data, merge=True)
        logger.info("profile_updated", user_id=user_id, fields=sorted(changes))
        return User.from_dict(data, user_id)

    def upload_photo(self, user_id: str, filename: str, data: bytes) -> User:
        if self.photo_storage is None:
            raise StoreError("No photo storage configured")
        url = self.photo_storage.upload(user_id, filename, data)
        return self.update_profile(user_id, photo_url=url)

    def sign_out(self, user_id: str) -> None:
        """Leave the event. Table cleanup never blocks the departure."""
        remove_user_from_table(self.store, user_id, guarded=self.config.optimistic_writes)
        logger.info("signed_out", user_id=user_id)


_DOC_KEYS: Dict[str, str] = {
    "name": "name",
    "display_name": "displayName",
    "full_name": "fullName",
    "email": "email",
    "photo_url": "photoURL",
    "gender": "gender",
    "role": "role",
    "is_anonymous": "isAnonymous",
    "created_at": "createdAt",
    "last_updated": "lastUpdated",
}
