"""Who sits where, derived from the latest tables snapshot."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import structlog

from .models import Settings, Table, User
from .store import SETTINGS, SETTINGS_KEY, TABLES, USERS, Document, DocumentStore, Subscription

logger = structlog.get_logger(__name__)


def find_user_table(tables: Iterable[Table], user_id: str) -> Optional[Table]:
    """Return the first table seating ``user_id``."""
    for table in tables:
        if table.has_member(user_id):
            return table
    return None


def tables_from_documents(documents: Iterable[Document]) -> List[Table]:
    return [Table.from_dict(d.data, d.key) for d in documents]


class MembershipIndex:
    """Mapping of user id to table, rebuilt from scratch for every snapshot."""

    def __init__(self, tables: Iterable[Table] = ()) -> None:
        self.tables: List[Table] = list(tables)
        self._by_user: Dict[str, Table] = {}
        for table in self.tables:
            for member in table.members:
                # first table wins when a race left someone seated twice
                self._by_user.setdefault(member.id, table)

    @classmethod
    def from_tables(cls, tables: Iterable[Table]) -> "MembershipIndex":
        return cls(tables)

    def table_for(self, user_id: str) -> Optional[Table]:
        return self._by_user.get(user_id)

    def is_seated(self, user_id: str) -> bool:
        return user_id in self._by_user

    def unassigned(self, users: Iterable[User]) -> List[User]:
        return [u for u in users if u.id and u.id not in self._by_user]

    def duplicates(self) -> Dict[str, List[str]]:
        """User ids seated at more than one table, with the table ids."""
        seen: Dict[str, List[str]] = {}
        for table in self.tables:
            for member in table.members:
                seen.setdefault(member.id, []).append(table.id)
        return {uid: ids for uid, ids in seen.items() if len(ids) > 1}

    def __len__(self) -> int:
        return len(self._by_user)


class TableView:
    """Live view over the store: tables, membership index, users and settings.

    Every notification replaces the cached state entirely.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.tables: List[Table] = []
        self.index = MembershipIndex()
        self.users: List[User] = []
        self.settings = Settings()
        self._subscriptions: List[Subscription] = [
            store.subscribe(TABLES, self._on_tables),
            store.subscribe(USERS, self._on_users),
            store.subscribe(SETTINGS, self._on_settings),
        ]

    def _on_tables(self, documents: List[Document]) -> None:
        self.tables = tables_from_documents(documents)
        self.index = MembershipIndex.from_tables(self.tables)
        logger.debug("tables_snapshot", tables=len(self.tables), seated=len(self.index))

    def _on_users(self, documents: List[Document]) -> None:
        self.users = [User.from_dict(d.data, d.key) for d in documents]

    def _on_settings(self, documents: List[Document]) -> None:
        main = next((d for d in documents if d.key == SETTINGS_KEY), None)
        self.settings = Settings.from_dict(main.data if main else None)

    def table_for(self, user_id: str) -> Optional[Table]:
        return self.index.table_for(user_id)

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
