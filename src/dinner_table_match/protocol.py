"""
Turning engine results into store writes.

Every recompute operation reads a snapshot, computes a new table list
and commits one atomic batch that removes the old tables and writes the
new ones. With ``optimistic_writes`` enabled each touched table carries
the revision it was read at, and tables that did not exist are written
create-only, so two clients racing on the same snapshot cannot both
commit: the loser gets :class:`StoreConflictError`.
"""
from __future__ import annotations

import random
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import structlog

from .config import Config, get_config
from .engine import (
    assign_users_to_tables,
    compute_distribution_stats,
    move_user_between_tables,
    shuffle_tables,
)
from .exceptions import InvalidSettingsError, OperationInProgressError, PermissionDeniedError
from .membership import find_user_table, tables_from_documents
from .models import (
    MIN_PEOPLE_PER_TABLE,
    DistributionStats,
    MoveFailure,
    MoveResult,
    Settings,
    Table,
    User,
)
from .store import (
    SETTINGS,
    SETTINGS_KEY,
    TABLES,
    USERS,
    BatchOperation,
    Document,
    DocumentStore,
)

logger = structlog.get_logger(__name__)


def plan_table_replacement(
    snapshot: Sequence[Document],
    new_tables: Sequence[Table],
    guarded: bool = True,
) -> List[BatchOperation]:
    """Operations replacing every table in ``snapshot`` by ``new_tables``.

    A table id present on both sides becomes a single replacing ``set``,
    which leaves the store in the same state as delete followed by write.
    """
    old = {doc.key: doc for doc in snapshot}
    new_ids = {t.id for t in new_tables}
    operations: List[BatchOperation] = []

    for key, doc in old.items():
        if key not in new_ids:
            operations.append(
                BatchOperation("delete", TABLES, key, precondition=doc.revision if guarded else None)
            )
    for table in new_tables:
        doc = old.get(table.id)
        if doc is not None:
            operations.append(
                BatchOperation(
                    "set", TABLES, table.id, table.to_dict(),
                    precondition=doc.revision if guarded else None,
                )
            )
        elif guarded:
            operations.append(BatchOperation("create", TABLES, table.id, table.to_dict()))
        else:
            operations.append(BatchOperation("set", TABLES, table.id, table.to_dict()))
    return operations


def require_admin(actor: Optional[User]) -> None:
    if actor is None or not actor.is_admin:
        raise PermissionDeniedError("Admin role required")


def require_super_admin(actor: Optional[User]) -> None:
    if actor is None or not actor.is_super_admin:
        raise PermissionDeniedError("Super admin role required")


class TableService:
    """Seating operations of one client against the shared store."""

    def __init__(
        self,
        store: DocumentStore,
        config: Config | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.config = config or get_config()
        self.rng = rng or random.Random()
        self._pending: Optional[str] = None

    @property
    def pending(self) -> Optional[str]:
        """Name of the mutation currently in flight, if any."""
        return self._pending

    @contextmanager
    def _in_flight(self, operation: str) -> Iterator[None]:
        if self._pending is not None:
            raise OperationInProgressError(f"{self._pending} is still pending")
        self._pending = operation
        try:
            yield
        finally:
            self._pending = None

    # ----------------------------- reads -----------------------------
    def get_settings(self) -> Settings:
        """Read the shared settings, writing the defaults on first access."""
        doc = self.store.get(SETTINGS, SETTINGS_KEY)
        if doc is not None:
            return Settings.from_dict(doc.data)
        settings = Settings(
            max_people_per_table=self.config.default_max_people_per_table,
            consider_location=self.config.default_consider_location,
        )
        self.store.set(SETTINGS, SETTINGS_KEY, settings.to_dict())
        logger.info("settings_initialized", **settings.to_dict())
        return settings

    def read_users(self) -> List[User]:
        users = [User.from_dict(d.data, d.key) for d in self.store.list(USERS)]
        return [u for u in users if u.id]

    def read_tables(self) -> Tuple[List[Document], List[Table]]:
        snapshot = self.store.list(TABLES)
        return snapshot, tables_from_documents(snapshot)

    def distribution_stats(self) -> DistributionStats:
        settings = self.get_settings()
        return compute_distribution_stats(len(self.read_users()), settings.max_people_per_table)

    # ----------------------------- writes -----------------------------
    def _replace_tables(
        self, snapshot: Sequence[Document], new_tables: List[Table], operation: str
    ) -> List[Table]:
        batch = self.store.batch()
        for op in plan_table_replacement(snapshot, new_tables, guarded=self.config.optimistic_writes):
            batch.add(op)
        batch.commit()
        logger.info(
            "tables_replaced",
            operation=operation,
            removed=len(snapshot),
            written=len(new_tables),
            seated=sum(len(t.members) for t in new_tables),
        )
        return new_tables

    def assign_table(self, actor: User) -> List[Table]:
        """Seat the actor and anyone else still unseated."""
        if actor is None or not actor.id:
            raise PermissionDeniedError("Sign in before requesting a table")
        with self._in_flight("assign"):
            settings = self.get_settings()
            users = self.read_users()
            if not any(u.id == actor.id for u in users):
                users.append(actor)
            snapshot, tables = self.read_tables()
            new_tables = assign_users_to_tables(users, settings, tables)
            if new_tables == tables:
                logger.info("assign_noop", user_id=actor.id)
                return new_tables
            return self._replace_tables(snapshot, new_tables, "assign")

    def change_table(self, actor: User, to_table_id: str) -> MoveResult:
        """Move the actor to ``to_table_id``. Rejections come back as results."""
        with self._in_flight("move"):
            settings = self.get_settings()
            snapshot, tables = self.read_tables()
            source = find_user_table(tables, actor.id)
            if source is None:
                return MoveResult(ok=False, tables=tables, reason=MoveFailure.USER_NOT_IN_SOURCE)

            result = move_user_between_tables(
                tables, actor.id, source.id, to_table_id, settings.max_people_per_table
            )
            if not result.ok:
                logger.info("move_rejected", user_id=actor.id, to_table=to_table_id, reason=result.reason.value)
                return result

            revisions = {doc.key: doc.revision for doc in snapshot}
            guarded = self.config.optimistic_writes
            batch = self.store.batch()
            for table in result.tables:
                if table.id in (source.id, to_table_id):
                    batch.set(
                        TABLES, table.id, table.to_dict(),
                        precondition=revisions.get(table.id) if guarded else None,
                    )
            batch.commit()
            logger.info("member_moved", user_id=actor.id, from_table=source.id, to_table=to_table_id)
            return result

    def shuffle_tables(self, actor: User) -> List[Table]:
        require_admin(actor)
        with self._in_flight("shuffle"):
            settings = self.get_settings()
            snapshot, tables = self.read_tables()
            new_tables = shuffle_tables(tables, settings.max_people_per_table, self.rng)
            return self._replace_tables(snapshot, new_tables, "shuffle")

    def reassign_all(self, actor: User) -> List[Table]:
        """Build assignments from scratch for every known user."""
        require_admin(actor)
        with self._in_flight("reassign"):
            settings = self.get_settings()
            users = self.read_users()
            snapshot = self.store.list(TABLES)
            new_tables = assign_users_to_tables(users, settings, [])
            return self._replace_tables(snapshot, new_tables, "reassign")

    def clear_all_tables(self, actor: User) -> None:
        require_admin(actor)
        with self._in_flight("clear"):
            snapshot = self.store.list(TABLES)
            self._replace_tables(snapshot, [], "clear")

    def update_settings(
        self,
        actor: User,
        max_people_per_table: int | None = None,
        consider_location: bool | None = None,
        admin_emails: Iterable[str] | None = None,
    ) -> Settings:
        """Merge the given fields into the shared settings."""
        require_admin(actor)
        changes = {}
        if max_people_per_table is not None:
            try:
                value = int(max_people_per_table)
            except (TypeError, ValueError) as e:
                raise InvalidSettingsError(f"maxPeoplePerTable must be a number: {max_people_per_table!r}") from e
            if value < MIN_PEOPLE_PER_TABLE:
                raise InvalidSettingsError(f"maxPeoplePerTable must be at least {MIN_PEOPLE_PER_TABLE}")
            changes["maxPeoplePerTable"] = value
        if consider_location is not None:
            changes["considerLocation"] = bool(consider_location)
        if admin_emails is not None:
            changes["adminEmails"] = [e.strip() for e in admin_emails if e and e.strip()]

        with self._in_flight("settings"):
            self.get_settings()
            if changes:
                self.store.set(SETTINGS, SETTINGS_KEY, changes, merge=True)
                logger.info("settings_updated", actor=actor.id, **changes)
            return self.get_settings()

    def delete_users(self, actor: User, user_ids: Iterable[str]) -> int:
        """Remove user records and unseat them in one batch."""
        require_super_admin(actor)
        doomed = {uid for uid in user_ids if uid}
        if not doomed:
            return 0
        with self._in_flight("delete_users"):
            existing = {d.key for d in self.store.list(USERS)}
            snapshot, tables = self.read_tables()
            revisions = {doc.key: doc.revision for doc in snapshot}
            guarded = self.config.optimistic_writes
            batch = self.store.batch()
            for table in tables:
                if not any(m.id in doomed for m in table.members):
                    continue
                precondition = revisions.get(table.id) if guarded else None
                remaining = [m for m in table.members if m.id not in doomed]
                if remaining:
                    table.members = remaining
                    batch.set(TABLES, table.id, table.to_dict(), precondition=precondition)
                else:
                    batch.delete(TABLES, table.id, precondition=precondition)
            removed = sorted(doomed & existing)
            for uid in removed:
                batch.delete(USERS, uid)
            batch.commit()
            logger.info("users_deleted", actor=actor.id, count=len(removed))
            return len(removed)
