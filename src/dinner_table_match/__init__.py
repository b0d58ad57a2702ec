"""DinnerTableMatch package."""
from .models import DistributionStats, Location, Member, MoveFailure, MoveResult, Settings, Table, User
from .engine import (
    assign_users_to_tables,
    compute_distribution_stats,
    move_user_between_tables,
    shuffle_tables,
)
from .membership import MembershipIndex, TableView, find_user_table
from .protocol import TableService, plan_table_replacement
from .session import Identity, SessionManager, remove_user_from_table
from .store import DocumentStore, InMemoryStore, create_store

__all__ = [
    "DistributionStats",
    "Location",
    "Member",
    "MoveFailure",
    "MoveResult",
    "Settings",
    "Table",
    "User",
    "assign_users_to_tables",
    "compute_distribution_stats",
    "move_user_between_tables",
    "shuffle_tables",
    "MembershipIndex",
    "TableView",
    "find_user_table",
    "TableService",
    "plan_table_replacement",
    "Identity",
    "SessionManager",
    "remove_user_from_table",
    "DocumentStore",
    "InMemoryStore",
    "create_store",
]
