import pathlib
import sys

# Ensure src package is on path
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1] / "src"))

import pytest

from dinner_table_match.config import Config
from dinner_table_match.exceptions import StoreError
from dinner_table_match.models import Location, Member, Table, User
from dinner_table_match.session import Identity, SessionManager, remove_user_from_table
from dinner_table_match.store import InMemoryStore


class FlakyStore(InMemoryStore):
    offline = False

    def commit(self, operations):
        if self.offline:
            raise StoreError("offline")
        super().commit(operations)


class FixedLocation:
    def __init__(self, location):
        self.location = location

    def current_location(self):
        return self.location


class DeniedLocation:
    def current_location(self):
        raise PermissionError("User denied Geolocation")


class FakePhotos:
    def upload(self, user_id, filename, data):
        return f"https://photos.example/{user_id}/{filename}"


def clock():
    return "2026-01-01T00:00:00+00:00"


def manager(store, **kwargs):
    return SessionManager(store, config=Config(optimistic_writes=True), clock=clock, **kwargs)


def seat(store, table_id, *ids):
    store.set("tables", table_id, Table(table_id, table_id, [Member(id=i) for i in ids]).to_dict())


class TestSessionExit:
    def test_removes_member_and_keeps_table(self):
        store = InMemoryStore()
        seat(store, "table-1", "a", "b")
        assert remove_user_from_table(store, "a")
        assert store.get("tables", "table-1").data["members"] == [Member(id="b").to_dict()]

    def test_deletes_table_left_empty(self):
        store = InMemoryStore()
        seat(store, "table-1", "a")
        seat(store, "table-2", "b")
        assert remove_user_from_table(store, "a")
        assert store.get("tables", "table-1") is None
        assert store.get("tables", "table-2") is not None

    def test_unseated_user_is_noop(self):
        store = InMemoryStore()
        seat(store, "table-1", "b")
        assert not remove_user_from_table(store, "a")

    def test_store_failure_never_blocks_sign_out(self):
        store = FlakyStore()
        store.offline = True
        manager(store).sign_out("a")
        assert not remove_user_from_table(store, "a")

    def test_unexpected_errors_never_block_sign_out(self):
        class Unreachable(InMemoryStore):
            def list(self, collection):
                raise ConnectionError("network down")

        store = Unreachable()
        manager(store).sign_out("a")
        assert not remove_user_from_table(store, "a")

    def test_malformed_table_document_is_swallowed(self):
        store = InMemoryStore()
        store.set("tables", "table-1", {"id": "table-1", "members": 7})
        manager(store).sign_out("a")
        assert store.get("tables", "table-1").data["members"] == 7

    def test_failure_is_swallowed(self):
        store = FlakyStore()
        seat(store, "table-1", "a")
        store.offline = True
        manager(store).sign_out("a")
        assert store.get("tables", "table-1") is not None


class TestSignIn:
    def test_creates_initial_profile(self):
        store = InMemoryStore()
        user = manager(store).sign_in(Identity(uid="u1", display_name="Sam", email="sam@example.com"))
        assert user.role == ""
        assert user.created_at == clock()
        stored = store.get("users", "u1").data
        assert stored["displayName"] == "Sam"
        assert stored["email"] == "sam@example.com"

    def test_existing_profile_is_loaded(self):
        store = InMemoryStore()
        store.set("users", "u1", User(id="u1", name="Old", role="admin").to_dict())
        user = manager(store).sign_in(Identity(uid="u1", display_name="New"))
        assert user.name == "Old"
        assert user.is_admin

    def test_location_merged_in(self):
        store = InMemoryStore()
        here = Location(10.0, 20.0, 5.0)
        user = manager(store, geolocation=FixedLocation(here)).sign_in(Identity(uid="u1"))
        assert user.location == here
        assert store.get("users", "u1").data["location"] == here.to_dict()

    def test_location_failure_means_no_location(self):
        store = InMemoryStore()
        user = manager(store, geolocation=DeniedLocation()).sign_in(Identity(uid="u1"))
        assert user.location is None

    def test_sign_in_with_name_is_ephemeral(self):
        store = InMemoryStore()
        user = manager(store).sign_in_with_name(Identity(uid="u1"), "Kim")
        assert (user.name, user.display_name, user.full_name) == ("Kim", "Kim", "Kim")
        assert user.is_anonymous


class TestProfile:
    def test_update_only_touches_given_fields(self):
        store = InMemoryStore()
        store.set(
            "users", "u1",
            User(id="u1", name="A", gender="f", role="admin", created_at="then",
                 preferences={"dietary": "vegan"}).to_dict(),
        )
        user = manager(store).update_profile("u1", full_name="Ann A", preferences={"interests": "go"})
        assert user.gender == "f"
        assert user.role == "admin"
        assert user.created_at == "then"
        assert user.last_updated == clock()
        assert user.preferences == {"dietary": "vegan", "interests": "go"}
        assert store.get("users", "u1").data["fullName"] == "Ann A"

    def test_display_name_fills_name(self):
        store = InMemoryStore()
        user = manager(store).update_profile("u1", display_name="Zed")
        assert user.name == "Zed"
        assert user.created_at == clock()

    def test_seated_snapshot_not_rewritten(self):
        store = InMemoryStore()
        seat(store, "table-1", "u1")
        manager(store).update_profile("u1", display_name="Renamed")
        assert store.get("tables", "table-1").data["members"][0]["name"] == ""

    def test_upload_photo(self):
        store = InMemoryStore()
        user = manager(store, photo_storage=FakePhotos()).upload_photo("u1", "me.png", b"\x89PNG")
        assert user.photo_url == "https://photos.example/u1/me.png"

    def test_upload_photo_without_storage(self):
        with pytest.raises(StoreError):
            manager(InMemoryStore()).upload_photo("u1", "me.png", b"")
