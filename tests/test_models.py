import pathlib
import sys

# Ensure src package is on path
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1] / "src"))

from dinner_table_match.models import (
    Location,
    Member,
    Settings,
    Table,
    User,
    parse_bool,
    parse_pipe_list,
)


def test_user_from_store_document():
    user = User.from_dict(
        {
            "displayName": "Alex",
            "photoURL": "http://img",
            "preferences": {"dietary": "vegetarian"},
            "location": {"latitude": 1.5, "longitude": 2.5, "accuracy": 10},
            "role": "admin",
        },
        key="uid-1",
    )
    assert user.id == "uid-1"
    assert user.label == "Alex"
    assert user.location == Location(1.5, 2.5, 10.0)
    assert user.is_admin and not user.is_super_admin
    assert User.from_dict(user.to_dict()) == user


def test_bad_location_is_dropped():
    assert User.from_dict({"id": "a", "location": {"latitude": "north"}}).location is None


def test_table_document_round_trip_keeps_members():
    table = Table("table-1", "Table 1", [Member(id="a", name="A", preferences={"interests": "jazz"})])
    assert Table.from_dict(table.to_dict()) == table
    assert Table.from_dict({"members": []}, key="table-3").name == "table-3"


def test_settings_defaults_and_floor():
    assert Settings.from_dict(None) == Settings(5, False, [])
    assert Settings.from_dict({"maxPeoplePerTable": "8", "considerLocation": True}).max_people_per_table == 8
    assert Settings.from_dict({"maxPeoplePerTable": 1}).max_people_per_table == 2


def test_parsers():
    assert parse_pipe_list("a| b ||c") == ["a", "b", "c"]
    assert parse_pipe_list(float("nan")) == []
    assert parse_bool("True") and parse_bool(True) and not parse_bool("no")


def test_bucket_key_rounds_halves_up():
    assert Location(0.125, 0.625).bucket_key() == "13-63"
    assert Location(-0.125, -0.625).bucket_key() == "-12--62"
    assert Location(52.5201, 13.4049).bucket_key() == "5252-1340"
