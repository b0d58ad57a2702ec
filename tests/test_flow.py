import pathlib
import sys

# Ensure src package is on path
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1] / "src"))

import pandas as pd
import pytest

from dinner_table_match import cli, csv_loader
from dinner_table_match.config import Config
from dinner_table_match.models import Location

DATA_DIR = pathlib.Path(__file__).parent / "data"


def test_load_users():
    users = csv_loader.load_users(DATA_DIR / "users.csv")
    assert [u.id for u in users] == ["u1", "u2", "u3", "u4", "u5", "u6", "u7"]
    alice = users[0]
    assert alice.role == "admin"
    assert alice.location == Location(52.52, 13.4046, 12.0)
    assert alice.preferences == {"dietary": "vegetarian", "interests": "chess", "experience": "senior"}
    assert users[3].location is None
    assert users[3].preferences == {}


def test_load_users_rejects_half_locations(tmp_path):
    path = tmp_path / "users.csv"
    path.write_text("id,name,latitude,longitude\n1,A,1.0,\n")
    with pytest.raises(ValueError):
        csv_loader.load_users(path)


def test_load_users_rejects_duplicate_ids(tmp_path):
    path = tmp_path / "users.csv"
    path.write_text("id,name\n1,A\n1,B\n")
    with pytest.raises(ValueError, match="Duplicate"):
        csv_loader.load_users(path)


def test_full_flow(tmp_path, capsys):
    out = tmp_path / "out" / "assignments.csv"
    code = cli.main(
        ["--users", str(DATA_DIR / "users.csv"), "--max-per-table", "3", "--out-assignments", str(out)],
        config=Config(store_backend="memory"),
    )
    assert code == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[:3] == ["Alice,Table 1", "Bob,Table 1", "Carol,Table 1"]
    assert lines[-1] == "[STATS] tables=3 optimal=3 average=2 with_extra=1"

    df = pd.read_csv(out)
    assert len(df) == 7
    assert df.groupby("table_id").size().max() <= 3
    assert df["user_id"].is_unique


def test_flow_by_location(capsys):
    cli.main(
        ["--users", str(DATA_DIR / "users.csv"), "--consider-location"],
        config=Config(store_backend="memory"),
    )
    seated = {}
    for line in capsys.readouterr().out.splitlines():
        if line.startswith("[STATS]"):
            continue
        name, table = line.split(",")
        seated.setdefault(table, []).append(name)
    assert seated == {
        "Table 1": ["Alice", "Bob", "Eve"],
        "Table 2": ["Carol", "Frank"],
        "Table 3": ["Dan", "Grace"],
    }


def test_shuffle_keeps_everyone(tmp_path, capsys):
    out = tmp_path / "shuffled.csv"
    cli.main(
        ["--users", str(DATA_DIR / "users.csv"), "--shuffle", "--seed", "3", "--out-assignments", str(out)],
        config=Config(store_backend="memory"),
    )
    df = pd.read_csv(out)
    assert sorted(df["user_id"]) == ["u1", "u2", "u3", "u4", "u5", "u6", "u7"]
    assert list(df.groupby("table_id").size()) == [5, 2]


def test_invalid_capacity_exits():
    with pytest.raises(SystemExit) as exc:
        cli.main(
            ["--users", str(DATA_DIR / "users.csv"), "--max-per-table", "1"],
            config=Config(store_backend="memory"),
        )
    assert exc.value.code == 2
