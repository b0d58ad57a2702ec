import pathlib
import sys

# Ensure src package is on path
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1] / "src"))

from dinner_table_match.mind_map import build_table_graph, shared_preferences
from dinner_table_match.models import Member, Table


def tables():
    return [
        Table("table-1", "Table 1", [
            Member(id="a", name="A", preferences={"dietary": "Vegan", "interests": "chess"}),
            Member(id="b", name="B", preferences={"dietary": "vegan"}),
            Member(id="c", name="C"),
        ]),
        Table("table-2", "Table 2", [Member(id="d", name="D", preferences={"interests": "chess"})]),
        Table("table-3", "Table 3", []),
    ]


def test_shared_preferences_ignore_case():
    a, b, _ = tables()[0].members
    assert shared_preferences(a, b) == ["dietary"]


def test_graph_nodes_and_same_table_edges():
    G = build_table_graph(tables())
    assert sorted(G.nodes) == ["a", "b", "c", "d"]
    assert G.nodes["d"]["table"] == "table-2"
    assert list(G.edges) == [("a", "b")]


def test_inter_table_edges_optional():
    G = build_table_graph(tables(), layout="square", show_inter_table_edges=True)
    assert G.has_edge("a", "d")
    assert G.edges["a", "d"]["label"] == "interests"
