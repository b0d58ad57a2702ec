import math
from itertools import combinations
from typing import Dict, List, Sequence, Tuple

import networkx as nx
from pyvis.network import Network

from .models import Member, Table

# ---------------------------
# Public API
# ---------------------------

def generate_table_mind_map(
    tables: Sequence[Table],
    layout: str = "round",              # "round", "square"
    show_inter_table_edges: bool = False,
    canvas_size: Tuple[int, int] = (1600, 1000),
) -> str:
    """
    Build an interactive seating visualization.

    Parameters:
      tables: current table snapshot.
      layout: "round" or "square".
      show_inter_table_edges: also link people at different tables who share a preference.
      canvas_size: width, height in pixels for layout scaling.

    Returns:
      HTML string with embedded network.
    """
    G = build_table_graph(tables, layout, show_inter_table_edges, canvas_size)

    net = Network(height="700px", width="100%", bgcolor="#111111", font_color="#EEEEEE")
    net.toggle_physics(False)  # positions are fixed
    net.from_nx(G)
    return net.generate_html().replace("</body>", _legend_html() + "</body>", 1)


def build_table_graph(
    tables: Sequence[Table],
    layout: str = "round",
    show_inter_table_edges: bool = False,
    canvas_size: Tuple[int, int] = (1600, 1000),
) -> nx.Graph:
    """Graph with one node per seated member and edges for shared preferences."""
    width, height = canvas_size
    occupied = [t for t in tables if t.members]
    centers = _compute_table_centers([t.id for t in occupied], width, height)

    palette = [
        "#FFB347", "#77DD77", "#AEC6CF", "#C23B22", "#F49AC2", "#B39EB5",
        "#03C03C", "#779ECB", "#966FD6", "#FFD700", "#FF6961", "#CB99C9",
    ]

    G = nx.Graph()
    seat: Dict[str, Tuple[str, Member]] = {}
    for i, table in enumerate(occupied):
        cx, cy = centers[table.id]
        n = len(table.members)
        if layout == "square":
            coords = _square_layout(cx, cy, n)
        else:
            coords = _circle_layout(cx, cy, 60 + 6 * n, n)
        for member, (x, y) in zip(table.members, coords):
            if member.id in seat:
                continue
            seat[member.id] = (table.id, member)
            G.add_node(
                member.id,
                label=member.name or member.id,
                title=_node_tooltip(member, table.name),
                color=palette[i % len(palette)],
                table=table.id,
                x=x,
                y=y,
                physics=False,
                shape="dot",
                size=18,
            )

    for a, b in combinations(seat.keys(), 2):
        (t1, m1), (t2, m2) = seat[a], seat[b]
        if t1 != t2 and not show_inter_table_edges:
            continue
        shared = shared_preferences(m1, m2)
        if not shared:
            continue
        G.add_edge(
            a, b,
            color="#3CB371" if t1 == t2 else "#A9A9A9",
            width=1 + min(5, len(shared)),
            label=", ".join(shared),
            smooth=t1 != t2,
        )
    return G


def shared_preferences(a: Member, b: Member) -> List[str]:
    """Preference names with the same non empty value for both members."""
    return sorted(
        k for k, v in a.preferences.items()
        if v and str(b.preferences.get(k, "")).strip().lower() == str(v).strip().lower()
    )

# ---------------------------
# Internals
# ---------------------------

def _compute_table_centers(tables: List[str], width: int, height: int) -> Dict[str, Tuple[int, int]]:
    """
    Place table centers on a grid inside the canvas area.
    """
    if not tables:
        return {}
    n = len(tables)
    cols = max(1, int(math.ceil(math.sqrt(n))))
    rows = int(math.ceil(n / cols))
    margin = 120
    step_x = max(1, width - 2 * margin) // cols
    step_y = max(1, height - 2 * margin) // rows

    centers: Dict[str, Tuple[int, int]] = {}
    for idx, table in enumerate(tables):
        r, c = divmod(idx, cols)
        centers[table] = (margin + c * step_x + step_x // 2, margin + r * step_y + step_y // 2)
    return centers


def _circle_layout(cx: int, cy: int, r: int, n: int) -> List[Tuple[int, int]]:
    pts = []
    for i in range(n):
        theta = 2 * math.pi * i / max(1, n)
        pts.append((int(cx + r * math.cos(theta)), int(cy + r * math.sin(theta))))
    return pts


def _square_layout(cx: int, cy: int, n: int) -> List[Tuple[int, int]]:
    """Seats along the perimeter of a square, clockwise from the top left."""
    cell = 28
    side = max(2, int(math.ceil(n / 4)) + 1)
    half = side * cell // 2
    left, top = cx - half, cy - half
    perimeter: List[Tuple[int, int]] = []
    for c in range(side):
        perimeter.append((left + c * cell, top))
    for r in range(1, side):
        perimeter.append((left + side * cell, top + r * cell))
    for c in range(side, 0, -1):
        perimeter.append((left + c * cell, top + side * cell))
    for r in range(side, 0, -1):
        perimeter.append((left, top + r * cell))
    return perimeter[:n]


def _node_tooltip(member: Member, table_name: str) -> str:
    prefs = "<br>".join(f"{k}: {v}" for k, v in sorted(member.preferences.items()) if v) or "no preferences"
    return (
        f"<b>{member.name or member.id}</b><br>"
        f"Table: {table_name}<br>"
        f"Gender: {member.gender or 'n/a'}<br>"
        f"{prefs}"
    )


def _legend_html() -> str:
    css = """
    <style>
    .legend-box{
      position:absolute;right:12px;bottom:12px;
      background:#222;color:#eee;border:1px solid #444;border-radius:8px;
      padding:8px 12px;font-family:system-ui, -apple-system, Segoe UI, Roboto, Arial;font-size:12px;
      z-index:10;
    }
    .legend-swatch{display:inline-block;width:12px;height:12px;margin-right:6px;vertical-align:middle;border:1px solid #444;}
    </style>
    """
    return f"""
    {css}
    <div class="legend-box">
      <div><span class="legend-swatch" style="background:#3CB371"></span>shared preference, same table</div>
      <div><span class="legend-swatch" style="background:#A9A9A9"></span>shared preference, other table</div>
      <div style="margin-top:6px;">node color: table</div>
    </div>
    """
