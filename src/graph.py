"""NetworkX graph building and family tree layout."""

import logging
import sqlite3
from typing import Hashable

import networkx as nx

import database
from models import Gender, Member
from placement import Direction, LayoutOptions, LayeredPlacer, Placer

logger = logging.getLogger("kintree.graph")

SPOUSAL_LABELS = {"spouse", "husband", "wife"}
PARENTAL_LABELS = {"father", "mother", "parent", "child", "son", "daughter"}
CHILD_SIDE_LABELS = ("child", "son", "daughter")

COUPLE_PREFIX = "couple-"


def build_graph(conn: sqlite3.Connection) -> nx.MultiDiGraph:
    """
    Build a NetworkX graph of members and relationship edges from the database.

    A multigraph, since two members may be linked by several relations.
    """
    G = nx.MultiDiGraph()

    # Note: use 'person_name' instead of 'name' to avoid conflict with pydot
    for m in database.list_members(conn):
        G.add_node(
            m.id,
            person_name=m.full_name,
            gender=m.gender.value if m.gender else None,
            dob=m.dob,
        )

    for e in database.list_edges(conn):
        G.add_edge(e.from_member_id, e.to_member_id, key=e.id, relationship_type=e.relation_code)

    return G


# ============================================================================
# Tree data (unpositioned nodes and labelled edges)
# ============================================================================


def _gendered_label(label: str, target: Member | None) -> str:
    if target is None or target.gender is None:
        return label
    if label == "Child":
        return {Gender.MALE: "Son", Gender.FEMALE: "Daughter"}.get(target.gender, label)
    if label == "Spouse":
        return {Gender.MALE: "Husband", Gender.FEMALE: "Wife"}.get(target.gender, label)
    return label


def tree_data(conn: sqlite3.Connection) -> dict:
    """All members as nodes and all edges with display labels, without positions."""
    members = database.list_members(conn)
    masters = {m.id: m for m in database.list_relation_masters(conn)}
    by_id = {m.id: m for m in members}

    nodes = [
        {
            "id": str(m.id),
            "type": "default",
            "data": {"label": m.full_name, "image": m.image_url, **m.to_dict()},
            "position": {"x": 0, "y": 0},
        }
        for m in members
    ]

    edges = []
    for e in database.list_edges(conn):
        master = masters[e.relation_id]
        edges.append(
            {
                "id": f"e{e.from_member_id}-{e.to_member_id}-{master.code}",
                "source": str(e.from_member_id),
                "target": str(e.to_member_id),
                "label": _gendered_label(master.label, by_id.get(e.to_member_id)),
                "isSpousal": master.is_spousal,
                "isParental": master.is_parental,
                "type": "smoothstep",
                "animated": False,
            }
        )
    return {"nodes": nodes, "edges": edges}


# ============================================================================
# Layout
# ============================================================================


def _id_key(node_id: str) -> tuple:
    """Sort numeric ids numerically and anything else after them as text."""
    return (0, int(node_id), "") if node_id.isdigit() else (1, 0, node_id)


def classify_edge(edge: dict) -> str | None:
    """'spousal', 'parental' or None for edges the layout ignores."""
    label = (edge.get("label") or "").lower()
    if edge.get("isSpousal") or label in SPOUSAL_LABELS:
        return "spousal"
    if edge.get("isParental") or label in PARENTAL_LABELS:
        return "parental"
    return None


def parent_and_child(edge: dict) -> tuple[str, str]:
    """
    (parent, child) of a parental edge.

    "X -> Y: Child/Son/Daughter" reads as "X is the child of Y", so the
    target is the parent; every other parental label points parent -> child.
    """
    label = (edge.get("label") or "").lower()
    source, target = str(edge["source"]), str(edge["target"])
    if any(word in label for word in CHILD_SIDE_LABELS):
        return target, source
    return source, target


def couple_id(a: str, b: str) -> str:
    first, second = sorted((str(a), str(b)), key=_id_key)
    return f"{COUPLE_PREFIX}{first}-{second}"


def pair_couples(
    node_ids: list[str], spouses: dict[str, set[str]]
) -> tuple[dict[str, str], dict[str, tuple[str, str]]]:
    """
    Pair every member with at most one spouse.

    Members are visited in ascending id order and take their lowest-id
    spouse that is still unpaired, so the pairing does not depend on the
    order edges were discovered in.

    Returns:
        (unit id per paired member, member pair per couple id)
    """
    unit_of: dict[str, str] = {}
    couples: dict[str, tuple[str, str]] = {}
    for node in sorted(node_ids, key=_id_key):
        if node in unit_of:
            continue
        for spouse in sorted(spouses.get(node, ()), key=_id_key):
            if spouse in unit_of:
                continue
            cid = couple_id(node, spouse)
            first, second = sorted((node, spouse), key=_id_key)
            couples[cid] = (first, second)
            unit_of[node] = unit_of[spouse] = cid
            break
    return unit_of, couples


def build_hierarchy(
    nodes: list[dict], edges: list[dict], options: LayoutOptions
) -> tuple[nx.DiGraph, dict[str, tuple[str, str]]]:
    """
    Build the layout graph of individual and couple units.

    Spouses collapse into one couple unit twice as wide as a single member.
    Every parental edge becomes an edge from the parent's unit to the
    child's unit; both parents of a couple share one edge per child unit.

    Returns:
        (hierarchy graph, member pair per couple id)
    """
    node_ids = [str(n["id"]) for n in nodes]
    known = set(node_ids)

    spouses: dict[str, set[str]] = {}
    lineage: list[tuple[str, str]] = []
    for edge in edges:
        kind = classify_edge(edge)
        source, target = str(edge["source"]), str(edge["target"])
        if kind is None or source not in known or target not in known or source == target:
            continue
        if kind == "spousal":
            spouses.setdefault(source, set()).add(target)
            spouses.setdefault(target, set()).add(source)
        else:
            lineage.append(parent_and_child(edge))

    unit_of, couples = pair_couples(node_ids, spouses)

    H = nx.DiGraph()
    for node in sorted(node_ids, key=_id_key):
        unit = unit_of.get(node, node)
        if unit in H:
            continue
        if unit in couples:
            H.add_node(unit, kind="couple", width=options.couple_width, height=options.node_height)
        else:
            H.add_node(unit, kind="member", width=options.node_width, height=options.node_height)

    links = set()
    for parent, child in lineage:
        source, target = unit_of.get(parent, parent), unit_of.get(child, child)
        if source != target:
            links.add((source, target))
    H.add_edges_from(sorted(links, key=lambda l: (_id_key(l[0]), _id_key(l[1]))))

    logger.debug(
        "Hierarchy: %d units (%d couples), %d edges",
        H.number_of_nodes(),
        len(couples),
        H.number_of_edges(),
    )
    return H, couples


def _top_left(centre: tuple[float, float], width: float, height: float) -> dict:
    return {"x": centre[0] - width / 2, "y": centre[1] - height / 2}


def layout(
    nodes: list[dict],
    edges: list[dict],
    direction: Direction = Direction.TOP_TO_BOTTOM,
    options: LayoutOptions | None = None,
    placer: Placer | None = None,
) -> dict:
    """
    Position a family graph as a layered pedigree.

    Args:
        nodes: ``{"id", "data"}`` dicts, one per member
        edges: ``{"source", "target", "label", "isSpousal", "isParental"}`` dicts
        direction: Rank direction
        options: Node sizes and separations
        placer: Layered placement engine (defaults to LayeredPlacer)

    Returns:
        ``{"nodes": [...], "edges": [...]}`` with top-left positions; couples
        are a single node of type "couple" whose ``data.members`` holds the
        position of each spouse inside the couple box.
    """
    options = options or LayoutOptions()
    placer = placer or LayeredPlacer()
    direction = Direction(direction)

    H, couples = build_hierarchy(nodes, edges, options)
    centres: dict[Hashable, tuple[float, float]] = placer.place(H, direction, options)
    by_id = {str(n["id"]): n for n in nodes}

    result_nodes = []
    for unit, attrs in H.nodes(data=True):
        centre = centres[unit]
        width, height = attrs["width"], attrs["height"]
        if unit in couples:
            first, second = couples[unit]
            left = centre[0] - width / 2
            top = centre[1] - height / 2
            result_nodes.append(
                {
                    "id": unit,
                    "type": "couple",
                    "position": _top_left(centre, width, height),
                    "width": width,
                    "height": height,
                    "data": {
                        "spouse1": by_id[first].get("data", {}),
                        "spouse2": by_id[second].get("data", {}),
                        "members": [
                            {"id": first, "position": {"x": left, "y": top}},
                            {"id": second, "position": {"x": left + width / 2, "y": top}},
                        ],
                    },
                }
            )
        else:
            result_nodes.append(
                {
                    **by_id[unit],
                    "id": unit,
                    "type": "familyMember",
                    "position": _top_left(centre, width, height),
                    "width": width,
                    "height": height,
                }
            )

    result_edges = [
        {
            "id": f"e-{u}-{v}",
            "source": u,
            "target": v,
            "type": "step",
            "style": {"stroke": "#94a3b8", "strokeWidth": 2},
        }
        for u, v in H.edges
    ]
    return {"nodes": result_nodes, "edges": result_edges}


def layout_tree(
    conn: sqlite3.Connection,
    direction: Direction = Direction.TOP_TO_BOTTOM,
    options: LayoutOptions | None = None,
    placer: Placer | None = None,
) -> dict:
    """Layout of every stored member and edge."""
    data = tree_data(conn)
    return layout(data["nodes"], data["edges"], direction, options, placer)
