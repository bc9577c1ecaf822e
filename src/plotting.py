"""Render the family tree to an image with Graphviz."""

import logging
import re
from pathlib import Path

import pydot

from graph import build_hierarchy
from placement import Direction, LayoutOptions

logger = logging.getLogger("kintree.plotting")

FILL_COLOURS = {"Male": "lightblue", "Female": "lightpink"}
RECORD_SPECIALS = re.compile(r"([{}|<>])")


def _member_label(data: dict) -> str:
    dob = data.get("dob") or ""
    name = data.get("label") or f"{data.get('firstName', '')} {data.get('lastName', '')}".strip()
    return f"{name} ({dob[:4]})" if dob else name


def _record_field(data: dict) -> str:
    """Member label usable as one field of a Graphviz record."""
    return RECORD_SPECIALS.sub(r"\\\1", _member_label(data))


def _fill(data: dict) -> str:
    return FILL_COLOURS.get(data.get("gender") or "", "lightgray")


def build_dot(
    nodes: list[dict],
    edges: list[dict],
    direction: Direction = Direction.TOP_TO_BOTTOM,
    options: LayoutOptions | None = None,
) -> pydot.Dot:
    """
    Build a Graphviz graph of the couple-collapsed hierarchy.

    Couples are drawn as one two-field record so the spouses always share a
    rank and sit side by side; children hang from the couple box.
    """
    options = options or LayoutOptions()
    H, couples = build_hierarchy(nodes, edges, options)
    data_of = {str(n["id"]): n.get("data", {}) for n in nodes}

    P = pydot.Dot(graph_type="digraph")
    P.set("rankdir", Direction(direction).value)
    P.set("splines", "ortho")  # Orthogonal edges for cleaner tree look
    P.set("nodesep", "0.4")
    P.set("ranksep", "0.6")

    name_of = {unit: f"u{i}" for i, unit in enumerate(H.nodes)}
    for unit in H.nodes:
        if unit in couples:
            first, second = (data_of[m] for m in couples[unit])
            P.add_node(
                pydot.Node(
                    name_of[unit],
                    shape="record",
                    style="rounded",
                    label=f"{_record_field(first)}|{_record_field(second)}",
                    fontsize="10",
                )
            )
        else:
            data = data_of[unit]
            P.add_node(
                pydot.Node(
                    name_of[unit],
                    label=_member_label(data),
                    shape="box",
                    style="rounded,filled",
                    fillcolor=_fill(data),
                    fontsize="10",
                )
            )

    for u, v in H.edges:
        P.add_edge(pydot.Edge(name_of[u], name_of[v], color="darkgray"))

    return P


def plot_tree(
    nodes: list[dict],
    edges: list[dict],
    output_path: Path,
    direction: Direction = Direction.TOP_TO_BOTTOM,
) -> Path:
    """Write the tree as PNG, SVG or PDF depending on the file extension."""
    P = build_dot(nodes, edges, direction)

    ext = output_path.suffix.lower().lstrip(".")
    if ext not in ("png", "svg", "pdf"):
        ext = "png"

    P.write(str(output_path), format=ext)
    logger.info("Graph saved to %s", output_path)
    return output_path
