"""Consistency checks over the stored family graph."""

import networkx as nx

from models import PARENT_CODES, RelationCode

MIN_PARENT_AGE = 12


def _lineage(G: nx.MultiDiGraph) -> nx.DiGraph:
    """Parent -> child graph built from FATHER/MOTHER edges only."""
    lineage = nx.DiGraph()
    lineage.add_edges_from(
        (u, v) for u, v, code in G.edges(data="relationship_type") if code in PARENT_CODES
    )
    return lineage


def _name(G: nx.MultiDiGraph, node) -> str:
    return G.nodes[node].get("person_name") or f"#{node}"


def _age_warnings(G: nx.MultiDiGraph, lineage: nx.DiGraph) -> list[str]:
    warnings = []
    # ISO dates compare correctly as strings
    for parent, child in sorted(lineage.edges):
        parent_dob = G.nodes[parent].get("dob")
        child_dob = G.nodes[child].get("dob")
        if not parent_dob or not child_dob:
            continue
        if child_dob < parent_dob:
            warnings.append(
                f"Impossible: {_name(G, child)} born before parent {_name(G, parent)}"
            )
        elif int(child_dob[:4]) - int(parent_dob[:4]) < MIN_PARENT_AGE:
            warnings.append(
                f"Suspicious: {_name(G, parent)} was less than {MIN_PARENT_AGE} years "
                f"old when {_name(G, child)} was born"
            )
    return warnings


def _conflicting_codes(G: nx.MultiDiGraph) -> list[str]:
    """Pairs recorded both as spouses and as parent and child."""
    spouses = {
        frozenset((u, v))
        for u, v, code in G.edges(data="relationship_type")
        if code == RelationCode.SPOUSE.value
    }
    lineage_pairs = {frozenset(pair) for pair in _lineage(G).edges}
    return [
        f"Conflict: {_name(G, a)} and {_name(G, b)} are recorded as spouses and as parent and child"
        for a, b in sorted(tuple(sorted(pair)) for pair in spouses & lineage_pairs)
    ]


def validate_tree(G: nx.MultiDiGraph) -> list[str]:
    """
    Validate the family graph built by ``graph.build_graph``.

    Reports cycles in FATHER/MOTHER edges, children born before a parent,
    parents younger than 12 at a birth, members with more than two
    parents and pairs that are both spouses and parent and child.

    Returns a list of warning messages.
    """
    warnings: list[str] = []
    lineage = _lineage(G)

    try:
        cycle = nx.find_cycle(lineage, orientation="original")
        warnings.append(f"Cycle detected in parent-child relationships: {[e[0] for e in cycle]}")
    except nx.NetworkXNoCycle:
        pass

    warnings.extend(_age_warnings(G, lineage))

    for child in sorted(lineage.nodes):
        count = lineage.in_degree(child)
        if count > 2:
            warnings.append(f"Suspicious: {_name(G, child)} has {count} parents")

    warnings.extend(_conflicting_codes(G))
    return warnings
