"""Per-member family view: spouses, children and parents.

The view is derived from the sparse directed edges around a member. Besides
the direct edges, two bounded passes add inferred relatives:

- children of a spouse are the member's children too (step-children);
- spouses of a parent are the member's parents too (step-parents, or the
  "other" parent when only one parent edge was recorded).

Both passes look exactly one hop away, so malformed cyclic data cannot make
the result grow without bound.
"""

import logging
import sqlite3
from collections import defaultdict
from typing import Iterable, Mapping

import database
from models import PARENT_CODES, FamilyView, MemberSummary, RelationCode, RelationshipEdge

logger = logging.getLogger("kintree.family")

SPOUSE = RelationCode.SPOUSE.value
CHILD = RelationCode.CHILD.value


class EdgeIndex:
    """Outgoing and incoming edges per member id, each list in edge id order."""

    def __init__(self, edges: Iterable[RelationshipEdge]):
        self.outgoing: dict[int, list[RelationshipEdge]] = defaultdict(list)
        self.incoming: dict[int, list[RelationshipEdge]] = defaultdict(list)
        for edge in sorted(edges, key=lambda e: e.id):
            self.outgoing[edge.from_member_id].append(edge)
            self.incoming[edge.to_member_id].append(edge)

    def out_of(self, member_id: int) -> list[RelationshipEdge]:
        return self.outgoing.get(member_id, [])

    def into(self, member_id: int) -> list[RelationshipEdge]:
        return self.incoming.get(member_id, [])


def resolve_family(
    member_id: int, index: EdgeIndex, members: Mapping[int, MemberSummary]
) -> FamilyView:
    """
    Compute the family view of ``member_id``.

    Args:
        member_id: The member to resolve
        index: Edges of the member, its spouses and its parents (more is fine)
        members: Summaries by id; edges to ids missing here are ignored

    Returns:
        FamilyView with each relative listed once, in order of discovery
    """
    spouses: dict[int, MemberSummary] = {}
    children: dict[int, MemberSummary] = {}
    parents: dict[int, MemberSummary] = {}

    def add(target: dict[int, MemberSummary], other_id: int) -> None:
        summary = members.get(other_id)
        if summary is not None and other_id not in target:
            target[other_id] = summary

    # Direct edges
    for edge in index.out_of(member_id):
        if edge.relation_code == SPOUSE:
            add(spouses, edge.to_member_id)
        elif edge.relation_code in PARENT_CODES:
            add(children, edge.to_member_id)
        elif edge.relation_code == CHILD:
            add(parents, edge.to_member_id)
    for edge in index.into(member_id):
        if edge.relation_code == SPOUSE:
            add(spouses, edge.from_member_id)
        elif edge.relation_code in PARENT_CODES:
            add(parents, edge.from_member_id)
        elif edge.relation_code == CHILD:
            add(children, edge.from_member_id)

    # A spouse's children are my children. A spouse's own CHILD edges point
    # at in-laws, so only the parent-side edges count here.
    for spouse_id in list(spouses):
        for edge in index.out_of(spouse_id):
            if edge.relation_code in PARENT_CODES:
                add(children, edge.to_member_id)
        for edge in index.into(spouse_id):
            if edge.relation_code == CHILD:
                add(children, edge.from_member_id)

    # A parent's spouse is my parent.
    for parent_id in list(parents):
        for edge in index.out_of(parent_id):
            if edge.relation_code == SPOUSE:
                add(parents, edge.to_member_id)
        for edge in index.into(parent_id):
            if edge.relation_code == SPOUSE:
                add(parents, edge.from_member_id)

    for found in (spouses, children, parents):
        found.pop(member_id, None)

    return FamilyView(
        spouses=list(spouses.values()),
        children=list(children.values()),
        parents=list(parents.values()),
    )


def _neighbourhood(
    conn: sqlite3.Connection, member_ids: Iterable[int]
) -> tuple[EdgeIndex, dict[int, MemberSummary]]:
    """Load every edge within two hops of ``member_ids`` and the members they touch."""
    ids = set(member_ids)
    direct = database.edges_touching(conn, ids)
    neighbours = {e.from_member_id for e in direct} | {e.to_member_id for e in direct}
    edges = database.edges_touching(conn, ids | neighbours)

    touched = ids | {e.from_member_id for e in edges} | {e.to_member_id for e in edges}
    members = {m.id: m.summary() for m in database.list_members(conn, touched)}
    return EdgeIndex(edges), members


def load_families(conn: sqlite3.Connection, member_ids: Iterable[int]) -> dict[int, FamilyView]:
    """Resolve the family view of several members with two edge queries."""
    ids = list(dict.fromkeys(member_ids))
    index, members = _neighbourhood(conn, ids)
    return {member_id: resolve_family(member_id, index, members) for member_id in ids}


def load_family(conn: sqlite3.Connection, member_id: int) -> FamilyView:
    """Resolve the family view of one stored member."""
    database.get_member(conn, member_id)
    return load_families(conn, [member_id])[member_id]
