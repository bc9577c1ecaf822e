"""Generation-respecting member order for the unfiltered member listing."""

import logging
import sqlite3
from collections import defaultdict
from functools import cmp_to_key
from typing import Iterable

import database
from family import load_families
from models import PARENT_CODES, Member, Page

logger = logging.getLogger("kintree.ordering")


def _compare_roots(a: Member, b: Member) -> int:
    # Birth dates decide only when both are known; otherwise fall back to id.
    if a.dob and b.dob and a.dob != b.dob:
        return -1 if a.dob < b.dob else 1
    if a.dob and b.dob:
        return 0
    return a.id - b.id


def order_members(members: Iterable[Member], parent_edges: Iterable[tuple[int, int]]) -> list[int]:
    """
    Order member ids root-first, each root followed by its descendants.

    Args:
        members: All members to order
        parent_edges: (parent_id, child_id) pairs from FATHER/MOTHER edges

    Returns:
        Every member id exactly once. Members without a recorded parent
        come first in birth order; each is followed by a pre-order walk of
        its descendants, children by ascending id. Members not reached
        from any root (cycles) follow in ascending id order.
    """
    members = sorted(members, key=lambda m: m.id)
    known = {m.id for m in members}

    children_of: dict[int, set[int]] = defaultdict(set)
    has_parent: set[int] = set()
    for parent_id, child_id in parent_edges:
        # Edges to deleted members are ignored.
        if parent_id not in known or child_id not in known:
            continue
        children_of[parent_id].add(child_id)
        has_parent.add(child_id)

    roots = sorted(
        (m for m in members if m.id not in has_parent), key=cmp_to_key(_compare_roots)
    )

    ordered: list[int] = []
    visited: set[int] = set()

    def visit(start: int) -> None:
        stack = [start]
        while stack:
            node = stack.pop()
            if node in visited:
                continue
            visited.add(node)
            ordered.append(node)
            stack.extend(sorted(children_of.get(node, ()), reverse=True))

    for root in roots:
        visit(root.id)
    for member in members:
        if member.id not in visited:
            visit(member.id)

    return ordered


def tree_order(conn: sqlite3.Connection) -> list[int]:
    """Tree order of every stored member."""
    members = database.list_members(conn)
    parent_edges = [
        (e.from_member_id, e.to_member_id)
        for code in PARENT_CODES
        for e in database.list_edges(conn, relation_code=code)
    ]
    return order_members(members, parent_edges)


def _with_family(conn: sqlite3.Connection, members: list[Member]) -> list[dict]:
    families = load_families(conn, [m.id for m in members])
    return [{**m.to_dict(), **families[m.id].to_dict()} for m in members]


def list_members(
    conn: sqlite3.Connection, page: int = 1, limit: int = 10, search: str | None = None
) -> Page:
    """
    One page of members, each with its spouses, children and parents.

    With a search string, members matching every term are listed newest
    first. Without one, the page is a slice of the tree order.
    """
    page = max(page, 1)
    limit = max(limit, 1)
    offset = (page - 1) * limit

    if search and search.strip():
        total, members = database.search_members(conn, search, offset=offset, limit=limit)
        logger.debug("Search %r matched %d members", search, total)
        return Page(data=_with_family(conn, members), total=total, page=page, limit=limit)

    sorted_ids = tree_order(conn)
    page_ids = sorted_ids[offset:offset + limit]

    # The IN query comes back in id order; restore the tree order.
    by_id = {m.id: m for m in database.list_members(conn, page_ids)}
    members = [by_id[i] for i in page_ids if i in by_id]
    return Page(data=_with_family(conn, members), total=len(sorted_ids), page=page, limit=limit)
