"""Relationship edge creation and deletion with mirroring.

A relation master either mirrors itself (``is_bidirectional``, e.g. SPOUSE),
mirrors into another code (``inverse_code``, e.g. FATHER -> CHILD), or does
not mirror at all. Every write here keeps the primary edge and its mirror in
one transaction.
"""

import logging
import sqlite3

import database
from errors import Inconsistent, InvalidRequest, NotFound
from models import RelationMaster, RelationshipEdge

logger = logging.getLogger("kintree.relations")


def _mirror_master(conn: sqlite3.Connection, master: RelationMaster) -> RelationMaster | None:
    """The master used for the reverse edge, or None when nothing is mirrored."""
    if master.is_bidirectional:
        return master
    if master.inverse_code:
        inverse = database.get_relation_master(conn, master.inverse_code)
        if inverse is None:
            # Partially configured masters are allowed; the mirror is skipped.
            logger.debug(
                "Inverse code %s of %s is not a known relation, skipping mirror",
                master.inverse_code,
                master.code,
            )
        return inverse
    return None


def create_relationship(
    conn: sqlite3.Connection, from_id: int, to_id: int, code: str
) -> RelationshipEdge:
    """
    Create ``from_id -> to_id`` with relation ``code`` plus its mirror edge.

    Creation is idempotent: an existing (from, to, relation) triple is
    returned instead of duplicated, and a mirror is only inserted when the
    reverse triple is missing.

    Raises:
        InvalidRequest: when ``from_id == to_id``.
        NotFound: when ``code`` or either member is unknown.
    """
    if from_id == to_id:
        raise InvalidRequest("Cannot create relationship to self")

    master = database.get_relation_master(conn, code)
    if master is None:
        raise NotFound(f"Relation type {code} not found")

    for member_id in (from_id, to_id):
        if database.find_member(conn, member_id) is None:
            raise NotFound(f"Member {member_id} not found")

    with conn:
        edge = database.insert_edge(conn, from_id, to_id, master.id)
        mirror = _mirror_master(conn, master)
        if mirror is not None:
            database.insert_edge(conn, to_id, from_id, mirror.id)

    logger.info(
        "Created %s edge %s -> %s%s",
        master.code,
        from_id,
        to_id,
        f" (mirrored as {mirror.code})" if mirror else "",
    )
    return edge


def delete_relationship(conn: sqlite3.Connection, edge_id: int) -> None:
    """
    Delete an edge and its mirror.

    Only edges of the mirrored relation running in the opposite direction
    are removed; other relations between the same two members stay.

    Raises:
        NotFound: when the edge does not exist.
    """
    edge = database.get_edge(conn, edge_id)
    if edge is None:
        raise NotFound(f"Edge {edge_id} not found")
    master = database.get_relation_master_by_id(conn, edge.relation_id)

    with conn:
        database.delete_edge(conn, edge.id)
        mirror = _mirror_master(conn, master) if master else None
        removed = 0
        if mirror is not None:
            removed = database.delete_edges_matching(
                conn, edge.to_member_id, edge.from_member_id, mirror.id
            )

    logger.info(
        "Deleted %s edge %s -> %s and %d mirror edge(s)",
        edge.relation_code,
        edge.from_member_id,
        edge.to_member_id,
        removed,
    )


def list_relationships(conn: sqlite3.Connection, member_id: int) -> list[dict]:
    """Outgoing edges of a member with the target member and relation inlined."""
    masters = {m.id: m for m in database.list_relation_masters(conn)}
    edges = database.list_edges(conn, from_id=member_id)
    targets = {m.id: m for m in database.list_members(conn, {e.to_member_id for e in edges})}

    result = []
    for edge in edges:
        target = targets.get(edge.to_member_id)
        if target is None:
            continue
        item = edge.to_dict()
        item["toMember"] = target.to_dict()
        item["relation"] = masters[edge.relation_id].to_dict()
        result.append(item)
    return result


# ============================================================================
# Relation masters
# ============================================================================


def _check_master(fields: dict) -> dict:
    code = (fields.get("code") or "").strip().upper()
    label = (fields.get("label") or "").strip()
    if not code or not label:
        raise InvalidRequest("Relation master needs a code and a label")
    inverse = (fields.get("inverse_code") or "").strip().upper() or None
    if fields.get("is_bidirectional") and inverse and inverse != code:
        raise InvalidRequest(
            f"Relation {code} cannot be bidirectional and have inverse code {inverse}"
        )
    return {**fields, "code": code, "label": label, "inverse_code": inverse}


def create_relation_master(conn: sqlite3.Connection, **fields) -> RelationMaster:
    master = database.insert_relation_master(conn, **_check_master(fields))
    logger.info("Created relation master %s", master.code)
    return master


def update_relation_master(conn: sqlite3.Connection, master_id: int, **fields) -> RelationMaster:
    return database.update_relation_master_row(conn, master_id, **_check_master(fields))


def delete_relation_master(conn: sqlite3.Connection, master_id: int) -> None:
    database.delete_relation_master_row(conn, master_id)
    logger.info("Deleted relation master %s", master_id)


def check_relation_masters(conn: sqlite3.Connection, strict: bool = False) -> list[str]:
    """
    Report masters whose inverse code does not resolve.

    Mirroring skips such codes silently; with ``strict`` the first one is
    raised as ``Inconsistent`` instead of being reported.
    """
    masters = database.list_relation_masters(conn)
    known = {m.code for m in masters}
    problems = []
    for master in masters:
        if master.is_bidirectional or not master.inverse_code:
            continue
        if master.inverse_code not in known:
            message = f"{master.code}: inverse code {master.inverse_code} is not defined"
            if strict:
                raise Inconsistent(message)
            problems.append(message)
    return problems
