"""SQLite database operations for family tree storage.

Members, relation masters and relationship edges live in flat tables; all
lookups are by id. Edge primitives (``insert_edge``, ``delete_edge``,
``delete_edges_matching``) do not commit so that callers can group a primary
edge and its mirror in one transaction; member and master writes commit
themselves.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from errors import InvalidRequest, NotFound
from models import Gender, Member, RelationMaster, RelationshipEdge

logger = logging.getLogger("kintree.database")

SEED_RELATION_MASTERS = [
    dict(code="SPOUSE", label="Spouse", is_spousal=True, is_bidirectional=True),
    dict(code="FATHER", label="Father", is_parental=True, inverse_code="CHILD"),
    dict(code="MOTHER", label="Mother", is_parental=True, inverse_code="CHILD"),
    # PARENT is intentionally not seeded: CHILD edges have no mirror.
    dict(code="CHILD", label="Child", inverse_code="PARENT"),
]

MEMBER_FIELDS = (
    "first_name",
    "last_name",
    "dob",
    "gender",
    "contact_number",
    "address",
    "native_place",
    "notes",
    "image_url",
)

_MEMBER_COLUMNS = ", ".join(MEMBER_FIELDS)
_MEMBER_MARKS = ", ".join("?" for _ in MEMBER_FIELDS)
_MEMBER_ASSIGNMENTS = ", ".join(f"{name} = ?" for name in MEMBER_FIELDS)

_EDGE_SELECT = """
    SELECT e.id, e.from_member_id, e.to_member_id, e.relation_id, r.code
    FROM relationship_edge e
    JOIN relation_master r ON r.id = e.relation_id
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def connect(db_path: Path | str) -> sqlite3.Connection:
    """Open a connection with foreign keys enabled and row access by name."""
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def create_database(db_path: Path | str) -> sqlite3.Connection:
    """Create the member, relation master and relationship edge tables."""
    conn = connect(db_path)
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS member (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            dob TEXT,
            gender TEXT,
            contact_number TEXT,
            address TEXT,
            native_place TEXT,
            notes TEXT,
            image_url TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS relation_master (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            code TEXT NOT NULL UNIQUE,
            label TEXT NOT NULL,
            is_spousal INTEGER NOT NULL DEFAULT 0,
            is_parental INTEGER NOT NULL DEFAULT 0,
            is_bidirectional INTEGER NOT NULL DEFAULT 0,
            inverse_code TEXT
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS relationship_edge (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            from_member_id INTEGER NOT NULL,
            to_member_id INTEGER NOT NULL,
            relation_id INTEGER NOT NULL,
            UNIQUE (from_member_id, to_member_id, relation_id),
            CHECK (from_member_id != to_member_id),
            FOREIGN KEY (from_member_id) REFERENCES member(id) ON DELETE CASCADE,
            FOREIGN KEY (to_member_id) REFERENCES member(id) ON DELETE CASCADE,
            FOREIGN KEY (relation_id) REFERENCES relation_master(id) ON DELETE CASCADE
        )
    """)

    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_edge_to ON relationship_edge (to_member_id)"
    )

    conn.commit()
    seed_relation_masters(conn)
    return conn


def seed_relation_masters(conn: sqlite3.Connection) -> None:
    """Insert the default relation masters, leaving existing codes untouched."""
    with conn:
        conn.executemany(
            """
            INSERT OR IGNORE INTO relation_master
            (code, label, is_spousal, is_parental, is_bidirectional, inverse_code)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    m["code"],
                    m["label"],
                    int(m.get("is_spousal", False)),
                    int(m.get("is_parental", False)),
                    int(m.get("is_bidirectional", False)),
                    m.get("inverse_code"),
                )
                for m in SEED_RELATION_MASTERS
            ],
        )


# ============================================================================
# Row mapping
# ============================================================================


def _row_to_member(row: sqlite3.Row) -> Member:
    return Member(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        dob=row["dob"],
        gender=Gender.parse(row["gender"]),
        contact_number=row["contact_number"],
        address=row["address"],
        native_place=row["native_place"],
        notes=row["notes"],
        image_url=row["image_url"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_master(row: sqlite3.Row) -> RelationMaster:
    return RelationMaster(
        id=row["id"],
        code=row["code"],
        label=row["label"],
        is_spousal=bool(row["is_spousal"]),
        is_parental=bool(row["is_parental"]),
        is_bidirectional=bool(row["is_bidirectional"]),
        inverse_code=row["inverse_code"],
    )


def _row_to_edge(row: sqlite3.Row) -> RelationshipEdge:
    return RelationshipEdge(
        id=row[0],
        from_member_id=row[1],
        to_member_id=row[2],
        relation_id=row[3],
        relation_code=row[4],
    )


# ============================================================================
# Members
# ============================================================================


def _member_values(fields: dict) -> list:
    values = []
    for name in MEMBER_FIELDS:
        value = fields.get(name)
        if name == "gender":
            gender = value if isinstance(value, Gender) else Gender.parse(value)
            value = gender.value if gender else None
        elif isinstance(value, str) and not value.strip():
            value = None
        values.append(value)
    return values


def _check_names(fields: dict) -> None:
    for name in ("first_name", "last_name"):
        value = fields.get(name)
        if not value or not str(value).strip():
            raise InvalidRequest(f"{name} is required")


def create_member(conn: sqlite3.Connection, **fields) -> Member:
    """Insert a member and return it with its assigned id."""
    _check_names(fields)
    now = _now()
    with conn:
        cursor = conn.execute(
            f"""
            INSERT INTO member ({_MEMBER_COLUMNS}, created_at, updated_at)
            VALUES ({_MEMBER_MARKS}, ?, ?)
            """,
            [*_member_values(fields), now, now],
        )
    member_id = cursor.lastrowid
    logger.debug("Created member %s", member_id)
    return get_member(conn, member_id)


def update_member(conn: sqlite3.Connection, member_id: int, **fields) -> Member:
    """Replace the editable fields of a member."""
    _check_names(fields)
    with conn:
        cursor = conn.execute(
            f"""
            UPDATE member
            SET {_MEMBER_ASSIGNMENTS}, updated_at = ?
            WHERE id = ?
            """,
            [*_member_values(fields), _now(), member_id],
        )
    if cursor.rowcount == 0:
        raise NotFound(f"Member {member_id} not found")
    return get_member(conn, member_id)


def delete_member(conn: sqlite3.Connection, member_id: int) -> None:
    """Delete a member; its edges are removed by the ON DELETE CASCADE rule."""
    with conn:
        cursor = conn.execute("DELETE FROM member WHERE id = ?", (member_id,))
    if cursor.rowcount == 0:
        raise NotFound(f"Member {member_id} not found")
    logger.debug("Deleted member %s", member_id)


def find_member(conn: sqlite3.Connection, member_id: int) -> Member | None:
    row = conn.execute("SELECT * FROM member WHERE id = ?", (member_id,)).fetchone()
    return _row_to_member(row) if row else None


def get_member(conn: sqlite3.Connection, member_id: int) -> Member:
    member = find_member(conn, member_id)
    if member is None:
        raise NotFound(f"Member {member_id} not found")
    return member


def list_members(conn: sqlite3.Connection, ids: Iterable[int] | None = None) -> list[Member]:
    """All members (or just ``ids``) in ascending id order."""
    if ids is None:
        rows = conn.execute("SELECT * FROM member ORDER BY id").fetchall()
    else:
        ids = list(ids)
        if not ids:
            return []
        rows = conn.execute(
            f"SELECT * FROM member WHERE id IN ({', '.join('?' for _ in ids)}) ORDER BY id",
            ids,
        ).fetchall()
    return [_row_to_member(r) for r in rows]


def _search_clause(terms: list[str]) -> tuple[str, list[str]]:
    clauses = []
    params: list[str] = []
    for term in terms:
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        clauses.append(
            "(first_name LIKE ? ESCAPE '\\' OR last_name LIKE ? ESCAPE '\\')"
        )
        params.extend([f"%{escaped}%", f"%{escaped}%"])
    return " AND ".join(clauses), params


def search_members(
    conn: sqlite3.Connection, search: str, offset: int = 0, limit: int | None = None
) -> tuple[int, list[Member]]:
    """
    Members whose first or last name contains every whitespace-separated term.

    Returns the total match count and the requested slice, newest first.
    """
    terms = search.split()
    if not terms:
        return 0, []
    where, params = _search_clause(terms)

    total = conn.execute(f"SELECT COUNT(*) FROM member WHERE {where}", params).fetchone()[0]
    rows = conn.execute(
        f"""
        SELECT * FROM member WHERE {where}
        ORDER BY created_at DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        [*params, -1 if limit is None else limit, offset],
    ).fetchall()
    return total, [_row_to_member(r) for r in rows]


def count_members(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM member").fetchone()[0]


def recent_members(conn: sqlite3.Connection, limit: int = 5) -> list[Member]:
    rows = conn.execute(
        "SELECT * FROM member ORDER BY updated_at DESC, id DESC LIMIT ?", (limit,)
    ).fetchall()
    return [_row_to_member(r) for r in rows]


# ============================================================================
# Relation masters
# ============================================================================


def list_relation_masters(conn: sqlite3.Connection) -> list[RelationMaster]:
    rows = conn.execute("SELECT * FROM relation_master ORDER BY id").fetchall()
    return [_row_to_master(r) for r in rows]


def get_relation_master(conn: sqlite3.Connection, code: str) -> RelationMaster | None:
    """Look up a master by its code; None when the code is unknown."""
    row = conn.execute("SELECT * FROM relation_master WHERE code = ?", (code,)).fetchone()
    return _row_to_master(row) if row else None


def get_relation_master_by_id(conn: sqlite3.Connection, master_id: int) -> RelationMaster | None:
    row = conn.execute("SELECT * FROM relation_master WHERE id = ?", (master_id,)).fetchone()
    return _row_to_master(row) if row else None


def _master_values(fields: dict) -> list:
    return [
        fields["code"],
        fields["label"],
        int(bool(fields.get("is_spousal"))),
        int(bool(fields.get("is_parental"))),
        int(bool(fields.get("is_bidirectional"))),
        fields.get("inverse_code") or None,
    ]


def insert_relation_master(conn: sqlite3.Connection, **fields) -> RelationMaster:
    try:
        with conn:
            cursor = conn.execute(
                """
                INSERT INTO relation_master
                (code, label, is_spousal, is_parental, is_bidirectional, inverse_code)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                _master_values(fields),
            )
    except sqlite3.IntegrityError as e:
        raise InvalidRequest(f"Relation code {fields['code']} already exists") from e
    return get_relation_master_by_id(conn, cursor.lastrowid)


def update_relation_master_row(conn: sqlite3.Connection, master_id: int, **fields) -> RelationMaster:
    try:
        with conn:
            cursor = conn.execute(
                """
                UPDATE relation_master
                SET code = ?, label = ?, is_spousal = ?, is_parental = ?,
                    is_bidirectional = ?, inverse_code = ?
                WHERE id = ?
                """,
                [*_master_values(fields), master_id],
            )
    except sqlite3.IntegrityError as e:
        raise InvalidRequest(f"Relation code {fields['code']} already exists") from e
    if cursor.rowcount == 0:
        raise NotFound(f"Relation master {master_id} not found")
    return get_relation_master_by_id(conn, master_id)


def delete_relation_master_row(conn: sqlite3.Connection, master_id: int) -> None:
    with conn:
        cursor = conn.execute("DELETE FROM relation_master WHERE id = ?", (master_id,))
    if cursor.rowcount == 0:
        raise NotFound(f"Relation master {master_id} not found")


# ============================================================================
# Relationship edges
# ============================================================================


def get_edge(conn: sqlite3.Connection, edge_id: int) -> RelationshipEdge | None:
    row = conn.execute(f"{_EDGE_SELECT} WHERE e.id = ?", (edge_id,)).fetchone()
    return _row_to_edge(row) if row else None


def find_edge(
    conn: sqlite3.Connection, from_id: int, to_id: int, relation_id: int
) -> RelationshipEdge | None:
    row = conn.execute(
        f"""{_EDGE_SELECT}
        WHERE e.from_member_id = ? AND e.to_member_id = ? AND e.relation_id = ?
        """,
        (from_id, to_id, relation_id),
    ).fetchone()
    return _row_to_edge(row) if row else None


def list_edges(
    conn: sqlite3.Connection,
    from_id: int | None = None,
    to_id: int | None = None,
    relation_code: str | None = None,
) -> list[RelationshipEdge]:
    """Edges matching every given filter, in ascending id order."""
    clauses = []
    params: list = []
    if from_id is not None:
        clauses.append("e.from_member_id = ?")
        params.append(from_id)
    if to_id is not None:
        clauses.append("e.to_member_id = ?")
        params.append(to_id)
    if relation_code is not None:
        clauses.append("r.code = ?")
        params.append(relation_code)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(f"{_EDGE_SELECT} {where} ORDER BY e.id", params).fetchall()
    return [_row_to_edge(r) for r in rows]


def edges_touching(conn: sqlite3.Connection, member_ids: Iterable[int]) -> list[RelationshipEdge]:
    """Edges with either endpoint in ``member_ids``, in ascending id order."""
    ids = sorted(set(member_ids))
    if not ids:
        return []
    marks = ", ".join("?" for _ in ids)
    rows = conn.execute(
        f"""{_EDGE_SELECT}
        WHERE e.from_member_id IN ({marks}) OR e.to_member_id IN ({marks})
        ORDER BY e.id
        """,
        [*ids, *ids],
    ).fetchall()
    return [_row_to_edge(r) for r in rows]


def insert_edge(
    conn: sqlite3.Connection, from_id: int, to_id: int, relation_id: int
) -> RelationshipEdge:
    """
    Insert an edge unless the exact (from, to, relation) triple exists.

    Returns the stored edge either way. Does not commit.
    """
    if from_id == to_id:
        raise InvalidRequest("Cannot create relationship to self")
    conn.execute(
        """
        INSERT OR IGNORE INTO relationship_edge (from_member_id, to_member_id, relation_id)
        VALUES (?, ?, ?)
        """,
        (from_id, to_id, relation_id),
    )
    return find_edge(conn, from_id, to_id, relation_id)


def delete_edge(conn: sqlite3.Connection, edge_id: int) -> int:
    """Delete one edge by id. Does not commit."""
    return conn.execute("DELETE FROM relationship_edge WHERE id = ?", (edge_id,)).rowcount


def delete_edges_matching(
    conn: sqlite3.Connection, from_id: int, to_id: int, relation_id: int
) -> int:
    """Delete every edge with this exact triple. Does not commit."""
    return conn.execute(
        """
        DELETE FROM relationship_edge
        WHERE from_member_id = ? AND to_member_id = ? AND relation_id = ?
        """,
        (from_id, to_id, relation_id),
    ).rowcount


def count_edges(conn: sqlite3.Connection, spousal_only: bool = False) -> int:
    if spousal_only:
        return conn.execute(
            """
            SELECT COUNT(*) FROM relationship_edge e
            JOIN relation_master r ON r.id = e.relation_id
            WHERE r.is_spousal = 1
            """
        ).fetchone()[0]
    return conn.execute("SELECT COUNT(*) FROM relationship_edge").fetchone()[0]


def dashboard_stats(conn: sqlite3.Connection) -> dict:
    """Counts for the dashboard; families are estimated as spousal edge pairs."""
    return {
        "totalMembers": count_members(conn),
        "totalRelationships": count_edges(conn),
        "totalFamilies": -(-count_edges(conn, spousal_only=True) // 2),
        "recentMembers": [
            {
                "id": m.id,
                "firstName": m.first_name,
                "lastName": m.last_name,
                "updatedAt": m.updated_at,
                "imageUrl": m.image_url,
            }
            for m in recent_members(conn)
        ],
    }
