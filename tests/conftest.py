"""Shared fixtures: a fresh seeded SQLite database per test."""

import pytest

import database


@pytest.fixture
def conn(tmp_path):
    """Database with the schema and the default relation masters."""
    conn = database.create_database(tmp_path / "family.db")
    yield conn
    conn.close()


@pytest.fixture
def add_member(conn):
    """Create a member and return its id."""
    def _add(first_name: str, last_name: str = "Doe", **fields) -> int:
        return database.create_member(
            conn, first_name=first_name, last_name=last_name, **fields
        ).id
    return _add


@pytest.fixture
def stored_edges(conn):
    """Current edges as (from, to, code) triples."""
    def _edges() -> set[tuple[int, int, str]]:
        return {
            (e.from_member_id, e.to_member_id, e.relation_code)
            for e in database.list_edges(conn)
        }
    return _edges
