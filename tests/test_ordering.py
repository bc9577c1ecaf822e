"""Tests for tree ordering and the member listing."""

import pytest

import database
from models import Member
from ordering import list_members, order_members, tree_order
from relations import create_relationship


def member(member_id: int, dob: str | None = None) -> Member:
    return Member(id=member_id, first_name=f"P{member_id}", last_name="Test", dob=dob)


class TestOrderMembers:
    """Tests for the pure topological order."""

    def test_roots_by_birth_then_descendants(self):
        """Older root first, each root followed by its subtree."""
        members = [member(1, "1940-01-01"), member(2, "1930-05-05"), member(3), member(4), member(5)]
        edges = [(1, 3), (3, 5), (2, 4)]
        assert order_members(members, edges) == [2, 4, 1, 3, 5]

    def test_roots_without_birth_dates_by_id(self):
        members = [member(3), member(1), member(2)]
        assert order_members(members, []) == [1, 2, 3]

    def test_children_by_id_pre_order(self):
        members = [member(i) for i in range(1, 7)]
        edges = [(1, 6), (1, 2), (2, 5), (6, 3)]
        assert order_members(members, edges) == [1, 2, 5, 6, 3, 4]

    def test_child_of_two_parents_listed_once(self):
        members = [member(1), member(2), member(3)]
        edges = [(1, 3), (2, 3)]
        assert order_members(members, edges) == [1, 3, 2]

    def test_cycle_members_follow_in_id_order(self):
        """Members in a parent cycle have no root and are appended by id."""
        members = [member(1), member(2), member(3)]
        edges = [(2, 3), (3, 2)]
        assert order_members(members, edges) == [1, 2, 3]

    def test_dangling_edges_are_ignored(self):
        members = [member(1), member(2)]
        assert order_members(members, [(99, 2), (1, 98)]) == [1, 2]

    def test_shared_child_follows_first_root(self):
        """A child of two roots is walked from the first root only."""
        members = [member(i) for i in range(1, 11)]
        edges = [(1, 4), (2, 4), (4, 7), (3, 8), (8, 9), (7, 10), (5, 10)]
        assert order_members(members, edges) == [1, 4, 7, 10, 2, 3, 8, 9, 5, 6]

    def test_coverage_and_some_parent_first(self):
        """Every member once, each after at least one of its parents."""
        members = [member(i) for i in range(1, 11)]
        edges = [(1, 4), (2, 4), (4, 7), (3, 8), (8, 9), (7, 10), (5, 10)]
        order = order_members(members, edges)
        assert len(order) == len(set(order)) == 10
        assert sorted(order) == list(range(1, 11))
        position = {m: i for i, m in enumerate(order)}
        for child in {c for _, c in edges}:
            parents = [p for p, c in edges if c == child]
            assert any(position[p] < position[child] for p in parents)


class TestListMembers:
    """Tests for the paged member listing."""

    @pytest.fixture
    def tree(self, conn, add_member):
        grandpa = add_member("Grandpa", "Smith", dob="1920-01-01", gender="Male")
        grandma = add_member("Grandma", "Smith", dob="1922-01-01", gender="Female")
        dad = add_member("Dad", "Smith", dob="1950-01-01", gender="Male")
        mum = add_member("Mum", "Jones", dob="1952-01-01", gender="Female")
        kid = add_member("Kid", "Smith", dob="1980-01-01")
        create_relationship(conn, grandpa, grandma, "SPOUSE")
        create_relationship(conn, grandpa, dad, "FATHER")
        create_relationship(conn, grandma, dad, "MOTHER")
        create_relationship(conn, dad, mum, "SPOUSE")
        create_relationship(conn, mum, kid, "MOTHER")
        return grandpa, grandma, dad, mum, kid

    def test_tree_order(self, conn, tree):
        grandpa, grandma, dad, mum, kid = tree
        # Mum has no parents, so she is a root after the Smith grandparents.
        assert tree_order(conn) == [grandpa, dad, grandma, mum, kid]

    def test_pages_follow_tree_order(self, conn, tree):
        grandpa, grandma, dad, mum, kid = tree
        first = list_members(conn, page=1, limit=2).to_dict()
        second = list_members(conn, page=2, limit=2).to_dict()
        assert [m["id"] for m in first["data"]] == [grandpa, dad]
        assert [m["id"] for m in second["data"]] == [grandma, mum]
        assert first["meta"] == {"total": 5, "page": 1, "limit": 2, "totalPages": 3}

    def test_items_carry_family(self, conn, tree):
        grandpa, grandma, dad, mum, kid = tree
        page = list_members(conn, page=1, limit=10).to_dict()
        by_id = {m["id"]: m for m in page["data"]}
        assert [p["id"] for p in by_id[kid]["parents"]] == [mum, dad]
        assert [c["id"] for c in by_id[dad]["children"]] == [kid]
        assert [s["id"] for s in by_id[grandma]["spouses"]] == [grandpa]

    def test_page_past_the_end(self, conn, tree):
        page = list_members(conn, page=9, limit=2).to_dict()
        assert page["data"] == []
        assert page["meta"]["total"] == 5

    def test_search_every_term(self, conn, tree):
        grandpa, grandma, dad, mum, kid = tree
        page = list_members(conn, search="smith gra").to_dict()
        # Newest first
        assert [m["id"] for m in page["data"]] == [grandma, grandpa]
        assert page["meta"]["total"] == 2

    def test_search_matches_last_name(self, conn, tree):
        page = list_members(conn, search="JONES").to_dict()
        assert [m["firstName"] for m in page["data"]] == ["Mum"]

    def test_search_paging(self, conn, tree):
        page = list_members(conn, page=2, limit=3, search="smith").to_dict()
        assert page["meta"] == {"total": 4, "page": 2, "limit": 3, "totalPages": 2}
        assert len(page["data"]) == 1

    def test_deleted_member_leaves_order(self, conn, tree):
        grandpa, grandma, dad, mum, kid = tree
        database.delete_member(conn, dad)
        assert tree_order(conn) == [grandpa, grandma, mum, kid]
