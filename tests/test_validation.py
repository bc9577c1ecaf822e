"""Tests for family tree validation."""

import networkx as nx

from graph import build_graph
from relations import create_relationship
from validation import validate_tree


def tree(people: dict, edges: list) -> nx.MultiDiGraph:
    G = nx.MultiDiGraph()
    for node, (name, dob) in people.items():
        G.add_node(node, person_name=name, dob=dob)
    for u, v, code in edges:
        G.add_edge(u, v, relationship_type=code)
    return G


class TestValidateTree:

    def test_clean_tree(self):
        G = tree(
            {1: ("Ann", "1900-01-01"), 2: ("Ben", "1930-06-01")},
            [(1, 2, "MOTHER"), (2, 1, "CHILD")],
        )
        assert validate_tree(G) == []

    def test_child_born_before_parent(self):
        G = tree({1: ("Ann", "1950-01-01"), 2: ("Ben", "1930-01-01")}, [(1, 2, "FATHER")])
        assert validate_tree(G) == ["Impossible: Ben born before parent Ann"]

    def test_very_young_parent(self):
        G = tree({1: ("Ann", "1900-01-01"), 2: ("Ben", "1910-01-01")}, [(1, 2, "MOTHER")])
        assert validate_tree(G) == ["Suspicious: Ann was less than 12 years old when Ben was born"]

    def test_missing_dates_are_not_checked(self):
        G = tree({1: ("Ann", None), 2: ("Ben", "1910-01-01")}, [(1, 2, "MOTHER")])
        assert validate_tree(G) == []

    def test_cycle(self):
        G = tree({1: ("Ann", None), 2: ("Ben", None)}, [(1, 2, "FATHER"), (2, 1, "FATHER")])
        warnings = validate_tree(G)
        assert len(warnings) == 1
        assert warnings[0].startswith("Cycle detected in parent-child relationships")

    def test_child_and_spouse_edges_are_not_lineage(self):
        """Mirrored CHILD edges and SPOUSE pairs never form a cycle."""
        G = tree(
            {1: ("Ann", None), 2: ("Ben", None), 3: ("Cid", None)},
            [(1, 3, "FATHER"), (3, 1, "CHILD"), (1, 2, "SPOUSE"), (2, 1, "SPOUSE")],
        )
        assert validate_tree(G) == []

    def test_more_than_two_parents(self):
        people = {i: (f"P{i}", None) for i in range(1, 5)}
        G = tree(people, [(1, 4, "FATHER"), (2, 4, "MOTHER"), (3, 4, "FATHER")])
        assert validate_tree(G) == ["Suspicious: P4 has 3 parents"]


def test_validate_stored_tree(conn, add_member):
    dad = add_member("Dad", dob="1980-01-01")
    kid = add_member("Kid", dob="1975-01-01")
    create_relationship(conn, dad, kid, "FATHER")
    assert validate_tree(build_graph(conn)) == ["Impossible: Kid Doe born before parent Dad Doe"]


def test_spouse_and_parent_conflict():
    G = tree(
        {1: ("Ann", None), 2: ("Ben", None)},
        [(1, 2, "SPOUSE"), (2, 1, "SPOUSE"), (1, 2, "MOTHER"), (2, 1, "CHILD")],
    )
    assert validate_tree(G) == [
        "Conflict: Ann and Ben are recorded as spouses and as parent and child"
    ]
