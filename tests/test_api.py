"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from api import create_app
from config import Settings


@pytest.fixture
def client(tmp_path):
    app = create_app(Settings(database_path=tmp_path / "api.db"))
    with TestClient(app) as client:
        yield client


def add(client, first_name, last_name="Doe", **fields) -> int:
    response = client.post("/members", json={"firstName": first_name, "lastName": last_name, **fields})
    assert response.status_code == 201
    return response.json()["id"]


def relate(client, source, target, code):
    return client.post(
        "/relations",
        json={"fromMemberId": source, "toMemberId": target, "relationCode": code},
    )


@pytest.fixture
def family(client):
    """Alice (F) married to Bob (M); Bob is Carol's father."""
    alice = add(client, "Alice", gender="Female", dob="1950-02-01")
    bob = add(client, "Bob", gender="Male", dob="1948-07-12")
    carol = add(client, "Carol", gender="Female", dob="1975-03-03")
    assert relate(client, alice, bob, "SPOUSE").status_code == 201
    assert relate(client, bob, carol, "FATHER").status_code == 201
    return alice, bob, carol


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


# ============================================================================
# Members
# ============================================================================

class TestMembers:

    def test_create_and_get(self, client):
        member_id = add(client, "Ann", "Lee", gender="f", nativePlace="Leeds")
        data = client.get(f"/members/{member_id}").json()
        assert data["firstName"] == "Ann"
        assert data["gender"] == "Female"
        assert data["nativePlace"] == "Leeds"

    def test_missing_name_is_rejected(self, client):
        response = client.post("/members", json={"firstName": "Ann"})
        assert response.status_code == 422

    def test_bad_date_is_rejected(self, client):
        response = client.post(
            "/members", json={"firstName": "Ann", "lastName": "Lee", "dob": "not a date"}
        )
        assert response.status_code == 422

    def test_datetime_is_truncated_to_date(self, client):
        member_id = add(client, "Ann", dob="1990-04-05T00:00:00.000Z")
        assert client.get(f"/members/{member_id}").json()["dob"] == "1990-04-05"

    def test_update(self, client):
        member_id = add(client, "Ann")
        response = client.put(f"/members/{member_id}", json={"firstName": "Anne", "lastName": "Doe"})
        assert response.status_code == 200
        assert response.json()["firstName"] == "Anne"

    def test_unknown_member(self, client):
        assert client.get("/members/999").status_code == 404
        assert client.delete("/members/999").status_code == 404
        assert client.get("/members/999/family").status_code == 404

    def test_list_in_tree_order_with_family(self, client, family):
        alice, bob, carol = family
        body = client.get("/members", params={"limit": 2}).json()
        assert body["meta"] == {"total": 3, "page": 1, "limit": 2, "totalPages": 2}
        # Bob is older, so his root comes first and Carol follows him.
        assert [m["id"] for m in body["data"]] == [bob, carol]
        assert [p["id"] for p in body["data"][1]["parents"]] == [bob, alice]

    def test_search(self, client, family):
        body = client.get("/members", params={"search": "car"}).json()
        assert [m["firstName"] for m in body["data"]] == ["Carol"]

    def test_invalid_paging(self, client):
        assert client.get("/members", params={"page": 0}).status_code == 422

    def test_family(self, client, family):
        alice, bob, carol = family
        body = client.get(f"/members/{alice}/family").json()
        assert [s["id"] for s in body["spouses"]] == [bob]
        assert [c["id"] for c in body["children"]] == [carol]
        assert body["parents"] == []

    def test_delete_removes_edges(self, client, family):
        alice, bob, carol = family
        assert client.delete(f"/members/{bob}").status_code == 200
        assert client.get("/relations", params={"memberId": alice}).json() == []
        assert client.get(f"/members/{carol}/family").json()["parents"] == []


# ============================================================================
# Relationships
# ============================================================================

class TestRelationships:

    def test_create_returns_primary_edge(self, client):
        a, b = add(client, "A"), add(client, "B")
        body = relate(client, a, b, "FATHER").json()
        assert (body["fromMemberId"], body["toMemberId"], body["relationCode"]) == (a, b, "FATHER")

    def test_mirror_is_listed_for_the_other_member(self, client, family):
        _, bob, carol = family
        edges = client.get("/relations", params={"memberId": carol}).json()
        assert [(e["toMember"]["id"], e["relation"]["code"]) for e in edges] == [(bob, "CHILD")]

    def test_member_id_required(self, client):
        assert client.get("/relations").status_code == 400

    def test_self_edge(self, client):
        a = add(client, "A")
        assert relate(client, a, a, "SPOUSE").status_code == 400

    def test_unknown_code_or_member(self, client):
        a, b = add(client, "A"), add(client, "B")
        assert relate(client, a, b, "COUSIN").status_code == 404
        assert relate(client, a, 999, "SPOUSE").status_code == 404

    def test_delete_removes_mirror(self, client, family):
        alice, bob, _ = family
        edge_id = client.get("/relations", params={"memberId": alice}).json()[0]["id"]
        assert client.delete(f"/relations/{edge_id}").status_code == 200
        assert client.get("/relations", params={"memberId": bob}).json()[0]["relation"]["code"] == "FATHER"
        assert client.delete(f"/relations/{edge_id}").status_code == 404


class TestRelationMasters:

    def test_seeded(self, client):
        codes = [m["code"] for m in client.get("/relations/masters").json()]
        assert codes == ["SPOUSE", "FATHER", "MOTHER", "CHILD"]

    def test_create(self, client):
        response = client.post(
            "/relations/masters", json={"code": "sibling", "label": "Sibling", "isBidirectional": True}
        )
        assert response.status_code == 201
        assert response.json()["code"] == "SIBLING"

    def test_duplicate(self, client):
        response = client.post("/relations/masters", json={"code": "SPOUSE", "label": "Partner"})
        assert response.status_code == 400

    def test_unknown(self, client):
        body = {"code": "X", "label": "X"}
        assert client.put("/relations/masters/999", json=body).status_code == 404
        assert client.delete("/relations/masters/999").status_code == 404


# ============================================================================
# Tree
# ============================================================================

class TestTree:

    def test_tree_data(self, client, family):
        body = client.get("/tree").json()
        assert len(body["nodes"]) == 3
        assert {e["label"] for e in body["edges"]} == {"Husband", "Wife", "Father", "Son"}

    def test_layout(self, client, family):
        alice, bob, carol = family
        body = client.get("/tree/layout").json()
        by_id = {n["id"]: n for n in body["nodes"]}
        couple = by_id[f"couple-{alice}-{bob}"]
        kid = by_id[str(carol)]
        assert couple["type"] == "couple"
        assert kid["position"]["y"] > couple["position"]["y"]
        assert [e["id"] for e in body["edges"]] == [f"e-couple-{alice}-{bob}-{carol}"]

    def test_layout_left_to_right(self, client, family):
        alice, bob, carol = family
        body = client.get("/tree/layout", params={"direction": "LR"}).json()
        by_id = {n["id"]: n for n in body["nodes"]}
        assert by_id[str(carol)]["position"]["x"] > by_id[f"couple-{alice}-{bob}"]["position"]["x"]

    def test_bad_direction(self, client):
        assert client.get("/tree/layout", params={"direction": "RL"}).status_code == 422

    def test_validate(self, client, family):
        body = client.get("/tree/validate").json()
        assert body == {
            "warnings": [],
            "relationMasters": ["CHILD: inverse code PARENT is not defined"],
        }


def test_dashboard(client, family):
    body = client.get("/dashboard").json()
    assert body["totalMembers"] == 3
    assert body["totalRelationships"] == 4
    assert body["totalFamilies"] == 1
    assert [m["firstName"] for m in body["recentMembers"]][0] == "Carol"


def test_unknown_layout_engine_fails_at_startup(tmp_path):
    with pytest.raises(ValueError):
        create_app(Settings(database_path=tmp_path / "api.db", layout_engine="neato"))
    assert not (tmp_path / "api.db").exists()
