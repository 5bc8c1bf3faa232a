from __future__ import annotations

import pytest

from conftest import make_staff, register_user

OFFER = {
    "compensationType": "flat_fee",
    "offerAmount": 1500,
    "term": "3 months",
    "usageRights": "Organic social only",
    "deliverables": ["2 posts", "1 story"],
}


@pytest.fixture
def match(client, business, athlete):
    r = client.post(
        "/api/campaigns",
        headers=business["headers"],
        json={"title": "Court Vision", "description": "Hoops content"},
    )
    campaign_id = r.json()["campaign"]["id"]
    r = client.put(
        f"/api/campaigns/{campaign_id}/matches/{athlete['id']}",
        headers=business["headers"],
        json={"score": 0.82, "reason": "Strong local following"},
    )
    assert r.status_code == 200
    return r.json()["match"]


def _accept(client, athlete, match):
    r = client.post(f"/api/matches/{match['id']}/respond", headers=athlete["headers"], json={"response": "accepted"})
    assert r.status_code == 200, r.text
    return r.json()["match"]


def test_matches_are_listed_per_role(client, business, athlete, match, table):
    stored = table.get_item(key={"pk": f"MATCH#{match['id']}", "sk": "META"})
    # Reviewer listings read the shared GSI3 partition; GSI1 is per athlete.
    assert stored["gsi3pk"] == "MATCHES"
    assert stored["gsi1pk"] == f"ATHLETE#{athlete['id']}#MATCHES"

    for who in (athlete, business):
        r = client.get("/api/matches", headers=who["headers"])
        assert r.status_code == 200
        assert [m["id"] for m in r.json()["data"]] == [match["id"]]

    officer = make_staff(role="compliance", email="officer@contested.app")
    r = client.get("/api/matches/", headers=officer["headers"], params={"complianceStatus": "pending"})
    assert r.json()["total"] == 1
    r = client.get("/api/matches", headers=officer["headers"], params={"status": "accepted"})
    assert r.json()["total"] == 0


def test_match_visibility(client, match):
    outsider = register_user(client, role="athlete", email="outsider@athletes.io")
    r = client.get(f"/api/matches/{match['id']}", headers=outsider["headers"])
    assert r.status_code == 403
    assert r.json()["extensions"]["code"] == "not_match_party"

    r = client.get("/api/matches/mt_missing", headers=outsider["headers"])
    assert r.status_code == 404


def test_athlete_responds_once(client, business, athlete, match):
    r = client.post(f"/api/matches/{match['id']}/respond", headers=business["headers"], json={"response": "accepted"})
    assert r.status_code == 403

    r = client.post(f"/api/matches/{match['id']}/respond", headers=athlete["headers"], json={"response": "maybe"})
    assert r.status_code == 422

    updated = _accept(client, athlete, match)
    assert updated["status"] == "accepted"
    assert updated["respondedAt"]

    r = client.post(f"/api/matches/{match['id']}/respond", headers=athlete["headers"], json={"response": "declined"})
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "match_state"

    notes = client.get("/api/notifications", headers=business["headers"]).json()["data"]
    assert [n["type"] for n in notes] == ["match_response"]
    assert notes[0]["referenceId"] == match["id"]


def test_compliance_review_notifies_both_parties(client, business, athlete, match):
    r = client.post(f"/api/matches/{match['id']}/compliance", headers=athlete["headers"], json={"status": "approved"})
    assert r.status_code == 403

    officer = make_staff(role="compliance", email="officer@contested.app")
    r = client.post(
        f"/api/matches/{match['id']}/compliance",
        headers=officer["headers"],
        json={"status": "rejected", "notes": "Missing disclosure"},
    )
    assert r.status_code == 200
    m = r.json()["match"]
    assert m["complianceStatus"] == "rejected"
    assert m["complianceReviewerId"] == officer["id"]
    assert m["complianceNotes"] == "Missing disclosure"

    for who in (athlete, business):
        notes = client.get("/api/notifications", headers=who["headers"]).json()["data"]
        assert notes[0]["type"] == "compliance_review"
        assert "Missing disclosure" in notes[0]["content"]


def test_offer_requires_accepted_match_and_is_unique(client, business, athlete, match):
    url = f"/api/matches/{match['id']}/offers"
    r = client.post(url, headers=business["headers"], json=OFFER)
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "match_state"

    _accept(client, athlete, match)

    r = client.post(url, headers=business["headers"], json={"compensationType": "flat_fee"})
    assert r.status_code == 422

    r = client.post(url, headers=business["headers"], json=OFFER)
    assert r.status_code == 201, r.text
    offer = r.json()["offer"]
    assert offer["status"] == "pending"
    assert offer["athleteId"] == athlete["id"]
    assert offer["expiresAt"]

    r = client.post(url, headers=business["headers"], json=OFFER)
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "offer_exists"

    r = client.get(f"/api/matches/{match['id']}", headers=athlete["headers"])
    assert [o["id"] for o in r.json()["match"]["offers"]] == [offer["id"]]

    notes = client.get("/api/notifications", headers=athlete["headers"]).json()["data"]
    assert notes[0]["type"] == "partnership_offer"
    assert notes[0]["referenceId"] == offer["id"]


def test_offer_counter_and_cancel(client, business, athlete, match):
    _accept(client, athlete, match)
    offer = client.post(f"/api/matches/{match['id']}/offers", headers=business["headers"], json=OFFER).json()["offer"]
    url = f"/api/offers/{offer['id']}"

    r = client.post(f"{url}/respond", headers=athlete["headers"], json={"response": "countered"})
    assert r.status_code == 400
    assert r.json()["extensions"]["code"] == "counter_terms_required"

    r = client.post(
        f"{url}/respond",
        headers=athlete["headers"],
        json={"response": "countered", "counterTerms": {"offerAmount": 2500}},
    )
    assert r.status_code == 200
    assert r.json()["offer"]["status"] == "countered"
    assert r.json()["offer"]["counterTerms"] == {"offerAmount": 2500}

    r = client.post(f"{url}/respond", headers=athlete["headers"], json={"response": "accepted"})
    assert r.status_code == 409

    r = client.post(f"{url}/cancel", headers=athlete["headers"])
    assert r.status_code == 403

    r = client.post(f"{url}/cancel", headers=business["headers"])
    assert r.status_code == 200
    assert r.json()["offer"]["status"] == "canceled"

    r = client.post(f"{url}/cancel", headers=business["headers"])
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "offer_state"


def test_accepted_offer_cannot_be_canceled(client, business, athlete, match):
    _accept(client, athlete, match)
    offer = client.post(f"/api/matches/{match['id']}/offers", headers=business["headers"], json=OFFER).json()["offer"]

    r = client.post(f"/api/offers/{offer['id']}/respond", headers=athlete["headers"], json={"response": "accepted"})
    assert r.json()["offer"]["status"] == "accepted"

    r = client.post(f"/api/offers/{offer['id']}/cancel", headers=business["headers"])
    assert r.status_code == 409

    notes = client.get("/api/notifications", headers=business["headers"]).json()["data"]
    assert {n["type"] for n in notes} == {"match_response", "offer_response"}


def test_offer_listing_and_visibility(client, business, athlete, match):
    _accept(client, athlete, match)
    offer = client.post(f"/api/matches/{match['id']}/offers", headers=business["headers"], json=OFFER).json()["offer"]

    for who in (athlete, business):
        r = client.get("/api/offers", headers=who["headers"])
        assert [o["id"] for o in r.json()["data"]] == [offer["id"]]

    r = client.get("/api/offers", headers=athlete["headers"], params={"status": "accepted"})
    assert r.json()["total"] == 0

    admin = make_staff(role="admin", email="admin@contested.app")
    assert client.get(f"/api/offers/{offer['id']}", headers=admin["headers"]).status_code == 200
    assert client.get("/api/offers", headers=admin["headers"]).json()["total"] == 1

    rival = register_user(client, role="business", email="rival@brand.io")
    r = client.get(f"/api/offers/{offer['id']}", headers=rival["headers"])
    assert r.status_code == 403
