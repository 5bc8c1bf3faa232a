from __future__ import annotations

import pytest

from conftest import register_user


@pytest.fixture
def campaign_id(client, business):
    r = client.post(
        "/api/campaigns",
        headers=business["headers"],
        json={"title": "Campus Crew", "description": "Multi-athlete launch"},
    )
    return r.json()["campaign"]["id"]


def _payload(campaign_id, athlete_ids, **extra):
    return {"campaign_id": campaign_id, "type": "standard", "athlete_ids": athlete_ids, **extra}


def test_bundle_types_are_public(client):
    r = client.get("/api/bundle/types")
    assert r.status_code == 200
    ids = [t["id"] for t in r.json()["types"]]
    assert ids == ["standard", "premium", "enterprise", "custom"]


def test_create_bundle_writes_everything_and_notifies(client, business, athlete, campaign_id, table):
    r = client.post("/api/bundle/create", headers=business["headers"], json=_payload(campaign_id, [athlete["id"], "ath-2"]))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["replayed"] is False
    assert body["athlete_count"] == 2
    bundle = body["bundle"]
    assert bundle["name"] == "Standard Package"
    assert bundle["details"]["timeline"] == "30 days from acceptance"

    members = [it for it in table.by_prefix(f"BUNDLE#{bundle['id']}") if it["sk"].startswith("MEMBER#")]
    assert {m["athleteId"] for m in members} == {athlete["id"], "ath-2"}
    assert all(m["status"] == "pending" for m in members)

    stored_campaign = table.get_item(key={"pk": f"CAMPAIGN#{campaign_id}", "sk": "META"})
    assert stored_campaign["bundleId"] == bundle["id"]
    # One transaction for bundle, members, marker and campaign reference.
    assert len(table.transactions) >= 1

    notes = client.get("/api/notifications", headers=athlete["headers"]).json()["data"]
    assert notes[0]["type"] == "bundle_invite"
    assert notes[0]["referenceId"] == bundle["id"]


def test_replay_returns_the_first_bundle(client, business, athlete, campaign_id, table):
    payload = _payload(campaign_id, [athlete["id"], "ath-2"])
    first = client.post("/api/bundle/create", headers=business["headers"], json=payload)
    # Same campaign, type and athlete set in a different order.
    again = client.post(
        "/api/bundle/create",
        headers=business["headers"],
        json=_payload(campaign_id, ["ath-2", athlete["id"]]),
    )
    assert again.status_code == 200
    assert again.json()["replayed"] is True
    assert again.json()["bundle"]["id"] == first.json()["bundle"]["id"]
    assert len([it for it in table.by_prefix("BUNDLE#") if it["sk"] == "META"]) == 1

    # An explicit Idempotency-Key scopes replays to that key.
    keyed = {**business["headers"], "Idempotency-Key": "launch-123"}
    a = client.post("/api/bundle/create", headers=keyed, json=payload)
    b = client.post("/api/bundle/create", headers=keyed, json=payload)
    assert a.status_code == 201
    assert b.status_code == 200
    assert a.json()["bundle"]["id"] == b.json()["bundle"]["id"] != first.json()["bundle"]["id"]


@pytest.mark.parametrize(
    "athlete_ids,code",
    [
        ([], "athletes_required"),
        (["a", ""], "athletes_required"),
        (["a", "a"], "athletes_duplicate"),
        ([f"a{i}" for i in range(51)], "athletes_limit"),
    ],
)
def test_athlete_list_validation(client, business, campaign_id, athlete_ids, code):
    r = client.post("/api/bundle/create", headers=business["headers"], json=_payload(campaign_id, athlete_ids))
    assert r.status_code == 400
    assert r.json()["extensions"]["code"] == code


def test_fifty_athletes_is_allowed(client, business, campaign_id):
    r = client.post(
        "/api/bundle/create",
        headers=business["headers"],
        json=_payload(campaign_id, [f"a{i}" for i in range(50)]),
    )
    assert r.status_code == 201
    assert r.json()["athlete_count"] == 50


def test_custom_bundle_requires_details(client, business, campaign_id):
    r = client.post(
        "/api/bundle/create",
        headers=business["headers"],
        json=_payload(campaign_id, ["a1"], type="custom"),
    )
    assert r.status_code == 400
    assert r.json()["extensions"]["code"] == "custom_details_required"

    r = client.post(
        "/api/bundle/create",
        headers=business["headers"],
        json=_payload(campaign_id, ["a1"], type="custom", custom_details={"deliverables": "1 reel"}),
    )
    assert r.status_code == 201
    assert r.json()["bundle"]["name"] == "Custom Bundle"
    assert r.json()["bundle"]["details"] == {"deliverables": "1 reel"}


def test_bundle_requires_campaign_ownership(client, business, campaign_id):
    rival = register_user(client, role="business", email="rival@brand.io")
    client.put("/api/profile/business", headers=rival["headers"], json={"businessName": "Rival", "industry": "Apparel"})

    r = client.post("/api/bundle/create", headers=rival["headers"], json=_payload(campaign_id, ["a1"]))
    assert r.status_code == 403
    assert r.json()["extensions"]["code"] == "not_campaign_owner"

    r = client.post("/api/bundle/create", headers=business["headers"], json=_payload("cmp_nope", ["a1"]))
    assert r.status_code == 404


def _second_business(client):
    rival = register_user(client, role="business", email="rival@brand.io")
    client.put("/api/profile/business", headers=rival["headers"], json={"businessName": "Rival", "industry": "Apparel"})
    r = client.post("/api/campaigns", headers=rival["headers"], json={"title": "Rival Drop", "description": "Spring"})
    return rival, r.json()["campaign"]["id"]


def test_idempotency_key_is_scoped_to_business_and_campaign(client, business, campaign_id, table):
    rival, rival_campaign_id = _second_business(client)

    a = client.post(
        "/api/bundle/create",
        headers={**business["headers"], "Idempotency-Key": "k1"},
        json=_payload(campaign_id, ["x1"]),
    )
    b = client.post(
        "/api/bundle/create",
        headers={**rival["headers"], "Idempotency-Key": "k1"},
        json=_payload(rival_campaign_id, ["x1"]),
    )
    assert a.status_code == 201
    assert b.status_code == 201, b.text
    assert b.json()["replayed"] is False
    assert b.json()["bundle"]["businessId"] == rival["id"]
    assert b.json()["bundle"]["campaignId"] == rival_campaign_id
    assert b.json()["bundle"]["id"] != a.json()["bundle"]["id"]

    stored = table.get_item(key={"pk": f"CAMPAIGN#{rival_campaign_id}", "sk": "META"})
    assert stored["bundleId"] == b.json()["bundle"]["id"]


def test_marker_pointing_at_foreign_bundle_is_refused(client, business, campaign_id, table):
    rival, rival_campaign_id = _second_business(client)
    theirs = client.post(
        "/api/bundle/create",
        headers={**rival["headers"], "Idempotency-Key": "k2"},
        json=_payload(rival_campaign_id, ["x1"]),
    ).json()["bundle"]
    table.put_item(
        item={"pk": f"IDEMPOTENCY#bundle#{business['id']}#{campaign_id}#k2", "sk": "v1", "bundleId": theirs["id"]}
    )

    r = client.post(
        "/api/bundle/create",
        headers={**business["headers"], "Idempotency-Key": "k2"},
        json=_payload(campaign_id, ["x1"]),
    )
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "idempotency_key_reused"
    assert "bundleId" not in table.get_item(key={"pk": f"CAMPAIGN#{campaign_id}", "sk": "META"})


def test_failed_transaction_leaves_nothing_behind(client, business, campaign_id, table):
    from contested.modules.bundles.presets import default_idempotency_key

    # A stale marker whose bundle is gone makes the marker put fail.
    key = default_idempotency_key(campaign_id=campaign_id, bundle_type="standard", athlete_ids=["a1", "a2"])
    table.put_item(
        item={"pk": f"IDEMPOTENCY#bundle#{business['id']}#{campaign_id}#{key}", "sk": "v1", "bundleId": "bdl_gone"}
    )

    r = client.post("/api/bundle/create", headers=business["headers"], json=_payload(campaign_id, ["a1", "a2"]))
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "bundle_conflict"
    assert table.by_prefix("BUNDLE#") == []
    assert "bundleId" not in table.get_item(key={"pk": f"CAMPAIGN#{campaign_id}", "sk": "META"})


def test_get_and_delete_bundle(client, business, athlete, campaign_id, table):
    created = client.post("/api/bundle/create", headers=business["headers"], json=_payload(campaign_id, [athlete["id"]]))
    bundle_id = created.json()["bundle"]["id"]

    r = client.get(f"/api/bundle/{bundle_id}", headers=athlete["headers"])
    assert r.status_code == 200
    assert r.json()["bundle"]["members"][0]["athleteId"] == athlete["id"]

    outsider = register_user(client, role="athlete", email="outsider@athletes.io")
    assert client.get(f"/api/bundle/{bundle_id}", headers=outsider["headers"]).status_code == 403

    r = client.delete(f"/api/bundle/{bundle_id}", headers=business["headers"])
    assert r.status_code == 200
    assert table.by_prefix("BUNDLE#") == []
    assert table.by_prefix("IDEMPOTENCY#") == []
    assert "bundleId" not in table.get_item(key={"pk": f"CAMPAIGN#{campaign_id}", "sk": "META"})

    assert client.get(f"/api/bundle/{bundle_id}", headers=business["headers"]).status_code == 404

    # With the marker gone the same request creates a fresh bundle.
    again = client.post("/api/bundle/create", headers=business["headers"], json=_payload(campaign_id, [athlete["id"]]))
    assert again.status_code == 201
    assert again.json()["bundle"]["id"] != bundle_id
