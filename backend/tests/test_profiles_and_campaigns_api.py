from __future__ import annotations

from conftest import make_staff, register_user


def _create_campaign(client, business, **overrides):
    payload = {
        "title": "Spring Hydration Push",
        "description": "Game-day content with student athletes",
        "targetSports": ["Basketball"],
        "budget": "$5,000",
        **overrides,
    }
    r = client.post("/api/campaigns", headers=business["headers"], json=payload)
    assert r.status_code == 201, r.text
    return r.json()["campaign"]


def test_own_profile_with_and_without_trailing_slash(client, athlete):
    for path in ("/api/profile", "/api/profile/"):
        r = client.get(path, headers=athlete["headers"])
        assert r.status_code == 200
        body = r.json()
        assert body["role"] == "athlete"
        assert body["profileComplete"] is True
        assert body["profile"]["sport"] == "Basketball"
        assert "pk" not in body["profile"]


def test_profile_updates_are_role_gated_and_validated(client, athlete, table):
    r = client.put("/api/profile/business", headers=athlete["headers"], json={"businessName": "Nope"})
    assert r.status_code == 403
    assert r.json()["extensions"]["code"] == "role_mismatch"

    r = client.put("/api/profile/athlete", headers=athlete["headers"], json={"followerCount": -1})
    assert r.status_code == 422

    r = client.put("/api/profile/athlete", headers=athlete["headers"], json={"school": "State U"})
    assert r.status_code == 200
    profile = r.json()["profile"]
    # Partial updates keep earlier fields.
    assert profile["school"] == "State U"
    assert profile["sport"] == "Basketball"

    stored = table.get_item(key={"pk": f"ATHLETE#{athlete['id']}", "sk": "PROFILE"})
    assert stored["gsi1pk"] == "ATHLETES"
    assert stored["gsi1sk"] == f"SPORT#basketball#{athlete['id']}"


def test_public_profile_lookup(client, athlete, business):
    r = client.get(f"/api/profile/athletes/{athlete['id']}", headers=business["headers"])
    assert r.status_code == 200
    assert r.json()["profile"]["name"] == "Jordan Reyes"

    r = client.get(f"/api/profile/businesses/{business['id']}", headers=athlete["headers"])
    assert r.json()["profile"]["businessName"] == "Peak Hydration"

    r = client.get("/api/profile/athletes/nobody", headers=business["headers"])
    assert r.status_code == 404
    assert r.json()["extensions"]["code"] == "profile_not_found"


def test_business_profile_is_created_on_first_protected_access(client, table):
    from contested.repositories import sessions_repo, users_repo

    account = users_repo.create_user(email="fresh@brand.io", role="business", first_name="Fresh", last_name="Owner")
    token, _ = sessions_repo.create_session(user_id=account["id"], role="business")
    headers = {"Authorization": f"Bearer {token}"}

    r = client.get("/api/campaigns", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"data": [], "total": 0}

    profile = table.get_item(key={"pk": f"BUSINESS#{account['id']}", "sk": "PROFILE"})
    assert profile["autoCreated"] is True
    assert profile["name"] == "Fresh Owner"

    r = client.post("/api/profile/business/ensure", headers=headers)
    assert r.json()["created"] is False


def test_ensure_business_profile_creates_once(client, table):
    from contested.repositories import sessions_repo, users_repo

    account = users_repo.create_user(email="ensure@brand.io", role="business")
    token, _ = sessions_repo.create_session(user_id=account["id"], role="business")
    headers = {"Authorization": f"Bearer {token}"}

    first = client.post("/api/profile/business/ensure", headers=headers)
    assert first.status_code == 200
    assert first.json()["created"] is True
    assert first.json()["profile"]["name"] == "My Business"
    assert first.json()["profile"]["profileComplete"] is True

    second = client.post("/api/profile/business/ensure", headers=headers)
    assert second.json()["created"] is False


def test_incomplete_business_profile_blocks_campaigns(client):
    u = register_user(client, role="business", email="halfway@brand.io")
    r = client.get("/api/campaigns", headers=u["headers"])
    assert r.status_code == 403
    ext = r.json()["extensions"]
    assert ext["error"] == "profile_required"
    assert ext["redirectTo"] == "/onboarding/business"


def test_campaign_crud(client, business, athlete):
    campaign = _create_campaign(client, business)
    assert campaign["status"] == "draft"
    assert campaign["_id"] == campaign["id"]
    assert campaign["targetAudience"]["ageRange"] == [18, 34]
    assert campaign["targetAudience"]["gender"] == "all"

    r = client.get("/api/campaigns/", headers=business["headers"])
    assert r.json()["total"] == 1

    r = client.get("/api/campaigns", headers=athlete["headers"])
    assert r.status_code == 403

    r = client.patch(
        f"/api/campaigns/{campaign['id']}",
        headers=business["headers"],
        json={"title": "Summer Hydration Push"},
    )
    assert r.status_code == 200
    assert r.json()["campaign"]["title"] == "Summer Hydration Push"

    r = client.post("/api/campaigns", headers=business["headers"], json={"title": "No description"})
    assert r.status_code == 422

    r = client.delete(f"/api/campaigns/{campaign['id']}", headers=business["headers"])
    assert r.status_code == 200
    r = client.get(f"/api/campaigns/{campaign['id']}", headers=business["headers"])
    assert r.status_code == 404
    assert r.json()["extensions"]["code"] == "campaign_not_found"


def test_campaigns_are_private_to_their_business(client, business):
    campaign = _create_campaign(client, business)
    rival = register_user(client, role="business", email="rival@brand.io")
    client.put(
        "/api/profile/business",
        headers=rival["headers"],
        json={"businessName": "Rival Co", "productType": "Snacks"},
    )

    r = client.get(f"/api/campaigns/{campaign['id']}", headers=rival["headers"])
    assert r.status_code == 403
    assert r.json()["extensions"]["code"] == "not_campaign_owner"

    r = client.patch(f"/api/campaigns/{campaign['id']}", headers=rival["headers"], json={"title": "Mine"})
    assert r.status_code == 403

    # Reviewers can read any campaign.
    officer = make_staff(role="compliance", email="officer@contested.app")
    r = client.get(f"/api/campaigns/{campaign['id']}", headers=officer["headers"])
    assert r.status_code == 200


def test_launch_creates_bundle_and_locks_campaign(client, business, athlete):
    campaign = _create_campaign(client, business)
    client.put(
        "/api/campaigns/wizard",
        headers=business["headers"],
        json={"currentStep": 5, "campaignId": campaign["id"], "form": {"title": campaign["title"]}},
    )

    r = client.post(
        f"/api/campaigns/{campaign['id']}/launch",
        headers=business["headers"],
        json={"bundleType": "premium", "selectedAthletes": [athlete["id"]]},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["campaign"]["status"] == "active"
    assert body["campaign"]["launchedAt"]
    assert body["bundle"]["type"] == "premium"
    assert body["bundle"]["athlete_count"] == 1

    # Launching clears the wizard draft that pointed at this campaign.
    draft = client.get("/api/campaigns/wizard", headers=business["headers"]).json()
    assert draft["saved"] is False

    r = client.get(f"/api/campaigns/{campaign['id']}", headers=business["headers"])
    assert r.json()["campaign"]["bundle"]["members"][0]["athleteId"] == athlete["id"]

    r = client.post(f"/api/campaigns/{campaign['id']}/launch", headers=business["headers"])
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "campaign_already_launched"

    r = client.patch(f"/api/campaigns/{campaign['id']}", headers=business["headers"], json={"title": "Late edit"})
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "campaign_state"

    r = client.delete(f"/api/campaigns/{campaign['id']}", headers=business["headers"])
    assert r.status_code == 409


def test_launch_without_athletes_has_no_bundle(client, business):
    campaign = _create_campaign(client, business)
    r = client.post(f"/api/campaigns/{campaign['id']}/launch", headers=business["headers"])
    assert r.status_code == 200
    assert r.json()["bundle"] is None
    assert r.json()["campaign"]["status"] == "active"


def test_active_campaign_can_be_completed_once(client, business):
    campaign = _create_campaign(client, business)

    r = client.post(f"/api/campaigns/{campaign['id']}/complete", headers=business["headers"])
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "campaign_not_active"

    client.post(f"/api/campaigns/{campaign['id']}/launch", headers=business["headers"])
    r = client.post(f"/api/campaigns/{campaign['id']}/complete", headers=business["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["campaign"]["status"] == "completed"

    r = client.post(f"/api/campaigns/{campaign['id']}/complete", headers=business["headers"])
    assert r.status_code == 409

    r = client.post(f"/api/campaigns/{campaign['id']}/cancel", headers=business["headers"])
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "campaign_not_draft"


def test_only_drafts_can_be_canceled(client, business):
    draft = _create_campaign(client, business)
    client.put(
        "/api/campaigns/wizard",
        headers=business["headers"],
        json={"currentStep": 2, "campaignId": draft["id"], "form": {"title": draft["title"]}},
    )
    r = client.post(f"/api/campaigns/{draft['id']}/cancel", headers=business["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["campaign"]["status"] == "canceled"
    assert client.get("/api/campaigns/wizard", headers=business["headers"]).json()["saved"] is False

    r = client.post(f"/api/campaigns/{draft['id']}/launch", headers=business["headers"])
    assert r.status_code == 409

    active = _create_campaign(client, business)
    client.post(f"/api/campaigns/{active['id']}/launch", headers=business["headers"])
    r = client.post(f"/api/campaigns/{active['id']}/cancel", headers=business["headers"])
    assert r.status_code == 409
    assert r.json()["extensions"]["code"] == "campaign_not_draft"

    widgets = client.get("/api/dashboard", headers=business["headers"]).json()["widgets"]
    assert widgets["campaigns"]["canceled"] == 1
    assert widgets["campaigns"]["active"] == 1


def test_lifecycle_transitions_require_ownership(client, business):
    campaign = _create_campaign(client, business)
    rival = register_user(client, role="business", email="rival@brand.io")
    client.put("/api/profile/business", headers=rival["headers"], json={"businessName": "Rival", "industry": "Apparel"})

    for action in ("cancel", "complete"):
        r = client.post(f"/api/campaigns/{campaign['id']}/{action}", headers=rival["headers"])
        assert r.status_code == 403
        assert r.json()["extensions"]["code"] == "not_campaign_owner"


def test_wizard_draft_roundtrip(client, business):
    r = client.get("/api/campaigns/wizard", headers=business["headers"])
    assert r.status_code == 200
    empty = r.json()
    assert empty["saved"] is False
    assert empty["currentStep"] == 1
    assert empty["form"]["bundleType"] == "standard"

    r = client.put(
        "/api/campaigns/wizard",
        headers=business["headers"],
        json={"currentStep": 3, "form": {"title": "Draft title", "targetSports": ["Soccer"]}},
    )
    assert r.status_code == 200

    saved = client.get("/api/campaigns/wizard", headers=business["headers"]).json()
    assert saved["saved"] is True
    assert saved["currentStep"] == 3
    assert saved["form"]["title"] == "Draft title"
    assert saved["form"]["targetSports"] == ["Soccer"]
    assert saved["form"]["targetAudience"]["gender"] == "all"

    r = client.put("/api/campaigns/wizard", headers=business["headers"], json={"currentStep": 7})
    assert r.status_code == 422

    client.delete("/api/campaigns/wizard", headers=business["headers"])
    assert client.get("/api/campaigns/wizard", headers=business["headers"]).json()["saved"] is False


def test_match_scores_are_saved_per_athlete(client, business, athlete):
    campaign = _create_campaign(client, business)
    url = f"/api/campaigns/{campaign['id']}/matches"

    r = client.put(f"{url}/{athlete['id']}", headers=business["headers"], json={"score": 0.6})
    assert r.status_code == 200
    first = r.json()["match"]
    assert first["status"] == "pending"
    assert first["complianceStatus"] == "pending"

    # Re-scoring the same athlete updates the same match.
    r = client.put(f"{url}/{athlete['id']}", headers=business["headers"], json={"score": 0.9, "reason": "fit"})
    assert r.json()["match"]["id"] == first["id"]
    assert r.json()["match"]["score"] == 0.9

    client.put(f"{url}/other-athlete", headers=business["headers"], json={"score": 0.7})

    r = client.get(url, headers=business["headers"])
    assert [m["score"] for m in r.json()["data"]] == [0.9, 0.7]

    r = client.put(f"{url}/{athlete['id']}", headers=business["headers"], json={"score": 1.5})
    assert r.status_code == 422
