"""API tests for /api/ai-context."""

from forge.app.context import PreviewManifestStore
from forge.app.db.models.team import Team


def test_preferences_default_without_row(client, test_user):
    response = client.get("/api/ai-context/preferences")

    assert response.status_code == 200
    prefs = response.json()["preferences"]
    assert prefs["id"] is None
    assert prefs["userId"] == str(test_user.user_id)
    assert prefs["useOwnPreview"] is True
    assert prefs["useAllSubmissions"] is False
    assert prefs["maxContextItems"] == 100


def test_update_preferences_is_partial(client):
    first = client.put("/api/ai-context/preferences", json={"maxContextItems": 25})
    second = client.put("/api/ai-context/preferences", json={"preferRecent": False})

    assert first.status_code == 200
    assert first.json()["success"] is True
    prefs = second.json()["preferences"]
    assert prefs["id"] is not None
    assert prefs["maxContextItems"] == 25
    assert prefs["preferRecent"] is False
    assert prefs["useCdnContent"] is True


def test_update_preferences_rejects_bad_budget(client):
    for value in (0, 501):
        response = client.put("/api/ai-context/preferences", json={"maxContextItems": value})
        assert response.status_code == 400
        assert response.json()["code"] == "CONTEXT_4001"

    prefs = client.get("/api/ai-context/preferences").json()["preferences"]
    assert prefs["maxContextItems"] == 100


def test_preview_round_trip_bumps_version(client):
    missing = client.get("/api/ai-context/preview/npcs")
    first = client.put("/api/ai-context/preview/npcs", json={"content": [{"id": "guard"}]})
    second = client.put(
        "/api/ai-context/preview/npcs", json={"content": [{"id": "guard"}, {"id": "wizard"}]}
    )
    fetched = client.get("/api/ai-context/preview/npcs")

    assert missing.status_code == 404
    assert missing.json()["code"] == "MANIFEST_4004"
    assert first.json()["manifest"]["version"] == 1
    assert second.json()["manifest"]["version"] == 2
    manifest = fetched.json()["manifest"]
    assert manifest["version"] == 2
    assert manifest["manifestType"] == "npcs"
    assert manifest["content"] == [{"id": "guard"}, {"id": "wizard"}]
    assert manifest["teamId"] is None


def test_team_preview_requires_membership(client, test_session, test_team):
    outsider_team = Team(name="Someone Else")
    test_session.add(outsider_team)
    test_session.commit()

    own_team = client.put(
        "/api/ai-context/preview/items",
        json={"content": [{"id": "sword"}], "teamId": str(test_team.team_id)},
    )
    other_team = client.get(
        "/api/ai-context/preview/items", params={"teamId": str(outsider_team.team_id)}
    )

    assert own_team.status_code == 200
    assert own_team.json()["manifest"]["teamId"] == str(test_team.team_id)
    assert own_team.json()["manifest"]["userId"] is None
    assert other_team.status_code == 403
    assert other_team.json()["code"] == "TEAM_4003"


def test_build_merges_own_and_global(client, test_session, test_user):
    store = PreviewManifestStore(test_session)
    store.upsert(test_user.user_id, None, "npcs", [{"id": "guard", "name": "Guard"}])
    store.upsert(
        None, None, "npcs", [{"id": "guard", "name": "Old Guard"}, {"id": "wizard", "name": "Wizard"}]
    )
    test_session.commit()
    client.put("/api/ai-context/preferences", json={"preferRecent": False})

    response = client.post("/api/ai-context/build", json={})

    assert response.status_code == 200
    data = response.json()
    assert data["totalItems"] == 2
    assert [(c["sourceTag"], c["type"]) for c in data["context"]] == [
        ("ownPreview", "npc"),
        ("cdn", "npc"),
    ]
    assert data["context"][0]["data"] == [{"id": "guard", "name": "Guard"}]
    assert data["sources"]["ownPreview"] == 1
    assert data["sources"]["cdn"] == 1
    assert sum(data["sources"].values()) == data["totalItems"]
    assert data["metadata"] == {
        "preferRecent": False,
        "maxContextItems": 100,
        "failedSources": [],
    }


def test_build_filters_types(client, test_session, test_user):
    store = PreviewManifestStore(test_session)
    store.upsert(test_user.user_id, None, "npcs", [{"id": "guard"}])
    store.upsert(test_user.user_id, None, "quests", [{"id": "rats"}])
    test_session.commit()

    response = client.post("/api/ai-context/build", json={"types": ["quest"]})

    assert response.status_code == 200
    assert [c["type"] for c in response.json()["context"]] == ["quest"]


def test_build_rejects_unknown_type(client):
    response = client.post("/api/ai-context/build", json={"types": ["spells"]})

    assert response.status_code == 400
    assert response.json()["code"] == "EMBED_3004"


def test_build_rejects_foreign_team(client, test_session):
    team = Team(name="Closed Guild")
    test_session.add(team)
    test_session.commit()

    response = client.post("/api/ai-context/build", json={"teamId": str(team.team_id)})

    assert response.status_code == 403
    assert response.json()["code"] == "TEAM_4003"


def test_build_with_query_includes_vector_hits(client):
    client.post(
        "/api/embeddings/embed",
        json={
            "contentType": "lore",
            "contentId": "kingdom",
            "data": {"title": "Old Kingdom", "content": "Fell to dragons"},
        },
    )

    response = client.post(
        "/api/ai-context/build",
        json={"query": "Old Kingdom\n\nFell to dragons", "threshold": 0.5},
    )

    data = response.json()
    assert response.status_code == 200
    assert data["sources"]["vectorSearch"] == 1
    [item] = data["context"]
    assert item["sourceTag"] == "vectorSearch"
    assert item["similarityScore"] > 0.99
