# tests/test_routes.py
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from services.api.app.api.v1 import routes_vault
from services.api.app.api.v1.deps import get_collaborator, get_session_store
from services.api.app.core.config import settings
from services.api.app.core.sessions import SessionStore
from services.api.app.core.vault import get_project_vault
from services.api.app.main import app

PLAN = {
    "projectName": "Harbor Story",
    "shots": [
        {"id": "intro_01", "pitch": "fog"},
        {"id": "s1_01", "pitch": "dock walk", "selectedAssetIds": ["a1"]},
    ],
    "assets": [{"id": "a1", "name": "Mara", "description": "red coat", "type": "character"}],
}
BASE = "/api/v1/projects/harbor-story"


@pytest.fixture
def client(collaborator, project_vault):
    store = SessionStore()
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_collaborator] = lambda: collaborator
    app.dependency_overrides[get_project_vault] = lambda: project_vault
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def project(client):
    response = client.post("/api/v1/projects", json=PLAN)
    assert response.status_code == 201
    return response.json()


def test_create_project(client, project):
    assert project["slug"] == "harbor-story"
    assert [s["status"] for s in project["shots"]] == ["PENDING_JSON", "PENDING_JSON"]
    assert client.post("/api/v1/projects", json=PLAN).status_code == 409
    assert client.get("/api/v1/projects").json() == {"projects": ["harbor-story"]}


def test_duplicate_shot_ids_are_rejected(client):
    plan = {"projectName": "Dupes", "shots": [{"id": "s1_01"}, {"id": "s1_01"}]}
    assert client.post("/api/v1/projects", json=plan).status_code == 422


def test_shot_pipeline_over_http(client, project, collaborator):
    r = client.post(f"{BASE}/shots/s1_01/breakdown")
    assert r.status_code == 200 and r.json()["status"] == "PENDING_KEYFRAME_PROMPT"
    assert client.post(f"{BASE}/shots/s1_01/keyframe-prompt").json()["status"] == "NEEDS_KEYFRAME_GENERATION"
    assert client.post(f"{BASE}/shots/s1_01/still").json()["status"] == "NEEDS_REVIEW"

    r = client.post(f"{BASE}/shots/s1_01/approve")
    assert r.json()["isApproved"] is True

    r = client.post(f"{BASE}/shots/s1_01/video", json={"useKeyframe": True})
    assert r.json()["veoStatus"] == "COMPLETED"
    assert r.json()["veoUseKeyframeAsReference"] is True

    cost = client.get(f"{BASE}/cost").json()
    assert cost["apiCallSummary"]["pro"] == 1
    assert cost["apiCallSummary"]["image"] == 1
    assert cost["estimatedCost"] > 0
    assert collaborator.seen_assets["s1_01"] == ["a1"]


def test_error_mapping(client, project, collaborator):
    r = client.post("/api/v1/projects/ghost/shots/s1_01/breakdown")
    assert r.status_code == 404 and r.json()["detail"]["error"] == "project_not_open"

    r = client.post(f"{BASE}/shots/nope/approve")
    assert r.status_code == 404 and r.json()["detail"]["error"] == "shot_not_found"

    r = client.post(f"{BASE}/shots/s1_01/video")
    assert r.status_code == 409 and r.json()["detail"]["error"] == "invalid_transition"

    r = client.delete(f"{BASE}/shots/s1_01/references/3")
    assert r.status_code == 404 and r.json()["detail"]["error"] == "reference_not_found"

    collaborator.fail.add("breakdown")
    r = client.post(f"{BASE}/shots/s1_01/breakdown")
    assert r.status_code == 502 and r.json()["detail"]["error"] == "generation_failed"
    assert client.get(f"{BASE}/shots/s1_01").json()["status"] == "GENERATION_FAILED"


def test_approved_shot_is_locked(client, project):
    client.post(f"{BASE}/shots/s1_01/breakdown")
    client.post(f"{BASE}/shots/s1_01/still")
    client.post(f"{BASE}/shots/s1_01/approve")

    r = client.post(f"{BASE}/shots/s1_01/assets/a2")
    assert r.status_code == 409
    r = client.post(f"{BASE}/shots/s1_01/references", json={"base64": "eA=="})
    assert r.status_code == 409

    assert client.post(f"{BASE}/shots/s1_01/unapprove").json()["status"] == "NEEDS_REVIEW"
    r = client.post(f"{BASE}/shots/s1_01/assets/a2")
    assert r.json()["selectedAssetIds"] == ["a1", "a2"]


def test_groups_batch_and_extend(client, project):
    groups = client.get(f"{BASE}/groups").json()["groups"]
    assert groups == [
        {"group": "intro", "shotIds": ["intro_01"]},
        {"group": "s1", "shotIds": ["s1_01"]},
    ]

    assert client.post(f"{BASE}/breakdowns").json() == {"completed": ["intro_01", "s1_01"]}
    assert client.post(f"{BASE}/stills").json() == {"completed": ["intro_01", "s1_01"]}

    r = client.post(f"{BASE}/shots/s1_01/extend", json={"directive": "keep walking"})
    assert r.status_code == 201 and r.json()["id"] == "s1_01_ext1"

    stop = client.post(f"{BASE}/stop").json()
    assert stop == {"stopRequested": True, "busy": False}
    logs = client.get(f"{BASE}/logs").json()["logEntries"]
    assert logs[-1]["message"].startswith("Stop requested")


def test_manual_edits(client, project):
    r = client.patch(f"{BASE}/shots/intro_01", json={"pitch": "thicker fog", "sceneName": "Harbor"})
    assert r.json()["pitch"] == "thicker fog" and r.json()["sceneName"] == "Harbor"

    r = client.put(f"{BASE}/shots/intro_01/video-reference", json={"referenceUrl": "https://videos.example/ref.mp4"})
    assert r.json()["veoReferenceUrl"] == "https://videos.example/ref.mp4"

    r = client.post(f"{BASE}/assets", json={"id": "a2", "name": "Dock", "type": "location"})
    assert r.status_code == 201
    r = client.put(f"{BASE}/assets/a2/image", json={"base64": "eA==", "mimeType": "image/jpeg"})
    assert r.json()["image"]["mimeType"] == "image/jpeg"
    assert client.put(f"{BASE}/assets/zz/image", json={"base64": "eA=="}).status_code == 404
    r = client.delete(f"{BASE}/assets/a2")
    assert [a["id"] for a in r.json()["assets"]] == ["a1"]


def test_sync_list_and_install(client, project, bucket):
    client.post(f"{BASE}/shots/s1_01/breakdown")
    r = client.post(f"{BASE}/sync")
    assert r.status_code == 200
    assert r.json()["stateUrl"].endswith("projects/harbor-story/state.json")
    assert bucket.json("registry/world_graph.json")["projects"] == ["harbor-story"]

    assert client.get("/api/v1/vault/projects").json() == {"projects": ["harbor-story"]}

    assert client.post("/api/v1/vault/projects/harbor-story/install").status_code == 409
    r = client.post("/api/v1/vault/projects/harbor-story/install", json={"replace": True})
    assert r.json() == {"slug": "harbor-story", "shotCount": 2}
    assert client.get(f"{BASE}/shots/s1_01").json()["status"] == "PENDING_KEYFRAME_PROMPT"

    r = client.post("/api/v1/vault/projects/ghost/install")
    assert r.status_code == 404 and r.json()["detail"]["error"] == "project_not_found"


def test_vault_errors_map_to_bad_gateway(client, project, bucket):
    bucket.fail_status = 500
    r = client.post(f"{BASE}/sync")
    assert r.status_code == 502 and r.json()["detail"]["error"] == "vault_transport"


def test_corrupt_vault_state_maps_to_bad_gateway(client, bucket):
    bucket.objects["projects/broken/state.json"] = b"{not json"
    r = client.post("/api/v1/vault/projects/broken/install")
    assert r.status_code == 502 and r.json()["detail"]["error"] == "vault_transport"


def test_library_asset_upload(client, bucket):
    body = {"assetType": "prop", "name": "Brass Lamp", "image": {"base64": "iVBORw0KGgo="}, "metadata": {"era": "1920"}}
    r = client.post("/api/v1/vault/library-assets", json=body)
    assert r.status_code == 201
    assert r.json()["url"].endswith("library/assets/prop/brass_lamp/visual_id.png")
    assert bucket.json("library/assets/prop/brass_lamp/artifact.json")["era"] == "1920"


def test_relay_task_is_queued(client, monkeypatch):
    queued = []

    def fake_delay(*args):
        queued.append(args)
        return SimpleNamespace(id="task-123")

    monkeypatch.setattr(routes_vault, "relay_generated_video", SimpleNamespace(delay=fake_delay))
    body = {"remoteUrl": "https://videos.example/s1_01.mp4", "slug": "harbor-story", "unitId": "s1_01"}
    r = client.post("/api/v1/vault/relay/task", json=body)
    assert r.json() == {"task_id": "task-123"}
    assert queued == [("https://videos.example/s1_01.mp4", "harbor-story", "s1_01")]


def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "SERVICE_API_KEY", "secret")
    assert client.get("/api/v1/projects").status_code == 401
    assert client.get("/api/v1/projects", headers={"X-API-Key": "secret"}).status_code == 200
