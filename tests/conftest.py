# tests/conftest.py
import json
from typing import Dict, List, Optional
from urllib.parse import unquote

import httpx
import pytest

from providers.llm.base import GenerationFailureError, GenerationResult, GenerationUsage
from providers.storage.gcs_io import VaultClient
from providers.storage.vault_ops import ProjectVault
from schemas.shot import IngredientImage, ProjectAsset, Shot, VeoShotWrapper

BUCKET = "test-bucket"
PNG_B64 = "iVBORw0KGgo="


class FakeCollaborator:
    """按调用记录；fail 里列出的方法名会抛 GenerationFailureError。"""

    def __init__(self, fail: Optional[set] = None):
        self.fail = set(fail or ())
        self.calls: List[str] = []
        self.seen_assets: Dict[str, List[str]] = {}
        self.on_call = None

    def _enter(self, name: str, shot: Shot, assets):
        self.calls.append(f"{name}:{shot.id}")
        self.seen_assets[shot.id] = [a.id for a in assets]
        if self.on_call is not None:
            self.on_call(name, shot)
        if name in self.fail:
            raise GenerationFailureError(f"{name} refused")

    async def generate_breakdown(self, shot, assets, feedback=None):
        self._enter("breakdown", shot, assets)
        doc = {"shot_id": shot.id, "scene": {"context": shot.pitch}, "flags": {"continuity_lock": False}}
        return GenerationResult(
            VeoShotWrapper(unit_type="shot", director_notes=feedback, veo_shot=doc),
            GenerationUsage("pro", 100, 50),
        )

    async def generate_keyframe_prompt(self, shot, assets):
        self._enter("keyframe_prompt", shot, assets)
        return GenerationResult(f"keyframe of {shot.pitch}", GenerationUsage("flash", 10, 5))

    async def generate_still(self, shot, assets):
        self._enter("still", shot, assets)
        return GenerationResult(IngredientImage(base64=PNG_B64), GenerationUsage("image"))

    async def generate_video(self, shot, assets):
        self._enter("video", shot, assets)
        return GenerationResult(f"https://videos.example/{shot.id}.mp4", GenerationUsage("video"))


class FakeBucket:
    """内存版 GCS JSON API，挂在 httpx.MockTransport 上。"""

    def __init__(self, bucket: str = BUCKET):
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.requests: List[httpx.Request] = []
        self.fail_status: Optional[int] = None
        self.page_size = 1000

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"error": {"code": self.fail_status, "message": "Access denied."}})

        path = request.url.path
        list_path = f"/storage/v1/b/{self.bucket}/o"
        if request.method == "POST" and path == f"/upload{list_path}":
            name = request.url.params["name"]
            self.objects[name] = request.content
            self.content_types[name] = request.headers["content-type"]
            return httpx.Response(200, json={"name": name, "bucket": self.bucket})
        if request.method == "GET" and path == list_path:
            return self._list(request)
        if request.method == "GET" and path.startswith(list_path + "/"):
            name = unquote(path[len(list_path) + 1:])
            if name not in self.objects:
                return httpx.Response(404, json={"error": {"code": 404, "message": "No such object"}})
            return httpx.Response(200, content=self.objects[name])
        return httpx.Response(400, json={"error": {"message": f"unexpected {request.method} {path}"}})

    def _list(self, request: httpx.Request) -> httpx.Response:
        prefix = request.url.params.get("prefix", "")
        children = sorted({
            prefix + name[len(prefix):].split("/", 1)[0] + "/"
            for name in self.objects
            if name.startswith(prefix) and "/" in name[len(prefix):]
        })
        start = int(request.url.params.get("pageToken", "0"))
        page = children[start:start + self.page_size]
        body = {"prefixes": page}
        if start + self.page_size < len(children):
            body["nextPageToken"] = str(start + self.page_size)
        return httpx.Response(200, json=body)

    def put_json(self, name: str, doc) -> None:
        self.objects[name] = json.dumps(doc).encode("utf-8")

    def json(self, name: str):
        return json.loads(self.objects[name])


@pytest.fixture
def collaborator():
    return FakeCollaborator()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def vault_client(bucket):
    http = httpx.AsyncClient(transport=httpx.MockTransport(bucket.handler))
    return VaultClient(BUCKET, "test-token", http_client=http)


@pytest.fixture
def project_vault(vault_client):
    return ProjectVault(vault_client)


@pytest.fixture
def assets():
    return [
        ProjectAsset(id="a1", name="Mara", description="red coat", type="character",
                     image=IngredientImage(base64=PNG_B64)),
        ProjectAsset(id="a2", name="Harbor", description="foggy dock", type="location"),
    ]
