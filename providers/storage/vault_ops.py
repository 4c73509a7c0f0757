# -*- coding: utf-8 -*-
"""
项目级 Vault 操作 (Project Vault Operations)
- projects/<slug>/state.json                       项目快照
- projects/<slug>/units/<unit>/clip.mp4            转存的视频
- library/assets/<type>/<name>/visual_id.png       资产库图片
- library/assets/<type>/<name>/artifact.json       资产语义元数据
只读快照，不直接改镜头。
"""
import logging
import re
import time
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
from pydantic import ValidationError

from providers.storage.gcs_io import JSON_MIME, VaultClient, VaultTransportError
from schemas.assembly import ProjectSnapshot
from schemas.shot import IngredientImage

logger = logging.getLogger(__name__)

PROJECTS_PREFIX = "projects/"
LIBRARY_PREFIX = "library/assets"
SEMANTIC_VERSION = "1.0"


class ProjectNotFoundError(Exception):
    def __init__(self, slug: str):
        super().__init__(f"Project {slug} not found in vault.")
        self.slug = slug


def state_path(slug: str) -> str:
    return f"{PROJECTS_PREFIX}{slug}/state.json"


def clip_path(slug: str, unit_id: str) -> str:
    return f"{PROJECTS_PREFIX}{slug}/units/{unit_id}/clip.mp4"


def safe_asset_name(name: str) -> str:
    return re.sub(r"\s+", "_", name).lower()


class ProjectVault:
    def __init__(self, client: VaultClient, *, http_client: Optional[httpx.AsyncClient] = None):
        self.client = client
        # 仅用于转存外部视频（不带 vault token）
        self._http = http_client

    async def save_project_state(
        self, slug: str, snapshot: Union[ProjectSnapshot, Mapping[str, Any]]
    ) -> str:
        doc = snapshot.to_document() if isinstance(snapshot, ProjectSnapshot) else dict(snapshot)
        url = await self.client.put(state_path(slug), doc, JSON_MIME)
        logger.info("project %s saved to vault", slug)
        return url

    async def load_project_state(self, slug: str) -> ProjectSnapshot:
        doc = await self.client.get_json(state_path(slug))
        if doc is None:
            raise ProjectNotFoundError(slug)
        try:
            return ProjectSnapshot.model_validate(doc)
        except ValidationError as e:
            raise VaultTransportError(
                f"Corrupt project state for {slug}: {e.error_count()} invalid field(s)", path=state_path(slug)
            ) from e

    async def list_projects(self) -> List[str]:
        return sorted(await self.client.list(PROJECTS_PREFIX))

    async def store_library_asset(
        self,
        asset_type: str,
        name: str,
        image: Union[IngredientImage, str],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        图片 + 同级 artifact.json；返回图片的 vault URL
        """
        base_path = f"{LIBRARY_PREFIX}/{asset_type}/{safe_asset_name(name)}"
        data = image.base64 if isinstance(image, IngredientImage) else image

        image_url = await self.client.put(f"{base_path}/visual_id.png", data, "image/png")
        artifact: Dict[str, Any] = {
            **(metadata or {}),
            "vault_id": f"art_{int(time.time() * 1000)}",
            "source_type": asset_type,
            "semantic_version": SEMANTIC_VERSION,
        }
        await self.client.put(f"{base_path}/artifact.json", artifact, JSON_MIME)
        return image_url

    async def relay_generated_video(self, remote_url: str, slug: str, unit_id: str) -> str:
        """把外部托管的视频拉下来，再上传到 vault；只是转存，不是生成。"""
        if self._http is not None:
            response = await self._http.get(remote_url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=None, follow_redirects=True) as client:
                response = await client.get(remote_url)
        if not response.is_success:
            raise VaultTransportError(
                f"relay source fetch failed: HTTP {response.status_code}", response.status_code, remote_url
            )
        mime_type = response.headers.get("content-type", "").split(";")[0].strip() or "video/mp4"
        return await self.client.put(clip_path(slug, unit_id), response.content, mime_type)
