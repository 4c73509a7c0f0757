# -*- coding: utf-8 -*-
"""
Vault 路由
- /api/v1/projects/{slug}/sync           快照 -> projects/<slug>/state.json，并登记 world registry
- /api/v1/projects/{slug}/shots/{id}/archive  把已完成的视频转存进 vault
- /api/v1/vault/projects                 列出 vault 里的项目
- /api/v1/vault/projects/{slug}/install  从 vault 装载项目会话
- /api/v1/vault/library-assets           资产库写入（图片 + artifact.json）
- /api/v1/vault/relay/task               异步转存，立即返回 task_id
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from providers.llm.base import GenerationCollaborator
from providers.storage.vault_ops import ProjectVault
from schemas.shot import AssetType, IngredientImage, StudioModel
from services.api.app.core.security import verify_api_key
from services.api.app.core.sessions import SessionStore
from services.api.app.core.vault import get_project_vault
from workers.production.session import ProductionSession
from workers.tasks.vault_tasks import relay_generated_video

from .deps import get_collaborator, get_session, get_session_store

router = APIRouter(dependencies=[Depends(verify_api_key)])


# ---------- 请求模型 ----------
class LibraryAssetReq(StudioModel):
    asset_type: AssetType
    name: str
    image: IngredientImage
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RelayReq(StudioModel):
    remote_url: str
    slug: str
    unit_id: str


class InstallReq(BaseModel):
    replace: bool = False


# ---------- 项目同步 ----------
@router.post("/projects/{slug}/sync")
async def sync_project(
    session: ProductionSession = Depends(get_session),
    vault: ProjectVault = Depends(get_project_vault),
):
    url = await session.sync_to_vault(vault)
    return {"slug": session.slug, "stateUrl": url}


@router.post("/projects/{slug}/shots/{shot_id}/archive")
async def archive_video(
    shot_id: str,
    session: ProductionSession = Depends(get_session),
    vault: ProjectVault = Depends(get_project_vault),
):
    url = await session.archive_video(vault, shot_id)
    return {"shotId": shot_id, "vaultUrl": url}


# ---------- Vault ----------
@router.get("/vault/projects")
async def list_vault_projects(vault: ProjectVault = Depends(get_project_vault)):
    return {"projects": await vault.list_projects()}


@router.post("/vault/projects/{slug}/install")
async def install_project(
    slug: str,
    req: Optional[InstallReq] = None,
    vault: ProjectVault = Depends(get_project_vault),
    store: SessionStore = Depends(get_session_store),
    collaborator: GenerationCollaborator = Depends(get_collaborator),
):
    replace = req.replace if req else False
    if slug in store and not replace:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Project {slug} is already open")
    session = await ProductionSession.install_from_vault(vault, slug, collaborator)
    store.put(session)
    return {"slug": session.slug, "shotCount": len(session.shot_book)}


@router.post("/vault/library-assets", status_code=status.HTTP_201_CREATED)
async def store_library_asset(req: LibraryAssetReq, vault: ProjectVault = Depends(get_project_vault)):
    url = await vault.store_library_asset(req.asset_type, req.name, req.image, req.metadata)
    return {"url": url}


@router.post("/vault/relay/task")
def relay_task(req: RelayReq):
    """
    异步：立即返回 task_id；Worker 拉取视频并写入 projects/<slug>/units/<unit>/clip.mp4
    """
    r = relay_generated_video.delay(req.remote_url, req.slug, req.unit_id)
    return {"task_id": r.id}
