# -*- coding: utf-8 -*-
"""
镜头生产路由 (Shot Production API)
- /api/v1/projects                          从镜头计划创建项目会话
- /api/v1/projects/{slug}/shots/{id}/...     生命周期命令（分解 / 提示词 / 静帧 / 审批 / 视频 / 延展）
- /api/v1/projects/{slug}/stills|breakdowns  批量生成；/stop 让批处理在下一个镜头前停下
所有生命周期错误由 core/exceptions.py 统一转成 404 / 409 / 502
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from providers.llm.base import GenerationCollaborator
from schemas.shot import IngredientImage, ProjectAsset, ScenePlan, StudioModel
from services.api.app.core.config import settings
from services.api.app.core.security import verify_api_key
from services.api.app.core.sessions import SessionStore
from workers.production.session import ProductionSession, project_slug

from .deps import get_collaborator, get_session, get_session_store

router = APIRouter(
    default_response_class=JSONResponse,
    dependencies=[Depends(verify_api_key)],
)


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------- 请求模型 ----------
class CreateProjectReq(StudioModel):
    project_name: str
    shots: List[Dict[str, Any]]
    assets: List[ProjectAsset] = Field(default_factory=list)
    scene_plans: Optional[List[ScenePlan]] = None


class BreakdownReq(BaseModel):
    feedback: Optional[str] = None


class VideoReq(StudioModel):
    use_keyframe: Optional[bool] = None


class VideoReferenceReq(StudioModel):
    reference_url: Optional[str] = None
    use_keyframe: Optional[bool] = None


class ExtendReq(BaseModel):
    directive: str


class UpdateShotReq(StudioModel):
    pitch: Optional[str] = None
    scene_name: Optional[str] = None
    veo_json: Optional[Dict[str, Any]] = None


# ---------- 项目 ----------
@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    req: CreateProjectReq,
    store: SessionStore = Depends(get_session_store),
    collaborator: GenerationCollaborator = Depends(get_collaborator),
):
    slug = project_slug(req.project_name)
    if slug in store:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Project {slug} is already open")
    try:
        session = ProductionSession.from_shot_plan(
            req.project_name,
            req.shots,
            collaborator,
            assets=req.assets,
            scene_plans=req.scene_plans,
            app_version=settings.APP_VERSION,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    store.put(session)
    return {"slug": session.slug, "shots": [_dump(s) for s in session.shot_book]}


@router.get("/projects")
def list_open_projects(store: SessionStore = Depends(get_session_store)):
    return {"projects": store.slugs()}


@router.get("/projects/{slug}")
def get_project(session: ProductionSession = Depends(get_session)):
    return _dump(session.snapshot())


@router.get("/projects/{slug}/groups")
def get_groups(session: ProductionSession = Depends(get_session)):
    return {
        "groups": [
            {"group": group, "shotIds": [s.id for s in shots]}
            for group, shots in session.groups().items()
        ]
    }


@router.get("/projects/{slug}/cost")
def get_cost(session: ProductionSession = Depends(get_session)):
    return {"apiCallSummary": _dump(session.costs), "estimatedCost": session.estimated_cost()}


@router.get("/projects/{slug}/logs")
def get_logs(session: ProductionSession = Depends(get_session)):
    return {"logEntries": [_dump(e) for e in session.log_entries]}


# ---------- 素材库 ----------
@router.post("/projects/{slug}/assets", status_code=status.HTTP_201_CREATED)
def add_asset(asset: ProjectAsset, session: ProductionSession = Depends(get_session)):
    try:
        return _dump(session.add_asset(asset))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.delete("/projects/{slug}/assets/{asset_id}")
def remove_asset(asset_id: str, session: ProductionSession = Depends(get_session)):
    session.remove_asset(asset_id)
    return {"assets": [_dump(a) for a in session.assets]}


@router.put("/projects/{slug}/assets/{asset_id}/image")
def update_asset_image(asset_id: str, image: IngredientImage, session: ProductionSession = Depends(get_session)):
    try:
        return _dump(session.update_asset_image(asset_id, image))
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Asset {asset_id} not found")


# ---------- 单镜头命令 ----------
@router.get("/projects/{slug}/shots/{shot_id}")
def get_shot(shot_id: str, session: ProductionSession = Depends(get_session)):
    return _dump(session.lifecycle.get(shot_id))


@router.patch("/projects/{slug}/shots/{shot_id}")
def update_shot(shot_id: str, req: UpdateShotReq, session: ProductionSession = Depends(get_session)):
    shot = session.lifecycle.update_shot(
        shot_id, pitch=req.pitch, scene_name=req.scene_name, veo_json=req.veo_json
    )
    return _dump(shot)


@router.post("/projects/{slug}/shots/{shot_id}/breakdown")
async def request_breakdown(
    shot_id: str,
    req: Optional[BreakdownReq] = None,
    session: ProductionSession = Depends(get_session),
):
    feedback = req.feedback if req else None
    return _dump(await session.lifecycle.request_breakdown(shot_id, feedback=feedback))


@router.post("/projects/{slug}/shots/{shot_id}/keyframe-prompt")
async def request_keyframe_prompt(shot_id: str, session: ProductionSession = Depends(get_session)):
    return _dump(await session.lifecycle.request_keyframe_prompt(shot_id))


@router.post("/projects/{slug}/shots/{shot_id}/still")
async def request_still(shot_id: str, session: ProductionSession = Depends(get_session)):
    return _dump(await session.lifecycle.request_still(shot_id))


@router.post("/projects/{slug}/shots/{shot_id}/approve")
def approve(shot_id: str, session: ProductionSession = Depends(get_session)):
    return _dump(session.lifecycle.approve(shot_id))


@router.post("/projects/{slug}/shots/{shot_id}/unapprove")
def unapprove(shot_id: str, session: ProductionSession = Depends(get_session)):
    return _dump(session.lifecycle.unapprove(shot_id))


@router.post("/projects/{slug}/shots/{shot_id}/video")
async def request_video(
    shot_id: str,
    req: Optional[VideoReq] = None,
    session: ProductionSession = Depends(get_session),
):
    use_keyframe = req.use_keyframe if req else None
    return _dump(await session.lifecycle.request_video(shot_id, use_keyframe=use_keyframe))


@router.put("/projects/{slug}/shots/{shot_id}/video-reference")
def set_video_reference(shot_id: str, req: VideoReferenceReq, session: ProductionSession = Depends(get_session)):
    shot = session.lifecycle.set_video_reference(
        shot_id, reference_url=req.reference_url, use_keyframe=req.use_keyframe
    )
    return _dump(shot)


@router.post("/projects/{slug}/shots/{shot_id}/extend", status_code=status.HTTP_201_CREATED)
def extend(shot_id: str, req: ExtendReq, session: ProductionSession = Depends(get_session)):
    return _dump(session.lifecycle.extend(shot_id, req.directive))


@router.post("/projects/{slug}/shots/{shot_id}/assets/{asset_id}")
def toggle_asset(shot_id: str, asset_id: str, session: ProductionSession = Depends(get_session)):
    return _dump(session.lifecycle.toggle_asset(shot_id, asset_id))


@router.post("/projects/{slug}/shots/{shot_id}/references")
def add_reference(shot_id: str, image: IngredientImage, session: ProductionSession = Depends(get_session)):
    return _dump(session.lifecycle.add_ad_hoc_asset(shot_id, image))


@router.delete("/projects/{slug}/shots/{shot_id}/references/{index}")
def remove_reference(shot_id: str, index: int, session: ProductionSession = Depends(get_session)):
    return _dump(session.lifecycle.remove_ad_hoc_asset(shot_id, index))


# ---------- 批处理 ----------
@router.post("/projects/{slug}/stills")
async def generate_all_stills(session: ProductionSession = Depends(get_session)):
    return {"completed": await session.lifecycle.generate_all_stills()}


@router.post("/projects/{slug}/breakdowns")
async def generate_all_breakdowns(session: ProductionSession = Depends(get_session)):
    return {"completed": await session.lifecycle.generate_all_breakdowns()}


@router.post("/projects/{slug}/stop")
def stop_generation(session: ProductionSession = Depends(get_session)):
    session.stop_generation()
    return {"stopRequested": True, "busy": session.slot.busy}
