# -*- coding: utf-8 -*-
"""
镜头 (Shot) 数据模型
- ShotStatus / VeoStatus：镜头生命周期与视频子状态
- IngredientImage / ProjectAsset：连续性参考素材
- VeoShotWrapper：生成就绪的镜头描述文档（状态机只关心有无，不解析内容）
- Shot.kind：显式的 Standard | Extension 标签变体
落盘 JSON 使用 camelCase 字段名（veoJson、isApproved ...），Python 侧为 snake_case。
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated


class StudioModel(BaseModel):
    """snake_case 属性 <-> camelCase JSON；两种写法都能读入。"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShotStatus(str, Enum):
    PENDING_JSON = "PENDING_JSON"
    GENERATING_JSON = "GENERATING_JSON"
    PENDING_KEYFRAME_PROMPT = "PENDING_KEYFRAME_PROMPT"
    GENERATING_KEYFRAME_PROMPT = "GENERATING_KEYFRAME_PROMPT"
    NEEDS_KEYFRAME_GENERATION = "NEEDS_KEYFRAME_GENERATION"
    GENERATING_IMAGE = "GENERATING_IMAGE"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    APPROVED = "APPROVED"
    GENERATION_FAILED = "GENERATION_FAILED"


GENERATING_STATES = frozenset({
    ShotStatus.GENERATING_JSON,
    ShotStatus.GENERATING_KEYFRAME_PROMPT,
    ShotStatus.GENERATING_IMAGE,
})


class VeoStatus(str, Enum):
    IDLE = "IDLE"
    QUEUED = "QUEUED"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


AssetType = Literal["character", "location", "prop", "style"]


class IngredientImage(StudioModel):
    base64: str
    mime_type: str = "image/png"
    name: Optional[str] = None


class ProjectAsset(StudioModel):
    id: str
    name: str
    description: str = ""
    type: AssetType
    image: Optional[IngredientImage] = None


class ScenePlan(StudioModel):
    id: str
    name: str
    description: str = ""


class VeoShotWrapper(BaseModel):
    """
    生成结果的外层包装。
    veo_shot 保持原样的 JSON 对象，未知字段在 load -> save 往返中不丢失。
    """
    model_config = ConfigDict(populate_by_name=True)

    unit_type: Literal["shot", "extend"] = "shot"
    director_notes: Optional[str] = Field(default=None, alias="directorNotes")
    veo_shot: Dict[str, Any] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# 镜头类型 (Shot Kind)
# -----------------------------------------------------------------------------
class StandardUnit(BaseModel):
    unit_type: Literal["shot"] = "shot"


class ExtensionUnit(BaseModel):
    """延展镜头：承接上一镜头的视频，不要求自己的关键帧。"""
    model_config = ConfigDict(populate_by_name=True)

    unit_type: Literal["extend"] = "extend"
    parent_shot_id: Optional[str] = Field(default=None, alias="parentShotId")
    directive: str = ""


ShotKind = Annotated[Union[StandardUnit, ExtensionUnit], Field(discriminator="unit_type")]


class Shot(StudioModel):
    id: str
    status: ShotStatus = ShotStatus.PENDING_JSON
    pitch: str = ""
    scene_name: Optional[str] = None
    veo_json: Optional[VeoShotWrapper] = None
    keyframe_prompt_text: Optional[str] = None
    keyframe_image: Optional[str] = None
    keyframe_mime_type: Optional[str] = None
    selected_asset_ids: List[str] = Field(default_factory=list)
    ad_hoc_assets: Optional[List[IngredientImage]] = None
    veo_status: Optional[VeoStatus] = None
    veo_video_url: Optional[str] = None
    veo_reference_url: Optional[str] = None
    is_approved: bool = False
    veo_use_keyframe_as_reference: Optional[bool] = None
    kind: ShotKind = Field(default_factory=StandardUnit)

    @model_validator(mode="before")
    @classmethod
    def _derive_kind(cls, data: Any) -> Any:
        # 旧快照没有 kind 字段：按 veoJson.unit_type 推断
        if not isinstance(data, dict) or "kind" in data:
            return data
        wrapper = data.get("veoJson", data.get("veo_json"))
        if isinstance(wrapper, VeoShotWrapper):
            unit_type, notes = wrapper.unit_type, wrapper.director_notes
        elif isinstance(wrapper, dict):
            unit_type, notes = wrapper.get("unit_type"), wrapper.get("directorNotes")
        else:
            return data
        if unit_type == "extend":
            return {**data, "kind": {"unit_type": "extend", "directive": notes or ""}}
        return data

    @field_validator("selected_asset_ids")
    @classmethod
    def _dedupe_assets(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @property
    def is_extension(self) -> bool:
        return isinstance(self.kind, ExtensionUnit)

    @property
    def scene_group(self) -> Optional[str]:
        head, sep, _ = self.id.partition("_")
        return head if sep else None


ShotBook = List[Shot]
