# -*- coding: utf-8 -*-
"""
VeoShot：镜头分解文档的结构化 schema
仅用于分解调用的 response_schema；状态机把生成结果当作不透明 JSON 保存。
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class VeoScene(BaseModel):
    context: str
    visual_style: str
    lighting: str
    mood: str
    aspect_ratio: Literal["16:9", "9:16"] = "16:9"
    duration_s: Literal[4, 6, 8] = 8


class VeoCharacter(BaseModel):
    name: str
    gender_age: str
    description_lock: str
    behavior: str
    expression: str


class VeoCamera(BaseModel):
    shot_call: str
    movement: str


class VeoAudio(BaseModel):
    dialogue: str
    delivery: str
    ambience: Optional[str] = None
    sfx: Optional[str] = None


class VeoFlags(BaseModel):
    continuity_lock: bool = False
    do_not: List[str] = Field(default_factory=list)
    anti_artifacts: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    cv_updates: List[str] = Field(default_factory=list)


class VeoShot(BaseModel):
    shot_id: str
    scene: VeoScene
    character: VeoCharacter
    camera: VeoCamera
    audio: VeoAudio
    flags: VeoFlags = Field(default_factory=VeoFlags)
