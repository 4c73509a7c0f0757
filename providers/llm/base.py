# -*- coding: utf-8 -*-
"""
生成协作方 (Generation Collaborator) 接口
状态机只依赖这里的协议：什么时候调用、结果怎样落到镜头上。
具体实现见 providers/llm/gemini.py；测试里可以换成任意满足协议的对象。
"""
from dataclasses import dataclass
from typing import Any, Generic, Optional, Protocol, Sequence, TypeVar

from schemas.shot import IngredientImage, ProjectAsset, Shot, VeoShotWrapper

T = TypeVar("T")


class GenerationFailureError(Exception):
    """协作方报告失败（带可读信息）。镜头进入 GENERATION_FAILED / FAILED，可原样重试。"""


@dataclass
class GenerationUsage:
    # tier: "pro" | "flash" | "image" | "video"
    tier: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class GenerationResult(Generic[T]):
    value: T
    usage: GenerationUsage


class GenerationCollaborator(Protocol):
    async def generate_breakdown(
        self, shot: Shot, assets: Sequence[ProjectAsset], feedback: Optional[str] = None
    ) -> GenerationResult[VeoShotWrapper]: ...

    async def generate_keyframe_prompt(
        self, shot: Shot, assets: Sequence[ProjectAsset]
    ) -> GenerationResult[str]: ...

    async def generate_still(
        self, shot: Shot, assets: Sequence[ProjectAsset]
    ) -> GenerationResult[IngredientImage]: ...

    async def generate_video(
        self, shot: Shot, assets: Sequence[ProjectAsset]
    ) -> GenerationResult[str]: ...


def describe_assets(assets: Sequence[ProjectAsset]) -> Any:
    """给提示词用的素材摘要（不含图片字节）。"""
    return [
        {"id": a.id, "name": a.name, "type": a.type, "description": a.description}
        for a in assets
    ]
