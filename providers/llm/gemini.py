# -*- coding: utf-8 -*-
"""
===========================================================
Gemini Studio Gateway - 镜头生成协作方
===========================================================

功能:
    - 实现 providers/llm/base.py 的 GenerationCollaborator 协议：
        1) 镜头分解 JSON (generate_breakdown)      -> Pro 档
        2) 关键帧提示词 (generate_keyframe_prompt) -> Flash 档
        3) 关键帧静帧 (generate_still)             -> Image 档
        4) 视频生成 (generate_video)               -> Veo，长任务轮询
    - 所有失败统一抛 GenerationFailureError；不做重试，重试由用户重新下发命令

依赖:
    pip install -U google-genai python-dotenv

环境变量(.env):
    GOOGLE_API_KEY                 : Gemini API key
    VERTEX_PROJECT / GCP_PROJECT_ID: 设置后改走 Vertex 模式 (ADC)

===========================================================
"""
import asyncio
import base64
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv
from pydantic import ValidationError

from google import genai
from google.genai import errors, types

from providers.llm.base import (
    GenerationFailureError,
    GenerationResult,
    GenerationUsage,
    describe_assets,
)
from schemas.shot import IngredientImage, ProjectAsset, Shot, VeoShotWrapper
from schemas.veo import VeoShot

load_dotenv()
logger = logging.getLogger(__name__)

# ---------------- 路由：每类调用对应的模型 ----------------
ROUTES = {
    "breakdown": "gemini-2.5-pro",
    "keyframe_prompt": "gemini-2.5-flash",
    "still": "gemini-2.5-flash-image",
    "video": "veo-3.0-generate-001",
}


def build_genai_client(
    api_key: Optional[str] = None,
    vertex_project: Optional[str] = None,
    vertex_location: str = "us-central1",
) -> genai.Client:
    """
    有 Vertex 项目就走 Vertex (ADC)，否则用 API key。
    """
    vertex_project = vertex_project or os.getenv("VERTEX_PROJECT") or os.getenv("GCP_PROJECT_ID")
    if vertex_project:
        return genai.Client(vertexai=True, project=vertex_project, location=vertex_location)
    api_key = api_key or os.getenv("GOOGLE_API_KEY")
    if not api_key:
        raise ValueError("请设置 GOOGLE_API_KEY 或 VERTEX_PROJECT")
    return genai.Client(api_key=api_key)


# ---------------- 响应解析 ----------------
_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.S | re.I)


def _strip_code_fences(s: str) -> str:
    m = _CODE_FENCE.search(s or "")
    return m.group(1).strip() if m else (s or "").strip()


def _extract_top_level_json(s: str) -> Optional[Any]:
    s = _strip_code_fences(s)
    if not s:
        return None
    try:
        return json.loads(s)
    except ValueError:
        pass
    li, ri = s.find("{"), s.rfind("}")
    if li != -1 and ri > li:
        try:
            return json.loads(s[li:ri + 1])
        except ValueError:
            return None
    return None


def _extract_text(resp) -> str:
    """先拿 resp.text；为空时把 candidates[0].content.parts 的文本拼起来。"""
    txt = getattr(resp, "text", None) or ""
    if txt.strip():
        return txt
    buf = []
    for part in _first_candidate_parts(resp):
        t = getattr(part, "text", None)
        if t:
            buf.append(t)
    return "".join(buf)


def _first_candidate_parts(resp) -> List[Any]:
    cands = getattr(resp, "candidates", None)
    if not cands:
        return []
    content = getattr(cands[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def _usage(tier: str, resp) -> GenerationUsage:
    meta = getattr(resp, "usage_metadata", None)
    return GenerationUsage(
        tier=tier,
        input_tokens=int(getattr(meta, "prompt_token_count", 0) or 0),
        output_tokens=int(getattr(meta, "candidates_token_count", 0) or 0),
    )


# ---------------- 提示词 ----------------
def _breakdown_prompt(shot: Shot, assets: Sequence[ProjectAsset], feedback: Optional[str]) -> str:
    lines = [
        "You are a film director preparing a generation-ready shot document for Veo.",
        f"shot_id: {shot.id}",
        f"scene: {shot.scene_name or shot.scene_group or 'intro'}",
        f"pitch: {shot.pitch}",
        "continuity assets (reuse their descriptions verbatim in description_lock):",
        json.dumps(describe_assets(assets), ensure_ascii=False),
    ]
    if shot.ad_hoc_assets:
        lines.append(f"{len(shot.ad_hoc_assets)} ad-hoc reference image(s) are attached to this shot.")
    if feedback:
        lines.append("Director feedback to apply to the previous version:")
        lines.append(feedback)
        if shot.veo_json is not None:
            lines.append(json.dumps(shot.veo_json.veo_shot, ensure_ascii=False))
    lines.append("Return only the JSON document.")
    return "\n".join(lines)


def _keyframe_prompt(shot: Shot, assets: Sequence[ProjectAsset]) -> str:
    doc = shot.veo_json.veo_shot if shot.veo_json is not None else {}
    return "\n".join([
        "Write one dense still-image prompt for the opening keyframe of this shot.",
        "Keep character and location descriptions consistent with the assets.",
        json.dumps(describe_assets(assets), ensure_ascii=False),
        json.dumps(doc, ensure_ascii=False),
        "Return only the prompt text.",
    ])


def _image_part(image: IngredientImage) -> types.Part:
    return types.Part.from_bytes(data=base64.b64decode(image.base64), mime_type=image.mime_type)


class GeminiStudioClient:
    def __init__(
        self,
        client: Optional[genai.Client] = None,
        *,
        api_key: Optional[str] = None,
        models: Optional[Dict[str, str]] = None,
        poll_interval: float = 10.0,
    ):
        self.client = client or build_genai_client(api_key=api_key)
        self.models = {**ROUTES, **(models or {})}
        self.poll_interval = poll_interval

    # ---------- 内部公共 ----------
    async def _generate_content(self, route: str, contents: Any, config: types.GenerateContentConfig):
        try:
            return await self.client.aio.models.generate_content(
                model=self.models[route], contents=contents, config=config
            )
        except errors.APIError as e:
            logger.warning("gemini %s failed: %s", route, e)
            raise GenerationFailureError(f"{route}: {e}") from e

    # ---------- 镜头分解 ----------
    async def generate_breakdown(
        self, shot: Shot, assets: Sequence[ProjectAsset], feedback: Optional[str] = None
    ) -> GenerationResult[VeoShotWrapper]:
        cfg = types.GenerateContentConfig(
            temperature=0.5,
            response_mime_type="application/json",
            response_schema=VeoShot,
        )
        resp = await self._generate_content("breakdown", _breakdown_prompt(shot, assets, feedback), cfg)

        doc = getattr(resp, "parsed", None)
        if not isinstance(doc, VeoShot):
            raw = _extract_top_level_json(_extract_text(resp))
            if not isinstance(raw, dict):
                raise GenerationFailureError(f"breakdown: unparseable response for {shot.id}")
            try:
                doc = VeoShot.model_validate(raw)
            except ValidationError as e:
                raise GenerationFailureError(f"breakdown: invalid document for {shot.id}: {e}") from e

        notes = feedback or (shot.veo_json.director_notes if shot.veo_json else None)
        wrapper = VeoShotWrapper(
            unit_type="extend" if shot.is_extension else "shot",
            director_notes=notes,
            veo_shot=doc.model_dump(mode="json", exclude_none=True),
        )
        return GenerationResult(wrapper, _usage("pro", resp))

    # ---------- 关键帧提示词 ----------
    async def generate_keyframe_prompt(
        self, shot: Shot, assets: Sequence[ProjectAsset]
    ) -> GenerationResult[str]:
        cfg = types.GenerateContentConfig(temperature=0.4, response_mime_type="text/plain")
        resp = await self._generate_content("keyframe_prompt", _keyframe_prompt(shot, assets), cfg)
        text = _extract_text(resp).strip()
        if not text:
            raise GenerationFailureError(f"keyframe_prompt: empty response for {shot.id}")
        return GenerationResult(text, _usage("flash", resp))

    # ---------- 关键帧静帧 ----------
    async def generate_still(
        self, shot: Shot, assets: Sequence[ProjectAsset]
    ) -> GenerationResult[IngredientImage]:
        prompt = shot.keyframe_prompt_text or shot.pitch
        contents: List[Any] = [prompt]
        # 连续性锁定：素材图与镜头自带参考图一并送入
        contents.extend(_image_part(a.image) for a in assets if a.image is not None)
        contents.extend(_image_part(img) for img in (shot.ad_hoc_assets or []))

        cfg = types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"])
        resp = await self._generate_content("still", contents, cfg)
        for part in _first_candidate_parts(resp):
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                return GenerationResult(
                    IngredientImage(
                        base64=base64.b64encode(inline.data).decode("ascii"),
                        mime_type=inline.mime_type or "image/png",
                        name=f"{shot.id}_keyframe",
                    ),
                    _usage("image", resp),
                )
        raise GenerationFailureError(f"still: no image returned for {shot.id}")

    # ---------- 视频 ----------
    async def generate_video(
        self, shot: Shot, assets: Sequence[ProjectAsset]
    ) -> GenerationResult[str]:
        prompt = json.dumps(shot.veo_json.veo_shot, ensure_ascii=False) if shot.veo_json else shot.pitch
        kwargs: Dict[str, Any] = {}
        use_keyframe = shot.veo_use_keyframe_as_reference is not False
        if shot.is_extension and shot.veo_reference_url:
            kwargs["video"] = types.Video(uri=shot.veo_reference_url)
        elif use_keyframe and shot.keyframe_image:
            kwargs["image"] = types.Image(
                image_bytes=base64.b64decode(shot.keyframe_image),
                mime_type=shot.keyframe_mime_type or "image/png",
            )

        try:
            operation = await self.client.aio.models.generate_videos(
                model=self.models["video"],
                prompt=prompt,
                config=types.GenerateVideosConfig(number_of_videos=1),
                **kwargs,
            )
            while not operation.done:
                await asyncio.sleep(self.poll_interval)
                operation = await self.client.aio.operations.get(operation)
        except errors.APIError as e:
            logger.warning("veo generation failed for %s: %s", shot.id, e)
            raise GenerationFailureError(f"video: {e}") from e

        if operation.error:
            raise GenerationFailureError(f"video: {operation.error}")
        videos = operation.response.generated_videos if operation.response else None
        if not videos or videos[0].video is None or not videos[0].video.uri:
            raise GenerationFailureError(f"video: no video returned for {shot.id}")
        return GenerationResult(videos[0].video.uri, GenerationUsage(tier="video"))
