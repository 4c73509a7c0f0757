# services/api/app/api/v1/deps.py
"""
路由共用的依赖项：项目会话 + 生成协作方单例
- 没配 GOOGLE_API_KEY / VERTEX_PROJECT 时，从 Secret Manager 取 key
"""
import logging
from typing import Optional

from fastapi import Depends

from providers.auth.secret_manager import fetch_secret
from providers.llm.base import GenerationCollaborator
from providers.llm.gemini import GeminiStudioClient, build_genai_client
from services.api.app.core.config import settings
from services.api.app.core.sessions import SessionStore, session_store
from services.api.app.core.vault import vault_access
from workers.production.session import ProductionSession

logger = logging.getLogger(__name__)

_collaborator: Optional[GenerationCollaborator] = None


def get_session_store() -> SessionStore:
    return session_store


async def _resolve_api_key() -> Optional[str]:
    if settings.GOOGLE_API_KEY or settings.VERTEX_PROJECT or not settings.SECRET_MANAGER_PROJECT:
        return settings.GOOGLE_API_KEY
    token = await vault_access.access_token()
    logger.info("fetching %s from Secret Manager", settings.VEO_SECRET_NAME)
    return await fetch_secret(token, settings.SECRET_MANAGER_PROJECT, settings.VEO_SECRET_NAME)


async def get_collaborator() -> GenerationCollaborator:
    global _collaborator
    if _collaborator is None:
        client = build_genai_client(
            api_key=await _resolve_api_key(),
            vertex_project=settings.VERTEX_PROJECT,
            vertex_location=settings.VERTEX_LOCATION,
        )
        _collaborator = GeminiStudioClient(
            client,
            models={
                "breakdown": settings.PRO_MODEL,
                "keyframe_prompt": settings.FLASH_MODEL,
                "still": settings.IMAGE_MODEL,
                "video": settings.VIDEO_MODEL,
            },
            poll_interval=settings.VIDEO_POLL_INTERVAL_S,
        )
    return _collaborator


def get_session(slug: str, store: SessionStore = Depends(get_session_store)) -> ProductionSession:
    return store.get(slug)
