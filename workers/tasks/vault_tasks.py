# -*- coding: utf-8 -*-
"""
Celery 异步任务：Vault 转存 / 快照同步
任务体是协程，这里用 asyncio.run 在 worker 进程里跑完。
"""
import asyncio
from typing import Any, Dict

from services.api.app.core.celery_app import celery_app  # 注意：Celery 实例路径
from services.api.app.core.vault import vault_access
from providers.storage.world_registry import update_world_registry
from schemas.assembly import utc_now_iso


async def _relay(remote_url: str, slug: str, unit_id: str) -> str:
    vault = await vault_access.project_vault()
    return await vault.relay_generated_video(remote_url, slug, unit_id)


async def _sync(slug: str, snapshot: Dict[str, Any]) -> Dict[str, Any]:
    vault = await vault_access.project_vault()
    url = await vault.save_project_state(slug, snapshot)
    registry = await update_world_registry(vault.client, {"projects": [slug], "last_sync": utc_now_iso()})
    return {"state_url": url, "projects": registry["projects"]}


@celery_app.task(
        name="vault.relay_generated_video",
        queue="vault_queue",
        routing_key="task.vault")
def relay_generated_video(remote_url: str, slug: str, unit_id: str) -> dict:
    """
    异步：拉取外部视频 -> 写入 projects/<slug>/units/<unit_id>/clip.mp4
    :return: {"vault_url": "...", "slug": ..., "unit_id": ...}
    """
    url = asyncio.run(_relay(remote_url, slug, unit_id))
    return {"vault_url": url, "slug": slug, "unit_id": unit_id}


@celery_app.task(
        name="vault.sync_snapshot",
        queue="vault_queue",
        routing_key="task.vault")
def sync_snapshot(slug: str, snapshot: Dict[str, Any]) -> dict:
    """
    异步：写 projects/<slug>/state.json 并登记到 world registry
    """
    return asyncio.run(_sync(slug, snapshot))
