# -*- coding: utf-8 -*-
"""
World Registry：跨项目的共享索引 registry/world_graph.json
- 读 -> 合并 -> 整体写回
- projects 取并集（去重，保留已有顺序）；其它顶层字段浅合并，后写者胜
- 非原子：两个写者同时读后再写，会丢掉其中一次更新（已知限制）
"""
import logging
from typing import Any, Dict, Mapping

from providers.storage.gcs_io import JSON_MIME, VaultClient

logger = logging.getLogger(__name__)

REGISTRY_PATH = "registry/world_graph.json"


def merge_registry(existing: Mapping[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    projects = list(dict.fromkeys([*(existing.get("projects") or []), *(update.get("projects") or [])]))
    return {**existing, **update, "projects": projects}


async def update_world_registry(client: VaultClient, update: Mapping[str, Any]) -> Dict[str, Any]:
    current = await client.get_json(REGISTRY_PATH)
    if not isinstance(current, dict):
        logger.info("world registry not found, creating new index")
        current = {"projects": []}
    merged = merge_registry(current, update)
    await client.put(REGISTRY_PATH, merged, JSON_MIME)
    return merged
