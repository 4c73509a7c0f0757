# -*- coding: utf-8 -*-
"""
项目快照 (Project Snapshot)
projects/<slug>/state.json 的内容：镜头表、素材、分场计划、日志、成本统计与项目元数据。
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from schemas.cost import ApiCallSummary
from schemas.shot import ProjectAsset, ScenePlan, Shot, StudioModel


class LogType(str, Enum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    STEP = "STEP"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LogEntry(StudioModel):
    timestamp: str = Field(default_factory=utc_now_iso)
    message: str
    type: LogType = LogType.INFO


class ProjectSnapshot(StudioModel):
    project_name: Optional[str] = None
    shot_book: List[Shot] = Field(default_factory=list)
    assets: List[ProjectAsset] = Field(default_factory=list)
    scene_plans: Optional[List[ScenePlan]] = None
    log_entries: List[LogEntry] = Field(default_factory=list)
    api_call_summary: ApiCallSummary = Field(default_factory=ApiCallSummary)
    app_version: Optional[str] = None
    saved_at: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """序列化为落盘用的 camelCase JSON 对象。"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
