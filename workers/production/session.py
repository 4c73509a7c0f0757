# -*- coding: utf-8 -*-
"""
项目会话 (Production Session)
一个项目会话持有：镜头表、素材库、分场计划、日志、成本统计、生成槽位和状态机。
- 镜头的任何改动都经过 ShotLifecycle
- 同步到 vault 时先做快照（深拷贝），之后的镜头改动不影响这次上传
"""
import logging
import re
from typing import Any, Iterable, List, Mapping, Optional, Union

from providers.auth.service_account import AuthExchangeError
from providers.llm.base import GenerationCollaborator
from providers.storage.gcs_io import VaultTransportError
from providers.storage.vault_ops import ProjectVault
from providers.storage.world_registry import update_world_registry
from schemas.assembly import LogEntry, LogType, ProjectSnapshot, utc_now_iso
from schemas.cost import ApiCallSummary, estimate_cost
from schemas.shot import IngredientImage, ProjectAsset, ScenePlan, Shot, VeoStatus
from workers.production.errors import InvalidTransitionError
from workers.production.lifecycle import ShotLifecycle, group_shots_by_scene
from workers.production.slot import GenerationSlot

logger = logging.getLogger(__name__)


def project_slug(name: Optional[str]) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "untitled"


class ProductionSession:
    def __init__(
        self,
        project_name: Optional[str],
        collaborator: GenerationCollaborator,
        *,
        shot_book: Optional[List[Shot]] = None,
        assets: Optional[List[ProjectAsset]] = None,
        scene_plans: Optional[List[ScenePlan]] = None,
        log_entries: Optional[List[LogEntry]] = None,
        api_call_summary: Optional[ApiCallSummary] = None,
        app_version: Optional[str] = None,
    ):
        self.project_name = project_name
        self.shot_book: List[Shot] = list(shot_book or [])
        self.assets: List[ProjectAsset] = list(assets or [])
        self.scene_plans = scene_plans
        self.log_entries: List[LogEntry] = list(log_entries or [])
        self.costs = api_call_summary or ApiCallSummary()
        self.app_version = app_version
        self.slot = GenerationSlot()
        self.lifecycle = ShotLifecycle(
            self.shot_book,
            collaborator,
            assets=self.assets,
            slot=self.slot,
            costs=self.costs,
            log=self.log,
        )

    # -------------------------------------------------------------------------
    # 构造 (Construction)
    # -------------------------------------------------------------------------
    @classmethod
    def from_shot_plan(
        cls,
        project_name: str,
        plan: Iterable[Union[Shot, Mapping[str, Any]]],
        collaborator: GenerationCollaborator,
        *,
        assets: Iterable[ProjectAsset] = (),
        scene_plans: Optional[List[ScenePlan]] = None,
        app_version: Optional[str] = None,
    ) -> "ProductionSession":
        shots = [Shot.model_validate(item) for item in plan]
        seen = set()
        for shot in shots:
            if shot.id in seen:
                raise ValueError(f"duplicate shot id {shot.id}")
            seen.add(shot.id)
        session = cls(
            project_name,
            collaborator,
            shot_book=shots,
            assets=list(assets),
            scene_plans=scene_plans,
            app_version=app_version,
        )
        session.log(f"Shot plan loaded: {len(shots)} shots", LogType.INFO)
        return session

    @classmethod
    def from_snapshot(
        cls, snapshot: ProjectSnapshot, collaborator: GenerationCollaborator
    ) -> "ProductionSession":
        snap = snapshot.model_copy(deep=True)
        return cls(
            snap.project_name,
            collaborator,
            shot_book=snap.shot_book,
            assets=snap.assets,
            scene_plans=snap.scene_plans,
            log_entries=snap.log_entries,
            api_call_summary=snap.api_call_summary,
            app_version=snap.app_version,
        )

    @classmethod
    async def install_from_vault(
        cls, vault: ProjectVault, slug: str, collaborator: GenerationCollaborator
    ) -> "ProductionSession":
        snapshot = await vault.load_project_state(slug)
        session = cls.from_snapshot(snapshot, collaborator)
        if not session.project_name:
            session.project_name = slug
        session.log(f"Project {slug} installed from vault", LogType.SUCCESS)
        return session

    @property
    def slug(self) -> str:
        return project_slug(self.project_name)

    # -------------------------------------------------------------------------
    # 日志 / 成本 (Logs / Cost)
    # -------------------------------------------------------------------------
    def log(self, message: str, log_type: LogType = LogType.INFO) -> LogEntry:
        entry = LogEntry(message=message, type=log_type)
        self.log_entries.append(entry)
        level = logging.ERROR if log_type == LogType.ERROR else logging.INFO
        logger.log(level, "[%s] %s", self.slug, message)
        return entry

    def estimated_cost(self) -> float:
        return estimate_cost(self.costs)

    def groups(self):
        return group_shots_by_scene(self.shot_book)

    def stop_generation(self) -> None:
        self.slot.request_stop()
        self.log("Stop requested; in-flight generation will finish", LogType.INFO)

    # -------------------------------------------------------------------------
    # 素材库 (Asset Library)
    # -------------------------------------------------------------------------
    def add_asset(self, asset: ProjectAsset) -> ProjectAsset:
        if any(a.id == asset.id for a in self.assets):
            raise ValueError(f"duplicate asset id {asset.id}")
        self.assets.append(asset)
        return asset

    def remove_asset(self, asset_id: str) -> None:
        # 镜头上残留的 id 在取素材时会被忽略
        self.assets[:] = [a for a in self.assets if a.id != asset_id]

    def update_asset_image(self, asset_id: str, image: IngredientImage) -> ProjectAsset:
        for asset in self.assets:
            if asset.id == asset_id:
                asset.image = image
                return asset
        raise KeyError(asset_id)

    # -------------------------------------------------------------------------
    # 快照与云同步 (Snapshot / Cloud Sync)
    # -------------------------------------------------------------------------
    def snapshot(self) -> ProjectSnapshot:
        return ProjectSnapshot(
            project_name=self.project_name,
            shot_book=[s.model_copy(deep=True) for s in self.shot_book],
            assets=[a.model_copy(deep=True) for a in self.assets],
            scene_plans=[p.model_copy(deep=True) for p in self.scene_plans] if self.scene_plans else None,
            log_entries=[e.model_copy() for e in self.log_entries],
            api_call_summary=self.costs.model_copy(deep=True),
            app_version=self.app_version,
            saved_at=utc_now_iso(),
        )

    async def sync_to_vault(self, vault: ProjectVault) -> str:
        snapshot = self.snapshot()
        slug = self.slug
        self.log(f"Cloud sync: pushing {slug}", LogType.STEP)
        try:
            url = await vault.save_project_state(slug, snapshot)
            await update_world_registry(vault.client, {"projects": [slug], "last_sync": snapshot.saved_at})
        except (VaultTransportError, AuthExchangeError) as e:
            self.log(f"Cloud sync failed: {e}", LogType.ERROR)
            raise
        self.log(f"Cloud sync complete: {url}", LogType.SUCCESS)
        return url

    async def archive_video(self, vault: ProjectVault, shot_id: str) -> str:
        """把已完成的视频转存到 vault，并把镜头上的地址换成 vault 地址。"""
        shot = self.lifecycle.get(shot_id)
        if shot.veo_status != VeoStatus.COMPLETED or not shot.veo_video_url:
            raise InvalidTransitionError(shot_id, "archive video for", "no completed video")
        url = await vault.relay_generated_video(shot.veo_video_url, self.slug, shot.id)
        self.lifecycle.attach_video_url(shot_id, url)
        self.log(f"Video for {shot_id} archived to vault", LogType.SUCCESS)
        return url
