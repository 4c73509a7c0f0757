# -*- coding: utf-8 -*-
"""
镜头生命周期状态机 (Shot Lifecycle)

主流程:
    PENDING_JSON -> GENERATING_JSON -> PENDING_KEYFRAME_PROMPT
    -> GENERATING_KEYFRAME_PROMPT -> NEEDS_KEYFRAME_GENERATION
    -> GENERATING_IMAGE -> NEEDS_REVIEW -> APPROVED
    任一 GENERATING_* 失败 -> GENERATION_FAILED（可重新下发同一命令）

视频子状态:
    IDLE -> QUEUED -> GENERATING -> COMPLETED / FAILED

约定:
    - 已审批 (is_approved) 的镜头拒绝所有会改动内容的命令，直到取消审批
    - 生成失败从不清掉已有的 veo_json / keyframe_image / veo_video_url
    - 成本计数只在协作方调用成功后记一次
    - 同一镜头上的命令由调用方串行；这里不排队
"""
import copy
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from providers.llm.base import GenerationCollaborator, GenerationFailureError, GenerationResult
from schemas.assembly import LogType
from schemas.cost import ApiCallSummary
from schemas.shot import (
    GENERATING_STATES,
    ExtensionUnit,
    IngredientImage,
    ProjectAsset,
    Shot,
    ShotStatus,
    VeoShotWrapper,
    VeoStatus,
)
from workers.production.errors import (
    InvalidTransitionError,
    ReferenceIndexError,
    ShotLockedError,
    ShotNotFoundError,
)
from workers.production.slot import GenerationSlot

logger = logging.getLogger(__name__)

DEFAULT_SCENE_GROUP = "intro"

BREAKDOWN_SOURCES = frozenset({ShotStatus.PENDING_JSON, ShotStatus.GENERATION_FAILED})
KEYFRAME_PROMPT_SOURCES = frozenset({
    ShotStatus.PENDING_KEYFRAME_PROMPT,
    ShotStatus.NEEDS_KEYFRAME_GENERATION,
    ShotStatus.NEEDS_REVIEW,
    ShotStatus.GENERATION_FAILED,
})
ACTIVE_VIDEO_STATES = frozenset({VeoStatus.QUEUED, VeoStatus.GENERATING})

LogFn = Callable[[str, LogType], Any]


def group_shots_by_scene(shots: Sequence[Shot]) -> Dict[str, List[Shot]]:
    """
    按 id 第一个 '_' 之前的前缀分组；没有 '_' 的归入 intro。保持插入顺序。
    以 '_' 开头的 id (如 _a) 前缀为空串，单独成组，不并入 intro。
    """
    groups: Dict[str, List[Shot]] = {}
    for shot in shots:
        group = shot.scene_group
        groups.setdefault(DEFAULT_SCENE_GROUP if group is None else group, []).append(shot)
    return groups


def _default_log(message: str, log_type: LogType) -> None:
    level = logging.ERROR if log_type == LogType.ERROR else logging.INFO
    logger.log(level, message)


class ShotLifecycle:
    def __init__(
        self,
        shot_book: List[Shot],
        collaborator: GenerationCollaborator,
        *,
        assets: Optional[List[ProjectAsset]] = None,
        slot: Optional[GenerationSlot] = None,
        costs: Optional[ApiCallSummary] = None,
        log: Optional[LogFn] = None,
    ):
        self.shot_book = shot_book
        self.collaborator = collaborator
        self.assets = assets if assets is not None else []
        self.slot = slot or GenerationSlot()
        self.costs = costs or ApiCallSummary()
        self._log = log or _default_log

    # -------------------------------------------------------------------------
    # 查询 (Lookup)
    # -------------------------------------------------------------------------
    def get(self, shot_id: str) -> Shot:
        for shot in self.shot_book:
            if shot.id == shot_id:
                return shot
        raise ShotNotFoundError(shot_id)

    def _unlocked(self, shot_id: str, action: str) -> Shot:
        shot = self.get(shot_id)
        if shot.is_approved:
            raise ShotLockedError(shot_id, action)
        return shot

    def _assets_for(self, shot: Shot) -> List[ProjectAsset]:
        selected = set(shot.selected_asset_ids)
        return [a for a in self.assets if a.id in selected]

    async def _call(self, shot: Shot, what: str, call: Awaitable[GenerationResult]) -> GenerationResult:
        try:
            result = await call
        except GenerationFailureError:
            raise
        except Exception as e:
            raise GenerationFailureError(f"{what} failed for {shot.id}: {e}") from e
        self.costs.record(result.usage.tier, result.usage.input_tokens, result.usage.output_tokens)
        return result

    # -------------------------------------------------------------------------
    # 1. 镜头分解 JSON (Breakdown)
    # -------------------------------------------------------------------------
    def _check_breakdown(self, shot: Shot, feedback: Optional[str]) -> None:
        if shot.is_approved:
            raise ShotLockedError(shot.id, "generate breakdown for")
        if feedback:
            if shot.status in GENERATING_STATES:
                raise InvalidTransitionError(shot.id, "refine", f"status is {shot.status.value}")
        elif shot.status not in BREAKDOWN_SOURCES:
            raise InvalidTransitionError(shot.id, "generate breakdown for", f"status is {shot.status.value}")

    async def request_breakdown(self, shot_id: str, feedback: Optional[str] = None) -> Shot:
        shot = self.get(shot_id)
        self._check_breakdown(shot, feedback)
        async with self.slot.hold(f"breakdown:{shot_id}"):
            await self._run_breakdown(shot, feedback)
        return shot

    async def _run_breakdown(self, shot: Shot, feedback: Optional[str] = None) -> None:
        shot.status = ShotStatus.GENERATING_JSON
        self._log(f"Director: drafting breakdown for {shot.id}", LogType.STEP)
        try:
            result = await self._call(
                shot, "breakdown",
                self.collaborator.generate_breakdown(shot, self._assets_for(shot), feedback),
            )
        except GenerationFailureError as e:
            shot.status = ShotStatus.GENERATION_FAILED
            self._log(f"Breakdown failed for {shot.id}: {e}", LogType.ERROR)
            raise
        shot.veo_json = result.value
        shot.status = ShotStatus.PENDING_KEYFRAME_PROMPT
        self._log(f"Breakdown ready for {shot.id}", LogType.SUCCESS)

    # -------------------------------------------------------------------------
    # 2. 关键帧提示词 (Keyframe Prompt)
    # -------------------------------------------------------------------------
    async def request_keyframe_prompt(self, shot_id: str) -> Shot:
        shot = self._unlocked(shot_id, "write keyframe prompt for")
        if shot.veo_json is None:
            raise InvalidTransitionError(shot_id, "write keyframe prompt for", "no breakdown yet")
        if shot.status not in KEYFRAME_PROMPT_SOURCES:
            raise InvalidTransitionError(shot_id, "write keyframe prompt for", f"status is {shot.status.value}")
        async with self.slot.hold(f"keyframe_prompt:{shot_id}"):
            shot.status = ShotStatus.GENERATING_KEYFRAME_PROMPT
            try:
                result = await self._call(
                    shot, "keyframe prompt",
                    self.collaborator.generate_keyframe_prompt(shot, self._assets_for(shot)),
                )
            except GenerationFailureError as e:
                shot.status = ShotStatus.GENERATION_FAILED
                self._log(f"Keyframe prompt failed for {shot.id}: {e}", LogType.ERROR)
                raise
            shot.keyframe_prompt_text = result.value
            shot.status = ShotStatus.NEEDS_KEYFRAME_GENERATION
        return shot

    # -------------------------------------------------------------------------
    # 3. 关键帧静帧 (Still)
    # -------------------------------------------------------------------------
    def _check_still(self, shot: Shot) -> None:
        if shot.is_approved:
            raise ShotLockedError(shot.id, "generate still for")
        if shot.status == ShotStatus.GENERATING_IMAGE:
            raise InvalidTransitionError(shot.id, "generate still for", "still already generating")

    async def request_still(self, shot_id: str) -> Shot:
        shot = self.get(shot_id)
        self._check_still(shot)
        async with self.slot.hold(f"still:{shot_id}"):
            await self._run_still(shot)
        return shot

    async def _run_still(self, shot: Shot) -> None:
        shot.status = ShotStatus.GENERATING_IMAGE
        self._log(f"Rendering keyframe for {shot.id}", LogType.STEP)
        try:
            result = await self._call(
                shot, "still",
                self.collaborator.generate_still(shot, self._assets_for(shot)),
            )
        except GenerationFailureError as e:
            shot.status = ShotStatus.GENERATION_FAILED
            self._log(f"Keyframe failed for {shot.id}: {e}", LogType.ERROR)
            raise
        shot.keyframe_image = result.value.base64
        shot.keyframe_mime_type = result.value.mime_type
        shot.status = ShotStatus.NEEDS_REVIEW
        self._log(f"Keyframe ready for {shot.id}", LogType.SUCCESS)

    # -------------------------------------------------------------------------
    # 4. 审批 (Approve / Unapprove)
    # -------------------------------------------------------------------------
    def approve(self, shot_id: str) -> Shot:
        shot = self.get(shot_id)
        if shot.is_approved:
            return shot
        if shot.status in GENERATING_STATES:
            raise InvalidTransitionError(shot_id, "approve", f"status is {shot.status.value}")
        # 延展镜头承接上一镜头的连续性，可以没有自己的关键帧
        if not shot.keyframe_image and not shot.is_extension:
            raise InvalidTransitionError(shot_id, "approve", "no keyframe image")
        shot.is_approved = True
        shot.status = ShotStatus.APPROVED
        self._log(f"Shot {shot_id} locked", LogType.INFO)
        return shot

    def unapprove(self, shot_id: str) -> Shot:
        shot = self.get(shot_id)
        shot.is_approved = False
        if shot.status == ShotStatus.APPROVED:
            shot.status = ShotStatus.NEEDS_REVIEW
        return shot

    # -------------------------------------------------------------------------
    # 5. 视频生成 (Video)
    # -------------------------------------------------------------------------
    async def request_video(self, shot_id: str, use_keyframe: Optional[bool] = None) -> Shot:
        shot = self.get(shot_id)
        if not shot.is_approved:
            raise InvalidTransitionError(shot_id, "generate video for", "shot is not approved")
        if shot.veo_status in ACTIVE_VIDEO_STATES:
            raise InvalidTransitionError(shot_id, "generate video for", f"video is {shot.veo_status.value}")
        async with self.slot.hold(f"video:{shot_id}"):
            if use_keyframe is not None:
                shot.veo_use_keyframe_as_reference = use_keyframe
            shot.veo_status = VeoStatus.QUEUED
            self._log(f"Veo job queued for {shot_id}", LogType.STEP)
            shot.veo_status = VeoStatus.GENERATING
            try:
                result = await self._call(
                    shot, "video",
                    self.collaborator.generate_video(shot, self._assets_for(shot)),
                )
            except GenerationFailureError as e:
                # 镜头保持 APPROVED，可直接重试
                shot.veo_status = VeoStatus.FAILED
                self._log(f"Veo generation failed for {shot_id}: {e}", LogType.ERROR)
                raise
            shot.veo_video_url = result.value
            shot.veo_status = VeoStatus.COMPLETED
            self._log(f"Veo video ready for {shot_id}", LogType.SUCCESS)
        return shot

    def attach_video_url(self, shot_id: str, url: str) -> Shot:
        shot = self.get(shot_id)
        shot.veo_video_url = url
        return shot

    def set_video_reference(
        self, shot_id: str, reference_url: Optional[str] = None, use_keyframe: Optional[bool] = None
    ) -> Shot:
        shot = self.get(shot_id)
        if reference_url is not None:
            shot.veo_reference_url = reference_url or None
        if use_keyframe is not None:
            shot.veo_use_keyframe_as_reference = use_keyframe
        return shot

    # -------------------------------------------------------------------------
    # 6. 延展镜头 (Extend)
    # -------------------------------------------------------------------------
    def extend(self, shot_id: str, directive: str) -> Shot:
        source = self.get(shot_id)
        directive = (directive or "").strip()
        if source.veo_json is None:
            raise InvalidTransitionError(shot_id, "extend", "no breakdown to continue from")
        if not directive:
            raise InvalidTransitionError(shot_id, "extend", "directive is empty")

        existing = {s.id for s in self.shot_book}
        n = 1
        while f"{source.id}_ext{n}" in existing:
            n += 1
        new_id = f"{source.id}_ext{n}"

        veo_shot = copy.deepcopy(source.veo_json.veo_shot)
        veo_shot["shot_id"] = new_id
        if isinstance(veo_shot.get("flags"), dict):
            veo_shot["flags"]["continuity_lock"] = True

        extension = Shot(
            id=new_id,
            status=ShotStatus.NEEDS_REVIEW,
            pitch=directive,
            scene_name=source.scene_name,
            veo_json=VeoShotWrapper(unit_type="extend", director_notes=directive, veo_shot=veo_shot),
            selected_asset_ids=list(source.selected_asset_ids),
            veo_reference_url=source.veo_video_url,
            kind=ExtensionUnit(parent_shot_id=source.id, directive=directive),
        )

        # 跳过源镜头后面整条延展链（子、孙 ...），新延展接在链尾
        chain = {source.id}
        index = self.shot_book.index(source) + 1
        while index < len(self.shot_book):
            nxt = self.shot_book[index]
            if not (isinstance(nxt.kind, ExtensionUnit) and nxt.kind.parent_shot_id in chain):
                break
            chain.add(nxt.id)
            index += 1
        self.shot_book.insert(index, extension)
        self._log(f"Extension unit {new_id} created from {shot_id}", LogType.INFO)
        return extension

    # -------------------------------------------------------------------------
    # 7. 素材绑定 (Assets)
    # -------------------------------------------------------------------------
    def toggle_asset(self, shot_id: str, asset_id: str) -> Shot:
        shot = self._unlocked(shot_id, "toggle asset on")
        if asset_id in shot.selected_asset_ids:
            shot.selected_asset_ids = [a for a in shot.selected_asset_ids if a != asset_id]
        else:
            shot.selected_asset_ids = [*shot.selected_asset_ids, asset_id]
        return shot

    def add_ad_hoc_asset(self, shot_id: str, image: IngredientImage) -> Shot:
        shot = self._unlocked(shot_id, "attach reference to")
        shot.ad_hoc_assets = [*(shot.ad_hoc_assets or []), image]
        return shot

    def remove_ad_hoc_asset(self, shot_id: str, index: int) -> Shot:
        """按位置删除，只影响这个镜头；并发删除时调用方需重新计算索引。"""
        shot = self._unlocked(shot_id, "remove reference from")
        refs = list(shot.ad_hoc_assets or [])
        if not 0 <= index < len(refs):
            raise ReferenceIndexError(shot_id, index)
        del refs[index]
        shot.ad_hoc_assets = refs
        return shot

    # -------------------------------------------------------------------------
    # 8. 手动编辑 (Manual edits)
    # -------------------------------------------------------------------------
    def update_shot(
        self,
        shot_id: str,
        *,
        pitch: Optional[str] = None,
        scene_name: Optional[str] = None,
        veo_json: Optional[Union[VeoShotWrapper, Mapping[str, Any]]] = None,
    ) -> Shot:
        shot = self._unlocked(shot_id, "edit")
        if shot.status in GENERATING_STATES:
            raise InvalidTransitionError(shot_id, "edit", f"status is {shot.status.value}")
        if pitch is not None:
            shot.pitch = pitch
        if scene_name is not None:
            shot.scene_name = scene_name
        if veo_json is not None:
            shot.veo_json = VeoShotWrapper.model_validate(veo_json)
            if shot.status == ShotStatus.PENDING_JSON:
                shot.status = ShotStatus.PENDING_KEYFRAME_PROMPT
        return shot

    # -------------------------------------------------------------------------
    # 9. 批处理 (Batch)
    # -------------------------------------------------------------------------
    async def _run_batch(
        self,
        label: str,
        wanted: Callable[[Shot], bool],
        run: Callable[[Shot], Awaitable[None]],
    ) -> List[str]:
        completed: List[str] = []
        async with self.slot.hold(label):
            self.slot.clear_stop()
            for shots in group_shots_by_scene(list(self.shot_book)).values():
                for shot in shots:
                    if not wanted(shot):
                        continue
                    if self.slot.stop_requested:
                        self._log(f"{label} stopped before {shot.id}", LogType.INFO)
                        return completed
                    try:
                        await run(shot)
                    except GenerationFailureError:
                        # 已记日志；继续下一个镜头
                        continue
                    completed.append(shot.id)
        return completed

    async def generate_all_stills(self) -> List[str]:
        def wanted(shot: Shot) -> bool:
            return (
                not shot.is_approved
                and not shot.is_extension
                and not shot.keyframe_image
                and shot.status not in GENERATING_STATES
            )

        return await self._run_batch("batch:stills", wanted, self._run_still)

    async def generate_all_breakdowns(self) -> List[str]:
        def wanted(shot: Shot) -> bool:
            return not shot.is_approved and shot.status == ShotStatus.PENDING_JSON

        return await self._run_batch("batch:breakdowns", wanted, self._run_breakdown)
