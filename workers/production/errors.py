# -*- coding: utf-8 -*-
"""镜头生命周期相关异常"""
from typing import Optional


class LifecycleError(Exception):
    pass


class ShotNotFoundError(LifecycleError):
    def __init__(self, shot_id: str):
        super().__init__(f"Shot {shot_id} not found")
        self.shot_id = shot_id


class InvalidTransitionError(LifecycleError):
    """命令在镜头当前状态下不合法。"""

    def __init__(self, shot_id: str, action: str, reason: str):
        super().__init__(f"Cannot {action} shot {shot_id}: {reason}")
        self.shot_id = shot_id
        self.action = action
        self.reason = reason


class ShotLockedError(InvalidTransitionError):
    def __init__(self, shot_id: str, action: str):
        super().__init__(shot_id, action, "shot is approved and locked")


class ReferenceIndexError(LifecycleError, IndexError):
    def __init__(self, shot_id: str, index: int):
        super().__init__(f"Shot {shot_id} has no ad-hoc reference at index {index}")
        self.shot_id = shot_id
        self.index = index


class GenerationInProgressError(LifecycleError):
    """生成槽位被占用时，拒绝再发起第二个生成类命令。"""

    def __init__(self, holder: Optional[str]):
        super().__init__(f"Another generation is in progress ({holder})")
        self.holder = holder
