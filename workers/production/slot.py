# -*- coding: utf-8 -*-
"""
单槽位生成闸门 (Generation Slot)
- 整个镜头表同一时刻只允许一个生成类操作
- 只读 / 非生成命令（审批、素材勾选）不经过这里
- hold() 在任何退出路径（包括失败）都会释放
- request_stop() 只阻止批处理继续排下一个镜头，不会中断正在进行的调用
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from workers.production.errors import GenerationInProgressError


class GenerationSlot:
    def __init__(self):
        self._holder: Optional[str] = None
        self._stop_requested = False

    @property
    def busy(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        self._stop_requested = True

    def clear_stop(self) -> None:
        self._stop_requested = False

    @asynccontextmanager
    async def hold(self, label: str) -> AsyncIterator[None]:
        # 单线程事件循环里，检查与占用之间没有 await
        if self._holder is not None:
            raise GenerationInProgressError(self._holder)
        self._holder = label
        try:
            yield
        finally:
            self._holder = None
