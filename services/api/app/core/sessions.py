# services/api/app/core/sessions.py
"""
进程内的项目会话表：每个 slug 一个 ProductionSession（单一逻辑执行者）
"""
from typing import Dict, List

from workers.production.errors import LifecycleError
from workers.production.session import ProductionSession


class ProjectNotOpenError(LifecycleError):
    def __init__(self, slug: str):
        super().__init__(f"Project {slug} is not open")
        self.slug = slug


class SessionStore:
    def __init__(self):
        self._sessions: Dict[str, ProductionSession] = {}

    def put(self, session: ProductionSession) -> ProductionSession:
        self._sessions[session.slug] = session
        return session

    def get(self, slug: str) -> ProductionSession:
        try:
            return self._sessions[slug]
        except KeyError:
            raise ProjectNotOpenError(slug) from None

    def __contains__(self, slug: str) -> bool:
        return slug in self._sessions

    def slugs(self) -> List[str]:
        return sorted(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()


session_store = SessionStore()
