from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from providers.auth.secret_manager import SecretAccessError
from providers.auth.service_account import AuthExchangeError
from providers.llm.base import GenerationFailureError
from providers.storage.gcs_io import VaultTransportError
from providers.storage.vault_ops import ProjectNotFoundError
from services.api.app.core.sessions import ProjectNotOpenError
from workers.production.errors import (
    GenerationInProgressError,
    InvalidTransitionError,
    ReferenceIndexError,
    ShotNotFoundError,
)

# 异常 -> (HTTP 状态码, error code)
_ERROR_MAP = (
    (ShotNotFoundError, 404, "shot_not_found"),
    (ProjectNotFoundError, 404, "project_not_found"),
    (ProjectNotOpenError, 404, "project_not_open"),
    (ReferenceIndexError, 404, "reference_not_found"),
    (InvalidTransitionError, 409, "invalid_transition"),
    (GenerationInProgressError, 409, "generation_in_progress"),
    (GenerationFailureError, 502, "generation_failed"),
    (VaultTransportError, 502, "vault_transport"),
    (AuthExchangeError, 502, "auth_exchange"),
    (SecretAccessError, 502, "secret_access"),
)


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(HTTPException)
    async def http_exception_handler(_, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    for exc_type, status_code, code in _ERROR_MAP:
        app.add_exception_handler(exc_type, _domain_handler(status_code, code))


def _domain_handler(status_code: int, code: str):
    async def handler(_: Request, exc: Exception):
        return JSONResponse(status_code=status_code, content={"detail": {"error": code, "message": str(exc)}})
    return handler
