from fastapi import Header, HTTPException, status

from .config import settings


def verify_api_key(x_api_key: str | None = Header(default=None)):
    expected = settings.SERVICE_API_KEY.strip()
    if expected and (not x_api_key or x_api_key != expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
