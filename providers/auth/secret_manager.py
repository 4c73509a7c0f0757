# -*- coding: utf-8 -*-
"""
Secret Manager 读取：取某个 secret 的最新版本并 base64 解码
用于拿视频服务的 API key 或服务账号 key 文档。
"""
import base64
from typing import Optional

import httpx

from providers.storage.gcs_io import provider_message

SECRET_MANAGER_BASE = "https://secretmanager.googleapis.com/v1"


class SecretAccessError(Exception):
    """读取 secret 失败；消息来自 provider 的 error.message。"""

    def __init__(self, message: str, status_code: Optional[int] = None, secret: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.secret = secret


async def fetch_secret(
    access_token: str,
    project: str,
    secret: str,
    *,
    version: str = "latest",
    http_client: Optional[httpx.AsyncClient] = None,
) -> str:
    url = f"{SECRET_MANAGER_BASE}/projects/{project}/secrets/{secret}/versions/{version}:access"
    headers = {"Authorization": f"Bearer {access_token}"}

    if http_client is None:
        async with httpx.AsyncClient(timeout=None) as client:
            response = await client.get(url, headers=headers)
    else:
        response = await http_client.get(url, headers=headers)

    if not response.is_success:
        raise SecretAccessError(
            f"Secret Manager failed for {secret}: {provider_message(response)}",
            status_code=response.status_code,
            secret=secret,
        )
    payload = response.json().get("payload", {}).get("data", "")
    return base64.b64decode(payload).decode("utf-8")
