# -*- coding: utf-8 -*-
"""
GCS 对象读写 (Object Vault Client)
- 直接走 GCS JSON API，所有请求带 Authorization: Bearer <token>
- 读：GET  .../o/<urlencoded path>?alt=media       (404 -> None)
- 写：POST .../o?uploadType=media&name=<path>       (原始字节 + Content-Type)
- 列：GET  .../o?prefix=<p>&delimiter=/            (读取 prefixes)
- 非 2xx 一律抛 VaultTransportError，不重试
"""
import base64
import json
import logging
from typing import Any, Optional, Set, Union
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

GCS_BASE_URL = "https://storage.googleapis.com"
JSON_MIME = "application/json"

Payload = Union[bytes, str, dict, list]


class VaultTransportError(Exception):
    """存储返回非成功状态；带 provider 的错误信息。"""

    def __init__(self, message: str, status_code: Optional[int] = None, path: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path


def provider_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return err["message"]
    if isinstance(err, str):
        return err
    return f"HTTP {response.status_code}"


def encode_payload(payload: Payload, mime_type: str) -> bytes:
    """
    dict/list -> JSON；JSON 类型的 str -> UTF-8；
    其它 str 视为 base64 (可带 data: 前缀) 先解码；bytes 原样发送。
    """
    if isinstance(payload, (dict, list)):
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
    if isinstance(payload, bytes):
        return payload
    if mime_type.startswith(JSON_MIME) or mime_type.startswith("text/"):
        return payload.encode("utf-8")
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    return base64.b64decode(payload)


class VaultClient:
    def __init__(
        self,
        bucket: str,
        access_token: str,
        *,
        base_url: str = GCS_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not bucket:
            raise ValueError("缺少 vault bucket 名称")
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self._token = access_token
        self._http = http_client

    @property
    def _headers(self):
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        if self._http is not None:
            return await self._http.request(method, url, headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=None) as client:
            return await client.request(method, url, headers=headers, **kwargs)

    def public_url(self, path: str) -> str:
        return f"{GCS_BASE_URL}/{self.bucket}/{path}"

    async def get(self, path: str) -> Optional[bytes]:
        url = f"{self.base_url}/storage/v1/b/{self.bucket}/o/{quote(path, safe='')}"
        response = await self._request("GET", url, params={"alt": "media"})
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise VaultTransportError(provider_message(response), response.status_code, path)
        return response.content

    async def get_json(self, path: str) -> Optional[Any]:
        raw = await self.get(path)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise VaultTransportError(f"Corrupt JSON object {path}: {e}", path=path) from e

    async def put(self, path: str, payload: Payload, mime_type: str) -> str:
        """
        上传对象，返回 https://storage.googleapis.com/<bucket>/<path>
        """
        url = f"{self.base_url}/upload/storage/v1/b/{self.bucket}/o"
        response = await self._request(
            "POST",
            url,
            params={"uploadType": "media", "name": path},
            content=encode_payload(payload, mime_type),
            headers={"Content-Type": mime_type},
        )
        if not response.is_success:
            message = provider_message(response)
            logger.error("vault upload failed %s: %s", path, message)
            raise VaultTransportError(message or "GCS Upload Failed", response.status_code, path)
        logger.info("vault upload ok gs://%s/%s", self.bucket, path)
        return self.public_url(path)

    async def list(self, prefix: str) -> Set[str]:
        """prefix 下一级“目录”名集合（去掉前缀与结尾的 /）。"""
        url = f"{self.base_url}/storage/v1/b/{self.bucket}/o"
        params = {"prefix": prefix, "delimiter": "/"}
        names: Set[str] = set()
        while True:
            response = await self._request("GET", url, params=params)
            if not response.is_success:
                raise VaultTransportError(provider_message(response), response.status_code, prefix)
            data = response.json()
            for p in data.get("prefixes", []):
                child = p[len(prefix):] if p.startswith(prefix) else p
                child = child.rstrip("/")
                if child:
                    names.add(child)
            token = data.get("nextPageToken")
            if not token:
                return names
            params = {**params, "pageToken": token}
