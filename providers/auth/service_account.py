# -*- coding: utf-8 -*-
"""
服务账号 -> Bearer Token (Credential Minter)
- 用服务账号私钥签一个 RS256 JWT 断言，换取短期 access token
- 不缓存、不刷新：调用方自己按 expires_in 判断过期 (AccessToken.is_expired)
- 交换失败抛 AuthExchangeError，消息来自 provider 的 error_description
"""
import base64
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import httpx
from google.auth import crypt
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_S = 3600


class AuthExchangeError(Exception):
    """凭证交换被拒绝。对 vault 操作是致命的，但不影响整个会话。"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceAccountCredential(BaseModel):
    # key 文件里的其余字段 (project_id, private_key_id ...) 忽略
    model_config = ConfigDict(extra="ignore")

    client_email: str
    private_key: str
    token_uri: str = DEFAULT_TOKEN_URI


@dataclass
class AccessToken:
    access_token: str
    expires_in: int
    issued_at: float = field(default_factory=time.time)

    def is_expired(self, now: Optional[float] = None, skew: int = 300) -> bool:
        """离过期不足 skew 秒也视为过期。"""
        now = time.time() if now is None else now
        return now >= self.issued_at + self.expires_in - skew


def load_service_account(source: Union[str, Path, Mapping[str, Any]]) -> ServiceAccountCredential:
    """从 key 文件路径、JSON 字符串或 dict 读取服务账号。"""
    if isinstance(source, Mapping):
        return ServiceAccountCredential.model_validate(dict(source))
    text = str(source)
    if text.lstrip().startswith("{"):
        return ServiceAccountCredential.model_validate_json(text)
    return ServiceAccountCredential.model_validate_json(Path(text).read_text(encoding="utf-8"))


def _b64url(data: Union[bytes, Dict[str, Any]]) -> str:
    if isinstance(data, dict):
        data = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def build_assertion(credential: ServiceAccountCredential, now: Optional[int] = None) -> str:
    """
    header.claim.signature 三段式 JWT：
      header = {alg: RS256, typ: JWT}
      claim  = {iss, scope, aud, iat, exp=iat+3600}
    签名：RSASSA-PKCS1-v1_5 / SHA-256
    """
    now = int(time.time()) if now is None else int(now)
    header = {"alg": "RS256", "typ": "JWT"}
    claim = {
        "iss": credential.client_email,
        "scope": CLOUD_PLATFORM_SCOPE,
        "aud": credential.token_uri,
        "iat": now,
        "exp": now + ASSERTION_LIFETIME_S,
    }
    signing_input = f"{_b64url(header)}.{_b64url(claim)}"
    signer = crypt.RSASigner.from_string(credential.private_key)
    signature = signer.sign(signing_input.encode("ascii"))
    return f"{signing_input}.{_b64url(signature)}"


def _error_description(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return body.get("error_description") or body.get("error") or json.dumps(body)
    return str(body)


async def mint_access_token(
    credential: ServiceAccountCredential,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    now: Optional[int] = None,
) -> AccessToken:
    """
    POST <token_uri>  grant_type=jwt-bearer&assertion=<jwt>
    :return: AccessToken(access_token, expires_in)
    """
    assertion = build_assertion(credential, now=now)
    data = {"grant_type": JWT_BEARER_GRANT, "assertion": assertion}

    if http_client is None:
        async with httpx.AsyncClient(timeout=None) as client:
            response = await client.post(credential.token_uri, data=data)
    else:
        response = await http_client.post(credential.token_uri, data=data)

    if not response.is_success:
        detail = _error_description(response)
        logger.error("OAuth exchange failed for %s: %s", credential.client_email, detail)
        raise AuthExchangeError(f"OAuth Exchange Failed: {detail}", status_code=response.status_code)

    token_data = response.json()
    logger.info("OAuth exchange succeeded for %s", credential.client_email)
    return AccessToken(
        access_token=token_data["access_token"],
        expires_in=int(token_data.get("expires_in", ASSERTION_LIFETIME_S)),
    )
