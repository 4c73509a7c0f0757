# services/api/app/core/vault.py
"""
Vault 访问入口
- 有 VAULT_ACCESS_TOKEN 就直接用（手工粘贴的 bearer token）
- 否则用 GOOGLE_APPLICATION_CREDENTIALS 指向的服务账号换 token
- token 由这里按 expires_in 判断过期并重新换取；minter 本身不缓存
"""
import logging
from typing import Optional

from providers.auth.service_account import (
    AccessToken,
    AuthExchangeError,
    load_service_account,
    mint_access_token,
)
from providers.storage.gcs_io import VaultClient
from providers.storage.vault_ops import ProjectVault

from .config import Settings, settings

logger = logging.getLogger(__name__)


class VaultAccess:
    def __init__(self, cfg: Settings = settings):
        self.cfg = cfg
        self._token: Optional[AccessToken] = None

    async def access_token(self) -> str:
        if self.cfg.VAULT_ACCESS_TOKEN:
            return self.cfg.VAULT_ACCESS_TOKEN
        if self._token is not None and not self._token.is_expired():
            return self._token.access_token
        if not self.cfg.GOOGLE_APPLICATION_CREDENTIALS:
            raise AuthExchangeError("No service account configured (GOOGLE_APPLICATION_CREDENTIALS)")
        credential = load_service_account(self.cfg.GOOGLE_APPLICATION_CREDENTIALS)
        self._token = await mint_access_token(credential)
        logger.info("vault token minted, expires in %ss", self._token.expires_in)
        return self._token.access_token

    async def project_vault(self) -> ProjectVault:
        token = await self.access_token()
        return ProjectVault(VaultClient(self.cfg.VAULT_BUCKET, token, base_url=self.cfg.VAULT_BASE_URL))


vault_access = VaultAccess()


async def get_project_vault() -> ProjectVault:
    """FastAPI 依赖项"""
    return await vault_access.project_vault()
