# services/api/app/core/config.py

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    统一管理项目的所有配置。
    使用 pydantic-settings，这个类会自动从环境变量或 .env 文件中读取配置。
    """

    # -------------------------------------------------------------------------
    # App 基础配置 (Basic App Settings)
    # -------------------------------------------------------------------------
    APP_NAME: str = "Aether Shot Studio"
    APP_ENV: str = "dev"
    APP_VERSION: str = "5.0"
    APP_TIMEZONE: str = "UTC"
    LOG_LEVEL: str = "INFO"

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # -------------------------------------------------------------------------
    # 安全配置 (Security Settings)
    # -------------------------------------------------------------------------
    # 为空时不校验 X-API-Key
    SERVICE_API_KEY: str = ""
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # -------------------------------------------------------------------------
    # 存储 (Vault / Google Cloud Storage)
    # -------------------------------------------------------------------------
    VAULT_BUCKET: str = "veo-prompt-machine"
    VAULT_BASE_URL: str = "https://storage.googleapis.com"
    # 服务账号 key 文件路径；或者直接给一个现成的 bearer token
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    VAULT_ACCESS_TOKEN: Optional[str] = None

    # Secret Manager（视频服务 key 等）
    SECRET_MANAGER_PROJECT: Optional[str] = None
    VEO_SECRET_NAME: str = "GCP-VEO-PROMPT"

    # -------------------------------------------------------------------------
    # 生成模型 (Generation Models)
    # -------------------------------------------------------------------------
    GOOGLE_API_KEY: Optional[str] = None
    VERTEX_PROJECT: Optional[str] = None
    VERTEX_LOCATION: str = "us-central1"
    PRO_MODEL: str = "gemini-2.5-pro"
    FLASH_MODEL: str = "gemini-2.5-flash"
    IMAGE_MODEL: str = "gemini-2.5-flash-image"
    VIDEO_MODEL: str = "veo-3.0-generate-001"
    VIDEO_POLL_INTERVAL_S: float = 10.0

    # -------------------------------------------------------------------------
    # 队列 (Celery)
    # -------------------------------------------------------------------------
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding='utf-8', extra='ignore')

# 全局唯一的 settings 实例
# from services.api.app.core.config import settings
settings = Settings()
