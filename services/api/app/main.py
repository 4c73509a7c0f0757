# services/api/app/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# -----------------------------------------------------------------------------
# 核心模块导入 (Core Module Imports)
# -----------------------------------------------------------------------------
from .core.config import settings
from .core.exceptions import register_exception_handlers
from .api.v1 import routes_shots, routes_vault

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# FastAPI 生命周期事件 (Lifespan Events)
# -----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    启动时按 LOG_LEVEL 配置日志；会话只在内存里，关闭前需要先 sync 到 vault。
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("--- 应用启动 --- %s v%s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.APP_ENV)
    yield
    logger.info("--- 应用关闭 ---")

# -----------------------------------------------------------------------------
# FastAPI 应用实例化 (App Instantiation)
# -----------------------------------------------------------------------------
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

register_exception_handlers(app)

# -----------------------------------------------------------------------------
# 中间件配置 (Middleware Configuration)
# -----------------------------------------------------------------------------
# 允许的源从 settings.CORS_ORIGINS 读取（逗号分隔）
if settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# -----------------------------------------------------------------------------
# API 路由注册 (API Router Registration)
# -----------------------------------------------------------------------------
app.include_router(routes_shots.router, prefix="/api/v1", tags=["shots"])
app.include_router(routes_vault.router, prefix="/api/v1", tags=["vault"])

# -----------------------------------------------------------------------------
# 根路由 / 健康检查 (Root Route / Health Check)
# -----------------------------------------------------------------------------
@app.get("/", tags=["Health Check"])
def read_root():
    """
    根路由，返回一个简单的欢迎信息，用于确认服务正在运行。
    """
    return {"message": f"Welcome to {settings.APP_NAME}!"}
