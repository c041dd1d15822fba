"""
File Explorer - 主入口
基于FastAPI的文件管理后端：文件夹/文件浏览、上传、预览、移动、重命名、删除

访客可浏览与下载，管理员登录后可进行写操作
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings
from core.database import init_db, close_db
from core.bootstrap import init_admin_user, init_bucket
from core.errors import register_exception_handlers
from core.session import get_session_store, restore_sessions
from routers import auth, health
from modules.filemanager.filemanager_router import router as filemanager_router

settings = get_settings()

# 配置日志
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# 减少第三方库的日志输出
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # ==================== 启动阶段 ====================
    logger.info(f"🚀 正在启动 {settings.app_name} v{settings.app_version}...")

    # 1. 初始化数据库
    await init_db()

    # 2. 确保存储桶存在
    init_bucket()

    # 3. 初始化默认管理员账户（首次启动时）
    admin_result = await init_admin_user()
    if admin_result.get("created"):
        logger.warning(f"⚠️ 已创建默认管理员: {admin_result['username']} / {admin_result['password']}")
        logger.warning("   请尽快登录并修改密码！")

    # 4. 恢复持久化的管理员会话
    restored = restore_sessions(get_session_store())
    if restored:
        logger.info(f"✅ 已恢复 {restored} 个管理员会话")

    logger.info("✅ 启动完成")

    yield

    # ==================== 关闭阶段 ====================
    await close_db()
    logger.info("👋 系统已关闭")


# ==================== 创建应用 ====================
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="文件管理后端：目录树浏览、上传、预览、移动与删除",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

# CORS 跨域配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

# ==================== 异常处理器 ====================
register_exception_handlers(app)

# ==================== 路由 ====================
app.include_router(auth.router)
app.include_router(filemanager_router)
app.include_router(health.router)


@app.get("/api", include_in_schema=False)
async def api_info():
    """API 信息"""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/api/docs",
        "health": "/health",
    }


# ==================== 启动入口 ====================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
