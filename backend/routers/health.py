"""
健康检查路由
检查数据库连接与存储桶状态
"""

import time
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.database import engine
from utils.storage import get_blob_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["健康检查"])


class ComponentHealth(BaseModel):
    """组件健康状态"""
    status: str  # healthy, degraded, unhealthy
    message: Optional[str] = None
    latency_ms: Optional[float] = None


class HealthStatus(BaseModel):
    """健康状态响应"""
    status: str
    version: str
    timestamp: str
    components: dict


async def check_database() -> ComponentHealth:
    """检查数据库连接"""
    start = time.time()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"数据库健康检查失败: {e}")
        return ComponentHealth(status="unhealthy", message=f"数据库连接失败: {e}")

    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", message="数据库连接正常", latency_ms=round(latency, 2))


def check_bucket() -> ComponentHealth:
    """检查存储桶（不存在时按配置创建）"""
    try:
        store = get_blob_store()
        store.ensure_bucket()
    except OSError as e:
        logger.error(f"存储桶检查失败: {e}")
        return ComponentHealth(status="unhealthy", message=f"存储桶不可用: {e}")
    return ComponentHealth(status="healthy", message="存储桶可用")


@router.get("/health", response_model=HealthStatus)
async def health_check():
    """健康检查端点"""
    db_health = await check_database()
    bucket_health = check_bucket()

    statuses = {db_health.status, bucket_health.status}
    overall_status = "unhealthy" if "unhealthy" in statuses else "healthy"

    return HealthStatus(
        status=overall_status,
        version=get_settings().app_version,
        timestamp=datetime.now(timezone.utc).isoformat(),
        components={
            "database": db_health.model_dump(),
            "bucket": bucket_health.model_dump(),
        }
    )
