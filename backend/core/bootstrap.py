"""
系统引导初始化
首次启动时自动创建默认管理员账户，并确保存储桶存在
"""

import logging
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .database import async_session
from .config import get_settings
from .security import hash_password
from models import AdminUser

logger = logging.getLogger(__name__)


async def init_admin_user():
    """
    初始化默认管理员账户
    仅在首次启动时创建，如果已存在管理员账户则跳过
    """
    settings = get_settings()

    # 清理密码字符串（移除可能的注释和空白字符）
    admin_password = settings.admin_password.strip()
    if '#' in admin_password:
        admin_password = admin_password.split('#')[0].strip()

    if not admin_password:
        logger.error("管理员密码不能为空")
        return {
            "created": False,
            "message": "管理员密码不能为空"
        }

    async with async_session() as db:
        result = await db.execute(select(AdminUser).limit(1))
        existing = result.scalar_one_or_none()
        if existing:
            logger.debug(f"管理员账户已存在: {existing.username}")
            return {
                "created": False,
                "message": f"管理员账户已存在: {existing.username}"
            }

        admin_user = AdminUser(
            username=settings.admin_username,
            password_hash=hash_password(admin_password),
        )
        db.add(admin_user)
        try:
            await db.commit()
        except IntegrityError:
            # 并发启动导致的唯一约束冲突
            await db.rollback()
            logger.info("管理员账户已存在（并发创建），跳过")
            return {"created": False, "message": "管理员账户已存在（并发创建）"}

        logger.info(f"默认管理员账户创建成功: {settings.admin_username}")
        logger.warning(f"⚠️  默认密码: {admin_password}，请立即修改！")

        return {
            "created": True,
            "username": settings.admin_username,
            "password": admin_password,
            "message": f"默认管理员账户已创建: {settings.admin_username}"
        }


def init_bucket() -> bool:
    """确保存储桶存在（不存在则按配置创建）"""
    from utils.storage import get_blob_store

    created = get_blob_store().ensure_bucket()
    if created:
        logger.info(f"已创建存储桶: {get_settings().bucket_name}")
    return created
