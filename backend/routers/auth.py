"""
认证路由
管理员登录、登出、会话查询
"""

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from core.database import get_db
from core.config import get_settings
from core.errors import AuthException, ErrorCode
from core.security import verify_password, create_token, TokenData, TokenResponse, get_current_user
from core.session import SessionContext, get_session_context, get_session_store
from models import AdminUser
from schemas import AdminLogin, SessionInfo, ApiResponse, success

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["认证"])


@router.post("/login", response_model=ApiResponse[TokenResponse])
async def login(data: AdminLogin, db: AsyncSession = Depends(get_db)):
    """管理员登录"""
    result = await db.execute(select(AdminUser).where(AdminUser.username == data.username))
    user = result.scalar_one_or_none()

    # 用户不存在与密码错误返回同样的提示
    if user is None or not verify_password(data.password, user.password_hash):
        logger.warning(f"管理员登录失败: {data.username}")
        raise AuthException(ErrorCode.LOGIN_FAILED)

    token = create_token(TokenData(user_id=user.id, username=user.username, role="admin"))
    SessionContext().remember(get_session_store(), token)

    logger.info(f"管理员登录成功: {user.username}")
    settings = get_settings()
    return success(TokenResponse(
        access_token=token,
        expires_in=settings.jwt_expire_minutes * 60
    ).model_dump(), "登录成功")


@router.post("/logout")
async def logout(current_user: TokenData = Depends(get_current_user)):
    """登出：移除当前会话，令牌随即失效（其他管理员不受影响）"""
    SessionContext(user=current_user).logout(get_session_store())
    logger.info(f"管理员登出: {current_user.username}")
    return success(message="登出成功")


@router.get("/me", response_model=ApiResponse[SessionInfo])
async def get_session_info(session: SessionContext = Depends(get_session_context)):
    """当前会话：管理员模式或访客模式"""
    info = SessionInfo(
        is_admin=session.is_admin,
        username=session.user.username if session.user else None,
        mode="admin" if session.is_admin else "visitor"
    )
    return success(info.model_dump())
