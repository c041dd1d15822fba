"""
统一鉴权模块
提供JWT令牌生成、验证和密码处理功能
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
import bcrypt
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .config import get_settings

# Bearer令牌认证（访客无令牌时不自动报错）
security = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    """令牌数据"""
    user_id: str
    username: str
    role: str = "admin"
    session_id: Optional[str] = None


class TokenResponse(BaseModel):
    """令牌响应"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int


def hash_password(password: str) -> str:
    """
    加密密码
    bcrypt 限制密码长度不超过 72 字节
    """
    password_bytes = str(password).encode('utf-8')[:72]
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证密码"""
    password_bytes = str(plain_password).encode('utf-8')[:72]
    hashed_bytes = hashed_password.encode('utf-8')

    try:
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        # 存储的哈希格式损坏
        return False


def create_token(data: TokenData, expires_delta: Optional[timedelta] = None) -> str:
    """
    创建JWT访问令牌

    Args:
        data: 令牌数据
        expires_delta: 过期时间增量，默认使用配置值
    """
    settings = get_settings()
    to_encode = data.model_dump()

    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expire_minutes)

    to_encode.update({
        "session_id": data.session_id or uuid.uuid4().hex,
        "exp": datetime.now(timezone.utc) + expires_delta,
        "type": "access"
    })

    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[TokenData]:
    """解码JWT访问令牌，无效或过期返回 None"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None
    return TokenData(**payload)


def authenticate(token: str) -> Optional[TokenData]:
    """解码令牌并确认其会话仍在持久化槽位中（未登出），否则返回 None"""
    token_data = decode_token(token)
    if token_data is None:
        return None

    # 延迟导入，会话模块依赖本模块
    from .session import get_session_store
    if not get_session_store().is_active(token_data.session_id):
        return None
    return token_data


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenData:
    """获取当前用户（依赖注入用），未登录或已登出时返回 401"""
    token_data = authenticate(credentials.credentials) if credentials else None

    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭据",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return token_data


def require_admin():
    """仅允许管理员访问（role=admin）"""
    async def admin_checker(user: TokenData = Depends(get_current_user)) -> TokenData:
        if user.role != "admin":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="仅管理员可执行此操作"
            )
        return user
    return admin_checker
