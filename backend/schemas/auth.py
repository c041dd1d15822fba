"""
认证数据验证
管理员登录、会话信息
"""

from typing import Optional
from pydantic import BaseModel, Field


class AdminLogin(BaseModel):
    """管理员登录"""
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)


class SessionInfo(BaseModel):
    """当前会话状态"""
    is_admin: bool
    username: Optional[str] = None
    mode: str  # admin / visitor
