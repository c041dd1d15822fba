"""
数据验证模式目录
"""

from .auth import AdminLogin, SessionInfo
from .response import ApiResponse, success

__all__ = [
    # 认证
    "AdminLogin", "SessionInfo",
    # 响应
    "ApiResponse", "success"
]
