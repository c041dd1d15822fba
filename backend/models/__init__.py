"""
数据模型目录
"""

from .account import AdminUser, new_id

__all__ = ["AdminUser", "new_id"]
