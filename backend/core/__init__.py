"""
File Explorer 核心模块
提供应用的基础设施和通用功能

导出列表：
- 配置管理: get_settings, Settings
- 数据库: Base, get_db, async_session
- 安全认证: get_current_user, authenticate, require_admin
- 会话上下文: SessionContext, SessionStore
- 错误处理: ErrorCode, AppException 及其子类
"""

# 配置管理
from .config import get_settings, Settings, reload_settings

# 数据库
from .database import Base, get_db, async_session, init_db, close_db

# 安全认证
from .security import (
    get_current_user,
    authenticate,
    require_admin,
    create_token,
    decode_token,
    hash_password,
    verify_password,
    TokenData
)

# 会话上下文
from .session import SessionContext, SessionStore, get_session_context, get_session_store, restore_sessions

# 错误处理
from .errors import (
    ErrorCode,
    AppException,
    ValidationException,
    SizeExceededException,
    TypeRejectedException,
    AuthException,
    NotFoundException,
    PermissionException,
    BusinessException,
    BackendException,
    UploadException,
    PreviewException,
    register_exception_handlers
)


__all__ = [
    # 配置
    "get_settings",
    "Settings",
    "reload_settings",

    # 数据库
    "Base",
    "get_db",
    "async_session",
    "init_db",
    "close_db",

    # 安全
    "get_current_user",
    "authenticate",
    "require_admin",
    "create_token",
    "decode_token",
    "hash_password",
    "verify_password",
    "TokenData",

    # 会话
    "SessionContext",
    "SessionStore",
    "get_session_context",
    "get_session_store",
    "restore_sessions",

    # 错误
    "ErrorCode",
    "AppException",
    "ValidationException",
    "SizeExceededException",
    "TypeRejectedException",
    "AuthException",
    "NotFoundException",
    "PermissionException",
    "BusinessException",
    "BackendException",
    "UploadException",
    "PreviewException",
    "register_exception_handlers",
]
