"""
标准错误码体系
提供统一的错误码定义和异常处理
"""

from typing import Optional, Any, Dict
from enum import IntEnum
from fastapi import status
from fastapi.responses import JSONResponse


class ErrorCode(IntEnum):
    """
    标准错误码

    错误码规范：
    - 0: 成功
    - 1xxx: 系统级错误
    - 2xxx: 认证/授权错误
    - 3xxx: 业务通用错误
    - 4xxx: 文件管理模块错误
    - 5xxx: 第三方服务错误
    """

    # ==================== 成功 ====================
    SUCCESS = 0

    # ==================== 系统级错误 (1xxx) ====================
    INTERNAL_ERROR = 1000           # 服务器内部错误
    DATABASE_ERROR = 1001           # 数据库错误

    # ==================== 认证/授权错误 (2xxx) ====================
    UNAUTHORIZED = 2001             # 未认证（未登录）
    PERMISSION_DENIED = 2004        # 权限不足
    LOGIN_FAILED = 2007             # 登录失败

    # ==================== 业务通用错误 (3xxx) ====================
    VALIDATION_ERROR = 3001         # 参数验证失败
    RESOURCE_NOT_FOUND = 3002       # 资源不存在
    INVALID_OPERATION = 3006        # 无效操作
    FILE_TOO_LARGE = 3009           # 文件过大
    FILE_TYPE_NOT_ALLOWED = 3010    # 文件类型不允许

    # ==================== 文件管理模块 (4xxx) ====================
    UPLOAD_FAILED = 4201            # 上传失败
    PREVIEW_FAILED = 4202           # 预览链接生成失败

    # ==================== 第三方服务错误 (5xxx) ====================
    STORAGE_ERROR = 5004            # 存储服务错误


# 错误码对应的默认消息
ERROR_MESSAGES: Dict[int, str] = {
    ErrorCode.SUCCESS: "操作成功",

    # 系统级
    ErrorCode.INTERNAL_ERROR: "服务器内部错误，请稍后重试",
    ErrorCode.DATABASE_ERROR: "数据库操作失败",

    # 认证/授权
    ErrorCode.UNAUTHORIZED: "请先登录",
    ErrorCode.PERMISSION_DENIED: "没有权限执行此操作",
    ErrorCode.LOGIN_FAILED: "用户名或密码错误",

    # 业务通用
    ErrorCode.VALIDATION_ERROR: "参数验证失败",
    ErrorCode.RESOURCE_NOT_FOUND: "请求的资源不存在",
    ErrorCode.INVALID_OPERATION: "无效的操作",
    ErrorCode.FILE_TOO_LARGE: "文件大小超出限制",
    ErrorCode.FILE_TYPE_NOT_ALLOWED: "不支持的文件类型",

    # 文件管理
    ErrorCode.UPLOAD_FAILED: "文件上传失败",
    ErrorCode.PREVIEW_FAILED: "预览加载失败，请重试",

    # 第三方服务
    ErrorCode.STORAGE_ERROR: "存储服务异常",
}

# 错误码对应的 HTTP 状态码
ERROR_HTTP_STATUS: Dict[int, int] = {
    ErrorCode.SUCCESS: status.HTTP_200_OK,

    # 系统级 -> 500
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DATABASE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,

    # 认证/授权 -> 401/403
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.LOGIN_FAILED: status.HTTP_401_UNAUTHORIZED,

    # 业务通用 -> 400/404/409/413/415
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_OPERATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.FILE_TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ErrorCode.FILE_TYPE_NOT_ALLOWED: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,

    # 存储/上传/预览 -> 502
    ErrorCode.UPLOAD_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.PREVIEW_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.STORAGE_ERROR: status.HTTP_502_BAD_GATEWAY,
}


class AppException(Exception):
    """
    应用异常基类

    用于抛出业务异常，包含错误码和详细信息

    Usage:
        raise AppException(ErrorCode.RESOURCE_NOT_FOUND, "文件夹不存在")
        raise AppException(ErrorCode.VALIDATION_ERROR, data={"field": "name", "error": "名称不能为空"})
    """

    def __init__(
        self,
        code: int = ErrorCode.INTERNAL_ERROR,
        message: Optional[str] = None,
        data: Any = None
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "未知错误")
        self.data = data
        self.http_status = ERROR_HTTP_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """转换为 JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict()
        )

    def to_dict(self) -> dict:
        """转换为字典"""
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data
        }


class ValidationException(AppException):
    """参数验证异常（名称、描述、文件类型、大小），不会触达后端"""

    def __init__(self, message: str = "参数验证失败", errors: Optional[list] = None,
                 code: int = ErrorCode.VALIDATION_ERROR):
        super().__init__(
            code=code,
            message=message,
            data={"errors": errors} if errors else None
        )


class SizeExceededException(ValidationException):
    """文件超出大小限制"""

    def __init__(self, size: int, limit: int):
        super().__init__(
            message=f"文件大小超过限制（最大 {limit / 1024 / 1024:.1f}MB，当前文件 {size / 1024 / 1024:.1f}MB）",
            code=ErrorCode.FILE_TOO_LARGE
        )
        self.data = {"size": size, "limit": limit}


class TypeRejectedException(ValidationException):
    """文件类型不在允许列表中"""

    def __init__(self, mime_type: Optional[str]):
        super().__init__(
            message=f"不支持的文件类型: {mime_type or '未知'}",
            code=ErrorCode.FILE_TYPE_NOT_ALLOWED
        )
        self.data = {"mime_type": mime_type}


class AuthException(AppException):
    """认证异常"""

    def __init__(
        self,
        code: int = ErrorCode.UNAUTHORIZED,
        message: Optional[str] = None
    ):
        super().__init__(code=code, message=message)


class NotFoundException(AppException):
    """资源不存在异常"""

    def __init__(self, resource: str = "资源", resource_id: Any = None):
        message = f"{resource}不存在"
        if resource_id:
            message = f"{resource} (ID: {resource_id}) 不存在"
        super().__init__(
            code=ErrorCode.RESOURCE_NOT_FOUND,
            message=message
        )


class PermissionException(AppException):
    """权限异常"""

    def __init__(self, message: str = "没有权限执行此操作"):
        super().__init__(
            code=ErrorCode.PERMISSION_DENIED,
            message=message
        )


class BusinessException(AppException):
    """业务异常（如移动文件夹形成循环）"""

    def __init__(
        self,
        code: int = ErrorCode.INVALID_OPERATION,
        message: str = "操作失败",
        data: Any = None
    ):
        super().__init__(code=code, message=message, data=data)


class BackendException(AppException):
    """元数据或存储操作失败，不自动重试"""

    def __init__(self, message: str = "存储服务异常", code: int = ErrorCode.STORAGE_ERROR):
        super().__init__(code=code, message=message)


class UploadException(AppException):
    """上传失败：存储写入失败，或元数据写入失败（已回收存储对象）"""

    def __init__(self, message: str = "文件上传失败", filename: Optional[str] = None):
        super().__init__(
            code=ErrorCode.UPLOAD_FAILED,
            message=message,
            data={"filename": filename} if filename else None
        )


class PreviewException(AppException):
    """签名链接生成失败，可由用户重试"""

    def __init__(self, message: str = "预览加载失败，请重试"):
        super().__init__(code=ErrorCode.PREVIEW_FAILED, message=message)


# ==================== 异常处理器 ====================

async def app_exception_handler(request, exc: AppException):
    """AppException 异常处理器"""
    return exc.to_response()


def register_exception_handlers(app):
    """
    注册异常处理器

    在 main.py 中调用：
        from core.errors import register_exception_handlers
        register_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    app.add_exception_handler(AppException, app_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "code": ErrorCode.VALIDATION_ERROR,
                "message": "参数验证失败",
                "data": {"errors": errors}
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request, exc: StarletteHTTPException):
        # 映射 HTTP 状态码到业务错误码
        code_mapping = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.PERMISSION_DENIED,
            404: ErrorCode.RESOURCE_NOT_FOUND,
            500: ErrorCode.INTERNAL_ERROR,
        }

        code = code_mapping.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        message = str(exc.detail) if exc.detail else ERROR_MESSAGES.get(code, "请求失败")

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "code": code,
                "message": message,
                "data": None
            },
            headers=getattr(exc, "headers", None)
        )
