"""
输入清洗与校验
用户提交的名称、描述在进入后端前统一经过这里
"""

import re
from typing import Optional, Iterable

from core.errors import ValidationException, SizeExceededException, TypeRejectedException

MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000

_TAG_CHARS = re.compile(r'[<>]')
_JS_SCHEME = re.compile(r'javascript:', re.IGNORECASE)
_EVENT_HANDLER = re.compile(r'on\w+=', re.IGNORECASE)
_RESERVED_CHARS = re.compile(r'[/\\:*?"<>|]')
_TRAVERSAL_PATTERNS = ('..', './', '.\\')


def sanitize_input(value: str) -> str:
    """
    清洗用户输入，防止 XSS

    去除尖括号、javascript: 协议前缀、onxxx= 事件属性，并去掉首尾空白
    """
    value = _TAG_CHARS.sub('', value)
    value = _JS_SCHEME.sub('', value)
    value = _EVENT_HANDLER.sub('', value)
    return value.strip()


def has_control_chars(value: str) -> bool:
    return any(ord(c) < 32 or ord(c) == 127 for c in value)


def validate_name(name: Optional[str], label: str = "名称") -> str:
    """
    校验文件/文件夹名称，返回清洗后的名称

    Raises:
        ValidationException: 名称为空、过长、含保留字符或路径穿越片段
    """
    if name is None:
        raise ValidationException(f"{label}不能为空")

    # 控制字符在清洗前检查，避免被 strip 掉首尾的制表符/换行
    if has_control_chars(name):
        raise ValidationException(f"{label}包含非法的控制字符")

    sanitized = sanitize_input(name)

    if not sanitized:
        raise ValidationException(f"{label}不能为空")

    if len(sanitized) > MAX_NAME_LENGTH:
        raise ValidationException(f"{label}长度不能超过 {MAX_NAME_LENGTH} 个字符")

    if _RESERVED_CHARS.search(sanitized):
        raise ValidationException(f'{label}不能包含以下字符: / \\ : * ? " < > |')

    if any(pattern in sanitized for pattern in _TRAVERSAL_PATTERNS):
        raise ValidationException(f"{label}格式不合法")

    return sanitized


def sanitize_description(description: Optional[str]) -> Optional[str]:
    """清洗描述，空字符串视为清空"""
    if description is None:
        return None
    cleaned = sanitize_input(description)
    if len(cleaned) > MAX_DESCRIPTION_LENGTH:
        raise ValidationException(f"描述长度不能超过 {MAX_DESCRIPTION_LENGTH} 个字符")
    return cleaned or None


def validate_file_size(size: int, limit: int) -> None:
    if size > limit:
        raise SizeExceededException(size, limit)


def validate_mime_type(mime_type: Optional[str], allowed_prefixes: Iterable[str]) -> None:
    if not mime_type or not any(mime_type.startswith(prefix) for prefix in allowed_prefixes):
        raise TypeRejectedException(mime_type)

