"""
工具函数目录
按功能分类组织
"""

from .sanitize import sanitize_input, validate_name, sanitize_description
from .storage import BlobStore, LocalBlobStore, StorageError, get_blob_store

__all__ = [
    # 输入清洗
    "sanitize_input",
    "validate_name",
    "sanitize_description",
    # 对象存储
    "BlobStore",
    "LocalBlobStore",
    "StorageError",
    "get_blob_store",
]
