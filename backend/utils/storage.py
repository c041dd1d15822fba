"""
对象存储工具
以"存储桶"形式管理二进制对象：上传、下载、删除、签名访问链接

BlobStore 定义存储后端需要提供的能力，LocalBlobStore 为本地文件系统实现。
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, List, Iterable

from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger(__name__)

BUCKET_POLICY_FILE = ".bucket.json"


class StorageError(Exception):
    """存储操作失败"""
    pass


class BlobNotFoundError(StorageError):
    """对象不存在"""
    pass


class BlobExistsError(StorageError):
    """对象已存在（未开启覆盖）"""
    pass


class BlobStore(ABC):
    """存储后端接口"""

    @abstractmethod
    def ensure_bucket(self) -> bool:
        """确保存储桶存在，返回是否新建"""

    @abstractmethod
    async def upload(self, path: str, content: bytes, content_type: Optional[str] = None,
                     upsert: bool = False) -> str:
        """写入对象，返回对象路径"""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """读取对象内容"""

    @abstractmethod
    async def remove(self, paths: Iterable[str]) -> List[str]:
        """批量删除对象，返回实际删除的路径"""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """对象是否存在"""

    @abstractmethod
    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        """生成限时访问链接"""

    @abstractmethod
    def verify_signed_token(self, token: str) -> str:
        """校验签名令牌，返回对象路径"""


class LocalBlobStore(BlobStore):
    """本地文件系统存储桶"""

    def __init__(
        self,
        root_dir: str,
        bucket: str,
        public: bool = True,
        allowed_mime_prefixes: Optional[List[str]] = None,
        file_size_limit: Optional[int] = None,
        url_prefix: str = "/api/v1/filemanager/blob",
    ):
        # 使用绝对路径，避免工作目录差异导致多处生成 storage
        self.root_dir = Path(root_dir).resolve()
        self.bucket = bucket
        self.bucket_dir = self.root_dir / bucket
        self.public = public
        self.allowed_mime_prefixes = list(allowed_mime_prefixes or [])
        self.file_size_limit = file_size_limit
        self.url_prefix = url_prefix

    # ============ 存储桶 ============

    @property
    def policy_file(self) -> Path:
        return self.bucket_dir / BUCKET_POLICY_FILE

    def ensure_bucket(self) -> bool:
        if self.policy_file.is_file():
            return False

        self.bucket_dir.mkdir(parents=True, exist_ok=True)
        policy = {
            "name": self.bucket,
            "public": self.public,
            "allowed_mime_types": self.allowed_mime_prefixes,
            "file_size_limit": self.file_size_limit,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.policy_file.write_text(json.dumps(policy, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info(f"存储桶已创建: {self.bucket} -> {self.bucket_dir}")
        return True

    def get_policy(self) -> dict:
        """读取存储桶策略"""
        self.ensure_bucket()
        return json.loads(self.policy_file.read_text(encoding="utf-8"))

    # ============ 路径安全 ============

    def _resolve(self, path: str) -> Path:
        """
        将对象路径解析为桶内的绝对路径

        Raises:
            StorageError: 路径不安全（路径遍历、绝对路径、策略文件）
        """
        if not path or '..' in path or path.startswith('/') or '\\' in path:
            logger.warning(f"检测到可疑路径: {path}")
            raise StorageError(f"非法的对象路径: {path}")

        full_path = (self.bucket_dir / path).resolve()
        bucket_root = self.bucket_dir.resolve()
        if bucket_root not in full_path.parents or full_path.name == BUCKET_POLICY_FILE:
            logger.warning(f"路径遍历尝试被阻止: {path}")
            raise StorageError(f"非法的对象路径: {path}")
        return full_path

    def _check_policy(self, content: bytes, content_type: Optional[str]) -> None:
        if self.file_size_limit is not None and len(content) > self.file_size_limit:
            raise StorageError(f"对象大小超过存储桶限制（{self.file_size_limit} 字节）")
        if self.allowed_mime_prefixes and content_type:
            if not any(content_type.startswith(prefix) for prefix in self.allowed_mime_prefixes):
                raise StorageError(f"存储桶不接受该类型: {content_type}")

    # ============ 对象操作 ============

    async def upload(self, path: str, content: bytes, content_type: Optional[str] = None,
                     upsert: bool = False) -> str:
        self.ensure_bucket()
        full_path = self._resolve(path)
        self._check_policy(content, content_type)

        if full_path.exists() and not upsert:
            raise BlobExistsError(f"对象已存在: {path}")

        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(content)
        except OSError as e:
            raise StorageError(f"对象写入失败: {path}, 错误: {e}") from e

        logger.debug(f"对象已写入: {path} ({len(content)} 字节)")
        return path

    async def download(self, path: str) -> bytes:
        full_path = self._resolve(path)
        if not full_path.is_file():
            raise BlobNotFoundError(f"对象不存在: {path}")
        try:
            return full_path.read_bytes()
        except OSError as e:
            raise StorageError(f"对象读取失败: {path}, 错误: {e}") from e

    async def remove(self, paths: Iterable[str]) -> List[str]:
        removed = []
        for path in paths:
            full_path = self._resolve(path)
            if not full_path.exists():
                continue
            try:
                full_path.unlink()
            except OSError as e:
                raise StorageError(f"对象删除失败: {path}, 错误: {e}") from e
            removed.append(path)
            self._prune_empty_dirs(full_path.parent)
        return removed

    def _prune_empty_dirs(self, directory: Path) -> None:
        """删除对象后清理空目录（不越过桶根目录）"""
        bucket_root = self.bucket_dir.resolve()
        while directory != bucket_root and bucket_root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                break
            directory = directory.parent

    async def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    # ============ 签名链接 ============

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        if not await self.exists(path):
            raise BlobNotFoundError(f"对象不存在: {path}")

        settings = get_settings()
        payload = {
            "path": path,
            "bucket": self.bucket,
            "type": "blob",
            "exp": datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds),
        }
        token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        return f"{self.url_prefix}?token={token}"

    def verify_signed_token(self, token: str) -> str:
        settings = get_settings()
        try:
            payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        except JWTError as e:
            raise StorageError("签名链接无效或已过期") from e

        if payload.get("type") != "blob" or payload.get("bucket") != self.bucket:
            raise StorageError("签名链接无效或已过期")
        return payload["path"]


# 全局存储实例
_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    """获取存储实例"""
    global _blob_store
    if _blob_store is None:
        settings = get_settings()
        _blob_store = LocalBlobStore(
            root_dir=settings.storage_root,
            bucket=settings.bucket_name,
            public=settings.bucket_public,
            allowed_mime_prefixes=settings.allowed_mime_prefixes,
            file_size_limit=settings.max_upload_size,
        )
    return _blob_store


def set_blob_store(store: Optional[BlobStore]) -> None:
    """替换全局存储实例（测试或接入其他后端时使用）"""
    global _blob_store
    _blob_store = store


def reset_blob_store() -> None:
    set_blob_store(None)
