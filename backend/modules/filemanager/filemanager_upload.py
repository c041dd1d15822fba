"""
上传流程

校验 -> 生成对象路径 -> 写入存储桶 -> 写入元数据
元数据写入失败时删除已写入的对象（补偿），避免产生孤立对象
"""

import time
import logging
from typing import Optional, Callable, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import AppException, NotFoundException, UploadException
from utils.sanitize import validate_name, sanitize_description, validate_file_size, validate_mime_type
from utils.storage import BlobStore, BlobExistsError, StorageError

from .filemanager_models import StoredFile
from .filemanager_resolver import TreeResolver
from .filemanager_schemas import UploadOutcome, FileInfo

logger = logging.getLogger(__name__)

# (文件名, 内容, MIME类型)
UploadItem = Tuple[str, bytes, Optional[str]]

# 路径冲突时最多重试次数
MAX_PATH_ATTEMPTS = 5


def millis() -> int:
    return int(time.time() * 1000)


def build_storage_path(name: str, folder_id: Optional[str], token: int) -> str:
    """时间戳 + 原文件名，非根目录再加文件夹ID前缀"""
    filename = f"{token}-{name}"
    return f"{folder_id}/{filename}" if folder_id else filename


def coarse_type(mime_type: Optional[str]) -> str:
    """MIME 主类型，如 image/png -> image"""
    if not mime_type:
        return "unknown"
    return mime_type.split("/")[0] or "unknown"


class UploadPipeline:
    """单个文件的上传流程"""

    def __init__(
        self,
        db: AsyncSession,
        blob_store: BlobStore,
        resolver: TreeResolver,
        clock: Callable[[], int] = millis
    ):
        self.db = db
        self.blob_store = blob_store
        self.resolver = resolver
        self.clock = clock
        self.settings = get_settings()

    def validate(self, name: str, size: int, mime_type: Optional[str]) -> str:
        """按 大小 -> 类型 -> 名称 的顺序校验，返回清洗后的文件名"""
        validate_file_size(size, self.settings.max_upload_size)
        validate_mime_type(mime_type, self.settings.allowed_mime_prefixes)
        return validate_name(name, "文件名")

    async def _store_blob(self, name: str, content: bytes, mime_type: Optional[str],
                          folder_id: Optional[str]) -> str:
        """写入存储桶，路径冲突时递增时间戳重试"""
        token = self.clock()
        for _ in range(MAX_PATH_ATTEMPTS):
            path = build_storage_path(name, folder_id, token)
            try:
                return await self.blob_store.upload(path, content, content_type=mime_type)
            except BlobExistsError:
                token += 1
            except StorageError as e:
                logger.error(f"文件写入存储失败: {path}, 错误: {e}")
                raise UploadException(f"文件 {name} 写入存储失败: {e}", filename=name) from e
        raise UploadException(f"文件 {name} 存储路径冲突，请重试", filename=name)

    async def upload(
        self,
        content: bytes,
        name: str,
        size: int,
        mime_type: Optional[str],
        folder_id: Optional[str],
        description: Optional[str] = None
    ) -> StoredFile:
        safe_name = self.validate(name, size, mime_type)
        safe_description = sanitize_description(description)

        if folder_id is not None and await self.resolver.get_folder(folder_id) is None:
            raise NotFoundException("目标文件夹", folder_id)

        # 第一步：写入对象
        storage_path = await self._store_blob(safe_name, content, mime_type, folder_id)

        # 第二步：写入元数据，失败则回收对象
        record = StoredFile(
            name=safe_name,
            description=safe_description,
            file_type=coarse_type(mime_type),
            file_size=size,
            storage_path=storage_path,
            folder_id=folder_id,
            mime_type=mime_type,
        )
        try:
            self.db.add(record)
            await self.db.commit()
            await self.db.refresh(record)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"文件元数据写入失败: {safe_name}, 错误: {e}")
            await self._compensate(storage_path)
            raise UploadException(f"文件 {safe_name} 保存失败", filename=safe_name) from e

        self.resolver.invalidate(folder_id)
        logger.info(f"文件上传成功: {safe_name} -> {storage_path} ({size} 字节)")
        return record

    async def _compensate(self, storage_path: str) -> None:
        try:
            await self.blob_store.remove([storage_path])
            logger.info(f"已回收未登记的存储对象: {storage_path}")
        except StorageError as e:
            logger.error(f"回收存储对象失败，产生孤立对象: {storage_path}, 错误: {e}")

    async def upload_many(self, items: List[UploadItem], folder_id: Optional[str],
                          description: Optional[str] = None) -> List[UploadOutcome]:
        """
        一次操作上传多个文件

        每个文件独立成功或失败，互不影响。共用一个数据库会话，因此逐个执行
        """
        outcomes = []
        for filename, content, mime_type in items:
            try:
                record = await self.upload(content, filename, len(content), mime_type, folder_id, description)
                outcomes.append(UploadOutcome(
                    success=True,
                    filename=record.name,
                    file=FileInfo.model_validate(record)
                ))
            except AppException as e:
                logger.warning(f"文件 {filename} 上传失败: {e.message}")
                outcomes.append(UploadOutcome(
                    success=False,
                    filename=filename,
                    error=e.message,
                    code=e.code
                ))
        return outcomes
