"""
文件管理业务逻辑服务
"""

import logging
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import (
    ErrorCode, ValidationException, NotFoundException, BusinessException,
    BackendException, PreviewException
)
from core.session import SessionContext
from utils.sanitize import validate_name, sanitize_description, sanitize_input
from utils.storage import BlobStore, BlobNotFoundError, StorageError, get_blob_store

from .filemanager_models import Folder, StoredFile
from .filemanager_resolver import TreeResolver
from .filemanager_upload import UploadPipeline, UploadItem
from .filemanager_view import project, to_entries
from .filemanager_schemas import (
    FolderInfo, FileInfo, BreadcrumbItem, Location, DirectoryContents,
    ViewState, SignedUrl, UploadOutcome
)

logger = logging.getLogger(__name__)

ROOT_NAME = "根目录"

# 各类型允许编辑的字段
EDITABLE_FIELDS = {
    "folder": {"name", "description", "icon"},
    "file": {"name", "description"},
}


class FileManagerService:
    """文件管理服务"""

    def __init__(self, db: AsyncSession, session: SessionContext, blob_store: Optional[BlobStore] = None):
        self.db = db
        self.session = session
        self.storage = blob_store or get_blob_store()
        self.resolver = TreeResolver(db)
        self.uploader = UploadPipeline(db, self.storage, self.resolver)
        self.settings = get_settings()

    async def _commit(self, action: str) -> None:
        """提交事务，失败回滚并转换为 BackendException"""
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{action}失败: {e}")
            raise BackendException(f"{action}失败", code=ErrorCode.DATABASE_ERROR) from e

    @property
    def _actor(self) -> str:
        return self.session.user.username if self.session.user else "visitor"

    # ============ 读取 ============

    async def get_folder(self, folder_id: str) -> Folder:
        folder = await self.resolver.get_folder(folder_id)
        if folder is None:
            raise NotFoundException("文件夹", folder_id)
        return folder

    async def get_file(self, file_id: str) -> StoredFile:
        file = await self.resolver.get_file(file_id)
        if file is None:
            raise NotFoundException("文件", file_id)
        return file

    async def resolve_path(self, folder_id: Optional[str]) -> List[Folder]:
        return await self.resolver.resolve_path(folder_id)

    async def get_location(self, folder_id: Optional[str]) -> Location:
        """当前位置与面包屑（首项固定为根目录）"""
        path = await self.resolver.resolve_path(folder_id)
        breadcrumbs = [BreadcrumbItem(id=None, name=ROOT_NAME)]
        breadcrumbs.extend(BreadcrumbItem(id=f.id, name=f.name) for f in path)
        return Location(folder_id=folder_id, breadcrumbs=breadcrumbs)

    async def browse(self, folder_id: Optional[str] = None, view: Optional[ViewState] = None) -> DirectoryContents:
        """浏览目录：解析子项 -> 关键词过滤 -> 列表项"""
        view = view or ViewState()
        if folder_id is not None:
            await self.get_folder(folder_id)

        folders, files = await self.resolver.resolve_children(folder_id, view.sort_by, view.sort_order)
        visible_folders, visible_files = project(folders, files, view.search)

        return DirectoryContents(
            location=await self.get_location(folder_id),
            view=view,
            folders=[FolderInfo.model_validate(f) for f in visible_folders],
            files=[FileInfo.model_validate(f) for f in visible_files],
            entries=to_entries(visible_folders, visible_files),
            total_folders=len(visible_folders),
            total_files=len(visible_files),
        )

    # ============ 文件夹操作 ============

    async def create_folder(
        self,
        parent_id: Optional[str],
        name: str,
        description: Optional[str] = None,
        icon: Optional[str] = None
    ) -> Folder:
        """创建文件夹"""
        self.session.require_admin()
        safe_name = validate_name(name, "文件夹名称")
        safe_description = sanitize_description(description)
        safe_icon = self._clean_icon(icon)

        if parent_id is not None:
            await self.get_folder(parent_id)

        folder = Folder(
            name=safe_name,
            description=safe_description,
            parent_id=parent_id,
            icon=safe_icon,
        )
        self.db.add(folder)
        await self._commit("创建文件夹")
        await self.db.refresh(folder)

        self.resolver.invalidate(parent_id)
        logger.info(f"用户 {self._actor} 创建文件夹: {safe_name} (parent={parent_id})")
        return folder

    def _clean_icon(self, icon: Optional[str]) -> Optional[str]:
        if icon is None:
            return None
        cleaned = sanitize_input(icon)
        if len(cleaned) > 32:
            raise ValidationException("图标标识不能超过 32 个字符")
        return cleaned or None

    async def rename_or_describe(self, kind: str, item_id: str, fields: Dict[str, Any]):
        """
        修改名称/描述/图标（部分更新，只处理 fields 中出现的键）

        Args:
            kind: "folder" 或 "file"
            item_id: 目标ID
            fields: 要修改的字段
        """
        self.session.require_admin()
        if kind not in EDITABLE_FIELDS:
            raise ValidationException(f"未知的类型: {kind}")

        unknown = set(fields) - EDITABLE_FIELDS[kind]
        if unknown:
            raise ValidationException(f"不可修改的字段: {', '.join(sorted(unknown))}")

        changes: Dict[str, Any] = {}
        if "name" in fields:
            label = "文件夹名称" if kind == "folder" else "文件名"
            changes["name"] = validate_name(fields["name"], label)
        if "description" in fields:
            changes["description"] = sanitize_description(fields["description"])
        if "icon" in fields:
            changes["icon"] = self._clean_icon(fields["icon"])

        item = await (self.get_folder(item_id) if kind == "folder" else self.get_file(item_id))
        if not changes:
            return item

        for key, value in changes.items():
            setattr(item, key, value)
        await self._commit("更新" + ("文件夹" if kind == "folder" else "文件"))
        await self.db.refresh(item)

        parent_id = item.parent_id if kind == "folder" else item.folder_id
        self.resolver.invalidate(parent_id)
        logger.info(f"用户 {self._actor} 更新{kind}: {item_id} {sorted(changes)}")
        return item

    async def move_folder(self, folder_id: str, target_parent_id: Optional[str]) -> Folder:
        """移动文件夹，禁止移动到自身或其子孙下"""
        self.session.require_admin()
        folder = await self.get_folder(folder_id)

        if target_parent_id is not None:
            if target_parent_id == folder_id:
                raise BusinessException(message="不能将文件夹移动到自己")
            await self.get_folder(target_parent_id)
            if await self.resolver.is_descendant(target_parent_id, folder_id):
                raise BusinessException(message="不能将文件夹移动到其子文件夹")

        source_parent_id = folder.parent_id
        folder.parent_id = target_parent_id
        await self._commit("移动文件夹")
        await self.db.refresh(folder)

        self.resolver.invalidate(source_parent_id, target_parent_id)
        logger.info(f"用户 {self._actor} 移动文件夹: {folder_id} {source_parent_id} -> {target_parent_id}")
        return folder

    async def delete_folder(self, folder_id: str) -> List[str]:
        """
        删除文件夹及其全部子孙

        先删除子树内所有文件的存储对象，失败则不动任何元数据；
        再在同一事务中删除文件记录和文件夹记录（由深到浅）

        Returns:
            被删除的文件夹ID列表
        """
        self.session.require_admin()
        folder = await self.get_folder(folder_id)
        parent_id = folder.parent_id

        folder_ids, files = await self.resolver.collect_subtree(folder_id)
        storage_paths = [f.storage_path for f in files]

        if storage_paths:
            try:
                await self.storage.remove(storage_paths)
            except StorageError as e:
                logger.error(f"删除文件夹 {folder_id} 的存储对象失败: {e}")
                raise BackendException(f"删除文件夹失败：{e}") from e

        if files:
            await self.db.execute(
                delete(StoredFile).where(StoredFile.id.in_([f.id for f in files]))
            )
        for fid in reversed(folder_ids):
            await self.db.execute(delete(Folder).where(Folder.id == fid))
        await self._commit("删除文件夹")

        self.resolver.invalidate(parent_id, *folder_ids)
        logger.info(
            f"用户 {self._actor} 删除文件夹: {folder_id}（含 {len(folder_ids) - 1} 个子文件夹，{len(files)} 个文件）"
        )
        return folder_ids

    # ============ 文件操作 ============

    async def upload(
        self,
        content: bytes,
        name: str,
        mime_type: Optional[str],
        folder_id: Optional[str] = None,
        description: Optional[str] = None,
        size: Optional[int] = None
    ) -> StoredFile:
        """上传单个文件"""
        self.session.require_admin()
        size = len(content) if size is None else size
        return await self.uploader.upload(content, name, size, mime_type, folder_id, description)

    async def upload_many(self, items: List[UploadItem], folder_id: Optional[str] = None,
                          description: Optional[str] = None) -> List[UploadOutcome]:
        """批量上传，逐个独立"""
        self.session.require_admin()
        logger.info(f"用户 {self._actor} 开始批量上传 {len(items)} 个文件，folder_id: {folder_id}")
        return await self.uploader.upload_many(items, folder_id, description)

    async def move_file(self, file_id: str, target_folder_id: Optional[str]) -> StoredFile:
        """移动文件（只改 folder_id，存储路径不变）"""
        self.session.require_admin()
        file = await self.get_file(file_id)

        if target_folder_id is not None:
            await self.get_folder(target_folder_id)

        source_folder_id = file.folder_id
        file.folder_id = target_folder_id
        await self._commit("移动文件")
        await self.db.refresh(file)

        self.resolver.invalidate(source_folder_id, target_folder_id)
        logger.info(f"用户 {self._actor} 移动文件: {file.name} {source_folder_id} -> {target_folder_id}")
        return file

    async def delete_file(self, file_id: str) -> StoredFile:
        """删除文件：先删存储对象，成功后再删元数据"""
        self.session.require_admin()
        file = await self.get_file(file_id)

        try:
            await self.storage.remove([file.storage_path])
        except StorageError as e:
            logger.error(f"删除存储对象失败，保留元数据: {file.storage_path}, 错误: {e}")
            raise BackendException(f"删除文件失败：{e}") from e

        await self.db.delete(file)
        await self._commit("删除文件")

        self.resolver.invalidate(file.folder_id)
        logger.info(f"用户 {self._actor} 删除文件: {file.name}")
        return file

    # ============ 预览与下载 ============

    async def create_preview_url(self, file_id: str, ttl_seconds: Optional[int] = None) -> SignedUrl:
        """生成限时预览链接"""
        file = await self.get_file(file_id)
        ttl = ttl_seconds or self.settings.signed_url_ttl
        try:
            url = await self.storage.create_signed_url(file.storage_path, ttl)
        except StorageError as e:
            logger.warning(f"预览链接生成失败: {file.storage_path}, 错误: {e}")
            raise PreviewException() from e
        return SignedUrl(file_id=file.id, url=url, expires_in=ttl)

    async def download(self, file_id: str) -> Tuple[StoredFile, bytes]:
        """读取文件内容"""
        file = await self.get_file(file_id)
        try:
            content = await self.storage.download(file.storage_path)
        except BlobNotFoundError as e:
            raise BackendException("文件已丢失") from e
        except StorageError as e:
            raise BackendException(f"下载文件失败：{e}") from e
        return file, content

    async def open_signed(self, token: str) -> Tuple[str, bytes, Optional[StoredFile]]:
        """按签名令牌读取对象，返回 (对象路径, 内容, 对应的文件记录)"""
        try:
            path = self.storage.verify_signed_token(token)
            content = await self.storage.download(path)
        except StorageError as e:
            raise PreviewException(str(e)) from e

        file = await self.resolver.get_file_by_path(path)
        return path, content, file
