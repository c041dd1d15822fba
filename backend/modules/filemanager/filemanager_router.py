"""
文件管理 API 路由
访客可浏览、预览、下载；创建、上传、修改、移动、删除仅限管理员
"""

import logging
from typing import Optional, List
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, UploadFile, File, Form
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.security import require_admin, TokenData
from core.session import SessionContext, get_session_context
from schemas import ApiResponse, success

from .filemanager_schemas import (
    FolderCreate, FolderUpdate, FolderMove, FolderInfo,
    FileUpdate, FileMove, FileInfo, SignedUrl, ViewState, SortKey, SortOrder, ViewMode,
    BatchUploadResult
)
from .filemanager_services import FileManagerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/filemanager", tags=["文件管理"])


def get_service(
    db: AsyncSession = Depends(get_db),
    session: SessionContext = Depends(get_session_context)
) -> FileManagerService:
    """创建文件管理服务实例"""
    return FileManagerService(db, session)


def _content_disposition(disposition: str, filename: str) -> str:
    return f"{disposition}; filename*=UTF-8''{quote(filename)}"


# ============ 目录浏览 ============

@router.get("/browse")
async def browse_directory(
    folder_id: Optional[str] = Query(None, description="文件夹ID，为空则浏览根目录"),
    search: str = Query("", description="搜索关键词（名称或描述）"),
    sort_by: SortKey = Query("name"),
    sort_order: SortOrder = Query("asc"),
    view_mode: ViewMode = Query("grid"),
    service: FileManagerService = Depends(get_service)
):
    """浏览目录内容"""
    view = ViewState(search=search, sort_by=sort_by, sort_order=sort_order, view_mode=view_mode)
    contents = await service.browse(folder_id, view)
    return success(contents.model_dump(mode="json"))


@router.get("/folders/{folder_id}/path")
async def get_folder_path(
    folder_id: str,
    service: FileManagerService = Depends(get_service)
):
    """获取祖先链（从根开始）"""
    await service.get_folder(folder_id)
    path = await service.resolve_path(folder_id)
    return success([FolderInfo.model_validate(f).model_dump(mode="json") for f in path])


# ============ 文件夹操作 ============

@router.post("/folders")
async def create_folder(
    data: FolderCreate,
    _: TokenData = Depends(require_admin()),
    service: FileManagerService = Depends(get_service)
):
    """创建文件夹"""
    folder = await service.create_folder(data.parent_id, data.name, data.description, data.icon)
    return success(FolderInfo.model_validate(folder).model_dump(mode="json"), "创建成功")


@router.put("/folders/{folder_id}")
async def update_folder(
    folder_id: str,
    data: FolderUpdate,
    _: TokenData = Depends(require_admin()),
    service: FileManagerService = Depends(get_service)
):
    """更新文件夹（重命名/描述/图标）"""
    folder = await service.rename_or_describe("folder", folder_id, data.model_dump(exclude_unset=True))
    return success(FolderInfo.model_validate(folder).model_dump(mode="json"), "更新成功")


@router.put("/folders/{folder_id}/move")
async def move_folder(
    folder_id: str,
    data: FolderMove,
    _: TokenData = Depends(require_admin()),
    service: FileManagerService = Depends(get_service)
):
    """移动文件夹"""
    folder = await service.move_folder(folder_id, data.target_parent_id)
    return success({"id": folder.id, "parent_id": folder.parent_id}, "移动成功")


@router.delete("/folders/{folder_id}")
async def delete_folder(
    folder_id: str,
    _: TokenData = Depends(require_admin()),
    service: FileManagerService = Depends(get_service)
):
    """删除文件夹（级联删除所有内容）"""
    deleted = await service.delete_folder(folder_id)
    return success({"deleted_folders": deleted}, "删除成功")


# ============ 文件操作 ============

@router.post("/upload")
async def upload_files(
    files: List[UploadFile] = File(...),
    folder_id: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    _: TokenData = Depends(require_admin()),
    service: FileManagerService = Depends(get_service)
):
    """
    上传文件（支持多文件）

    每个文件独立校验与保存，部分失败不影响其他文件
    """
    items = []
    for upload in files:
        content = await upload.read()
        items.append((upload.filename or "unknown", content, upload.content_type))

    outcomes = await service.upload_many(items, folder_id or None, description)

    uploaded = [o.file for o in outcomes if o.success]
    errors = [o for o in outcomes if not o.success]
    result = BatchUploadResult(
        uploaded=uploaded,
        errors=errors,
        total=len(outcomes),
        success_count=len(uploaded),
        failed_count=len(errors),
    )

    message = f"成功上传 {result.success_count} 个文件"
    if result.failed_count > 0:
        message += f"，{result.failed_count} 个文件失败"
    return success(result.model_dump(mode="json"), message)


@router.get("/files/{file_id}", response_model=ApiResponse[FileInfo])
async def get_file_info(
    file_id: str,
    service: FileManagerService = Depends(get_service)
):
    """获取文件详情"""
    file = await service.get_file(file_id)
    return success(FileInfo.model_validate(file).model_dump(mode="json"))


@router.put("/files/{file_id}")
async def update_file(
    file_id: str,
    data: FileUpdate,
    _: TokenData = Depends(require_admin()),
    service: FileManagerService = Depends(get_service)
):
    """更新文件信息"""
    file = await service.rename_or_describe("file", file_id, data.model_dump(exclude_unset=True))
    return success(FileInfo.model_validate(file).model_dump(mode="json"), "更新成功")


@router.put("/files/{file_id}/move")
async def move_file(
    file_id: str,
    data: FileMove,
    _: TokenData = Depends(require_admin()),
    service: FileManagerService = Depends(get_service)
):
    """移动文件"""
    file = await service.move_file(file_id, data.target_folder_id)
    return success({"id": file.id, "folder_id": file.folder_id}, "移动成功")


@router.delete("/files/{file_id}")
async def delete_file(
    file_id: str,
    _: TokenData = Depends(require_admin()),
    service: FileManagerService = Depends(get_service)
):
    """删除文件"""
    await service.delete_file(file_id)
    return success(message="删除成功")


# ============ 预览与下载 ============

@router.get("/files/{file_id}/preview-url", response_model=ApiResponse[SignedUrl])
async def get_preview_url(
    file_id: str,
    ttl: Optional[int] = Query(None, ge=1, le=7 * 24 * 3600, description="有效期（秒）"),
    service: FileManagerService = Depends(get_service)
):
    """获取限时预览链接"""
    signed = await service.create_preview_url(file_id, ttl)
    return success(signed.model_dump())


@router.get("/files/{file_id}/download")
async def download_file(
    file_id: str,
    service: FileManagerService = Depends(get_service)
):
    """下载文件"""
    file, content = await service.download(file_id)
    return Response(
        content=content,
        media_type=file.mime_type or "application/octet-stream",
        headers={"Content-Disposition": _content_disposition("attachment", file.name)}
    )


@router.get("/blob")
async def read_signed_blob(
    token: str = Query(..., description="签名令牌"),
    service: FileManagerService = Depends(get_service)
):
    """通过签名链接在线查看（不触发下载）"""
    path, content, file = await service.open_signed(token)
    filename = file.name if file else path.rsplit("/", 1)[-1]
    media_type = (file.mime_type if file else None) or "application/octet-stream"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": _content_disposition("inline", filename)}
    )
