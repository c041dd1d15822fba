"""
文件管理数据验证模型
"""

from datetime import datetime
from typing import Optional, List, Literal, Union, Annotated
from pydantic import BaseModel, ConfigDict, Field

# 名称、描述的长度与字符规则由 utils.sanitize 统一校验，这里只约束结构

SortKey = Literal["name", "created_at"]
SortOrder = Literal["asc", "desc"]
ViewMode = Literal["grid", "list"]


# ============ 文件夹相关 ============

class FolderCreate(BaseModel):
    """创建文件夹"""
    name: str = Field(..., description="文件夹名称")
    description: Optional[str] = Field(None, description="文件夹描述")
    parent_id: Optional[str] = Field(None, description="父文件夹ID，为空则在根目录")
    icon: Optional[str] = Field(None, max_length=32, description="图标标识")


class FolderUpdate(BaseModel):
    """更新文件夹（重命名/描述/图标）"""
    name: Optional[str] = Field(None, description="文件夹名称")
    description: Optional[str] = Field(None, description="文件夹描述")
    icon: Optional[str] = Field(None, max_length=32, description="图标标识")


class FolderMove(BaseModel):
    """移动文件夹"""
    target_parent_id: Optional[str] = Field(None, description="目标父文件夹ID，为空则移动到根目录")


class FolderInfo(BaseModel):
    """文件夹信息"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# ============ 文件相关 ============

class FileUpdate(BaseModel):
    """更新文件（重命名/描述）"""
    name: Optional[str] = Field(None, description="文件名")
    description: Optional[str] = Field(None, description="文件描述")


class FileMove(BaseModel):
    """移动文件"""
    target_folder_id: Optional[str] = Field(None, description="目标文件夹ID，为空则移动到根目录")


class FileInfo(BaseModel):
    """文件信息"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    file_type: str
    file_size: int
    storage_path: str
    folder_id: Optional[str] = None
    mime_type: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class SignedUrl(BaseModel):
    """预览签名链接"""
    file_id: str
    url: str
    expires_in: int


# ============ 列表项（带类型标签的联合类型） ============

class FolderEntry(BaseModel):
    """列表中的文件夹项"""
    kind: Literal["folder"] = "folder"
    id: str
    name: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    icon: str
    created_at: datetime


class FileEntry(BaseModel):
    """列表中的文件项"""
    kind: Literal["file"] = "file"
    id: str
    name: str
    description: Optional[str] = None
    folder_id: Optional[str] = None
    file_type: str
    file_size: int
    mime_type: Optional[str] = None
    icon: str
    created_at: datetime


Entry = Annotated[Union[FolderEntry, FileEntry], Field(discriminator="kind")]


# ============ 浏览 ============

class ViewState(BaseModel):
    """视图状态：搜索、排序、展示方式"""
    search: str = ""
    sort_by: SortKey = "name"
    sort_order: SortOrder = "asc"
    view_mode: ViewMode = "grid"


class BreadcrumbItem(BaseModel):
    """面包屑导航项"""
    id: Optional[str]
    name: str


class Location(BaseModel):
    """当前位置：文件夹ID + 从根开始的祖先链"""
    folder_id: Optional[str] = None
    breadcrumbs: List[BreadcrumbItem] = []


class DirectoryContents(BaseModel):
    """目录内容"""
    location: Location
    view: ViewState
    folders: List[FolderInfo]
    files: List[FileInfo]
    entries: List[Entry]
    total_folders: int
    total_files: int


# ============ 上传 ============

class UploadOutcome(BaseModel):
    """单个文件的上传结果"""
    success: bool
    filename: str
    file: Optional[FileInfo] = None
    error: Optional[str] = None
    code: Optional[int] = None


class BatchUploadResult(BaseModel):
    """批量上传结果（逐个独立，不做整体回滚）"""
    uploaded: List[FileInfo] = []
    errors: List[UploadOutcome] = []
    total: int
    success_count: int
    failed_count: int
