"""
视图投影
对已解析的子项做搜索过滤，并转换为带类型标签的列表项
"""

from typing import Sequence, List, Tuple, TypeVar, Optional, Union

from .filemanager_schemas import FolderEntry, FileEntry

T = TypeVar("T")


def matches(item, query: str) -> bool:
    """名称或描述包含关键词（不区分大小写）"""
    needle = query.casefold()
    if needle in (item.name or "").casefold():
        return True
    return needle in (item.description or "").casefold()


def project(folders: Sequence[T], files: Sequence[T], search_query: Optional[str]) -> Tuple[List[T], List[T]]:
    """
    按关键词过滤文件夹和文件

    仅空关键词返回全部，关键词按原样匹配（不去除首尾空格）；
    保持输入顺序，排序由查询负责
    """
    if not search_query:
        return list(folders), list(files)
    return (
        [f for f in folders if matches(f, search_query)],
        [f for f in files if matches(f, search_query)],
    )


def file_icon(mime_type: Optional[str]) -> str:
    """根据 MIME 类型选择图标"""
    if not mime_type:
        return "file"
    if mime_type.startswith("image/"):
        return "image"
    if "pdf" in mime_type:
        return "file-text"
    if "sheet" in mime_type or "excel" in mime_type:
        return "file-spreadsheet"
    if "presentation" in mime_type or "powerpoint" in mime_type:
        return "presentation"
    if "zip" in mime_type or "rar" in mime_type:
        return "archive"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("audio/"):
        return "audio"
    return "file"


def entry_icon(entry: Union[FolderEntry, FileEntry]) -> str:
    match entry:
        case FolderEntry(icon=icon):
            return icon or "folder"
        case FileEntry(mime_type=mime_type):
            return file_icon(mime_type)
        case _:
            raise TypeError(f"未知的列表项类型: {type(entry).__name__}")


def to_entries(folders: Sequence, files: Sequence) -> List[Union[FolderEntry, FileEntry]]:
    """把 ORM 对象转换为列表项，文件夹在前"""
    entries: List[Union[FolderEntry, FileEntry]] = []
    for folder in folders:
        entries.append(FolderEntry(
            id=folder.id,
            name=folder.name,
            description=folder.description,
            parent_id=folder.parent_id,
            icon=folder.icon or "folder",
            created_at=folder.created_at,
        ))
    for file in files:
        entry = FileEntry(
            id=file.id,
            name=file.name,
            description=file.description,
            folder_id=file.folder_id,
            file_type=file.file_type,
            file_size=file.file_size or 0,
            mime_type=file.mime_type,
            icon="file",
            created_at=file.created_at,
        )
        entry.icon = entry_icon(entry)
        entries.append(entry)
    return entries
