"""
目录树解析
按 parent_id 查询子项、沿父指针回溯祖先链（面包屑）
"""

import logging
from typing import Optional, List, Tuple, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .filemanager_models import Folder, StoredFile

logger = logging.getLogger(__name__)

Children = Tuple[List[Folder], List[StoredFile]]


# 名称按二进制排序（区分大小写）；MySQL 的 utf8mb4 默认排序规则不区分大小写
BINARY_COLLATIONS = {"mysql": "utf8mb4_bin", "mariadb": "utf8mb4_bin"}


def _ordering(model, sort_by: str, sort_order: str, dialect: Optional[str] = None):
    """排序子句：名称（区分大小写）或创建时间，id 兜底保证稳定"""
    if sort_by == "created_at":
        column = model.created_at
    else:
        column = model.name
        collation = BINARY_COLLATIONS.get(dialect)
        if collation:
            column = column.collate(collation)
    if sort_order == "desc":
        return column.desc(), model.id.desc()
    return column.asc(), model.id.asc()


class TreeResolver:
    """目录树解析器，按作用域缓存子项列表，写操作后由调用方失效"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._children_cache: Dict[Tuple[Optional[str], str, str], Children] = {}

    async def get_folder(self, folder_id: str) -> Optional[Folder]:
        result = await self.db.execute(select(Folder).where(Folder.id == folder_id))
        return result.scalar_one_or_none()

    async def get_file(self, file_id: str) -> Optional[StoredFile]:
        result = await self.db.execute(select(StoredFile).where(StoredFile.id == file_id))
        return result.scalar_one_or_none()

    async def get_file_by_path(self, storage_path: str) -> Optional[StoredFile]:
        result = await self.db.execute(select(StoredFile).where(StoredFile.storage_path == storage_path))
        return result.scalar_one_or_none()

    async def resolve_children(
        self,
        folder_id: Optional[str],
        sort_by: str = "name",
        sort_order: str = "asc"
    ) -> Children:
        """
        获取某个位置下的子文件夹和文件

        根目录必须用 IS NULL 过滤，"= NULL" 在 SQL 中永远不成立
        """
        key = (folder_id, sort_by, sort_order)
        if key in self._children_cache:
            return self._children_cache[key]

        if folder_id is None:
            folder_filter = Folder.parent_id.is_(None)
            file_filter = StoredFile.folder_id.is_(None)
        else:
            folder_filter = Folder.parent_id == folder_id
            file_filter = StoredFile.folder_id == folder_id

        dialect = self.db.get_bind().dialect.name
        folder_result = await self.db.execute(
            select(Folder).where(folder_filter).order_by(*_ordering(Folder, sort_by, sort_order, dialect))
        )
        file_result = await self.db.execute(
            select(StoredFile).where(file_filter).order_by(*_ordering(StoredFile, sort_by, sort_order, dialect))
        )

        children = (list(folder_result.scalars().all()), list(file_result.scalars().all()))
        self._children_cache[key] = children
        return children

    async def resolve_path(self, folder_id: Optional[str]) -> List[Folder]:
        """
        从根开始的祖先链，末尾为 folder_id 自身；根目录返回空列表

        祖先缺失（已被并发删除）时截断路径而不是报错，保证导航仍可用
        """
        path: List[Folder] = []
        seen = set()
        current_id = folder_id

        while current_id:
            if current_id in seen:
                logger.error(f"文件夹父子关系存在循环: {current_id}")
                break
            seen.add(current_id)

            folder = await self.get_folder(current_id)
            if folder is None:
                logger.warning(f"祖先文件夹不存在，路径已截断: {current_id}")
                break
            path.insert(0, folder)
            current_id = folder.parent_id

        return path

    async def is_descendant(self, folder_id: str, ancestor_id: str) -> bool:
        """folder_id 是否位于 ancestor_id 之下（含自身）"""
        path = await self.resolve_path(folder_id)
        return any(f.id == ancestor_id for f in path)

    async def collect_subtree(self, folder_id: str) -> Tuple[List[str], List[StoredFile]]:
        """
        广度优先收集子树

        Returns:
            (文件夹ID列表，按深度由浅到深；子树内所有文件)
        """
        folder_ids = [folder_id]
        files: List[StoredFile] = []
        frontier = [folder_id]

        while frontier:
            file_result = await self.db.execute(
                select(StoredFile).where(StoredFile.folder_id.in_(frontier))
            )
            files.extend(file_result.scalars().all())

            child_result = await self.db.execute(
                select(Folder.id).where(Folder.parent_id.in_(frontier))
            )
            frontier = [fid for fid in child_result.scalars().all() if fid not in folder_ids]
            folder_ids.extend(frontier)

        return folder_ids, files

    def invalidate(self, *folder_ids: Optional[str]) -> None:
        """失效指定位置（None 表示根目录）的所有缓存作用域"""
        targets = set(folder_ids)
        for key in [k for k in self._children_cache if k[0] in targets]:
            del self._children_cache[key]

    def invalidate_all(self) -> None:
        self._children_cache.clear()
