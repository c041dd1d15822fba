"""
文件管理数据模型
文件夹通过 parent_id 形成树，文件通过 folder_id 挂在树上，二进制存放在存储桶中
"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, BigInteger, Text, Index

from core.database import Base
from models import new_id


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Folder(Base):
    """文件夹"""
    __tablename__ = "folders"
    __table_args__ = (
        Index("idx_folder_parent", "parent_id"),
        {"extend_existing": True, "comment": "文件夹表"}
    )

    id = Column(String(32), primary_key=True, default=new_id, comment="主键ID")
    name = Column(String(255), nullable=False, comment="文件夹名称")
    description = Column(Text, nullable=True, comment="文件夹描述")
    parent_id = Column(String(32), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, comment="父文件夹ID，为空表示根目录")
    icon = Column(String(32), nullable=True, comment="图标标识")

    created_at = Column(DateTime(timezone=True), default=utc_now, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, comment="更新时间")

    def __repr__(self):
        return f"<Folder {self.id} {self.name!r}>"


class StoredFile(Base):
    """文件元数据（二进制对象位于存储桶 storage_path）"""
    __tablename__ = "files"
    __table_args__ = (
        Index("idx_file_folder", "folder_id"),
        Index("idx_file_name", "name"),
        {"extend_existing": True, "comment": "文件表"}
    )

    id = Column(String(32), primary_key=True, default=new_id, comment="主键ID")
    name = Column(String(255), nullable=False, comment="文件名")
    description = Column(Text, nullable=True, comment="文件描述")
    file_type = Column(String(32), nullable=False, default="unknown", comment="粗粒度类型，如 image/application")
    file_size = Column(BigInteger, default=0, comment="文件大小(字节)")
    # 写入后不再修改，移动文件只改 folder_id
    storage_path = Column(String(512), nullable=False, unique=True, comment="存储桶内对象路径")
    folder_id = Column(String(32), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, comment="所属文件夹ID")
    mime_type = Column(String(128), nullable=True, comment="MIME类型")

    created_at = Column(DateTime(timezone=True), default=utc_now, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, comment="更新时间")

    def __repr__(self):
        return f"<StoredFile {self.id} {self.name!r}>"
