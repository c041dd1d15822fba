# -*- coding: utf-8 -*-
"""
上传流程测试
覆盖：大小/类型/名称校验、对象路径、路径冲突、元数据失败补偿、批量上传
"""
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select, func

from core.errors import (
    ErrorCode, ValidationException, SizeExceededException, TypeRejectedException,
    NotFoundException, UploadException, PermissionException
)
from utils.storage import StorageError
from modules.filemanager.filemanager_models import StoredFile
from modules.filemanager.filemanager_resolver import TreeResolver
from modules.filemanager.filemanager_upload import UploadPipeline, build_storage_path, coarse_type

CLOCK = 1700000000000
LIMIT = 50 * 1024 * 1024


@pytest.fixture
def pipeline(db_session, blob_store):
    return UploadPipeline(db_session, blob_store, TreeResolver(db_session), clock=lambda: CLOCK)


async def _file_count(db) -> int:
    result = await db.execute(select(func.count()).select_from(StoredFile))
    return result.scalar_one()


async def _orphan_record(db, storage_path: str) -> None:
    db.add(StoredFile(name="orphan.txt", file_type="text", file_size=1, storage_path=storage_path))
    await db.commit()


class TestHelpers:

    def test_storage_path_root(self):
        assert build_storage_path("a.png", None, CLOCK) == f"{CLOCK}-a.png"

    def test_storage_path_folder(self):
        assert build_storage_path("a.png", "f1", CLOCK) == f"f1/{CLOCK}-a.png"

    @pytest.mark.parametrize("mime,expected", [
        ("image/png", "image"), ("application/pdf", "application"), (None, "unknown"), ("", "unknown"),
    ])
    def test_coarse_type(self, mime, expected):
        assert coarse_type(mime) == expected


class TestValidation:

    @pytest.mark.asyncio
    async def test_exact_limit_accepted(self, pipeline):
        record = await pipeline.upload(b"x", "big.bin.png", LIMIT, "image/png", None)
        assert record.file_size == LIMIT

    @pytest.mark.asyncio
    async def test_over_limit_rejected(self, pipeline, db_session, blob_store):
        with pytest.raises(SizeExceededException) as exc_info:
            await pipeline.upload(b"x", "big.png", LIMIT + 1, "image/png", None)

        assert exc_info.value.code == ErrorCode.FILE_TOO_LARGE
        assert await _file_count(db_session) == 0
        assert await blob_store.exists(f"{CLOCK}-big.png") is False

    @pytest.mark.asyncio
    async def test_type_rejected(self, pipeline, db_session, blob_store):
        with pytest.raises(TypeRejectedException):
            await pipeline.upload(b"MZ", "setup.exe", 2, "application/x-msdownload", None)

        assert await _file_count(db_session) == 0
        assert await blob_store.exists(f"{CLOCK}-setup.exe") is False

    @pytest.mark.asyncio
    async def test_size_checked_before_type(self, pipeline):
        with pytest.raises(SizeExceededException):
            await pipeline.upload(b"x", "setup.exe", LIMIT + 1, "application/x-msdownload", None)

    @pytest.mark.asyncio
    async def test_invalid_name(self, pipeline, db_session):
        with pytest.raises(ValidationException):
            await pipeline.upload(b"x", "../etc/passwd", 1, "text/plain", None)
        assert await _file_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_missing_folder(self, pipeline, blob_store):
        with pytest.raises(NotFoundException):
            await pipeline.upload(b"x", "a.txt", 1, "text/plain", "missing")
        assert await blob_store.exists(f"missing/{CLOCK}-a.txt") is False


class TestUpload:

    @pytest.mark.asyncio
    async def test_record_and_blob(self, pipeline, blob_store):
        record = await pipeline.upload(b"hello", "  a.txt ", 5, "text/plain", None, "说明")

        assert record.name == "a.txt"
        assert record.description == "说明"
        assert record.file_type == "text"
        assert record.mime_type == "text/plain"
        assert record.storage_path == f"{CLOCK}-a.txt"
        assert await blob_store.download(record.storage_path) == b"hello"

    @pytest.mark.asyncio
    async def test_folder_prefix(self, pipeline, service):
        folder = await service.create_folder(None, "Docs")
        record = await pipeline.upload(b"x", "a.txt", 1, "text/plain", folder.id)

        assert record.folder_id == folder.id
        assert record.storage_path == f"{folder.id}/{CLOCK}-a.txt"

    @pytest.mark.asyncio
    async def test_same_name_same_millisecond(self, pipeline):
        first = await pipeline.upload(b"1", "a.txt", 1, "text/plain", None)
        second = await pipeline.upload(b"2", "a.txt", 1, "text/plain", None)

        assert first.storage_path == f"{CLOCK}-a.txt"
        assert second.storage_path == f"{CLOCK + 1}-a.txt"

    @pytest.mark.asyncio
    async def test_storage_failure(self, pipeline, db_session, blob_store, monkeypatch):
        monkeypatch.setattr(blob_store, "upload", AsyncMock(side_effect=StorageError("磁盘已满")))

        with pytest.raises(UploadException):
            await pipeline.upload(b"x", "a.txt", 1, "text/plain", None)
        assert await _file_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_metadata_failure_removes_blob(self, pipeline, db_session, blob_store):
        # 已有记录占用同一路径（对象本身不存在），元数据写入触发唯一约束冲突
        await _orphan_record(db_session, f"{CLOCK}-a.txt")

        with pytest.raises(UploadException) as exc_info:
            await pipeline.upload(b"x", "a.txt", 1, "text/plain", None)

        assert exc_info.value.code == ErrorCode.UPLOAD_FAILED
        assert await blob_store.exists(f"{CLOCK}-a.txt") is False
        assert await _file_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_compensation_failure_still_reports(self, pipeline, db_session, blob_store, monkeypatch):
        await _orphan_record(db_session, f"{CLOCK}-a.txt")
        monkeypatch.setattr(blob_store, "remove", AsyncMock(side_effect=StorageError("删除失败")))

        with pytest.raises(UploadException):
            await pipeline.upload(b"x", "a.txt", 1, "text/plain", None)
        # 补偿失败时对象残留，由日志记录
        assert await blob_store.exists(f"{CLOCK}-a.txt") is True

    @pytest.mark.asyncio
    async def test_upload_move_resolve(self, service, blob_store):
        """上传后移动，按记录的 storage_path 仍能取回内容"""
        a = await service.create_folder(None, "A")
        b = await service.create_folder(None, "B")
        record = await service.upload(b"payload", "a.txt", "text/plain", a.id)
        original_path = record.storage_path

        await service.move_file(record.id, b.id)
        moved = await service.get_file(record.id)

        assert moved.folder_id == b.id
        assert moved.storage_path == original_path
        assert await blob_store.download(original_path) == b"payload"


class TestUploadMany:

    @pytest.mark.asyncio
    async def test_independent_outcomes(self, service, db_session):
        items = [
            ("a.txt", b"a", "text/plain"),
            ("setup.exe", b"MZ", "application/x-msdownload"),
            ("b.png", b"b", "image/png"),
            ("bad:name.txt", b"c", "text/plain"),
        ]

        outcomes = await service.upload_many(items)

        assert [o.success for o in outcomes] == [True, False, True, False]
        assert outcomes[0].file.name == "a.txt"
        assert outcomes[1].code == ErrorCode.FILE_TYPE_NOT_ALLOWED
        assert outcomes[3].code == ErrorCode.VALIDATION_ERROR
        assert await _file_count(db_session) == 2

    @pytest.mark.asyncio
    async def test_visitor_rejected(self, visitor_service):
        with pytest.raises(PermissionException):
            await visitor_service.upload_many([("a.txt", b"a", "text/plain")])

    @pytest.mark.asyncio
    async def test_visitor_single_upload_rejected(self, visitor_service, db_session):
        with pytest.raises(PermissionException):
            await visitor_service.upload(b"a", "a.txt", "text/plain")
        assert await _file_count(db_session) == 0
