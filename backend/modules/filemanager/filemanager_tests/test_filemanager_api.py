# -*- coding: utf-8 -*-
"""
文件管理 API 路由测试
覆盖：访客只读、管理员写操作、上传、预览与下载
"""
import pytest
from httpx import AsyncClient

from core.errors import ErrorCode
from core.security import TokenData, create_token
from core.session import SessionContext

PREFIX = "/api/v1/filemanager"


async def _create_folder(client: AsyncClient, name: str, parent_id=None) -> dict:
    resp = await client.post(f"{PREFIX}/folders", json={"name": name, "parent_id": parent_id})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


async def _upload(client: AsyncClient, files, folder_id=None) -> dict:
    data = {"folder_id": folder_id} if folder_id else {}
    resp = await client.post(f"{PREFIX}/upload", files=files, data=data)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


class TestVisitor:

    @pytest.mark.asyncio
    async def test_browse_empty_root(self, client: AsyncClient):
        resp = await client.get(f"{PREFIX}/browse")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["folders"] == []
        assert data["files"] == []
        assert data["location"]["breadcrumbs"] == [{"id": None, "name": "根目录"}]
        assert data["view"]["view_mode"] == "grid"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,path", [
        ("post", "/folders"),
        ("put", "/folders/x"),
        ("put", "/folders/x/move"),
        ("delete", "/folders/x"),
        ("put", "/files/x"),
        ("put", "/files/x/move"),
        ("delete", "/files/x"),
    ])
    async def test_mutations_require_login(self, client: AsyncClient, method, path):
        kwargs = {} if method == "delete" else {"json": {"name": "x"}}
        resp = await getattr(client, method)(f"{PREFIX}{path}", **kwargs)

        assert resp.status_code == 401
        assert resp.json()["code"] == ErrorCode.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_upload_requires_login(self, client: AsyncClient):
        resp = await client.post(f"{PREFIX}/upload", files=[("files", ("a.txt", b"a", "text/plain"))])
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_non_admin_role_forbidden(self, client: AsyncClient, session_store):
        token = create_token(TokenData(user_id="u2", username="guest", role="viewer"))
        SessionContext().remember(session_store, token)
        resp = await client.post(
            f"{PREFIX}/folders",
            json={"name": "x"},
            headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == ErrorCode.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_invalid_view_params(self, client: AsyncClient):
        resp = await client.get(f"{PREFIX}/browse", params={"sort_by": "size"})
        assert resp.status_code == 400
        assert resp.json()["code"] == ErrorCode.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_missing_folder(self, client: AsyncClient):
        resp = await client.get(f"{PREFIX}/browse", params={"folder_id": "missing"})
        assert resp.status_code == 404


class TestFolders:

    @pytest.mark.asyncio
    async def test_create_and_browse(self, admin_client: AsyncClient):
        reports = await _create_folder(admin_client, "Reports")
        year = await _create_folder(admin_client, "2024", reports["id"])

        resp = await admin_client.get(f"{PREFIX}/browse", params={"folder_id": year["id"]})
        crumbs = resp.json()["data"]["location"]["breadcrumbs"]
        assert [c["name"] for c in crumbs] == ["根目录", "Reports", "2024"]

        resp = await admin_client.get(f"{PREFIX}/folders/{year['id']}/path")
        assert [f["name"] for f in resp.json()["data"]] == ["Reports", "2024"]

    @pytest.mark.asyncio
    async def test_create_invalid_name(self, admin_client: AsyncClient):
        resp = await admin_client.post(f"{PREFIX}/folders", json={"name": "a/b"})
        assert resp.status_code == 400
        assert resp.json()["code"] == ErrorCode.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_update(self, admin_client: AsyncClient):
        folder = await _create_folder(admin_client, "Old")

        resp = await admin_client.put(f"{PREFIX}/folders/{folder['id']}", json={"name": "New", "icon": "star"})

        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "New"
        assert resp.json()["data"]["icon"] == "star"

    @pytest.mark.asyncio
    async def test_move_into_descendant(self, admin_client: AsyncClient):
        parent = await _create_folder(admin_client, "Parent")
        child = await _create_folder(admin_client, "Child", parent["id"])

        resp = await admin_client.put(
            f"{PREFIX}/folders/{parent['id']}/move", json={"target_parent_id": child["id"]}
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == ErrorCode.INVALID_OPERATION

        resp = await admin_client.put(f"{PREFIX}/folders/{child['id']}/move", json={"target_parent_id": None})
        assert resp.status_code == 200
        assert resp.json()["data"]["parent_id"] is None

    @pytest.mark.asyncio
    async def test_delete_cascade(self, admin_client: AsyncClient):
        parent = await _create_folder(admin_client, "Parent")
        child = await _create_folder(admin_client, "Child", parent["id"])
        uploaded = await _upload(admin_client, [("files", ("a.txt", b"a", "text/plain"))], child["id"])
        file_id = uploaded["uploaded"][0]["id"]

        resp = await admin_client.delete(f"{PREFIX}/folders/{parent['id']}")

        assert resp.status_code == 200
        assert resp.json()["data"]["deleted_folders"] == [parent["id"], child["id"]]
        assert (await admin_client.get(f"{PREFIX}/files/{file_id}")).status_code == 404


class TestFiles:

    @pytest.mark.asyncio
    async def test_upload_many(self, admin_client: AsyncClient):
        folder = await _create_folder(admin_client, "Docs")

        result = await _upload(admin_client, [
            ("files", ("a.txt", b"hello", "text/plain")),
            ("files", ("setup.exe", b"MZ", "application/x-msdownload")),
        ], folder["id"])

        assert result["total"] == 2
        assert result["success_count"] == 1
        assert result["failed_count"] == 1
        assert result["uploaded"][0]["folder_id"] == folder["id"]
        assert result["uploaded"][0]["storage_path"].startswith(f"{folder['id']}/")
        assert result["errors"][0]["filename"] == "setup.exe"
        assert result["errors"][0]["code"] == ErrorCode.FILE_TYPE_NOT_ALLOWED

    @pytest.mark.asyncio
    async def test_upload_without_files(self, admin_client: AsyncClient):
        resp = await admin_client.post(f"{PREFIX}/upload", data={"description": "空"})
        assert resp.status_code == 400
        assert resp.json()["code"] == ErrorCode.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_update_move_delete(self, admin_client: AsyncClient):
        folder = await _create_folder(admin_client, "Docs")
        uploaded = await _upload(admin_client, [("files", ("a.txt", b"hello", "text/plain"))])
        file = uploaded["uploaded"][0]

        resp = await admin_client.put(f"{PREFIX}/files/{file['id']}", json={"name": "b.txt", "description": "说明"})
        assert resp.json()["data"]["name"] == "b.txt"

        resp = await admin_client.put(f"{PREFIX}/files/{file['id']}/move", json={"target_folder_id": folder["id"]})
        assert resp.json()["data"]["folder_id"] == folder["id"]

        resp = await admin_client.get(f"{PREFIX}/files/{file['id']}")
        assert resp.json()["data"]["storage_path"] == file["storage_path"]

        resp = await admin_client.delete(f"{PREFIX}/files/{file['id']}")
        assert resp.status_code == 200
        assert (await admin_client.get(f"{PREFIX}/files/{file['id']}/download")).status_code == 404

    @pytest.mark.asyncio
    async def test_download(self, admin_client: AsyncClient):
        uploaded = await _upload(admin_client, [("files", ("报告.txt", b"hello", "text/plain"))])
        file_id = uploaded["uploaded"][0]["id"]

        resp = await admin_client.get(f"{PREFIX}/files/{file_id}/download")

        assert resp.status_code == 200
        assert resp.content == b"hello"
        assert resp.headers["content-disposition"].startswith("attachment;")
        assert "%E6%8A%A5%E5%91%8A.txt" in resp.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_preview_url_and_blob(self, admin_client: AsyncClient):
        uploaded = await _upload(admin_client, [("files", ("a.png", b"\x89PNG", "image/png"))])
        file_id = uploaded["uploaded"][0]["id"]

        resp = await admin_client.get(f"{PREFIX}/files/{file_id}/preview-url", params={"ttl": 120})
        signed = resp.json()["data"]
        assert signed["expires_in"] == 120

        resp = await admin_client.get(signed["url"])
        assert resp.status_code == 200
        assert resp.content == b"\x89PNG"
        assert resp.headers["content-type"] == "image/png"
        assert resp.headers["content-disposition"].startswith("inline;")

    @pytest.mark.asyncio
    async def test_blob_invalid_token(self, client: AsyncClient):
        resp = await client.get(f"{PREFIX}/blob", params={"token": "garbage"})
        assert resp.status_code == 502
        assert resp.json()["code"] == ErrorCode.PREVIEW_FAILED
