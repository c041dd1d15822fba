"""
认证路由测试
"""

import pytest
from httpx import AsyncClient

from core.errors import ErrorCode
from core.security import decode_token
from core.session import SessionContext
from tests.test_conftest import TEST_ADMIN, create_test_admin, get_auth_token


class TestLogin:
    """登录与登出"""

    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, db_session, session_store):
        await create_test_admin(db_session, TEST_ADMIN)

        resp = await client.post("/api/v1/auth/login", json=TEST_ADMIN)

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0
        # 登录后会话按会话ID写入持久化槽位，重启后可恢复
        session_id = decode_token(data["access_token"]).session_id
        assert session_store.get(session_id)["token"] == data["access_token"]
        assert SessionContext.restore(session_store, data["access_token"]).is_admin is True

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, db_session, session_store):
        await create_test_admin(db_session, TEST_ADMIN)

        resp = await client.post(
            "/api/v1/auth/login",
            json={"username": TEST_ADMIN["username"], "password": "wrong"}
        )

        assert resp.status_code == 401
        assert resp.json()["code"] == ErrorCode.LOGIN_FAILED
        assert session_store.sessions() == {}

    @pytest.mark.asyncio
    async def test_login_unknown_user(self, client: AsyncClient):
        resp = await client.post("/api/v1/auth/login", json={"username": "nobody", "password": "x"})
        assert resp.status_code == 401
        assert resp.json()["code"] == ErrorCode.LOGIN_FAILED

    @pytest.mark.asyncio
    async def test_login_missing_fields(self, client: AsyncClient):
        resp = await client.post("/api/v1/auth/login", json={"username": ""})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_logout(self, admin_client: AsyncClient, session_store):
        assert len(session_store.sessions()) == 1

        resp = await admin_client.post("/api/v1/auth/logout")

        assert resp.status_code == 200
        assert session_store.sessions() == {}

        # 登出后令牌失效
        resp = await admin_client.post("/api/v1/filemanager/folders", json={"name": "x"})
        assert resp.status_code == 401
        resp = await admin_client.get("/api/v1/auth/me")
        assert resp.json()["data"]["mode"] == "visitor"

    @pytest.mark.asyncio
    async def test_logout_keeps_other_sessions(self, client: AsyncClient, db_session, session_store):
        await create_test_admin(db_session, TEST_ADMIN)
        first = await get_auth_token(client, TEST_ADMIN["username"], TEST_ADMIN["password"])
        second = await get_auth_token(client, TEST_ADMIN["username"], TEST_ADMIN["password"])
        assert len(session_store.sessions()) == 2

        resp = await client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {first}"})
        assert resp.status_code == 200

        resp = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {second}"})
        assert resp.json()["data"]["mode"] == "admin"
        assert list(session_store.sessions()) == [decode_token(second).session_id]

    @pytest.mark.asyncio
    async def test_logout_requires_login(self, client: AsyncClient):
        resp = await client.post("/api/v1/auth/logout")
        assert resp.status_code == 401


class TestSessionInfo:
    """会话模式"""

    @pytest.mark.asyncio
    async def test_visitor_mode(self, client: AsyncClient):
        resp = await client.get("/api/v1/auth/me")
        assert resp.json()["data"] == {"is_admin": False, "username": None, "mode": "visitor"}

    @pytest.mark.asyncio
    async def test_admin_mode(self, admin_client: AsyncClient):
        resp = await admin_client.get("/api/v1/auth/me")
        data = resp.json()["data"]
        assert data["is_admin"] is True
        assert data["username"] == TEST_ADMIN["username"]
        assert data["mode"] == "admin"

    @pytest.mark.asyncio
    async def test_invalid_token_is_visitor(self, client: AsyncClient):
        resp = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
        assert resp.json()["data"]["mode"] == "visitor"
