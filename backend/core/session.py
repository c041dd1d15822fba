"""
会话上下文
显式传递的登录状态，替代全局共享的"当前用户"

生命周期：
- 启动时 restore_sessions(store) 从持久化槽位加载并清理失效会话
- 登录后 remember(store, token) 按会话ID写入槽位
- 每个请求 SessionContext.restore(store, token) 仅在会话仍在槽位中时视为管理员
- 登出时 logout(store) 只移除当前会话，令牌随即失效
"""

import json
import logging
from pathlib import Path
from typing import Optional, Dict

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials

from .errors import PermissionException
from .security import TokenData, decode_token, security

logger = logging.getLogger(__name__)

# 持久化槽位的固定键，值为 {会话ID: 会话记录}
SESSION_KEY = "adminUser"


class SessionStore:
    """基于 JSON 文件的会话槽位，进程重启后仍然保留"""

    def __init__(self, path: str):
        self.path = Path(path)

    def _read_all(self) -> dict:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"会话文件损坏，已忽略: {self.path}, 错误: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")

    def sessions(self) -> Dict[str, dict]:
        """槽位中的全部会话记录"""
        saved = self._read_all().get(SESSION_KEY)
        return dict(saved) if isinstance(saved, dict) else {}

    def replace(self, sessions: Dict[str, dict]) -> None:
        data = self._read_all()
        if sessions:
            data[SESSION_KEY] = sessions
        else:
            data.pop(SESSION_KEY, None)
        self._write_all(data)

    def get(self, session_id: Optional[str]) -> Optional[dict]:
        if not session_id:
            return None
        record = self.sessions().get(session_id)
        return record if isinstance(record, dict) else None

    def is_active(self, session_id: Optional[str]) -> bool:
        return self.get(session_id) is not None

    def add(self, session_id: str, record: dict) -> None:
        sessions = self.sessions()
        sessions[session_id] = record
        self.replace(sessions)

    def remove(self, session_id: Optional[str]) -> bool:
        sessions = self.sessions()
        if not session_id or session_id not in sessions:
            return False
        del sessions[session_id]
        self.replace(sessions)
        return True


def _valid_record(session_id: str, record) -> bool:
    if not isinstance(record, dict):
        return False
    user = decode_token(record.get("token") or "")
    return user is not None and user.session_id == session_id


def restore_sessions(store: SessionStore) -> int:
    """
    启动时从槽位恢复会话

    损坏、过期或与会话ID不符的记录会被清除，返回仍然有效的会话数
    """
    saved = store.sessions()
    alive = {sid: record for sid, record in saved.items() if _valid_record(sid, record)}
    if len(alive) != len(saved):
        logger.info(f"已清除 {len(saved) - len(alive)} 个无效或过期的会话")
        store.replace(alive)
    return len(alive)


class SessionContext:
    """当前会话：管理员（user 非空）或访客"""

    def __init__(self, user: Optional[TokenData] = None, token: Optional[str] = None):
        self.user = user
        self.token = token

    @classmethod
    def visitor(cls) -> "SessionContext":
        return cls()

    @classmethod
    def restore(cls, store: SessionStore, token: Optional[str]) -> "SessionContext":
        """由令牌恢复会话：令牌有效且会话仍在槽位中，否则视为访客"""
        if not token:
            return cls.visitor()
        user = decode_token(token)
        if user is None or not store.is_active(user.session_id):
            return cls.visitor()
        return cls(user=user, token=token)

    def remember(self, store: SessionStore, token: str) -> None:
        """登录成功后按会话ID写入槽位"""
        user = decode_token(token)
        if user is None or not user.session_id:
            raise PermissionException("无效的认证凭据")
        self.user = user
        self.token = token
        store.add(user.session_id, {"token": token, "user": user.model_dump()})

    def logout(self, store: Optional[SessionStore] = None) -> None:
        """登出：移除当前会话（其他管理员的会话不受影响）并清空上下文"""
        if store is not None and self.user is not None:
            store.remove(self.user.session_id)
        self.user = None
        self.token = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.role == "admin"

    def require_admin(self) -> TokenData:
        """服务端权限校验，所有写操作前调用"""
        if not self.is_admin:
            raise PermissionException("仅管理员可执行此操作")
        return self.user

    def __repr__(self) -> str:
        who = self.user.username if self.user else "visitor"
        return f"<SessionContext {who}>"


_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """获取持久化槽位实例"""
    global _session_store
    if _session_store is None:
        from .config import get_settings
        _session_store = SessionStore(get_settings().session_file)
    return _session_store


async def get_session_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> SessionContext:
    """请求级会话上下文（依赖注入用）"""
    if credentials is None:
        return SessionContext.visitor()
    return SessionContext.restore(get_session_store(), credentials.credentials)
