"""
系统配置管理
统一管理所有配置项，支持环境变量覆盖
"""

from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional, List
from urllib.parse import quote_plus

# 获取backend目录的绝对路径
BACKEND_DIR = Path(__file__).parent.parent.resolve()
ENV_FILE = BACKEND_DIR / ".env"

DEFAULT_JWT_SECRET = "your-secret-key-change-in-production"


class Settings(BaseSettings):
    """系统配置"""

    # 应用信息
    app_name: str = "File Explorer"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # 数据库配置
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "file_explorer"
    database_url: Optional[str] = None  # 完整连接串，设置后优先使用（测试时为 SQLite）

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        encoded_user = quote_plus(self.db_user)
        encoded_pwd = quote_plus(self.db_password)
        return f"mysql+aiomysql://{encoded_user}:{encoded_pwd}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def is_sqlite(self) -> bool:
        return self.db_url.startswith("sqlite")

    # JWT令牌配置
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24  # 管理员会话保持一天

    # 对象存储（存储桶）
    storage_root: str = "storage"
    bucket_name: str = "file-explorer"
    bucket_public: bool = True
    max_upload_size: int = 50 * 1024 * 1024  # 50MB
    allowed_mime_prefixes: List[str] = [
        "image/", "video/", "audio/", "text/", "application/pdf",
        "application/msword", "application/vnd.openxmlformats-officedocument",
        "application/vnd.ms-excel", "application/vnd.ms-powerpoint",
        "application/zip", "application/x-rar",
    ]
    signed_url_ttl: int = 3600  # 预览链接有效期（秒）

    # 会话持久化槽位（JSON 文件）
    session_file: str = "storage/session.json"

    # 默认管理员账户配置（首次启动时创建）
    admin_username: str = "admin"
    admin_password: str = "admin123"  # 首次启动后请立即修改

    # 跨域
    cors_origins: List[str] = ["*"]

    class Config:
        env_file = str(ENV_FILE)
        env_file_encoding = "utf-8"


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    获取配置单例
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()

        # 安全检查: 如果是生产环境且使用默认密钥，发出警告
        if not _settings_instance.debug and _settings_instance.jwt_secret == DEFAULT_JWT_SECRET:
            import logging
            logging.getLogger("core.config").warning(
                "🚨 [安全警告] 您正在使用默认的 JWT_SECRET，预览链接和登录令牌均可被伪造！"
                "请在 .env 文件中配置 JWT_SECRET。"
            )
    return _settings_instance


def reload_settings():
    """
    重新加载配置（测试或修改 .env 后使用）
    """
    global _settings_instance
    _settings_instance = Settings()
    return _settings_instance
