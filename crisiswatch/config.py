import os
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """
    应用配置管理
    使用 .env 文件加载环境变量，支持默认值
    """
    # Database - SQLite 数据库路径
    # 默认使用本地相对路径，Docker 环境可通过环境变量覆盖
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/crisiswatch.db"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_FILE: str = ""

    # 危机检测
    MAX_DETECTION_TEXT_LENGTH: int = 5000
    MAX_KEYWORD_LENGTH: int = 255
    MAX_RESPONSE_ACTION_LENGTH: int = 1000

    # 批量导入
    MAX_IMPORT_FILE_BYTES: int = 2 * 1024 * 1024

    # 统计
    STATS_TIMEFRAME_DAYS: int = 30
    STALE_KEYWORD_MONTHS: int = 6

    # 危机通知（Webhook）
    NOTIFICATION_ENABLED: bool = False
    NOTIFICATION_WEBHOOK_URL: str = ""
    NOTIFICATION_TIMEOUT: int = 10

    # CORS - 允许的域名列表，多个域名用逗号分隔
    ALLOWED_ORIGINS: str = "http://localhost:8000,http://127.0.0.1:8000"

    class Config:
        env_file = os.path.join(os.path.dirname(__file__), "..", ".env")
        env_file_encoding = "utf-8"


@lru_cache()  # 缓存配置，避免重复加载
def get_settings() -> Settings:
    """
    获取应用配置实例
    使用方法：from crisiswatch.config import settings
    """
    return Settings()


# 全局配置实例
settings = get_settings()
