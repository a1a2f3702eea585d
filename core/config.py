"""
配置文件 - 项目配置管理
"""
import json
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class DatabaseSettings(BaseModel):
    url: str = "sqlite+aiosqlite:///./payment.db"
    echo: bool = False


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = "Merchant Payment Reconciliation"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"

    # 分组配置：数据库采用嵌套模型（DATABASE__URL）
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    # CORS配置
    CORS_ORIGINS: list = Field(default=["http://localhost:3000", "http://localhost:8080"])

    # 日志/请求体记录配置
    LOG_LEVEL: Optional[str] = None
    LOG_JSON: Optional[bool] = None
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = False
    LOG_REQUEST_BODY_MAX_BYTES: int = 2048

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """允许 JSON 字符串或逗号分隔字符串两种格式。"""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                try:
                    arr = json.loads(s)
                except ValueError:
                    arr = None
                if isinstance(arr, list):
                    return arr
            if "," in s:
                return [item.strip() for item in s.split(",") if item.strip()]
            return [s]
        return v


settings = Settings()
