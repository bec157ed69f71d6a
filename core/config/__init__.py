from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional, List, Any, Union
from pathlib import Path

import codecs
import logging

# 设置日志
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """应用配置类，使用Pydantic v2实现类型安全的配置管理"""

    # === 基础配置 ===
    DEBUG: bool = Field(
        default=False,
        description="调试模式，等同于命令行 -v (日志级别 DEBUG)"
    )

    # === 项目路径配置 ===
    BASE_DIR: Path = Field(
        default_factory=lambda: Path(__file__).resolve().parent.parent.parent,
        description="项目根目录"
    )
    LOG_DIR: Path = Field(
        default_factory=lambda: Path(__file__).resolve().parent.parent.parent / "logs",
        description="日志文件存储目录"
    )

    # === 日志配置 ===
    LOG_LEVEL: str = Field(
        default="WARNING",
        description="日志级别: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    LOG_FORMAT: str = Field(default="text")
    LOG_INCLUDE_TRACEBACK: bool = Field(default=False)
    LOG_COLOR: bool = Field(default=True)
    LOG_TO_FILE: bool = Field(
        default=False,
        description="是否同时写入 LOG_DIR/app.log (滚动归档)"
    )
    LOG_MAX_BYTES: int = Field(default=10 * 1024 * 1024)
    LOG_BACKUP_COUNT: int = Field(default=5)
    LOG_MUTE_LOGGERS: Union[List[str], str] = Field(default=[])

    # === 校验配置 ===
    LEGACY_CODE_PAGE: str = Field(
        default="cp1252",
        description="UTF-8 字节被误解码时所用的单字节旧代码页"
    )
    MAX_WORKERS: Optional[int] = Field(
        default=None,
        description="并行校验文件的最大线程数，None 表示由线程池自行决定"
    )
    INCLUDE_PATTERNS: Union[List[str], str] = Field(
        default=[],
        description="命令行未提供模式时使用的 glob 包含模式"
    )
    EXCLUDE_PATTERNS: Union[List[str], str] = Field(
        default=[],
        description="始终排除的 glob 模式"
    )

    # 模型配置 - Pydantic v2 语法
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=False,  # 允许在运行时修改配置
        title="应用配置",
        json_schema_extra={
            "example": {
                "LOG_LEVEL": "INFO",
                "LEGACY_CODE_PAGE": "cp1252"
            }
        }
    )

    @field_validator("LOG_MUTE_LOGGERS", "INCLUDE_PATTERNS", "EXCLUDE_PATTERNS", mode="before")
    @classmethod
    def parse_list_fields(cls, v: Any) -> List[Any]:
        if isinstance(v, str):
            import json
            try:
                # 尝试 JSON 解析
                return list(json.loads(v))
            except json.JSONDecodeError:
                # 逗号分隔回退
                return [t.strip() for t in v.split(",") if t.strip()]
        return list(v)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        return str(v).strip().upper()

    @field_validator("LEGACY_CODE_PAGE")
    @classmethod
    def validate_code_page(cls, v: str) -> str:
        try:
            return codecs.lookup(v).name
        except LookupError:
            raise ValueError(f"未知代码页: {v}")

    @field_validator("MAX_WORKERS")
    @classmethod
    def validate_max_workers(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("MAX_WORKERS 必须为正整数")
        return v


# 单例模式获取配置 - 使用lru_cache确保全局只有一个实例
@lru_cache()
def get_settings() -> Settings:
    """获取配置实例，使用lru_cache实现单例模式"""
    return Settings()

# 全局配置实例，方便直接导入使用
settings = get_settings()
