"""应用配置管理。

使用 Pydantic Settings 统一读取环境变量，便于在本地/生产之间切换。
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """核心配置项。

    - ``database_url``：默认使用本地 SQLite，便于快速启动。
    - ``min_deadline_gap_days``：同一批次内相邻截止日期的最小间隔（天）。
    - ``enforce_sequential_submission``：是否要求按文档类型顺序逐个提交。
    - ``required_evaluators``：每份锁定提交需要的评审委员会定稿人数。
    """

    database_url: str = Field(
        default="sqlite:///./storage/capstone.db", description="SQLAlchemy 数据库 URL"
    )
    min_deadline_gap_days: int = Field(
        default=15, ge=0, description="相邻截止日期最小间隔（天）"
    )
    enforce_sequential_submission: bool = Field(
        default=False, description="前序文档未通过审核时禁止提交后续文档"
    )
    required_evaluators: int = Field(
        default=2, ge=1, description="每份提交需要的定稿评审人数"
    )
    group_min_size: int = Field(default=1, ge=1)
    group_max_size: int = Field(default=4, ge=1)
    deadline_reminder_hours: int = Field(
        default=48, ge=1, description="截止提醒提前的小时数"
    )

    secret_key: str = Field(
        default="change-me-in-production", description="Token 签名密钥"
    )
    token_expire_hours: int = 24

    environment: str = Field(default="development", description="development / production")
    log_level: str = "INFO"
    log_file: Optional[Path] = Field(default=None, description="日志文件路径，为空时只输出到控制台")

    model_config = {
        "env_prefix": "CAPSTONE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """缓存后的全局配置实例。"""

    return Settings()
