"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
优先级：显式参数 > 环境变量 > .env > config.yaml > secrets。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 聊天接口 ----
    chat_api_url: str = Field(
        default="http://localhost:3000/api/chat",
        description="聊天补全接口地址（POST，返回字节流）",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    request_headers: Dict[str, str] = Field(
        default_factory=dict,
        description="每次请求附带的额外 HTTP 头",
    )
    extra_body: Dict[str, Any] = Field(
        default_factory=dict,
        description="合并进请求体的额外字段，例如 previewToken",
    )
    send_extra_message_fields: bool = Field(
        default=False,
        description="是否把 id / createdAt 一并发送给接口",
    )

    # ---- 函数调用循环 ----
    max_function_call_rounds: Optional[int] = Field(
        default=20,
        ge=1,
        description="单次提交内函数调用的最大轮数；None 表示不限制",
    )

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_file: str = Field(default="chat.log", description="日志文件名（位于 log_dir 下）")
    log_console: bool = Field(default=False, description="是否同时输出到标准错误")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("chat_api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("chat_api_url must be an absolute http(s) URL")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
