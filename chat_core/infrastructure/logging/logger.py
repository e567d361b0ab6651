"""JSON 行日志。

每条记录输出为一行 JSON：ts / level / name / msg，再并入调用方通过
extra={"extra": {...}} 传入的字段。控制器等按会话工作的模块使用
bind_logger(chat_id=...) 得到的 ChatLogAdapter，会话上下文会自动并入每条记录。
"""

import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict

from chat_core.config.settings import settings

LOGGER_NAME = "chat_core"
# 开启脱敏时这些字段只记录长度
REDACTED_FIELDS = ("content", "error", "input")
MSG_PREVIEW_CHARS = 64


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self.redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage() or ""
        extra = getattr(record, "extra", None)
        fields: Dict[str, Any] = dict(extra) if isinstance(extra, dict) else {}
        if self.redact_content:
            msg = msg[:MSG_PREVIEW_CHARS]
            for key in REDACTED_FIELDS:
                value = fields.get(key)
                if isinstance(value, str):
                    fields[key] = f"<redacted len={len(value)}>"
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        payload.update(fields)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ChatLogAdapter(logging.LoggerAdapter):
    """把绑定的上下文与调用时的 fields= 合并为 extra 字段。

        log = bind_logger(chat_id="c-1")
        log.info("controller.stop", fields={"phase": "streaming"})
    """

    def process(self, msg, kwargs):
        fields = {**self.extra, **(kwargs.pop("fields", None) or {})}
        kwargs["extra"] = {"extra": fields}
        return msg, kwargs

    def bind(self, **context: Any) -> "ChatLogAdapter":
        return ChatLogAdapter(self.logger, {**self.extra, **context})


def setup_logger(cfg=settings) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(cfg.log_level)
    if logger.handlers:
        return logger
    formatter = JsonFormatter(redact_content=cfg.log_redact_content)

    log_dir = Path(cfg.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / cfg.log_file, encoding="utf-8")
    fh.setLevel(cfg.log_level)
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    if cfg.log_console:
        sh = logging.StreamHandler()
        sh.setLevel(cfg.log_level)
        sh.setFormatter(formatter)
        logger.addHandler(sh)
    return logger


logger = setup_logger()


def bind_logger(**context: Any) -> ChatLogAdapter:
    return ChatLogAdapter(logger, context)
