"""聊天接口集成层。

该包下的模块负责：
- 定义控制器依赖的客户端协议 (base)。
- 提供基于 httpx 的流式 HTTP 实现 (chat_client)。
"""

from typing import Optional

import httpx

from chat_core.config.settings import settings
from chat_core.providers.base import ChatClient
from chat_core.providers.chat_client import ChatApiClient


def create_client(cfg=None, transport: Optional[httpx.AsyncBaseTransport] = None) -> ChatClient:
    """创建聊天接口客户端，默认取全局配置。"""

    return ChatApiClient(cfg or settings, transport=transport)
