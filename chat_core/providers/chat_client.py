"""聊天补全接口的 HTTP 适配器。

约定：
- 请求: POST {chat_api_url}，JSON 体包含 messages（每条仅 role/content/name?/function_call?），
  合并配置中的 extra_body，以及存在时的 functions / function_call。
- 响应: 2xx 表示成功，响应体为字节流；非 2xx 时响应体文本即错误信息。
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import NetworkError
from chat_core.domain.models import ChatRequest
from chat_core.tools.definitions import function_schema


DEFAULT_ERROR_MESSAGE = "Failed to fetch the chat response."


class ChatApiClient:
    """基于 httpx.AsyncClient 的聊天接口客户端。"""

    name = "http"

    def __init__(self, cfg=settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = cfg
        self._transport = transport

    def build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        include_extra = bool(getattr(self._settings, "send_extra_message_fields", False))
        payload: Dict[str, Any] = {
            "messages": [m.to_payload(include_extra_fields=include_extra) for m in request.messages],
        }
        payload.update(getattr(self._settings, "extra_body", None) or {})
        if request.functions is not None:
            payload["functions"] = [function_schema(f) for f in request.functions]
        if request.function_call is not None:
            fc = request.function_call
            payload["function_call"] = fc if isinstance(fc, str) else dict(fc)
        return payload

    @asynccontextmanager
    async def stream(self, request: ChatRequest) -> AsyncIterator[httpx.Response]:
        """发起请求并产出未读取的响应；网络错误统一转换为 NetworkError。"""

        payload = self.build_payload(request)
        headers = {"Content-Type": "application/json"}
        headers.update(getattr(self._settings, "request_headers", None) or {})
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.http_timeout,
                trust_env=False,
                transport=self._transport,
            ) as client:
                async with client.stream(
                    "POST",
                    self._settings.chat_api_url,
                    json=payload,
                    headers=headers,
                ) as resp:
                    yield resp
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__) from e

    async def iter_chunks(self, response: httpx.Response) -> AsyncIterator[bytes]:
        async for chunk in response.aiter_bytes():
            if chunk:
                yield chunk

    async def read_error(self, response: httpx.Response) -> str:
        body = await response.aread()
        text = body.decode(response.encoding or "utf-8", errors="replace").strip()
        return text or DEFAULT_ERROR_MESSAGE
