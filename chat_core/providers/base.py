"""聊天接口客户端协议。

控制器不直接依赖 httpx，而是依赖此协议：

- stream(request): 发起一次 POST，返回尚未读取的流式响应（异步上下文管理器）。
- iter_chunks(response): 逐块产出响应体字节。
- read_error(response): 读取非成功响应的错误文本。

测试或其它传输实现只需满足这组方法即可替换 ChatApiClient。
"""

from typing import Any, AsyncContextManager, AsyncIterator, Dict, Protocol

from chat_core.domain.models import ChatRequest


class ChatClient(Protocol):
    name: str

    def build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        ...

    def stream(self, request: ChatRequest) -> AsyncContextManager[Any]:
        ...

    def iter_chunks(self, response: Any) -> AsyncIterator[bytes]:
        ...

    async def read_error(self, response: Any) -> str:
        ...
