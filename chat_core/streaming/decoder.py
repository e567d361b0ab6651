"""流式响应解码器。

接口返回的字节流解码后只有两种形态：

- 普通的助手回复文本；
- 一个以 ``{"function_call":`` 开头的完整 JSON 文档，整体解析后为
  ``{"function_call": {"name": str, "arguments": str}}``。

函数调用 JSON 是增量送达的单个文档，不存在安全的部分解析，
因此流结束前只保存原始文本（PendingFunctionCall），finish() 时才解析。
"""

import codecs
import json
from datetime import datetime

from chat_core.domain.exceptions import FunctionCallParseError
from chat_core.domain.models import FunctionCall, Message, PendingFunctionCall


FUNCTION_CALL_PREFIX = '{"function_call":'


class StreamDecoder:
    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    @property
    def is_function_call(self) -> bool:
        return self._text.startswith(FUNCTION_CALL_PREFIX)

    def feed(self, chunk: bytes) -> str:
        """追加一个字节块，返回目前累计的文本。跨块的多字节字符会被暂存。"""
        self._text += self._decoder.decode(chunk)
        return self._text

    def snapshot(self, message_id: str, created_at: datetime) -> Message:
        """按当前累计文本构造流式中的助手消息。"""
        if self.is_function_call:
            return Message(
                id=message_id,
                role="assistant",
                content="",
                function_call=PendingFunctionCall(self._text),
                created_at=created_at,
            )
        return Message(id=message_id, role="assistant", content=self._text, created_at=created_at)

    def finish(self, message_id: str, created_at: datetime) -> Message:
        """流结束：冲刷解码器，函数调用文本在此整体解析。"""
        self._text += self._decoder.decode(b"", final=True)
        if not self.is_function_call:
            return self.snapshot(message_id, created_at)
        return Message(
            id=message_id,
            role="assistant",
            content="",
            function_call=parse_function_call(self._text),
            created_at=created_at,
        )


def parse_function_call(text: str) -> FunctionCall:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise FunctionCallParseError(
            code="FUNCTION_CALL_PARSE_ERROR",
            message=f"Malformed function call JSON: {e}",
        ) from e
    call = payload.get("function_call") if isinstance(payload, dict) else None
    if not isinstance(call, dict) or not isinstance(call.get("name"), str):
        raise FunctionCallParseError(
            code="FUNCTION_CALL_PARSE_ERROR",
            message="Function call payload lacks a name",
        )
    arguments = call.get("arguments", "")
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments, ensure_ascii=False)
    return FunctionCall(name=call["name"], arguments=arguments)
