"""把 Python 可调用对象包装成函数调用处理器。

FunctionExecutor 满足 FunctionCallLoop 对处理器的约定：
接收 (FunctionCall, 当前 ChatRequest)，返回追加了一条 role="function"
结果消息的下一轮 ChatRequest。
"""

import inspect
import json
from typing import Any, Callable, Dict, List, Optional

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import ChatRequest, FunctionCall, Message
from chat_core.infrastructure.logging.logger import logger
from chat_core.tools.definitions import FunctionDef


FunctionFunc = Callable[[Dict[str, Any]], Any]
NOT_REGISTERED = "Function not registered"


class FunctionExecutor:
    def __init__(self, functions: Dict[str, FunctionFunc], definitions: Optional[List[FunctionDef]] = None):
        self._functions = functions
        self._definitions = definitions or []

    def schemas(self) -> List[Dict[str, Any]]:
        return [d.to_schema() for d in self._definitions]

    async def execute(self, call: FunctionCall) -> str:
        func = self._functions.get(call.name)
        if not func:
            logger.warning("executor.not_registered", extra={"extra": {"function": call.name}})
            return NOT_REGISTERED
        result = func(parse_arguments(call))
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False)

    async def __call__(self, call: FunctionCall, request: ChatRequest) -> ChatRequest:
        content = await self.execute(call)
        existing = {m.id for m in request.messages}
        reply = Message.create("function", content, name=call.name, existing_ids=existing)
        return request.with_messages([*request.messages, reply])


def parse_arguments(call: FunctionCall) -> Dict[str, Any]:
    raw = (call.arguments or "").strip()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(
            code="INVALID_FUNCTION_ARGUMENTS",
            message=f"Arguments of {call.name!r} are not valid JSON: {e}",
            function=call.name,
        ) from e
    if not isinstance(parsed, dict):
        raise ValidationError(
            code="INVALID_FUNCTION_ARGUMENTS",
            message=f"Arguments of {call.name!r} must be a JSON object",
            function=call.name,
        )
    return parsed
