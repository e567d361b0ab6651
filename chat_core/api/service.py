"""对外 API 服务模块。

提供会话级的简化接口供上层应用（CLI、GUI、Web 后端）调用：

- ChatSession: 持有输入框文本，submit() 把输入作为用户消息追加并清空。
- ChatService: 按 chat_id 管理控制器，每个 chat_id 只有一个 ChatController，
  多个消费者通过 subscribe() 只读地共享同一份消息。
"""

from typing import Any, Dict, Optional, Sequence

import httpx

from chat_core.agents.chat_controller import ChatController
from chat_core.config.settings import settings
from chat_core.domain.models import FunctionCallDirective, FunctionSpec, Message
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import create_client


class ChatSession:
    """输入框 + 控制器。"""

    def __init__(self, controller: ChatController, initial_input: str = ""):
        self.controller = controller
        self._input = initial_input

    @property
    def input(self) -> str:
        return self._input

    def set_input(self, value: str) -> None:
        self._input = value

    @property
    def messages(self):
        return self.controller.messages

    @property
    def is_loading(self) -> bool:
        return self.controller.is_loading

    async def submit(
        self,
        functions: Optional[Sequence[FunctionSpec]] = None,
        function_call: Optional[FunctionCallDirective] = None,
    ) -> Optional[str]:
        """把当前输入作为用户消息提交；输入为空时不做任何事。"""
        if not self._input:
            return None
        text, self._input = self._input, ""
        return await self.controller.append({"role": "user", "content": text}, functions, function_call)

    async def append(self, message, functions=None, function_call=None) -> Optional[str]:
        return await self.controller.append(message, functions, function_call)

    async def reload(self, functions=None, function_call=None) -> Optional[str]:
        return await self.controller.reload(functions, function_call)

    def stop(self) -> None:
        self.controller.stop()


class ChatService:
    def __init__(self, cfg=settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = cfg
        self._transport = transport
        self._controllers: Dict[str, ChatController] = {}

    def get_controller(
        self,
        chat_id: Optional[str] = None,
        initial_messages: Sequence[Message] = (),
        **options: Any,
    ) -> ChatController:
        """获取（或首次创建）chat_id 对应的控制器；options 仅在创建时生效。"""
        if chat_id and chat_id in self._controllers:
            return self._controllers[chat_id]
        options.setdefault("max_function_call_rounds", getattr(self._settings, "max_function_call_rounds", 20))
        controller = ChatController(
            client=create_client(self._settings, transport=self._transport),
            chat_id=chat_id,
            initial_messages=initial_messages,
            **options,
        )
        self._controllers[controller.chat_id] = controller
        logger.info("service.controller_created", extra={"extra": {"chat_id": controller.chat_id}})
        return controller

    def session(self, chat_id: Optional[str] = None, initial_input: str = "", **options: Any) -> ChatSession:
        return ChatSession(self.get_controller(chat_id, **options), initial_input=initial_input)

    def close_chat(self, chat_id: str) -> None:
        controller = self._controllers.pop(chat_id, None)
        if controller is not None:
            controller.stop()

    def chat_ids(self) -> list[str]:
        return list(self._controllers)


_service: Optional[ChatService] = None


def get_default_service() -> ChatService:
    """获取默认的 ChatService 实例（单例）。"""
    global _service
    if _service is None:
        _service = ChatService(settings)
    return _service


async def run_chat(user_input: str, chat_id: Optional[str] = None, **options: Any) -> Dict[str, Any]:
    """发送一条用户消息并等待最终回复。

    Args:
        user_input: 用户输入内容
        chat_id: 会话ID（可选，不提供则创建新会话）
        options: 创建控制器时的额外参数，例如 function_call_handler

    Returns:
        包含会话ID、最终回复与完整消息列表的字典；被取消时 content 为 None

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    controller = get_default_service().get_controller(chat_id, **options)
    try:
        content = await controller.append({"role": "user", "content": user_input})
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "chat_id": controller.chat_id,
            "error": str(e),
        }})
        raise
    return {
        "chat_id": controller.chat_id,
        "content": content,
        "messages": [m.to_payload(include_extra_fields=True) for m in controller.messages],
    }
