"""Chat Core 顶层包。

该包提供客户端侧的流式对话控制器，
包括配置加载、领域模型、消息存储、流式解码、协作式取消、
HTTP 适配以及函数调用循环等能力。
"""

from chat_core.agents.chat_controller import ChatController
from chat_core.domain.models import ChatRequest, FunctionCall, Message, PendingFunctionCall
from chat_core.tools.executor import FunctionExecutor

__all__ = ["ChatController", "ChatRequest", "FunctionCall", "FunctionExecutor", "Message", "PendingFunctionCall"]
