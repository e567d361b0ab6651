"""流式对话控制器。

ChatController 负责一个会话（chat_id）的全部请求：

1. 提交前对 MessageStore 做快照，并乐观地写入请求消息；
2. 通过 ChatClient 发起流式请求，每收到一个字节块就用 StreamDecoder
   生成最新的助手消息并整体替换存储；
3. 网络错误、非成功状态、空响应体等失败时回滚到快照再抛出；
4. stop() 立即中断正在等待的网络读取（包括尚未收到响应头时），
   被取消的提交返回 None 且不回滚；
5. 终止消息为函数调用时，交给 FunctionCallLoop 调用处理器并继续提交。

同一控制器上的提交由 asyncio.Lock 串行化，排队中的 append 会基于
前一个提交完成后的消息列表构造请求。
"""

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.conversation import MessageStore, Subscriber
from chat_core.domain.exceptions import EmptyResponseError, ApiError, RequestCancelled
from chat_core.domain.models import (
    ChatRequest,
    FunctionCallDirective,
    FunctionSpec,
    Message,
    MessageInput,
    coerce_message,
    new_message_id,
)
from chat_core.flows.function_loop import FunctionCallHandler, FunctionCallLoop
from chat_core.flows.state import LoopPhase
from chat_core.infrastructure.logging.logger import bind_logger
from chat_core.providers.base import ChatClient
from chat_core.streaming.cancellation import CancellationSlot, CancellationToken
from chat_core.streaming.decoder import StreamDecoder

_UNSET: Any = object()


class ChatController:
    def __init__(
        self,
        client: ChatClient,
        store: Optional[MessageStore] = None,
        chat_id: Optional[str] = None,
        initial_messages: Sequence[Message] = (),
        function_call_handler: Optional[FunctionCallHandler] = None,
        on_response: Optional[Callable[[Any], Any]] = None,
        on_finish: Optional[Callable[[Message], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
        max_function_call_rounds: Optional[int] = _UNSET,
    ):
        self.chat_id = chat_id or (store.chat_id if store else None) or f"c-{uuid4().hex}"
        self._client = client
        self._store = store or MessageStore(initial_messages, chat_id=self.chat_id)
        self._on_response = on_response
        self._on_finish = on_finish
        self._on_error = on_error
        self._log = bind_logger(chat_id=self.chat_id)
        if max_function_call_rounds is _UNSET:
            max_function_call_rounds = getattr(settings, "max_function_call_rounds", 20)
        self._loop = FunctionCallLoop(
            submit=self._submit,
            read_messages=self._store.read,
            handler=function_call_handler,
            max_rounds=max_function_call_rounds,
            on_phase=self._set_phase,
        )
        self._lock = asyncio.Lock()
        self._slot = CancellationSlot()
        self._phase = LoopPhase.IDLE
        self._error: Optional[Exception] = None
        self._pending = 0

    # ---- 状态 ----

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def messages(self) -> List[Message]:
        return self._store.read()

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def phase(self) -> LoopPhase:
        return self._phase

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self._store.subscribe(callback)

    # ---- 公共操作 ----

    async def append(
        self,
        message: MessageInput,
        functions: Optional[Sequence[FunctionSpec]] = None,
        function_call: Optional[FunctionCallDirective] = None,
    ) -> Optional[str]:
        """追加一条消息并请求助手回复。

        没有 id 的消息会被分配一个在当前会话中唯一的 id。

        Returns:
            终止消息的 content；被 stop() 取消时为 None。
        """
        message = coerce_message(message, existing_ids=self._store.ids())

        def build() -> ChatRequest:
            return ChatRequest.build([*self._store.read(), message], functions, function_call)

        return await self._trigger(build)

    async def reload(
        self,
        functions: Optional[Sequence[FunctionSpec]] = None,
        function_call: Optional[FunctionCallDirective] = None,
    ) -> Optional[str]:
        """重新生成回复。

        最后一条是助手消息时去掉它再请求；否则按原样请求首个回复。
        会话为空时直接返回 None。
        """

        def build() -> Optional[ChatRequest]:
            current = self._store.read()
            if not current:
                return None
            if current[-1].role == "assistant":
                current = current[:-1]
            return ChatRequest.build(current, functions, function_call)

        return await self._trigger(build)

    def stop(self) -> None:
        """取消当前请求，保留已生成的内容。幂等，空闲时不做任何事。"""
        if self._slot.cancel():
            self._log.info("controller.stop", fields={"phase": self._phase.value})

    def set_messages(self, messages: Sequence[Message]) -> None:
        """在请求之外直接替换本地消息，例如编辑后再 reload()。"""
        self._store.replace(messages)

    # ---- 提交流程 ----

    async def _trigger(self, build: Callable[[], Optional[ChatRequest]]) -> Optional[str]:
        self._pending += 1
        try:
            async with self._lock:
                request = build()
                if request is None:
                    return None
                token = self._slot.activate()
                self._error = None
                log = self._log.bind(messages=len(request.messages))
                log.info("controller.submit.start")
                try:
                    message = await self._loop.run(request, token)
                except Exception as e:
                    self._error = e
                    self._set_phase(LoopPhase.FAILED)
                    log.error("controller.submit.failed", fields={"error": str(e), "kind": type(e).__name__})
                    try:
                        await _maybe_await(self._on_error, e)
                    except Exception:
                        # 回调自身的异常只记录，向调用方抛出的仍是原始错误
                        log.exception("controller.on_error_failed", fields={"kind": type(e).__name__})
                    raise
                finally:
                    self._slot.clear(token)
                if message is None:
                    return None
                log.info("controller.submit.done", fields={"message_id": message.id})
                return message.content
        finally:
            self._pending -= 1

    async def _submit(self, request: ChatRequest, token: CancellationToken) -> Message:
        """在独立任务中执行一次流式请求，stop() 通过取消该任务中断等待中的读取。"""

        task = asyncio.ensure_future(self._stream_reply(request, token))
        remove_callback = token.add_callback(task.cancel)
        try:
            return await task
        except asyncio.CancelledError:
            if token.cancelled:
                raise RequestCancelled() from None
            # 外层任务被取消，连同读取任务一起结束
            task.cancel()
            raise
        finally:
            remove_callback()

    async def _stream_reply(self, request: ChatRequest, token: CancellationToken) -> Message:
        """快照 → 乐观更新 → 读流 → 解析。"""

        previous = self._store.read()
        self._store.replace(request.messages, optimistic=True)

        decoder = StreamDecoder()
        reply_id = new_message_id({m.id for m in request.messages})
        created_at = datetime.now(timezone.utc)
        message: Optional[Message] = None
        try:
            async with self._client.stream(request) as response:
                token.raise_if_cancelled()
                await _maybe_await(self._on_response, response)
                if not response.is_success:
                    raise ApiError(
                        code="API_ERROR",
                        message=await self._client.read_error(response),
                        http_status=response.status_code,
                    )
                async for chunk in self._client.iter_chunks(response):
                    # 取消后到达的字节块不再写入存储
                    token.raise_if_cancelled()
                    if message is None:
                        self._set_phase(LoopPhase.STREAMING)
                    decoder.feed(chunk)
                    message = decoder.snapshot(reply_id, created_at)
                    self._store.replace([*request.messages, message])
                if message is None:
                    raise EmptyResponseError(code="EMPTY_RESPONSE", message="The response body is empty.")
        except RequestCancelled:
            raise
        except Exception:
            self._store.replace(previous)
            self._log.warning("controller.rollback", fields={"restored": len(previous)})
            raise

        final = decoder.finish(reply_id, created_at)
        if final != message:
            self._store.replace([*request.messages, final])
        await _maybe_await(self._on_finish, final)
        return final

    def _set_phase(self, phase: LoopPhase) -> None:
        self._phase = phase


async def _maybe_await(callback: Optional[Callable[..., Any]], *args: Any) -> Any:
    if callback is None:
        return None
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
