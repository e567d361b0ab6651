"""Function-call loop built on LangGraph.

submit ──(plain content / no handler)──> END
   │  ▲
   │  └──────────── call_function <──(resolved function call)
   └──(cancelled)──> END

The ``submit`` node runs one streamed submission through the controller.
When the terminal assistant message carries a resolved function call and a
handler is configured, the ``call_function`` node hands it the call plus
the latest conversation and feeds the returned request back into ``submit``.
"""

from __future__ import annotations

import inspect
from typing import Awaitable, Callable, List, Optional, Union

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from chat_core.domain.exceptions import FunctionCallLoopExceeded, RequestCancelled, ValidationError
from chat_core.domain.models import ChatRequest, FunctionCall, Message
from chat_core.flows.state import LoopPhase, LoopState
from chat_core.infrastructure.logging.logger import logger
from chat_core.streaming.cancellation import CancellationToken

Submit = Callable[[ChatRequest, CancellationToken], Awaitable[Message]]
FunctionCallHandler = Callable[
    [FunctionCall, ChatRequest],
    Union[ChatRequest, Awaitable[ChatRequest]],
]

# LangGraph needs a finite step limit even when rounds are unbounded.
_UNBOUNDED_STEPS = 1_000_000


class FunctionCallLoop:
    def __init__(
        self,
        submit: Submit,
        read_messages: Callable[[], List[Message]],
        handler: Optional[FunctionCallHandler] = None,
        max_rounds: Optional[int] = 20,
        on_phase: Optional[Callable[[LoopPhase], None]] = None,
    ):
        if max_rounds is not None and max_rounds < 1:
            raise ValidationError(code="INVALID_MAX_ROUNDS", message="max_rounds must be >= 1")
        self._submit = submit
        self._read_messages = read_messages
        self._handler = handler
        self._max_rounds = max_rounds
        self._on_phase = on_phase or (lambda phase: None)
        self._graph = self._build_graph()

    @property
    def max_rounds(self) -> Optional[int]:
        return self._max_rounds

    async def run(self, request: ChatRequest, token: CancellationToken) -> Optional[Message]:
        """Run until a terminal message; ``None`` means the submission was cancelled."""

        state: LoopState = {
            "request": request,
            "token": token,
            "message": None,
            "rounds": 0,
            "phase": LoopPhase.REQUESTING,
        }
        result = await self._graph.ainvoke(state, {"recursion_limit": self._recursion_limit()})
        if result.get("phase") == LoopPhase.CANCELLED:
            self._on_phase(LoopPhase.CANCELLED)
            return None
        self._on_phase(LoopPhase.DONE)
        return result.get("message")

    # ---- nodes ----

    async def _submit_node(self, state: LoopState) -> LoopState:
        self._on_phase(LoopPhase.REQUESTING)
        try:
            message = await self._submit(state["request"], state["token"])
        except RequestCancelled:
            logger.info("loop.cancelled", extra={"extra": {"rounds": state.get("rounds", 0)}})
            return {"message": None, "phase": LoopPhase.CANCELLED}
        self._on_phase(LoopPhase.DECIDED)
        return {"message": message, "phase": LoopPhase.DECIDED}

    async def _call_function_node(self, state: LoopState) -> LoopState:
        rounds = state.get("rounds", 0)
        if state["token"].cancelled:
            # stop() landed after the stream ended; the handler must not run
            logger.info("loop.cancelled", extra={"extra": {"rounds": rounds}})
            return {"phase": LoopPhase.CANCELLED}
        if self._max_rounds is not None and rounds >= self._max_rounds:
            raise FunctionCallLoopExceeded(
                code="FUNCTION_CALL_LOOP_EXCEEDED",
                message=f"Function call loop exceeded {self._max_rounds} rounds",
                rounds=rounds,
            )
        call = state["message"].function_call
        self._on_phase(LoopPhase.AWAITING_HANDLER)
        logger.info("loop.handler.start", extra={"extra": {"function": call.name, "round": rounds + 1}})
        current = state["request"].with_messages(self._read_messages())
        next_request = self._handler(call, current)
        if inspect.isawaitable(next_request):
            next_request = await next_request
        if not isinstance(next_request, ChatRequest):
            raise ValidationError(
                code="INVALID_HANDLER_RESULT",
                message=f"Function handler must return a ChatRequest, got {type(next_request).__name__}",
            )
        if state["token"].cancelled:
            return {"rounds": rounds + 1, "phase": LoopPhase.CANCELLED}
        return {"request": next_request, "rounds": rounds + 1, "phase": LoopPhase.REQUESTING}

    # ---- routing ----

    def _after_submit(self, state: LoopState) -> str:
        if state.get("phase") == LoopPhase.CANCELLED:
            return "end"
        message = state.get("message")
        if message is not None and message.has_resolved_function_call and self._handler is not None:
            return "call_function"
        return "end"

    @staticmethod
    def _after_call_function(state: LoopState) -> str:
        if state.get("phase") == LoopPhase.CANCELLED:
            return "end"
        return "submit"

    def _recursion_limit(self) -> int:
        if self._max_rounds is None:
            return _UNBOUNDED_STEPS
        # submit + call_function per round, plus the last submit and the failing call_function step
        return 2 * self._max_rounds + 4

    def _build_graph(self) -> CompiledStateGraph:
        graph = StateGraph(LoopState)
        graph.add_node("submit", self._submit_node)
        graph.add_node("call_function", self._call_function_node)
        graph.set_entry_point("submit")
        graph.add_conditional_edges("submit", self._after_submit, {"call_function": "call_function", "end": END})
        graph.add_conditional_edges("call_function", self._after_call_function, {"submit": "submit", "end": END})
        return graph.compile()
