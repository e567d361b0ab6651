import asyncio
import json

import pytest

from chat_core.domain.exceptions import FunctionCallLoopExceeded, ValidationError
from chat_core.domain.models import ChatRequest, FunctionCall, Message, PendingFunctionCall
from chat_core.flows.function_loop import FunctionCallLoop
from chat_core.flows.state import LoopPhase
from chat_core.streaming.cancellation import CancellationToken

from conftest import FakeApi, streamed

TIME_CALL = b'{"function_call":{"name":"get_current_time","arguments":"{}"}}'


def _time_result(call, request):
    reply = Message.create("function", json.dumps({"time": "12:00"}), name=call.name)
    return request.with_messages([*request.messages, reply])


def test_function_call_round_trip(make_controller):
    api = FakeApi(streamed(TIME_CALL[:20], TIME_CALL[20:]), streamed(b"It is noon."))
    calls = []

    def handler(call, request):
        calls.append((call, [m.role for m in request.messages]))
        return _time_result(call, request)

    ctrl = make_controller(api, function_call_handler=handler)
    states = []
    ctrl.subscribe(lambda msgs, optimistic: states.append(msgs[-1]))

    result = asyncio.run(ctrl.append({"role": "user", "content": "what time is it?"}))

    assert result == "It is noon."
    assert calls == [(FunctionCall(name="get_current_time", arguments="{}"), ["user", "assistant"])]
    assert any(isinstance(m.function_call, PendingFunctionCall) for m in states)
    second = api.payloads[1]["messages"]
    assert [m["role"] for m in second] == ["user", "assistant", "function"]
    assert second[1]["function_call"] == {"name": "get_current_time", "arguments": "{}"}
    assert second[2]["name"] == "get_current_time"
    assert [m.role for m in ctrl.messages] == ["user", "assistant", "function", "assistant"]


def test_function_call_without_handler_is_terminal(make_controller):
    api = FakeApi(streamed(TIME_CALL))
    ctrl = make_controller(api)

    result = asyncio.run(ctrl.append({"role": "user", "content": "time?"}))

    assert result == ""
    last = ctrl.messages[-1]
    assert last.function_call == FunctionCall(name="get_current_time", arguments="{}")
    assert last.content == ""
    assert api.calls == 1


def test_async_handler_and_functions_carried_over(make_controller):
    api = FakeApi(streamed(TIME_CALL), streamed(b"noon"))

    async def handler(call, request):
        await asyncio.sleep(0)
        return _time_result(call, request)

    ctrl = make_controller(api, function_call_handler=handler)
    functions = [{"name": "get_current_time", "parameters": {"type": "object", "properties": {}}}]
    asyncio.run(ctrl.append({"role": "user", "content": "time?"}, functions=functions, function_call="auto"))

    assert api.payloads[1]["functions"] == functions
    assert api.payloads[1]["function_call"] == "auto"


def test_loop_exceeded_fails_fast(make_controller):
    api = FakeApi(*[streamed(TIME_CALL) for _ in range(3)])
    calls = []

    def handler(call, request):
        calls.append(call.name)
        return _time_result(call, request)

    errors = []
    ctrl = make_controller(api, function_call_handler=handler, max_function_call_rounds=2, on_error=errors.append)

    with pytest.raises(FunctionCallLoopExceeded) as e:
        asyncio.run(ctrl.append({"role": "user", "content": "loop"}))

    assert len(calls) == 2
    assert api.calls == 3
    assert e.value.extra["rounds"] == 2
    assert errors == [e.value]


def test_handler_failure_propagates_without_rollback(make_controller):
    api = FakeApi(streamed(TIME_CALL))

    def handler(call, request):
        raise RuntimeError("clock is broken")

    ctrl = make_controller(api, function_call_handler=handler)
    with pytest.raises(RuntimeError, match="clock is broken"):
        asyncio.run(ctrl.append({"role": "user", "content": "time?"}))
    assert ctrl.messages[-1].function_call == FunctionCall(name="get_current_time", arguments="{}")


def test_handler_must_return_request(make_controller):
    ctrl = make_controller(FakeApi(streamed(TIME_CALL)), function_call_handler=lambda call, request: None)
    with pytest.raises(ValidationError) as e:
        asyncio.run(ctrl.append({"role": "user", "content": "time?"}))
    assert e.value.code == "INVALID_HANDLER_RESULT"


def test_stop_while_handler_runs_ends_loop(make_controller):
    api = FakeApi(streamed(TIME_CALL))
    holder = {}

    def handler(call, request):
        holder["ctrl"].stop()
        return _time_result(call, request)

    ctrl = make_controller(api, function_call_handler=handler)
    holder["ctrl"] = ctrl
    assert asyncio.run(ctrl.append({"role": "user", "content": "time?"})) is None
    assert api.calls == 1
    assert ctrl.phase is LoopPhase.CANCELLED


def test_loop_phases_and_unbounded_rounds():
    phases = []
    replies = iter(
        [
            Message(id="a1", role="assistant", content="", function_call=FunctionCall("f", "{}")),
            Message(id="a2", role="assistant", content="", function_call=FunctionCall("f", "{}")),
            Message(id="a3", role="assistant", content="done"),
        ]
    )
    history = []

    async def submit(request, token):
        history[:] = list(request.messages)
        message = next(replies)
        history.append(message)
        return message

    def handler(call, request):
        return request.with_messages([*request.messages, Message.create("function", "ok", name=call.name)])

    loop = FunctionCallLoop(submit, lambda: list(history), handler=handler, max_rounds=None, on_phase=phases.append)
    request = ChatRequest.build([Message(id="u1", role="user", content="go")])
    result = asyncio.run(loop.run(request, CancellationToken()))

    assert result.content == "done"
    assert loop.max_rounds is None
    assert phases.count(LoopPhase.AWAITING_HANDLER) == 2
    assert phases[-1] is LoopPhase.DONE
    assert [m.role for m in history] == ["user", "assistant", "function", "assistant", "function", "assistant"]


def test_loop_rejects_invalid_max_rounds():
    async def submit(request, token):
        return None

    with pytest.raises(ValidationError):
        FunctionCallLoop(submit, list, max_rounds=0)


def test_stop_in_on_finish_skips_handler(make_controller):
    api = FakeApi(streamed(TIME_CALL), streamed(b"unused"))
    calls = []

    def handler(call, request):
        calls.append(call)
        return _time_result(call, request)

    ctrl = make_controller(api, function_call_handler=handler, on_finish=lambda m: ctrl.stop())

    assert asyncio.run(ctrl.append({"role": "user", "content": "time?"})) is None
    assert calls == []
    assert api.calls == 1
    assert ctrl.phase is LoopPhase.CANCELLED
    assert ctrl.messages[-1].function_call == FunctionCall(name="get_current_time", arguments="{}")


def test_cancelled_token_ends_loop_before_handler():
    token = CancellationToken()
    phases = []
    calls = []

    async def submit(request, token_):
        token_.cancel()
        return Message(id="a1", role="assistant", content="", function_call=FunctionCall("f", "{}"))

    def handler(call, request):
        calls.append(call)
        return request

    loop = FunctionCallLoop(submit, list, handler=handler, on_phase=phases.append)
    request = ChatRequest.build([Message(id="u1", role="user", content="go")])

    assert asyncio.run(loop.run(request, token)) is None
    assert calls == []
    assert LoopPhase.AWAITING_HANDLER not in phases
    assert phases[-1] is LoopPhase.CANCELLED
