import asyncio
import json

import pytest

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import ChatRequest, FunctionCall, Message
from chat_core.tools.definitions import FunctionDef, FunctionParam
from chat_core.tools.executor import NOT_REGISTERED, FunctionExecutor

from conftest import FakeApi, streamed


def _request():
    return ChatRequest.build([Message(id="u1", role="user", content="weather?")], functions=[{"name": "w"}])


def test_executor_appends_function_message():
    ex = FunctionExecutor({"get_current_weather": lambda args: {"temperature": 21, "location": args["location"]}})
    call = FunctionCall(name="get_current_weather", arguments='{"location": "Oslo", "format": "celsius"}')
    nxt = asyncio.run(ex(call, _request()))
    reply = nxt.messages[-1]
    assert reply.role == "function"
    assert reply.name == "get_current_weather"
    assert json.loads(reply.content) == {"temperature": 21, "location": "Oslo"}
    assert nxt.functions == _request().functions
    assert reply.id != "u1"


def test_executor_unknown_function_and_async_function():
    async def now(args):
        return "12:00"

    ex = FunctionExecutor({"get_current_time": now})
    assert asyncio.run(ex.execute(FunctionCall("get_current_time", ""))) == "12:00"
    assert asyncio.run(ex.execute(FunctionCall("launch_rocket", "{}"))) == NOT_REGISTERED


@pytest.mark.parametrize("arguments", ['{"location": ', "[1, 2]"])
def test_executor_rejects_bad_arguments(arguments):
    ex = FunctionExecutor({"f": lambda args: "x"})
    with pytest.raises(ValidationError) as e:
        asyncio.run(ex.execute(FunctionCall("f", arguments)))
    assert e.value.code == "INVALID_FUNCTION_ARGUMENTS"


def test_executor_schemas():
    fd = FunctionDef(
        name="get_current_time",
        description="Get the current time",
        params={"tz": FunctionParam(name="tz", description="", required=False, schema={})},
    )
    ex = FunctionExecutor({"get_current_time": lambda args: "now"}, definitions=[fd])
    schema = ex.schemas()[0]
    assert schema["name"] == "get_current_time"
    assert schema["parameters"]["properties"]["tz"] == {"type": "string"}


def test_executor_as_controller_handler(make_controller):
    call = b'{"function_call":{"name":"get_current_time","arguments":"{}"}}'
    api = FakeApi(streamed(call), streamed(b"It is 12:00."))
    ex = FunctionExecutor({"get_current_time": lambda args: {"time": "12:00"}})
    ctrl = make_controller(api, function_call_handler=ex)

    assert asyncio.run(ctrl.append({"role": "user", "content": "time?"})) == "It is 12:00."
    fn = api.payloads[1]["messages"][-1]
    assert fn == {"role": "function", "content": '{"time": "12:00"}', "name": "get_current_time"}
