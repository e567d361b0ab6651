"""Minimal demonstration of the streaming controller with function calls."""

import asyncio
import random
from datetime import datetime

from chat_core.api.service import get_default_service
from chat_core.tools import FunctionDef, FunctionExecutor, FunctionParam

WEATHER = FunctionDef(
    name="get_current_weather",
    description="Get the current weather",
    params={
        "location": FunctionParam(
            name="location",
            description="The city and state, e.g. San Francisco, CA",
            required=True,
            schema={"type": "string"},
        ),
        "format": FunctionParam(
            name="format",
            description="The temperature unit to use. Infer this from the users location.",
            required=True,
            schema={"type": "string", "enum": ["celsius", "fahrenheit"]},
        ),
    },
)
CLOCK = FunctionDef(name="get_current_time", description="Get the current time", params={})


def fake_weather(args):
    return {
        "location": args.get("location"),
        "temperature": random.randint(30, 100),
        "weather": random.choice(["sunny", "cloudy", "rainy", "snowy"]),
        "info": "This data is randomly generated and came from a fake weather API!",
    }


def current_time(args):
    return {"time": datetime.now().strftime("%H:%M:%S")}


async def main() -> None:
    executor = FunctionExecutor(
        {"get_current_weather": fake_weather, "get_current_time": current_time},
        definitions=[WEATHER, CLOCK],
    )
    session = get_default_service().session(function_call_handler=executor)
    session.controller.subscribe(
        lambda msgs, optimistic: print("\r" + (msgs[-1].content or "..."), end="", flush=True)
    )
    session.set_input("What time is it, and is it raining in Oslo?")
    print("User:", session.input)
    reply = await session.submit(functions=executor.schemas())
    print("\nAssistant:", reply)


if __name__ == "__main__":
    asyncio.run(main())
