import json

import httpx
import pytest

from chat_core.agents.chat_controller import ChatController
from chat_core.providers.chat_client import ChatApiClient


class SettingsStub:
    chat_api_url = "http://testserver/api/chat"
    http_timeout = 5.0
    request_headers = {}
    extra_body = {}
    send_extra_message_fields = False
    max_function_call_rounds = 20


def streamed(*chunks, between=None):
    """返回一个响应工厂：200 + 按块产出的字节流。

    between(i) 在产出第 i 个块（i >= 1）之前调用，可用于模拟中途 stop()。
    """

    def factory(request):
        async def body():
            for i, chunk in enumerate(chunks):
                if i and between is not None:
                    between(i)
                yield chunk

        return httpx.Response(200, content=body())

    return factory


def failing(status, text=""):
    def factory(request):
        return httpx.Response(status, text=text)

    return factory


class FakeApi:
    """按顺序返回预设响应，并记录每次请求体。"""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.payloads = []
        self.headers = []

    def __call__(self, request):
        self.payloads.append(json.loads(request.content))
        self.headers.append(dict(request.headers))
        if not self._responses:
            raise AssertionError("unexpected request")
        return self._responses.pop(0)(request)

    @property
    def calls(self):
        return len(self.payloads)


@pytest.fixture
def make_controller():
    def factory(api, cfg=None, **kwargs):
        client = ChatApiClient(cfg or SettingsStub(), transport=httpx.MockTransport(api))
        return ChatController(client=client, **kwargs)

    return factory
