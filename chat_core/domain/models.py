"""统一的对话数据模型。

本模块定义了控制器、解码器与函数调用循环之间共享的标准数据结构：

- Message: 一条对话消息（system/user/assistant/function）。
- PendingFunctionCall / FunctionCall: 函数调用的两种形态（流式中 / 流结束后）。
- ChatRequest: 一次提交给聊天接口的完整请求（消息 + 函数定义 + 调用指令）。

所有模型都是不可变的：更新消息列表时总是构造新的序列，
不在原地修改任何元素。
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Collection, Dict, Literal, Mapping, Optional, Sequence, Tuple, Union
from uuid import uuid4

from chat_core.domain.exceptions import ValidationError

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from chat_core.tools.definitions import FunctionDef


# 消息角色（与 OpenAI chat completion 的 role 字段对应）
Role = Literal["system", "user", "assistant", "function"]
ROLES = ("system", "user", "assistant", "function")


@dataclass(frozen=True)
class PendingFunctionCall:
    """流式传输中的函数调用，raw 为目前累计的原始 JSON 文本。"""

    raw: str


@dataclass(frozen=True)
class FunctionCall:
    """解析完成的函数调用。arguments 保持为 JSON 字符串，由处理方自行解析。"""

    name: str
    arguments: str

    def to_payload(self) -> Dict[str, str]:
        return {"name": self.name, "arguments": self.arguments}


FunctionCallState = Union[None, PendingFunctionCall, FunctionCall]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id(existing: Collection[str] = ()) -> str:
    """生成在 existing 中不存在的消息 id。"""
    while True:
        mid = f"m-{uuid4().hex}"
        if mid not in existing:
            return mid


@dataclass(frozen=True)
class Message:
    """一条对话消息。

    - role: 消息角色。role 为 "function" 时 name 为函数名。
    - content: 纯文本内容；函数调用消息的 content 为空字符串。
    - function_call: None、PendingFunctionCall（流式中）或 FunctionCall（流结束后）。
    - created_at: 创建时间（UTC）。
    """

    id: str
    role: Role
    content: str
    name: Optional[str] = None
    function_call: FunctionCallState = None
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        role: Role,
        content: str,
        *,
        name: Optional[str] = None,
        existing_ids: Collection[str] = (),
    ) -> "Message":
        return cls(id=new_message_id(existing_ids), role=role, content=content, name=name)

    @property
    def has_resolved_function_call(self) -> bool:
        return isinstance(self.function_call, FunctionCall)

    def with_id(self, message_id: str) -> "Message":
        return replace(self, id=message_id)

    def to_payload(self, include_extra_fields: bool = False) -> Dict[str, Any]:
        """序列化为接口需要的 JSON 结构，省略为 None 的字段。"""

        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            payload["name"] = self.name
        if isinstance(self.function_call, FunctionCall):
            payload["function_call"] = self.function_call.to_payload()
        elif isinstance(self.function_call, PendingFunctionCall):
            payload["function_call"] = self.function_call.raw
        if include_extra_fields:
            payload["id"] = self.id
            payload["createdAt"] = self.created_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return payload


MessageInput = Union[Message, Mapping[str, Any]]


def _coerce_function_call(value: Any) -> FunctionCallState:
    if value is None or isinstance(value, (FunctionCall, PendingFunctionCall)):
        return value
    if isinstance(value, str):
        return PendingFunctionCall(value)
    if isinstance(value, Mapping) and isinstance(value.get("name"), str):
        arguments = value.get("arguments", "")
        if isinstance(arguments, str):
            return FunctionCall(name=value["name"], arguments=arguments)
    raise ValidationError(
        code="INVALID_FUNCTION_CALL",
        message="function_call must be {name: str, arguments: str}",
    )


def coerce_message(message: MessageInput, existing_ids: Collection[str] = ()) -> Message:
    """把 Message 或 {role, content, name?, function_call?, id?} 映射转换为带 id 的 Message。"""

    if isinstance(message, Message):
        if message.id:
            return message
        return message.with_id(new_message_id(existing_ids))

    role = message.get("role")
    if role not in ROLES:
        raise ValidationError(code="INVALID_ROLE", message=f"Unknown message role: {role!r}")
    name = message.get("name")
    if role == "function" and not name:
        raise ValidationError(code="MISSING_NAME", message="function messages require a name")
    created_at = message.get("created_at") or _utcnow()
    return Message(
        id=message.get("id") or new_message_id(existing_ids),
        role=role,
        content=message.get("content") or "",
        name=name,
        function_call=_coerce_function_call(message.get("function_call")),
        created_at=created_at,
    )


FunctionSpec = Union["FunctionDef", Mapping[str, Any]]
# "auto" / "none" 或 {"name": "..."}
FunctionCallDirective = Union[str, Mapping[str, Any]]


@dataclass(frozen=True)
class ChatRequest:
    """一次提交的请求信封。

    每次提交时重新构造，提交后不再修改；函数调用处理器通过
    with_messages() 生成下一轮的请求。
    """

    messages: Tuple[Message, ...]
    functions: Optional[Tuple[FunctionSpec, ...]] = None
    function_call: Optional[FunctionCallDirective] = None

    @classmethod
    def build(
        cls,
        messages: Sequence[Message],
        functions: Optional[Sequence[FunctionSpec]] = None,
        function_call: Optional[FunctionCallDirective] = None,
    ) -> "ChatRequest":
        return cls(
            messages=tuple(messages),
            functions=tuple(functions) if functions is not None else None,
            function_call=function_call,
        )

    def with_messages(self, messages: Sequence[Message]) -> "ChatRequest":
        return replace(self, messages=tuple(messages))
