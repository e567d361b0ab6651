"""函数定义数据结构。

这些 dataclass 描述了暴露给模型的“函数”的 schema，用于：
- 在 append(functions=...) 时序列化为接口需要的 JSON Schema（FunctionDef / FunctionParam）。
- 在 FunctionExecutor 中把模型发起的 FunctionCall 分派到 Python 可调用对象。
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union


@dataclass
class FunctionParam:
    """单个函数参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any]


@dataclass
class FunctionDef:
    """一个可供模型调用的函数定义。"""

    name: str
    description: str
    params: Dict[str, FunctionParam]

    def to_schema(self) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        required = []
        for name, param in self.params.items():
            schema = param.schema or {"type": "string"}
            if param.description:
                schema = {**schema, "description": param.description}
            properties[name] = schema
            if param.required:
                required.append(name)
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        }


def function_schema(spec: Union[FunctionDef, Mapping[str, Any]]) -> Dict[str, Any]:
    """FunctionDef 转为 JSON Schema；原始映射原样复制。"""
    if isinstance(spec, FunctionDef):
        return spec.to_schema()
    return dict(spec)
