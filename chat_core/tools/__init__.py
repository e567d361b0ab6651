"""函数调用相关：函数定义与基于 Python 可调用对象的处理器。"""

from chat_core.tools.definitions import FunctionDef, FunctionParam, function_schema
from chat_core.tools.executor import FunctionExecutor

__all__ = ["FunctionDef", "FunctionExecutor", "FunctionParam", "function_schema"]
