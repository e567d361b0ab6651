"""领域层模型与协议。

包含：
- models: 统一的 Message / ChatRequest / FunctionCall 模型。
- conversation: 单个会话的消息存储 MessageStore。
- exceptions: 业务异常类型定义。
"""
