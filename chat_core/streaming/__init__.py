"""流式响应处理：字节解码与协作式取消。"""

from chat_core.streaming.cancellation import CancellationSlot, CancellationToken
from chat_core.streaming.decoder import FUNCTION_CALL_PREFIX, StreamDecoder

__all__ = ["CancellationSlot", "CancellationToken", "FUNCTION_CALL_PREFIX", "StreamDecoder"]
