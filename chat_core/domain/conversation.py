"""会话消息存储。

MessageStore 保存一个会话（chat_id）的有序消息列表，只提供整体读取与
整体替换两种操作：

- read(): 返回当前序列的副本。
- replace(messages, optimistic): 用新序列覆盖旧序列，并在返回前同步通知
  所有订阅者。

没有逐元素修改的接口，因此回滚只需要把之前 read() 得到的快照再
replace 回去。同一个 chat_id 只应对应一个 MessageStore 实例，由唯一的
ChatController 写入，其它消费者只订阅。
"""

from typing import Callable, List, Optional, Sequence

from chat_core.domain.models import Message
from chat_core.infrastructure.logging.logger import bind_logger


Subscriber = Callable[[List[Message], bool], None]


class MessageStore:
    def __init__(self, initial: Sequence[Message] = (), chat_id: Optional[str] = None):
        self.chat_id = chat_id
        self._messages: List[Message] = list(initial)
        self._subscribers: List[Subscriber] = []
        self._log = bind_logger(chat_id=chat_id)

    def read(self) -> List[Message]:
        return list(self._messages)

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def ids(self) -> set[str]:
        return {m.id for m in self._messages}

    def replace(self, messages: Sequence[Message], optimistic: bool = False) -> None:
        """整体替换消息序列，返回前所有订阅者都已收到新序列。"""

        self._messages = list(messages)
        for callback in list(self._subscribers):
            try:
                callback(self.read(), optimistic)
            except Exception:
                # 订阅者只是观察者，异常不影响存储状态
                self._log.exception("store.subscriber_failed")

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """注册订阅者，返回取消订阅函数。"""

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._messages)
