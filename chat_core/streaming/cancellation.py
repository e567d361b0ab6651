"""请求取消。

CancellationToken 是单次请求的取消标记。cancel() 置位并依次触发注册的回调，
控制器借此中断正在等待的网络读取；读取流的循环在处理每个字节块之前也会检查它。
CancellationSlot 是控制器持有的单一槽位，保存当前活动请求的 token。
取消不是错误：被取消的提交以 None 结束，不做回滚。
"""

from typing import Callable, List, Optional

from chat_core.domain.exceptions import RequestCancelled


class CancellationToken:
    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """注册取消回调，返回注销函数。已取消时立即调用。"""
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelled()


class CancellationSlot:
    """保存 None 或当前活动请求的 token。"""

    def __init__(self) -> None:
        self._token: Optional[CancellationToken] = None

    @property
    def active(self) -> bool:
        return self._token is not None

    def activate(self) -> CancellationToken:
        self._token = CancellationToken()
        return self._token

    def cancel(self) -> bool:
        """触发并清空槽位；空槽位时什么也不做。返回是否真的取消了请求。"""
        token, self._token = self._token, None
        if token is None:
            return False
        token.cancel()
        return True

    def clear(self, token: CancellationToken) -> None:
        if self._token is token:
            self._token = None
