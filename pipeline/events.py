"""简单的发布/订阅流，用于向宿主推送指标、警报等级与历史"""

import logging
import threading
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventStream(Generic[T]):
    """监听器异常只记录日志，不影响其余监听器和检测循环"""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, value: T):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(value)
            except Exception:
                logger.exception("%s 监听器执行异常", self.name)
