"""检测器加载服务：只加载一次，向多个订阅者通知就绪状态"""

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, List, Optional

from models.errors import DetectorUnavailableError

logger = logging.getLogger(__name__)

_LOAD_ERROR_MESSAGE = "Failed to load face detection models"


class DetectorService:
    """
    包装检测器工厂，提供"加载一次、通知多方"的就绪契约。

    由宿主构造一次并注入 DetectionLoop；多个检测循环可以共享同一个服务。
    监听器签名为 listener(loaded: bool, error: Optional[str])。
    """

    def __init__(self, factory: Callable[[], object]):
        self._factory = factory
        self._future: Future = Future()
        self._started = False
        self._lock = threading.Lock()
        self._listeners: List[Callable] = []
        self._error: Optional[str] = None

    def load(self, background: bool = False) -> Future:
        """触发加载；重复调用返回同一个 Future。"""
        with self._lock:
            if self._started:
                return self._future
            self._started = True

        if background:
            threading.Thread(target=self._load, daemon=True).start()
        else:
            self._load()
        return self._future

    def _load(self):
        logger.info("开始加载检测器...")
        start = time.perf_counter()
        try:
            detector = self._factory()
        except Exception as e:
            logger.exception("检测器加载失败")
            self._error = _LOAD_ERROR_MESSAGE
            self._future.set_exception(DetectorUnavailableError(f"{_LOAD_ERROR_MESSAGE}: {e}"))
        else:
            logger.info("检测器加载完成，用时 %.0fms", (time.perf_counter() - start) * 1000)
            self._future.set_result(detector)
        self._notify()

    def _notify(self):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            self._call(listener)

    def _call(self, listener):
        try:
            listener(self.is_ready, self._error)
        except Exception:
            logger.exception("检测器状态监听器执行异常")

    def subscribe(self, listener: Callable) -> Callable[[], None]:
        """注册监听器并立即回调当前状态，返回取消订阅函数。"""
        with self._lock:
            self._listeners.append(listener)
        self._call(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def is_ready(self) -> bool:
        return self._future.done() and self._future.exception() is None

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def detector(self):
        """已加载的检测器；未就绪时抛出 DetectorUnavailableError"""
        if not self._future.done():
            raise DetectorUnavailableError("检测器尚未加载完成")
        exc = self._future.exception()
        if exc is not None:
            raise exc
        return self._future.result()

    def wait_for_load(self, timeout: Optional[float] = None) -> bool:
        """阻塞等待加载结束，返回是否成功就绪。"""
        if not self._started:
            return False
        try:
            self._future.result(timeout=timeout)
        except (DetectorUnavailableError, FutureTimeoutError):
            return False
        return True
