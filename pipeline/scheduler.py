"""帧调度器：可取消的单次回调调度，回调执行完毕后由调用方重新调度"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class FrameScheduler:
    """调度器接口；同一时刻最多挂起一个回调"""

    def schedule(self, callback: Callable[[], None]):
        raise NotImplementedError

    def cancel(self):
        raise NotImplementedError

    def shutdown(self):
        self.cancel()


class ThreadFrameScheduler(FrameScheduler):
    """在单个后台线程上按固定帧率执行挂起的回调，回调之间不会并行"""

    def __init__(self, fps: float = 30):
        self.interval = 1.0 / fps
        self._pending: Optional[Callable[[], None]] = None
        self._cond = threading.Condition()
        self._alive = True
        self._thread = threading.Thread(target=self._run, name="frame-scheduler", daemon=True)
        self._thread.start()

    def schedule(self, callback: Callable[[], None]):
        with self._cond:
            self._pending = callback
            self._cond.notify()

    def cancel(self):
        with self._cond:
            self._pending = None

    def shutdown(self):
        with self._cond:
            self._pending = None
            self._alive = False
            self._cond.notify()
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=1.0)

    def _run(self):
        while True:
            with self._cond:
                while self._alive and self._pending is None:
                    self._cond.wait()
                if not self._alive:
                    return
            # 模拟显示刷新间隔；等待期间 cancel() 仍可撤销回调
            with self._cond:
                self._cond.wait(timeout=self.interval)
                callback, self._pending = self._pending, None
                if not self._alive:
                    return
            if callback is None:
                continue
            try:
                callback()
            except Exception:
                logger.exception("帧回调执行异常")
