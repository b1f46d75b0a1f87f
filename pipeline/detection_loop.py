"""检测循环驱动：逐帧拉取检测结果，更新会话统计并发布指标、警报等级与历史"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from detectors.detector_service import DetectorService
from evaluators.alert_classifier import classify
from models.data_models import AlertLevel, FatigueHistory, FatigueMetrics
from pipeline.events import EventStream
from pipeline.scheduler import FrameScheduler, ThreadFrameScheduler
from pipeline.session import FatigueSession
from settings import DEFAULTS
from trackers.history_buffer import HistoryBuffer

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> float:
    return time.time() * 1000.0


class LoopState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class DetectionLoop:
    """
    疲劳检测主循环。

    每次调度执行一次迭代，按 frame_skip 跳帧；单帧检测异常只记录日志，
    循环继续。stop() 取消挂起的迭代并清空会话状态，检测返回后会再次
    确认循环仍在运行才修改状态或发布结果。

    宿主可订阅三个流：metrics_stream（每个处理帧）、alert_level_stream
    （每个处理帧）、history_stream（每次追加历史）。
    """

    def __init__(
        self,
        detector_service: DetectorService,
        scheduler: Optional[FrameScheduler] = None,
        clock: Callable[[], float] = _wall_clock_ms,
        config: Optional[dict] = None,
    ):
        config = dict(DEFAULTS, **(config or {}))

        self._service = detector_service
        self._scheduler = scheduler or ThreadFrameScheduler(fps=config["fps"])
        self._clock = clock
        self._frame_skip = max(1, int(config["frame_skip"]))

        self._session = FatigueSession(config)
        self._history = HistoryBuffer(
            max_entries=config["history_max_entries"],
            interval_ms=config["history_interval_ms"],
        )

        self.metrics_stream: EventStream[FatigueMetrics] = EventStream("metrics")
        self.alert_level_stream: EventStream[AlertLevel] = EventStream("alert_level")
        self.history_stream: EventStream[List[FatigueHistory]] = EventStream("history")

        self._lock = threading.RLock()
        self._state = LoopState.IDLE
        self._running = False
        self._generation = 0
        self._frame_counter = 0
        self._detector = None
        self._source = None
        self._alert_level = AlertLevel.ALERT

    # ---- 状态查询 ----

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def metrics(self) -> FatigueMetrics:
        return self._session.metrics

    @property
    def alert_level(self) -> AlertLevel:
        return self._alert_level

    @property
    def session(self) -> FatigueSession:
        return self._session

    @property
    def frame_counter(self) -> int:
        return self._frame_counter

    def history(self) -> List[FatigueHistory]:
        return self._history.entries()

    # ---- 生命周期 ----

    def start(self, frame_source):
        """
        开始新的检测会话。

        Args:
            frame_source: 提供 read() -> (ok, frame) 的帧源，如 cv2.VideoCapture

        Raises:
            DetectorUnavailableError: 检测器未就绪或加载失败
        """
        with self._lock:
            if self._running:
                return
            detector = self._service.detector

            self._detector = detector
            self._source = frame_source
            self._reset_session()
            self._generation += 1
            self._history.start_session(self._clock())
            self._running = True
            self._state = LoopState.RUNNING
            self._scheduler.schedule(self._tick)
        logger.info("检测循环已启动")

    def stop(self):
        """停止检测并清空会话状态；可重复调用。"""
        with self._lock:
            was_running = self._running
            self._running = False
            self._state = LoopState.IDLE
            self._scheduler.cancel()
            self._reset_session()
            self._generation += 1
            self._history.reset_session()
            self._source = None
        if was_running:
            logger.info("检测循环已停止")

    def _reset_session(self):
        self._session.reset()
        self._frame_counter = 0
        self._alert_level = AlertLevel.ALERT

    # ---- 单次迭代 ----

    def _tick(self):
        with self._lock:
            if not self._running:
                return
            generation = self._generation
            self._frame_counter += 1
            due = self._frame_counter % self._frame_skip == 0
            source, detector = self._source, self._detector
        if due:
            self._process_frame(generation, source, detector)
        self._reschedule(generation)

    def _is_current(self, generation: int) -> bool:
        return self._running and generation == self._generation

    def _reschedule(self, generation: int):
        with self._lock:
            if self._is_current(generation):
                self._scheduler.schedule(self._tick)

    def _process_frame(self, generation: int, source, detector):
        if source is None:
            return
        try:
            ok, frame = source.read()
            if not ok or frame is None:
                return
            result = detector.detect(frame)
        except Exception:
            logger.exception("单帧检测失败，跳过该帧")
            return

        history_appended = False
        with self._lock:
            # 检测期间可能已 stop() 或重新 start()
            if not self._is_current(generation):
                return
            now = self._clock()
            if result is None:
                metrics = self._session.mark_face_lost()
            else:
                metrics = self._session.process(result.landmarks, now)
                if metrics is None:
                    return
            level = classify(metrics)
            if level != self._alert_level:
                logger.debug("警报等级变化: %s -> %s", self._alert_level.value, level.value)
            self._alert_level = level
            if metrics.face_detected:
                history_appended = self._history.maybe_append(metrics, level, now)
            history = self._history.entries() if history_appended else None

        self.metrics_stream.emit(metrics)
        self.alert_level_stream.emit(level)
        if history is not None:
            self.history_stream.emit(history)

    def clear_history(self):
        self._history.clear()

    def close(self):
        """停止循环并关闭调度线程"""
        self.stop()
        self._scheduler.shutdown()
