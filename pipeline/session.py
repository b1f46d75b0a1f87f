"""单次检测会话的状态：窗口统计器与最近一帧指标"""

import logging
from typing import Optional

from detectors.eye_analyzer import EyeAnalyzer
from detectors.head_pose_analyzer import estimate_head_pose
from detectors.mouth_analyzer import MouthAnalyzer, calculate_mouth_open_ratio
from evaluators.metrics_aggregator import build_metrics, face_lost
from models.data_models import DEFAULT_METRICS, FatigueMetrics, LandmarkFrame
from settings import DEFAULTS
from trackers.rolling_windows import BlinkWindow, NodWindow, PerclosCounter, YawnWindow

logger = logging.getLogger(__name__)


class FatigueSession:
    """持有一次 start -> stop 周期内的全部可变统计状态"""

    def __init__(self, config: Optional[dict] = None):
        config = dict(DEFAULTS, **(config or {}))

        self.eye_analyzer = EyeAnalyzer(ear_threshold=config["ear_threshold"])
        self.mouth_analyzer = MouthAnalyzer(yawn_threshold=config["yawn_threshold"])

        self._perclos = PerclosCounter()
        self._blinks = BlinkWindow(window_ms=config["blink_window_ms"])
        self._yawns = YawnWindow(
            window_ms=config["yawn_window_ms"],
            debounce_ms=config["yawn_debounce_ms"],
        )
        self._nods = NodWindow(
            window_ms=config["nod_window_ms"],
            min_samples=config["nod_min_samples"],
            pitch_range=config["nod_pitch_range"],
        )
        self._metrics = DEFAULT_METRICS

    @property
    def metrics(self) -> FatigueMetrics:
        return self._metrics

    @property
    def eye_closed_frames(self) -> int:
        return self._perclos.closed_frames

    @property
    def total_frames(self) -> int:
        return self._perclos.total_frames

    def process(self, landmarks: LandmarkFrame, now: float) -> Optional[FatigueMetrics]:
        """
        处理一帧关键点并返回新的指标快照。

        任一几何量退化（参考距离为零）时整帧跳过：不推进任何计数，返回 None。
        """
        avg_ear = self.eye_analyzer.average_ear(landmarks.left_eye, landmarks.right_eye)
        mouth_ratio = calculate_mouth_open_ratio(landmarks.mouth)
        head_pose = estimate_head_pose(landmarks)
        if avg_ear is None or mouth_ratio is None or head_pose is None:
            logger.debug("关键点几何退化，跳过该帧")
            return None

        eyes_open = self.eye_analyzer.is_open(avg_ear)
        is_yawning = self.mouth_analyzer.is_yawning(mouth_ratio)

        self._perclos.update(eyes_open)
        self._blinks.update(eyes_open, now)
        self._yawns.update(is_yawning, now)
        self._nods.update(head_pose.pitch, now)

        blink_rate = self._blinks.count(now)
        self._metrics = build_metrics(
            perclos=self._perclos.perclos,
            blink_rate=blink_rate,
            blink_timestamps=self._blinks.timestamps(now),
            yawn_count=self._yawns.count(now),
            mouth_open_ratio=mouth_ratio,
            head_pose=head_pose,
            nodding_detected=self._nods.nodding_detected,
            eyes_open=eyes_open,
        )
        return self._metrics

    def mark_face_lost(self) -> FatigueMetrics:
        self._metrics = face_lost(self._metrics)
        return self._metrics

    def reset(self):
        """清空所有计数与窗口，恢复默认指标"""
        self._perclos.reset()
        self._blinks.reset()
        self._yawns.reset()
        self._nods.reset()
        self._metrics = DEFAULT_METRICS
