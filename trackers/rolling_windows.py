"""滚动窗口统计：PERCLOS 累计计数、眨眼/哈欠时间窗、点头俯仰角窗口

所有时间戳单位为毫秒，读取前先清理窗口外的旧数据。
"""

from collections import deque
from typing import List


class PerclosCounter:
    """会话级闭眼帧占比，不做时间衰减"""

    def __init__(self):
        self.closed_frames = 0
        self.total_frames = 0

    def update(self, eyes_open: bool):
        self.total_frames += 1
        if not eyes_open:
            self.closed_frames += 1

    @property
    def perclos(self) -> float:
        """闭眼帧百分比（0-100），尚无帧时为 0"""
        if self.total_frames == 0:
            return 0.0
        return self.closed_frames / self.total_frames * 100.0

    def reset(self):
        self.closed_frames = 0
        self.total_frames = 0


class BlinkWindow:
    """
    眨眼事件窗口。

    每次睁眼 -> 闭眼的跳变记录一次事件（边沿触发），持续闭眼不重复计数。
    """

    def __init__(self, window_ms: float = 60000):
        self.window_ms = window_ms
        self._timestamps = deque()
        self._last_eyes_open = True

    def update(self, eyes_open: bool, now: float):
        if self._last_eyes_open and not eyes_open:
            self._timestamps.append(now)
        self._last_eyes_open = eyes_open
        self._prune(now)

    def _prune(self, now: float):
        while self._timestamps and now - self._timestamps[0] >= self.window_ms:
            self._timestamps.popleft()

    def count(self, now: float) -> int:
        """窗口内的眨眼次数（次/分钟）"""
        self._prune(now)
        return len(self._timestamps)

    def timestamps(self, now: float) -> List[float]:
        self._prune(now)
        return list(self._timestamps)

    @property
    def last_eyes_open(self) -> bool:
        return self._last_eyes_open

    def reset(self):
        self._timestamps.clear()
        self._last_eyes_open = True


class YawnWindow:
    """
    哈欠事件窗口。

    张嘴持续期间每帧都会上报，debounce_ms 内的重复上报合并为同一次哈欠。
    """

    def __init__(self, window_ms: float = 60000, debounce_ms: float = 5000):
        self.window_ms = window_ms
        self.debounce_ms = debounce_ms
        self._timestamps = deque()

    def update(self, is_yawning: bool, now: float):
        if is_yawning:
            if not self._timestamps or now - self._timestamps[-1] > self.debounce_ms:
                self._timestamps.append(now)
        self._prune(now)

    def _prune(self, now: float):
        while self._timestamps and now - self._timestamps[0] >= self.window_ms:
            self._timestamps.popleft()

    def count(self, now: float) -> int:
        """窗口内的哈欠次数（次/分钟）"""
        self._prune(now)
        return len(self._timestamps)

    def reset(self):
        self._timestamps.clear()


class NodWindow:
    """俯仰角短时窗口，窗口内俯仰角摆幅过大视为点头"""

    def __init__(self, window_ms: float = 3000, min_samples: int = 10, pitch_range: float = 15.0):
        self.window_ms = window_ms
        self.min_samples = min_samples
        self.pitch_range = pitch_range
        self._samples = deque()  # (pitch, timestamp)

    def update(self, pitch: float, now: float):
        self._samples.append((pitch, now))
        while self._samples and now - self._samples[0][1] >= self.window_ms:
            self._samples.popleft()

    def __len__(self):
        return len(self._samples)

    @property
    def nodding_detected(self) -> bool:
        # 样本数必须严格大于 min_samples
        if len(self._samples) <= self.min_samples:
            return False
        pitches = [p for p, _ in self._samples]
        return max(pitches) - min(pitches) > self.pitch_range

    def reset(self):
        self._samples.clear()
