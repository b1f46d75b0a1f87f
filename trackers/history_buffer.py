"""疲劳趋势历史缓冲区，按固定时间间隔采样，最多保留最近 N 条"""

from collections import deque
from typing import List, Optional

from models.data_models import AlertLevel, FatigueHistory, FatigueMetrics


class HistoryBuffer:
    """FIFO 有界缓冲区，仅供外部趋势图使用，分类器不读取"""

    def __init__(self, max_entries: int = 60, interval_ms: float = 5000):
        self.max_entries = max_entries
        self.interval_ms = interval_ms
        self._entries = deque(maxlen=max_entries)
        self._last_append: Optional[float] = None

    def start_session(self, now: float):
        """以会话开始时间作为首次采样的参考点"""
        self._last_append = now

    def reset_session(self):
        self._last_append = None

    def maybe_append(self, metrics: FatigueMetrics, level: AlertLevel, now: float) -> bool:
        """距上次采样不少于 interval_ms 时追加一条，返回是否追加。"""
        if self._last_append is None:
            self._last_append = now
            return False
        if now - self._last_append < self.interval_ms:
            return False

        self._entries.append(FatigueHistory(
            timestamp=now,
            perclos=metrics.perclos,
            alert_level=level,
            blink_rate=metrics.blink_rate,
            yawn_count=metrics.yawn_count,
        ))
        self._last_append = now
        return True

    def entries(self) -> List[FatigueHistory]:
        return list(self._entries)

    def clear(self):
        self._entries.clear()

    def __len__(self):
        return len(self._entries)
