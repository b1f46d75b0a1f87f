"""指标汇总模块：将几何量与窗口统计组装为 FatigueMetrics 快照"""

import math
from typing import Sequence

import numpy as np

from models.data_models import BlinkPattern, FatigueMetrics, HeadPose

# 眨眼间隔方差阈值（ms²）
IRREGULAR_VARIANCE = 50000
MIN_BLINKS_FOR_PATTERN = 5
SLOW_BLINK_RATE = 8
RAPID_BLINK_RATE = 25


def round_half_up(value: float, ndigits: int = 0) -> float:
    """四舍五入（.5 向正无穷进位），避免 round() 的银行家舍入"""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def determine_blink_pattern(rate: int, timestamps: Sequence[float]) -> BlinkPattern:
    """
    根据眨眼频率和窗口内的眨眼时间戳判断眨眼模式。

    数据不足 5 次时返回 normal；间隔方差过大判为 irregular（优先于频率判断）；
    否则按频率划分 slow / rapid / normal。
    """
    if len(timestamps) < MIN_BLINKS_FOR_PATTERN:
        return BlinkPattern.NORMAL

    intervals = np.diff(np.asarray(timestamps, dtype=np.float64))
    variance = float(np.var(intervals))

    if variance > IRREGULAR_VARIANCE:
        return BlinkPattern.IRREGULAR
    if rate < SLOW_BLINK_RATE:
        return BlinkPattern.SLOW
    if rate > RAPID_BLINK_RATE:
        return BlinkPattern.RAPID
    return BlinkPattern.NORMAL


def build_metrics(
    perclos: float,
    blink_rate: int,
    blink_timestamps: Sequence[float],
    yawn_count: int,
    mouth_open_ratio: float,
    head_pose: HeadPose,
    nodding_detected: bool,
    eyes_open: bool,
) -> FatigueMetrics:
    """组装单帧指标快照，统一处理舍入。"""
    return FatigueMetrics(
        perclos=round_half_up(perclos, 1),
        blink_rate=blink_rate,
        blink_pattern=determine_blink_pattern(blink_rate, blink_timestamps),
        yawn_count=yawn_count,
        yawn_frequency=yawn_count,
        mouth_open_ratio=round_half_up(mouth_open_ratio, 2),
        head_pose=HeadPose(
            pitch=int(round_half_up(head_pose.pitch)),
            yaw=int(round_half_up(head_pose.yaw)),
            roll=int(round_half_up(head_pose.roll)),
        ),
        nodding_detected=nodding_detected,
        eyes_open=eyes_open,
        face_detected=True,
    )


def face_lost(previous: FatigueMetrics) -> FatigueMetrics:
    """未检测到人脸：沿用上一帧指标，仅标记 face_detected=False"""
    return previous.with_face_lost()
