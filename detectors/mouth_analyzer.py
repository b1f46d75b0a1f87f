"""嘴巴状态分析模块，负责计算张嘴比例并判断是否在打哈欠"""

import math
from typing import List, Optional, Tuple

# 68 点方案中嘴部切片（48-67）的相对索引
MOUTH_LEFT_CORNER = 0
MOUTH_RIGHT_CORNER = 6
INNER_LIP_UPPER = 13
INNER_LIP_LOWER = 19


def calculate_mouth_open_ratio(mouth_points: List[Tuple[float, float]]) -> Optional[float]:
    """
    计算张嘴比例。

    公式: ratio = |m13-m19| / |m0-m6|，即内唇垂直距离除以嘴宽。

    Args:
        mouth_points: 至少 20 个嘴部关键点

    Returns:
        张嘴比例；嘴宽为零时返回 None
    """
    horizontal = math.dist(mouth_points[MOUTH_LEFT_CORNER], mouth_points[MOUTH_RIGHT_CORNER])
    if horizontal == 0.0:
        return None

    vertical = math.dist(mouth_points[INNER_LIP_UPPER], mouth_points[INNER_LIP_LOWER])
    return vertical / horizontal


class MouthAnalyzer:
    """张嘴比例超过阈值即视为哈欠进行中"""

    def __init__(self, yawn_threshold: float = 0.5):
        self.yawn_threshold = yawn_threshold

    def is_yawning(self, ratio: float) -> bool:
        return ratio > self.yawn_threshold
