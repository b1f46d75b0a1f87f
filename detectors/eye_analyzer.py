"""眼睛状态分析模块，负责计算 EAR 值并判断睁眼/闭眼"""

import math
from typing import List, Optional, Tuple


def calculate_ear(eye_points: List[Tuple[float, float]]) -> Optional[float]:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p1-p5| + |p2-p4|) / (2 * |p0-p3|)
    p0/p3 为水平眼角，p1/p5 与 p2/p4 为两组上下眼睑点。

    Args:
        eye_points: 6 个眼睛轮廓关键点 [(x,y), ...]

    Returns:
        EAR 值；眼角距离为零（退化几何）时返回 None
    """
    p0, p1, p2, p3, p4, p5 = eye_points[:6]

    horizontal = math.dist(p0, p3)
    if horizontal == 0.0:
        return None

    vertical_1 = math.dist(p1, p5)
    vertical_2 = math.dist(p2, p4)

    return (vertical_1 + vertical_2) / (2.0 * horizontal)


class EyeAnalyzer:
    """双眼 EAR 取平均后与阈值比较"""

    def __init__(self, ear_threshold: float = 0.2):
        self.ear_threshold = ear_threshold

    def average_ear(self, left_eye, right_eye) -> Optional[float]:
        left_ear = calculate_ear(left_eye)
        right_ear = calculate_ear(right_eye)
        if left_ear is None or right_ear is None:
            return None
        return (left_ear + right_ear) / 2.0

    def is_open(self, avg_ear: float) -> bool:
        # 等于阈值视为闭眼
        return avg_ear > self.ear_threshold
