"""头部姿态分析模块，基于关键点偏移的线性近似估计 pitch/yaw/roll"""

import math
from typing import Optional, Tuple

from models.data_models import HeadPose, LandmarkFrame

# 偏移量到角度的经验缩放系数
_ANGLE_SCALE = 60.0
# 正视时鼻长与脸高之比的经验中值
_NEUTRAL_NOSE_RATIO = 0.5

NOSE_BASE = 0
NOSE_TIP = 6
JAW_CHIN = 8


def _midpoint(a: Tuple[float, float], b: Tuple[float, float]) -> Tuple[float, float]:
    return ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)


def estimate_head_pose(landmarks: LandmarkFrame) -> Optional[HeadPose]:
    """
    估计头部姿态（度）。

    这是经验性的线性近似而非标定的 3D 求解，只保证符号和相对大小
    随头部转动方向变化；阈值均按这些公式经验调校。

    - yaw   = (鼻尖.x - 双眼中心.x) / 眼距 * 60
    - pitch = ((鼻尖.y - 鼻根.y) / 脸高 - 0.5) * 60，脸高 = 下巴.y - 双眼中心.y
    - roll  = atan2(右眼中心.y - 左眼中心.y, 右眼中心.x - 左眼中心.x)

    Args:
        landmarks: 单帧关键点

    Returns:
        HeadPose；眼距或脸高为零时返回 None
    """
    left_eye = landmarks.left_eye
    right_eye = landmarks.right_eye

    eye_center = _midpoint(left_eye[0], right_eye[3])
    left_eye_center = _midpoint(left_eye[0], left_eye[3])
    right_eye_center = _midpoint(right_eye[0], right_eye[3])

    nose_tip = landmarks.nose[NOSE_TIP]
    nose_base = landmarks.nose[NOSE_BASE]
    chin = landmarks.jaw_outline[JAW_CHIN]

    eye_width = right_eye_center[0] - left_eye_center[0]
    face_height = chin[1] - eye_center[1]
    if eye_width == 0.0 or face_height == 0.0:
        return None

    yaw = (nose_tip[0] - eye_center[0]) / eye_width * _ANGLE_SCALE

    nose_height = nose_tip[1] - nose_base[1]
    pitch = (nose_height / face_height - _NEUTRAL_NOSE_RATIO) * _ANGLE_SCALE

    roll = math.degrees(math.atan2(
        right_eye_center[1] - left_eye_center[1],
        right_eye_center[0] - left_eye_center[0],
    ))

    return HeadPose(pitch=pitch, yaw=yaw, roll=roll)
