"""核心数据模型定义"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

Point = Tuple[float, float]


@dataclass
class LandmarkFrame:
    """单张人脸的关键点（68 点方案的分区切片）"""
    left_eye: List[Point]
    right_eye: List[Point]
    mouth: List[Point]
    nose: List[Point]
    jaw_outline: List[Point]


@dataclass
class DetectionResult:
    """检测器单帧输出；expression 仅透传，核心逻辑不使用"""
    landmarks: LandmarkFrame
    expression: Optional[str] = None


@dataclass(frozen=True)
class HeadPose:
    """头部姿态角（度）"""
    pitch: float
    yaw: float
    roll: float


class BlinkPattern(str, Enum):
    NORMAL = "normal"
    IRREGULAR = "irregular"
    SLOW = "slow"
    RAPID = "rapid"


class AlertLevel(str, Enum):
    """五级警报，按严重程度递增排列"""
    ALERT = "alert"
    DROWSY = "drowsy"
    FATIGUED = "fatigued"
    SEVERE = "severe"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """1..5，用于 "Level N/5" 显示"""
        return list(AlertLevel).index(self) + 1

    @property
    def message(self) -> str:
        return ALERT_MESSAGES[self]

    def __lt__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank >= other.rank


ALERT_MESSAGES = {
    AlertLevel.ALERT: "Driver is alert and attentive",
    AlertLevel.DROWSY: "Early signs of drowsiness detected",
    AlertLevel.FATIGUED: "Fatigue indicators present - Consider a break",
    AlertLevel.SEVERE: "Severe fatigue detected - Pull over soon",
    AlertLevel.CRITICAL: "CRITICAL: Immediate rest required!",
}


@dataclass(frozen=True)
class FatigueMetrics:
    """单帧疲劳指标快照（不可变）"""
    perclos: float
    blink_rate: int
    blink_pattern: BlinkPattern
    yawn_count: int
    yawn_frequency: int
    mouth_open_ratio: float
    head_pose: HeadPose
    nodding_detected: bool
    eyes_open: bool
    face_detected: bool

    def with_face_lost(self) -> "FatigueMetrics":
        """仅将 face_detected 置为 False，其余字段保持上一帧的值"""
        return replace(self, face_detected=False)

    def to_dict(self) -> dict:
        """输出给宿主（Web/分析接口）使用的 camelCase 结构"""
        return {
            "perclos": self.perclos,
            "blinkRate": self.blink_rate,
            "blinkPattern": self.blink_pattern.value,
            "yawnCount": self.yawn_count,
            "yawnFrequency": self.yawn_frequency,
            "mouthOpenRatio": self.mouth_open_ratio,
            "headPose": {
                "pitch": self.head_pose.pitch,
                "yaw": self.head_pose.yaw,
                "roll": self.head_pose.roll,
            },
            "noddingDetected": self.nodding_detected,
            "eyesOpen": self.eyes_open,
            "faceDetected": self.face_detected,
        }


DEFAULT_METRICS = FatigueMetrics(
    perclos=0.0,
    blink_rate=15,
    blink_pattern=BlinkPattern.NORMAL,
    yawn_count=0,
    yawn_frequency=0,
    mouth_open_ratio=0.0,
    head_pose=HeadPose(pitch=0, yaw=0, roll=0),
    nodding_detected=False,
    eyes_open=True,
    face_detected=False,
)


@dataclass
class FatigueHistory:
    """趋势图使用的周期性采样"""
    timestamp: float
    perclos: float
    alert_level: AlertLevel
    blink_rate: int
    yawn_count: int

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "perclos": self.perclos,
            "alertLevel": self.alert_level.value,
            "blinkRate": self.blink_rate,
            "yawnCount": self.yawn_count,
        }


RISK_LEVELS = ("low", "moderate", "high", "critical")


@dataclass
class FatigueAnalysis:
    """远程分析服务返回的自然语言评估"""
    analysis: str
    risk_level: str
    recommendations: List[str] = field(default_factory=list)
    warning_sign: Optional[str] = None
    encouragement: str = ""

    def to_dict(self) -> dict:
        return {
            "analysis": self.analysis,
            "riskLevel": self.risk_level,
            "recommendations": list(self.recommendations),
            "warningSign": self.warning_sign,
            "encouragement": self.encouragement,
        }
