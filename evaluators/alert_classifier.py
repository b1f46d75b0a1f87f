"""警报分级模块：按优先级级联规则将指标快照映射为五级警报"""

from models.data_models import AlertLevel, FatigueMetrics

ALERT_THRESHOLDS = {
    "perclos": {
        "drowsy": 25,
        "fatigued": 35,
        "severe": 50,
        "critical": 70,
        "critical_with_nodding": 40,
    },
    "blink_rate": {
        "low": 8,
        "high": 25,
    },
    "yawn_frequency": {
        "warning": 3,
        "severe": 5,
    },
}


def classify(metrics: FatigueMetrics) -> AlertLevel:
    """
    级联判断警报等级，从最严重的规则开始，命中即返回。

    规则顺序与各级的"或"组合不可调整，否则边界值上的结果会改变。

    Args:
        metrics: 单帧指标快照

    Returns:
        AlertLevel
    """
    perclos_t = ALERT_THRESHOLDS["perclos"]
    blink_t = ALERT_THRESHOLDS["blink_rate"]
    yawn_t = ALERT_THRESHOLDS["yawn_frequency"]

    perclos = metrics.perclos
    yawns = metrics.yawn_frequency

    if perclos >= perclos_t["critical"] or (
        metrics.nodding_detected and perclos >= perclos_t["critical_with_nodding"]
    ):
        return AlertLevel.CRITICAL
    if perclos >= perclos_t["severe"] or yawns >= yawn_t["severe"]:
        return AlertLevel.SEVERE
    if perclos >= perclos_t["fatigued"] or yawns >= yawn_t["warning"]:
        return AlertLevel.FATIGUED
    if (
        perclos >= perclos_t["drowsy"]
        or metrics.blink_rate < blink_t["low"]
        or metrics.blink_rate > blink_t["high"]
    ):
        return AlertLevel.DROWSY
    return AlertLevel.ALERT
