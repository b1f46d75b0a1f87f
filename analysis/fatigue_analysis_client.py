"""远程疲劳分析客户端：把指标快照发送给 LLM 服务，获取自然语言评估

该客户端位于检测管线下游，失败只影响自身，不会影响指标计算。
"""

import json
import logging
import time
from typing import Callable, Optional

import requests

from models.data_models import RISK_LEVELS, AlertLevel, FatigueAnalysis, FatigueMetrics
from models.errors import AnalysisError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
ANALYSIS_COOLDOWN_S = 30

SYSTEM_PROMPT = """You are an expert driver fatigue analyst. Analyze the provided fatigue metrics and give a natural language assessment with personalized recommendations.

Be concise but thorough. Focus on:
1. Current fatigue state interpretation
2. Risk assessment
3. Specific, actionable recommendations
4. Warning signs to watch for

Format your response as JSON with these fields:
- analysis: A 2-3 sentence natural language assessment of current fatigue state
- riskLevel: "low" | "moderate" | "high" | "critical"
- recommendations: Array of 3-4 specific actionable recommendations
- warningSign: The most concerning indicator if any
- encouragement: A brief motivational message"""

_RISK_BY_ALERT_LEVEL = {
    AlertLevel.CRITICAL: "critical",
    AlertLevel.SEVERE: "high",
    AlertLevel.FATIGUED: "moderate",
}

_DEFAULT_RECOMMENDATIONS = ["Stay hydrated", "Take regular breaks", "Maintain good posture"]


def build_request(metrics: FatigueMetrics, alert_level: AlertLevel) -> dict:
    """分析请求体：不含历史的纯快照"""
    pose = metrics.head_pose
    return {
        "perclos": metrics.perclos,
        "blinkRate": metrics.blink_rate,
        "blinkPattern": metrics.blink_pattern.value,
        "yawnCount": metrics.yawn_count,
        "yawnFrequency": metrics.yawn_frequency,
        "headPose": {"pitch": pose.pitch, "yaw": pose.yaw, "roll": pose.roll},
        "noddingDetected": metrics.nodding_detected,
        "alertLevel": alert_level.value,
    }


def build_user_prompt(fatigue_data: dict) -> str:
    pose = fatigue_data["headPose"]
    return (
        "Analyze these driver fatigue metrics:\n\n"
        f"PERCLOS (eye closure percentage): {fatigue_data['perclos']}%\n"
        f"Blink Rate: {fatigue_data['blinkRate']} blinks/min\n"
        f"Blink Pattern: {fatigue_data['blinkPattern']}\n"
        f"Yawn Count: {fatigue_data['yawnCount']}\n"
        f"Yawn Frequency: {fatigue_data['yawnFrequency']}/min\n"
        f"Head Pose - Pitch: {pose['pitch']}°, Yaw: {pose['yaw']}°, Roll: {pose['roll']}°\n"
        f"Nodding Detected: {'Yes' if fatigue_data['noddingDetected'] else 'No'}\n"
        f"Current Alert Level: {fatigue_data['alertLevel']}\n\n"
        "Provide your analysis as a JSON object."
    )


def fallback_analysis(content: str, alert_level: AlertLevel, nodding_detected: bool) -> FatigueAnalysis:
    """模型返回的内容不是 JSON 时，用原文和等级映射构造默认评估"""
    return FatigueAnalysis(
        analysis=content,
        risk_level=_RISK_BY_ALERT_LEVEL.get(alert_level, "low"),
        recommendations=list(_DEFAULT_RECOMMENDATIONS),
        warning_sign="Head nodding detected" if nodding_detected else None,
        encouragement="Stay safe on the road!",
    )


def parse_analysis(data: dict, alert_level: AlertLevel) -> FatigueAnalysis:
    """将模型返回的 JSON 对象转换为 FatigueAnalysis，缺失字段使用默认值"""
    risk_level = data.get("riskLevel")
    if risk_level not in RISK_LEVELS:
        risk_level = _RISK_BY_ALERT_LEVEL.get(alert_level, "low")

    recommendations = data.get("recommendations") or []
    if isinstance(recommendations, str):
        recommendations = [recommendations]
    recommendations = [str(r) for r in recommendations][:4]
    # 不足 3 条时用默认建议补齐
    for default in _DEFAULT_RECOMMENDATIONS:
        if len(recommendations) >= 3:
            break
        if default not in recommendations:
            recommendations.append(default)

    return FatigueAnalysis(
        analysis=str(data.get("analysis", "")),
        risk_level=risk_level,
        recommendations=recommendations,
        warning_sign=data.get("warningSign") or None,
        encouragement=str(data.get("encouragement", "")),
    )


class FatigueAnalysisClient:
    """
    调用 OpenAI 兼容的 chat/completions 接口。

    analyze() 自带冷却时间，失败时把面向用户的错误信息保存在 error 中并返回 None。
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        model: str = DEFAULT_MODEL,
        cooldown_s: float = ANALYSIS_COOLDOWN_S,
        timeout_s: float = 30.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.model = model
        self.cooldown_s = cooldown_s
        self.timeout_s = timeout_s
        self._session = session or requests.Session()
        self._clock = clock
        self._last_request: Optional[float] = None
        self.analysis: Optional[FatigueAnalysis] = None
        self.error: Optional[str] = None

    def analyze(self, metrics: FatigueMetrics, alert_level: AlertLevel) -> Optional[FatigueAnalysis]:
        """冷却期内或未检测到人脸时直接返回 None"""
        now = self._clock()
        if self._last_request is not None and now - self._last_request < self.cooldown_s:
            return None
        if not metrics.face_detected:
            return None

        self._last_request = now
        self.error = None
        try:
            self.analysis = self.request_analysis(metrics, alert_level)
        except AnalysisError as e:
            logger.warning("疲劳分析失败: %s", e)
            self.error = str(e)
            return None
        return self.analysis

    def request_analysis(self, metrics: FatigueMetrics, alert_level: AlertLevel) -> FatigueAnalysis:
        """不受冷却限制的单次请求；失败抛出 AnalysisError"""
        fatigue_data = build_request(metrics, alert_level)
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(fatigue_data)},
            ],
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = self._session.post(
                self.endpoint, json=payload, headers=headers, timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise AnalysisError("AI analysis failed") from e

        if response.status_code == 429:
            raise AnalysisError("Rate limit exceeded. Please try again in a moment.")
        if response.status_code == 402:
            raise AnalysisError("AI credits exhausted. Please add credits.")
        if not response.ok:
            logger.error("AI 服务返回错误: %s %s", response.status_code, response.text)
            raise AnalysisError("AI analysis failed")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AnalysisError("AI analysis failed") from e

        try:
            data = json.loads(content)
        except (TypeError, json.JSONDecodeError):
            return fallback_analysis(str(content), alert_level, metrics.nodding_detected)
        if not isinstance(data, dict):
            return fallback_analysis(str(content), alert_level, metrics.nodding_detected)
        return parse_analysis(data, alert_level)

    def clear(self):
        self.analysis = None
        self.error = None
