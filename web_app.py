"""Flask Web 宿主 - 疲劳驾驶检测系统

提供检测控制、实时指标、趋势历史、AI 分析和原始视频流接口。
"""

import datetime
import logging
import os
import threading
import time

import cv2
from flask import Flask, Response, jsonify, request

from analysis.fatigue_analysis_client import FatigueAnalysisClient
from detectors.detector_service import DetectorService
from detectors.face_detector import FaceDetector
from models.data_models import AlertLevel, FatigueMetrics
from models.errors import DetectorUnavailableError
from pipeline.detection_loop import DetectionLoop
from settings import load_config

logger = logging.getLogger(__name__)


class CameraSource:
    """包装 cv2.VideoCapture，缓存最近一帧的 JPEG 供视频流使用"""

    def __init__(self, index=0):
        self._cap = cv2.VideoCapture(index)
        self._lock = threading.Lock()
        self._latest_jpeg = None

    def is_opened(self) -> bool:
        return self._cap.isOpened()

    def read(self):
        ok, frame = self._cap.read()
        if ok:
            _, jpeg = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 80])
            with self._lock:
                self._latest_jpeg = jpeg.tobytes()
        return ok, frame

    def latest_jpeg(self):
        with self._lock:
            return self._latest_jpeg

    def release(self):
        if self._cap.isOpened():
            self._cap.release()


class WebDetectionSystem:
    """Web 版检测系统，持有检测器服务、检测循环与分析客户端。"""

    MAX_LOG_ENTRIES = 200

    def __init__(self, detector_service, loop=None, analysis_client=None, camera_factory=CameraSource):
        self.detector_service = detector_service
        self.loop = loop or DetectionLoop(detector_service)
        self.analysis_client = analysis_client
        self._camera_factory = camera_factory
        self._camera = None
        self._logs = []
        self._log_lock = threading.Lock()
        self._prev = {"level": AlertLevel.ALERT, "face_detected": False}
        self._analysis_lock = threading.Lock()
        self._analysis_thread = None
        self.loop.metrics_stream.subscribe(self._on_metrics)
        self.loop.history_stream.subscribe(self._on_history)

    def start(self):
        """打开摄像头并启动检测循环，返回 (成功与否, 提示信息)。"""
        if self.loop.is_running:
            return True, "检测已在运行"
        camera = self._camera_factory()
        if not camera.is_opened():
            self._add_log("danger", "无法打开摄像头")
            return False, "无法打开摄像头"
        try:
            self.loop.start(camera)
        except DetectorUnavailableError as e:
            camera.release()
            self._add_log("danger", f"检测器不可用: {e}")
            return False, "检测器不可用"
        self._camera = camera
        self._add_log("info", "系统启动，摄像头已开启")
        return True, "摄像头启动成功"

    def stop(self):
        self.loop.stop()
        if self._camera is not None:
            self._camera.release()
            self._camera = None
        self._prev = {"level": AlertLevel.ALERT, "face_detected": False}
        self._add_log("info", "系统已停止")

    def _on_metrics(self, metrics: FatigueMetrics):
        """检测状态变化并记录日志。"""
        level = self.loop.alert_level
        prev = self._prev

        if metrics.face_detected and not prev["face_detected"]:
            self._add_log("info", "检测到人脸")
        elif not metrics.face_detected and prev["face_detected"]:
            self._add_log("warning", "人脸丢失")

        if level != prev["level"]:
            severity = "danger" if level >= AlertLevel.SEVERE else "warning" if level > AlertLevel.ALERT else "info"
            self._add_log(severity, f"Level {level.rank}/5 {level.value}: {level.message}")

        self._prev = {"level": level, "face_detected": metrics.face_detected}

    def _on_history(self, history):
        """每次追加历史时在后台请求一次 AI 分析，冷却由客户端控制。"""
        if self.analysis_client is None:
            return
        metrics = self.loop.metrics
        if not metrics.face_detected:
            return
        with self._analysis_lock:
            if self._analysis_thread is not None and self._analysis_thread.is_alive():
                return
            self._analysis_thread = threading.Thread(
                target=self._auto_analyze, args=(metrics, self.loop.alert_level), daemon=True,
            )
            self._analysis_thread.start()

    def _auto_analyze(self, metrics, level):
        result = self.analysis_client.analyze(metrics, level)
        if result is not None:
            self._add_log("info", f"AI 分析完成，风险等级: {result.risk_level}")

    def wait_for_analysis(self, timeout=None):
        """等待后台分析请求结束"""
        thread = self._analysis_thread
        if thread is not None:
            thread.join(timeout)

    def _add_log(self, level, message):
        """添加一条系统日志。level: info / warning / danger"""
        entry = {
            "time": datetime.datetime.now().strftime("%H:%M:%S"),
            "level": level,
            "message": message,
        }
        with self._log_lock:
            self._logs.append(entry)
            if len(self._logs) > self.MAX_LOG_ENTRIES:
                self._logs = self._logs[-self.MAX_LOG_ENTRIES:]

    def get_logs(self, since=0):
        with self._log_lock:
            return self._logs[since:], len(self._logs)

    def get_frame(self):
        camera = self._camera
        return camera.latest_jpeg() if camera is not None else None

    def get_data(self):
        level = self.loop.alert_level
        return {
            "metrics": self.loop.metrics.to_dict(),
            "alertLevel": level.value,
            "levelRank": level.rank,
            "message": level.message,
            "running": self.loop.is_running,
            "detectorReady": self.detector_service.is_ready,
            "detectorError": self.detector_service.error,
        }

    def get_history(self):
        return [entry.to_dict() for entry in self.loop.history()]

    def analyze(self):
        """请求一次 AI 分析，返回 (analysis dict | None, error | None)。"""
        if self.analysis_client is None:
            return None, "AI 分析未配置"
        result = self.analysis_client.analyze(self.loop.metrics, self.loop.alert_level)
        if result is not None:
            return result.to_dict(), None
        return self.latest_analysis()

    def latest_analysis(self):
        """最近一次分析结果与错误，不发起请求"""
        if self.analysis_client is None:
            return None, "AI 分析未配置"
        latest = self.analysis_client.analysis
        return (latest.to_dict() if latest else None), self.analysis_client.error


def create_app(system: WebDetectionSystem) -> Flask:
    app = Flask(__name__)

    @app.route("/api/start", methods=["POST"])
    def api_start():
        ok, message = system.start()
        return jsonify({"success": ok, "message": message})

    @app.route("/api/stop", methods=["POST"])
    def api_stop():
        system.stop()
        return jsonify({"success": True, "message": "检测已停止"})

    @app.route("/api/data")
    def api_data():
        return jsonify(system.get_data())

    @app.route("/api/history")
    def api_history():
        return jsonify({"history": system.get_history()})

    @app.route("/api/analysis", methods=["GET", "POST"])
    def api_analysis():
        if request.method == "POST":
            analysis, error = system.analyze()
        else:
            analysis, error = system.latest_analysis()
        return jsonify({"analysis": analysis, "error": error})

    @app.route("/api/logs")
    def api_logs():
        since = request.args.get("since", 0, type=int)
        logs, total = system.get_logs(since)
        return jsonify({"logs": logs, "total": total})

    @app.route("/video_feed")
    def video_feed():
        def generate():
            while True:
                frame = system.get_frame()
                if frame is not None:
                    yield (b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
                time.sleep(0.03)
        return Response(generate(), mimetype="multipart/x-mixed-replace; boundary=frame")

    return app


def _build_analysis_client(config):
    endpoint = os.environ.get("FATIGUE_ANALYSIS_URL")
    api_key = os.environ.get("FATIGUE_ANALYSIS_API_KEY")
    if not endpoint or not api_key:
        logger.info("未配置 FATIGUE_ANALYSIS_URL / FATIGUE_ANALYSIS_API_KEY，AI 分析不可用")
        return None
    return FatigueAnalysisClient(
        endpoint, api_key,
        model=os.environ.get("FATIGUE_ANALYSIS_MODEL", "gpt-4o-mini"),
        cooldown_s=config["analysis_cooldown_s"],
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = load_config(os.environ.get("FATIGUE_CONFIG"))
    service = DetectorService(FaceDetector)
    service.load(background=True)
    system = WebDetectionSystem(
        service,
        loop=DetectionLoop(service, config=config),
        analysis_client=_build_analysis_client(config),
    )
    app = create_app(system)
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
