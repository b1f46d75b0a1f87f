"""Flask 宿主接口测试：手动调度器 + 假摄像头"""

import json
from unittest.mock import MagicMock

import pytest

from conftest import make_landmarks
from analysis.fatigue_analysis_client import FatigueAnalysisClient
from detectors.detector_service import DetectorService
from models.data_models import FatigueAnalysis
from pipeline.detection_loop import DetectionLoop
from web_app import WebDetectionSystem, create_app


class FakeCamera:
    def __init__(self, opened=True):
        self.opened = opened
        self.released = False

    def is_opened(self):
        return self.opened

    def read(self):
        return True, object()

    def latest_jpeg(self):
        return b"jpeg"

    def release(self):
        self.released = True


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def loop(ready_service, scheduler, clock):
    return DetectionLoop(ready_service, scheduler=scheduler, clock=clock)


@pytest.fixture
def system(ready_service, loop, camera):
    return WebDetectionSystem(ready_service, loop=loop, camera_factory=lambda: camera)


@pytest.fixture
def client(system):
    app = create_app(system)
    app.config["TESTING"] = True
    return app.test_client()


def _run_frames(scheduler, clock, count):
    for _ in range(count):
        clock.advance(33)
        scheduler.run_pending()


class TestStartStop:
    def test_start(self, client, system, camera):
        resp = client.post("/api/start")
        assert resp.get_json() == {"success": True, "message": "摄像头启动成功"}
        assert system.loop.is_running
        assert system.get_frame() == b"jpeg"

    def test_start_twice(self, client):
        client.post("/api/start")
        resp = client.post("/api/start")
        assert resp.get_json()["message"] == "检测已在运行"

    def test_camera_unavailable(self, ready_service, loop):
        system = WebDetectionSystem(ready_service, loop=loop, camera_factory=lambda: FakeCamera(opened=False))
        ok, message = system.start()
        assert ok is False
        assert message == "无法打开摄像头"
        assert not loop.is_running

    def test_detector_unavailable_releases_camera(self, scheduler, clock, camera):
        service = DetectorService(lambda: None)
        loop = DetectionLoop(service, scheduler=scheduler, clock=clock)
        system = WebDetectionSystem(service, loop=loop, camera_factory=lambda: camera)
        ok, message = system.start()
        assert ok is False
        assert message == "检测器不可用"
        assert camera.released

    def test_stop(self, client, system, camera):
        client.post("/api/start")
        resp = client.post("/api/stop")
        assert resp.get_json()["success"] is True
        assert not system.loop.is_running
        assert camera.released
        assert system.get_frame() is None


class TestData:
    def test_initial_data(self, client):
        data = client.get("/api/data").get_json()
        assert data["alertLevel"] == "alert"
        assert data["levelRank"] == 1
        assert data["running"] is False
        assert data["detectorReady"] is True
        assert data["detectorError"] is None
        assert data["metrics"]["faceDetected"] is False
        assert data["metrics"]["blinkRate"] == 15

    def test_data_after_frames(self, client, scheduler, clock):
        client.post("/api/start")
        _run_frames(scheduler, clock, 4)
        data = client.get("/api/data").get_json()
        assert data["running"] is True
        assert data["metrics"]["faceDetected"] is True
        assert data["metrics"]["eyesOpen"] is True

    def test_history(self, client, scheduler, clock):
        client.post("/api/start")
        clock.advance(5000)
        _run_frames(scheduler, clock, 2)
        history = client.get("/api/history").get_json()["history"]
        assert len(history) == 1
        assert history[0]["alertLevel"] == "alert"


class TestLogs:
    def test_face_and_level_logs(self, client, system, fake_detector, scheduler, clock):
        client.post("/api/start")
        _run_frames(scheduler, clock, 2)
        fake_detector.landmarks = make_landmarks(ear=0.1)
        _run_frames(scheduler, clock, 40)
        fake_detector.landmarks = None
        _run_frames(scheduler, clock, 2)

        body = client.get("/api/logs").get_json()
        messages = [entry["message"] for entry in body["logs"]]
        assert body["total"] == len(messages)
        assert "系统启动，摄像头已开启" in messages
        assert "检测到人脸" in messages
        assert "人脸丢失" in messages
        assert any(m.startswith("Level ") for m in messages)

    def test_since(self, client):
        client.post("/api/start")
        client.post("/api/stop")
        body = client.get("/api/logs?since=1").get_json()
        assert body["total"] == 2
        assert [e["message"] for e in body["logs"]] == ["系统已停止"]


class TestAnalysis:
    def test_not_configured(self, client):
        body = client.post("/api/analysis").get_json()
        assert body == {"analysis": None, "error": "AI 分析未配置"}

    def test_returns_analysis(self, ready_service, loop, camera):
        analysis = FatigueAnalysis(
            analysis="Alert and focused.",
            risk_level="low",
            recommendations=["Keep going"],
            warning_sign=None,
            encouragement="Drive safe",
        )
        analysis_client = MagicMock()
        analysis_client.analyze.return_value = analysis
        system = WebDetectionSystem(ready_service, loop=loop, analysis_client=analysis_client,
                                    camera_factory=lambda: camera)

        result, error = system.analyze()
        assert error is None
        assert result == analysis.to_dict()
        analysis_client.analyze.assert_called_once_with(loop.metrics, loop.alert_level)

    def test_error_passed_through(self, ready_service, loop, camera):
        analysis_client = MagicMock()
        analysis_client.analyze.return_value = None
        analysis_client.analysis = None
        analysis_client.error = "AI analysis failed"
        system = WebDetectionSystem(ready_service, loop=loop, analysis_client=analysis_client,
                                    camera_factory=lambda: camera)
        assert system.analyze() == (None, "AI analysis failed")


class TestAutoAnalysis:
    @pytest.fixture
    def http(self):
        session = MagicMock()
        response = MagicMock()
        response.status_code = 200
        response.ok = True
        response.json.return_value = {"choices": [{"message": {"content": json.dumps(
            {"analysis": "Driver is alert.", "riskLevel": "low",
             "recommendations": ["Keep going", "Stay hydrated", "Take breaks"]}
        )}}]}
        session.post.return_value = response
        return session

    @pytest.fixture
    def auto_system(self, ready_service, loop, camera, http):
        analysis_client = FatigueAnalysisClient(
            "https://llm.example/v1/chat/completions", "secret",
            session=http, clock=lambda: 100.0,
        )
        return WebDetectionSystem(ready_service, loop=loop, analysis_client=analysis_client,
                                  camera_factory=lambda: camera)

    def test_history_append_triggers_one_request_within_cooldown(self, auto_system, http, scheduler, clock):
        auto_system.start()
        for _ in range(2):
            clock.advance(5000)
            _run_frames(scheduler, clock, 2)
            auto_system.wait_for_analysis(timeout=2.0)

        assert len(auto_system.get_history()) == 2
        assert http.post.call_count == 1

        analysis, error = auto_system.latest_analysis()
        assert error is None
        assert analysis["analysis"] == "Driver is alert."
        assert http.post.call_count == 1

    def test_get_returns_stored_analysis_without_request(self, auto_system, http, scheduler, clock):
        app = create_app(auto_system)
        client = app.test_client()
        client.post("/api/start")
        clock.advance(5000)
        _run_frames(scheduler, clock, 2)
        auto_system.wait_for_analysis(timeout=2.0)

        body = client.get("/api/analysis").get_json()
        assert body["analysis"]["riskLevel"] == "low"
        assert http.post.call_count == 1

    def test_no_request_without_face(self, auto_system, http, fake_detector, scheduler, clock):
        fake_detector.landmarks = None
        auto_system.start()
        clock.advance(5000)
        _run_frames(scheduler, clock, 2)
        auto_system.wait_for_analysis(timeout=2.0)
        http.post.assert_not_called()
