import sys
import os

# Add project root to sys.path so tests can import from all modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402
from hypothesis import settings  # noqa: E402

from detectors.detector_service import DetectorService  # noqa: E402
from models.data_models import DetectionResult, LandmarkFrame  # noqa: E402
from pipeline.scheduler import FrameScheduler  # noqa: E402

# CI profile: more examples for thorough testing
settings.register_profile("ci", max_examples=200)
# Dev profile: fewer examples for faster iteration
settings.register_profile("dev", max_examples=100)
# Default to dev profile
settings.load_profile("dev")


def make_landmarks(ear=0.3, mouth_ratio=0.2, pitch=0.0, yaw_offset=0.0):
    """
    构造几何已知的 68 点分区关键点。

    眼宽 40、眼距 80、脸高 100、嘴宽 40，因此
    EAR = h / 20，pitch = (鼻长 / 100 - 0.5) * 60，yaw = yaw_offset / 80 * 60。
    """
    h = ear * 20.0

    def eye(x0):
        return [
            (x0, 100.0),
            (x0 + 10, 100.0 - h),
            (x0 + 30, 100.0 - h),
            (x0 + 40, 100.0),
            (x0 + 30, 100.0 + h),
            (x0 + 10, 100.0 + h),
        ]

    nose_height = (pitch / 60.0 + 0.5) * 100.0
    nose = [(160.0, 110.0)] * 9
    nose[6] = (160.0 + yaw_offset, 110.0 + nose_height)

    jaw = [(160.0, 200.0)] * 17

    v = mouth_ratio * 40.0
    mouth = [(160.0, 160.0)] * 20
    mouth[0] = (140.0, 160.0)
    mouth[6] = (180.0, 160.0)
    mouth[13] = (160.0, 160.0 - v / 2)
    mouth[19] = (160.0, 160.0 + v / 2)

    return LandmarkFrame(
        left_eye=eye(100.0),
        right_eye=eye(180.0),
        mouth=mouth,
        nose=nose,
        jaw_outline=jaw,
    )


class ManualScheduler(FrameScheduler):
    """测试用调度器：回调只在 run_pending() 时执行"""

    def __init__(self):
        self.pending = None
        self.cancel_count = 0

    def schedule(self, callback):
        self.pending = callback

    def cancel(self):
        self.pending = None
        self.cancel_count += 1

    def run_pending(self) -> bool:
        callback, self.pending = self.pending, None
        if callback is None:
            return False
        callback()
        return True


class FakeClock:
    """毫秒时钟，每次 advance 手动推进"""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FakeDetector:
    """按预设返回检测结果；landmarks 为 None 表示无人脸"""

    def __init__(self, landmarks=None):
        self.landmarks = landmarks
        self.error = None
        self.calls = 0
        self.on_detect = None

    def detect(self, frame):
        self.calls += 1
        if self.on_detect is not None:
            self.on_detect()
        if self.error is not None:
            raise self.error
        if self.landmarks is None:
            return None
        return DetectionResult(landmarks=self.landmarks)

    def close(self):
        pass


class FakeSource:
    def __init__(self):
        self.reads = 0

    def read(self):
        self.reads += 1
        return True, object()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock(now=1_000_000.0)


@pytest.fixture
def fake_detector():
    return FakeDetector(landmarks=make_landmarks())


@pytest.fixture
def ready_service(fake_detector):
    service = DetectorService(lambda: fake_detector)
    service.load()
    return service
