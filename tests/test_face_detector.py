"""FaceDetector 单元测试"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from detectors.face_detector import (
    JAW_INDICES,
    LEFT_EYE_INDICES,
    MOUTH_INDICES,
    NOSE_INDICES,
    RIGHT_EYE_INDICES,
    FaceDetector,
)
from models.data_models import DetectionResult, LandmarkFrame

PATCH_TARGET = "detectors.face_detector.mp.solutions.face_mesh.FaceMesh"


def _make_fake_landmark(x: float, y: float):
    """创建一个模拟的 MediaPipe landmark 对象"""
    lm = MagicMock()
    lm.x = x
    lm.y = y
    return lm


def _build_fake_results(num_landmarks: int = 468):
    """构建模拟的 MediaPipe FaceMesh 处理结果（归一化坐标）"""
    landmarks = []
    for i in range(num_landmarks):
        nx = (i % 100) / 100.0
        ny = (i // 100) / 100.0
        landmarks.append(_make_fake_landmark(nx, ny))

    face = MagicMock()
    face.landmark = landmarks

    results = MagicMock()
    results.multi_face_landmarks = [face]
    return results, landmarks


class TestFaceDetectorDetect:
    """测试 detect() 方法"""

    @patch(PATCH_TARGET)
    def test_returns_none_when_no_face(self, mock_mesh_cls):
        mock_mesh = MagicMock()
        mock_mesh_cls.return_value = mock_mesh

        no_face_results = MagicMock()
        no_face_results.multi_face_landmarks = None
        mock_mesh.process.return_value = no_face_results

        detector = FaceDetector()
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        assert detector.detect(frame) is None

    @patch(PATCH_TARGET)
    def test_returns_sliced_landmarks(self, mock_mesh_cls):
        mock_mesh = MagicMock()
        mock_mesh_cls.return_value = mock_mesh
        results, _ = _build_fake_results()
        mock_mesh.process.return_value = results

        detector = FaceDetector()
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        result = detector.detect(frame)

        assert isinstance(result, DetectionResult)
        assert isinstance(result.landmarks, LandmarkFrame)
        assert result.expression is None
        assert len(result.landmarks.left_eye) == 6
        assert len(result.landmarks.right_eye) == 6
        assert len(result.landmarks.mouth) == 20
        assert len(result.landmarks.nose) == 9
        assert len(result.landmarks.jaw_outline) == 17

    @patch(PATCH_TARGET)
    def test_pixel_coordinates(self, mock_mesh_cls):
        """归一化坐标应乘以图像宽高"""
        mock_mesh = MagicMock()
        mock_mesh_cls.return_value = mock_mesh
        results, raw = _build_fake_results()
        mock_mesh.process.return_value = results

        detector = FaceDetector()
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        lm = detector.detect(frame).landmarks

        idx = LEFT_EYE_INDICES[0]
        assert lm.left_eye[0] == pytest.approx((raw[idx].x * 640, raw[idx].y * 480))
        chin = JAW_INDICES[8]
        assert lm.jaw_outline[8] == pytest.approx((raw[chin].x * 640, raw[chin].y * 480))

    @patch(PATCH_TARGET)
    def test_close_releases_mesh(self, mock_mesh_cls):
        mock_mesh = MagicMock()
        mock_mesh_cls.return_value = mock_mesh
        detector = FaceDetector()
        detector.close()
        mock_mesh.close.assert_called_once()


class TestIndexTables:
    def test_table_sizes(self):
        assert len(JAW_INDICES) == 17
        assert len(NOSE_INDICES) == 9
        assert len(LEFT_EYE_INDICES) == 6
        assert len(RIGHT_EYE_INDICES) == 6
        assert len(MOUTH_INDICES) == 20

    def test_indices_in_range(self):
        for table in (JAW_INDICES, NOSE_INDICES, LEFT_EYE_INDICES, RIGHT_EYE_INDICES, MOUTH_INDICES):
            assert all(0 <= i < 468 for i in table)
