"""人脸关键点检测模块，基于 MediaPipe FaceMesh，输出 68 点方案的分区切片"""

from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

from models.data_models import DetectionResult, LandmarkFrame

# FaceMesh 468 点到 68 点方案的索引映射
JAW_INDICES = [162, 234, 93, 58, 172, 136, 149, 148, 152, 377, 378, 365, 397, 288, 323, 454, 389]
NOSE_INDICES = [168, 197, 5, 4, 75, 97, 2, 326, 305]
LEFT_EYE_INDICES = [33, 160, 158, 133, 153, 144]
RIGHT_EYE_INDICES = [362, 385, 387, 263, 373, 380]
MOUTH_INDICES = [
    # 外唇 48-59
    61, 39, 37, 0, 267, 269, 291, 405, 314, 17, 84, 181,
    # 内唇 60-67
    78, 82, 13, 312, 308, 317, 14, 87,
]


class FaceDetector:
    """使用 MediaPipe FaceMesh 检测人脸关键点"""

    def __init__(
        self,
        max_num_faces: int = 1,
        min_detection_confidence: float = 0.5,
    ):
        """初始化 MediaPipe FaceMesh"""
        self._face_mesh = mp.solutions.face_mesh.FaceMesh(
            max_num_faces=max_num_faces,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=0.5,
            refine_landmarks=False,
        )

    def detect(self, frame: np.ndarray) -> Optional[DetectionResult]:
        """
        检测单帧图像中的人脸关键点。

        Args:
            frame: BGR 格式的 OpenCV 图像帧

        Returns:
            DetectionResult；未检测到人脸时返回 None
        """
        h, w = frame.shape[:2]

        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb_frame.flags.writeable = False

        results = self._face_mesh.process(rgb_frame)

        if not results.multi_face_landmarks:
            return None

        face = results.multi_face_landmarks[0]

        # 归一化坐标 -> 像素坐标
        all_landmarks = [(lm.x * w, lm.y * h) for lm in face.landmark]

        def pick(indices):
            return [all_landmarks[i] for i in indices]

        return DetectionResult(
            landmarks=LandmarkFrame(
                left_eye=pick(LEFT_EYE_INDICES),
                right_eye=pick(RIGHT_EYE_INDICES),
                mouth=pick(MOUTH_INDICES),
                nose=pick(NOSE_INDICES),
                jaw_outline=pick(JAW_INDICES),
            ),
        )

    def close(self):
        """释放 MediaPipe 资源"""
        self._face_mesh.close()
