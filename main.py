"""疲劳驾驶检测系统入口文件（控制台版）"""

import argparse
import logging
import sys
import time

import cv2

from detectors.detector_service import DetectorService
from detectors.face_detector import FaceDetector
from models.data_models import AlertLevel
from models.errors import DetectorUnavailableError
from pipeline.detection_loop import DetectionLoop
from settings import load_config

logger = logging.getLogger("fatigue")


class DetectionSystem:
    """控制台宿主：打开摄像头，运行检测循环，在警报等级变化时输出日志。"""

    def __init__(self, config_path=None, camera_index=0):
        self.config = load_config(config_path)
        self.camera_index = camera_index
        self._cap = None
        self._last_level = AlertLevel.ALERT

        self.detector_service = DetectorService(FaceDetector)
        self.loop = DetectionLoop(self.detector_service, config=self.config)
        self.loop.alert_level_stream.subscribe(self._on_alert_level)

    def _on_alert_level(self, level: AlertLevel):
        if level == self._last_level:
            return
        metrics = self.loop.metrics
        log = logger.warning if level >= AlertLevel.SEVERE else logger.info
        log(
            "Level %d/5 %s - %s (PERCLOS=%.1f%%, 眨眼=%d/min, 哈欠=%d/min)",
            level.rank, level.value.upper(), level.message,
            metrics.perclos, metrics.blink_rate, metrics.yawn_frequency,
        )
        self._last_level = level

    def run(self):
        """加载检测器、打开摄像头并阻塞运行，Ctrl+C 退出。"""
        self.detector_service.load()
        if not self.detector_service.is_ready:
            logger.error("检测器加载失败: %s", self.detector_service.error)
            sys.exit(1)

        self._cap = cv2.VideoCapture(self.camera_index)
        if not self._cap.isOpened():
            logger.error("无法打开摄像头")
            sys.exit(1)

        try:
            self.loop.start(self._cap)
            while self.loop.is_running:
                time.sleep(0.5)
        except DetectorUnavailableError as e:
            logger.error("%s", e)
            sys.exit(1)
        except KeyboardInterrupt:
            logger.info("收到中断信号，正在退出")
        finally:
            self.stop()

    def stop(self):
        """停止检测循环，释放摄像头与检测器资源。"""
        self.loop.close()
        if self._cap is not None and self._cap.isOpened():
            self._cap.release()
        if self.detector_service.is_ready:
            self.detector_service.detector.close()


def main():
    parser = argparse.ArgumentParser(description="疲劳驾驶检测系统")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON 阈值配置文件路径",
    )
    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="摄像头索引",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    system = DetectionSystem(config_path=args.config, camera_index=args.camera)
    system.run()


if __name__ == "__main__":
    main()
