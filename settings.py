"""阈值与运行参数配置，支持 JSON 文件覆盖默认值"""

import json
import logging

logger = logging.getLogger(__name__)

# 默认阈值（时间单位为毫秒）
DEFAULTS = {
    "ear_threshold": 0.2,
    "yawn_threshold": 0.5,
    "blink_window_ms": 60000,
    "yawn_window_ms": 60000,
    "yawn_debounce_ms": 5000,
    "nod_window_ms": 3000,
    "nod_min_samples": 10,
    "nod_pitch_range": 15.0,
    "frame_skip": 2,
    "history_interval_ms": 5000,
    "history_max_entries": 60,
    "analysis_cooldown_s": 30,
    "fps": 30,
}


def load_config(config_path=None) -> dict:
    """从 JSON 配置文件加载参数，缺失或为 null 的字段使用默认值。"""
    config = dict(DEFAULTS)

    if config_path is None:
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认阈值", config_path)
        return config
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认阈值", config_path)
        return config

    if not isinstance(data, dict):
        logger.warning("配置文件顶层必须为对象 %s，使用默认阈值", config_path)
        return config

    # 只接受已知字段
    for key in DEFAULTS:
        if key in data and data[key] is not None:
            config[key] = data[key]

    return config
