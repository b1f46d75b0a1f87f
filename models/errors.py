"""疲劳检测系统异常定义"""


class FatigueDetectionError(Exception):
    """所有自定义异常的基类"""


class DetectorUnavailableError(FatigueDetectionError):
    """检测器未就绪或加载失败，检测循环无法启动"""


class AnalysisError(FatigueDetectionError):
    """远程疲劳分析请求失败；message 为面向用户的提示"""
