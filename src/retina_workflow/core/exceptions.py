"""项目内使用的自定义异常定义。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class RetinaWorkflowError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(RetinaWorkflowError):
    """配置不合法时抛出（例如密度后缀重复）。"""


class UnsupportedInputError(RetinaWorkflowError):
    """输入为流式内容而非缓冲字节时抛出。"""


class _PathError(RetinaWorkflowError):
    """携带出错文件路径的异常。"""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class DecodeError(_PathError):
    """无法识别或解码图像。"""


class ResizeError(_PathError):
    """缩放或编码衍生图失败。"""


class ImageWriteError(RetinaWorkflowError):
    """输出写入失败。"""
