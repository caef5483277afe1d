"""缩放执行：对单条衍生图任务调用 Pillow 完成缩放与编码。"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Callable, Union

from PIL import Image, UnidentifiedImageError

from retina_workflow.core.exceptions import DecodeError, ResizeError, RetinaWorkflowError
from retina_workflow.core.models import FileRecord, PathInfo, WorkItem
from retina_workflow.processing.dimensions import compute_target_size, quality_to_percent

LOGGER = logging.getLogger(__name__)

_RESAMPLING = getattr(Image, "Resampling", Image)

SUPPORTED_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
    "tif": "TIFF",
    "tiff": "TIFF",
}

# 这些格式的 quality 参数有效；PNG 等无损格式忽略画质设置。
LOSSY_FORMATS = {"JPEG", "WEBP"}

ImageSource = Union[Path, bytes]
ResizeFunc = Callable[[ImageSource, tuple[int, int], int, str], bytes]


def resize_image(source: ImageSource, size: tuple[int, int], quality: int, image_format: str) -> bytes:
    """解码源图、缩放到 ``size`` 并按 ``image_format`` 编码。"""

    handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    try:
        with Image.open(handle) as img:
            img.load()
            resized = img.resize(size, _RESAMPLING.LANCZOS)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"无法解码图像: {exc}") from exc

    save_params: dict = {"optimize": True} if image_format in {"JPEG", "PNG"} else {}
    if image_format in LOSSY_FORMATS:
        save_params["quality"] = quality
    if image_format == "JPEG" and resized.mode not in {"RGB", "L", "CMYK"}:
        resized = resized.convert("RGB")

    output = io.BytesIO()
    try:
        resized.save(output, format=image_format, **save_params)
    except (OSError, ValueError, KeyError) as exc:
        raise ResizeError(f"编码失败 ({image_format}): {exc}") from exc
    finally:
        resized.close()

    return output.getvalue()


def execute_work_item(
    item: WorkItem,
    info: PathInfo,
    source: ImageSource,
    *,
    quality: float = 1.0,
    round_up: bool = True,
    resize_func: ResizeFunc = resize_image,
) -> FileRecord:
    """为单条 WorkItem 生成衍生图，返回带目标路径与原 base 的 FileRecord。"""

    assert info.flag is not None
    size = compute_target_size(info.size[0], info.size[1], item.scale, info.flag.scale, round_up)
    image_format = SUPPORTED_FORMATS.get(info.extension.lower())
    if image_format is None:
        raise ResizeError(f"不支持的输出格式: {info.extension}", path=info.path)

    LOGGER.debug("生成衍生图 %s -> %s (%dx%d)", info.basename, item.target.name, *size)

    try:
        data = resize_func(source, size, quality_to_percent(quality), image_format)
    except (DecodeError, ResizeError) as exc:
        if exc.path is None:
            exc.path = info.path
        raise
    except (RetinaWorkflowError, OSError) as exc:
        raise ResizeError(f"缩放失败: {info.path}: {exc}", path=info.path) from exc

    return FileRecord(path=item.target, base=info.base, contents=data)
