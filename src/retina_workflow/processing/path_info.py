"""拆解输入文件路径：目录、文件名、扩展名、密度标记与像素尺寸。"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from PIL import Image, UnidentifiedImageError

from retina_workflow.core.config import DensityFlag
from retina_workflow.core.exceptions import DecodeError
from retina_workflow.core.models import FileRecord, PathInfo

LOGGER = logging.getLogger(__name__)

ImageSource = Union[Path, bytes]
SizeProbe = Callable[[ImageSource, Optional[Path]], tuple[int, int]]


def split_extension(path: Path) -> tuple[str, str]:
    """返回 (不含扩展名的文件名, 不带点号的扩展名)。"""

    basename = path.name
    stem, dot, extension = basename.rpartition(".")
    if not dot:
        return basename, ""
    return stem, extension


def match_flag(name: str, flags: Sequence[DensityFlag]) -> Optional[DensityFlag]:
    """按配置顺序查找第一个匹配文件名结尾的密度后缀（区分大小写）。"""

    for flag in flags:
        if flag.suffix and name.endswith(flag.suffix):
            return flag
    return None


def probe_size(source: ImageSource, path: Optional[Path] = None) -> tuple[int, int]:
    """只读取图像头部获取宽高，不解码像素。

    ``path`` 用于错误信息，内存内容缺省时取 ``source`` 本身。
    """

    handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    try:
        with Image.open(handle) as img:
            return img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        if path is None and isinstance(source, Path):
            path = source
        label = path if path is not None else "<buffer>"
        LOGGER.debug("无法识别图像文件 %s: %s", label, exc)
        raise DecodeError(f"无法读取图像尺寸: {label}", path=path) from exc


def extract_path_info(
    record: FileRecord,
    flags: Sequence[DensityFlag],
    size_probe: SizeProbe = probe_size,
) -> PathInfo:
    """根据文件路径构造 PathInfo。

    没有匹配的密度后缀时 ``flag`` 为 None，且不会读取图像尺寸。
    """

    name, extension = split_extension(record.path)
    flag = match_flag(name, flags)
    size = (0, 0)

    if flag is not None:
        name = name[: -len(flag.suffix)]
        source: ImageSource = record.contents if isinstance(record.contents, (bytes, bytearray)) else record.path
        size = size_probe(source, record.path)

    return PathInfo(
        path=record.path,
        base=record.base,
        directory=record.path.parent,
        basename=record.path.name,
        name=name,
        extension=extension,
        flag=flag,
        size=size,
    )
