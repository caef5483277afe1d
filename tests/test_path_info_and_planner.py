"""环节一：测试路径拆解与衍生图规划逻辑。"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from PIL import Image

from retina_workflow.core.config import DEFAULT_FLAGS, DensityFlag
from retina_workflow.core.exceptions import DecodeError
from retina_workflow.core.models import FileRecord, PathInfo
from retina_workflow.processing.path_info import extract_path_info, match_flag, probe_size, split_extension
from retina_workflow.processing.planner import path_exists, plan_derivatives


def _fake_probe(source, path=None) -> tuple[int, int]:
    return 400, 400


def _info_for(path: Path, flags=DEFAULT_FLAGS) -> PathInfo:
    record = FileRecord(path=path, base=path.parent, contents=b"")
    return extract_path_info(record, flags, size_probe=_fake_probe)


def test_split_extension_uses_last_dot() -> None:
    assert split_extension(Path("/a/b/photo.min@2x.png")) == ("photo.min@2x", "png")
    assert split_extension(Path("/a/README")) == ("README", "")


def test_match_flag_is_first_match_and_case_sensitive() -> None:
    assert match_flag("photo@2x", DEFAULT_FLAGS) == DEFAULT_FLAGS[1]
    assert match_flag("photo@2X", DEFAULT_FLAGS) is None
    assert match_flag("photo", DEFAULT_FLAGS) is None


def test_extract_path_info_strips_suffix(tmp_path: Path) -> None:
    info = _info_for(tmp_path / "icons" / "photo@3x.png")

    assert info.flag == DEFAULT_FLAGS[2]
    assert info.name == "photo"
    assert info.extension == "png"
    assert info.basename == "photo@3x.png"
    assert info.size == (400, 400)
    assert info.partial == str(tmp_path / "icons" / "photo")
    assert info.sibling("@2x") == tmp_path / "icons" / "photo@2x.png"
    assert info.sibling("") == tmp_path / "icons" / "photo.png"


def test_extract_path_info_without_flag_skips_size_probe(tmp_path: Path) -> None:
    def exploding_probe(source, path=None):
        raise AssertionError("不应读取尺寸")

    record = FileRecord(path=tmp_path / "plain.png", base=tmp_path, contents=b"")
    info = extract_path_info(record, DEFAULT_FLAGS, size_probe=exploding_probe)

    assert info.flag is None
    assert info.name == "plain"


def test_probe_size_reads_buffer_and_path(tmp_path: Path) -> None:
    path = tmp_path / "sample.png"
    Image.new("RGB", (30, 20), "red").save(path)

    assert probe_size(path) == (30, 20)
    assert probe_size(path.read_bytes()) == (30, 20)


def test_extract_path_info_raises_decode_error_with_path(tmp_path: Path) -> None:
    path = tmp_path / "broken@2x.png"
    record = FileRecord(path=path, base=tmp_path, contents=b"not an image")

    with pytest.raises(DecodeError) as excinfo:
        extract_path_info(record, DEFAULT_FLAGS)

    assert excinfo.value.path == path
    assert str(path) in str(excinfo.value)


def test_suffix_only_name_keeps_siblings_in_same_directory(tmp_path: Path) -> None:
    icons = tmp_path / "icons"
    info = _info_for(icons / "@2x.png")

    assert info.name == ""
    assert info.partial == str(icons) + os.sep
    assert info.sibling("@1x") == icons / "@1x.png"

    work_list = plan_derivatives(info, DEFAULT_FLAGS, exists=lambda path: False)

    assert [item.target for item in work_list] == [icons / ".png"]


def test_plan_from_4x_generates_descending_targets(tmp_path: Path) -> None:
    info = _info_for(tmp_path / "photo@4x.png")

    work_list = plan_derivatives(info, DEFAULT_FLAGS, exists=lambda path: False)

    assert [item.scale for item in work_list] == [3, 2, 1]
    assert [item.target.name for item in work_list] == ["photo@3x.png", "photo@2x.png", "photo.png"]


def test_plan_never_proposes_scale_at_or_above_source(tmp_path: Path) -> None:
    for flag in DEFAULT_FLAGS:
        info = _info_for(tmp_path / f"photo{flag.suffix}.png")
        work_list = plan_derivatives(info, DEFAULT_FLAGS, exists=lambda path: False)

        assert all(item.scale < flag.scale for item in work_list)
        assert len(work_list) == sum(1 for other in DEFAULT_FLAGS if other.scale < flag.scale)


def test_plan_stops_at_existing_smaller_sibling(tmp_path: Path) -> None:
    info = _info_for(tmp_path / "photo@4x.png")
    existing = {tmp_path / "photo@2x.png"}

    work_list = plan_derivatives(info, DEFAULT_FLAGS, exists=lambda path: path in existing)

    assert [item.target.name for item in work_list] == ["photo@3x.png"]


def test_plan_checks_input_side_suffix_for_existence(tmp_path: Path) -> None:
    info = _info_for(tmp_path / "photo@2x.png")
    checked: list[Path] = []

    def record_exists(path: Path) -> bool:
        checked.append(path)
        return False

    work_list = plan_derivatives(info, DEFAULT_FLAGS, exists=record_exists)

    assert checked == [tmp_path / "photo@1x.png"]
    assert [item.target.name for item in work_list] == ["photo.png"]


def test_plan_sort_is_independent_of_configured_order(tmp_path: Path) -> None:
    shuffled = [DEFAULT_FLAGS[1], DEFAULT_FLAGS[3], DEFAULT_FLAGS[0], DEFAULT_FLAGS[2]]
    info = _info_for(tmp_path / "photo@4x.png", flags=shuffled)

    work_list = plan_derivatives(info, shuffled, exists=lambda path: False)

    assert [item.scale for item in work_list] == [3, 2, 1]


def test_plan_with_custom_ladder(tmp_path: Path) -> None:
    flags = [
        DensityFlag("-hd", 2, ""),
        DensityFlag("-sd", 1, "-sd"),
    ]
    info = _info_for(tmp_path / "logo-hd.jpg", flags=flags)

    work_list = plan_derivatives(info, flags, exists=lambda path: False)

    assert [item.target.name for item in work_list] == ["logo-sd.jpg"]


def test_plan_uses_real_filesystem_by_default(tmp_path: Path) -> None:
    (tmp_path / "photo@3x.png").write_bytes(b"")
    info = _info_for(tmp_path / "photo@4x.png")

    assert plan_derivatives(info, DEFAULT_FLAGS) == []


def test_path_exists_never_raises(tmp_path: Path) -> None:
    assert path_exists(tmp_path / "missing" / "file.png") is False
    assert path_exists(Path("bad\x00name")) is False
