"""参数解析与配置校验测试。"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from quantpress.core.config import RawOptions
from quantpress.core.exceptions import ErrorKind, InvalidArgumentError, MissingArgumentError, QuantPressError
from quantpress.core.resolver import (
    apply_legacy_colors,
    parse_quality,
    resolve_dithering,
    resolve_io_plan,
    resolve_options,
    validate_speed,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("0-100", (0, 100)),
        ("40-60", (40, 60)),
        ("70-70", (70, 70)),
        ("80", (72, 80)),
        ("75", (67, 75)),
        ("0", (0, 0)),
        ("100", (90, 100)),
        ("-65", (0, 65)),
        ("35-", (35, 100)),
    ],
)
def test_parse_quality_forms(text: str, expected: tuple[int, int]) -> None:
    assert parse_quality(text) == expected


def test_parse_quality_covers_whole_range() -> None:
    for low in range(0, 101, 7):
        for high in range(low, 101, 9):
            assert parse_quality(f"{low}-{high}") == (low, high)
        assert parse_quality(str(low)) == (low * 9 // 10, low)
        assert parse_quality(f"-{low}") == (0, low)
        assert parse_quality(f"{low}-") == (low, 100)


@pytest.mark.parametrize("text", ["101", "50-40", "abc", "x-50", "50-y", "-", "10-200"])
def test_parse_quality_rejects_invalid(text: str) -> None:
    with pytest.raises(InvalidArgumentError):
        parse_quality(text)


def test_parse_quality_names_failing_side() -> None:
    with pytest.raises(InvalidArgumentError, match="第一个"):
        parse_quality("a-50")
    with pytest.raises(InvalidArgumentError, match="第二个"):
        parse_quality("50-b")


@pytest.mark.parametrize("speed", [0, 12, -1, 100])
def test_speed_out_of_range(speed: int) -> None:
    with pytest.raises(InvalidArgumentError):
        validate_speed(speed)


def test_speed_selects_fast_compression() -> None:
    for speed in range(1, 12):
        value, fast = validate_speed(speed)
        assert value == speed
        assert fast is (speed >= 10)


def test_dithering_resolution_order() -> None:
    assert resolve_dithering(None, False, 3, False) == 1.0
    assert resolve_dithering(None, True, 3, False) == 0.0
    assert resolve_dithering(0.5, True, 3, False) == 0.5
    assert resolve_dithering(1.7, False, 3, False) == 1.0
    assert resolve_dithering(None, False, 10, True) == 0.0
    assert resolve_dithering(0.8, False, 10, True) == 0.8


def test_speed_eleven_disables_dithering(tmp_path: Path) -> None:
    config, _ = resolve_options(RawOptions(files=[str(tmp_path / "a.png")], speed=11, floyd=1.0))

    assert config.fast_compression is True
    assert config.dithering_level == 0.0


def test_quality_floor_sets_enforcement(tmp_path: Path) -> None:
    files = [str(tmp_path / "a.png")]

    config, _ = resolve_options(RawOptions(files=files, quality="60-80"))
    assert (config.min_quality, config.max_quality) == (60, 80)
    assert config.min_quality_enforced is True

    config, _ = resolve_options(RawOptions(files=files, quality="-80"))
    assert config.min_quality_enforced is False


def test_legacy_positional_colors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog) -> None:
    monkeypatch.chdir(tmp_path)

    files, colors = apply_legacy_colors(["64", "photo.png"], None)
    assert files == ["photo.png"]
    assert colors == 64
    assert "--colors 64" in caplog.text

    files, colors = apply_legacy_colors(["16"], None)
    assert files == ["-"]
    assert colors == 16


def test_legacy_colors_keeps_existing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "32").write_bytes(b"")

    files, colors = apply_legacy_colors(["32", "photo.png"], None)
    assert files == ["32", "photo.png"]
    assert colors is None

    # 显式 --colors 时不做兼容处理。
    files, colors = apply_legacy_colors(["8", "photo.png"], 128)
    assert files == ["8", "photo.png"]
    assert colors == 128


def test_colors_and_posterize_ranges(tmp_path: Path) -> None:
    files = [str(tmp_path / "a.png")]
    for colors in (1, 257):
        with pytest.raises(InvalidArgumentError):
            resolve_options(RawOptions(files=files, colors=colors))
    with pytest.raises(InvalidArgumentError):
        resolve_options(RawOptions(files=files, posterize=5))

    config, _ = resolve_options(RawOptions(files=files, colors=256, posterize=4))
    assert config.max_colors == 256
    assert config.posterize == 4


def test_output_path_requires_single_input(tmp_path: Path) -> None:
    raw = RawOptions(files=[str(tmp_path / "a.png"), str(tmp_path / "b.png")], output=tmp_path / "out.png")

    with pytest.raises(InvalidArgumentError):
        resolve_options(raw)


def test_stdout_output_requires_single_input(tmp_path: Path) -> None:
    raw = RawOptions(files=[str(tmp_path / "a.png"), str(tmp_path / "b.png")], output=Path("-"))

    with pytest.raises(InvalidArgumentError):
        resolve_options(raw)


def test_empty_inputs_is_missing_argument() -> None:
    with pytest.raises(MissingArgumentError) as info:
        resolve_options(RawOptions(files=[], output=Path("out.png")))

    assert info.value.kind is ErrorKind.MISSING_ARGUMENT


def test_extension_conflicts() -> None:
    with pytest.raises(InvalidArgumentError):
        resolve_io_plan(["a.png"], output=Path("b.png"), extension="-new.png", dithering_level=1.0)
    with pytest.raises(InvalidArgumentError):
        resolve_io_plan(["-"], output=None, extension="-new.png", dithering_level=1.0)


def test_io_plan_modes() -> None:
    plan = resolve_io_plan(["a.png", "b.png"], output=None, extension=None, dithering_level=1.0)
    assert plan.output_mode == "suffix"
    assert plan.suffix == "-fs8.png"
    assert plan.inputs == (Path("a.png"), Path("b.png"))

    plan = resolve_io_plan(["a.png"], output=None, extension=None, dithering_level=0.0)
    assert plan.suffix == "-or8.png"

    plan = resolve_io_plan(["a.png"], output=None, extension="-small.png", dithering_level=0.0)
    assert plan.suffix == "-small.png"

    plan = resolve_io_plan(["-"], output=None, extension=None, dithering_level=1.0)
    assert plan.input_mode == "stdin"
    assert plan.output_mode == "stdout"
    assert plan.input_count == 1

    plan = resolve_io_plan(["a.png"], output=Path("-"), extension=None, dithering_level=1.0)
    assert plan.input_mode == "paths"
    assert plan.output_mode == "stdout"

    plan = resolve_io_plan(["a.png"], output=Path("out.png"), extension=None, dithering_level=1.0, force=True)
    assert plan.output_mode == "path"
    assert plan.output_path == Path("out.png")
    assert plan.force is True


def test_fixed_palette_from_map_image(tmp_path: Path) -> None:
    palette_image = Image.new("RGB", (4, 4), (255, 0, 0))
    for x in range(4):
        palette_image.putpixel((x, 0), (0, 0, 255))
    map_path = tmp_path / "pal.png"
    palette_image.save(map_path)

    # 主配置的最低质量不应影响调色板图片的量化。
    config, _ = resolve_options(
        RawOptions(files=[str(tmp_path / "a.png")], map_file=map_path, quality="99-100")
    )

    assert set(config.fixed_palette) == {(255, 0, 0, 255), (0, 0, 255, 255)}
    assert config.min_quality == 99


def test_missing_map_image_is_read_error(tmp_path: Path) -> None:
    with pytest.raises(QuantPressError) as info:
        resolve_options(RawOptions(files=[str(tmp_path / "a.png")], map_file=tmp_path / "missing.png"))

    assert info.value.kind is ErrorKind.READ_ERROR


def test_fixed_palette_ignores_main_quality_range(tmp_path: Path) -> None:
    palette_image = Image.new("RGB", (4, 4), (255, 0, 0))
    for x in range(4):
        palette_image.putpixel((x, 1), (0, 0, 255))
        palette_image.putpixel((x, 2), (0, 255, 0))
        palette_image.putpixel((x, 3), (250, 250, 250))
    map_path = tmp_path / "pal.png"
    palette_image.save(map_path)

    # 上限为 0 时主配置会一路减少颜色，调色板图片必须按 0-100 量化。
    config, _ = resolve_options(RawOptions(files=[str(tmp_path / "a.png")], map_file=map_path, quality="-0"))

    assert config.max_quality == 0
    assert set(config.fixed_palette) == {
        (255, 0, 0, 255),
        (0, 0, 255, 255),
        (0, 255, 0, 255),
        (250, 250, 250, 255),
    }
