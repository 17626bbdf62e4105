"""命令行入口与退出码测试。"""

from __future__ import annotations

import csv
import io
from pathlib import Path

from PIL import Image
from typer.testing import CliRunner

from quantpress.cli.main import app

runner = CliRunner()


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    image = Image.new("RGB", (8, 8), (20, 40, 60))
    image.putpixel((0, 0), (200, 10, 10))
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def test_converts_files_with_default_suffix(tmp_path: Path) -> None:
    for name in ("a.png", "b.png"):
        (tmp_path / name).write_bytes(_png_bytes())

    result = runner.invoke(app, [str(tmp_path / "a.png"), str(tmp_path / "b.png")])

    assert result.exit_code == 0
    assert (tmp_path / "a-fs8.png").exists()
    assert (tmp_path / "b-fs8.png").exists()


def test_nofs_uses_ordered_suffix(tmp_path: Path) -> None:
    (tmp_path / "a.png").write_bytes(_png_bytes())

    result = runner.invoke(app, ["--nofs", str(tmp_path / "a.png")])

    assert result.exit_code == 0
    assert (tmp_path / "a-or8.png").exists()


def test_missing_inputs_exit_code() -> None:
    result = runner.invoke(app, [])

    assert result.exit_code == 1


def test_output_with_two_inputs_is_invalid(tmp_path: Path) -> None:
    for name in ("a.png", "b.png"):
        (tmp_path / name).write_bytes(_png_bytes())

    result = runner.invoke(
        app, ["--output", str(tmp_path / "out.png"), str(tmp_path / "a.png"), str(tmp_path / "b.png")]
    )

    assert result.exit_code == 4
    assert not (tmp_path / "out.png").exists()


def test_invalid_quality_exit_code(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--quality", "50-40", str(tmp_path / "a.png")])

    assert result.exit_code == 4


def test_first_failure_decides_exit_code(tmp_path: Path) -> None:
    (tmp_path / "a.png").write_bytes(_png_bytes())
    (tmp_path / "b.png").write_text("broken")
    (tmp_path / "c.png").write_bytes(_png_bytes())
    (tmp_path / "c-fs8.png").write_bytes(b"existing")
    report = tmp_path / "report.csv"

    result = runner.invoke(
        app,
        [str(tmp_path / name) for name in ("a.png", "b.png", "c.png")] + ["--report", str(report)],
    )

    # b.png 读取失败（2），c.png 因目标已存在失败（15），以输入顺序的第一个为准。
    assert result.exit_code == 2
    with report.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["status"] for row in rows] == ["processed", "failed", "failed"]
    assert [row["exit_code"] for row in rows] == ["0", "2", "15"]


def test_stdin_to_stdout() -> None:
    result = runner.invoke(app, ["-"], input=_png_bytes())

    assert result.exit_code == 0
    assert result.stdout_bytes.startswith(b"\x89PNG")
