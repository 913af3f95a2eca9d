from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from coreason_runner.models.files import InputFile
from coreason_runner.staging import InputStager, cleanup_temp_directory, sanitize_file_name


@pytest.fixture
def stager(tmp_path: Path) -> InputStager:
    return InputStager(temp_root=tmp_path)


@pytest.mark.asyncio
async def test_stage_in_memory_and_host_files(stager: InputStager, tmp_path: Path) -> None:
    host_file = tmp_path / "data.csv"
    host_file.write_bytes(b"a,b\n1,2\n")

    staged = await stager.stage(
        [InputFile(name="notes.txt", content=b"hello"), InputFile(name="data.csv", path=host_file)]
    )

    assert staged.temp_dir.name.startswith("coreason-runner-input-")
    assert staged.input_dir == staged.temp_dir / "input"
    assert staged.file_names == ["notes.txt", "data.csv"]
    assert staged.file_sizes == [5, 8]
    assert staged.total_bytes == 13
    assert (staged.input_dir / "notes.txt").read_bytes() == b"hello"
    assert staged.skipped == []


@pytest.mark.asyncio
async def test_unreadable_input_is_skipped(stager: InputStager, tmp_path: Path) -> None:
    staged = await stager.stage(
        [
            InputFile(name="good.bin", content=b"\x00\x01"),
            InputFile(name="missing.bin", path=tmp_path / "does-not-exist.bin"),
        ]
    )

    assert staged.file_names == ["good.bin"]
    assert [s.name for s in staged.skipped] == ["missing.bin"]
    assert not (staged.input_dir / "missing.bin").exists()


@pytest.mark.asyncio
async def test_names_cannot_escape_input_dir(stager: InputStager) -> None:
    staged = await stager.stage(
        [
            InputFile(name="../../etc/passwd", content=b"x"),
            InputFile(name="C:\\Users\\me\\report.pdf", content=b"y"),
            InputFile(name="..", content=b"z"),
        ]
    )

    assert staged.file_names == ["passwd", "report.pdf"]
    assert len(staged.skipped) == 1
    assert all(p.parent == staged.input_dir for p in staged.input_dir.iterdir())


@pytest.mark.asyncio
async def test_stage_nothing(stager: InputStager) -> None:
    staged = await stager.stage([])

    assert staged.input_dir.is_dir()
    assert staged.file_sizes == []


def test_input_file_needs_exactly_one_source(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        InputFile(name="a")
    with pytest.raises(ValueError):
        InputFile(name="a", content=b"x", path=tmp_path)


def test_cleanup_temp_directory(tmp_path: Path) -> None:
    target = tmp_path / "stage"
    (target / "input").mkdir(parents=True)
    (target / "input" / "f.txt").write_text("x")

    cleanup_temp_directory(target)

    assert not target.exists()
    # Missing directories and None are fine
    cleanup_temp_directory(target)
    cleanup_temp_directory(None)


def test_cleanup_errors_are_swallowed(tmp_path: Path) -> None:
    with patch("coreason_runner.staging.shutil.rmtree", side_effect=PermissionError("locked")) as mock_rmtree:
        cleanup_temp_directory(tmp_path)

    mock_rmtree.assert_called_once()


@pytest.mark.parametrize(
    "name, expected",
    [("report final (1).pdf", "report_final__1_.pdf"), ("ok-name_1.txt", "ok-name_1.txt"), ("ü.txt", "_.txt")],
)
def test_sanitize_file_name(name: str, expected: str) -> None:
    assert sanitize_file_name(name) == expected


@pytest.mark.asyncio
async def test_write_failure_is_skipped(stager: InputStager) -> None:
    real_write = InputStager._write

    async def flaky_write(item: Any, destination: Path) -> int:
        if item.name == "bad.txt":
            raise OSError("disk full")
        return await real_write(item, destination)

    with patch.object(InputStager, "_write", side_effect=flaky_write):
        staged = await stager.stage([InputFile(name="bad.txt", content=b"1"), InputFile(name="good.txt", content=b"2")])

    assert staged.file_names == ["good.txt"]
    assert staged.skipped[0].reason == "disk full"
