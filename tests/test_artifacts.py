import base64
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from coreason_runner.artifacts import ArtifactCollector, guess_content_type, is_temporary_archive, matches_any
from coreason_runner.models.files import OutputRequest


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    path = tmp_path / "output"
    path.mkdir()
    (path / "report.pdf").write_bytes(b"%PDF-1.4")
    (path / "chart.png").write_bytes(b"\x89PNG\r\n")
    (path / "data file.csv").write_text("a,b\n")
    (path / "extract-123.tar").write_bytes(b"tmp")
    (path / "nested").mkdir()
    return path


@pytest.mark.asyncio
async def test_collect_all(output_dir: Path) -> None:
    files = await ArtifactCollector().collect(output_dir)

    assert sorted(files) == ["chart.png", "data_file.csv", "report.pdf"]
    assert files["report.pdf"].content == b"%PDF-1.4"
    assert files["report.pdf"].content_type == "application/pdf"
    assert files["report.pdf"].size_bytes == 8
    assert files["report.pdf"].url is None
    assert files["data_file.csv"].filename == "data file.csv"


@pytest.mark.asyncio
async def test_collect_with_patterns(output_dir: Path) -> None:
    files = await ArtifactCollector().collect(output_dir, OutputRequest(pattern="*.pdf, *.png"))

    assert sorted(files) == ["chart.png", "report.pdf"]


@pytest.mark.asyncio
async def test_images_get_data_uri(output_dir: Path) -> None:
    files = await ArtifactCollector().collect(output_dir, OutputRequest(pattern="*.png"))

    expected = base64.b64encode(b"\x89PNG\r\n").decode("utf-8")
    assert files["chart.png"].url == f"data:image/png;base64,{expected}"


@pytest.mark.asyncio
async def test_other_files_are_uploaded(output_dir: Path) -> None:
    storage = AsyncMock()
    storage.upload_file.return_value = "https://bucket/report.pdf?sig"

    files = await ArtifactCollector(storage).collect(output_dir, OutputRequest(pattern="*.pdf,*.png"), "workspace-abc")

    assert files["report.pdf"].url == "https://bucket/report.pdf?sig"
    storage.upload_file.assert_awaited_once_with(output_dir / "report.pdf", "report.pdf", "workspace-abc")
    assert files["chart.png"].url.startswith("data:image/png")


@pytest.mark.asyncio
async def test_upload_failure_keeps_file(output_dir: Path) -> None:
    storage = AsyncMock()
    storage.upload_file.side_effect = RuntimeError("bucket unavailable")

    files = await ArtifactCollector(storage).collect(output_dir, OutputRequest(pattern="*.pdf"))

    assert files["report.pdf"].url is None
    assert files["report.pdf"].content == b"%PDF-1.4"


@pytest.mark.asyncio
async def test_missing_directory(tmp_path: Path) -> None:
    assert await ArtifactCollector().collect(tmp_path / "absent") == {}


@pytest.mark.asyncio
async def test_process_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        await ArtifactCollector().process_file(tmp_path / "nope.txt", "nope.txt")


def test_helpers() -> None:
    assert is_temporary_archive("extract-1.tar")
    assert is_temporary_archive("coreason-file-abc.tar")
    assert not is_temporary_archive("results.tar")
    assert not is_temporary_archive("extract-notes.txt")
    assert matches_any("a.txt", ["*.csv", "a.*"])
    assert not matches_any("a.txt", ["*.csv"])
    assert guess_content_type("unknown.zzz-nope") == "application/octet-stream"
    assert OutputRequest(pattern=" , ").patterns == ["*"]
