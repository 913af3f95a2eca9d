import tarfile
from pathlib import Path

import pytest

from coreason_runner.volumes.archive import (
    extract_and_flatten,
    extract_structured,
    flatten_to_root,
    list_files,
    list_members,
    remove_subdirectories,
    strip_depth,
    write_chunks,
)

from helpers import build_tar


def _write_tar(tmp_path: Path, files: dict[str, bytes], directories: tuple[str, ...] = ()) -> Path:
    tar_path = tmp_path / "archive.tar"
    tar_path.write_bytes(build_tar(files, directories))
    return tar_path


@pytest.fixture
def dest(tmp_path: Path) -> Path:
    path = tmp_path / "dest"
    path.mkdir()
    return path


def test_strip_depth() -> None:
    assert strip_depth("/agent/workspace/output") == 3
    assert strip_depth("/agent/workspace/output/") == 3
    assert strip_depth("/") == 0


def test_write_chunks(tmp_path: Path) -> None:
    target = tmp_path / "out.tar"

    size = write_chunks(iter([b"abc", b"", b"de"]), target)

    assert size == 5
    assert target.read_bytes() == b"abcde"


def test_list_members(tmp_path: Path) -> None:
    tar_path = _write_tar(tmp_path, {"output/a.txt": b"a"}, directories=("output",))

    assert list_members(tar_path) == ["output", "output/a.txt"]


def test_extract_structured_with_strip(tmp_path: Path, dest: Path) -> None:
    tar_path = _write_tar(tmp_path, {"output/report.csv": b"x,y", "output/sub/deep.txt": b"deep"})

    extract_structured(tar_path, dest, strip_components=1)

    assert (dest / "report.csv").read_bytes() == b"x,y"
    assert (dest / "sub/deep.txt").read_bytes() == b"deep"


def test_extract_rejects_escaping_members(tmp_path: Path, dest: Path) -> None:
    tar_path = _write_tar(tmp_path, {"../evil.txt": b"x", "ok.txt": b"z"})

    extract_structured(tar_path, dest)

    assert list_files(dest) == ["ok.txt"]
    assert not (tmp_path / "evil.txt").exists()


def test_flatten_to_root(dest: Path) -> None:
    (dest / "output/nested").mkdir(parents=True)
    (dest / "output/a.txt").write_text("a")
    (dest / "output/nested/b.txt").write_text("b")

    files = flatten_to_root(dest)

    assert files == ["a.txt", "b.txt"]
    assert not (dest / "output").exists()


def test_flatten_keeps_colliding_names_nested(dest: Path) -> None:
    (dest / "sub").mkdir()
    (dest / "same.txt").write_text("root")
    (dest / "sub/same.txt").write_text("nested")

    files = flatten_to_root(dest)

    assert (dest / "same.txt").read_text() == "root"
    assert files == ["same.txt", "sub/same.txt"]


def test_extract_and_flatten_unstripped_mirrors_container_path(tmp_path: Path, dest: Path) -> None:
    # An archive of /agent/workspace/output that keeps the full path
    tar_path = _write_tar(tmp_path, {"agent/workspace/output/result.json": b"{}"})

    assert extract_and_flatten(tar_path, dest, 0) == ["result.json"]


def test_extract_and_flatten_stripping_everything_yields_nothing(tmp_path: Path, dest: Path) -> None:
    tar_path = _write_tar(tmp_path, {"output/result.json": b"{}"})

    assert extract_and_flatten(tar_path, dest, 3) == []


def test_extract_and_flatten_unstructured(tmp_path: Path, dest: Path) -> None:
    tar_path = _write_tar(tmp_path, {"a/b/c/one.txt": b"1", "x/two.txt": b"2"})

    assert extract_and_flatten(tar_path, dest, None) == ["one.txt", "two.txt"]


def test_extract_and_flatten_corrupt_archive(tmp_path: Path, dest: Path) -> None:
    tar_path = tmp_path / "broken.tar"
    tar_path.write_bytes(b"this is not a tar archive" * 40)

    with pytest.raises(tarfile.TarError):
        extract_and_flatten(tar_path, dest, 0)


def test_remove_subdirectories(dest: Path) -> None:
    (dest / "keep.txt").write_text("k")
    (dest / "drop/inner").mkdir(parents=True)

    remove_subdirectories(dest)

    assert [p.name for p in dest.iterdir()] == ["keep.txt"]
