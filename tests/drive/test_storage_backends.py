"""本地存储镜像测试：读写、改名、删除与打包。"""

import io
import zipfile
from pathlib import Path

import pytest

from app.packages.drive.core.exceptions import InvalidPathError, MirrorError, NodeConflictError, NodeNotFoundError
from app.packages.drive.services.storage_backends import LocalMirror


def test_write_creates_parents(mirror: LocalMirror, storage_root: Path):
    mirror.write("a/b/c.txt", b"0123456789")
    assert (storage_root / "a" / "b" / "c.txt").read_bytes() == b"0123456789"


def test_resolve_rejects_escape(mirror: LocalMirror):
    with pytest.raises(InvalidPathError):
        mirror.resolve("../outside.txt")


def test_write_onto_directory_conflicts(mirror: LocalMirror):
    mirror.make_dirs("a/b")
    with pytest.raises(NodeConflictError):
        mirror.write("a/b", b"x")


def test_make_dirs_over_file_conflicts(mirror: LocalMirror):
    mirror.write("f.txt", b"x")
    with pytest.raises(NodeConflictError):
        mirror.make_dirs("f.txt")


def test_rename_and_move(mirror: LocalMirror, storage_root: Path):
    mirror.write("a/b/c.txt", b"hi")
    mirror.rename("a/b/c.txt", "a/b/d.txt")
    assert (storage_root / "a/b/d.txt").exists()

    mirror.move("a/b", "b")
    assert (storage_root / "b/d.txt").read_bytes() == b"hi"
    assert not (storage_root / "a/b").exists()

    with pytest.raises(NodeNotFoundError):
        mirror.rename("missing", "other")
    mirror.write("e.txt", b"")
    with pytest.raises(NodeConflictError):
        mirror.rename("e.txt", "b")


def test_remove_and_remove_tree(mirror: LocalMirror, storage_root: Path):
    mirror.write("a/b/c.txt", b"hi")
    mirror.remove("a/b/c.txt")
    assert not (storage_root / "a/b/c.txt").exists()

    mirror.remove("a/b")
    assert not (storage_root / "a/b").exists()

    with pytest.raises(MirrorError):
        mirror.remove("a/never-there.txt")

    mirror.write("x/y/z.txt", b"1")
    mirror.remove_tree("x")
    assert not (storage_root / "x").exists()
    mirror.remove_tree("x")

    with pytest.raises(InvalidPathError):
        mirror.remove_tree("")


def test_stat(mirror: LocalMirror):
    mirror.write("docs/readme.md", b"hello")
    info = mirror.stat("docs/readme.md")
    assert info.name == "readme.md"
    assert info.size == 5
    assert info.is_directory is False
    assert info.mode.startswith("-")
    assert mirror.stat("docs").is_directory is True

    with pytest.raises(NodeNotFoundError):
        mirror.stat("docs/none")


def test_package_subtree(mirror: LocalMirror):
    mirror.write("proj/a.txt", b"A")
    mirror.write("proj/sub/b.txt", b"B" * 5000)
    mirror.make_dirs("proj/empty")

    chunks = list(mirror.package_subtree("proj"))
    assert len(chunks) >= 1
    assert all(len(chunk) <= mirror.chunk_size for chunk in chunks)

    with zipfile.ZipFile(io.BytesIO(b"".join(chunks))) as zf:
        names = sorted(zf.namelist())
        assert names == ["a.txt", "empty/", "sub/b.txt"]
        assert zf.read("sub/b.txt") == b"B" * 5000


def test_package_subtree_errors(mirror: LocalMirror):
    with pytest.raises(NodeNotFoundError):
        mirror.package_subtree("none")
    mirror.write("file.txt", b"x")
    with pytest.raises(InvalidPathError):
        mirror.package_subtree("file.txt")


def test_failed_write_leaves_no_new_directories(mirror: LocalMirror, storage_root: Path):
    mirror.make_dirs("kept")
    with pytest.raises(MirrorError):
        mirror.write("newdir/sub/" + "x" * 300, b"1")
    assert not (storage_root / "newdir").exists()
    assert (storage_root / "kept").is_dir()
    assert list(storage_root.rglob("*.part")) == []


def test_write_replaces_existing_file(mirror: LocalMirror, storage_root: Path):
    mirror.write("docs/a.txt", b"old")
    mirror.write("docs/a.txt", b"new content")
    assert (storage_root / "docs/a.txt").read_bytes() == b"new content"
    assert [p.name for p in (storage_root / "docs").iterdir()] == ["a.txt"]


def test_package_subtree_skips_symlinks(mirror: LocalMirror, storage_root: Path, tmp_path: Path):
    outside = tmp_path / "outside.txt"
    outside.write_bytes(b"secret")
    mirror.write("proj/a.txt", b"A")
    (storage_root / "proj" / "leak.txt").symlink_to(outside)
    (storage_root / "proj" / "loop").symlink_to(storage_root / "proj", target_is_directory=True)

    with zipfile.ZipFile(io.BytesIO(b"".join(mirror.package_subtree("proj")))) as zf:
        assert zf.namelist() == ["a.txt"]
