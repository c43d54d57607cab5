"""Tests for TransferEngine — streamed save, move, delete and checksum."""

from __future__ import annotations

import hashlib
import io
import threading
from typing import TYPE_CHECKING

import pytest

from burrow.fs.exceptions import (
    AlreadyExistsError,
    InvalidArgumentError,
    PathNotFoundError,
    TransferCancelledError,
    UnauthorizedError,
)
from burrow.fs.transfer import TransferEngine
from burrow.fs.walker import TreeWalker

if TYPE_CHECKING:
    from pathlib import Path


def _write(root: Path, relative: str, data: bytes = b"x") -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@pytest.fixture
def root(tmp_path) -> Path:
    return tmp_path.resolve()


@pytest.fixture
def engine(root) -> TransferEngine:
    """Engine with a tiny chunk size so progress fires many times."""
    return TransferEngine(root, TreeWalker(root), chunk_size=4)


# ---------------------------------------------------------------------------
# save / make_directory
# ---------------------------------------------------------------------------


class TestSave:
    def test_save_stream(self, engine, root):
        written = engine.save("a/b/file.txt", io.BytesIO(b"hello world"))
        assert written == 11
        assert (root / "a/b/file.txt").read_bytes() == b"hello world"

    def test_save_iterable(self, engine, root):
        written = engine.save("chunks.bin", [b"ab", b"cd", b""])
        assert written == 4
        assert (root / "chunks.bin").read_bytes() == b"abcd"

    def test_overwrite(self, engine, root):
        engine.save("f.txt", io.BytesIO(b"v1"))
        engine.save("f.txt", io.BytesIO(b"version2"))
        assert (root / "f.txt").read_bytes() == b"version2"

    def test_no_temp_files_left(self, engine, root):
        engine.save("d/f.txt", io.BytesIO(b"data"))
        assert [p.name for p in (root / "d").iterdir()] == ["f.txt"]

    def test_onto_directory(self, engine, root):
        (root / "dir").mkdir()
        with pytest.raises(AlreadyExistsError):
            engine.save("dir", io.BytesIO(b"x"))

    def test_failed_stream_leaves_nothing(self, engine, root):
        def broken():
            yield b"partial"
            raise RuntimeError("client went away")

        with pytest.raises(RuntimeError):
            engine.save("up/f.txt", broken())
        assert list((root / "up").iterdir()) == []

    def test_escape_rejected(self, engine):
        with pytest.raises(UnauthorizedError):
            engine.save("../evil.txt", io.BytesIO(b"x"))


class TestMakeDirectory:
    def test_create(self, engine, root):
        assert engine.make_directory("x/y") is True
        assert (root / "x/y").is_dir()

    def test_existing(self, engine, root):
        (root / "x").mkdir()
        assert engine.make_directory("x") is False

    def test_file_in_the_way(self, engine, root):
        _write(root, "x")
        with pytest.raises(AlreadyExistsError):
            engine.make_directory("x")


# ---------------------------------------------------------------------------
# move_file
# ---------------------------------------------------------------------------


class TestMoveFile:
    def test_move(self, engine, root):
        _write(root, "src/a.txt", b"0123456789")
        assert engine.move_file("src/a.txt", "dst/a.txt") is True
        assert not (root / "src/a.txt").exists()
        assert (root / "dst/a.txt").read_bytes() == b"0123456789"

    def test_progress_cumulative(self, engine, root):
        _write(root, "a.bin", b"0123456789")
        seen: list[int] = []
        engine.move_file("a.bin", "b.bin", on_progress=seen.append)
        assert seen == [4, 8, 10]

    def test_missing_source(self, engine):
        assert engine.move_file("nope.txt", "dst.txt") is False

    def test_directory_source_is_not_a_file(self, engine, root):
        (root / "d").mkdir()
        assert engine.move_file("d", "e") is False

    def test_replaces_existing(self, engine, root):
        _write(root, "a.txt", b"new")
        _write(root, "b.txt", b"old content")
        assert engine.move_file("a.txt", "b.txt") is True
        assert (root / "b.txt").read_bytes() == b"new"

    def test_destination_directory(self, engine, root):
        _write(root, "a.txt")
        (root / "b").mkdir()
        with pytest.raises(AlreadyExistsError):
            engine.move_file("a.txt", "b")

    def test_same_path(self, engine, root):
        _write(root, "a.txt", b"keep")
        assert engine.move_file("a.txt", "a.txt") is True
        assert (root / "a.txt").read_bytes() == b"keep"

    def test_cancel_before_start(self, engine, root):
        _write(root, "a.bin", b"0123456789")
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(TransferCancelledError):
            engine.move_file("a.bin", "b.bin", cancel=cancel)
        assert (root / "a.bin").read_bytes() == b"0123456789"
        assert not (root / "b.bin").exists()

    def test_cancel_mid_transfer(self, engine, root):
        _write(root, "a.bin", b"0123456789")
        cancel = threading.Event()

        def stop_after_first_chunk(done: int) -> None:
            cancel.set()

        with pytest.raises(TransferCancelledError):
            engine.move_file("a.bin", "b.bin", on_progress=stop_after_first_chunk, cancel=cancel)
        assert (root / "a.bin").exists()
        assert not (root / "b.bin").exists()


# ---------------------------------------------------------------------------
# move_directory
# ---------------------------------------------------------------------------


class TestMoveDirectory:
    @pytest.fixture
    def tree(self, root) -> Path:
        _write(root, "src/one.txt", b"12345")
        _write(root, "src/sub/two.txt", b"123")
        (root / "src/sub/empty").mkdir()
        return root / "src"

    def test_move_tree(self, engine, root, tree):
        assert engine.move_directory("src", "dst/moved") is True
        assert not tree.exists()
        assert (root / "dst/moved/one.txt").read_bytes() == b"12345"
        assert (root / "dst/moved/sub/two.txt").read_bytes() == b"123"
        assert (root / "dst/moved/sub/empty").is_dir()

    def test_progress_spans_all_files(self, engine, tree):
        seen: list[int] = []
        engine.move_directory("src", "dst", on_progress=seen.append)
        assert seen == sorted(seen)
        assert seen[-1] == 8

    def test_missing_source(self, engine):
        assert engine.move_directory("nope", "dst") is False

    def test_into_itself(self, engine, tree):
        with pytest.raises(InvalidArgumentError):
            engine.move_directory("src", "src/sub/inner")
        assert tree.is_dir()

    def test_onto_own_ancestor(self, engine, root):
        _write(root, "p/p/keep.txt", b"keep")
        with pytest.raises(InvalidArgumentError):
            engine.move_directory("p/p", "p")
        assert (root / "p/p/keep.txt").read_bytes() == b"keep"

    def test_replaces_existing_destination(self, engine, root, tree):
        _write(root, "dst/stale.txt")
        engine.move_directory("src", "dst")
        assert not (root / "dst/stale.txt").exists()
        assert (root / "dst/one.txt").exists()

    def test_cancel_keeps_unmoved_files(self, engine, root, tree):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(TransferCancelledError):
            engine.move_directory("src", "dst", cancel=cancel)
        assert (root / "src/one.txt").exists()
        assert (root / "src/sub/two.txt").exists()


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------


class TestDelete:
    def test_delete_file(self, engine, root):
        _write(root, "a.txt")
        assert engine.delete("a.txt") is True
        assert not (root / "a.txt").exists()

    def test_delete_idempotent(self, engine, root):
        _write(root, "a.txt")
        engine.delete("a.txt")
        assert engine.delete("a.txt") is False

    def test_delete_tree(self, engine, root):
        _write(root, "d/e/f.txt")
        assert engine.delete_tree("d") is True
        assert not (root / "d").exists()
        assert engine.delete_tree("d") is False

    def test_delete_tree_refuses_root(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.delete_tree("")

    def test_remove_empty_directory(self, engine, root):
        (root / "empty").mkdir()
        _write(root, "full/a.txt")
        assert engine.remove_empty_directory("empty") is True
        assert engine.remove_empty_directory("full") is False
        assert (root / "full").is_dir()


# ---------------------------------------------------------------------------
# read / checksum
# ---------------------------------------------------------------------------


class TestRead:
    def test_open_read(self, engine, root):
        _write(root, "a.txt", b"content")
        with engine.open_read("a.txt") as f:
            assert f.read() == b"content"

    def test_open_missing(self, engine):
        with pytest.raises(PathNotFoundError):
            engine.open_read("nope.txt")

    def test_read_range(self, engine, root):
        _write(root, "a.txt", b"0123456789")
        assert engine.read_range("a.txt", 3, 4) == b"3456"
        assert engine.read_range("a.txt", 8, 100) == b"89"

    def test_read_range_negative(self, engine, root):
        _write(root, "a.txt")
        with pytest.raises(InvalidArgumentError):
            engine.read_range("a.txt", -1, 4)

    def test_checksum(self, engine, root):
        data = b"some bytes spanning several chunks"
        _write(root, "a.txt", data)
        assert engine.checksum("a.txt") == hashlib.sha256(data).hexdigest()


class TestRoundTrips:
    def test_move_there_and_back(self, engine, root):
        _write(root, "src/a.txt", b"alpha")
        _write(root, "src/sub/b.txt", b"beta")
        before = engine.checksum("src/sub/b.txt")

        engine.move_directory("src", "elsewhere")
        engine.move_directory("elsewhere", "src")

        assert not (root / "elsewhere").exists()
        assert (root / "src/a.txt").read_bytes() == b"alpha"
        assert engine.checksum("src/sub/b.txt") == before

    def test_checksum_depends_only_on_content(self, engine, root):
        _write(root, "one.bin", b"same bytes")
        _write(root, "two/other.bin", b"same bytes")
        assert engine.checksum("one.bin") == engine.checksum("two/other.bin")
