"""Tests for TreeWalker.

Covers the copy-or-link decision, reproduction of every entry kind,
exclusion and first-failure short-circuiting.
"""

import os
import socket
import stat
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from isnapshot.errors import CopyError, MetadataError, StatError, UnrecognizedTypeError
from isnapshot.metadata import FileStatus, capture_status
from isnapshot.walker import TreeWalker, WalkOptions


def _snapshot_dir(root: Path, name: str) -> Path:
    path = root / name
    path.mkdir()
    return path


def _in_snapshot(snapshot: Path, source: Path) -> Path:
    return Path(str(snapshot) + str(source))


@pytest.fixture
def first_snapshot(snapshot_root):
    return _snapshot_dir(snapshot_root, "01-01-25-12-00-00")


@pytest.fixture
def second_snapshot(snapshot_root):
    return _snapshot_dir(snapshot_root, "01-01-25-12-00-05")


class TestRegularFiles:
    """Copy-or-link decision for regular files."""

    def test_no_previous_snapshot_copies(self, source_dir, first_snapshot):
        (source_dir / "f1").write_text("one")

        result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(first_snapshot, source_dir / "f1")
        assert result.success
        assert dest.is_file() and not dest.is_symlink()
        assert dest.read_text() == "one"
        assert result.stats.files_copied == 1
        assert result.stats.files_linked == 0

    def test_copy_preserves_mtime(self, source_dir, first_snapshot):
        f1 = source_dir / "f1"
        f1.write_text("one")
        os.utime(f1, ns=(1_700_000_000_000_000_000, 1_700_000_000_123_456_789))

        TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(first_snapshot, f1)
        assert dest.stat().st_mtime_ns == f1.stat().st_mtime_ns

    def test_unchanged_file_is_linked(self, source_dir, first_snapshot, second_snapshot):
        (source_dir / "f1").write_text("one")
        TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        result = TreeWalker(str(second_snapshot), str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(second_snapshot, source_dir / "f1")
        assert result.success
        assert dest.is_symlink()
        assert os.readlink(dest) == str(_in_snapshot(first_snapshot, source_dir / "f1"))
        assert result.stats.files_linked == 1
        assert result.stats.files_copied == 0

    def test_changed_mtime_is_copied(self, source_dir, first_snapshot, second_snapshot):
        f1 = source_dir / "f1"
        f1.write_text("one")
        os.utime(f1, ns=(1_000_000_000, 1_000_000_000))
        TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        f1.write_text("uno")
        os.utime(f1, ns=(2_000_000_000, 2_000_000_000))
        result = TreeWalker(str(second_snapshot), str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(second_snapshot, f1)
        assert not dest.is_symlink()
        assert dest.read_text() == "uno"
        assert result.stats.files_copied == 1

    def test_same_mtime_different_content_is_linked(self, source_dir, first_snapshot, second_snapshot):
        f1 = source_dir / "f1"
        f1.write_text("one")
        os.utime(f1, ns=(1_000_000_000, 1_000_000_000))
        TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        f1.write_text("changed but same mtime")
        os.utime(f1, ns=(1_000_000_000, 1_000_000_000))
        TreeWalker(str(second_snapshot), str(first_snapshot)).walk([str(source_dir)])

        assert _in_snapshot(second_snapshot, f1).is_symlink()

    def test_force_copy_ignores_previous(self, source_dir, first_snapshot, second_snapshot):
        (source_dir / "f1").write_text("one")
        TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        walker = TreeWalker(
            str(second_snapshot),
            str(first_snapshot),
            options=WalkOptions(force_copy=True),
        )
        result = walker.walk([str(source_dir)])

        dest = _in_snapshot(second_snapshot, source_dir / "f1")
        assert not dest.is_symlink()
        assert dest.read_text() == "one"
        assert result.stats.files_copied == 1

    def test_new_file_missing_from_previous_is_copied(self, source_dir, first_snapshot, second_snapshot):
        (source_dir / "f1").write_text("one")
        TreeWalker(str(first_snapshot)).walk([str(source_dir)])
        (source_dir / "f2").write_text("two")

        TreeWalker(str(second_snapshot), str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(second_snapshot, source_dir / "f2")
        assert not dest.is_symlink()
        assert dest.read_text() == "two"

    def test_count_bytes(self, source_dir, first_snapshot, second_snapshot):
        (source_dir / "f1").write_bytes(b"x" * 10)
        TreeWalker(str(first_snapshot)).walk([str(source_dir)])
        f2 = source_dir / "f2"
        f2.write_bytes(b"y" * 5)

        walker = TreeWalker(
            str(second_snapshot),
            str(first_snapshot),
            options=WalkOptions(count_bytes=True),
        )
        result = walker.walk([str(source_dir)])

        assert result.stats.total_bytes == 15
        assert result.stats.bytes_copied == 5

    def test_bytes_not_counted_by_default(self, source_dir, first_snapshot):
        (source_dir / "f1").write_bytes(b"x" * 10)

        result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        assert result.stats.total_bytes == 0
        assert result.stats.bytes_copied == 0


class TestDirectories:
    """Directory reproduction."""

    def test_nested_tree(self, source_dir, first_snapshot):
        (source_dir / "a" / "b").mkdir(parents=True)
        (source_dir / "a" / "b" / "deep.txt").write_text("deep")

        result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        assert result.success
        assert _in_snapshot(first_snapshot, source_dir / "a" / "b" / "deep.txt").read_text() == "deep"
        assert result.stats.directories == 3

    def test_permissions_and_mtime(self, source_dir, first_snapshot, current_umask):
        sub = source_dir / "sub"
        sub.mkdir()
        (sub / "f").write_text("x")
        sub.chmod(0o750)
        os.utime(sub, ns=(1_000_000_000, 1_234_000_000_000))

        TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(first_snapshot, sub)
        assert stat.S_IMODE(dest.stat().st_mode) == 0o750 & ~current_umask
        assert dest.stat().st_mtime_ns == 1_234_000_000_000

    def test_read_only_directory_gets_children(self, source_dir, first_snapshot, current_umask):
        sub = source_dir / "ro"
        sub.mkdir()
        (sub / "f").write_text("x")
        sub.chmod(0o500)

        result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(first_snapshot, sub)
        try:
            assert result.success
            assert (dest / "f").read_text() == "x"
            assert stat.S_IMODE(dest.stat().st_mode) == 0o500 & ~current_umask
        finally:
            dest.chmod(0o700)

    def test_umask_restored(self, source_dir, first_snapshot, current_umask):
        (source_dir / "sub").mkdir()

        TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        mask = os.umask(0)
        os.umask(mask)
        assert mask == current_umask

    def test_root_parent_created(self, tmp_path, first_snapshot):
        nested = tmp_path / "deep" / "er" / "src"
        nested.mkdir(parents=True)

        result = TreeWalker(str(first_snapshot)).walk([str(nested)])

        assert result.success
        assert _in_snapshot(first_snapshot, nested).is_dir()


class TestSpecialEntries:
    """Symlinks, FIFOs and device nodes."""

    def test_symlink_recreated_literally(self, source_dir, first_snapshot):
        link = source_dir / "hosts"
        os.symlink("/etc/hosts", link)

        result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(first_snapshot, link)
        assert result.success
        assert dest.is_symlink()
        assert os.readlink(dest) == "/etc/hosts"
        assert os.lstat(dest).st_uid == os.lstat(link).st_uid
        assert os.lstat(dest).st_gid == os.lstat(link).st_gid
        assert result.stats.symlinks == 1

    def test_relative_and_dangling_symlinks(self, source_dir, first_snapshot):
        os.symlink("../nowhere", source_dir / "dangling")

        result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        assert result.success
        assert os.readlink(_in_snapshot(first_snapshot, source_dir / "dangling")) == "../nowhere"

    def test_symlink_ownership_failure_fails_entry(self, source_dir, first_snapshot):
        os.symlink("/etc/hosts", source_dir / "hosts")
        dest = _in_snapshot(first_snapshot, source_dir / "hosts")

        with patch("isnapshot.walker.os.chown", side_effect=PermissionError(1, "Operation not permitted")):
            result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        assert not result.success
        assert isinstance(result.error, MetadataError)
        assert result.failed_path == str(dest)
        assert "unable to preserve ownership" in str(result.error)
        assert result.stats.symlinks == 0
        # The link itself stays behind
        assert dest.is_symlink()

    def test_fifo(self, source_dir, first_snapshot):
        pipe = source_dir / "pipe"
        os.mkfifo(pipe, 0o640)
        pipe.chmod(0o640)

        result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        dest = _in_snapshot(first_snapshot, pipe)
        st = os.lstat(dest)
        assert result.success
        assert stat.S_ISFIFO(st.st_mode)
        assert stat.S_IMODE(st.st_mode) == 0o640
        assert st.st_size == 0
        assert result.stats.special_files == 1

    @pytest.mark.skipif(not hasattr(socket, "AF_UNIX"), reason="requires unix sockets")
    def test_socket(self, first_snapshot):
        # Socket paths have a short length limit
        short_dir = Path(tempfile.mkdtemp(prefix="isn"))
        sock_path = short_dir / "s"
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(str(sock_path))

            result = TreeWalker(str(first_snapshot)).walk([str(sock_path)])

            assert result.success
            assert stat.S_ISSOCK(os.lstat(_in_snapshot(first_snapshot, sock_path)).st_mode)
        finally:
            sock.close()
            sock_path.unlink()
            short_dir.rmdir()

    def test_device_node_uses_mode_and_rdev(self, first_snapshot):
        rdev = os.makedev(1, 3)
        status = FileStatus(
            path="/dev/null",
            mode=stat.S_IFCHR | 0o666,
            size=0,
            uid=0,
            gid=0,
            atime_ns=0,
            mtime_ns=0,
            rdev=rdev,
        )

        with patch("isnapshot.walker.capture_status", return_value=status):
            with patch("isnapshot.walker.os.mknod") as mock_mknod:
                walker = TreeWalker(str(first_snapshot))
                assert walker.process("/dev/null")

        mock_mknod.assert_called_once_with(
            str(first_snapshot) + "/dev/null", stat.S_IFCHR | 0o666, rdev
        )

    def test_unrecognized_type_fails(self, first_snapshot):
        status = FileStatus(
            path="/weird",
            mode=0o644,
            size=0,
            uid=0,
            gid=0,
            atime_ns=0,
            mtime_ns=0,
        )

        with patch("isnapshot.walker.capture_status", return_value=status):
            result = TreeWalker(str(first_snapshot)).walk(["/weird"])

        assert not result.success
        assert isinstance(result.error, UnrecognizedTypeError)
        assert result.failed_path == "/weird"


class TestExclusion:
    """Exclude patterns."""

    def test_excluded_file_skipped(self, source_dir, first_snapshot):
        (source_dir / "keep.txt").write_text("k")
        (source_dir / "skip.tmp").write_text("s")

        walker = TreeWalker(
            str(first_snapshot),
            options=WalkOptions(exclude_patterns=["*.tmp"]),
        )
        result = walker.walk([str(source_dir)])

        assert result.success
        assert _in_snapshot(first_snapshot, source_dir / "keep.txt").exists()
        assert not os.path.lexists(_in_snapshot(first_snapshot, source_dir / "skip.tmp"))
        assert result.stats.excluded == 1

    def test_excluded_directory_prunes_subtree(self, source_dir, first_snapshot):
        cache = source_dir / "cache"
        (cache / "inner").mkdir(parents=True)
        (cache / "inner" / "blob").write_text("b")

        walker = TreeWalker(
            str(first_snapshot),
            options=WalkOptions(exclude_patterns=[str(cache)]),
        )
        result = walker.walk([str(source_dir)])

        assert result.success
        assert not os.path.lexists(_in_snapshot(first_snapshot, cache))
        assert result.stats.excluded == 1

    def test_multiple_patterns(self, source_dir, first_snapshot):
        for name in ("a.log", "b.tmp", "c.txt"):
            (source_dir / name).write_text(name)

        walker = TreeWalker(
            str(first_snapshot),
            options=WalkOptions(exclude_patterns=["*.log", "*.tmp"]),
        )
        walker.walk([str(source_dir)])

        assert sorted(os.listdir(_in_snapshot(first_snapshot, source_dir))) == ["c.txt"]

    def test_relative_source_matched_as_absolute(self, source_dir, first_snapshot, monkeypatch):
        (source_dir / "skip.me").write_text("x")
        monkeypatch.chdir(source_dir.parent)

        walker = TreeWalker(
            str(first_snapshot),
            options=WalkOptions(exclude_patterns=[str(source_dir / "skip.me")]),
        )
        result = walker.walk(["source"])

        assert result.success
        assert not os.path.lexists(first_snapshot / "source" / "skip.me")
        assert (first_snapshot / "source").is_dir()

    def test_excluded_root_creates_nothing(self, source_dir, first_snapshot):
        walker = TreeWalker(
            str(first_snapshot),
            options=WalkOptions(exclude_patterns=[str(source_dir)]),
        )

        assert walker.walk([str(source_dir)]).success
        assert os.listdir(first_snapshot) == []


class TestFailures:
    """First failure aborts the remaining work."""

    def test_missing_source_fails(self, tmp_path, first_snapshot):
        result = TreeWalker(str(first_snapshot)).walk([str(tmp_path / "missing")])

        assert not result.success
        assert result.failed_path == str(tmp_path / "missing")

    def test_failure_stops_later_roots(self, tmp_path, first_snapshot):
        first = tmp_path / "first"
        first.mkdir()
        (first / "bad").write_text("x")
        second = tmp_path / "second"
        second.mkdir()
        (second / "good").write_text("y")

        with patch("isnapshot.walker.copy_file", side_effect=CopyError("incomplete copy of file bad", str(first / "bad"))):
            result = TreeWalker(str(first_snapshot)).walk([str(first), str(second)])

        assert not result.success
        assert isinstance(result.error, CopyError)
        assert result.failed_path == str(first / "bad")
        assert not _in_snapshot(first_snapshot, second).exists()

    def test_failure_logged_with_code(self, tmp_path, first_snapshot, caplog):
        with caplog.at_level("ERROR", logger="isnapshot"):
            TreeWalker(str(first_snapshot)).walk([str(tmp_path / "missing")])

        assert "[E1001]" in caplog.text

    def test_completed_entries_left_in_place(self, source_dir, first_snapshot):
        (source_dir / "a").write_text("a")
        (source_dir / "b").write_text("b")
        real_status = capture_status

        def failing_status(path):
            if path.endswith("/b"):
                raise StatError(f"could not stat file {path}", path)
            return real_status(path)

        with patch("isnapshot.walker.capture_status", side_effect=failing_status):
            result = TreeWalker(str(first_snapshot)).walk([str(source_dir)])

        assert not result.success
        assert result.failed_path.endswith("/b")
        # Directory creation happened before the failure
        assert _in_snapshot(first_snapshot, source_dir).is_dir()

    def test_unexpected_os_error_wrapped(self, source_dir, first_snapshot):
        (source_dir / "f").write_text("x")

        with patch("isnapshot.walker.replicate_metadata", side_effect=OSError(28, "No space left on device")):
            result = TreeWalker(str(first_snapshot)).walk([str(source_dir / "f")])

        assert not result.success
        assert result.error.code.value == "E0001"
        assert "No space left on device" in str(result.error)
