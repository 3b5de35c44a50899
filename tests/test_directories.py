"""Tests for make_dirs."""

import pytest

from isnapshot.directories import make_dirs
from isnapshot.errors import CreationError


class TestMakeDirs:
    """Tests for recursive directory creation."""

    def test_creates_missing_ancestors_parents_first(self, tmp_path):
        target = tmp_path / "a" / "b" / "c"
        seen = []

        created = make_dirs(str(target), on_create=seen.append)

        assert target.is_dir()
        expected = [str(tmp_path / "a"), str(tmp_path / "a" / "b"), str(target)]
        assert created == expected
        assert seen == expected

    def test_idempotent(self, tmp_path):
        target = tmp_path / "a" / "b"
        make_dirs(str(target))

        assert make_dirs(str(target)) == []
        assert target.is_dir()

    def test_existing_directory_left_alone(self, tmp_path):
        seen = []
        assert make_dirs(str(tmp_path), on_create=seen.append) == []
        assert seen == []

    def test_trailing_separator(self, tmp_path):
        target = tmp_path / "x" / "y"

        make_dirs(str(target) + "/")

        assert target.is_dir()

    def test_mode_applied_under_umask(self, tmp_path, current_umask):
        target = tmp_path / "private"

        make_dirs(str(target), mode=0o700)

        assert (target.stat().st_mode & 0o777) == 0o700 & ~current_umask

    def test_path_is_a_file(self, tmp_path):
        target = tmp_path / "file"
        target.write_text("x")

        with pytest.raises(CreationError, match="could not create dir"):
            make_dirs(str(target))

    def test_ancestor_is_a_file(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(CreationError) as exc_info:
            make_dirs(str(blocker / "sub" / "dir"))
        assert exc_info.value.path is not None

    def test_logs_each_directory(self, tmp_path, caplog):
        target = tmp_path / "one" / "two"

        with caplog.at_level("INFO", logger="isnapshot"):
            make_dirs(str(target))

        assert f"mkdir {tmp_path / 'one'}" in caplog.text
        assert f"mkdir {target}" in caplog.text
