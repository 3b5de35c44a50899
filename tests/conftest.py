"""Pytest configuration and fixtures for isnapshot tests."""

import logging
import os
import stat
from pathlib import Path

import pytest
from hypothesis import settings, Phase

from isnapshot.logger import LOGGER_NAME

# Configure hypothesis to use fewer examples for faster test runs
# Disable shrinking phase to speed up tests further
settings.register_profile(
    "fast",
    max_examples=5,
    deadline=10000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate]
)
settings.register_profile("ci", max_examples=50, deadline=10000)
settings.register_profile("dev", max_examples=2, deadline=10000)

# Use the fast profile by default
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture(autouse=True)
def cleanup_logger():
    """Drop handlers installed by setup_logging after each test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def current_umask():
    """The process umask, read without changing it."""
    mask = os.umask(0)
    os.umask(mask)
    return mask


@pytest.fixture
def source_dir(tmp_path):
    """An empty source directory."""
    path = tmp_path / "source"
    path.mkdir()
    yield path
    # Read-only directories created by tests must not block cleanup
    for root, dirs, _ in os.walk(path):
        for d in dirs:
            full = Path(root) / d
            if not full.is_symlink():
                full.chmod(full.stat().st_mode | stat.S_IRWXU)


@pytest.fixture
def snapshot_root(tmp_path):
    """Destination directory holding snapshots."""
    path = tmp_path / "backups"
    path.mkdir()
    return path
