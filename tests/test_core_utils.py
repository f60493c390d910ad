# tests/test_core_utils.py

import os
import stat
from unittest.mock import patch

import pytest

from backend.core.utils import write_atomic
from plugins.core_archive import SceneArchiver

pytestmark = pytest.mark.skipif(os.name == "nt", reason="POSIX 权限位")


@pytest.fixture
def umask_022():
    previous = os.umask(0o022)
    yield
    os.umask(previous)


def _mode(path):
    return stat.S_IMODE(path.stat().st_mode)


def test_new_file_follows_umask(tmp_path, umask_022):
    target = tmp_path / "db.ultra"
    write_atomic(target, b"{}")

    assert target.read_bytes() == b"{}"
    assert _mode(target) == 0o644


def test_existing_file_keeps_its_mode(tmp_path, umask_022):
    target = tmp_path / "db.ultra"
    target.write_bytes(b"old")
    os.chmod(target, 0o640)

    write_atomic(target, b"new")

    assert target.read_bytes() == b"new"
    assert _mode(target) == 0o640


def test_scene_archive_is_readable_by_others(tmp_path, umask_022):
    destination = tmp_path / "level.ultra"

    assert SceneArchiver(tmp_path / "Library").save([], destination)

    assert _mode(destination) == 0o644


def test_failed_write_leaves_no_temp_file(tmp_path):
    target = tmp_path / "db.ultra"
    target.write_bytes(b"old")

    with patch("backend.core.utils.os.replace", side_effect=OSError("full")):
        with pytest.raises(OSError):
            write_atomic(target, b"new")

    assert target.read_bytes() == b"old"
    assert [p.name for p in tmp_path.iterdir()] == ["db.ultra"]
