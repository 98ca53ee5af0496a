import os
import subprocess

import pytest

from clippyd.pidfile import AlreadyRunningError, PidLock


def dead_pid() -> int:
    process = subprocess.Popen(["true"])
    process.wait()
    return process.pid


def test_acquire_writes_own_pid(tmp_path):
    lock = PidLock(tmp_path / "run" / "clippy.pid")
    lock.acquire()

    assert lock.read_pid() == os.getpid()
    lock.release()
    assert not lock.path.exists()


def test_live_pid_blocks_second_instance(tmp_path):
    """A marker naming another live process means a daemon is already running."""
    path = tmp_path / "clippy.pid"
    other = subprocess.Popen(["sleep", "5"])
    try:
        path.write_text(str(other.pid))
        with pytest.raises(AlreadyRunningError) as excinfo:
            PidLock(path).acquire()
        assert excinfo.value.pid == other.pid
        assert path.read_text() == str(other.pid)
    finally:
        other.kill()
        other.wait()


@pytest.mark.parametrize("content", ["garbage", "", "-1"])
def test_unusable_marker_is_replaced(tmp_path, content):
    path = tmp_path / "clippy.pid"
    path.write_text(content)

    with PidLock(path) as lock:
        assert lock.read_pid() == os.getpid()
    assert not path.exists()


def test_stale_marker_is_replaced(tmp_path):
    path = tmp_path / "clippy.pid"
    path.write_text(str(dead_pid()))

    lock = PidLock(path)
    lock.acquire()

    assert lock.read_pid() == os.getpid()
    lock.release()


def test_release_leaves_foreign_marker(tmp_path):
    path = tmp_path / "clippy.pid"
    path.write_text("1")

    PidLock(path).release()

    assert path.exists()
