"""Tests for the infrastructure lock."""

import pytest

from infrabackup.errors import LockTimeout
from infrabackup.lock import InfraLock


class TestInfraLock:
    def test_acquire_and_release(self, tmp_path):
        lock = InfraLock(tmp_path / "x.lock", timeout=0.1)
        with lock:
            assert lock.acquired
        assert not lock.acquired

    def test_second_holder_times_out(self, tmp_path):
        path = tmp_path / "x.lock"
        with InfraLock(path, timeout=0.1):
            with pytest.raises(LockTimeout):
                InfraLock(path, timeout=0.2, poll_interval=0.05).acquire()

    def test_reacquire_after_release(self, tmp_path):
        path = tmp_path / "x.lock"
        with InfraLock(path, timeout=0.1):
            pass
        with InfraLock(path, timeout=0.1) as lock:
            assert lock.acquired

    def test_creates_parent_dir(self, tmp_path):
        path = tmp_path / "nested" / "x.lock"
        with InfraLock(path, timeout=0.1):
            assert path.exists()

    def test_release_is_idempotent(self, tmp_path):
        lock = InfraLock(tmp_path / "x.lock")
        lock.release()
        lock.acquire()
        lock.release()
        lock.release()
        assert not lock.acquired
