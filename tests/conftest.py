import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import pytest

from clippyd.config import DaemonSettings
from clippyd.database import DatabaseSessionGenerator
from clippyd.store import ContentStore


class FakeClipboard:
    """In-memory clipboard backend recording every write and clear."""

    def __init__(self, content: str = "") -> None:
        self.content = content
        self.writes: list[str] = []
        self.clears = 0
        self.fail_reads = False

    def read(self) -> str:
        if self.fail_reads:
            raise RuntimeError("clipboard unavailable")
        return self.content

    def write(self, text: str) -> None:
        self.writes.append(text)
        self.content = text

    def clear(self) -> None:
        self.clears += 1
        self.content = ""


class MemoryKeyVault:
    """Key vault double keeping keys in a dict."""

    def __init__(self, fail_store: bool = False) -> None:
        self.keys: dict[tuple[str, str], bytes] = {}
        self.fail_store = fail_store
        self.stores = 0

    def load(self, service_id: str, account_id: str) -> Optional[bytes]:
        return self.keys.get((service_id, account_id))

    def store(self, service_id: str, account_id: str, key: bytes) -> None:
        from clippyd.crypto import KeyVaultError

        if self.fail_store:
            raise KeyVaultError("vault locked")
        self.stores += 1
        self.keys[(service_id, account_id)] = key


@pytest.fixture(autouse=True)
def clear_clippy_env(monkeypatch):
    """Keep the developer's CLIPPY_* variables out of the tests."""
    for name in ("CLIPPY_HOME", "CLIPPY_LOG_LEVEL", "CLIPPY_CLEANUP_INTERVAL", "CLIPPY_KEY_VAULT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("tests")


@pytest.fixture
def home_dir():
    """Short temporary home; Unix socket paths are limited to ~100 bytes."""
    path = Path(tempfile.mkdtemp(prefix="clippy-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def settings(home_dir: Path) -> DaemonSettings:
    return DaemonSettings(home_dir=home_dir, key_vault="file", cleanup_interval=60.0)


@pytest.fixture
def fake_clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def key_vault() -> MemoryKeyVault:
    return MemoryKeyVault()


@pytest.fixture
def store(tmp_path: Path, logger: logging.Logger):
    """A ContentStore on a fresh database file."""
    content_store = ContentStore(
        DatabaseSessionGenerator(f"sqlite:///{(tmp_path / 'test.db').as_posix()}"),
        logger,
    )
    content_store.open()
    yield content_store
    content_store.close()
