"""Tests for context resolution and logging setup."""

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from tkxr import config
from tkxr.config import (
    find_data_dir,
    get_context_help_message,
    resolve_context,
    resolve_server_url,
)
from tkxr.logging import LOG_FILENAME, setup_logging
from tkxr.notifier import NotificationClient


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path):
    """Isolate from the developer's environment and user config."""
    for name in ("TKXR_DATA_DIR", "TKXR_SERVER_URL", "TKXR_PORT", "TKXR_NO_NOTIFY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "USER_CONFIG_FILE", tmp_path / "user-config" / "config.json")


def init_store(root: Path) -> Path:
    data_dir = root / "tkxr"
    data_dir.mkdir(parents=True)
    (data_dir / "project.yaml").write_text("version: 1.0.0\n")
    return data_dir


def write_user_config(data: dict) -> None:
    config.USER_CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    config.USER_CONFIG_FILE.write_text(json.dumps(data))


class TestDataDirResolution:
    """Tests for locating the data directory."""

    def test_env_wins(self, tmp_path: Path, monkeypatch):
        init_store(tmp_path / "repo")
        monkeypatch.setenv("TKXR_DATA_DIR", str(tmp_path / "elsewhere"))

        context = resolve_context(tmp_path / "repo")

        assert context.config_source == "env"
        assert context.data_dir == (tmp_path / "elsewhere").resolve()
        assert context.project_root == tmp_path.resolve()

    def test_store_in_directory(self, tmp_path: Path):
        data_dir = init_store(tmp_path / "repo")

        context = resolve_context(tmp_path / "repo")

        assert context.config_source == "directory"
        assert context.data_dir == data_dir.resolve()
        assert context.is_initialized()

    def test_store_in_parent(self, tmp_path: Path):
        data_dir = init_store(tmp_path / "repo")
        nested = tmp_path / "repo" / "src" / "pkg"
        nested.mkdir(parents=True)

        context = resolve_context(nested)

        assert context.config_source == "parent"
        assert context.data_dir == data_dir.resolve()
        assert context.project_root == (tmp_path / "repo").resolve()

    def test_default_when_nothing_found(self, tmp_path: Path):
        repo = tmp_path / "fresh"
        repo.mkdir()

        context = resolve_context(repo)

        assert context.config_source == "default"
        assert context.data_dir == repo.resolve() / "tkxr"
        assert not context.is_initialized()

    def test_directory_without_project_file_is_skipped(self, tmp_path: Path):
        init_store(tmp_path / "repo")
        (tmp_path / "repo" / "sub" / "tkxr").mkdir(parents=True)

        assert find_data_dir(tmp_path / "repo" / "sub") == (tmp_path / "repo" / "tkxr").resolve()


class TestServerUrl:
    """Tests for notification target resolution."""

    def test_server_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("TKXR_SERVER_URL", "http://env:1")
        (tmp_path / ".tkxr-server").write_text(
            json.dumps({"host": "localhost", "port": 3001, "url": "http://localhost:3001"})
        )

        assert resolve_server_url(tmp_path) == ("http://localhost:3001", "file")

    def test_server_file_with_port_only(self, tmp_path: Path):
        (tmp_path / ".tkxr-server").write_text(json.dumps({"port": 4000}))
        assert resolve_server_url(tmp_path) == ("http://localhost:4000", "file")

    def test_unreadable_server_file_falls_through(self, tmp_path: Path):
        (tmp_path / ".tkxr-server").write_text("{nope")
        assert resolve_server_url(tmp_path) == ("http://localhost:8080", "default")

    def test_env_url(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("TKXR_SERVER_URL", "http://tickets.internal:9000")
        assert resolve_server_url(tmp_path) == ("http://tickets.internal:9000", "env")

    def test_env_port(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("TKXR_PORT", "5173")
        assert resolve_server_url(tmp_path) == ("http://localhost:5173", "default")


class TestStorageFromContext:
    """Tests for settings applied when building storage."""

    def test_notifier_wired_by_default(self, tmp_path: Path):
        storage = resolve_context(tmp_path).create_storage()

        assert isinstance(storage.notifier, NotificationClient)
        assert storage.notifier.server_url == "http://localhost:8080"
        assert storage.data_dir == tmp_path.resolve() / "tkxr"

    def test_no_notify_env(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("TKXR_NO_NOTIFY", "1")
        context = resolve_context(tmp_path)

        assert context.notify is False
        assert context.create_storage().notifier is None

    def test_user_config(self, tmp_path: Path):
        write_user_config({"notify": False, "chunk_size": 5})

        context = resolve_context(tmp_path)

        assert context.notify is False
        assert context.create_storage().chunk_size == 5

    def test_bad_user_config_is_ignored(self, tmp_path: Path):
        config.USER_CONFIG_FILE.parent.mkdir(parents=True)
        config.USER_CONFIG_FILE.write_text("not json")

        context = resolve_context(tmp_path)

        assert context.notify is True
        assert context.chunk_size is None

    def test_help_message(self, tmp_path: Path):
        message = get_context_help_message(resolve_context(tmp_path))

        assert "Data dir:" in message
        assert "created on first write" in message
        assert "Notifications: on" in message


class TestLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def reset_handlers(self):
        yield
        logger = logging.getLogger("tkxr")
        for handler in logger.handlers[:]:
            if isinstance(handler, RotatingFileHandler):
                logger.removeHandler(handler)
                handler.close()

    def test_writes_json_lines(self, tmp_path: Path):
        logger = setup_logging(tmp_path / "tkxr")
        logging.getLogger("tkxr.store.storage").info("Created task %s", "tas-1")
        for handler in logger.handlers:
            handler.flush()

        lines = (tmp_path / "tkxr" / LOG_FILENAME).read_text().splitlines()
        entry = json.loads(lines[-1])
        assert entry["msg"] == "Created task tas-1"
        assert entry["logger"] == "tkxr.store.storage"
        assert entry["level"] == "INFO"

    def test_idempotent(self, tmp_path: Path):
        setup_logging(tmp_path / "tkxr")
        logger = setup_logging(tmp_path / "tkxr")

        handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1

    def test_new_directory_replaces_handler(self, tmp_path: Path):
        setup_logging(tmp_path / "one")
        logger = setup_logging(tmp_path / "two")

        handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
        assert handlers[0].baseFilename.endswith(str(Path("two") / LOG_FILENAME))
