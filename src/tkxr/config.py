"""Locating a tkxr store and the settings that go with it.

## Data directory

Tickets live inside the repository they track, in a ``tkxr/`` directory
marked by ``tkxr/project.yaml`` once anything has been written.

### Resolution Order

1. ``TKXR_DATA_DIR`` environment variable
2. Nearest ``tkxr/project.yaml`` in the start directory or its parents
3. ``<start directory>/tkxr`` (created on first write)

## Server URL (change notifications)

1. ``.tkxr-server`` in the project root, written by a running server:

```json
{"host": "localhost", "port": 8080, "url": "http://localhost:8080"}
```

2. ``TKXR_SERVER_URL`` environment variable
3. ``http://localhost:${TKXR_PORT:-8080}``

## User defaults

``~/.config/tkxr/config.json`` (platform dependent) may set ``notify``
(bool) and ``chunk_size`` (int). ``TKXR_NO_NOTIFY=1`` turns notifications off.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir

from .notifier import DEFAULT_TIMEOUT, NotificationClient
from .store import FileStorage

logger = logging.getLogger(__name__)

# User-level config location
USER_CONFIG_DIR = Path(user_config_dir("tkxr"))
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.json"

DATA_DIR_NAME = "tkxr"
PROJECT_FILE = "project.yaml"
SERVER_CONFIG_FILE = ".tkxr-server"
DEFAULT_PORT = 8080


@dataclass
class TkxrContext:
    """Resolved store location and settings for a directory."""

    project_root: Path
    data_dir: Path
    config_source: str = "default"  # "env", "directory", "parent", "default"

    server_url: str = f"http://localhost:{DEFAULT_PORT}"
    server_source: str = "default"  # "file", "env", "default"
    notify: bool = True
    chunk_size: Optional[int] = None

    def is_initialized(self) -> bool:
        """Check if the store has been written to at least once."""
        return (self.data_dir / PROJECT_FILE).exists()

    def create_storage(self) -> FileStorage:
        """Build the storage for this context, wired to the change notifier if enabled."""
        notifier = NotificationClient(self.server_url, DEFAULT_TIMEOUT) if self.notify else None
        return FileStorage(
            self.data_dir,
            chunk_size=self.chunk_size,
            notifier=notifier,
            project_name=self.project_root.name,
        )


def find_data_dir(start_path: Optional[Path] = None) -> Optional[Path]:
    """Find the nearest tkxr/ directory holding project.yaml by walking up the tree.

    Args:
        start_path: Directory to start searching from (default: cwd)

    Returns:
        Path to the data directory if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    current = Path(start_path).resolve()
    while True:
        candidate = current / DATA_DIR_NAME
        if (candidate / PROJECT_FILE).exists():
            return candidate
        if current == current.parent:
            return None
        current = current.parent


def load_user_config() -> dict:
    """Load user-level defaults, or an empty dict when absent or unreadable."""
    if not USER_CONFIG_FILE.exists():
        return {}
    try:
        with open(USER_CONFIG_FILE) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable user config %s: %s", USER_CONFIG_FILE, e)
        return {}
    return data if isinstance(data, dict) else {}


def load_server_config(project_root: Path) -> Optional[str]:
    """Read the server URL from .tkxr-server, if a server has left one."""
    config_path = project_root / SERVER_CONFIG_FILE
    if not config_path.exists():
        return None
    try:
        with open(config_path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Could not read server config %s: %s", config_path, e)
        return None
    if not isinstance(data, dict):
        return None
    return data.get("url") or f"http://localhost:{data.get('port') or DEFAULT_PORT}"


def resolve_server_url(project_root: Path) -> tuple[str, str]:
    """Return (url, source) for the notification target."""
    url = load_server_config(project_root)
    if url:
        return url, "file"
    if os.environ.get("TKXR_SERVER_URL"):
        return os.environ["TKXR_SERVER_URL"], "env"
    port = os.environ.get("TKXR_PORT") or DEFAULT_PORT
    return f"http://localhost:{port}", "default"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def resolve_context(path: Optional[Path] = None) -> TkxrContext:
    """Resolve the tkxr context for a path.

    Args:
        path: Directory to resolve context for (default: cwd)

    Returns:
        TkxrContext with resolved configuration
    """
    target_dir = Path(path).resolve() if path else Path.cwd().resolve()

    env_dir = os.environ.get("TKXR_DATA_DIR")
    if env_dir:
        data_dir = Path(env_dir).expanduser().resolve()
        source = "env"
    else:
        found = find_data_dir(target_dir)
        if found is not None:
            data_dir = found
            source = "directory" if found.parent == target_dir else "parent"
        else:
            data_dir = target_dir / DATA_DIR_NAME
            source = "default"

    project_root = data_dir.parent
    context = TkxrContext(project_root=project_root, data_dir=data_dir, config_source=source)
    context.server_url, context.server_source = resolve_server_url(project_root)

    user_config = load_user_config()
    context.notify = bool(user_config.get("notify", True)) and not _env_flag("TKXR_NO_NOTIFY")
    chunk_size = user_config.get("chunk_size")
    if isinstance(chunk_size, int) and chunk_size > 0:
        context.chunk_size = chunk_size

    return context


def get_context_help_message(context: TkxrContext) -> str:
    """Describe where the store is and where notifications go."""
    lines = [f"tkxr context (from {context.config_source}):"]
    lines.append(f"  Data dir: {context.data_dir}")
    if not context.is_initialized():
        lines.append("  Store: empty (created on first write)")
    lines.append(f"  Server: {context.server_url} ({context.server_source})")
    lines.append(f"  Notifications: {'on' if context.notify else 'off'}")
    return "\n".join(lines)
