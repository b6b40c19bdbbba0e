"""Best-effort change notifications to a running tkxr web server.

The CLI and the server are separate processes sharing one data directory.
After each durable mutation the storage layer can tell the server so it can
refresh connected browsers. The server may well not be running, so every
failure here is logged at debug level and otherwise ignored.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 1.0
NOTIFY_PATH = "/api/cli-notifications"


class ChangeNotifier(Protocol):
    """Receiver of storage change events. Implementations must not raise."""

    def ticket_created(self, ticket: dict) -> None: ...

    def ticket_updated(self, ticket: dict) -> None: ...

    def ticket_deleted(self, ticket_id: str) -> None: ...

    def sprint_created(self, sprint: dict) -> None: ...

    def sprint_updated(self, sprint: dict) -> None: ...

    def user_created(self, user: dict) -> None: ...


class NotificationClient:
    """POSTs change events as JSON to ``<server_url>/api/cli-notifications/<event>``."""

    def __init__(self, server_url: str = DEFAULT_SERVER_URL, timeout: float = DEFAULT_TIMEOUT):
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout

    def _notify(self, event: str, payload: Optional[Any] = None) -> bool:
        """Send one event. Returns True when the server acknowledged it."""
        url = f"{self.server_url}{NOTIFY_PATH}/{event}"
        body = json.dumps(payload, default=str).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(
            url,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                status = getattr(response, "status", 200)
                if status >= 400:
                    logger.debug("Notification %s rejected: HTTP %s", event, status)
                    return False
                return True
        except urllib.error.HTTPError as e:
            logger.debug("Notification %s rejected: HTTP %s", event, e.code)
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as e:
            logger.debug("Server notification %s failed: %s", event, e)
        return False

    def ticket_created(self, ticket: dict) -> None:
        self._notify("ticket-created", ticket)

    def ticket_updated(self, ticket: dict) -> None:
        self._notify("ticket-updated", ticket)

    def ticket_deleted(self, ticket_id: str) -> None:
        self._notify("ticket-deleted", {"id": ticket_id})

    def sprint_created(self, sprint: dict) -> None:
        self._notify("sprint-created", sprint)

    def sprint_updated(self, sprint: dict) -> None:
        self._notify("sprint-updated", sprint)

    def user_created(self, user: dict) -> None:
        self._notify("user-created", user)
