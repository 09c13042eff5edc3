"""Background loading of messages about the running version."""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Protocol

DEFAULT_TIMEOUT = 900


class MessagesClient(Protocol):
    def get_version_message(self, cli_version: str, timeout: int) -> Any: ...


@dataclass
class VersionMessage:
    cli_version: str = ""
    message_text: str = ""
    message_color: str = ""


def _to_version_message(message: Any) -> VersionMessage | None:
    if message is None:
        return None
    return VersionMessage(
        cli_version=message.cli_version,
        message_text=message.message_text,
        message_color=message.message_color,
    )


class Messager:
    """Fetches version messages without blocking the caller."""

    def __init__(self, messages_client: MessagesClient, default_timeout: int = DEFAULT_TIMEOUT) -> None:
        self.messages_client = messages_client
        self.default_timeout = default_timeout

    def load_version_messages(self, cli_version: str) -> Future:
        """Start fetching the message for *cli_version*.

        The returned future resolves to a VersionMessage, or to None when there
        is no message or the request failed.
        """
        future: Future = Future()

        def fetch() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                message = self.messages_client.get_version_message(cli_version, self.default_timeout)
            except Exception:
                message = None
            future.set_result(_to_version_message(message))

        threading.Thread(target=fetch, daemon=True).start()
        return future