"""Chat notifications for Retrobot.

Retrobot posts a single message to a Slack-compatible incoming webhook on the day of a
retro. The orchestrator only depends on the small `Notifier` protocol below:

- `SlackNotifier`: posts the JSON payload with `requests`. Any transport error or HTTP
  status >= 400 raises `NotificationError`; nothing is retried.
- `DryRunNotifier`: logs the message it would have sent and returns status `0`.

Payload
`SlackMessage.to_payload()` produces the incoming-webhook body:
`{"username": ..., "text": ..., "icon_emoji": ..., "link_names": 1}`. `link_names=1`
makes Slack turn `@handle` mentions in the text into real mentions.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from .defaults import DEFAULT_NOTIFICATION_EMOJI, DEFAULT_NOTIFICATION_USERNAME


class NotificationError(RuntimeError):
    """Posting a notification failed."""


@dataclass(frozen=True)
class SlackMessage:
    text: str
    username: str = DEFAULT_NOTIFICATION_USERNAME
    icon_emoji: str = DEFAULT_NOTIFICATION_EMOJI
    link_names: int = 1

    def to_payload(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "text": self.text,
            "icon_emoji": self.icon_emoji,
            "link_names": self.link_names,
        }


class Notifier(Protocol):
    def post(self, url: str, message: SlackMessage) -> int: ...


class SlackNotifier:
    def __init__(self, *, timeout: float = 30.0, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()

    def post(self, url: str, message: SlackMessage) -> int:
        try:
            resp = self.session.post(url, json=message.to_payload(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise NotificationError(f"Notification failed: {exc}") from exc
        if resp.status_code >= 400:
            raise NotificationError(f"Notification failed with status {resp.status_code}: {resp.text}")
        print(f"[retrobot] notification sent: {resp.status_code} {resp.reason}", file=sys.stderr)
        return resp.status_code


class DryRunNotifier:
    """No-op notifier for `--dry-run`."""

    def post(self, url: str, message: SlackMessage) -> int:
        _ = url
        print(f"[retrobot] dry-run: would send notification {message.text!r}", file=sys.stderr)
        return 0
