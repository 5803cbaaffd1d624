"""Notification and calendar sinks.

The Phase State Machine and the Tenancy Router hand ``EngineEvent``s to
sinks after their writes have landed. Dispatch is fire-and-forget:
failures are warned but never roll back a track mutation.

Built-in backends:
- WebhookSink: POST JSON to a URL (stdlib only)
- LoggingSink: write events to the ``trackflow.events`` logger
- MemorySink: collect events in a list (tests, embedding)

Custom sinks just need a ``send(event: EngineEvent) -> None`` method.
"""

from __future__ import annotations

import json
import logging
import urllib.request
import warnings
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from trackflow.models import EngineEvent, Track

event_logger = logging.getLogger("trackflow.events")


class NotifierWarning(UserWarning):
    """Emitted when a notification sink fails (non-fatal)."""


@runtime_checkable
class NotificationSink(Protocol):
    """Protocol for notification/calendar sinks."""

    def send(self, event: EngineEvent) -> None:
        """Deliver one engine event."""
        ...


class WebhookSink:
    """POST engine events as JSON to a webhook URL.

    Uses stdlib urllib.request -- no extra dependencies required.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

    def send(self, event: EngineEvent) -> None:
        envelope = {
            "event": event.model_dump(mode="json"),
            "sent_at": datetime.now(tz=UTC).isoformat(),
        }
        body = json.dumps(envelope, sort_keys=True).encode("utf-8")

        req = urllib.request.Request(
            self._url,
            data=body,
            headers={
                "Content-Type": "application/json",
                **self._headers,
            },
            method="POST",
        )
        urllib.request.urlopen(req, timeout=self._timeout)  # noqa: S310


class LoggingSink:
    """Write each event as one structured log line."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def send(self, event: EngineEvent) -> None:
        event_logger.log(
            self._level,
            "%s %s",
            event.type,
            json.dumps(event.model_dump(mode="json"), sort_keys=True),
        )


class MemorySink:
    """Keep every event in memory."""

    def __init__(self) -> None:
        self.events: list[EngineEvent] = []

    def send(self, event: EngineEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[EngineEvent]:
        return [e for e in self.events if e.type == event_type]


def dispatch_events(sinks: list[NotificationSink], event: EngineEvent) -> None:
    """Fire-and-forget event dispatch."""
    for sink in sinks:
        try:
            sink.send(event)
        except Exception as exc:
            warnings.warn(
                f"Notification sink {type(sink).__name__} failed: {exc}",
                NotifierWarning,
                stacklevel=2,
            )


def emit_track_event(
    sinks: list[NotificationSink],
    event_type: str,
    track: Track,
    data: dict[str, Any],
    occurred_at: datetime,
) -> None:
    """Dispatch an event about *track* in its owner's scope."""
    if not sinks:
        return
    event = EngineEvent(
        type=event_type,
        track_id=track.id,
        scope=track.owner_scope,
        occurred_at=occurred_at,
        data=data,
    )
    dispatch_events(sinks, event)


def build_sinks(config: dict[str, Any]) -> list[NotificationSink]:
    """Build sink instances from a configuration dict.

    Supported keys:
    - webhook_url: URL for WebhookSink
    - webhook_headers: optional headers dict
    - webhook_timeout: optional timeout (default 10.0)
    - log_events: true to add a LoggingSink
    """
    sinks: list[NotificationSink] = []

    if config.get("webhook_url") is not None:
        sinks.append(
            WebhookSink(
                url=config["webhook_url"],
                headers=config.get("webhook_headers"),
                timeout=config.get("webhook_timeout", 10.0),
            ),
        )

    if config.get("log_events"):
        sinks.append(LoggingSink())

    return sinks
