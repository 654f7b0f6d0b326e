"""
Fire-and-forget notification sink.

Delivery itself (email, in-app) lives outside this service. dispatch() is
called after a state change has committed; a failing notifier is logged and
never retried, and it never reaches the caller.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

log = logging.getLogger("archive_api.notifications")


class Notifier(Protocol):
    def send(self, recipient: str, event_kind: str, context: Mapping[str, Any]) -> None:
        ...


class LogNotifier:
    def send(self, recipient: str, event_kind: str, context: Mapping[str, Any]) -> None:
        log.info("notify recipient=%s event=%s context=%s", recipient, event_kind, dict(context))


def dispatch(notifier: Notifier | None, recipient: str | None, event_kind: str, context: Mapping[str, Any]) -> None:
    """None means the process notifier (see use_notifier)."""
    if not recipient:
        return
    notifier = notifier if notifier is not None else _default
    try:
        notifier.send(recipient, event_kind, context)
    except Exception:
        log.exception("Notification %s to %s failed; state change stands", event_kind, recipient)


_default: Notifier = LogNotifier()


def get_notifier() -> Notifier:
    return _default


def use_notifier(notifier: Notifier | None) -> None:
    global _default
    _default = notifier if notifier is not None else LogNotifier()
