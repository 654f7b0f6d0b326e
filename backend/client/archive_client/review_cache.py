"""
Optimistic review state for a steward's client.

Two layers per item: the last state the server confirmed, and at most one
pending overlay for the action in flight. The overlay is dropped on the
server's answer, replaced by the confirmed state on success and simply
discarded on failure, so a rejected action never leaves an applied-looking
state behind.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from archive_client.api import ApiClient
from archive_client.errors import ApiError

log = logging.getLogger("archive_client.review_cache")

# where an action would land if the server accepts it
_EXPECTED_STATUS = {
    "submit": "submitted_for_review",
    "approve": "approved",
    "reject": "rejected",
    "reset_to_pending": "submitted_for_review",
}


class ReviewCache:
    def __init__(self):
        self._confirmed: Dict[str, Dict[str, Any]] = {}
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, item: Dict[str, Any]) -> None:
        with self._lock:
            self._confirmed[item["id"]] = dict(item)

    def view(self, item_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            confirmed = self._confirmed.get(item_id)
            pending = self._pending.get(item_id)
        if confirmed is None:
            return None
        if pending is None:
            return dict(confirmed)
        return {**confirmed, **pending}

    def confirmed(self, item_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._confirmed.get(item_id)
        return dict(item) if item else None

    def apply_pending(self, item_id: str, action: str) -> bool:
        """False when another action on the same item is already in flight."""
        with self._lock:
            if item_id in self._pending:
                return False
            self._pending[item_id] = {"status": _EXPECTED_STATUS[action]}
            return True

    def confirm(self, item: Dict[str, Any]) -> None:
        with self._lock:
            self._confirmed[item["id"]] = dict(item)
            self._pending.pop(item["id"], None)

    def rollback(self, item_id: str) -> None:
        with self._lock:
            self._pending.pop(item_id, None)

    def is_processing(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._pending


class ReviewSession:
    """A steward's review actions, applied optimistically through a ReviewCache."""

    def __init__(self, api: ApiClient, actor_id: str, cache: Optional[ReviewCache] = None):
        self.api = api
        self.actor_id = actor_id
        self.cache = cache or ReviewCache()

    def refresh(self, **filters: Any) -> Dict[str, Any]:
        page = self.api.list_queue(self.actor_id, **filters)
        for item in page["items"]:
            self.cache.load(item)
        return page

    def _act(self, item_id: str, action: str, note: Optional[str] = None) -> Dict[str, Any]:
        if not self.cache.apply_pending(item_id, action):
            raise ApiError("invalid_status", "Another action on this item is still in progress.")
        try:
            answer = self.api.decide(self.actor_id, item_id, action, note)
        except Exception:
            self.cache.rollback(item_id)
            log.info("%s on %s failed; optimistic state rolled back", action, item_id)
            raise
        self.cache.confirm(answer["item"])
        return answer

    def submit(self, item_id: str) -> Dict[str, Any]:
        return self._act(item_id, "submit")

    def approve(self, item_id: str, note: Optional[str] = None) -> Dict[str, Any]:
        return self._act(item_id, "approve", note)

    def reject(self, item_id: str, note: Optional[str] = None) -> Dict[str, Any]:
        return self._act(item_id, "reject", note)

    def reset(self, item_id: str, note: Optional[str] = None) -> Dict[str, Any]:
        return self._act(item_id, "reset_to_pending", note)

    def is_processing(self, item_id: str) -> bool:
        return self.cache.is_processing(item_id)
