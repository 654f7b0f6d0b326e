"""
Client-side intake: preflight, send, or capture for later.

Contributions and contact/join messages that fail for transient network
reasons are written to the offline queue and acknowledged softly. Any other
failure reaches the caller unchanged. Review decisions never come through
here and are never queued.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from archive_client.api import ApiClient
from archive_client.config import ClientSettings, get_client_settings
from archive_client.errors import ApiError, TransientNetworkError
from archive_client.offline_queue import OfflineQueue, QueuedSubmission

log = logging.getLogger("archive_client.submissions")

SAVED_OFFLINE = "Saved on this device. It will be sent automatically when you are back online."

# Takes an image payload and returns a smaller one, or None if it cannot.
ShrinkImage = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


@dataclass(frozen=True)
class SubmissionOutcome:
    queued: bool
    message: str
    result: Optional[Dict[str, Any]] = None
    record: Optional[QueuedSubmission] = None


def _mb(n_bytes: int) -> str:
    return f"{n_bytes / (1024 * 1024):.1f}MB"


class SubmissionService:
    def __init__(
        self,
        api: ApiClient,
        queue: OfflineQueue,
        settings: Optional[ClientSettings] = None,
        shrink_image: Optional[ShrinkImage] = None,
    ):
        self.api = api
        self.queue = queue
        self.settings = settings or get_client_settings()
        self._shrink_image = shrink_image

    def _ceiling(self, item_type: str) -> Optional[int]:
        if item_type == "video":
            return self.settings.max_video_bytes
        if item_type in ("image", "document"):
            return self.settings.max_image_doc_bytes
        return None

    def preflight(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Check the file size before anything is sent. An oversized image gets a
        single compression attempt; anything still too large is refused.
        """
        item_type = data.get("type") or ""
        ceiling = self._ceiling(item_type)
        payload = dict(data.get("payload") or {})
        if ceiling is None:
            return data

        size = int(payload.get("size_bytes") or 0)
        if size <= ceiling:
            return data

        if item_type == "image" and self._shrink_image is not None:
            shrunk = self._shrink_image(payload)
            if shrunk is not None and int(shrunk.get("size_bytes") or 0) <= ceiling:
                log.info("Image compressed from %s to %s", _mb(size), _mb(int(shrunk["size_bytes"])))
                return dict(data, payload=shrunk)
            if shrunk is not None:
                size = int(shrunk.get("size_bytes") or size)

        raise ApiError(
            "size_exceeded",
            f"File too large ({_mb(size)}). Maximum size is {_mb(ceiling)}.",
        )

    def submit_contribution(self, actor_id: str, data: Dict[str, Any]) -> SubmissionOutcome:
        data = self.preflight(data)
        try:
            created = self.api.create_item(actor_id, data)
        except TransientNetworkError as e:
            record = self.queue.enqueue("contribution", data, actor_id=actor_id)
            log.info("Contribution captured offline as %s (%s)", record.id, e.cause)
            return SubmissionOutcome(queued=True, message=SAVED_OFFLINE, record=record)
        return SubmissionOutcome(queued=False, message="Submitted for review.", result=created)

    def send_message(self, actor_id: Optional[str], kind: str, data: Dict[str, Any]) -> SubmissionOutcome:
        body = dict(data, kind=kind)
        try:
            sent = self.api.send_message(actor_id, body)
        except TransientNetworkError as e:
            record = self.queue.enqueue(kind, data, actor_id=actor_id)
            log.info("%s message captured offline as %s (%s)", kind, record.id, e.cause)
            return SubmissionOutcome(queued=True, message=SAVED_OFFLINE, record=record)
        return SubmissionOutcome(queued=False, message="Message sent.", result=sent)
