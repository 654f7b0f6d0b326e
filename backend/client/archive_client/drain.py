"""
Queue drain: replays queued submissions to the server, oldest first.

Only one pass runs at a time per queue file. A reconnect-triggered drain and
a manual "retry all" that arrive together do not overlap, even from separate
processes; the second caller gets a report flagged as skipped and touches
nothing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from archive_client.api import ApiClient
from archive_client.errors import ApiError, TransientNetworkError
from archive_client.offline_queue import OfflineQueue, QueuedSubmission

log = logging.getLogger("archive_client.drain")

Deliverer = Callable[[QueuedSubmission], Dict[str, Any]]


@dataclass
class DrainReport:
    delivered: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    # left alone because they already used up their automatic retries
    excluded: List[str] = field(default_factory=list)
    skipped: bool = False


def make_deliverer(api: ApiClient) -> Deliverer:
    def deliver(record: QueuedSubmission) -> Dict[str, Any]:
        if record.kind == "contribution":
            return api.create_item(record.actor_id, record.payload)
        return api.send_message(record.actor_id, dict(record.payload, kind=record.kind))

    return deliver


class QueueDrainer:
    def __init__(self, queue: OfflineQueue, deliver: Deliverer):
        self.queue = queue
        self._deliver = deliver
        self._holder: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._holder is not None

    def drain(self, include_exhausted: bool = False) -> DrainReport:
        return self._locked(self.queue.list, include_exhausted, "drain")

    def retry_all(self) -> DrainReport:
        """Manual retry: replays every record, including those past the automatic limit."""
        return self.drain(include_exhausted=True)

    def retry(self, record_id: str) -> DrainReport:
        def one() -> List[QueuedSubmission]:
            record = self.queue.get(record_id)
            return [record] if record else []

        return self._locked(one, True, f"retry of {record_id}")

    def _locked(
        self,
        records: Callable[[], List[QueuedSubmission]],
        include_exhausted: bool,
        what: str,
    ) -> DrainReport:
        holder = self.queue.claim_drain()
        if holder is None:
            log.info("Drain already in progress; skipping %s", what)
            return DrainReport(skipped=True)
        self._holder = holder
        try:
            # read only after the claim, so a pass never sees records another pass delivered
            return self._run(records(), include_exhausted)
        finally:
            self._holder = None
            self.queue.release_drain(holder)

    def _run(self, records: List[QueuedSubmission], include_exhausted: bool) -> DrainReport:
        report = DrainReport()
        for record in records:
            if record.needs_manual_retry and not include_exhausted:
                report.excluded.append(record.id)
                continue

            error = self._attempt(record)
            if error is None:
                self.queue.remove(record.id)
                report.delivered.append(record.id)
            else:
                updated = self.queue.record_failure(record.id, error)
                report.failed.append(record.id)
                if updated is not None and updated.needs_manual_retry:
                    log.warning("Submission %s failed %d times; waiting for manual retry", record.id, updated.retry_count)
            if self._holder is not None:
                self.queue.renew_drain(self._holder)

        if report.delivered or report.failed:
            log.info(
                "Drain finished: %d delivered, %d failed, %d waiting for manual retry",
                len(report.delivered),
                len(report.failed),
                len(report.excluded),
            )
        return report

    def _attempt(self, record: QueuedSubmission) -> Optional[str]:
        try:
            self._deliver(record)
        except TransientNetworkError as e:
            return e.cause
        except ApiError as e:
            # the server refused it; the record stays so the person can see why
            log.info("Submission %s rejected by server: %s", record.id, e.kind)
            return f"{e.kind}: {e.detail}"
        except Exception as e:
            log.warning("Submission %s failed unexpectedly", record.id, exc_info=True)
            return f"{type(e).__name__}: {e}"
        return None
