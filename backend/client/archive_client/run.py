"""Client worker entrypoint.

Watches connectivity and drains the offline queue whenever the API comes
back. Run with: python -m archive_client.run
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from archive_client.api import ApiClient
from archive_client.config import get_client_settings
from archive_client.drain import DrainReport, QueueDrainer, make_deliverer
from archive_client.errors import ApiError, TransientNetworkError
from archive_client.logging_config import setup_logging
from archive_client.offline_queue import OfflineQueue

log = logging.getLogger("archive_client.run")


class ConnectivityMonitor:
    """Polls the API health endpoint; an offline -> online edge triggers a drain."""

    def __init__(self, probe: Callable[[], bool], drainer: QueueDrainer):
        self._probe = probe
        self.drainer = drainer
        self.online: Optional[bool] = None

    def check(self) -> Optional[DrainReport]:
        try:
            now_online = bool(self._probe())
        except (TransientNetworkError, ApiError) as e:
            # a health endpoint that refuses us is no better than one we cannot reach
            log.debug("Health probe failed: %s", e)
            now_online = False

        came_back = now_online and self.online is not True
        if now_online != self.online:
            log.info("Connectivity: %s", "online" if now_online else "offline")
        self.online = now_online

        if came_back:
            return self.drainer.drain()
        return None

    def run(self, poll_seconds: float, stop: threading.Event) -> None:
        while not stop.is_set():
            self.check()
            stop.wait(poll_seconds)


def main() -> None:
    settings = get_client_settings()
    setup_logging(settings.log_level)

    api = ApiClient()
    queue = OfflineQueue(settings.queue_path)
    drainer = QueueDrainer(queue, make_deliverer(api))
    monitor = ConnectivityMonitor(api.ping, drainer)

    log.info("Client worker started (queue=%s, %d waiting)", settings.queue_path, queue.count())
    stop = threading.Event()
    try:
        monitor.run(settings.poll_seconds, stop)
    except KeyboardInterrupt:
        log.info("Client worker stopping")
    finally:
        api.close()


if __name__ == "__main__":
    main()
