"""
Background mirror refresher.

Re-runs list() for every entity store on a fixed interval so the local
mirror tracks the remote while the operator is idle. Each pass goes through
the normal store path, which means a pass during an outage is a cheap
mirror read and a pass after recovery overwrites the mirror with remote
truth.
"""

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional

from fleetdesk.config import config
from fleetdesk.store.entity_store import EntityStore

logger = logging.getLogger(__name__)


class MirrorRefresher:
    """
    Periodically refreshes the local mirror from the remote.

    Can run as a background thread (start_background) or be driven
    manually (refresh_once), which is what tests do.
    """

    def __init__(self, stores: Iterable[EntityStore], interval: Optional[float] = None):
        self.stores: List[EntityStore] = list(stores)
        self.interval = interval or config.store.refresh_interval

        # State tracking
        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_refresh_time: float = 0
        self._refresh_count: int = 0
        self._error_count: int = 0

        self._on_refresh_callbacks: List[Callable[[int], None]] = []

    def add_refresh_callback(self, callback: Callable[[int], None]) -> None:
        """
        Register callback to be invoked after each refresh pass.

        Callback receives the number of records seen across all stores.
        """
        self._on_refresh_callbacks.append(callback)

    def refresh_once(self) -> int:
        """
        Execute one refresh pass.

        Returns the total record count, or -1 when any store failed.
        """
        total = 0
        failed = False
        for store in self.stores:
            try:
                total += len(store.list())
            except Exception as e:
                failed = True
                self._error_count += 1
                logger.error(f'Refresh of {store.entity.name} failed: {e}')

        self._last_refresh_time = time.time()
        self._refresh_count += 1
        logger.debug(f'Refresh pass {self._refresh_count}: {total} records')

        for callback in self._on_refresh_callbacks:
            try:
                callback(total)
            except Exception as e:
                logger.error(f'Refresh callback error: {e}')

        return -1 if failed else total

    def run_continuous(self, interval: Optional[float] = None) -> None:
        """
        Run the refresh loop until stop() is called.

        This method blocks - use start_background() for non-blocking.
        """
        interval = interval or self.interval
        self._running = True
        self._stop_event.clear()

        logger.info(f'Starting mirror refresh (interval={interval}s)')

        while self._running:
            self.refresh_once()
            if self._stop_event.wait(interval):
                break

        self._running = False
        logger.info('Mirror refresh stopped')

    def start_background(self, interval: Optional[float] = None) -> None:
        """Start refreshing in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Mirror refresh already running')
            return

        self._thread = threading.Thread(
            target=self.run_continuous,
            args=(interval,),
            daemon=True,
            name='mirror-refresher',
        )
        self._thread.start()
        logger.info('Background mirror refresh started')

    def stop(self) -> None:
        """Stop background refresh."""
        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    @property
    def stats(self) -> dict:
        """Get refresher statistics."""
        return {
            'refresh_count': self._refresh_count,
            'error_count': self._error_count,
            'last_refresh_time': self._last_refresh_time,
            'running': self._running,
            'interval': self.interval,
        }
