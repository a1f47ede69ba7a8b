"""Debounced write-back of the in-memory database to its file."""

import logging
import threading
from typing import Optional

from campus_library.database import Store
from campus_library.errors import StoreError

logger = logging.getLogger(__name__)


class DebouncedSaver:
    """Coalesces bursts of writes into one flush after a quiet period.

    Every ``schedule()`` cancels the pending timer and starts a new one, so the
    flush happens ``delay_ms`` after the last mutation. ``flush_now()`` is the
    synchronous path used at shutdown. Changes stay ``dirty`` until a flush
    succeeds, so a failed timer flush is retried by ``close()``.
    """

    def __init__(self, store: Store, delay_ms: int = 300) -> None:
        self.store = store
        self.delay = delay_ms / 1000.0
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._dirty = False
        self.flush_count = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def schedule(self) -> None:
        with self._lock:
            self._dirty = True
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()
        logger.debug("Save scheduled in %.0f ms", self.delay * 1000)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self._write()
        except StoreError as e:
            logger.error("Error saving database: %s", e)

    def _write(self) -> None:
        # Cleared before the write so a schedule() racing with it stays dirty
        with self._lock:
            self._dirty = False
        try:
            self.store.flush()
        except BaseException:
            with self._lock:
                self._dirty = True
            raise
        self.flush_count += 1

    def flush_now(self) -> None:
        """Cancel any pending timer and write the database synchronously."""
        self.cancel()
        self._write()

    def close(self) -> None:
        """Write any changes not yet saved, including ones whose timed save failed."""
        if self.dirty:
            self.flush_now()
