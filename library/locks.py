import contextlib
import logging
import threading

from library.config import settings
from library.exceptions import BookBusyError

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        # Threads holding or waiting on the lock
        self.holders = 0


class BookLocks:
    """One lock per book id, serializing changes to that book's copy counters.

    This covers requests served by the same process. The conditional UPDATEs
    on the counters keep them correct across processes as well. An entry only
    lives while some thread holds or waits on it.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[int, _Entry] = {}

    def _checkout(self, book_id: int) -> _Entry:
        with self._guard:
            entry = self._locks.get(book_id)
            if entry is None:
                entry = self._locks[book_id] = _Entry()
            entry.holders += 1
            return entry

    def _checkin(self, book_id: int, entry: _Entry):
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[book_id]

    def __len__(self):
        with self._guard:
            return len(self._locks)

    @contextlib.contextmanager
    def hold(self, book_id: int):
        entry = self._checkout(book_id)
        try:
            if not entry.lock.acquire(timeout=self.timeout):
                logger.error(f"Timed out waiting for lock on book {book_id}")
                raise BookBusyError(book_id)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(book_id, entry)


book_locks = BookLocks(timeout=settings.book_lock_timeout)
