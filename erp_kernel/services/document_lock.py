"""
DocumentLockService -- per-document mutual exclusion for cumulative invariants.

Responsibility:
    Serializes read-validate-write sequences that protect a quantity
    invariant spanning many rows (e.g. total delivered <= quoted).  One
    lock per document key, e.g. ``"quotation:42"``.

Architecture position:
    Kernel > Services -- infrastructure.  No imports from models/.

Invariants enforced:
    - At most one action runs per document key at a time in this process.
      Callers also load the document row with ``SELECT ... FOR UPDATE``, which
      extends the guarantee across processes on PostgreSQL.
    - The lock is always released, including when the action raises.

Failure modes:
    - LockAcquisitionError: the lock was not obtained within the timeout.
      Not retried here; the caller decides.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TypeVar

from erp_kernel.exceptions import LockAcquisitionError
from erp_kernel.logging_config import get_logger

logger = get_logger("services.document_lock")

T = TypeVar("T")

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


class _LockEntry:
    """A lock plus the number of callers holding or waiting for it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class DocumentLockService:
    """In-process registry of one lock per document key.

    An entry exists only while some caller holds or waits for its lock;
    the last one out removes it, so the registry does not grow with the
    number of documents ever touched.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        document_type: str = "quotation",
    ) -> None:
        self._timeout = timeout_seconds
        self._document_type = document_type
        self._locks: dict[str, _LockEntry] = {}
        self._registry_lock = threading.Lock()

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def active_keys(self) -> frozenset[str]:
        """Keys currently held or awaited."""
        with self._registry_lock:
            return frozenset(self._locks)

    def lock_key(self, document_id: int) -> str:
        return f"{self._document_type}:{document_id}"

    def execute_with_lock(self, document_id: int, action: Callable[[], T]) -> T:
        """Run ``action`` while holding the lock for ``document_id``."""
        key = self.lock_key(document_id)
        entry = self._checkout(key)
        try:
            if not entry.lock.acquire(timeout=self._timeout):
                logger.warning(
                    "document_lock_timeout",
                    extra={"lock_key": key, "timeout_seconds": self._timeout},
                )
                raise LockAcquisitionError(key, self._timeout)

            logger.debug("document_lock_acquired", extra={"lock_key": key})
            try:
                return action()
            finally:
                entry.lock.release()
                logger.debug("document_lock_released", extra={"lock_key": key})
        finally:
            self._checkin(key, entry)

    def _checkout(self, key: str) -> _LockEntry:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _LockEntry()
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _LockEntry) -> None:
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]
