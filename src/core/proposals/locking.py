from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from src.core.proposals.errors import ProposalConcurrencyError


class ProposalLockRegistry:
    """Per-proposal exclusive locks with a bounded wait.

    Locks are reference counted and dropped once no caller holds or waits on
    them, so the registry does not grow with the number of proposals.
    """

    def __init__(self, *, timeout_seconds: float) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._timeout_seconds = timeout_seconds
        self._guard = Lock()
        self._locks: dict[int, Lock] = {}
        self._waiters: dict[int, int] = {}

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @contextmanager
    def hold(self, proposal_id: int) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(proposal_id, Lock())
            self._waiters[proposal_id] = self._waiters.get(proposal_id, 0) + 1
        acquired = lock.acquire(timeout=self._timeout_seconds)
        try:
            if not acquired:
                raise ProposalConcurrencyError(
                    f"PROPOSAL_LOCK_TIMEOUT: proposal {proposal_id} is busy, retry"
                )
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                remaining = self._waiters[proposal_id] - 1
                if remaining:
                    self._waiters[proposal_id] = remaining
                else:
                    del self._waiters[proposal_id]
                    del self._locks[proposal_id]

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)
