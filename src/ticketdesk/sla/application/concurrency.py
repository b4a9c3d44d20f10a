"""
Concurrency Primitives
======================

Per-ticket mutation locks and the ticket number sequence.

Every read-modify-write of a ticket runs inside ``TicketLockRegistry.hold``
for that ticket id, so two operations on the same ticket never interleave
while operations on different tickets run in parallel.
"""

import asyncio
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from ticketdesk.config import FIRST_TICKET_NUMBER


class TicketLockRegistry:
    """
    One asyncio.Lock per ticket id, created on demand.

    Locks are dropped once no coroutine holds or waits for them, so the
    registry does not grow with the ticket table.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, ticket_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = self._locks[ticket_id] = asyncio.Lock()
        self._users[ticket_id] = self._users.get(ticket_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[ticket_id] -= 1
            if self._users[ticket_id] == 0:
                del self._users[ticket_id]
                del self._locks[ticket_id]

    def is_locked(self, ticket_id: str) -> bool:
        lock = self._locks.get(ticket_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class TicketNumberSequence:
    """Hands out ``TKT-<n>`` numbers; safe to share between threads."""

    def __init__(self, start: int = FIRST_TICKET_NUMBER, prefix: str = "TKT"):
        self._next = start
        self._prefix = prefix
        self._lock = threading.Lock()

    @classmethod
    async def from_repository(cls, repository, prefix: str = "TKT") -> "TicketNumberSequence":
        """Continue after the highest number already stored."""
        highest = await repository.max_ticket_number()
        return cls(max(FIRST_TICKET_NUMBER, highest + 1), prefix)

    def next(self) -> str:
        with self._lock:
            number = self._next
            self._next += 1
        return f"{self._prefix}-{number}"

    @staticmethod
    def parse(ticket_number: str) -> int:
        """Numeric part of a ticket number, e.g. 1004 for ``TKT-1004``."""
        return int(ticket_number.rsplit("-", 1)[-1])
