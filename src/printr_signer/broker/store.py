"""Ephemeral token -> record store with lazy TTL eviction."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel

from printr_signer.errors import Failure

logger = logging.getLogger("printr_signer.broker.store")

SESSION_TTL_MS = 30 * 60 * 1000

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionRecord(BaseModel):
    """Fields every session carries. Timestamps are epoch milliseconds."""

    token: str
    created_at: int
    expires_at: int


R = TypeVar("R", bound=SessionRecord)


class SessionStore(Generic[R]):
    """In-memory sessions keyed by an unguessable token.

    Expired records are evicted when they are read; nothing runs in the
    background. Records are replaced on update, never mutated.
    """

    def __init__(
        self,
        record_type: type[R],
        ttl_ms: int = SESSION_TTL_MS,
        clock: Clock = now_ms,
    ) -> None:
        self._record_type = record_type
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._records: dict[str, R] = {}

    def __len__(self) -> int:
        return len(self._records)

    def create(self, **fields: Any) -> R:
        """Store a new record and return it. Expires after the store's TTL."""
        token = str(uuid.uuid4())
        now = self._clock()
        record = self._record_type(
            token=token, created_at=now, expires_at=now + self._ttl_ms, **fields
        )
        self._records[token] = record
        logger.debug(f"{self._record_type.__name__} {token[:8]} created")
        return record

    def lookup(self, token: str) -> R | Failure:
        """Return the record, ``Failure.NOT_FOUND``, or ``Failure.EXPIRED``.

        An expired record is evicted by this call, so a second lookup
        reports ``NOT_FOUND``.
        """
        record = self._records.get(token)
        if record is None:
            return Failure.NOT_FOUND
        if self._clock() > record.expires_at:
            del self._records[token]
            logger.debug(f"{self._record_type.__name__} {token[:8]} expired")
            return Failure.EXPIRED
        return record

    def get(self, token: str) -> R | None:
        record = self.lookup(token)
        return None if isinstance(record, Failure) else record

    def set_result(self, token: str, result: Any) -> bool:
        """Attach a result. Returns ``False`` if the session is gone.

        Last write wins.
        """
        record = self.get(token)
        if record is None:
            return False
        self._records[token] = self._with_result(record, result)
        return True

    def _with_result(self, record: R, result: Any) -> R:
        return record.model_copy(update={"result": result})

    def sweep(self) -> int:
        """Evict every expired record now. Returns how many were dropped."""
        now = self._clock()
        expired = [t for t, r in self._records.items() if now > r.expires_at]
        for token in expired:
            del self._records[token]
        return len(expired)
