"""In-process cache of code artifacts extracted from build-level responses."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from uuid import UUID

from services.streaming import CodeArtifact


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Entry:
    artifacts: tuple[CodeArtifact, ...]
    stored_at: float


class ArtifactCache:
    """Latest code artifacts per chat session.

    Entries expire ``ttl_seconds`` after they were stored; expiry is checked
    lazily on access. At most ``max_entries`` sessions are kept, the least
    recently stored one being evicted first.

    Args:
        ttl_seconds: Lifetime of an entry.
        max_entries: Upper bound on cached sessions.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[UUID, _Entry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def put(self, session_id: UUID, artifacts: Sequence[CodeArtifact]) -> None:
        """Replace the artifacts stored for a session."""
        with self._lock:
            self._entries.pop(session_id, None)
            self._entries[session_id] = _Entry(tuple(artifacts), self._clock())
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Artifact cache full, evicted session %s", evicted)

    def get(self, session_id: UUID) -> list[CodeArtifact] | None:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            if self._is_expired(entry):
                del self._entries[session_id]
                return None
            return list(entry.artifacts)

    def evict(self, session_id: UUID) -> bool:
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _is_expired(self, entry: _Entry) -> bool:
        return self._clock() - entry.stored_at >= self._ttl

    def _purge_expired(self) -> None:
        expired = [sid for sid, e in self._entries.items() if self._is_expired(e)]
        for sid in expired:
            del self._entries[sid]
