"""
SalesIQ — Session Store

Maps fingerprint key → Session (the analysis cache) and keeps the
recent-session history shown in the sidebar.

  • put() on an existing fingerprint overwrites the cache entry.
  • History is newest-first and never holds the same fingerprint twice;
    a repeated insert keeps the first-seen entry where it is.
  • max_sessions = 0 keeps everything for the life of the process.
    Evicted sessions go to on_evict so their upload can be removed.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Callable, Iterable, List, Optional

from ..core.config import pipeline_cfg
from ..core.models import Session, UploadFingerprint

logger = logging.getLogger("salesiq.store")


class SessionStore:
    """In-memory cache + history. Constructed once per application."""

    def __init__(
        self,
        max_sessions: int = pipeline_cfg.max_sessions,
        on_evict: Optional[Callable[[Session], None]] = None,
    ) -> None:
        self._cache: "OrderedDict[str, Session]" = OrderedDict()
        self._history: List[Session] = []
        self._max = max(0, max_sessions)
        self._on_evict = on_evict

    def get(self, fingerprint: UploadFingerprint) -> Optional[Session]:
        return self._cache.get(fingerprint.key)

    def get_by_key(self, key: str) -> Optional[Session]:
        session = self._cache.get(key)
        if session is not None:
            return session
        for entry in self._history:
            if entry.fingerprint.key == key:
                return entry
        return None

    def put(self, fingerprint: UploadFingerprint, session: Session) -> None:
        key = fingerprint.key
        self._cache[key] = session
        self._cache.move_to_end(key)

        if not any(entry.fingerprint.key == key for entry in self._history):
            self._history.insert(0, session)

        self._evict()
        logger.info(f"SessionStore: stored {key} (cached: {len(self._cache)})")

    def list_recent(self) -> List[Session]:
        return list(self._history)

    def restore(self, sessions: Iterable[Session]) -> int:
        """Seed from persisted records, given newest first. Returns the count added."""
        added = 0
        for session in sessions:
            key = session.fingerprint.key
            if key in self._cache:
                continue
            self._cache[key] = session
            self._cache.move_to_end(key, last=False)
            self._history.append(session)
            added += 1
        self._evict()
        if added:
            logger.info(f"SessionStore: restored {added} persisted sessions")
        return added

    def clear(self) -> None:
        self._cache.clear()
        self._history.clear()

    def _evict(self) -> None:
        if not self._max:
            return
        while len(self._cache) > self._max:
            key, session = self._cache.popitem(last=False)
            logger.info(f"SessionStore: evicted {key}")
            if self._on_evict is not None:
                self._on_evict(session)
        self._history = [s for s in self._history if s.fingerprint.key in self._cache][: self._max]

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, fingerprint: object) -> bool:
        return isinstance(fingerprint, UploadFingerprint) and fingerprint.key in self._cache
