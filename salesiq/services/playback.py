"""
SalesIQ — Playback Resources

Maps handle_id → playable audio source, the server-side counterpart of a
browser object URL. The dashboard player streams from `/audio/{handle_id}`
for as long as the handle is live; releasing it revokes the URL but never
touches the underlying file.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger("salesiq.playback")


@dataclass
class PlaybackHandle:
    handle_id: str
    source: str                 # local path, or persisted media URL
    is_remote: bool = False
    created_at: float = field(default_factory=time.time)
    released: bool = False

    def url(self, prefix: str = "/audio") -> str:
        return self.source if self.is_remote else f"{prefix}/{self.handle_id}"

    def to_dict(self, prefix: str = "/audio") -> Dict[str, Any]:
        return {"id": self.handle_id, "url": self.url(prefix), "released": self.released}


class PlaybackResources:
    """Creates and revokes playback handles. Each handle is released at most once."""

    def __init__(self, url_prefix: str = "/audio") -> None:
        self._handles: Dict[str, PlaybackHandle] = {}
        self._url_prefix = url_prefix
        self.created_count = 0
        self.released_count = 0

    @property
    def url_prefix(self) -> str:
        return self._url_prefix

    @property
    def active_count(self) -> int:
        return len(self._handles)

    def _register(self, source: str, is_remote: bool) -> PlaybackHandle:
        handle = PlaybackHandle(handle_id=uuid.uuid4().hex[:12], source=source, is_remote=is_remote)
        self._handles[handle.handle_id] = handle
        self.created_count += 1
        logger.debug(f"Playback handle {handle.handle_id} → {source}")
        return handle

    def create_for_file(self, path: str) -> PlaybackHandle:
        return self._register(path, is_remote=False)

    def create_for_url(self, url: str) -> PlaybackHandle:
        return self._register(url, is_remote=True)

    def resolve(self, handle_id: str) -> Optional[PlaybackHandle]:
        return self._handles.get(handle_id)

    def release(self, handle: PlaybackHandle) -> None:
        if handle.released:
            logger.warning(f"Playback handle {handle.handle_id} already released — ignoring")
            return
        handle.released = True
        self._handles.pop(handle.handle_id, None)
        self.released_count += 1
        logger.debug(f"Playback handle {handle.handle_id} released")

    def release_all(self) -> None:
        for handle in list(self._handles.values()):
            self.release(handle)
