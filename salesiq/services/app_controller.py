"""
SalesIQ — App Controller

================================================================================
THE PIPELINE: upload → encode → remote-analyze → persist → render
================================================================================

`AppController` owns one AppStateMachine and exposes a single typed view
state (Idle | Uploading | Analyzing | Success | Error) to the presentation
layer. It sequences:

  1. select_file()  — IDLE/ERROR → UPLOADING. A playback handle is created
     immediately so the recording is previewable even on a cache hit.
  2. Cache lookup by fingerprint. Hit → short visible delay → SUCCESS,
     no provider call.
  3. Miss → configuration check, encode + duration read (joined),
     ANALYZING, one provider request, Session stored, optional
     persistence (failures become warnings), SUCCESS.
  4. Any failure → handle released → ERROR with a kind-specific message.

reset() releases the handle and returns to IDLE without touching the cache.
load_session() replays a stored Session through UPLOADING into SUCCESS.

Only one attempt runs at a time: file selections arriving while a
previous attempt is in flight are ignored.
================================================================================
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Optional, Union

from ..core.config import pipeline_cfg
from ..core.errors import (
    GENERIC_FAILURE_MESSAGE,
    PersistenceWarning,
    SalesIQError,
    SessionNotFoundError,
)
from ..core.models import AudioFile, Session, UploadFingerprint
from ..core.state_machine import AppState, AppStateMachine
from ..processing.dashboard import dashboard_extras
from ..processing.transcript_sync import TranscriptCursor, highlight, search
from .analysis_client import AnalysisClient
from .audio_file import AudioFileService
from .persistence import SESSIONS_TABLE, PersistenceProvider, session_to_record
from .playback import PlaybackHandle, PlaybackResources
from .session_store import SessionStore

logger = logging.getLogger("salesiq.controller")


# ---------------------------------------------------------------------------
# View state — one tagged union consumed by the presentation layer
# ---------------------------------------------------------------------------

def _audio_dict(audio: Optional[PlaybackHandle], prefix: str) -> Optional[Dict[str, Any]]:
    return audio.to_dict(prefix) if audio is not None else None


@dataclass
class Idle:
    state: ClassVar[AppState] = AppState.IDLE

    def to_dict(self, audio_prefix: str = "/audio") -> Dict[str, Any]:
        return {"state": self.state.value}


@dataclass
class Uploading:
    file_name: str
    audio: Optional[PlaybackHandle] = None
    state: ClassVar[AppState] = AppState.UPLOADING

    def to_dict(self, audio_prefix: str = "/audio") -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "fileName": self.file_name,
            "audio": _audio_dict(self.audio, audio_prefix),
        }


@dataclass
class Analyzing:
    file_name: str
    duration: str
    audio: Optional[PlaybackHandle] = None
    state: ClassVar[AppState] = AppState.ANALYZING

    def to_dict(self, audio_prefix: str = "/audio") -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "fileName": self.file_name,
            "duration": self.duration,
            "audio": _audio_dict(self.audio, audio_prefix),
        }


@dataclass
class Success:
    session: Session
    audio: Optional[PlaybackHandle] = None
    from_cache: bool = False
    warnings: List[str] = field(default_factory=list)
    state: ClassVar[AppState] = AppState.SUCCESS

    def to_dict(self, audio_prefix: str = "/audio") -> Dict[str, Any]:
        result = self.session.result
        return {
            "state": self.state.value,
            "key": self.session.fingerprint.key,
            "fileName": self.session.file_name,
            "duration": self.session.duration_label,
            "audio": _audio_dict(self.audio, audio_prefix),
            "fromCache": self.from_cache,
            "warnings": list(self.warnings),
            "result": result.to_dict(),
            "extras": dashboard_extras(result),
        }


@dataclass
class Error:
    message: str
    kind: str = "SalesIQError"
    state: ClassVar[AppState] = AppState.ERROR

    def to_dict(self, audio_prefix: str = "/audio") -> Dict[str, Any]:
        return {"state": self.state.value, "message": self.message, "kind": self.kind}


ViewState = Union[Idle, Uploading, Analyzing, Success, Error]


def _read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as handle:
            return handle.read()
    except OSError as e:
        raise PersistenceWarning(f"Could not read {path} for upload: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════
# App Controller
# ═══════════════════════════════════════════════════════════════════════════

class AppController:
    """
    Drives one upload/analysis attempt at a time.

    Lifecycle:
        controller = AppController(client, store, resources)
        view = await controller.select_file(audio_file)   # → Success | Error
        controller.reset()                                 # → Idle
    """

    def __init__(
        self,
        client: AnalysisClient,
        store: SessionStore,
        resources: PlaybackResources,
        audio_service: Optional[AudioFileService] = None,
        persistence: Optional[PersistenceProvider] = None,
        cache_hit_delay: float = pipeline_cfg.cache_hit_delay,
        on_transition: Optional[Callable[[AppState, AppState, str], None]] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._resources = resources
        self._audio_service = audio_service or AudioFileService()
        self._persistence = persistence
        self._cache_hit_delay = cache_hit_delay
        self._machine = AppStateMachine(on_transition=on_transition)
        self._view: ViewState = Idle()
        self._audio: Optional[PlaybackHandle] = None
        self.cursor = TranscriptCursor()

    # ── Read-only state ──────────────────────────────────────────────────

    @property
    def state(self) -> AppState:
        return self._machine.state

    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def audio(self) -> Optional[PlaybackHandle]:
        return self._audio

    @property
    def is_busy(self) -> bool:
        return self._machine.state in (AppState.UPLOADING, AppState.ANALYZING)

    def snapshot(self) -> Dict[str, Any]:
        return self._view.to_dict(self._resources.url_prefix)

    # ── Pipeline ─────────────────────────────────────────────────────────

    async def select_file(self, audio: AudioFile) -> ViewState:
        if not self._machine.accepts_input:
            logger.warning(
                f"Ignoring {audio.name}: pipeline is {self._machine.state.value}"
            )
            return self._view

        self._release_audio()
        self._enter(Uploading(file_name=audio.name), reason=audio.name)
        self._audio = self._resources.create_for_file(audio.path)
        self._view = Uploading(file_name=audio.name, audio=self._audio)

        fingerprint = UploadFingerprint.for_file(audio)
        try:
            cached = self._store.get(fingerprint)
            if cached is not None:
                logger.info(f"Cache hit for {fingerprint.key} — skipping analysis")
                self._adopt_cached_audio(cached, audio)
                await asyncio.sleep(self._cache_hit_delay)
                self._bind(cached, from_cache=True)
                return self._view

            self._client.check_configured()
            payload, duration = await self._audio_service.encode(audio)
            self._enter(
                Analyzing(file_name=audio.name, duration=duration, audio=self._audio),
                reason="encoded",
            )

            result = await self._client.analyze(payload, audio.mime_type)
            session = Session(
                fingerprint=fingerprint,
                result=result,
                duration_label=duration,
                file_name=audio.name,
                audio_file=audio,
            )
            warnings = await self._persist(session, audio)
            self._store.put(fingerprint, session)
            self._bind(session, from_cache=False, warnings=warnings)
        except SalesIQError as e:
            logger.error(f"Analysis of {audio.name} failed: {type(e).__name__}: {e}")
            self._fail(e.user_message, type(e).__name__)
        except Exception as e:
            logger.error(f"Unexpected failure analysing {audio.name}: {e}", exc_info=True)
            self._fail(GENERIC_FAILURE_MESSAGE, type(e).__name__)
        return self._view

    async def load_session(self, key: str) -> ViewState:
        session = self._store.get_by_key(key)
        if session is None:
            raise SessionNotFoundError(f"No stored session {key}")
        if self.is_busy:
            logger.warning(f"Ignoring history load {key}: pipeline is {self._machine.state.value}")
            return self._view
        if self._machine.state == AppState.SUCCESS:
            self.reset()

        self._release_audio()
        self._enter(Uploading(file_name=session.file_name), reason=f"history {key}")
        self._audio = self._handle_for(session)
        self._view = Uploading(file_name=session.file_name, audio=self._audio)
        await asyncio.sleep(self._cache_hit_delay)
        self._bind(session, from_cache=True)
        return self._view

    def reset(self) -> ViewState:
        if self.is_busy:
            logger.warning("Reset ignored while an analysis is in flight")
            return self._view
        self._release_audio()
        self._machine.reset()
        self._view = Idle()
        self.cursor.bind(())
        return self._view

    # ── Transcript view ──────────────────────────────────────────────────

    def transcript_view(
        self,
        query: Optional[str] = None,
        current_time: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        if not isinstance(self._view, Success):
            return None
        transcript = self._view.session.result.transcript
        self.cursor.bind(transcript)
        if current_time is not None:
            self.cursor.update_time(current_time)

        active = self.cursor.active
        positions = {id(seg): i for i, seg in enumerate(transcript)}
        segments = []
        for seg in search(transcript, query):
            segments.append({
                **seg.model_dump(mode="json", by_alias=True),
                "index": positions[id(seg)],
                "active": seg is active,
                "fragments": [
                    {"text": text, "match": match}
                    for text, match in highlight(seg.text, query)
                ],
            })
        return {
            "query": query or "",
            "currentTime": self.cursor.current_time,
            "activeIndex": self.cursor.active_index(),
            "total": len(transcript),
            "count": len(segments),
            "segments": segments,
        }

    # ── Internals ────────────────────────────────────────────────────────

    def _enter(self, view: ViewState, reason: str = "") -> None:
        self._machine.transition(view.state, reason=reason)
        self._view = view

    def _bind(
        self,
        session: Session,
        from_cache: bool,
        warnings: Optional[List[str]] = None,
    ) -> None:
        self._enter(
            Success(
                session=session,
                audio=self._audio,
                from_cache=from_cache,
                warnings=warnings or [],
            ),
            reason="cache" if from_cache else "analysis",
        )
        self.cursor.bind(session.result.transcript)

    def _fail(self, message: str, kind: str) -> None:
        self._release_audio()
        self._enter(Error(message=message, kind=kind), reason=kind)

    def _release_audio(self) -> None:
        if self._audio is not None:
            self._resources.release(self._audio)
            self._audio = None

    def _adopt_cached_audio(self, cached: Session, audio: AudioFile) -> None:
        """Play the cached session's own file; a session without one takes this upload."""
        known = cached.audio_file
        if known is not None and known.path != audio.path and os.path.exists(known.path):
            self._release_audio()
            self._audio = self._resources.create_for_file(known.path)
            self._view = Uploading(file_name=audio.name, audio=self._audio)
        elif known is None or not os.path.exists(known.path):
            cached.audio_file = audio

    def _handle_for(self, session: Session) -> Optional[PlaybackHandle]:
        if session.audio_file is not None and os.path.exists(session.audio_file.path):
            return self._resources.create_for_file(session.audio_file.path)
        if session.audio_url:
            return self._resources.create_for_url(session.audio_url)
        logger.warning(f"No audio available for session {session.fingerprint.key}")
        return None

    async def _persist(self, session: Session, audio: AudioFile) -> List[str]:
        """Best-effort copy to the history store. Returns warnings, never raises."""
        if self._persistence is None:
            return []
        loop = asyncio.get_running_loop()
        warnings: List[str] = []

        try:
            data = await loop.run_in_executor(None, _read_bytes, audio.path)
            blob_path = f"{uuid.uuid4().hex[:12]}/{os.path.basename(audio.name)}"
            session.audio_url = await loop.run_in_executor(
                None, self._persistence.upload_blob, blob_path, data
            )
        except PersistenceWarning as w:
            logger.warning(f"Audio upload failed, using local playback: {w}")
            warnings.append(w.user_message)

        try:
            await loop.run_in_executor(
                None, self._persistence.insert_record, SESSIONS_TABLE, session_to_record(session)
            )
        except PersistenceWarning as w:
            logger.warning(f"Session record not saved: {w}")
            if w.user_message not in warnings:
                warnings.append(w.user_message)
        return warnings
