"""
SalesIQ — FastAPI Server

================================================================================
Architecture:
  • One AppController per application (single operator, like the browser
    app it serves). Constructed in the lifespan together with its
    collaborators and torn down at shutdown — no module-level singletons.
  • AnalysisClient wraps GeminiProvider; tests inject a fake provider.
  • SessionStore caches analyses by upload fingerprint; SQLitePersistence
    (optional, SALESIQ_DATA_DIR) keeps history across restarts.
  • Uploaded recordings live in an upload directory; the dashboard player
    streams them through short-lived playback handles at /audio/{id}.
================================================================================

Endpoints:
  GET  /health                   — server health
  GET  /state                    — current view state
  POST /analyze                  — multipart upload (file, last_modified)
  POST /reset                    — back to idle
  GET  /sessions                 — recent sessions, newest first
  POST /sessions/{key}/load      — re-open a stored session
  GET  /audio/{handle_id}        — audio behind a live playback handle
  GET  /transcript               — ?q= search, ?t= playback time
  POST /playback/time            — push current playback time
  POST /playback/seek            — seek to a timecode
  POST /playback/topic           — jump to the first mention of a topic
  GET  /export/transcript.csv    — transcript CSV
  GET  /export/analysis.csv      — full analysis CSV
  GET  /share/email              — email share payload
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from .core.config import VERSION, StorageConfig, pipeline_cfg, server_cfg, storage_cfg
from .core.errors import ConfigurationError, PersistenceWarning, SessionNotFoundError
from .core.models import AudioFile, Session
from .processing.export import analysis_csv, export_filename, share_email, transcript_csv
from .processing.transcript_sync import find_topic_segment, seek
from .services.analysis_client import AnalysisClient, AnalysisProvider
from .services.app_controller import AppController, Error, Success
from .services.gemini_provider import GeminiProvider
from .services.persistence import SQLitePersistence, load_sessions
from .services.playback import PlaybackResources
from .services.session_store import SessionStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("salesiq")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)


# ---------------------------------------------------------------------------
# Application services
# ---------------------------------------------------------------------------

@dataclass
class AppServices:
    controller: AppController
    client: AnalysisClient
    store: SessionStore
    resources: PlaybackResources
    persistence: Optional[SQLitePersistence]
    upload_dir: str


class PlaybackTime(BaseModel):
    seconds: float


class SeekRequest(BaseModel):
    timecode: str


class TopicRequest(BaseModel):
    topic: str


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _services(request: Request) -> AppServices:
    return request.app.state.services


def _current_success(request: Request) -> Optional[Success]:
    view = _services(request).controller.view
    return view if isinstance(view, Success) else None


def _remove_upload(path: str, upload_dir: str) -> None:
    """Delete an uploaded copy. Files outside the upload directory are never touched."""
    if os.path.dirname(os.path.abspath(path)) != os.path.abspath(upload_dir):
        return
    try:
        os.unlink(path)
    except OSError:
        logger.debug(f"Could not remove upload {path}")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    provider: Optional[AnalysisProvider] = None,
    storage: StorageConfig = storage_cfg,
    cache_hit_delay: float = pipeline_cfg.cache_hit_delay,
    max_sessions: int = pipeline_cfg.max_sessions,
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 SalesIQ backend starting...")

        upload_tmp: Optional[tempfile.TemporaryDirectory] = None
        upload_dir = storage.upload_dir
        if not upload_dir:
            upload_tmp = tempfile.TemporaryDirectory(prefix="salesiq-uploads-")
            upload_dir = upload_tmp.name
        os.makedirs(upload_dir, exist_ok=True)

        def _discard_evicted(session: Session) -> None:
            if session.audio_file is not None:
                _remove_upload(session.audio_file.path, upload_dir)

        store = SessionStore(max_sessions=max_sessions, on_evict=_discard_evicted)
        persistence: Optional[SQLitePersistence] = None
        if storage.persistence_enabled:
            persistence = SQLitePersistence(storage.data_dir, storage.media_url_prefix)
            try:
                persistence.init_db()
                store.restore(load_sessions(persistence))
            except PersistenceWarning as w:
                logger.warning(f"History store unavailable, running in-memory only: {w}")
                persistence = None
        else:
            logger.info("   No SALESIQ_DATA_DIR — history is in-memory only")

        resources = PlaybackResources()
        client = AnalysisClient(provider or GeminiProvider())
        controller = AppController(
            client,
            store,
            resources,
            persistence=persistence,
            cache_hit_delay=cache_hit_delay,
        )
        app.state.services = AppServices(
            controller=controller,
            client=client,
            store=store,
            resources=resources,
            persistence=persistence,
            upload_dir=upload_dir,
        )
        try:
            client.check_configured()
        except ConfigurationError as e:
            logger.error(f"   {e.user_message}")

        yield

        logger.info("🛑 Shutting down — releasing playback handles...")
        resources.release_all()
        if upload_tmp is not None:
            upload_tmp.cleanup()
        logger.info("🛑 SalesIQ backend stopped")

    app = FastAPI(
        title="SalesIQ — Sales Call Coaching",
        version=VERSION,
        description=(
            "Upload a sales-call recording, get a diarized transcript, "
            "sentiment flow, objections, deal risk and coaching from Gemini."
        ),
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(server_cfg.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if storage.persistence_enabled:
        media_dir = os.path.join(storage.data_dir, "media")
        try:
            os.makedirs(media_dir, exist_ok=True)
            app.mount(storage.media_url_prefix, StaticFiles(directory=media_dir), name="media")
        except (OSError, RuntimeError) as e:
            # The lifespan finds the same store unusable and runs in-memory
            logger.warning(f"Media directory {media_dir} unavailable, not serving {storage.media_url_prefix}: {e}")

    @app.exception_handler(SessionNotFoundError)
    async def _session_not_found(request: Request, exc: SessionNotFoundError):
        return _error(404, exc.user_message)

    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# REST Endpoints
# ---------------------------------------------------------------------------

def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health(request: Request):
        services = _services(request)
        try:
            services.client.check_configured()
            configured = True
        except ConfigurationError:
            configured = False
        return {
            "status": "ok",
            "version": VERSION,
            "provider_configured": configured,
            "state": services.controller.state.value,
            "cached_sessions": len(services.store),
            "persistence": services.persistence is not None,
        }

    @app.get("/state")
    async def state(request: Request):
        return _services(request).controller.snapshot()

    @app.post("/analyze")
    async def analyze(
        request: Request,
        file: UploadFile = File(...),
        last_modified: int = Form(0),
    ):
        services = _services(request)
        controller = services.controller
        if controller.is_busy:
            return _error(409, "An analysis is already in progress")

        content_type = file.content_type or ""
        if not content_type.startswith("audio/"):
            return _error(400, f"Please upload an audio file (got {content_type or 'unknown'})")

        name = os.path.basename(file.filename or "recording")
        path = os.path.join(services.upload_dir, f"{uuid.uuid4().hex[:12]}-{name}")
        try:
            data = await file.read()
            with open(path, "wb") as handle:
                handle.write(data)
        except OSError as e:
            logger.error(f"Upload of {name} failed: {e}")
            return _error(500, f"Upload failed: {str(e)[:200]}")

        # A new selection replaces whatever is on the dashboard
        controller.reset()
        audio = AudioFile(
            name=name,
            path=path,
            mime_type=content_type,
            size=len(data),
            last_modified=last_modified,
        )
        view = await controller.select_file(audio)

        if isinstance(view, Error):
            _remove_upload(path, services.upload_dir)
            return JSONResponse(status_code=422, content=controller.snapshot())
        if isinstance(view, Success) and view.from_cache:
            kept = view.session.audio_file
            if kept is None or kept.path != path:
                # Cache hit plays the copy stored with the session
                _remove_upload(path, services.upload_dir)
        return controller.snapshot()

    @app.post("/reset")
    async def reset(request: Request):
        controller = _services(request).controller
        if controller.is_busy:
            return _error(409, "An analysis is in progress")
        controller.reset()
        return controller.snapshot()

    @app.get("/sessions")
    async def list_sessions(request: Request):
        return [s.to_summary() for s in _services(request).store.list_recent()]

    @app.post("/sessions/{key}/load")
    async def load_session(key: str, request: Request):
        controller = _services(request).controller
        if controller.is_busy:
            return _error(409, "An analysis is in progress")
        await controller.load_session(key)
        return controller.snapshot()

    @app.get("/audio/{handle_id}")
    async def audio(handle_id: str, request: Request):
        handle = _services(request).resources.resolve(handle_id)
        if handle is None:
            return _error(404, "Audio handle not found or released")
        if handle.is_remote:
            return RedirectResponse(handle.source)
        return FileResponse(handle.source)

    # ── Transcript + playback sync ──

    @app.get("/transcript")
    async def transcript(request: Request, q: str = "", t: Optional[float] = None):
        view = _services(request).controller.transcript_view(q, t)
        if view is None:
            return _error(404, "No analysis is loaded")
        return view

    @app.post("/playback/time")
    async def playback_time(body: PlaybackTime, request: Request):
        controller = _services(request).controller
        if _current_success(request) is None:
            return _error(404, "No analysis is loaded")
        controller.cursor.update_time(body.seconds)
        return {"currentTime": controller.cursor.current_time, "activeIndex": controller.cursor.active_index()}

    @app.post("/playback/seek")
    async def playback_seek(body: SeekRequest, request: Request):
        controller = _services(request).controller
        if _current_success(request) is None:
            return _error(404, "No analysis is loaded")
        seconds = seek(controller.cursor, body.timecode)
        return {"seconds": seconds, "activeIndex": controller.cursor.active_index()}

    @app.post("/playback/topic")
    async def playback_topic(body: TopicRequest, request: Request):
        controller = _services(request).controller
        success = _current_success(request)
        if success is None:
            return _error(404, "No analysis is loaded")
        target = find_topic_segment(success.session.result.transcript, body.topic)
        payload: Dict[str, Any] = {"query": body.topic, "seconds": None, "activeIndex": None}
        if target is not None:
            payload["seconds"] = seek(controller.cursor, target.start_time)
            payload["activeIndex"] = controller.cursor.active_index()
        return payload

    # ── Export / share ──

    @app.get("/export/transcript.csv")
    async def export_transcript(request: Request):
        success = _current_success(request)
        if success is None:
            return _error(404, "No analysis is loaded")
        filename = export_filename(success.session.file_name, "transcript")
        return Response(
            content=transcript_csv(success.session.result.transcript),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/export/analysis.csv")
    async def export_analysis(request: Request):
        success = _current_success(request)
        if success is None:
            return _error(404, "No analysis is loaded")
        filename = export_filename(success.session.file_name, "analysis")
        return Response(
            content=analysis_csv(success.session.result),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/share/email")
    async def email_share(request: Request):
        success = _current_success(request)
        if success is None:
            return _error(404, "No analysis is loaded")
        session = success.session
        return share_email(session.result, session.file_name, session.duration_label)


app = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "salesiq.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        reload=True,
        log_level="info",
    )
