"""
SalesIQ — Persistence

Optional history store: a SQLite record table plus a media directory for
audio blobs. When SALESIQ_DATA_DIR is unset the application runs
in-memory only and this module is never constructed.

Every storage failure is raised as PersistenceWarning so the pipeline can
keep going with its local playback handle.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Protocol, runtime_checkable

from pydantic import ValidationError

from ..core.config import CACHE_VERSION
from ..core.errors import PersistenceWarning
from ..core.models import AnalysisResult, Session, UploadFingerprint

logger = logging.getLogger("salesiq.persistence")

SESSIONS_TABLE = "sessions"


@runtime_checkable
class PersistenceProvider(Protocol):
    def upload_blob(self, path: str, data: bytes) -> str:
        """Store bytes under `path`; return a public URL."""
        ...

    def insert_record(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def query_records(self, table: str) -> List[Dict[str, Any]]:
        """All records of a table, newest first."""
        ...


class SQLitePersistence:
    def __init__(self, data_dir: str, media_url_prefix: str = "/media") -> None:
        self._root = Path(data_dir)
        self._db_path = self._root / "salesiq.db"
        self._media_dir = self._root / "media"
        self._media_url_prefix = media_url_prefix.rstrip("/")

    @property
    def media_dir(self) -> Path:
        return self._media_dir

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        self._root.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_db(self) -> None:
        try:
            self._media_dir.mkdir(parents=True, exist_ok=True)
            with self._conn() as c:
                c.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {SESSIONS_TABLE} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        fingerprint TEXT NOT NULL,
                        fields_json TEXT NOT NULL,
                        created_at REAL NOT NULL
                    )
                    """
                )
        except (sqlite3.Error, OSError) as e:
            raise PersistenceWarning(f"Could not initialise store at {self._root}: {e}") from e

    def upload_blob(self, path: str, data: bytes) -> str:
        target = (self._media_dir / path).resolve()
        if self._media_dir.resolve() not in target.parents:
            raise PersistenceWarning(f"Blob path escapes media dir: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise PersistenceWarning(f"Could not store blob {path}: {e}") from e
        return f"{self._media_url_prefix}/{path}"

    def insert_record(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        created_at = fields.get("created_at", time.time())
        try:
            with self._conn() as c:
                cur = c.execute(
                    f"INSERT INTO {table} (fingerprint, fields_json, created_at) VALUES (?, ?, ?)",
                    (fields.get("fingerprint", ""), json.dumps(fields), created_at),
                )
                record_id = cur.lastrowid
        except sqlite3.Error as e:
            raise PersistenceWarning(f"Could not insert into {table}: {e}") from e
        return {"id": record_id, **fields}

    def query_records(self, table: str) -> List[Dict[str, Any]]:
        try:
            with self._conn() as c:
                rows = c.execute(
                    f"SELECT id, fields_json FROM {table} ORDER BY created_at DESC, id DESC"
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceWarning(f"Could not query {table}: {e}") from e
        return [{"id": row["id"], **json.loads(row["fields_json"])} for row in rows]

    def media_path(self, url: str) -> str:
        """Local file behind a URL returned by upload_blob."""
        relative = url[len(self._media_url_prefix) + 1:] if url.startswith(self._media_url_prefix + "/") else url
        return os.fspath(self._media_dir / relative)


# ---------------------------------------------------------------------------
# Session <-> record mapping
# ---------------------------------------------------------------------------

def session_to_record(session: Session) -> Dict[str, Any]:
    fp = session.fingerprint
    return {
        "fingerprint": fp.key,
        "file_name": session.file_name,
        "size": fp.size,
        "last_modified": fp.last_modified,
        "version": fp.version,
        "duration": session.duration_label,
        "audio_url": session.audio_url,
        "result": session.result.to_dict(),
        "created_at": session.created_at,
    }


def record_to_session(record: Dict[str, Any]) -> Session:
    fingerprint = UploadFingerprint(
        name=record["file_name"],
        size=int(record.get("size", 0)),
        last_modified=int(record.get("last_modified", 0)),
        version=record.get("version", CACHE_VERSION),
    )
    return Session(
        fingerprint=fingerprint,
        result=AnalysisResult.model_validate(record["result"]),
        duration_label=record.get("duration", ""),
        file_name=record["file_name"],
        audio_url=record.get("audio_url"),
        created_at=float(record.get("created_at", time.time())),
    )


def load_sessions(store: PersistenceProvider) -> List[Session]:
    """Persisted sessions, newest first. Unreadable records are skipped."""
    sessions: List[Session] = []
    for record in store.query_records(SESSIONS_TABLE):
        try:
            sessions.append(record_to_session(record))
        except (KeyError, ValueError, ValidationError) as e:
            logger.warning(f"Skipping unreadable session record {record.get('id')}: {e}")
    return sessions
