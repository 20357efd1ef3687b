import pytest

from salesiq.core.errors import PersistenceWarning
from salesiq.core.models import AnalysisResult, Session, UploadFingerprint
from salesiq.services.persistence import (
    SESSIONS_TABLE,
    PersistenceProvider,
    SQLitePersistence,
    load_sessions,
    record_to_session,
    session_to_record,
)


@pytest.fixture
def store(tmp_path):
    persistence = SQLitePersistence(str(tmp_path / "data"))
    persistence.init_db()
    return persistence


def _session(canned_result, name="call.wav", created_at=1.0):
    return Session(
        fingerprint=UploadFingerprint(name=name, size=42, last_modified=7),
        result=AnalysisResult.model_validate(canned_result),
        duration_label="1:20",
        file_name=name,
        created_at=created_at,
    )


def test_sqlite_store_satisfies_protocol(store):
    assert isinstance(store, PersistenceProvider)


def test_upload_blob_writes_media(store):
    url = store.upload_blob("abc/call.wav", b"RIFFdata")
    assert url == "/media/abc/call.wav"
    with open(store.media_path(url), "rb") as handle:
        assert handle.read() == b"RIFFdata"


def test_upload_blob_rejects_escaping_paths(store):
    with pytest.raises(PersistenceWarning):
        store.upload_blob("../outside.wav", b"x")


def test_session_record_round_trip(store, canned_result):
    session = _session(canned_result)
    session.audio_url = "/media/abc/call.wav"
    saved = store.insert_record(SESSIONS_TABLE, session_to_record(session))
    assert saved["id"] == 1

    records = store.query_records(SESSIONS_TABLE)
    assert len(records) == 1
    restored = record_to_session(records[0])
    assert restored.fingerprint == session.fingerprint
    assert restored.result == session.result
    assert restored.audio_url == "/media/abc/call.wav"
    assert restored.audio_file is None


def test_load_sessions_newest_first_skips_bad_records(store, canned_result):
    store.insert_record(SESSIONS_TABLE, session_to_record(_session(canned_result, "old.wav", 1.0)))
    store.insert_record(SESSIONS_TABLE, session_to_record(_session(canned_result, "new.wav", 2.0)))
    store.insert_record(SESSIONS_TABLE, {"fingerprint": "broken", "created_at": 3.0})

    sessions = load_sessions(store)
    assert [s.file_name for s in sessions] == ["new.wav", "old.wav"]


def test_unknown_table_is_a_warning(store):
    with pytest.raises(PersistenceWarning):
        store.query_records("nope")
