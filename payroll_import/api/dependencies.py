"""
Shared dependencies and state for the API.

Interactive import sessions live in process memory between requests; each
entry expires ``settings.session_ttl_seconds`` after it was last touched.
"""
import logging
import time
from typing import Any, Dict

from fastapi import HTTPException

from payroll_import.core.config import settings
from payroll_import.db.models import SqlRecordStore
from payroll_import.db.session import get_engine
from payroll_import.domain.imports.importer import RecordStore
from payroll_import.domain.imports.pipeline import ImportSession

logger = logging.getLogger(__name__)

# Import session storage (in production, use Redis or database)
# Key: session id, Value: dict with 'session' and 'timestamp'
session_storage: Dict[str, Dict[str, Any]] = {}


def purge_expired_sessions(now: float = None) -> int:
    current_time = now if now is not None else time.time()
    expired = [
        session_id for session_id, entry in session_storage.items()
        if current_time - entry["timestamp"] > settings.session_ttl_seconds
    ]
    for session_id in expired:
        del session_storage[session_id]
    if expired:
        logger.info("Expired %d import sessions", len(expired))
    return len(expired)


def save_session(session: ImportSession) -> ImportSession:
    purge_expired_sessions()
    session_storage[session.id] = {"session": session, "timestamp": time.time()}
    return session


def get_import_session(session_id: str) -> ImportSession:
    """Fetch a live session or raise 404."""
    purge_expired_sessions()
    entry = session_storage.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Import session '{session_id}' not found or expired")
    entry["timestamp"] = time.time()
    return entry["session"]


def get_record_store() -> RecordStore:
    return SqlRecordStore(get_engine())
