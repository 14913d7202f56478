"""
Persistence interface for the service layer, plus the in-memory store.

Stores hold documents, never live objects: every read returns a fresh record,
so a caller's in-flight mutations are invisible until `save_session`, and the
version check there is what detects a concurrent writer.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Protocol
import copy

from engine.errors import ConcurrentUpdateError
from models.records import RECORD_TYPES, Session


class Store(Protocol):
    async def get_session(self, session_id: str) -> Optional[Session]: ...

    async def create_session(self, session: Session) -> Session: ...

    async def save_session(self, session: Session, expected_version: int) -> Session: ...

    async def list_sessions(self, student_ids: Optional[Iterable[str]] = None) -> List[Session]: ...

    async def get_records(self, kind: str, ids: Iterable[str]) -> List[Any]: ...

    async def list_records(self, kind: str) -> List[Any]: ...

    async def put_record(self, kind: str, record: Any) -> Any: ...


def _record_type(kind: str):
    try:
        return RECORD_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown record kind {kind!r}") from None


class InMemoryStore:
    """In-memory store (swap for the Prisma store when persistence is needed)."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._records: Dict[str, Dict[str, Dict[str, Any]]] = {kind: {} for kind in RECORD_TYPES}

    # ---- Sessions ------------------------------------------------------------
    async def get_session(self, session_id: str) -> Optional[Session]:
        doc = self._sessions.get(session_id)
        return Session.from_document(copy.deepcopy(doc)) if doc is not None else None

    async def create_session(self, session: Session) -> Session:
        if session.id in self._sessions:
            raise ValueError(f"Session {session.id} already exists")
        session.version = 0
        self._sessions[session.id] = session.to_document()
        return session

    async def save_session(self, session: Session, expected_version: int) -> Session:
        current = self._sessions.get(session.id)
        if current is None or current["version"] != expected_version:
            raise ConcurrentUpdateError(session.id, expected_version)
        session.version = expected_version + 1
        self._sessions[session.id] = session.to_document()
        return session

    async def list_sessions(self, student_ids: Optional[Iterable[str]] = None) -> List[Session]:
        wanted = set(student_ids) if student_ids is not None else None
        return [
            Session.from_document(copy.deepcopy(doc))
            for doc in self._sessions.values()
            if wanted is None or doc.get("studentId") in wanted
        ]

    # ---- Catalog records -----------------------------------------------------
    async def get_records(self, kind: str, ids: Iterable[str]) -> List[Any]:
        record_type = _record_type(kind)
        docs = self._records[kind]
        return [record_type.from_document(copy.deepcopy(docs[i])) for i in dict.fromkeys(ids) if i in docs]

    async def list_records(self, kind: str) -> List[Any]:
        record_type = _record_type(kind)
        return [record_type.from_document(copy.deepcopy(doc)) for doc in self._records[kind].values()]

    async def put_record(self, kind: str, record: Any) -> Any:
        _record_type(kind)
        self._records[kind][record.id] = record.to_document()
        return record
