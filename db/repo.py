"""
Prisma-backed store.

Sessions and catalog records are persisted as JSON documents; only the fields
needed for filtering and the optimistic-concurrency check are real columns.
"""
from __future__ import annotations
from typing import Any, Iterable, List, Optional
import logging

from prisma import Json

from db.client import db
from engine.errors import ConcurrentUpdateError
from models.records import RECORD_TYPES, Session

logger = logging.getLogger(__name__)


def _session_from_row(row) -> Session:
    doc = dict(row.document)
    doc["version"] = row.version
    return Session.from_document(doc)


class PrismaStore:
    async def connect(self) -> None:
        if not db.is_connected():
            await db.connect()

    async def disconnect(self) -> None:
        if db.is_connected():
            await db.disconnect()

    # -------- Sessions --------

    async def get_session(self, session_id: str) -> Optional[Session]:
        row = await db.assessmentsession.find_unique(where={"id": session_id})
        return _session_from_row(row) if row else None

    async def create_session(self, session: Session) -> Session:
        session.version = 0
        await db.assessmentsession.create(
            data={
                "id": session.id,
                "studentId": session.student_id,
                "isCompleted": session.is_completed,
                "version": 0,
                "document": Json(session.to_document()),
            }
        )
        return session

    async def save_session(self, session: Session, expected_version: int) -> Session:
        session.version = expected_version + 1
        count = await db.assessmentsession.update_many(
            where={"id": session.id, "version": expected_version},
            data={
                "studentId": session.student_id,
                "isCompleted": session.is_completed,
                "version": session.version,
                "document": Json(session.to_document()),
            },
        )
        if count == 0:
            session.version = expected_version
            logger.warning("Stale write rejected for session %s at version %d", session.id, expected_version)
            raise ConcurrentUpdateError(session.id, expected_version)
        return session

    async def list_sessions(self, student_ids: Optional[Iterable[str]] = None) -> List[Session]:
        where = {"studentId": {"in": list(student_ids)}} if student_ids is not None else {}
        rows = await db.assessmentsession.find_many(where=where, order={"createdAt": "asc"})
        return [_session_from_row(r) for r in rows]

    # -------- Catalog records --------

    async def get_records(self, kind: str, ids: Iterable[str]) -> List[Any]:
        record_type = RECORD_TYPES[kind]
        wanted = list(dict.fromkeys(ids))
        rows = await db.catalogrecord.find_many(where={"kind": kind, "id": {"in": wanted}})
        by_id = {r.id: r for r in rows}
        # Preserve the caller's order
        return [record_type.from_document(by_id[i].document) for i in wanted if i in by_id]

    async def list_records(self, kind: str) -> List[Any]:
        record_type = RECORD_TYPES[kind]
        rows = await db.catalogrecord.find_many(where={"kind": kind})
        return [record_type.from_document(r.document) for r in rows]

    async def put_record(self, kind: str, record: Any) -> Any:
        if kind not in RECORD_TYPES:
            raise ValueError(f"Unknown record kind {kind!r}")
        document = Json(record.to_document())
        await db.catalogrecord.upsert(
            where={"kind_id": {"kind": kind, "id": record.id}},
            data={
                "create": {"kind": kind, "id": record.id, "document": document},
                "update": {"document": document},
            },
        )
        return record
