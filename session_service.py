"""
Session orchestration (business logic):
- Loads the session and every record it can touch, calls the engine, persists.
- Keeps the web layer thin and the engine free of store access.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging
import uuid

from db.store import Store
from engine.catalog import Catalog
from engine.errors import NotFoundError, ValidationError
from engine.recorder import record_response
from engine.selector import select_next_task
from models.records import (
    RECORD_TYPES,
    Response,
    SelectionStrategy,
    Session,
    SessionStatus,
    utcnow,
)
from models.student_model import StudentModel

logger = logging.getLogger(__name__)


def _parse_strategy(value: Any) -> SelectionStrategy:
    try:
        return SelectionStrategy(value)
    except ValueError:
        allowed = ", ".join(s.value for s in SelectionStrategy)
        raise ValidationError(f"Unknown selectionStrategy {value!r}; expected one of: {allowed}") from None


def _validate_posteriors(posteriors: Dict[str, float]) -> None:
    bad = {node: p for node, p in posteriors.items() if not (0.0 < float(p) < 1.0)}
    if bad:
        raise ValidationError(f"Posteriors must lie in (0, 1): {bad}")


class SessionService:
    def __init__(self, store: Store) -> None:
        self._store = store

    @property
    def store(self) -> Store:
        return self._store

    # ---- Flow ---------------------------------------------------------------
    async def create_session(
        self,
        task_ids: List[str],
        selection_strategy: Any = SelectionStrategy.FIXED,
        student_id: Optional[str] = None,
        end_time: Optional[datetime] = None,
        posteriors: Optional[Dict[str, float]] = None,
        now: Optional[datetime] = None,
    ) -> Session:
        strategy = _parse_strategy(selection_strategy)
        if not task_ids:
            raise ValidationError("A session needs at least one task")
        duplicates = sorted({t for t in task_ids if task_ids.count(t) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate taskIds: {duplicates}")
        found = {t.id for t in await self._store.get_records("tasks", task_ids)}
        missing = [t for t in task_ids if t not in found]
        if missing:
            raise ValidationError(f"Unknown taskIds: {missing}")
        _validate_posteriors(posteriors or {})

        now = now or utcnow()
        session = Session(
            id=f"s{uuid.uuid4().hex}",
            student_id=student_id,
            task_ids=list(task_ids),
            selection_strategy=strategy,
            student_model=StudentModel(bn_posteriors={k: float(v) for k, v in (posteriors or {}).items()}),
            end_time=end_time,
            created_at=now,
            updated_at=now,
        )
        await self._store.create_session(session)
        logger.info("Created session %s (%s, %d tasks) for student %s",
                    session.id, strategy.value, len(task_ids), student_id)
        return session

    async def get_session(self, session_id: str) -> Session:
        session = await self._store.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    async def next_task(self, session_id: str) -> Optional[str]:
        """Return the next task id, or None when the session is over or nothing eligible remains."""
        session = await self.get_session(session_id)
        if session.is_completed:
            return None
        catalog = await self.load_catalog(session)
        return select_next_task(session, catalog)

    async def submit_response(self, session_id: str, response: Response, now: Optional[datetime] = None) -> Session:
        session = await self.get_session(session_id)
        loaded_version = session.version
        extra = [response.question_id] if response.question_id else []
        catalog = await self.load_catalog(session, extra_question_ids=extra)

        record_response(session, response, catalog, now=now)
        await self._store.save_session(session, loaded_version)
        logger.info("Session %s recorded response for task %s (%d/%d)",
                    session.id, response.task_id, session.current_task_index, len(session.task_ids))
        return session

    async def finish_session(
        self,
        session_id: str,
        auto: bool = False,
        now: Optional[datetime] = None,
    ) -> Tuple[Session, bool]:
        """
        Submit a session and lock its responses.

        Returns (session, changed); changed is False when the session was already submitted.
        """
        session = await self.get_session(session_id)
        if session.is_completed and session.status == SessionStatus.SUBMITTED:
            return session, False

        loaded_version = session.version
        now = now or utcnow()
        session.status = SessionStatus.SUBMITTED
        session.is_completed = True
        session.auto_finished = auto
        session.finished_at = now
        session.updated_at = now
        for r in session.responses:
            r.locked = True
            r.submitted_at = r.submitted_at or now

        await self._store.save_session(session, loaded_version)
        logger.info("Session %s submitted (%s)", session.id, "auto" if auto else "manual")
        return session, True

    async def update_posteriors(self, session_id: str, posteriors: Dict[str, float]) -> Session:
        """Write externally recalculated Bayesian-network posteriors into the student model."""
        session = await self.get_session(session_id)
        if session.is_completed:
            raise ValidationError(f"Session {session_id} is completed; its student model is locked")
        _validate_posteriors(posteriors)

        loaded_version = session.version
        for node_id, p in posteriors.items():
            session.student_model.set_posterior(node_id, float(p))
        session.updated_at = utcnow()
        await self._store.save_session(session, loaded_version)
        return session

    # ---- Catalog -------------------------------------------------------------
    async def load_catalog(self, session: Session, extra_question_ids: Iterable[str] = ()) -> Catalog:
        """Load every task, task model, question and evidence model reachable from the session."""
        tasks = await self._store.get_records("tasks", session.task_ids)
        task_models = await self._store.get_records(
            "taskModels", [t.task_model_id for t in tasks if t.task_model_id]
        )
        question_ids = [t.question_id for t in tasks if t.question_id]
        question_ids += [r.question_id for r in session.responses if r.question_id]
        question_ids += list(extra_question_ids)
        questions = await self._store.get_records("questions", question_ids)
        evidence_models = await self._store.get_records(
            "evidenceModels", [em_id for tm in task_models for em_id in tm.evidence_model_ids]
        )
        return Catalog.build(tasks, task_models, questions, evidence_models)

    async def put_record(self, kind: str, document: Dict[str, Any]) -> Any:
        record_type = RECORD_TYPES.get(kind)
        if record_type is None:
            raise NotFoundError(f"Unknown record kind {kind!r}")
        try:
            record = record_type.from_document(document)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid {kind} document: {e!r}") from e
        return await self._store.put_record(kind, record)

    async def list_records(self, kind: str) -> List[Any]:
        if kind not in RECORD_TYPES:
            raise NotFoundError(f"Unknown record kind {kind!r}")
        return await self._store.list_records(kind)
