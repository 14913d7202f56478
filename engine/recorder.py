"""
Response recording.

Validation runs to completion before the session is touched, so a rejected
response leaves the session exactly as it was.
"""
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
import logging

from engine import irt
from engine.catalog import Catalog
from engine.errors import NotFoundError, ValidationError
from models.records import EvidenceModel, Response, SelectionStrategy, Session, utcnow

logger = logging.getLogger(__name__)


def _linked_evidence_models(response: Response, catalog: Catalog) -> List[EvidenceModel]:
    task = catalog.task(response.task_id)
    if task is None:
        raise NotFoundError(f"Task {response.task_id} not found")
    task_model = catalog.task_model(task.task_model_id)
    if task_model is None:
        raise NotFoundError(f"Task model {task.task_model_id} for task {task.id} not found")
    return catalog.evidence_models_for(task_model)


def validate_response(session: Session, response: Response, catalog: Catalog) -> None:
    if session.is_completed:
        raise ValidationError(f"Session {session.id} is completed; responses are locked")
    if response.task_id not in session.task_ids:
        raise ValidationError(f"Task {response.task_id} is not part of session {session.id}")
    if response.question_id is not None and catalog.question(response.question_id) is None:
        raise NotFoundError(f"Question {response.question_id} not found")

    if response.observation_id is None and response.evidence_id is None:
        return
    models = _linked_evidence_models(response, catalog)

    if response.observation_id is not None:
        observation = next(
            (o for em in models if (o := em.observation(response.observation_id)) is not None),
            None,
        )
        if observation is None:
            raise ValidationError(
                f"Observation {response.observation_id} is not defined for task {response.task_id}"
            )
        if response.rubric_level is not None and not observation.declares_level(response.rubric_level):
            raise ValidationError(
                f"Rubric level {response.rubric_level!r} is not declared by observation {observation.id}"
            )

    if response.evidence_id is not None:
        if not any(response.evidence_id in em.evidence_ids for em in models):
            raise ValidationError(
                f"Evidence {response.evidence_id} is not defined for task {response.task_id}"
            )


def record_response(
    session: Session,
    response: Response,
    catalog: Catalog,
    now: Optional[datetime] = None,
) -> Session:
    """
    Append a response and update the student model.

    Raises ValidationError or NotFoundError without modifying the session.
    Bayesian-network posteriors are not written here; they change only through
    an explicit posterior update.
    """
    validate_response(session, response, catalog)

    now = now or utcnow()
    response.timestamp = now
    response.locked = False
    session.responses.append(response)
    session.current_task_index = min(session.current_task_index + 1, len(session.task_ids))
    session.updated_at = now

    if session.selection_strategy == SelectionStrategy.IRT and response.question_id is not None:
        params = irt.ItemParams.from_metadata(catalog.question(response.question_id).metadata)
        if params is None:
            logger.debug("IRT update skipped: question %s has no numeric difficulty", response.question_id)
        else:
            theta = session.student_model.theta()
            y = 1 if response.scored_value == 1 else 0
            session.student_model.irt_theta = irt.update_theta(theta, params.a, params.b, params.c, y)
            logger.debug("Session %s theta %.4f -> %.4f after %s (y=%d)", session.id, theta,
                         session.student_model.irt_theta, response.question_id, y)
    return session
