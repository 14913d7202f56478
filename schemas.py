"""
Pydantic models for the engine API.

Wire names are camelCase (taskIds, selectionStrategy, scoredValue, ...);
snake_case names are accepted on input too.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.records import CalibrationLog, Response, Session


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


# ---- Requests ----

class CreateSessionRequest(ApiModel):
    task_ids: List[str]
    selection_strategy: str = "fixed"             # fixed | IRT | BayesianNetwork
    student_id: Optional[str] = None
    end_time: Optional[datetime] = None           # Deadline for the auto-finish sweep
    bn_posteriors: Optional[Dict[str, float]] = None


class SubmitResponseRequest(ApiModel):
    task_id: str
    raw_answer: Any = None
    question_id: Optional[str] = None             # Item administered; drives the IRT update
    observation_id: Optional[str] = None
    scored_value: Optional[float] = None          # 1 => correct for IRT
    evidence_id: Optional[str] = None
    rubric_level: Any = None

    def to_response(self) -> Response:
        scored = self.scored_value
        if scored is not None and float(scored).is_integer():
            scored = int(scored)
        return Response(
            task_id=self.task_id,
            raw_answer=self.raw_answer,
            question_id=self.question_id,
            observation_id=self.observation_id,
            scored_value=scored,
            evidence_id=self.evidence_id,
            rubric_level=self.rubric_level,
        )


class PosteriorsRequest(ApiModel):
    posteriors: Dict[str, float]


class StudentAnswers(ApiModel):
    student_id: str
    answers: Dict[str, int]                       # questionId -> scored 0/1


class CalibrationRequest(ApiModel):
    responses: List[StudentAnswers] = Field(default_factory=list)


# ---- Responses ----

class CalibratedItem(ApiModel):
    id: str
    a: Optional[float] = None
    b: Optional[float] = None
    c: Optional[float] = None


class StudentModelPayload(ApiModel):
    irt_theta: Optional[float] = None
    bn_posteriors: Dict[str, float] = Field(default_factory=dict)


class SessionPayload(ApiModel):
    id: str
    student_id: Optional[str] = None
    task_ids: List[str]
    selection_strategy: str
    responses: List[Dict[str, Any]]               # Stored response documents
    current_task_index: int
    student_model: StudentModelPayload
    is_completed: bool
    status: str
    end_time: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    auto_finished: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int

    @classmethod
    def from_session(cls, session: Session) -> "SessionPayload":
        return cls.model_validate(session.to_document())


class NextTaskResponse(ApiModel):
    session_id: str
    task_id: Optional[str] = None
    done: bool                                    # True when no task is eligible


class FinishResponse(ApiModel):
    session: SessionPayload
    already_submitted: bool


class CalibrationLogPayload(ApiModel):
    id: str
    evidence_model_id: str
    evidence_model_name: Optional[str] = None
    model_type: Optional[str] = None
    updated_items: int
    timestamp: Optional[datetime] = None

    @classmethod
    def from_log(cls, log: CalibrationLog) -> "CalibrationLogPayload":
        return cls.model_validate(log.to_document())


class CalibrationResponse(ApiModel):
    model: Optional[str] = None                   # e.g. 1PL | 2PL | 3PL, as reported by the service
    items: List[CalibratedItem]
    updated_questions: List[str]
    log: CalibrationLogPayload


class AutoFinishResponse(ApiModel):
    finished: List[str]
