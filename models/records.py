"""
Domain records shared by the engine, the service layer and the stores.

Records are plain dataclasses. `from_document` / `to_document` convert to and
from the camelCase documents the route layer and the persistence collaborator
exchange, so the field names stay interoperable with existing clients.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from models.student_model import StudentModel


class SelectionStrategy(str, Enum):
    FIXED = "fixed"
    IRT = "IRT"
    BAYESIAN_NETWORK = "BayesianNetwork"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    REOPENED = "reopened"


BAYESIAN_NETWORK_MODEL = "BayesianNetwork"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    # Naive timestamps are treated as UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _drop_none(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if v is not None}


# ---- Sessions ----------------------------------------------------------------

@dataclass
class Response:
    task_id: str
    raw_answer: Any = None
    question_id: Optional[str] = None
    observation_id: Optional[str] = None
    scored_value: Optional[int] = None
    evidence_id: Optional[str] = None
    rubric_level: Any = None
    timestamp: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    locked: bool = False

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Response":
        return cls(
            task_id=str(doc["taskId"]),
            raw_answer=doc.get("rawAnswer"),
            question_id=doc.get("questionId"),
            observation_id=doc.get("observationId"),
            scored_value=doc.get("scoredValue"),
            evidence_id=doc.get("evidenceId"),
            rubric_level=doc.get("rubricLevel"),
            timestamp=parse_datetime(doc.get("timestamp")),
            submitted_at=parse_datetime(doc.get("submittedAt")),
            locked=bool(doc.get("locked", False)),
        )

    def to_document(self) -> Dict[str, Any]:
        doc = _drop_none({
            "taskId": self.task_id,
            "questionId": self.question_id,
            "observationId": self.observation_id,
            "scoredValue": self.scored_value,
            "evidenceId": self.evidence_id,
            "rubricLevel": self.rubric_level,
            "timestamp": format_datetime(self.timestamp),
            "submittedAt": format_datetime(self.submitted_at),
        })
        doc["rawAnswer"] = self.raw_answer
        doc["locked"] = self.locked
        return doc


@dataclass
class Session:
    id: str
    task_ids: List[str]
    selection_strategy: SelectionStrategy = SelectionStrategy.FIXED
    student_id: Optional[str] = None
    responses: List[Response] = field(default_factory=list)
    current_task_index: int = 0
    student_model: StudentModel = field(default_factory=StudentModel)
    is_completed: bool = False
    status: SessionStatus = SessionStatus.IN_PROGRESS
    end_time: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    auto_finished: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def answered_task_ids(self) -> set[str]:
        return {r.task_id for r in self.responses}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Session":
        return cls(
            id=str(doc["id"]),
            student_id=doc.get("studentId"),
            task_ids=[str(t) for t in doc.get("taskIds") or []],
            responses=[Response.from_document(r) for r in doc.get("responses") or []],
            current_task_index=int(doc.get("currentTaskIndex") or 0),
            selection_strategy=SelectionStrategy(doc.get("selectionStrategy") or SelectionStrategy.FIXED.value),
            student_model=StudentModel.from_document(doc.get("studentModel")),
            is_completed=bool(doc.get("isCompleted", False)),
            status=SessionStatus(doc.get("status") or SessionStatus.IN_PROGRESS.value),
            end_time=parse_datetime(doc.get("endTime")),
            finished_at=parse_datetime(doc.get("finishedAt")),
            auto_finished=bool(doc.get("autoFinished", False)),
            created_at=parse_datetime(doc.get("createdAt")),
            updated_at=parse_datetime(doc.get("updatedAt")),
            version=int(doc.get("version") or 0),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "taskIds": list(self.task_ids),
            "responses": [r.to_document() for r in self.responses],
            "currentTaskIndex": self.current_task_index,
            "selectionStrategy": self.selection_strategy.value,
            "studentModel": self.student_model.to_document(),
            "isCompleted": self.is_completed,
            "status": self.status.value,
            "endTime": format_datetime(self.end_time),
            "finishedAt": format_datetime(self.finished_at),
            "autoFinished": self.auto_finished,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
            "version": self.version,
        }


# ---- Read-only inputs to the engine -----------------------------------------

@dataclass
class Task:
    id: str
    task_model_id: Optional[str] = None
    question_id: Optional[str] = None
    title: str = ""
    end_time: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Task":
        return cls(
            id=str(doc["id"]),
            task_model_id=doc.get("taskModelId"),
            question_id=doc.get("questionId"),
            title=doc.get("title") or "",
            end_time=parse_datetime(doc.get("endTime")),
        )

    def to_document(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "taskModelId": self.task_model_id,
            "questionId": self.question_id,
            "title": self.title,
            "endTime": format_datetime(self.end_time),
        })


@dataclass(frozen=True)
class ExpectedObservation:
    observation_id: str
    evidence_id: Optional[str] = None


@dataclass
class TaskModel:
    id: str
    evidence_model_ids: List[str] = field(default_factory=list)
    expected_observations: List[ExpectedObservation] = field(default_factory=list)
    name: str = ""

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "TaskModel":
        return cls(
            id=str(doc["id"]),
            name=doc.get("name") or "",
            evidence_model_ids=[str(e) for e in doc.get("evidenceModelIds") or []],
            expected_observations=[
                ExpectedObservation(observation_id=str(eo["observationId"]), evidence_id=eo.get("evidenceId"))
                for eo in doc.get("expectedObservations") or []
            ],
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "evidenceModelIds": list(self.evidence_model_ids),
            "expectedObservations": [
                _drop_none({"observationId": eo.observation_id, "evidenceId": eo.evidence_id})
                for eo in self.expected_observations
            ],
        }


def _level_key(level: Any) -> str:
    # Rubric levels are either scalars or {"label": ...} objects
    if isinstance(level, dict):
        level = level.get("label", level.get("id", level.get("name")))
    return str(level)


@dataclass
class Observation:
    id: str
    construct_id: str = ""
    rubric_levels: Optional[List[Any]] = None

    def declares_level(self, level: Any) -> bool:
        if not self.rubric_levels:
            return False
        wanted = _level_key(level)
        return any(_level_key(lv) == wanted for lv in self.rubric_levels)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Observation":
        rubric = doc.get("rubric") or {}
        return cls(
            id=str(doc["id"]),
            construct_id=doc.get("constructId") or "",
            rubric_levels=list(rubric["levels"]) if rubric.get("levels") else None,
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"id": self.id, "constructId": self.construct_id}
        doc["rubric"] = {"levels": list(self.rubric_levels)} if self.rubric_levels else None
        return doc


@dataclass(frozen=True)
class Cpt:
    """P(observed=1 | node=1) and P(observed=1 | node=0); either side may be absent."""
    p1: Optional[float] = None
    p0: Optional[float] = None


@dataclass
class EvidenceModel:
    id: str
    name: str = ""
    evidence_ids: List[str] = field(default_factory=list)
    observations: List[Observation] = field(default_factory=list)
    measurement_model: Dict[str, Any] = field(default_factory=dict)
    cpts: Dict[str, Cpt] = field(default_factory=dict)

    @property
    def measurement_type(self) -> Optional[str]:
        return self.measurement_model.get("type")

    def is_bayesian_network(self) -> bool:
        return self.measurement_type == BAYESIAN_NETWORK_MODEL

    def observation(self, observation_id: str) -> Optional[Observation]:
        return next((o for o in self.observations if o.id == observation_id), None)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "EvidenceModel":
        measurement = dict(doc.get("measurementModel") or {})
        raw_cpts = doc.get("CPTs")
        if raw_cpts is None:
            raw_cpts = measurement.pop("CPTs", None) or {}
        return cls(
            id=str(doc["id"]),
            name=doc.get("name") or "",
            evidence_ids=[str(e["id"]) for e in doc.get("evidences") or []],
            observations=[Observation.from_document(o) for o in doc.get("observations") or []],
            measurement_model=measurement,
            cpts={
                str(node): Cpt(p1=entry.get("p1"), p0=entry.get("p0"))
                for node, entry in raw_cpts.items()
                if entry is not None
            },
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "evidences": [{"id": e} for e in self.evidence_ids],
            "observations": [o.to_document() for o in self.observations],
            "measurementModel": dict(self.measurement_model),
            "CPTs": {node: _drop_none({"p1": c.p1, "p0": c.p0}) for node, c in self.cpts.items()},
        }


@dataclass
class Question:
    id: str
    stem: str = ""
    options: List[str] = field(default_factory=list)
    answer_key: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Question":
        return cls(
            id=str(doc["id"]),
            stem=doc.get("stem") or "",
            options=list(doc.get("options") or []),
            answer_key=doc.get("answerKey"),
            metadata=dict(doc.get("metadata") or {}),
            updated_at=parse_datetime(doc.get("updatedAt")),
        )

    def to_document(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "stem": self.stem,
            "options": list(self.options),
            "answerKey": self.answer_key,
            "metadata": dict(self.metadata),
            "updatedAt": format_datetime(self.updated_at),
        })


@dataclass
class Student:
    id: str
    name: str = ""
    class_id: Optional[str] = None
    district_id: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Student":
        return cls(
            id=str(doc["id"]),
            name=doc.get("name") or "",
            class_id=doc.get("classId"),
            district_id=doc.get("districtId"),
        )

    def to_document(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "name": self.name,
            "classId": self.class_id,
            "districtId": self.district_id,
        })


@dataclass
class CalibrationLog:
    id: str
    evidence_model_id: str
    model_type: Optional[str] = None
    evidence_model_name: Optional[str] = None
    updated_items: int = 0
    timestamp: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "CalibrationLog":
        return cls(
            id=str(doc["id"]),
            evidence_model_id=str(doc["evidenceModelId"]),
            model_type=doc.get("modelType"),
            evidence_model_name=doc.get("evidenceModelName"),
            updated_items=int(doc.get("updatedItems") or 0),
            timestamp=parse_datetime(doc.get("timestamp")),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "evidenceModelId": self.evidence_model_id,
            "evidenceModelName": self.evidence_model_name,
            "modelType": self.model_type,
            "updatedItems": self.updated_items,
            "timestamp": format_datetime(self.timestamp),
        }


# Record kinds as named by the store and the catalog routes
RECORD_TYPES = {
    "tasks": Task,
    "taskModels": TaskModel,
    "questions": Question,
    "evidenceModels": EvidenceModel,
    "students": Student,
    "calibrationLogs": CalibrationLog,
}
