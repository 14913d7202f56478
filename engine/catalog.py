"""
Read-only lookups handed to the engine for one operation.

The service layer loads every record a session can touch before calling the
engine; the engine itself never talks to a store.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from models.records import EvidenceModel, Question, Task, TaskModel


@dataclass
class Catalog:
    tasks: Dict[str, Task] = field(default_factory=dict)
    task_models: Dict[str, TaskModel] = field(default_factory=dict)
    questions: Dict[str, Question] = field(default_factory=dict)
    evidence_models: Dict[str, EvidenceModel] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        tasks: Iterable[Task] = (),
        task_models: Iterable[TaskModel] = (),
        questions: Iterable[Question] = (),
        evidence_models: Iterable[EvidenceModel] = (),
    ) -> "Catalog":
        return cls(
            tasks={t.id: t for t in tasks},
            task_models={tm.id: tm for tm in task_models},
            questions={q.id: q for q in questions},
            evidence_models={em.id: em for em in evidence_models},
        )

    def task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    def task_model(self, task_model_id: Optional[str]) -> Optional[TaskModel]:
        if task_model_id is None:
            return None
        return self.task_models.get(task_model_id)

    def question(self, question_id: Optional[str]) -> Optional[Question]:
        if question_id is None:
            return None
        return self.questions.get(question_id)

    def question_for_task(self, task_id: str) -> Optional[Question]:
        task = self.task(task_id)
        return self.question(task.question_id) if task else None

    def evidence_models_for(self, task_model: TaskModel) -> List[EvidenceModel]:
        """Evidence models linked to a task model, in link order; dangling links are ignored."""
        return [
            self.evidence_models[em_id]
            for em_id in task_model.evidence_model_ids
            if em_id in self.evidence_models
        ]
