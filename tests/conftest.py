from __future__ import annotations
import asyncio
from typing import Any, Dict, List

import pytest

from db.store import InMemoryStore
from engine.catalog import Catalog
from models.records import RECORD_TYPES
from session_service import SessionService

BN_EVIDENCE_MODEL = {
    "id": "em-bn",
    "name": "Fractions network",
    "measurementModel": {"type": "BayesianNetwork"},
    "evidences": [{"id": "ev-bn"}],
    "observations": [
        {"id": "obs1", "constructId": "fractions", "rubric": {"levels": ["low", "high"]}},
        {"id": "obs2", "constructId": "fractions"},
        {"id": "obs-nocpt", "constructId": "fractions"},
    ],
    "CPTs": {
        "obs1": {"p1": 0.8, "p0": 0.2},
        "obs2": {"p1": 0.9, "p0": 0.1},
    },
}

IRT_EVIDENCE_MODEL = {
    "id": "em-irt",
    "name": "Algebra scale",
    "measurementModel": {"type": "IRT"},
    "evidences": [{"id": "ev-irt"}],
    "observations": [{"id": "obs-irt", "constructId": "algebra"}],
}

CATALOG_DOCUMENTS: Dict[str, List[Dict[str, Any]]] = {
    "evidenceModels": [BN_EVIDENCE_MODEL, IRT_EVIDENCE_MODEL],
    "taskModels": [
        {"id": "tm-irt", "evidenceModelIds": ["em-irt"],
         "expectedObservations": [{"observationId": "obs-irt", "evidenceId": "ev-irt"}]},
        {"id": "tm-bn1", "evidenceModelIds": ["em-bn"],
         "expectedObservations": [{"observationId": "obs1", "evidenceId": "ev-bn"}]},
        {"id": "tm-bn2", "evidenceModelIds": ["em-bn"],
         "expectedObservations": [{"observationId": "obs2", "evidenceId": "ev-bn"}]},
    ],
    "questions": [
        {"id": "q1", "stem": "Easy", "metadata": {"a": 1.0, "b": -1.0, "c": 0.0}},
        {"id": "q2", "stem": "Medium", "metadata": {"a": 1.0, "b": 0.0, "c": 0.0}},
        {"id": "q3", "stem": "Hard", "metadata": {"a": 1.0, "b": 1.0, "c": 0.0}},
        {"id": "q-nob", "stem": "Uncalibrated", "metadata": {"a": 1.0}},
    ],
    "tasks": [
        {"id": "t1", "taskModelId": "tm-irt", "questionId": "q1"},
        {"id": "t2", "taskModelId": "tm-irt", "questionId": "q2"},
        {"id": "t3", "taskModelId": "tm-irt", "questionId": "q3"},
        {"id": "t4", "taskModelId": "tm-bn1"},
        {"id": "t5", "taskModelId": "tm-bn2"},
        {"id": "t-nob", "taskModelId": "tm-irt", "questionId": "q-nob"},
    ],
    "students": [
        {"id": "st1", "name": "Ada", "classId": "c1", "districtId": "d1"},
        {"id": "st2", "name": "Ben", "classId": "c1", "districtId": "d1"},
        {"id": "st3", "name": "Cai", "classId": "c2", "districtId": "d1"},
        {"id": "st4", "name": "Dee", "districtId": "d1"},
    ],
}


def records(kind: str) -> list:
    return [RECORD_TYPES[kind].from_document(doc) for doc in CATALOG_DOCUMENTS[kind]]


async def seed(store: InMemoryStore) -> InMemoryStore:
    for kind in CATALOG_DOCUMENTS:
        for record in records(kind):
            await store.put_record(kind, record)
    return store


@pytest.fixture
def catalog() -> Catalog:
    return Catalog.build(
        tasks=records("tasks"),
        task_models=records("taskModels"),
        questions=records("questions"),
        evidence_models=records("evidenceModels"),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return asyncio.run(seed(InMemoryStore()))


@pytest.fixture
def service(store) -> SessionService:
    return SessionService(store)
