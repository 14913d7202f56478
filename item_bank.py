"""
Item bank adapter:
- Turns a loaded question bank into Question records (IRT params in metadata a/b/c).
- Seeds a store with them at startup.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import pandas as pd

from dataset_loader import (
    DEFAULT_OPTION_LABELS,
    load_dataset,
    normalize_key,
    option_column,
)
from db.store import Store
from models.records import Question, utcnow

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["Question_ID", "Stem", "IRT_a", "IRT_b", "IRT_c"]
_BOLD_ANSWER_COLUMN = "__bold_answer"

# Optional descriptive columns copied into metadata when present
_METADATA_COLUMNS = {
    "Module": "module",
    "Reference": "reference",
    "Bloom_Cat": "bloomCategory",
    "Figure": "figure",
}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _safe_str(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    text = str(value).strip()
    return text or None


def _float_or_none(value: Any) -> Optional[float]:
    if _is_missing(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _question_from_row(row: pd.Series, now) -> Question:
    question_id = normalize_key(row.get("Question_ID"))
    options = [
        _safe_str(row.get(option_column(label))) or ""
        for label in DEFAULT_OPTION_LABELS
        if option_column(label) in row.index
    ]

    metadata: Dict[str, Any] = {
        "a": _float_or_none(row.get("IRT_a")),
        "b": _float_or_none(row.get("IRT_b")),
        "c": _float_or_none(row.get("IRT_c")),
    }
    for column, key in _METADATA_COLUMNS.items():
        metadata[key] = _safe_str(row.get(column))
    metadata = {k: v for k, v in metadata.items() if v is not None}

    answer_key = _safe_str(row.get("Answer")) or _safe_str(row.get(_BOLD_ANSWER_COLUMN))
    return Question(
        id=question_id,
        stem=_safe_str(row.get("Stem")) or "",
        options=options,
        answer_key=answer_key,
        metadata=metadata,
        updated_at=now,
    )


def load_question_bank(path: str | Path) -> List[Question]:
    df = load_dataset(
        path,
        required_columns=REQUIRED_COLUMNS,
        derive_answer_from_bold=True,
        answer_column=_BOLD_ANSWER_COLUMN,
    )
    now = utcnow()
    questions = [_question_from_row(row, now) for _, row in df.iterrows()]
    missing_b = [q.id for q in questions if "b" not in q.metadata]
    if missing_b:
        logger.warning("%d questions have no IRT_b and are not IRT-eligible: %s", len(missing_b), missing_b)
    return questions


async def seed_question_bank(store: Store, path: str | Path) -> int:
    questions = load_question_bank(path)
    for question in questions:
        await store.put_record("questions", question)
    logger.info("Seeded %d questions from %s", len(questions), path)
    return len(questions)
