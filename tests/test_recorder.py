from datetime import datetime, timezone

import pytest

from engine.errors import NotFoundError, ValidationError
from engine.recorder import record_response
from models.records import Response, SelectionStrategy, Session
from models.student_model import StudentModel

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _session(task_ids=("t1", "t2", "t3"), strategy=SelectionStrategy.IRT, **kwargs) -> Session:
    return Session(id="s1", task_ids=list(task_ids), selection_strategy=strategy, **kwargs)


def test_appends_response_and_advances_index(catalog):
    session = _session()
    record_response(session, Response(task_id="t1", raw_answer="B"), catalog, now=NOW)
    assert len(session.responses) == 1
    assert session.current_task_index == 1
    assert session.responses[0].timestamp == NOW
    assert session.responses[0].locked is False
    assert session.updated_at == NOW


def test_index_is_clamped_to_task_count(catalog):
    session = _session(task_ids=["t1"], current_task_index=1)
    record_response(session, Response(task_id="t1"), catalog, now=NOW)
    assert session.current_task_index == 1


def test_irt_update_from_default_theta(catalog):
    session = _session()
    record_response(session, Response(task_id="t2", question_id="q2", scored_value=1), catalog, now=NOW)
    assert session.student_model.irt_theta == pytest.approx(0.05)


def test_irt_update_treats_anything_but_one_as_incorrect(catalog):
    session = _session(student_model=StudentModel(irt_theta=0.0))
    record_response(session, Response(task_id="t2", question_id="q2", scored_value=2), catalog, now=NOW)
    assert session.student_model.irt_theta == pytest.approx(-0.05)


def test_irt_update_skipped_without_difficulty(catalog):
    session = _session(task_ids=["t-nob"])
    record_response(session, Response(task_id="t-nob", question_id="q-nob", scored_value=1), catalog, now=NOW)
    assert session.student_model.irt_theta is None
    assert len(session.responses) == 1


def test_irt_update_skipped_without_question(catalog):
    session = _session()
    record_response(session, Response(task_id="t1", scored_value=1), catalog, now=NOW)
    assert session.student_model.irt_theta is None


def test_other_strategies_leave_theta_alone(catalog):
    session = _session(strategy=SelectionStrategy.FIXED)
    record_response(session, Response(task_id="t2", question_id="q2", scored_value=1), catalog, now=NOW)
    assert session.student_model.irt_theta is None


def test_posteriors_are_not_written(catalog):
    session = _session(task_ids=["t4", "t5"], strategy=SelectionStrategy.BAYESIAN_NETWORK,
                       student_model=StudentModel(bn_posteriors={"obs1": 0.6}))
    record_response(session, Response(task_id="t4", observation_id="obs1", scored_value=1), catalog, now=NOW)
    assert session.student_model.bn_posteriors == {"obs1": 0.6}


def test_valid_observation_evidence_and_rubric_level(catalog):
    session = _session(task_ids=["t4"], strategy=SelectionStrategy.BAYESIAN_NETWORK)
    response = Response(task_id="t4", observation_id="obs1", evidence_id="ev-bn", rubric_level="high")
    record_response(session, response, catalog, now=NOW)
    assert session.responses == [response]


@pytest.mark.parametrize("response, error", [
    (Response(task_id="t9"), ValidationError),
    (Response(task_id="t4", observation_id="obs-irt"), ValidationError),
    (Response(task_id="t4", observation_id="obs1", rubric_level="medium"), ValidationError),
    (Response(task_id="t4", observation_id="obs2", rubric_level="low"), ValidationError),
    (Response(task_id="t4", evidence_id="ev-irt"), ValidationError),
    (Response(task_id="t4", question_id="q-unknown"), NotFoundError),
])
def test_rejected_response_leaves_session_unchanged(catalog, response, error):
    session = _session(task_ids=["t4"], strategy=SelectionStrategy.BAYESIAN_NETWORK)
    before = session.to_document()
    with pytest.raises(error):
        record_response(session, response, catalog, now=NOW)
    assert session.to_document() == before


def test_completed_session_rejects_responses(catalog):
    session = _session(is_completed=True)
    before = session.to_document()
    with pytest.raises(ValidationError):
        record_response(session, Response(task_id="t1"), catalog, now=NOW)
    assert session.to_document() == before


def test_task_missing_from_catalog_is_not_found(catalog):
    session = _session(task_ids=["ghost"])
    with pytest.raises(NotFoundError):
        record_response(session, Response(task_id="ghost", observation_id="obs1"), catalog, now=NOW)
    assert session.responses == []
