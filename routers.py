"""
FastAPI routes for the engine.

We expose (under /v1):
- GET  /health
- POST /sessions, GET /sessions/{id}, GET /sessions/{id}/next-task
- POST /sessions/{id}/responses, POST /sessions/{id}/finish, POST /sessions/{id}/force-finish
- PUT  /sessions/{id}/posteriors      (externally recalculated BN posteriors)
- PUT/GET /catalog/{kind}             (tasks, taskModels, questions, evidenceModels, students)
- POST /calibrations/{evidenceModelId}, GET /calibrations/logs
- GET  /reports/...
- POST /admin/auto-finish/run

ASSUMPTION: No auth. Add middleware later if needed.
"""
from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request

from config import settings
from engine.errors import CalibrationServiceError, ConcurrentUpdateError, NotFoundError, ValidationError
from schemas import (
    AutoFinishResponse,
    CalibrationLogPayload,
    CalibrationRequest,
    CalibrationResponse,
    CreateSessionRequest,
    FinishResponse,
    NextTaskResponse,
    PosteriorsRequest,
    SessionPayload,
    SubmitResponseRequest,
)
from service import reports
from service.auto_finish import auto_finish_due_sessions
from service.calibration import calibrate, list_calibration_logs
from session_service import SessionService

router = APIRouter(tags=["engine"])

# Calibration logs are written by the calibration intake only
_CATALOG_KINDS = ("tasks", "taskModels", "questions", "evidenceModels", "students")


def get_service(request: Request) -> SessionService:
    return request.app.state.service


def get_calibration_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.calibration_client


@contextmanager
def domain_errors() -> Iterator[None]:
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ConcurrentUpdateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except CalibrationServiceError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e


@router.get("/health")
def health() -> dict:
    return {"status": "ok", "service": settings.service_name, "version": settings.version}


# ---- Sessions ----

@router.post("/sessions", response_model=SessionPayload, status_code=201)
async def create_session(
    payload: CreateSessionRequest, service: SessionService = Depends(get_service)
) -> SessionPayload:
    with domain_errors():
        session = await service.create_session(
            task_ids=payload.task_ids,
            selection_strategy=payload.selection_strategy,
            student_id=payload.student_id,
            end_time=payload.end_time,
            posteriors=payload.bn_posteriors,
        )
    return SessionPayload.from_session(session)


@router.get("/sessions/{session_id}", response_model=SessionPayload)
async def get_session(session_id: str, service: SessionService = Depends(get_service)) -> SessionPayload:
    with domain_errors():
        session = await service.get_session(session_id)
    return SessionPayload.from_session(session)


@router.get("/sessions/{session_id}/next-task", response_model=NextTaskResponse)
async def next_task(session_id: str, service: SessionService = Depends(get_service)) -> NextTaskResponse:
    with domain_errors():
        task_id = await service.next_task(session_id)
    return NextTaskResponse(session_id=session_id, task_id=task_id, done=task_id is None)


@router.post("/sessions/{session_id}/responses", response_model=SessionPayload)
async def submit_response(
    session_id: str, payload: SubmitResponseRequest, service: SessionService = Depends(get_service)
) -> SessionPayload:
    with domain_errors():
        session = await service.submit_response(session_id, payload.to_response())
    return SessionPayload.from_session(session)


@router.post("/sessions/{session_id}/finish", response_model=FinishResponse)
async def finish_session(session_id: str, service: SessionService = Depends(get_service)) -> FinishResponse:
    with domain_errors():
        session, changed = await service.finish_session(session_id)
    return FinishResponse(session=SessionPayload.from_session(session), already_submitted=not changed)


@router.post("/sessions/{session_id}/force-finish", response_model=FinishResponse)
async def force_finish_session(
    session_id: str, service: SessionService = Depends(get_service)
) -> FinishResponse:
    """Instructor override: submit the session now, deadline or not. Not marked autoFinished."""
    with domain_errors():
        session, changed = await service.finish_session(session_id)
    return FinishResponse(session=SessionPayload.from_session(session), already_submitted=not changed)


@router.put("/sessions/{session_id}/posteriors", response_model=SessionPayload)
async def update_posteriors(
    session_id: str, payload: PosteriorsRequest, service: SessionService = Depends(get_service)
) -> SessionPayload:
    with domain_errors():
        session = await service.update_posteriors(session_id, payload.posteriors)
    return SessionPayload.from_session(session)


# ---- Catalog ----

def _check_kind(kind: str) -> None:
    if kind not in _CATALOG_KINDS:
        raise HTTPException(status_code=404, detail=f"Unknown catalog kind {kind!r}")


@router.put("/catalog/{kind}")
async def put_catalog_record(
    kind: str, document: Dict[str, Any], service: SessionService = Depends(get_service)
) -> Dict[str, Any]:
    _check_kind(kind)
    with domain_errors():
        record = await service.put_record(kind, document)
    return record.to_document()


@router.get("/catalog/{kind}")
async def list_catalog_records(kind: str, service: SessionService = Depends(get_service)) -> List[Dict[str, Any]]:
    _check_kind(kind)
    with domain_errors():
        records = await service.list_records(kind)
    return [r.to_document() for r in records]


# ---- Calibration ----

@router.post("/calibrations/{evidence_model_id}", response_model=CalibrationResponse)
async def calibrate_evidence_model(
    evidence_model_id: str,
    payload: CalibrationRequest,
    service: SessionService = Depends(get_service),
    client: httpx.AsyncClient = Depends(get_calibration_client),
) -> CalibrationResponse:
    """Forward a response batch to the calibration service and store the item parameters it returns."""
    with domain_errors():
        result = await calibrate(
            service,
            client,
            evidence_model_id,
            [r.model_dump(by_alias=True) for r in payload.responses],
        )
    return CalibrationResponse(
        model=result.model,
        items=result.items,
        updated_questions=result.updated_questions,
        log=CalibrationLogPayload.from_log(result.log),
    )


@router.get("/calibrations/logs", response_model=List[CalibrationLogPayload])
async def calibration_logs(service: SessionService = Depends(get_service)) -> List[CalibrationLogPayload]:
    return [CalibrationLogPayload.from_log(log) for log in await list_calibration_logs(service)]


# ---- Reports ----

@router.get("/reports/sessions/{session_id}")
async def session_report(session_id: str, service: SessionService = Depends(get_service)) -> Dict[str, Any]:
    with domain_errors():
        return await reports.session_report(service, session_id)


@router.get("/reports/sessions/{session_id}/learner")
async def learner_feedback(session_id: str, service: SessionService = Depends(get_service)) -> Dict[str, Any]:
    with domain_errors():
        return await reports.learner_feedback(service, session_id)


@router.get("/reports/sessions/{session_id}/teacher")
async def teacher_report(session_id: str, service: SessionService = Depends(get_service)) -> Dict[str, Any]:
    with domain_errors():
        return await reports.teacher_report(service, session_id)


@router.get("/reports/classes/{class_id}")
async def class_report(class_id: str, service: SessionService = Depends(get_service)) -> Dict[str, Any]:
    with domain_errors():
        return await reports.class_report(service, class_id)


@router.get("/reports/districts/{district_id}")
async def district_report(district_id: str, service: SessionService = Depends(get_service)) -> Dict[str, Any]:
    with domain_errors():
        return await reports.district_report(service, district_id)


# ---- Admin ----

@router.post("/admin/auto-finish/run", response_model=AutoFinishResponse)
async def run_auto_finish(service: SessionService = Depends(get_service)) -> AutoFinishResponse:
    finished = await auto_finish_due_sessions(service)
    return AutoFinishResponse(finished=finished)
