"""
Calibration intake.

A batch of scored responses is forwarded to the external IRT calibration
service together with the evidence model's measurement model. The item
parameters it returns are written back into question metadata, and each run
is logged.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import uuid

import httpx

from engine.errors import CalibrationServiceError, NotFoundError, ValidationError
from models.records import CalibrationLog, EvidenceModel, utcnow
from session_service import SessionService

logger = logging.getLogger(__name__)

ITEM_PARAMETERS = ("a", "b", "c")
CALIBRATE_PATH = "/irt/calibrate"


@dataclass
class CalibrationResult:
    model: Optional[str]
    items: List[Dict[str, Any]]
    updated_questions: List[str]
    log: CalibrationLog


async def _evidence_model(service: SessionService, evidence_model_id: str) -> EvidenceModel:
    found = await service.store.get_records("evidenceModels", [evidence_model_id])
    if not found:
        raise NotFoundError(f"EvidenceModel {evidence_model_id} not found")
    return found[0]


async def request_calibration(
    client: httpx.AsyncClient,
    evidence_model: EvidenceModel,
    responses: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    POST the response batch to the calibration service and return its JSON body.

    Raises:
        ValidationError: the service rejected the batch (its body carries `error`)
        CalibrationServiceError: transport failure or an unexpected reply
    """
    payload = {
        "responses": responses,
        "evidenceModel": {"id": evidence_model.id, "measurementModel": evidence_model.measurement_model},
    }
    try:
        resp = await client.post(CALIBRATE_PATH, json=payload)
    except httpx.HTTPError as e:
        raise CalibrationServiceError(f"Calibration request failed: {e}") from e

    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        raise ValidationError(f"Calibration rejected: {body['error']}")
    if resp.is_error or not isinstance(body, dict):
        raise CalibrationServiceError(
            f"Calibration service answered {resp.status_code} for evidence model {evidence_model.id}"
        )
    return body


async def apply_calibration(
    service: SessionService,
    evidence_model: EvidenceModel,
    model_name: Optional[str],
    items: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> tuple[CalibrationLog, List[str]]:
    """
    Store calibrated a/b/c for each item that matches a known question and log the run.

    Items naming unknown questions are ignored.
    """
    store = service.store
    for item in items:
        if "id" not in item:
            raise ValidationError(f"Calibrated item without id: {item!r}")

    now = now or utcnow()
    questions = await store.get_records("questions", [str(item["id"]) for item in items])
    by_id = {q.id: q for q in questions}
    updated: List[str] = []
    for item in items:
        question = by_id.get(str(item["id"]))
        if question is None:
            logger.debug("Calibration item %s has no matching question", item["id"])
            continue
        for name in ITEM_PARAMETERS:
            question.metadata[name] = item.get(name)
        question.updated_at = now
        await store.put_record("questions", question)
        updated.append(question.id)

    log = CalibrationLog(
        id=f"cal{uuid.uuid4().hex[:12]}",
        evidence_model_id=evidence_model.id,
        evidence_model_name=evidence_model.name or None,
        model_type=model_name,
        updated_items=len(updated),
        timestamp=now,
    )
    await store.put_record("calibrationLogs", log)
    logger.info("Calibration for %s (%s) updated %d questions",
                evidence_model.id, model_name, len(updated))
    return log, updated


async def calibrate(
    service: SessionService,
    client: httpx.AsyncClient,
    evidence_model_id: str,
    responses: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> CalibrationResult:
    evidence_model = await _evidence_model(service, evidence_model_id)
    if not responses:
        raise ValidationError("No responses provided for calibration")

    body = await request_calibration(client, evidence_model, responses)
    items = list(body.get("items") or [])
    log, updated = await apply_calibration(service, evidence_model, body.get("model"), items, now=now)
    return CalibrationResult(model=body.get("model"), items=items, updated_questions=updated, log=log)


async def list_calibration_logs(service: SessionService) -> List[CalibrationLog]:
    return await service.store.list_records("calibrationLogs")
