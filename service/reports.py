"""
Session, learner, teacher, class and district reports.

Reports only read sessions and the student model; aggregation across sessions
goes through pandas frames (one row per theta, one row per node posterior).
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional
import math

import pandas as pd

from engine.bayes_net import binary_entropy
from engine.errors import NotFoundError
from models.records import SelectionStrategy, Session, Student
from session_service import SessionService

_THETA_COLUMNS = ["sessionId", "studentId", "classId", "theta"]
_POSTERIOR_COLUMNS = ["sessionId", "studentId", "classId", "node", "posterior", "entropy"]


def theta_level(theta: float) -> str:
    if theta > 1:
        return "Advanced"
    if theta > 0:
        return "Proficient"
    return "Needs Support"


def posterior_level(p: float) -> str:
    if p > 0.7:
        return "Strong"
    if p > 0.4:
        return "Developing"
    return "Needs Support"


def _irt_theta(session: Session) -> Optional[float]:
    if session.selection_strategy != SelectionStrategy.IRT:
        return None
    return session.student_model.irt_theta


def _bn_posteriors(session: Session) -> Dict[str, float]:
    if session.selection_strategy != SelectionStrategy.BAYESIAN_NETWORK:
        return {}
    return session.student_model.bn_posteriors


async def _student(service: SessionService, student_id: Optional[str]) -> Optional[Student]:
    if not student_id:
        return None
    found = await service.store.get_records("students", [student_id])
    return found[0] if found else None


async def _captured(service: SessionService, session: Session) -> List[Dict[str, Any]]:
    """Observations and evidence each task of the session is expected to produce."""
    catalog = await service.load_catalog(session)
    captured = []
    for task_id in session.task_ids:
        task = catalog.task(task_id)
        if task is None:
            continue
        task_model = catalog.task_model(task.task_model_id)
        expected = task_model.expected_observations if task_model else []
        captured.append({
            "sessionId": session.id,
            "studentId": session.student_id,
            "taskId": task.id,
            "taskModelId": task.task_model_id,
            "observationIds": [eo.observation_id for eo in expected],
            "evidenceIds": [eo.evidence_id for eo in expected if eo.evidence_id],
        })
    return captured


# ---- Single session ----------------------------------------------------------

async def session_report(service: SessionService, session_id: str) -> Dict[str, Any]:
    session = await service.get_session(session_id)
    student = await _student(service, session.student_id)
    report: Dict[str, Any] = {
        "sessionId": session.id,
        "student": {"id": student.id, "name": student.name} if student else None,
        "selectionStrategy": session.selection_strategy.value,
        "isCompleted": session.is_completed,
        "responses": [r.to_document() for r in session.responses],
        "captured": await _captured(service, session),
        "constructs": [],
        "recommendations": [],
    }

    theta = _irt_theta(session)
    if theta is not None:
        report["constructs"].append({"type": "IRT", "estimate": theta, "level": theta_level(theta)})
        report["recommendations"].append("Assign items near current theta for better precision.")

    posteriors = _bn_posteriors(session)
    for node, p in posteriors.items():
        report["constructs"].append({
            "type": "BayesianNetwork",
            "node": node,
            "probability": p,
            "level": posterior_level(p),
        })
    if posteriors:
        report["recommendations"].append("Focus on nodes with highest uncertainty.")

    if not report["recommendations"]:
        report["recommendations"].append("Complete more tasks for a fuller assessment.")
    return report


async def learner_feedback(service: SessionService, session_id: str) -> Dict[str, Any]:
    session = await service.get_session(session_id)
    feedback: Dict[str, Any] = {
        "sessionId": session.id,
        "summary": {},
        "strengths": [],
        "focusAreas": [],
        "nextSteps": [],
        "encouragement": "Great effort! Keep practicing.",
    }

    theta = _irt_theta(session)
    if theta is not None:
        feedback["summary"]["level"] = theta_level(theta)
        if theta > 1:
            feedback["summary"]["message"] = "Excellent! You're ready for challenging problems."
            feedback["strengths"].append("Core skills mastered")
            feedback["nextSteps"].append("Try advanced, multi-step problems.")
        elif theta > 0:
            feedback["summary"]["message"] = "Great work! You're showing good understanding."
        else:
            feedback["summary"]["message"] = "Don't worry, this is just a starting point."
            feedback["focusAreas"].append("Core skills practice")
            feedback["nextSteps"].append("Review basic exercises with examples.")

    for node, p in _bn_posteriors(session).items():
        if p > 0.7:
            feedback["strengths"].append(node)
        elif p < 0.4:
            feedback["focusAreas"].append(node)
    if session.selection_strategy == SelectionStrategy.BAYESIAN_NETWORK and feedback["focusAreas"]:
        feedback["nextSteps"].append(f"Practice more in: {', '.join(feedback['focusAreas'])}")
    return feedback


async def teacher_report(service: SessionService, session_id: str) -> Dict[str, Any]:
    session = await service.get_session(session_id)
    student = await _student(service, session.student_id)
    report: Dict[str, Any] = {
        "sessionId": session.id,
        "studentId": session.student_id,
        "studentName": student.name if student else None,
        "strategy": session.selection_strategy.value,
        "modelSummary": {},
        "responses": [r.to_document() for r in session.responses],
        "recommendations": {"groupLevel": [], "individualLevel": []},
    }
    individual = report["recommendations"]["individualLevel"]

    theta = _irt_theta(session)
    if theta is not None:
        n = len(session.responses)
        report["modelSummary"]["IRT"] = {
            "theta": theta,
            # Placeholder precision until calibrated standard errors are available
            "stderr": 1 / math.sqrt(n) if n > 0 else None,
            "level": theta_level(theta),
        }
        individual.append("Assign items near current theta for higher measurement precision.")

    posteriors = _bn_posteriors(session)
    if posteriors:
        report["modelSummary"]["BayesianNetwork"] = {
            node: {"posterior": p, "entropy": binary_entropy(p), "level": posterior_level(p)}
            for node, p in posteriors.items()
        }
        individual.append("Focus on nodes with highest entropy (uncertainty).")
        report["recommendations"]["groupLevel"].append(
            "Review group-level trends to identify systemic weaknesses."
        )

    if not report["modelSummary"]:
        individual.append("Complete more tasks to build a measurable profile.")
    return report


# ---- Aggregates --------------------------------------------------------------

def _frames(sessions: List[Session], class_of: Dict[str, Optional[str]]) -> tuple[pd.DataFrame, pd.DataFrame]:
    theta_rows = []
    posterior_rows = []
    for s in sessions:
        class_id = class_of.get(s.student_id)
        theta = _irt_theta(s)
        if theta is not None:
            theta_rows.append((s.id, s.student_id, class_id, theta))
        for node, p in _bn_posteriors(s).items():
            posterior_rows.append((s.id, s.student_id, class_id, node, p, binary_entropy(p)))
    return (
        pd.DataFrame(theta_rows, columns=_THETA_COLUMNS),
        pd.DataFrame(posterior_rows, columns=_POSTERIOR_COLUMNS),
    )


def _theta_summary(df: pd.DataFrame, with_distribution: bool = False) -> Optional[Dict[str, Any]]:
    if df.empty:
        return None
    theta = df["theta"]
    summary: Dict[str, Any] = {
        "count": int(theta.size),
        "mean": float(theta.mean()),
        "stddev": float(theta.std(ddof=0)),
    }
    if with_distribution:
        summary["distribution"] = {
            "below0": int((theta < 0).sum()),
            "between0and1": int(((theta >= 0) & (theta <= 1)).sum()),
            "above1": int((theta > 1).sum()),
        }
    return summary


def _node_summary(df: pd.DataFrame, with_level: bool = False) -> Dict[str, Dict[str, Any]]:
    if df.empty:
        return {}
    grouped = df.groupby("node", sort=False).agg(
        count=("posterior", "size"),
        mean=("posterior", "mean"),
        meanEntropy=("entropy", "mean"),
    )
    summary = {}
    for node, row in grouped.iterrows():
        entry: Dict[str, Any] = {
            "count": int(row["count"]),
            "mean": float(row["mean"]),
            "meanEntropy": float(row["meanEntropy"]),
        }
        if with_level:
            entry["level"] = posterior_level(entry["mean"])
        summary[str(node)] = entry
    return summary


async def class_report(service: SessionService, class_id: str) -> Dict[str, Any]:
    students = [s for s in await service.store.list_records("students") if s.class_id == class_id]
    if not students:
        raise NotFoundError(f"No students found for classId {class_id}")

    sessions = await service.store.list_sessions([s.id for s in students])
    result: Dict[str, Any] = {
        "classId": class_id,
        "students": [{"id": s.id, "name": s.name} for s in students],
        "summary": {},
        "recommendations": [],
    }
    if not sessions:
        return result

    thetas, posteriors = _frames(sessions, {s.id: s.class_id for s in students})
    irt_summary = _theta_summary(thetas, with_distribution=True)
    bn_summary = _node_summary(posteriors, with_level=True)
    captured = []
    for session in sessions:
        captured.extend(await _captured(service, session))

    recommendations = result["recommendations"]
    if irt_summary:
        if irt_summary["mean"] < 0:
            recommendations.append("Class average ability is below expected level. Provide additional practice.")
        elif irt_summary["mean"] > 1:
            recommendations.append("Class shows advanced proficiency. Introduce more challenging material.")
        else:
            recommendations.append("Class is around average. Continue balanced practice.")
    for node, node_summary in bn_summary.items():
        if node_summary["level"] == "Needs Support":
            recommendations.append(f"Focus on improving {node} across the class.")
        elif node_summary["meanEntropy"] > 0.8:
            recommendations.append(f"More data needed for {node}; assign additional tasks.")

    result["summary"] = {"IRT": irt_summary, "BayesianNetwork": bn_summary, "captured": captured}
    return result


async def district_report(service: SessionService, district_id: str) -> Dict[str, Any]:
    students = [s for s in await service.store.list_records("students") if s.district_id == district_id]
    if not students:
        raise NotFoundError(f"No students found for districtId {district_id}")

    # Students without a class are not part of any class group
    class_of = {s.id: s.class_id for s in students if s.class_id}
    sessions = await service.store.list_sessions(list(class_of))
    thetas, posteriors = _frames(sessions, class_of)

    classes = {}
    for class_id in dict.fromkeys(class_of.values()):
        classes[class_id] = {
            "IRT": _theta_summary(thetas[thetas["classId"] == class_id]),
            "BayesianNetwork": _node_summary(posteriors[posteriors["classId"] == class_id]),
        }

    captured = []
    for session in sessions:
        for entry in await _captured(service, session):
            entry["classId"] = class_of.get(session.student_id)
            captured.append(entry)

    district_irt = _theta_summary(thetas)
    district_bn = _node_summary(posteriors)
    recommendations: List[str] = []
    if district_irt:
        if district_irt["mean"] < 0:
            recommendations.append("District average ability is below expected. Consider remedial programs.")
        elif district_irt["mean"] > 1:
            recommendations.append("District shows advanced proficiency. Consider enrichment programs.")
        else:
            recommendations.append("District is around average. Balanced curriculum is appropriate.")
    for node, node_summary in district_bn.items():
        if node_summary["mean"] < 0.4:
            recommendations.append(f"District needs support in {node}.")
        elif node_summary["mean"] > 0.7:
            recommendations.append(f"District shows strong performance in {node}.")

    return {
        "districtId": district_id,
        "classes": classes,
        "districtSummary": {"IRT": district_irt, "BayesianNetwork": district_bn, "captured": captured},
        "recommendations": recommendations,
    }
