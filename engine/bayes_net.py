"""
Expected information gain over Bayesian-network observation nodes.

For each node a task would observe, compare the entropy of the current
posterior with the entropy expected after seeing the observation. The two
outcomes are weighted 0.5 / 0.5 rather than by their marginal likelihood; this
approximation is what stored selections were made with and is kept as is.
"""
from __future__ import annotations
from typing import List, Optional
import math

from engine.catalog import Catalog
from models.records import Cpt, EvidenceModel, Task, TaskModel
from models.student_model import StudentModel

# P(observed=1 | node=1) and P(observed=1 | node=0) when a CPT entry omits them
DEFAULT_P_OBS_GIVEN_MASTERED = 0.8
DEFAULT_P_OBS_GIVEN_UNMASTERED = 0.2
OUTCOME_WEIGHT = 0.5


def binary_entropy(p: float) -> float:
    """Entropy in bits of a Bernoulli(p) variable; 0 outside the open interval (0, 1)."""
    if p <= 0 or p >= 1:
        return 0.0
    return -p * math.log2(p) - (1 - p) * math.log2(1 - p)


def _bayes(likelihood_mastered: float, likelihood_unmastered: float, prior: float) -> float:
    den = likelihood_mastered * prior + likelihood_unmastered * (1 - prior)
    if den == 0:
        return prior
    return likelihood_mastered * prior / den


def posterior_if_observed(prior: float, p1: float, p0: float) -> float:
    """P(node=1 | observed=1)."""
    return _bayes(p1, p0, prior)


def posterior_if_not_observed(prior: float, p1: float, p0: float) -> float:
    """P(node=1 | observed=0)."""
    return _bayes(1 - p1, 1 - p0, prior)


def node_gain(prior: float, cpt: Cpt) -> float:
    p1 = DEFAULT_P_OBS_GIVEN_MASTERED if cpt.p1 is None else cpt.p1
    p0 = DEFAULT_P_OBS_GIVEN_UNMASTERED if cpt.p0 is None else cpt.p0
    h_expected = (
        OUTCOME_WEIGHT * binary_entropy(posterior_if_observed(prior, p1, p0))
        + OUTCOME_WEIGHT * binary_entropy(posterior_if_not_observed(prior, p1, p0))
    )
    return binary_entropy(prior) - h_expected


def observation_nodes(task_model: TaskModel, evidence_model: EvidenceModel) -> List[str]:
    """
    Node ids an evidence model contributes for a task model.

    These are the task model's expected observations that the evidence model
    defines, or every observation it defines when the task model lists none.
    """
    if not task_model.expected_observations:
        # Extension: a task model with no declared observations measures all of them
        return [o.id for o in evidence_model.observations]
    nodes: List[str] = []
    for eo in task_model.expected_observations:
        if eo.observation_id in nodes:
            continue
        if evidence_model.observation(eo.observation_id) is not None:
            nodes.append(eo.observation_id)
    return nodes


def expected_gain(task: Optional[Task], student_model: StudentModel, catalog: Catalog) -> float:
    """Total expected entropy reduction from administering `task`; 0.0 when nothing is measurable."""
    if task is None:
        return 0.0
    task_model = catalog.task_model(task.task_model_id)
    if task_model is None:
        return 0.0

    gain = 0.0
    for evidence_model in catalog.evidence_models_for(task_model):
        if not evidence_model.is_bayesian_network():
            continue
        for node_id in observation_nodes(task_model, evidence_model):
            cpt = evidence_model.cpts.get(node_id)
            if cpt is None:
                continue
            gain += node_gain(student_model.posterior(node_id), cpt)
    return gain
