"""
Next-task selection.

Each session picks one strategy at creation time. Strategies only read the
session, so repeated selection without a new response returns the same task.
Ties go to the task listed first in the session's taskIds.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging
import math

from engine.bayes_net import expected_gain
from engine.catalog import Catalog
from engine.irt import ItemParams
from models.records import SelectionStrategy, Session

logger = logging.getLogger(__name__)


class SelectionStrategyBase(ABC):
    name: SelectionStrategy

    @abstractmethod
    def select(self, session: Session, catalog: Catalog) -> Optional[str]:
        """Return the next task id, or None when the session has nothing left to administer."""

    @staticmethod
    def _unanswered(session: Session) -> list[str]:
        answered = session.answered_task_ids()
        return [tid for tid in session.task_ids if tid not in answered]


class FixedOrderStrategy(SelectionStrategyBase):
    """Administer tasks in the order they were listed."""
    name = SelectionStrategy.FIXED

    def select(self, session: Session, catalog: Catalog) -> Optional[str]:
        if session.current_task_index < len(session.task_ids):
            return session.task_ids[session.current_task_index]
        return None


class IRTStrategy(SelectionStrategyBase):
    """Administer the unanswered item whose difficulty is closest to the current theta."""
    name = SelectionStrategy.IRT

    def select(self, session: Session, catalog: Catalog) -> Optional[str]:
        theta = session.student_model.theta()
        best_task: Optional[str] = None
        best_score = math.inf

        for task_id in self._unanswered(session):
            question = catalog.question_for_task(task_id)
            params = ItemParams.from_metadata(question.metadata) if question else None
            if params is None:
                continue
            score = abs(params.b - theta)
            if score < best_score:
                best_score = score
                best_task = task_id

        logger.debug("IRT selection for session %s at theta=%.4f: %s (|b-theta|=%s)",
                     session.id, theta, best_task, best_score)
        return best_task


class BayesianNetworkStrategy(SelectionStrategyBase):
    """Administer the unanswered task with the largest expected information gain."""
    name = SelectionStrategy.BAYESIAN_NETWORK

    def select(self, session: Session, catalog: Catalog) -> Optional[str]:
        best_task: Optional[str] = None
        best_gain = -math.inf

        for task_id in self._unanswered(session):
            gain = expected_gain(catalog.task(task_id), session.student_model, catalog)
            if gain > best_gain:
                best_gain = gain
                best_task = task_id

        logger.debug("BN selection for session %s: %s (gain=%s)", session.id, best_task, best_gain)
        return best_task


STRATEGIES: Dict[SelectionStrategy, SelectionStrategyBase] = {
    s.name: s for s in (FixedOrderStrategy(), IRTStrategy(), BayesianNetworkStrategy())
}


def strategy_for(strategy: SelectionStrategy) -> SelectionStrategyBase:
    return STRATEGIES[SelectionStrategy(strategy)]


def select_next_task(session: Session, catalog: Catalog) -> Optional[str]:
    """Return the id of the next task to administer, or None when nothing eligible remains."""
    return strategy_for(session.selection_strategy).select(session, catalog)
