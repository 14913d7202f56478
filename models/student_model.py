"""
Per-session proficiency state.

An absent theta means "no evidence yet" and reads as DEFAULT_THETA; an absent
network node reads as the DEFAULT_POSTERIOR prior. Defaults are applied here,
at the read boundary, so the algorithms never deal with missing values.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

DEFAULT_THETA = 0.0
DEFAULT_POSTERIOR = 0.5


@dataclass
class StudentModel:
    irt_theta: Optional[float] = None
    bn_posteriors: Dict[str, float] = field(default_factory=dict)

    def theta(self) -> float:
        """Return the ability estimate, or DEFAULT_THETA before any evidence."""
        return DEFAULT_THETA if self.irt_theta is None else self.irt_theta

    def posterior(self, node_id: str) -> float:
        """Return P(node mastered), or the prior for nodes never updated."""
        return self.bn_posteriors.get(node_id, DEFAULT_POSTERIOR)

    def set_posterior(self, node_id: str, value: float) -> None:
        if not (0.0 < value < 1.0):
            raise ValueError(f"Posterior for node {node_id!r} must lie in (0, 1), got {value}")
        self.bn_posteriors[node_id] = float(value)

    # ---- Documents -----------------------------------------------------------
    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "StudentModel":
        doc = doc or {}
        theta = doc.get("irtTheta")
        posteriors = doc.get("bnPosteriors") or {}
        return cls(
            irt_theta=float(theta) if theta is not None else None,
            bn_posteriors={str(k): float(v) for k, v in posteriors.items()},
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"bnPosteriors": dict(self.bn_posteriors)}
        if self.irt_theta is not None:
            doc["irtTheta"] = self.irt_theta
        return doc
