"""
Online ability update under the 3PL item response model.

One stochastic-gradient step per scored response:

    P(y=1 | theta) = c + (1 - c) / (1 + exp(-a (theta - b)))
    g              = a (y - P) (1 - c)
    theta'         = theta + LEARNING_RATE * g

This is not a maximum-likelihood re-estimate. Theta is not clamped and can
grow without bound under a long run of consistent responses; full calibration
belongs to the external calibration service.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import math

LEARNING_RATE = 0.1
DEFAULT_DISCRIMINATION = 1.0
DEFAULT_GUESSING = 0.0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sigmoid_stable(x: float) -> float:
    """Logistic function without overflow for large |x|."""
    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


def prob_correct(theta: float, a: float, b: float, c: float) -> float:
    return c + (1.0 - c) * sigmoid_stable(a * (theta - b))


def gradient(theta: float, a: float, b: float, c: float, y: int) -> float:
    return a * (y - prob_correct(theta, a, b, c)) * (1.0 - c)


def update_theta(theta: float, a: float, b: float, c: float, y: int) -> float:
    return theta + LEARNING_RATE * gradient(theta, a, b, c, y)


@dataclass(frozen=True)
class ItemParams:
    a: float
    b: float
    c: float

    @classmethod
    def from_metadata(cls, metadata: Optional[Dict[str, Any]]) -> Optional["ItemParams"]:
        """
        Read (a, b, c) from a question's metadata.

        Returns None when b is not a finite number: such an item is not usable by
        the IRT strategy. Missing a and c fall back to 1.0 and 0.0.
        """
        metadata = metadata or {}
        b = metadata.get("b")
        if not _is_number(b) or not math.isfinite(b):
            return None
        a = metadata.get("a")
        c = metadata.get("c")
        return cls(
            a=float(a) if _is_number(a) else DEFAULT_DISCRIMINATION,
            b=float(b),
            c=float(c) if _is_number(c) else DEFAULT_GUESSING,
        )

