"""Result object returned by optimizer runs."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

import numpy as np


class RunState(str, enum.Enum):
    """Optimizer run state."""

    IDLE = "idle"
    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    USER_STOPPED = "user_stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class OptimizerResult:
    """Summary of a finished (or interrupted) run.

    ``position`` is a copy; mutating it does not affect the transform.
    """

    state: RunState
    iterations: int
    value: float
    position: np.ndarray
    convergence_value: float
    learning_rate: float
    scales: np.ndarray
    stop_condition_description: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def converged(self) -> bool:
        return self.state is RunState.CONVERGED

    def get_summary(self) -> dict[str, Any]:
        """Plain-Python summary suitable for JSON/YAML dumps."""
        return {
            "state": self.state.value,
            "iterations": self.iterations,
            "value": self.value,
            "position": self.position.tolist(),
            "convergence_value": self.convergence_value,
            "learning_rate": self.learning_rate,
            "scales": self.scales.tolist(),
            "stop_condition": self.stop_condition_description,
            **self.metadata,
        }
