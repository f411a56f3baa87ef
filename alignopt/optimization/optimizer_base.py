"""State shared by metric-driven optimizers.

Holds the metric reference, the scales and their identity flag, the run
state, the iteration counter and the observer registry. Concrete
optimizers implement the iteration loop.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

import numpy as np

from alignopt.optimization.events import (
    EventKind,
    IterationEvent,
    Observer,
    ObserverRegistry,
)
from alignopt.optimization.exceptions import OptimizerConfigurationError
from alignopt.optimization.parallel import default_number_of_workers
from alignopt.optimization.result import RunState
from alignopt.utils.logging import get_logger

if TYPE_CHECKING:
    from alignopt.metrics.base import ObjectToObjectMetricBase

logger = get_logger(__name__)

# Scales within this distance of 1.0 are treated as identity.
SCALES_IDENTITY_TOLERANCE = 0.01


class ObjectToObjectOptimizerBase:
    """Base class for optimizers driving an :class:`ObjectToObjectMetricBase`.

    The optimizer keeps a non-owning reference to the metric; the caller
    owns the metric (and, through it, the transform).

    Parameters
    ----------
    metric : ObjectToObjectMetricBase, optional
        Metric to optimize. Can be assigned later.
    number_of_workers : int, optional
        Threads available for elementwise work.
    """

    def __init__(
        self,
        metric: ObjectToObjectMetricBase | None = None,
        number_of_workers: int | None = None,
    ):
        self.metric = metric
        self.number_of_iterations = 100
        self._number_of_workers = (
            default_number_of_workers() if number_of_workers is None else int(number_of_workers)
        )
        self._scales: np.ndarray | None = None
        self._scales_are_identity = False
        self._current_iteration = 0
        self._value = float("nan")
        self._state = RunState.IDLE
        self._stop_condition_description = ""
        self._observers = ObserverRegistry()

    # -- scales ----------------------------------------------------------------

    @property
    def scales(self) -> np.ndarray | None:
        """Scales in effect (None until set or estimated)."""
        return None if self._scales is None else self._scales.copy()

    @scales.setter
    def scales(self, scales: Sequence[float] | np.ndarray | None) -> None:
        self._scales = None if scales is None else np.array(scales, dtype=float).ravel()

    @property
    def scales_are_identity(self) -> bool:
        return self._scales_are_identity

    def _validate_scales(self) -> None:
        """Check scales against the metric, defaulting to ones when unset.

        Raises
        ------
        OptimizerConfigurationError
            On a size mismatch or a scale not greater than machine epsilon.
        """
        n_local = int(self.metric.get_number_of_local_parameters())
        n_params = int(self.metric.get_number_of_parameters())

        if n_local < 1 or n_params % n_local != 0:
            raise OptimizerConfigurationError(
                "Number of parameters is not a multiple of the local-parameter count",
                error_context={"parameters": n_params, "local_parameters": n_local},
            )

        if self._scales is None:
            self._scales = np.ones(n_local)
        elif self._scales.size != n_local:
            raise OptimizerConfigurationError(
                "Size of scales does not match the number of local parameters",
                error_context={"scales_size": self._scales.size, "expected_size": n_local},
            )

        if np.any(~np.isfinite(self._scales)) or np.any(
            self._scales <= np.finfo(float).eps
        ):
            raise OptimizerConfigurationError(
                "Scales must be finite and greater than machine epsilon",
                error_context={"min_scale": float(np.min(self._scales))},
            )

    def _update_scales_are_identity(self) -> None:
        self._scales_are_identity = bool(
            np.all(np.abs(self._scales - 1.0) <= SCALES_IDENTITY_TOLERANCE)
        )

    # -- run state -------------------------------------------------------------

    def _check_can_start(self) -> None:
        if self.metric is None:
            raise OptimizerConfigurationError("Metric must be set before optimization")
        if self._state is RunState.RUNNING:
            raise OptimizerConfigurationError(
                "Optimization is already running",
                error_context={"iteration": self._current_iteration},
            )

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def stop_condition_description(self) -> str:
        return self._stop_condition_description

    @property
    def number_of_workers(self) -> int:
        return self._number_of_workers

    @property
    def current_iteration(self) -> int:
        return self._current_iteration

    @property
    def value(self) -> float:
        """Metric value of the last iteration, or the best one after a run
        with best-value tracking."""
        return self._value

    @property
    def current_position(self) -> np.ndarray:
        """Copy of the metric's current parameters."""
        if self.metric is None:
            raise OptimizerConfigurationError("Metric must be set to read the position")
        return np.array(self.metric.get_parameters(), dtype=float)

    # -- observers -------------------------------------------------------------

    def add_observer(
        self, callback: Observer, kinds: Iterable[EventKind] | None = None
    ) -> int:
        """Register a synchronous observer; returns a handle for removal."""
        return self._observers.add(callback, kinds)

    def remove_observer(self, handle: int) -> bool:
        return self._observers.remove(handle)

    def _notify(self, kind: EventKind) -> None:
        self._observers.notify(
            IterationEvent(kind=kind, iteration=self._current_iteration, value=self._value)
        )
