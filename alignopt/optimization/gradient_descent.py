"""Gradient descent over a metric's transform parameters.

Each iteration asks the metric for its value and derivative, divides the
derivative by the parameter scales, multiplies it by the learning rate and
hands the result to the metric as an additive parameter update. The
elementwise steps run over disjoint sub-ranges of the derivative on a
thread pool; everything else runs on the calling (control) thread.

Sign convention
---------------
Metrics return the derivative in the direction that improves the metric,
and the update is ``p += learning_rate * derivative / scales``.

Example
-------
>>> optimizer = GradientDescentOptimizer(metric, scales_estimator=estimator)
>>> optimizer.number_of_iterations = 200
>>> optimizer.add_observer(IterationLogger(log_interval=20))
>>> with optimizer:
...     result = optimizer.start_optimization()
>>> result.state, result.value
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import numpy as np

from alignopt.optimization.config import GradientDescentConfig, LearningRateEstimation
from alignopt.optimization.convergence import (
    UNDEFINED_CONVERGENCE_VALUE,
    WindowConvergenceMonitor,
)
from alignopt.optimization.events import EventKind
from alignopt.optimization.exceptions import (
    OptimizerConfigurationError,
    OptimizerNumericalError,
    OptimizerStateError,
)
from alignopt.optimization.optimizer_base import ObjectToObjectOptimizerBase
from alignopt.optimization.parallel import SubRangeExecutor
from alignopt.optimization.result import OptimizerResult, RunState
from alignopt.utils.logging import get_logger

if TYPE_CHECKING:
    from alignopt.metrics.base import ObjectToObjectMetricBase
    from alignopt.optimization.scales import OptimizerParameterScalesEstimator

logger = get_logger(__name__)


class GradientDescentOptimizer(ObjectToObjectOptimizerBase):
    """Gradient descent with scales, learning-rate estimation and a
    windowed convergence test.

    Parameters
    ----------
    metric : ObjectToObjectMetricBase, optional
        Metric to optimize. Not owned by the optimizer.
    scales_estimator : OptimizerParameterScalesEstimator, optional
        Estimator for scales and learning rate. Not owned by the optimizer.
    config : GradientDescentConfig, optional
        Initial settings. Every setting is also an attribute that can be
        changed between runs.

    Notes
    -----
    The optimizer holds a thread pool once a derivative large enough for
    parallel updates is seen. Call :meth:`close` or use the optimizer as a
    context manager to release it.
    """

    def __init__(
        self,
        metric: ObjectToObjectMetricBase | None = None,
        scales_estimator: OptimizerParameterScalesEstimator | None = None,
        config: GradientDescentConfig | None = None,
    ):
        config = config or GradientDescentConfig()
        super().__init__(metric=metric, number_of_workers=config.number_of_workers)

        self.scales_estimator = scales_estimator
        self.learning_rate = float(config.learning_rate)
        self.maximum_step_size_in_physical_units = config.maximum_step_size_in_physical_units
        self.do_estimate_scales = config.do_estimate_scales
        self.learning_rate_estimation = LearningRateEstimation(config.learning_rate_estimation)
        self.minimum_convergence_value = float(config.minimum_convergence_value)
        self.return_best_parameters_and_value = config.return_best_parameters_and_value
        self.number_of_iterations = int(config.number_of_iterations)
        self.max_numerical_errors = int(config.max_numerical_errors)
        if config.scales is not None:
            self.scales = config.scales

        self._convergence_monitor = WindowConvergenceMonitor(config.convergence_window_size)
        self._executor = SubRangeExecutor(
            n_workers=self.number_of_workers,
            minimum_parallel_size=config.minimum_parallel_size,
        )
        self._stop_event = threading.Event()

        self._gradient: np.ndarray | None = None
        self._effective_maximum_step_size: float | None = None
        self._convergence_value = UNDEFINED_CONVERGENCE_VALUE
        self._best_value: float | None = None
        self._best_parameters: np.ndarray | None = None
        self._numerical_error_in_iteration = False
        self._consecutive_numerical_errors = 0
        self._total_numerical_errors = 0

    @classmethod
    def from_config(
        cls,
        config: GradientDescentConfig,
        metric: ObjectToObjectMetricBase | None = None,
        scales_estimator: OptimizerParameterScalesEstimator | None = None,
    ) -> GradientDescentOptimizer:
        """Build an optimizer from a configuration, rejecting invalid ones."""
        errors = config.validate()
        if errors:
            raise OptimizerConfigurationError(
                "Invalid gradient descent configuration",
                error_context={"errors": errors},
            )
        return cls(metric=metric, scales_estimator=scales_estimator, config=config)

    # -- settings and queries --------------------------------------------------

    @property
    def convergence_window_size(self) -> int:
        return self._convergence_monitor.window_size

    @convergence_window_size.setter
    def convergence_window_size(self, window_size: int) -> None:
        if self._state is RunState.RUNNING:
            raise OptimizerStateError(
                "Cannot change the convergence window while running", state=self._state
            )
        self._convergence_monitor = WindowConvergenceMonitor(window_size)

    @property
    def convergence_value(self) -> float:
        """Latest windowed convergence value (``finfo.max`` until the window fills)."""
        return self._convergence_value

    # -- control ---------------------------------------------------------------

    def start_optimization(self) -> OptimizerResult:
        """Validate settings, reset counters and run the loop.

        Returns
        -------
        OptimizerResult
            Final state, value, position and settings of the run.

        Raises
        ------
        OptimizerConfigurationError
            If no metric is set, a run is in progress, or the scales are
            invalid for the metric.
        """
        self._check_can_start()

        if self.scales_estimator is not None and self.do_estimate_scales:
            self.scales = self.scales_estimator.estimate_scales()
        self._validate_scales()
        self._update_scales_are_identity()

        self._effective_maximum_step_size = self.maximum_step_size_in_physical_units
        if self.scales_estimator is not None and self._effective_maximum_step_size is None:
            self._effective_maximum_step_size = float(
                self.scales_estimator.estimate_maximum_step_size()
            )

        self._current_iteration = 0
        self._value = float("nan")
        self._gradient = None
        self._convergence_monitor.clear_energy_values()
        self._convergence_value = UNDEFINED_CONVERGENCE_VALUE
        self._best_value = None
        self._best_parameters = None
        self._consecutive_numerical_errors = 0
        self._total_numerical_errors = 0

        logger.info(
            f"Starting gradient descent: {self.metric.get_number_of_parameters()} parameters, "
            f"{self.number_of_iterations} iterations, "
            f"learning rate estimation {self.learning_rate_estimation.value}"
        )
        logger.debug(
            f"Scales: {self._scales} (identity: {self._scales_are_identity}), "
            f"maximum step size: {self._effective_maximum_step_size}"
        )

        self._state = RunState.RUNNING
        return self._run(emit_start=True)

    def resume_optimization(self) -> OptimizerResult:
        """Continue a finished or stopped run with the current counters.

        Raises
        ------
        OptimizerStateError
            If no run was started yet or a run is in progress.
        """
        if self._state is RunState.IDLE:
            raise OptimizerStateError(
                "Nothing to resume: call start_optimization() first", state=self._state
            )
        if self._state is RunState.RUNNING:
            raise OptimizerStateError("Optimization is already running", state=self._state)

        logger.info(f"Resuming gradient descent at iteration {self._current_iteration}")
        self._state = RunState.RUNNING
        return self._run()

    def stop_optimization(self) -> None:
        """Request a stop at the end of the current iteration.

        Safe to call from an observer or another thread. Has no effect when
        no run is in progress.
        """
        if self._state is RunState.RUNNING:
            self._stop_event.set()

    def estimate_learning_rate(self) -> float:
        """Set the learning rate to ``maximum_step_size / step_scale``.

        Fetches the derivative from the metric, divides it by the scales and
        asks the estimator for the step scale of the result. A zero or
        non-finite step scale leaves the learning rate unchanged.

        Raises
        ------
        OptimizerConfigurationError
            If no scales estimator or metric is set.
        """
        if self.scales_estimator is None:
            raise OptimizerConfigurationError(
                "A scales estimator is required to estimate the learning rate"
            )
        if self.metric is None:
            raise OptimizerConfigurationError(
                "Metric must be set before estimating the learning rate"
            )
        self._validate_scales()
        self._update_scales_are_identity()

        scaled = np.array(self.metric.get_derivative(), dtype=float).ravel()
        if not self._scales_are_identity:
            scaled /= self._scales[np.arange(scaled.size) % self._scales.size]
        return self._estimate_learning_rate(scaled)

    def _estimate_learning_rate(self, scaled_gradient: np.ndarray) -> float:
        max_step = self.maximum_step_size_in_physical_units
        if max_step is None:
            max_step = self._effective_maximum_step_size
        if max_step is None:
            max_step = float(self.scales_estimator.estimate_maximum_step_size())

        step_scale = float(self.scales_estimator.estimate_step_scale(scaled_gradient))
        if not np.isfinite(step_scale) or step_scale <= np.finfo(float).eps:
            self._record_numerical_error(
                OptimizerNumericalError(
                    "Step scale is zero or non-finite, keeping the learning rate",
                    detection_point="step_scale",
                    iteration=self._current_iteration,
                    error_context={"step_scale": step_scale, "learning_rate": self.learning_rate},
                )
            )
            return self.learning_rate

        self.learning_rate = max_step / step_scale
        logger.debug(
            f"Learning rate estimated: {self.learning_rate:.6e} "
            f"(max step {max_step:.6e}, step scale {step_scale:.6e})"
        )
        return self.learning_rate

    def close(self) -> None:
        """Release the worker threads."""
        self._executor.shutdown()

    def __enter__(self) -> GradientDescentOptimizer:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- loop ------------------------------------------------------------------

    def _run(self, emit_start: bool = False) -> OptimizerResult:
        self._stop_event.clear()
        self._stop_condition_description = ""

        try:
            if emit_start:
                self._notify(EventKind.START)

            while self._state is RunState.RUNNING:
                if self._current_iteration >= self.number_of_iterations:
                    self._state = RunState.MAX_ITERATIONS_REACHED
                    self._stop_condition_description = (
                        f"Maximum number of iterations ({self.number_of_iterations}) exceeded."
                    )
                    break

                try:
                    value, derivative = self.metric.get_value_and_derivative()
                except Exception as e:
                    self._stop_condition_description = (
                        f"Metric evaluation failed at iteration {self._current_iteration}: {e}"
                    )
                    raise

                self._value = float(value)
                self._gradient = np.array(derivative, dtype=float).ravel()
                self._numerical_error_in_iteration = False

                if self.return_best_parameters_and_value:
                    self._track_best_value()

                if not self._advance_one_step():
                    break

                self._convergence_monitor.add_energy_value(self._value)
                self._convergence_value = self._convergence_monitor.get_convergence_value()
                if (
                    self._convergence_monitor.is_window_full
                    and self._convergence_value <= self.minimum_convergence_value
                ):
                    self._state = RunState.CONVERGED
                    self._stop_condition_description = (
                        f"Convergence checker passed at iteration {self._current_iteration}."
                    )

                self._current_iteration += 1

                if self._state is RunState.RUNNING:
                    if self._current_iteration >= self.number_of_iterations:
                        self._state = RunState.MAX_ITERATIONS_REACHED
                        self._stop_condition_description = (
                            f"Maximum number of iterations ({self.number_of_iterations}) exceeded."
                        )
                    elif self._stop_event.is_set():
                        self._mark_user_stopped()

                logger.debug(
                    f"Iteration {self._current_iteration}: value {self._value:.6e}, "
                    f"convergence {self._convergence_value:.6e}, "
                    f"learning rate {self.learning_rate:.6e}"
                )
                self._notify(EventKind.ITERATION)

                # Stop requested by an observer during notification.
                if self._state is RunState.RUNNING and self._stop_event.is_set():
                    self._mark_user_stopped()
        except Exception as e:
            self._state = RunState.FAILED
            if not self._stop_condition_description:
                self._stop_condition_description = (
                    f"Optimization aborted at iteration {self._current_iteration}: {e}"
                )
            logger.error(self._stop_condition_description)
            self._finish()
            raise

        self._finish()
        return self._make_result()

    def _mark_user_stopped(self) -> None:
        self._state = RunState.USER_STOPPED
        self._stop_condition_description = (
            f"Optimization stopped by request at iteration {self._current_iteration}."
        )

    def _advance_one_step(self) -> bool:
        """Scale the derivative, apply the learning rate and update the metric.

        Returns False when the run failed on repeated numerical errors.
        """
        n_params = self.metric.get_number_of_parameters()
        if self._gradient.size != n_params:
            self._state = RunState.FAILED
            self._stop_condition_description = (
                f"Metric derivative has {self._gradient.size} entries, "
                f"expected {n_params}."
            )
            logger.error(self._stop_condition_description)
            return False

        non_finite = ~np.isfinite(self._gradient)
        if non_finite.any():
            self._gradient[non_finite] = 0.0
            self._record_numerical_error(
                OptimizerNumericalError(
                    "Non-finite derivative entries were zeroed",
                    detection_point="derivative",
                    iteration=self._current_iteration,
                    error_context={"count": int(non_finite.sum())},
                )
            )

        self._modify_gradient_by_scales()

        if self.scales_estimator is not None and (
            self.learning_rate_estimation is LearningRateEstimation.EVERY_ITERATION
            or (
                self.learning_rate_estimation is LearningRateEstimation.ONCE
                and self._current_iteration == 0
            )
        ):
            self._estimate_learning_rate(self._gradient)

        self._modify_gradient_by_learning_rate()

        if self._numerical_error_in_iteration:
            self._consecutive_numerical_errors += 1
            if self._consecutive_numerical_errors >= self.max_numerical_errors:
                self._state = RunState.FAILED
                self._stop_condition_description = (
                    f"{self._consecutive_numerical_errors} consecutive iterations "
                    f"with numerical errors at iteration {self._current_iteration}."
                )
                logger.error(self._stop_condition_description)
                return False
        else:
            self._consecutive_numerical_errors = 0

        self.metric.update_transform_parameters(self._gradient, 1.0)
        return True

    def _modify_gradient_by_scales(self) -> None:
        if self._scales_are_identity:
            return
        self._executor.run(self._modify_gradient_by_scales_over_subrange, self._gradient.size)

    def _modify_gradient_by_scales_over_subrange(self, start: int, stop: int) -> None:
        scales = self._scales
        if scales.size == self._gradient.size:
            self._gradient[start:stop] /= scales[start:stop]
        else:
            # Local support: scales repeat once per location.
            self._gradient[start:stop] /= scales[np.arange(start, stop) % scales.size]

    def _modify_gradient_by_learning_rate(self) -> None:
        self._executor.run(
            self._modify_gradient_by_learning_rate_over_subrange, self._gradient.size
        )

    def _modify_gradient_by_learning_rate_over_subrange(self, start: int, stop: int) -> None:
        self._gradient[start:stop] *= self.learning_rate

    def _record_numerical_error(self, error: OptimizerNumericalError) -> None:
        self._numerical_error_in_iteration = True
        self._total_numerical_errors += 1
        logger.warning(str(error))

    def _track_best_value(self) -> None:
        if self._best_value is None or self._value < self._best_value:
            self._best_value = self._value
            self._best_parameters = np.array(self.metric.get_parameters(), dtype=float)

    def _finish(self) -> None:
        if self.return_best_parameters_and_value and self._best_parameters is not None:
            self.metric.set_parameters(self._best_parameters)
            self._value = self._best_value
            logger.debug(f"Restored best parameters with value {self._best_value:.6e}")

        logger.info(
            f"Gradient descent finished: {self._state.value} after "
            f"{self._current_iteration} iterations, value {self._value:.6e}"
        )
        self._notify(EventKind.END)

    def _make_result(self) -> OptimizerResult:
        return OptimizerResult(
            state=self._state,
            iterations=self._current_iteration,
            value=self._value,
            position=self.current_position,
            convergence_value=self._convergence_value,
            learning_rate=self.learning_rate,
            scales=self.scales,
            stop_condition_description=self._stop_condition_description,
            metadata={
                "numerical_errors": self._total_numerical_errors,
                "number_of_workers": self.number_of_workers,
            },
        )
