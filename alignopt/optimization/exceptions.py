"""Custom exceptions for transform optimization.

Exception Hierarchy:
    OptimizerError (base)
    ├── OptimizerConfigurationError (missing metric, bad scales, re-entry)
    ├── OptimizerStateError (control call in the wrong run state)
    └── OptimizerNumericalError (zero/non-finite step scale or derivative)

Configuration and state errors are raised to the direct caller. Numerical
errors are not raised by the optimizer loop: it builds them, logs them as
warnings and keeps iterating, failing the run only after too many
consecutive iterations hit one.

Examples
--------
>>> try:
...     optimizer.start_optimization()
... except OptimizerConfigurationError as e:
...     print(e.error_context.get("expected_size"))
"""

from __future__ import annotations


class OptimizerError(Exception):
    """Base exception for all optimizer errors.

    Attributes
    ----------
    error_context : dict
        Additional context about the error (sizes, iteration, values).
    """

    def __init__(self, message: str, error_context: dict | None = None):
        super().__init__(message)
        self.error_context = error_context or {}

    def __str__(self) -> str:
        """Return formatted error message with context."""
        base_msg = super().__str__()
        if self.error_context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.error_context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


class OptimizerConfigurationError(OptimizerError):
    """Raised when the optimizer or metric is not fully configured.

    Common Causes
    -------------
    - No metric assigned before ``start_optimization()``
    - Scales length differs from the metric's local-parameter count
    - A scale is zero or negative
    - ``start_optimization()`` called while a run is in progress
    - Metric initialized without a moving transform
    """


class OptimizerStateError(OptimizerError):
    """Raised when a control operation is invoked in an invalid run state.

    Attributes
    ----------
    state : str
        Name of the run state at the time of the call.
    """

    def __init__(
        self,
        message: str,
        state: str | None = None,
        error_context: dict | None = None,
    ):
        context = error_context or {}
        if state is not None:
            context["state"] = state
        super().__init__(message, context)
        self.state = state


class OptimizerNumericalError(OptimizerError):
    """Raised for zero or non-finite quantities during an iteration.

    Attributes
    ----------
    detection_point : str
        Where the problem was found ('step_scale', 'derivative').
    iteration : int
        Iteration at which it was detected.
    """

    def __init__(
        self,
        message: str,
        detection_point: str | None = None,
        iteration: int | None = None,
        error_context: dict | None = None,
    ):
        context = error_context or {}
        if detection_point:
            context["detection_point"] = detection_point
        if iteration is not None:
            context["iteration"] = iteration
        super().__init__(message, context)
        self.detection_point = detection_point
        self.iteration = iteration
