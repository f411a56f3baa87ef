"""Gradient-descent optimization of registration metrics.

Components:
- ``gradient_descent``: the optimizer loop
- ``optimizer_base``: metric, scales, run state and observers
- ``scales``: scales and step-scale estimation
- ``convergence``: windowed convergence monitor
- ``parallel``: sub-range worker pool for elementwise updates
- ``config``: configuration dataclass and YAML loading
- ``events``: observer registry and progress logger
- ``exceptions``: error hierarchy
"""

from alignopt.optimization.config import (
    GradientDescentConfig,
    LearningRateEstimation,
    load_config,
)
from alignopt.optimization.convergence import (
    UNDEFINED_CONVERGENCE_VALUE,
    WindowConvergenceMonitor,
)
from alignopt.optimization.events import (
    EventKind,
    IterationEvent,
    IterationLogger,
    ObserverRegistry,
)
from alignopt.optimization.exceptions import (
    OptimizerConfigurationError,
    OptimizerError,
    OptimizerNumericalError,
    OptimizerStateError,
)
from alignopt.optimization.gradient_descent import GradientDescentOptimizer
from alignopt.optimization.optimizer_base import ObjectToObjectOptimizerBase
from alignopt.optimization.parallel import (
    SubRangeExecutor,
    default_number_of_workers,
    partition_range,
)
from alignopt.optimization.result import OptimizerResult, RunState
from alignopt.optimization.scales import (
    OptimizerParameterScalesEstimator,
    RegistrationParameterScalesFromPhysicalShift,
)

__all__ = [
    "GradientDescentOptimizer",
    "ObjectToObjectOptimizerBase",
    "GradientDescentConfig",
    "LearningRateEstimation",
    "load_config",
    "WindowConvergenceMonitor",
    "UNDEFINED_CONVERGENCE_VALUE",
    "OptimizerParameterScalesEstimator",
    "RegistrationParameterScalesFromPhysicalShift",
    "SubRangeExecutor",
    "default_number_of_workers",
    "partition_range",
    "EventKind",
    "IterationEvent",
    "IterationLogger",
    "ObserverRegistry",
    "OptimizerResult",
    "RunState",
    "OptimizerError",
    "OptimizerConfigurationError",
    "OptimizerStateError",
    "OptimizerNumericalError",
]
