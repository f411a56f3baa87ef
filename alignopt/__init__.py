"""alignopt: gradient-descent optimization for image and point-set registration
==============================================================================

The package couples a registration metric (a scalar similarity measure over
the parameters of a moving transform) with an iterative gradient-descent
optimizer.

Key Features:
- Metric contract with virtual-domain bookkeeping and valid-point checks
- Parameter scales and learning rate estimated from physical shifts
- Windowed convergence test on the metric trajectory
- Elementwise derivative updates over a thread pool
- Cooperative stop, resume and best-value tracking
- Synchronous observers for progress reporting

Quick Start:
    >>> from alignopt import GradientDescentOptimizer, load_config
    >>> config = load_config("registration.yaml")
    >>> optimizer = GradientDescentOptimizer.from_config(config, metric=metric)
    >>> result = optimizer.start_optimization()
    >>> print(result.get_summary())
"""

__version__ = "0.1.0"

from alignopt.metrics import (
    INSUFFICIENT_POINTS_VALUE,
    ObjectToObjectMetric,
    ObjectToObjectMetricBase,
    VirtualDomain,
)
from alignopt.optimization import (
    EventKind,
    GradientDescentConfig,
    GradientDescentOptimizer,
    IterationEvent,
    IterationLogger,
    LearningRateEstimation,
    OptimizerConfigurationError,
    OptimizerError,
    OptimizerNumericalError,
    OptimizerResult,
    OptimizerStateError,
    RegistrationParameterScalesFromPhysicalShift,
    RunState,
    WindowConvergenceMonitor,
    load_config,
)
from alignopt.transforms import Transform

__all__ = [
    "__version__",
    # Metrics
    "INSUFFICIENT_POINTS_VALUE",
    "ObjectToObjectMetric",
    "ObjectToObjectMetricBase",
    "VirtualDomain",
    "Transform",
    # Optimization
    "GradientDescentOptimizer",
    "GradientDescentConfig",
    "LearningRateEstimation",
    "load_config",
    "RegistrationParameterScalesFromPhysicalShift",
    "WindowConvergenceMonitor",
    "EventKind",
    "IterationEvent",
    "IterationLogger",
    "OptimizerResult",
    "RunState",
    # Errors
    "OptimizerError",
    "OptimizerConfigurationError",
    "OptimizerStateError",
    "OptimizerNumericalError",
]
