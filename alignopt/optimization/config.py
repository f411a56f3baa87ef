"""Gradient descent configuration dataclass and YAML loading.

Example YAML::

    optimizer:
      learning_rate: 1.0
      learning_rate_estimation: every_iteration
      number_of_iterations: 200
      convergence:
        minimum_value: 1.0e-6
        window_size: 10
      return_best_parameters_and_value: true
      parallel:
        n_workers: 4
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from alignopt.optimization.parallel import default_number_of_workers
from alignopt.utils.logging import get_logger

logger = get_logger(__name__)


class LearningRateEstimation(str, enum.Enum):
    """When the scales estimator recomputes the learning rate."""

    MANUAL = "manual"
    ONCE = "once"
    EVERY_ITERATION = "every_iteration"


@dataclass
class GradientDescentConfig:
    """Configuration for :class:`GradientDescentOptimizer`.

    Attributes
    ----------
    learning_rate : float
        Manual learning rate. Overridden by estimation when a scales
        estimator is set and estimation is not MANUAL. Default: 1.0.
    maximum_step_size_in_physical_units : float | None
        Bound on the physical displacement per iteration used by learning
        rate estimation. None takes the estimator's default. Default: None.
    scales : list[float] | None
        Manual scales, one per local parameter. None means all ones.
    do_estimate_scales : bool
        Let an assigned scales estimator override manual scales. Default: True.
    learning_rate_estimation : LearningRateEstimation
        MANUAL, ONCE (first iteration) or EVERY_ITERATION. Default: ONCE.
    minimum_convergence_value : float
        Convergence threshold on the windowed trend. Default: 1e-8.
    convergence_window_size : int
        Number of values in the convergence window. Default: 50.
    return_best_parameters_and_value : bool
        Restore the lowest-value parameters when the run ends. Default: False.
    number_of_iterations : int
        Maximum number of iterations. Default: 100.
    number_of_workers : int
        Threads used for elementwise derivative updates.
    minimum_parallel_size : int
        Derivatives shorter than this are modified in-line. Default: 4096.
    max_numerical_errors : int
        Consecutive iterations with numerical errors before the run fails.
        Default: 10.
    """

    learning_rate: float = 1.0
    maximum_step_size_in_physical_units: float | None = None
    scales: list[float] | None = None
    do_estimate_scales: bool = True
    learning_rate_estimation: LearningRateEstimation = LearningRateEstimation.ONCE

    minimum_convergence_value: float = 1e-8
    convergence_window_size: int = 50
    return_best_parameters_and_value: bool = False
    number_of_iterations: int = 100

    number_of_workers: int = field(default_factory=default_number_of_workers)
    minimum_parallel_size: int = 4096
    max_numerical_errors: int = 10

    _validation_errors: list[str] = field(default_factory=list, repr=False)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> GradientDescentConfig:
        """Create a config from a (possibly nested) dictionary.

        Unknown keys are ignored. Validation problems are logged as warnings;
        call :meth:`validate` to inspect them.
        """
        convergence = config_dict.get("convergence", {}) or {}
        parallel = config_dict.get("parallel", {}) or {}

        scales = config_dict.get("scales")
        max_step = config_dict.get("maximum_step_size_in_physical_units")

        config = cls(
            learning_rate=float(config_dict.get("learning_rate", 1.0)),
            maximum_step_size_in_physical_units=(
                None if max_step is None else float(max_step)
            ),
            scales=None if scales is None else [float(s) for s in scales],
            do_estimate_scales=bool(config_dict.get("do_estimate_scales", True)),
            learning_rate_estimation=LearningRateEstimation(
                config_dict.get("learning_rate_estimation", "once")
            ),
            minimum_convergence_value=float(
                convergence.get(
                    "minimum_value",
                    config_dict.get("minimum_convergence_value", 1e-8),
                )
            ),
            convergence_window_size=int(
                convergence.get(
                    "window_size", config_dict.get("convergence_window_size", 50)
                )
            ),
            return_best_parameters_and_value=bool(
                config_dict.get("return_best_parameters_and_value", False)
            ),
            number_of_iterations=int(config_dict.get("number_of_iterations", 100)),
            number_of_workers=int(
                parallel.get("n_workers", default_number_of_workers())
            ),
            minimum_parallel_size=int(parallel.get("minimum_size", 4096)),
            max_numerical_errors=int(config_dict.get("max_numerical_errors", 10)),
        )

        errors = config.validate()
        if errors:
            for error in errors:
                logger.warning(f"Optimizer config validation: {error}")

        return config

    def validate(self) -> list[str]:
        """Validate configuration values.

        Returns
        -------
        list[str]
            Validation error messages (empty if valid).
        """
        errors: list[str] = []

        if self.learning_rate <= 0:
            errors.append(f"learning_rate must be positive, got: {self.learning_rate}")
        if (
            self.maximum_step_size_in_physical_units is not None
            and self.maximum_step_size_in_physical_units <= 0
        ):
            errors.append(
                "maximum_step_size_in_physical_units must be positive, "
                f"got: {self.maximum_step_size_in_physical_units}"
            )
        if self.scales is not None and any(s <= 0 for s in self.scales):
            errors.append(f"scales must be positive, got: {self.scales}")
        if self.convergence_window_size < 2:
            errors.append(
                f"convergence_window_size must be >= 2, got: {self.convergence_window_size}"
            )
        if self.number_of_iterations < 0:
            errors.append(
                f"number_of_iterations must be non-negative, got: {self.number_of_iterations}"
            )
        if self.number_of_workers < 1:
            errors.append(
                f"number_of_workers must be >= 1, got: {self.number_of_workers}"
            )
        if self.minimum_parallel_size < 1:
            errors.append(
                f"minimum_parallel_size must be >= 1, got: {self.minimum_parallel_size}"
            )
        if self.max_numerical_errors < 1:
            errors.append(
                f"max_numerical_errors must be >= 1, got: {self.max_numerical_errors}"
            )

        self._validation_errors = errors
        return errors

    def is_valid(self) -> bool:
        return len(self.validate()) == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to the nested dictionary layout of ``from_dict``."""
        return {
            "learning_rate": self.learning_rate,
            "maximum_step_size_in_physical_units": self.maximum_step_size_in_physical_units,
            "scales": None if self.scales is None else list(self.scales),
            "do_estimate_scales": self.do_estimate_scales,
            "learning_rate_estimation": self.learning_rate_estimation.value,
            "convergence": {
                "minimum_value": self.minimum_convergence_value,
                "window_size": self.convergence_window_size,
            },
            "return_best_parameters_and_value": self.return_best_parameters_and_value,
            "number_of_iterations": self.number_of_iterations,
            "parallel": {
                "n_workers": self.number_of_workers,
                "minimum_size": self.minimum_parallel_size,
            },
            "max_numerical_errors": self.max_numerical_errors,
        }


def load_config(config_file: str | Path) -> GradientDescentConfig:
    """Load a :class:`GradientDescentConfig` from a YAML or JSON file.

    The optimizer settings are read from the ``optimizer`` section when
    present, otherwise from the root mapping.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file does not contain a mapping.
    """
    config_path = Path(config_file)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    with open(config_path, encoding="utf-8") as f:
        if config_path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Configuration file must contain a mapping, got {type(data).__name__}"
        )

    section = data.get("optimizer", data)
    logger.info(f"Optimizer configuration loaded from: {config_file}")
    return GradientDescentConfig.from_dict(section)
