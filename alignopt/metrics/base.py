"""Similarity metric contract driven by the optimizers.

Two layers are provided:

- :class:`ObjectToObjectMetricBase` is the pure capability interface the
  optimizer relies on. Any object implementing it can be optimized.
- :class:`ObjectToObjectMetric` adds the state shared by most concrete
  metrics: a moving transform that owns the parameters, an optional fixed
  transform, a virtual domain for parameter addressing and the count of
  valid points from the last evaluation.

Sign convention
---------------
A metric returns its derivative in the *improving* direction: adding it to
the parameters (after the optimizer applies scales and a learning rate)
must improve the match. A metric whose value is a cost therefore returns
the negative gradient. The optimizer never flips signs; each concrete
metric documents its own convention.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np

from alignopt.metrics.virtual_domain import VirtualDomain
from alignopt.optimization.exceptions import OptimizerConfigurationError
from alignopt.transforms.base import Transform
from alignopt.utils.logging import get_logger

logger = get_logger(__name__)

# Value reported when too few valid points were found during evaluation.
INSUFFICIENT_POINTS_VALUE = float(np.finfo(float).max)


class ObjectToObjectMetricBase(ABC):
    """Abstract capability interface of a similarity metric."""

    def initialize(self) -> None:
        """Prepare the metric for evaluation.

        Raises
        ------
        OptimizerConfigurationError
            If required collaborators are missing.
        """

    @abstractmethod
    def get_number_of_parameters(self) -> int:
        """Total number of transform parameters."""

    @abstractmethod
    def get_number_of_local_parameters(self) -> int:
        """Parameters per location (equals the total for global transforms)."""

    @abstractmethod
    def has_local_support(self) -> bool:
        """True when the parameter count scales with the domain resolution."""

    @abstractmethod
    def get_parameters(self) -> np.ndarray:
        """Current parameters of the active transform."""

    @abstractmethod
    def set_parameters(self, parameters: np.ndarray) -> None:
        """Replace the parameters of the active transform."""

    @abstractmethod
    def get_value(self) -> float:
        """Metric value at the current parameters."""

    @abstractmethod
    def get_derivative(self) -> np.ndarray:
        """Derivative at the current parameters, in the improving direction."""

    def get_value_and_derivative(self) -> tuple[float, np.ndarray]:
        """Return ``(value, derivative)``.

        Implementations that share work between value and derivative should
        override this; the optimizer only calls this combined accessor.
        """
        return self.get_value(), self.get_derivative()

    @abstractmethod
    def update_transform_parameters(
        self, derivative: np.ndarray, factor: float = 1.0
    ) -> None:
        """Apply ``parameters += factor * derivative`` to the active transform."""

    @abstractmethod
    def compute_parameter_offset_from_virtual_index(
        self, index: Sequence[int], number_of_local_parameters: int
    ) -> int:
        """Offset of the first local parameter belonging to ``index``."""

    def supports_arbitrary_virtual_domain_samples(self) -> bool:
        """Whether any virtual-domain point corresponds to a data sample.

        Point-set metrics return False: only some virtual points coincide
        with points of the sets.
        """
        return True


class ObjectToObjectMetric(ObjectToObjectMetricBase):
    """Metric base holding transforms, virtual domain and valid-point count.

    Only the moving transform is active: all parameter-related operations
    are forwarded to it. Subclasses implement :meth:`get_value` and
    :meth:`get_derivative` (and usually :meth:`get_value_and_derivative`)
    and call :meth:`verify_number_of_valid_points` at the end of an
    evaluation.

    Parameters
    ----------
    moving_transform : Transform, optional
        Transform whose parameters are optimized.
    fixed_transform : Transform, optional
        Transform applied to the fixed object; never optimized.
    virtual_domain : VirtualDomain, optional
        Reference grid. Required for local-support parameter addressing.
    minimum_number_of_valid_points : int
        Fewer valid points than this marks the evaluation as degenerate.
    """

    def __init__(
        self,
        moving_transform: Transform | None = None,
        fixed_transform: Transform | None = None,
        virtual_domain: VirtualDomain | None = None,
        minimum_number_of_valid_points: int = 1,
    ):
        self.moving_transform = moving_transform
        self.fixed_transform = fixed_transform
        self.virtual_domain = virtual_domain
        self.minimum_number_of_valid_points = int(minimum_number_of_valid_points)
        self.number_of_valid_points = 0

    def initialize(self) -> None:
        if self.moving_transform is None:
            raise OptimizerConfigurationError(
                "Moving transform is not assigned",
                error_context={"metric": type(self).__name__},
            )
        if self.moving_transform.has_local_support():
            self._verify_local_support_layout()

    def _verify_local_support_layout(self) -> None:
        if self.virtual_domain is None:
            raise OptimizerConfigurationError(
                "A virtual domain is required for local-support transforms",
                error_context={"metric": type(self).__name__},
            )
        expected = (
            self.virtual_domain.number_of_locations
            * self.moving_transform.get_number_of_local_parameters()
        )
        actual = self.moving_transform.get_number_of_parameters()
        if expected != actual:
            raise OptimizerConfigurationError(
                "Local-support transform does not match the virtual domain",
                error_context={"expected_parameters": expected, "parameters": actual},
            )

    def _require_moving_transform(self) -> Transform:
        if self.moving_transform is None:
            raise OptimizerConfigurationError(
                "Moving transform is not assigned",
                error_context={"metric": type(self).__name__},
            )
        return self.moving_transform

    # -- transform delegation ------------------------------------------------

    def get_number_of_parameters(self) -> int:
        return self._require_moving_transform().get_number_of_parameters()

    def get_number_of_local_parameters(self) -> int:
        return self._require_moving_transform().get_number_of_local_parameters()

    def has_local_support(self) -> bool:
        return self._require_moving_transform().has_local_support()

    def get_parameters(self) -> np.ndarray:
        return np.asarray(self._require_moving_transform().get_parameters(), float)

    def set_parameters(self, parameters: np.ndarray) -> None:
        self._require_moving_transform().set_parameters(
            np.asarray(parameters, dtype=float).copy()
        )

    def update_transform_parameters(
        self, derivative: np.ndarray, factor: float = 1.0
    ) -> None:
        self._require_moving_transform().update_transform_parameters(
            derivative, factor
        )

    # -- virtual domain --------------------------------------------------------

    def compute_parameter_offset_from_virtual_index(
        self, index: Sequence[int], number_of_local_parameters: int
    ) -> int:
        """Offset into a flat local-parameter buffer for a grid location.

        Raises
        ------
        OptimizerConfigurationError
            If no virtual domain is defined.
        IndexError
            If ``index`` lies outside the virtual domain.
        """
        if self.virtual_domain is None:
            raise OptimizerConfigurationError(
                "Virtual domain is not defined",
                error_context={"metric": type(self).__name__},
            )
        return self.virtual_domain.linear_index(index) * int(
            number_of_local_parameters
        )

    def compute_parameter_offset_from_virtual_point(
        self, point: Sequence[float], number_of_local_parameters: int
    ) -> int:
        if self.virtual_domain is None:
            raise OptimizerConfigurationError(
                "Virtual domain is not defined",
                error_context={"metric": type(self).__name__},
            )
        index = self.virtual_domain.physical_point_to_index(point)
        return self.compute_parameter_offset_from_virtual_index(
            index, number_of_local_parameters
        )

    def is_inside_virtual_domain(self, point=None, index=None) -> bool:
        """Check a physical point or a grid index against the domain.

        Returns True when no virtual domain is defined, so point-set metrics
        whose domain is implied by the point sets accept every point.
        """
        if self.virtual_domain is None:
            return True
        if index is None:
            if point is None:
                raise ValueError("Either point or index must be given")
            index = self.virtual_domain.physical_point_to_index(point)
        return self.virtual_domain.is_inside_index(index)

    # -- degeneracy --------------------------------------------------------------

    def verify_number_of_valid_points(
        self, value: float, derivative: np.ndarray
    ) -> tuple[bool, float, np.ndarray]:
        """Check the valid-point count of the last evaluation.

        Returns
        -------
        ok : bool
            False when too few valid points were found.
        value : float
            ``value`` unchanged, or ``INSUFFICIENT_POINTS_VALUE``.
        derivative : np.ndarray
            ``derivative`` unchanged, or zeros of the same shape.
        """
        if self.number_of_valid_points < self.minimum_number_of_valid_points:
            logger.warning(
                "%s: only %d valid points found (minimum %d); "
                "reporting zero derivative",
                type(self).__name__,
                self.number_of_valid_points,
                self.minimum_number_of_valid_points,
            )
            return (
                False,
                INSUFFICIENT_POINTS_VALUE,
                np.zeros_like(np.asarray(derivative, dtype=float)),
            )
        return True, value, derivative
