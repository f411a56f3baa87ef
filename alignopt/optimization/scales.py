"""Parameter scales and step-scale estimation.

Scales normalize the "units" of the parameters (radians next to
millimetres, for instance) so a single learning rate is meaningful. The
step scale converts a parameter step into the physical displacement it
causes, which lets the optimizer pick a learning rate that bounds the
displacement per iteration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from alignopt.optimization.exceptions import OptimizerConfigurationError
from alignopt.utils.logging import get_logger

if TYPE_CHECKING:
    from alignopt.metrics.base import ObjectToObjectMetric

logger = get_logger(__name__)


class OptimizerParameterScalesEstimator(ABC):
    """Abstract scales estimator.

    Estimators hold a non-owning reference to the metric they measure; the
    caller owns the metric and keeps it alive for the estimator's lifetime.
    """

    @abstractmethod
    def estimate_scales(self) -> np.ndarray:
        """One multiplicative factor per local parameter."""

    @abstractmethod
    def estimate_step_scale(self, step: np.ndarray) -> float:
        """Physical displacement caused by ``step`` (already divided by scales)."""

    @abstractmethod
    def estimate_maximum_step_size(self) -> float:
        """Default maximum physical displacement per iteration."""


class RegistrationParameterScalesFromPhysicalShift(OptimizerParameterScalesEstimator):
    """Estimate scales from the physical shift of sample points.

    The moving transform of ``metric`` must implement ``transform_points``.
    Scale ``i`` is ``(max_shift_i / v) ** 2`` where ``max_shift_i`` is the
    largest displacement of any sample point when parameter ``i`` changes
    by ``v = small_parameter_variation``.

    For local-support transforms the local parameters of the location at
    the centre of the virtual domain are perturbed instead, and the step
    scale is the largest norm of a per-location step sub-vector.

    Parameters
    ----------
    metric : ObjectToObjectMetric
        Metric whose moving transform is measured.
    sample_points : np.ndarray, optional
        ``(n, dim)`` physical points. Defaults to the virtual-domain corners.
    small_parameter_variation : float
        Perturbation applied to each parameter. Default 0.01.

    Notes
    -----
    Estimation temporarily sets trial parameters on the transform and
    restores the original ones before returning. It must only run on the
    optimizer's control thread.
    """

    def __init__(
        self,
        metric: ObjectToObjectMetric,
        sample_points: np.ndarray | None = None,
        small_parameter_variation: float = 0.01,
    ):
        if small_parameter_variation <= 0:
            raise ValueError(
                f"small_parameter_variation must be positive, got {small_parameter_variation}"
            )
        self.metric = metric
        self.sample_points = (
            None if sample_points is None else np.atleast_2d(np.asarray(sample_points, float))
        )
        self.small_parameter_variation = float(small_parameter_variation)

    def _get_sample_points(self) -> np.ndarray:
        if self.sample_points is not None:
            return self.sample_points
        if self.metric.virtual_domain is not None:
            return self.metric.virtual_domain.corner_points()
        raise OptimizerConfigurationError(
            "No sample points: pass sample_points or define a virtual domain",
            error_context={"estimator": type(self).__name__},
        )

    def _maximum_shift(self, delta: np.ndarray, points: np.ndarray) -> float:
        """Largest displacement of ``points`` when parameters change by ``delta``."""
        transform = self.metric.moving_transform
        if transform is None:
            raise OptimizerConfigurationError(
                "Moving transform is not assigned",
                error_context={"estimator": type(self).__name__},
            )
        original = self.metric.get_parameters().copy()
        try:
            before = np.asarray(transform.transform_points(points), dtype=float)
            transform.set_parameters(original + delta)
            after = np.asarray(transform.transform_points(points), dtype=float)
        finally:
            transform.set_parameters(original)
        return float(np.max(np.linalg.norm(after - before, axis=-1)))

    def _local_sample(self) -> tuple[np.ndarray, int]:
        domain = self.metric.virtual_domain
        if domain is None:
            raise OptimizerConfigurationError(
                "Local-support scale estimation requires a virtual domain",
                error_context={"estimator": type(self).__name__},
            )
        center = tuple(s // 2 for s in domain.size)
        offset = self.metric.compute_parameter_offset_from_virtual_index(
            center, self.metric.get_number_of_local_parameters()
        )
        point = domain.index_to_physical_point(center)[np.newaxis, :]
        return point, offset

    def estimate_scales(self) -> np.ndarray:
        n_params = self.metric.get_number_of_parameters()
        n_local = self.metric.get_number_of_local_parameters()
        variation = self.small_parameter_variation

        if self.metric.has_local_support():
            points, offset = self._local_sample()
        else:
            points, offset = self._get_sample_points(), 0

        shifts = np.zeros(n_local)
        for i in range(n_local):
            delta = np.zeros(n_params)
            delta[offset + i] = variation
            shifts[i] = self._maximum_shift(delta, points)

        scales = (shifts / variation) ** 2
        nonzero = scales[scales > np.finfo(float).eps]
        if nonzero.size < scales.size:
            fill = float(nonzero.min()) if nonzero.size else 1.0
            logger.warning(
                "%d parameter(s) produced no physical shift; using scale %.6g",
                scales.size - nonzero.size,
                fill,
            )
            scales[scales <= np.finfo(float).eps] = fill

        logger.debug("Estimated scales: %s", scales)
        return scales

    def estimate_step_scale(self, step: np.ndarray) -> float:
        step = np.asarray(step, dtype=float)
        if self.metric.has_local_support():
            n_local = self.metric.get_number_of_local_parameters()
            return float(np.max(np.linalg.norm(step.reshape(-1, n_local), axis=1)))
        return self._maximum_shift(step, self._get_sample_points())

    def estimate_maximum_step_size(self) -> float:
        """Smallest virtual-domain spacing, or 1.0 without a domain."""
        domain = self.metric.virtual_domain
        if domain is None:
            return 1.0
        return float(np.min(domain.spacing))
