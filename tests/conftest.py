"""
Pytest Configuration and Fixtures for alignopt
==============================================

Shared fixtures for the optimizer, metric and estimator tests.
"""

import logging

import numpy as np
import pytest

from alignopt.metrics import VirtualDomain
from alignopt.optimization import GradientDescentConfig, LearningRateEstimation
from tests.factories.registration_factory import (
    DisplacementFieldTransform,
    FieldMetric,
    PointSetMetric,
    QuadraticMetric,
    TranslationTransform,
)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for workflows")
    config.addinivalue_line("markers", "slow: Slow tests (> 5 seconds)")


@pytest.fixture(autouse=True)
def alignopt_log_propagation():
    """Make sure alignopt records reach caplog."""
    package_logger = logging.getLogger("alignopt")
    previous = package_logger.propagate
    package_logger.propagate = True
    yield
    package_logger.propagate = previous


# ============================================================================
# Configurations
# ============================================================================


@pytest.fixture
def manual_config():
    """Fixed learning rate 0.1, single worker, no estimation."""
    return GradientDescentConfig(
        learning_rate=0.1,
        learning_rate_estimation=LearningRateEstimation.MANUAL,
        number_of_iterations=3,
        number_of_workers=1,
    )


# ============================================================================
# Domains, transforms and metrics
# ============================================================================


@pytest.fixture
def quadratic_metric():
    """``p**2`` starting at 10, derivative ``-2p``."""
    return QuadraticMetric(initial=[10.0])


@pytest.fixture
def unit_domain():
    """64x64 unit-spacing grid centred on the origin."""
    return VirtualDomain(size=(64, 64), origin=(-32.0, -32.0))


@pytest.fixture
def translation_problem(unit_domain):
    """Point sets related by the translation ``(3, -2)``.

    Returns
    -------
    tuple
        ``(metric, true_offset)``.
    """
    rng = np.random.default_rng(42)
    fixed = rng.uniform(-10.0, 10.0, size=(25, 2))
    offset = np.array([3.0, -2.0])
    metric = PointSetMetric(
        fixed_points=fixed,
        moving_points=fixed + offset,
        transform=TranslationTransform([0.0, 0.0]),
        virtual_domain=unit_domain,
    )
    return metric, offset


@pytest.fixture
def field_domain():
    return VirtualDomain(size=(3, 2))


@pytest.fixture
def field_metric(field_domain):
    """Displacement field of ones pulled towards zero."""
    transform = DisplacementFieldTransform(
        field_domain, np.ones(field_domain.number_of_locations * 2)
    )
    return FieldMetric(transform, target=np.zeros(transform.get_number_of_parameters()))
