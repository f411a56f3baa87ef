"""Unit tests for alignopt.metrics.base."""

import logging

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from alignopt.metrics import (
    INSUFFICIENT_POINTS_VALUE,
    ObjectToObjectMetric,
    ObjectToObjectMetricBase,
    VirtualDomain,
)
from alignopt.optimization import OptimizerConfigurationError
from tests.factories.registration_factory import (
    DisplacementFieldTransform,
    QuadraticMetric,
    TranslationTransform,
    VectorTransform,
)


class ConstantMetric(ObjectToObjectMetric):
    def get_value(self):
        return 1.0

    def get_derivative(self):
        return np.zeros(self.get_number_of_parameters())


class TestMetricContract:
    def test_base_is_abstract(self):
        with pytest.raises(TypeError):
            ObjectToObjectMetricBase()

    def test_value_and_derivative_default(self, quadratic_metric):
        value, derivative = ObjectToObjectMetric.get_value_and_derivative(quadratic_metric)

        assert value == 100.0
        assert_array_equal(derivative, [-20.0])

    def test_arbitrary_virtual_samples_default(self):
        assert ConstantMetric(TranslationTransform([0.0])).supports_arbitrary_virtual_domain_samples()


class TestTransformDelegation:
    """Parameter operations go to the moving transform."""

    def test_parameters(self):
        transform = VectorTransform([1.0, 2.0, 3.0])
        metric = ConstantMetric(moving_transform=transform)

        assert metric.get_number_of_parameters() == 3
        assert metric.get_number_of_local_parameters() == 3
        assert not metric.has_local_support()

        metric.set_parameters(np.array([4.0, 5.0, 6.0]))
        assert_array_equal(transform.get_parameters(), [4.0, 5.0, 6.0])

    def test_set_parameters_copies(self):
        metric = ConstantMetric(moving_transform=VectorTransform([0.0, 0.0]))
        source = np.array([1.0, 2.0])

        metric.set_parameters(source)
        source[0] = 99.0

        assert_array_equal(metric.get_parameters(), [1.0, 2.0])

    def test_update_is_additive(self):
        metric = ConstantMetric(moving_transform=VectorTransform([1.0, 1.0]))

        metric.update_transform_parameters(np.array([0.5, -1.0]), 2.0)

        assert_array_equal(metric.get_parameters(), [2.0, -1.0])

    def test_update_size_mismatch(self):
        metric = ConstantMetric(moving_transform=VectorTransform([1.0, 1.0]))

        with pytest.raises(ValueError, match="does not match"):
            metric.update_transform_parameters(np.ones(3))

    def test_missing_transform(self):
        metric = ConstantMetric()

        with pytest.raises(OptimizerConfigurationError, match="Moving transform"):
            metric.get_parameters()
        with pytest.raises(OptimizerConfigurationError):
            metric.initialize()

    def test_transform_points_optional(self):
        with pytest.raises(NotImplementedError):
            VectorTransform([0.0]).transform_points(np.zeros((1, 1)))


class TestInitialize:
    def test_global_transform_needs_no_domain(self):
        ConstantMetric(moving_transform=VectorTransform([0.0])).initialize()

    def test_local_support_requires_domain(self):
        transform = DisplacementFieldTransform(VirtualDomain(size=(2, 2)))
        metric = ConstantMetric(moving_transform=transform)

        with pytest.raises(OptimizerConfigurationError, match="virtual domain"):
            metric.initialize()

    def test_local_support_layout_must_match_domain(self):
        transform = DisplacementFieldTransform(VirtualDomain(size=(2, 2)))
        metric = ConstantMetric(moving_transform=transform, virtual_domain=VirtualDomain(size=(3, 3)))

        with pytest.raises(OptimizerConfigurationError) as exc_info:
            metric.initialize()

        assert exc_info.value.error_context == {"expected_parameters": 18, "parameters": 8}

    def test_local_support_layout_ok(self):
        domain = VirtualDomain(size=(2, 3))
        metric = ConstantMetric(
            moving_transform=DisplacementFieldTransform(domain), virtual_domain=domain
        )

        metric.initialize()
        assert metric.has_local_support()
        assert metric.get_number_of_local_parameters() == 2


class TestVirtualDomainAddressing:
    def test_offset_from_index(self):
        metric = ConstantMetric(TranslationTransform([0.0, 0.0]), virtual_domain=VirtualDomain(size=(3, 4)))

        assert metric.compute_parameter_offset_from_virtual_index((2, 1), 2) == 18

    def test_offset_from_point(self):
        domain = VirtualDomain(size=(3, 4), spacing=(2.0, 1.0))
        metric = ConstantMetric(TranslationTransform([0.0, 0.0]), virtual_domain=domain)

        assert metric.compute_parameter_offset_from_virtual_point((4.1, 0.9), 3) == 27

    def test_offset_requires_domain(self):
        metric = ConstantMetric(TranslationTransform([0.0, 0.0]))

        with pytest.raises(OptimizerConfigurationError):
            metric.compute_parameter_offset_from_virtual_index((0, 0), 2)

    def test_offset_outside_domain(self):
        metric = ConstantMetric(TranslationTransform([0.0, 0.0]), virtual_domain=VirtualDomain(size=(3, 4)))

        with pytest.raises(IndexError):
            metric.compute_parameter_offset_from_virtual_index((5, 0), 2)

    def test_is_inside_virtual_domain(self):
        metric = ConstantMetric(TranslationTransform([0.0, 0.0]), virtual_domain=VirtualDomain(size=(3, 4)))

        assert metric.is_inside_virtual_domain(point=(1.2, 2.8))
        assert not metric.is_inside_virtual_domain(point=(10.0, 0.0))
        assert metric.is_inside_virtual_domain(index=(2, 3))
        with pytest.raises(ValueError):
            metric.is_inside_virtual_domain()

    def test_everything_inside_without_domain(self):
        metric = ConstantMetric(TranslationTransform([0.0, 0.0]))

        assert metric.is_inside_virtual_domain(point=(1e9, -1e9))


class TestValidPoints:
    """Degenerate evaluations."""

    def test_enough_points(self):
        metric = ConstantMetric(TranslationTransform([0.0]), minimum_number_of_valid_points=2)
        metric.number_of_valid_points = 2
        derivative = np.array([1.5])

        ok, value, returned = metric.verify_number_of_valid_points(3.0, derivative)

        assert ok
        assert value == 3.0
        assert returned is derivative

    def test_too_few_points(self, caplog):
        metric = ConstantMetric(TranslationTransform([0.0, 0.0]), minimum_number_of_valid_points=5)
        metric.number_of_valid_points = 4

        with caplog.at_level(logging.WARNING, logger="alignopt"):
            ok, value, derivative = metric.verify_number_of_valid_points(3.0, np.array([1.0, 2.0]))

        assert not ok
        assert value == INSUFFICIENT_POINTS_VALUE
        assert_array_equal(derivative, [0.0, 0.0])
        assert "only 4 valid points" in caplog.text

    def test_quadratic_metric_counts_evaluations(self):
        metric = QuadraticMetric(initial=[1.0, 2.0])
        metric.get_value_and_derivative()

        assert metric.evaluations == 1
        assert metric.number_of_valid_points == 1
