"""Similarity metric contract and virtual domain."""

from alignopt.metrics.base import (
    INSUFFICIENT_POINTS_VALUE,
    ObjectToObjectMetric,
    ObjectToObjectMetricBase,
)
from alignopt.metrics.virtual_domain import VirtualDomain

__all__ = [
    "INSUFFICIENT_POINTS_VALUE",
    "ObjectToObjectMetric",
    "ObjectToObjectMetricBase",
    "VirtualDomain",
]
