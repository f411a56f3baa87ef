"""Transform contract for alignopt."""

from alignopt.transforms.base import Transform

__all__ = ["Transform"]
