"""Virtual reference domain for metric evaluation.

The virtual domain is the grid (size, spacing, origin, direction) in which a
metric samples and in which local-support transforms lay out their
per-location parameters. Locations are packed in NumPy C-order: for a
domain of size ``(nx, ny)`` the location ``(i, j)`` has linear index
``i * ny + j``, and its local parameters start at
``linear_index * number_of_local_parameters``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np


@dataclass(frozen=True, eq=False)
class VirtualDomain:
    """Regular grid describing the virtual space.

    Attributes
    ----------
    size : tuple[int, ...]
        Number of grid points along each axis.
    spacing : np.ndarray
        Physical distance between grid points along each axis.
    origin : np.ndarray
        Physical coordinates of index ``(0, ..., 0)``.
    direction : np.ndarray
        ``(dim, dim)`` direction cosine matrix.
    """

    size: tuple[int, ...]
    spacing: np.ndarray = field(default=None)  # type: ignore[assignment]
    origin: np.ndarray = field(default=None)  # type: ignore[assignment]
    direction: np.ndarray = field(default=None)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        size = tuple(int(s) for s in self.size)
        if not size or any(s <= 0 for s in size):
            raise ValueError(f"Virtual domain size must be positive, got {self.size}")
        dim = len(size)

        spacing = (
            np.ones(dim) if self.spacing is None else np.asarray(self.spacing, float)
        )
        origin = (
            np.zeros(dim) if self.origin is None else np.asarray(self.origin, float)
        )
        direction = (
            np.eye(dim) if self.direction is None else np.asarray(self.direction, float)
        )

        if spacing.shape != (dim,) or np.any(spacing <= 0):
            raise ValueError(f"spacing must be {dim} positive values, got {spacing}")
        if origin.shape != (dim,):
            raise ValueError(f"origin must have {dim} values, got {origin}")
        if direction.shape != (dim, dim):
            raise ValueError(f"direction must be ({dim}, {dim}), got {direction.shape}")

        object.__setattr__(self, "size", size)
        object.__setattr__(self, "spacing", spacing)
        object.__setattr__(self, "origin", origin)
        object.__setattr__(self, "direction", direction)

    @property
    def dimension(self) -> int:
        return len(self.size)

    @property
    def number_of_locations(self) -> int:
        return int(np.prod(self.size))

    def index_to_physical_point(self, index: Sequence[int]) -> np.ndarray:
        index = np.asarray(index, dtype=float)
        return self.origin + self.direction @ (self.spacing * index)

    def physical_point_to_index(self, point: Sequence[float]) -> tuple[int, ...]:
        """Nearest grid index for a physical point (may lie outside)."""
        point = np.asarray(point, dtype=float)
        continuous = np.linalg.solve(
            self.direction * self.spacing[np.newaxis, :], point - self.origin
        )
        return tuple(int(i) for i in np.rint(continuous))

    def is_inside_index(self, index: Sequence[int]) -> bool:
        if len(index) != self.dimension:
            return False
        return all(0 <= int(i) < s for i, s in zip(index, self.size))

    def linear_index(self, index: Sequence[int]) -> int:
        """C-order linear index of a grid location.

        Raises
        ------
        IndexError
            If the index is outside the domain.
        """
        if not self.is_inside_index(index):
            raise IndexError(f"Index {tuple(index)} outside virtual domain {self.size}")
        return int(np.ravel_multi_index(tuple(int(i) for i in index), self.size))

    def corner_points(self) -> np.ndarray:
        """Physical coordinates of the ``2**dim`` grid corners."""
        corners = []
        for mask in range(2 ** self.dimension):
            index = [
                (s - 1) if (mask >> axis) & 1 else 0
                for axis, s in enumerate(self.size)
            ]
            corners.append(self.index_to_physical_point(index))
        return np.asarray(corners)
