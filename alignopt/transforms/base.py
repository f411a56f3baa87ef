"""Transform contract driven by metrics.

A transform owns the parameter vector being optimized. Metrics forward
``get_parameters``/``set_parameters``/``update_transform_parameters`` to
the transform they treat as moving; the optimizer never touches it
directly.

Concrete parameterizations (affine, displacement field, ...) live outside
this package and only need to subclass :class:`Transform`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np


class Transform(ABC):
    """Abstract parametric transform.

    Subclasses must store their parameters and report how many of them are
    local (per spatial location) for local-support transforms. The default
    update rule is additive: ``p <- p + factor * update``.
    """

    @abstractmethod
    def get_parameters(self) -> np.ndarray:
        """Return the parameter vector (a view or a copy)."""

    @abstractmethod
    def set_parameters(self, parameters: np.ndarray) -> None:
        """Replace the parameter vector."""

    def get_number_of_parameters(self) -> int:
        return int(np.asarray(self.get_parameters()).size)

    def get_number_of_local_parameters(self) -> int:
        """Parameters per location; all parameters for global transforms."""
        return self.get_number_of_parameters()

    def has_local_support(self) -> bool:
        return False

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Map an ``(n, dim)`` array of points.

        Only required by estimators that measure physical shifts.
        """
        raise NotImplementedError(
            f"{type(self).__name__} does not implement transform_points"
        )

    def update_transform_parameters(
        self, update: np.ndarray, factor: float = 1.0
    ) -> None:
        """Combine ``update`` into the parameters.

        Raises
        ------
        ValueError
            If ``update`` does not match the number of parameters.
        """
        update = np.asarray(update, dtype=float)
        n_params = self.get_number_of_parameters()
        if update.size != n_params:
            raise ValueError(
                f"Parameter update size {update.size} does not match "
                f"number of parameters {n_params}"
            )
        parameters = np.asarray(self.get_parameters(), dtype=float)
        if factor == 1.0:
            new_parameters = parameters + update
        else:
            new_parameters = parameters + factor * update
        self.set_parameters(new_parameters)
