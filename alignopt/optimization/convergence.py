"""Windowed convergence monitoring of the energy (metric value) profile.

The monitor keeps the last ``window_size`` energy values and the total
absolute energy seen since the last clear. Once the window is full, the
window is normalized by the total energy, a straight line is fitted
against parametric positions in ``[0, 1]`` and the slope magnitude is the
convergence value. A window whose normalized spread is below float
resolution counts as flat and reports 0.0.

Because the total energy keeps growing over a run, the normalized slope of
a decaying profile shrinks towards zero: a geometric decay passes a small
threshold such as 1e-6 and, once its window is flat to float resolution,
a threshold of 0. A rising profile keeps a slope proportional to its
growth and does not pass.

Non-finite values and values at the float limit (the sentinel of a
degenerate metric evaluation) are not recorded.

Deciding that the run has converged is left to the caller, which compares
the value with its own threshold.
"""

from __future__ import annotations

import collections

import numpy as np
from scipy import stats

from alignopt.utils.logging import get_logger

logger = get_logger(__name__)

# Reported while the window is not yet full.
UNDEFINED_CONVERGENCE_VALUE = float(np.finfo(float).max)

_FLOAT_MAX = float(np.finfo(float).max)
_FLOAT_EPS = float(np.finfo(float).eps)


class WindowConvergenceMonitor:
    """Fixed-size trailing window of energy values.

    Parameters
    ----------
    window_size : int
        Number of values used for the trend fit. Must be at least 2 and
        cannot change after construction.

    Examples
    --------
    >>> monitor = WindowConvergenceMonitor(window_size=3)
    >>> for v in (3.0, 2.0, 1.0):
    ...     monitor.add_energy_value(v)
    >>> monitor.get_convergence_value() > 0
    True
    """

    def __init__(self, window_size: int = 50):
        window_size = int(window_size)
        if window_size < 2:
            raise ValueError(f"window_size must be >= 2, got {window_size}")
        self._window_size = window_size
        self._energy_values: collections.deque[float] = collections.deque(
            maxlen=window_size
        )
        self._total_energy = 0.0

    @property
    def window_size(self) -> int:
        return self._window_size

    @property
    def total_energy(self) -> float:
        return self._total_energy

    @property
    def number_of_energy_values(self) -> int:
        return len(self._energy_values)

    @property
    def is_window_full(self) -> bool:
        return len(self._energy_values) == self._window_size

    def add_energy_value(self, value: float) -> bool:
        """Append a value, evicting the oldest once the window is full.

        Returns False, leaving the window and total energy untouched, for
        non-finite values and values at the float limit.
        """
        value = float(value)
        if not np.isfinite(value) or abs(value) >= _FLOAT_MAX:
            logger.debug("Skipping degenerate energy value %r", value)
            return False
        self._energy_values.append(value)
        self._total_energy += abs(value)
        return True

    def clear_energy_values(self) -> None:
        self._energy_values.clear()
        self._total_energy = 0.0

    def get_convergence_value(self) -> float:
        """Slope magnitude of the normalized windowed energy profile.

        Returns
        -------
        float
            ``UNDEFINED_CONVERGENCE_VALUE`` until the window is full or when
            the total energy overflowed, 0.0 if the total energy is zero or
            the normalized window is flat, else ``abs(slope)``.
        """
        if not self.is_window_full or not np.isfinite(self._total_energy):
            return UNDEFINED_CONVERGENCE_VALUE

        if self._total_energy == 0.0:
            return 0.0

        profile = np.fromiter(self._energy_values, dtype=float) / self._total_energy
        positions = np.linspace(0.0, 1.0, self._window_size)

        if np.ptp(profile) <= _FLOAT_EPS:
            return 0.0

        fit = stats.linregress(positions, profile)
        convergence_value = abs(float(fit.slope))
        logger.debug(
            "Convergence value %.6e over %d values (total energy %.6e)",
            convergence_value,
            self._window_size,
            self._total_energy,
        )
        return convergence_value
