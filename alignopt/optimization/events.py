"""Synchronous iteration notifications.

Observers are plain callables registered on an optimizer. They run on the
optimizer's control thread at loop start, after each iteration and at loop
end, and receive an immutable :class:`IterationEvent`. An observer may read
the optimizer's query properties but must not mutate the optimizer or the
metric.
"""

from __future__ import annotations

import enum
import itertools
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from alignopt.utils.logging import get_logger

logger = get_logger(__name__)


class EventKind(str, enum.Enum):
    START = "start"
    ITERATION = "iteration"
    END = "end"


@dataclass(frozen=True)
class IterationEvent:
    """Snapshot passed to observers.

    Attributes
    ----------
    kind : EventKind
        START, ITERATION or END.
    iteration : int
        Iteration counter at emission (number of completed iterations).
    value : float
        Metric value of the last completed iteration (NaN before the first).
    """

    kind: EventKind
    iteration: int
    value: float


Observer = Callable[[IterationEvent], None]


class ObserverRegistry:
    """Ordered list of observers with integer handles."""

    def __init__(self) -> None:
        self._observers: dict[int, tuple[Observer, frozenset[EventKind]]] = {}
        self._handles = itertools.count(1)

    def __len__(self) -> int:
        return len(self._observers)

    def add(
        self, callback: Observer, kinds: Iterable[EventKind] | None = None
    ) -> int:
        """Register ``callback`` for ``kinds`` (all kinds when None)."""
        if not callable(callback):
            raise TypeError(f"Observer must be callable, got {type(callback).__name__}")
        selected = frozenset(EventKind) if kinds is None else frozenset(
            EventKind(k) for k in kinds
        )
        handle = next(self._handles)
        self._observers[handle] = (callback, selected)
        return handle

    def remove(self, handle: int) -> bool:
        """Unregister an observer. Returns False for unknown handles."""
        return self._observers.pop(handle, None) is not None

    def clear(self) -> None:
        self._observers.clear()

    def notify(self, event: IterationEvent) -> None:
        """Invoke matching observers in registration order."""
        for callback, kinds in list(self._observers.values()):
            if event.kind in kinds:
                callback(event)


class IterationLogger:
    """Observer that logs optimization progress.

    Parameters
    ----------
    log_interval : int
        Log every N iterations at INFO; other iterations go to DEBUG.
    logger_instance : logging.Logger, optional
        Logger to use. Defaults to this module's logger.
    """

    def __init__(
        self, log_interval: int = 10, logger_instance: logging.Logger | None = None
    ):
        if log_interval < 1:
            raise ValueError(f"log_interval must be >= 1, got {log_interval}")
        self.log_interval = log_interval
        self._logger = logger_instance or logger
        self._start_time: float | None = None
        self.best_value = float("inf")

    def __call__(self, event: IterationEvent) -> None:
        if event.kind is EventKind.START:
            self._start_time = time.perf_counter()
            self.best_value = float("inf")
            self._logger.info("Optimization started")
            return

        if event.kind is EventKind.END:
            elapsed = (
                0.0 if self._start_time is None else time.perf_counter() - self._start_time
            )
            self._logger.info(
                f"Optimization finished after {event.iteration} iterations "
                f"| value: {event.value:.6e} | {elapsed:.2f}s"
            )
            return

        if event.value < self.best_value:
            self.best_value = event.value
        level = logging.INFO if event.iteration % self.log_interval == 0 else logging.DEBUG
        self._logger.log(
            level,
            f"Iter {event.iteration:5d} | value: {event.value:.6e} "
            f"| best: {self.best_value:.6e}",
        )
