"""Ordered actions with compensations that unwind on the first failure."""

import logging
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CompensationPipeline:
    """Runs steps in order and remembers how to undo the completed ones.

    When a step raises, the registered compensations run newest first and the
    original exception propagates. Compensations are best-effort: a failing one
    is logged and the rest still run.
    """

    def __init__(self, name: str = "pipeline") -> None:
        self.name = name
        self._compensations: list[tuple[str, Callable[[], None]]] = []

    def add_compensation(self, name: str, compensation: Callable[[], None]) -> None:
        self._compensations.append((name, compensation))

    def run(self, name: str, action: Callable[[], T]) -> T:
        try:
            return action()
        except Exception:
            logger.warning("%s: step %s failed; unwinding", self.name, name)
            self.unwind()
            raise

    def unwind(self) -> None:
        while self._compensations:
            name, compensation = self._compensations.pop()
            try:
                compensation()
            except Exception:
                logger.exception("%s: compensation %s failed", self.name, name)

    def complete(self) -> None:
        self._compensations.clear()

    @property
    def pending(self) -> list[str]:
        return [name for name, _ in self._compensations]
