"""
Saga : une courte liste d'actions, chacune avec sa compensation.

Utilisée quand un cas d'usage touche deux agrégats dans deux
transactions distinctes (réserver la capacité d'un Event, puis
enregistrer un Booking). Si une étape échoue, les compensations
des étapes déjà réussies sont jouées en ordre inverse, puis
l'erreur d'origine est relevée.

    Saga("create_booking") \\
        .step(reserve, compensation=release) \\
        .step(persist) \\
        .execute()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    name: str
    action: Callable[[], Any]
    compensation: Optional[Callable[[], Any]] = None


class Saga:
    def __init__(self, name: str):
        self.name = name
        self.steps: list[Step] = []

    def step(
        self,
        action: Callable[[], Any],
        compensation: Optional[Callable[[], Any]] = None,
        name: Optional[str] = None,
    ) -> Saga:
        self.steps.append(Step(name or action.__name__, action, compensation))
        return self

    def execute(self) -> list[Any]:
        """
        Exécute les étapes dans l'ordre et retourne leurs résultats.

        Les compensations ne sont pas rejouées en cas d'échec :
        l'échec est loggé et l'erreur d'origine reste celle relevée.
        """
        completed: list[Step] = []
        results: list[Any] = []
        for step in self.steps:
            try:
                results.append(step.action())
            except Exception:
                logger.warning("Saga %s : échec de l'étape %s, compensation", self.name, step.name)
                self._compensate(completed)
                raise
            completed.append(step)
        return results

    def _compensate(self, completed: list[Step]) -> None:
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                step.compensation()
            except Exception:
                logger.exception(
                    "Saga %s : la compensation de l'étape %s a échoué", self.name, step.name
                )
