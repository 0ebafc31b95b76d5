"""
CapacityLedger : seul point de passage des modifications de capacité.

Réserver, c'est vérifier `current_bookings + q <= max_capacity` et
incrémenter en une seule opération de stockage (UPDATE conditionnel).
Un lire-modifier-écrire en deux allers-retours laisserait deux
requêtes concurrentes réussir ensemble au-delà de la capacité.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from ticketing.domain import events, model
from ticketing.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


class CapacityLedger:
    def __init__(
        self,
        uow: AbstractUnitOfWork,
        clock: Callable[[], datetime] = model.utcnow,
    ):
        self.uow = uow
        self.clock = clock

    def reserve(self, event_id: str, quantity: int) -> None:
        """
        Consomme `quantity` places de l'événement.

        Lève ValidationError, NotFound, EventNotBookable ou
        CapacityExceeded. Le diagnostic n'est fait qu'après un
        UPDATE qui n'a touché aucune ligne.
        """
        quantity = model.positive_quantity(quantity)
        now = self.clock()
        with self.uow:
            if self.uow.events.reserve_capacity(event_id, quantity, now):
                self.uow.commit(events.CapacityChanged(event_id=event_id, delta=quantity))
                logger.info("Capacité réservée : %s +%d", event_id, quantity)
                return
            spectacle = self.uow.events.get(event_id)
            if spectacle is None:
                raise model.NotFound(f"Événement introuvable : {event_id}")
            if not spectacle.is_bookable(now):
                raise model.EventNotBookable(f"L'événement {event_id} n'est pas réservable")
            raise model.CapacityExceeded(
                f"Capacité insuffisante pour {event_id} : "
                f"{spectacle.current_bookings}/{spectacle.max_capacity}, {quantity} demandé(s)"
            )

    def release(self, event_id: str, quantity: int) -> None:
        """
        Rend `quantity` places à l'événement.

        Peut être rejoué après une panne transitoire. Si le compteur
        est déjà inférieur à `quantity`, l'état est incohérent : on le
        signale et on le ramène à zéro plutôt que de le rendre négatif.
        """
        quantity = model.positive_quantity(quantity)
        with self.uow:
            if not self.uow.events.release_capacity(event_id, quantity):
                spectacle = self.uow.events.get(event_id)
                if spectacle is None:
                    raise model.NotFound(f"Événement introuvable : {event_id}")
                logger.error(
                    "Capacité incohérente pour %s : %d réservation(s), libération de %d",
                    event_id, spectacle.current_bookings, quantity,
                )
                self.uow.events.floor_capacity(event_id, quantity)
            self.uow.commit(events.CapacityChanged(event_id=event_id, delta=-quantity))
        logger.info("Capacité libérée : %s -%d", event_id, quantity)
