"""
Events du domaine.

Les events représentent des faits qui se sont produits dans le système.
Ils ne sont publiés qu'après le commit de la transaction qui les a
émis : c'est ce qui permet d'invalider le cache sans course possible.
"""

from dataclasses import dataclass


class DomainEvent:
    """Classe de base pour tous les events du domaine."""
    pass


@dataclass(frozen=True)
class BookingCreated(DomainEvent):
    """Une réservation a été créée et sa capacité consommée."""

    booking_id: str
    event_id: str
    user_id: str
    number_of_tickets: int


@dataclass(frozen=True)
class BookingStatusChanged(DomainEvent):
    """Le couple (statut, paiement) d'une réservation a changé."""

    booking_id: str
    event_id: str
    previous_status: str
    status: str
    payment_status: str


@dataclass(frozen=True)
class CapacityChanged(DomainEvent):
    """Le compteur de réservations d'un spectacle a bougé de `delta` places."""

    event_id: str
    delta: int


@dataclass(frozen=True)
class EventUpdated(DomainEvent):
    """Un spectacle a été créé, publié, annulé ou a changé de prix."""

    event_id: str
