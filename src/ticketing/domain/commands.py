"""
Commands du domaine.

Les commands représentent des intentions : quelque chose que
le système doit faire. Contrairement aux events (faits passés),
les commands sont des demandes qui peuvent échouer.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


class Command:
    """Classe de base pour toutes les commands."""
    pass


@dataclass(frozen=True)
class CreateBooking(Command):
    """Demande de réservation de billets pour un spectacle."""

    event_id: str
    user_id: str
    quantity: int
    special_requests: Optional[str] = None


@dataclass(frozen=True)
class UpdateBookingStatus(Command):
    """
    Demande de changement du couple (statut, paiement).

    `payment_status=None` laisse l'orchestrateur choisir :
    inchangé, ou remboursé en cas d'annulation d'un paiement encaissé.
    """

    booking_id: str
    status: str
    payment_status: Optional[str] = None


@dataclass(frozen=True)
class CancelBooking(Command):
    """Annulation demandée par le titulaire de la réservation ou un admin."""

    booking_id: str
    requester_id: str
    requester_role: str


@dataclass(frozen=True)
class CreateEvent(Command):
    """Demande de création d'un spectacle (en brouillon)."""

    title: str
    artist_id: str
    date: datetime
    price: Decimal
    max_capacity: int
    description: Optional[str] = None
    duration: Optional[int] = None
    location: Optional[dict] = None
    genres: tuple[str, ...] = ()


@dataclass(frozen=True)
class PublishEvent(Command):
    """Publication demandée par l'artiste du spectacle ou un admin."""

    event_id: str
    requester_id: str
    requester_role: str


@dataclass(frozen=True)
class CancelEvent(Command):
    event_id: str
    requester_id: str
    requester_role: str


@dataclass(frozen=True)
class UpdateEventPrice(Command):
    event_id: str
    price: Decimal
    requester_id: str
    requester_role: str
