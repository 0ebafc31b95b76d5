"""
Modèle de domaine de la billetterie.

Ce module contient les agrégats du domaine (Event, Booking), les
énumérations de statuts, le contexte d'authentification et la
taxonomie des erreurs métier.

Le compteur `current_bookings` d'un Event n'est jamais modifié ici :
seul le CapacityLedger y touche, via des mises à jour conditionnelles
en base.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from ticketing.domain import events


# --- Erreurs du domaine ---


class DomainError(Exception):
    """
    Classe de base des erreurs métier.

    `status_code` est le code HTTP conventionnel utilisé par
    l'orchestrateur pour construire l'enveloppe de réponse.
    """

    status_code = 400


class ValidationError(DomainError):
    """Entrée malformée (quantité nulle, paramètre inconnu...)."""


class NotFound(DomainError):
    status_code = 404


class Unauthorized(DomainError):
    status_code = 403


class CapacityExceeded(DomainError):
    """Levée quand la réservation dépasserait la capacité de l'événement."""


class EventNotBookable(DomainError):
    """Levée quand l'événement n'est pas publié ou déjà passé."""


class InvalidTransition(DomainError):
    """Levée quand une transition de statut n'est pas autorisée."""


# --- Énumérations ---


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class Genre(str, enum.Enum):
    POP = "pop"
    ROCK = "rock"
    JAZZ = "jazz"
    CLASSICAL = "classical"
    ELECTRONIC = "electronic"
    OTHER = "other"


class Role(str, enum.Enum):
    USER = "user"
    ARTIST = "artist"
    ADMIN = "admin"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """SQLite restitue des datetimes naïfs : on les considère comme UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def positive_quantity(quantity: object) -> int:
    """Vérifie qu'une quantité de billets est un entier strictement positif."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"La quantité doit être un entier positif : {quantity!r}")
    return quantity


LOCATION_FIELDS = ("address", "city", "state", "country")


def _duration(duration: Optional[int]) -> Optional[int]:
    """Durée en heures, entre 1 et 24."""
    if duration is None:
        return None
    if isinstance(duration, bool) or not isinstance(duration, int) or not 1 <= duration <= 24:
        raise ValidationError("La durée doit être un nombre d'heures entre 1 et 24")
    return duration


def _location(location: Optional[dict[str, str]]) -> Optional[dict[str, str]]:
    if location is None:
        return None
    if not isinstance(location, dict) or set(location) - set(LOCATION_FIELDS):
        raise ValidationError(f"Le lieu n'accepte que les champs {', '.join(LOCATION_FIELDS)}")
    return {field: location[field] for field in LOCATION_FIELDS if field in location}


def _genres(genres: Iterable[str]) -> list[str]:
    try:
        values = [Genre(g).value for g in genres]
    except (TypeError, ValueError):
        raise ValidationError(f"Genres inconnus : {genres!r}") from None
    return sorted(set(values))


# --- Contexte d'authentification ---


@dataclass(frozen=True)
class AuthContext:
    """
    Identité de l'appelant, fournie par la couche transport.

    Les vérifications de droits sont explicites, une méthode
    par capacité, plutôt que de lire des attributs au hasard.
    """

    user_id: str
    role: Role

    def can_cancel(self, booking: Booking) -> bool:
        return self.role is Role.ADMIN or booking.user_id == self.user_id

    def can_manage_bookings(self) -> bool:
        return self.role is Role.ADMIN

    def can_manage_events(self) -> bool:
        return self.role in (Role.ARTIST, Role.ADMIN)

    def can_manage_event(self, event: Event) -> bool:
        """Un artiste ne gère que ses propres spectacles ; un admin les gère tous."""
        if self.role is Role.ADMIN:
            return True
        return self.role is Role.ARTIST and event.artist_id == self.user_id


# --- Agrégats ---


class Event:
    """
    Agrégat représentant un spectacle.

    L'égalité et le hash sont basés sur l'identifiant. La capacité
    maximale est figée dès la publication.
    """

    def __init__(
        self,
        title: str,
        artist_id: str,
        date: datetime,
        price: Decimal,
        max_capacity: int,
        status: EventStatus = EventStatus.DRAFT,
        current_bookings: int = 0,
        id: Optional[str] = None,
        description: Optional[str] = None,
        duration: Optional[int] = None,
        location: Optional[dict[str, str]] = None,
        genres: Iterable[str] = (),
    ):
        if Decimal(price) < 0:
            raise ValidationError("Le prix ne peut pas être négatif")
        if isinstance(max_capacity, bool) or not isinstance(max_capacity, int) or max_capacity <= 0:
            raise ValidationError("La capacité maximale doit être un entier positif")
        if not 0 <= current_bookings <= max_capacity:
            raise ValidationError("Nombre de réservations hors des bornes de capacité")
        self.id = id or str(uuid.uuid4())
        self.title = title
        self.artist_id = artist_id
        self.date = as_utc(date)
        self.price = Decimal(price)
        self.max_capacity = max_capacity
        self.current_bookings = current_bookings
        self.status = status
        self.description = description
        self.duration = _duration(duration)
        self.location = _location(location)
        self.genres = _genres(genres)
        self.created_at = utcnow()
        self.updated_at = self.created_at
        self.domain_events: list[events.DomainEvent] = []

    def __repr__(self) -> str:
        return f"<Event {self.id}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Event):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def is_full(self) -> bool:
        return self.current_bookings >= self.max_capacity

    def is_past(self, now: datetime) -> bool:
        return as_utc(self.date) <= as_utc(now)

    def is_bookable(self, now: datetime) -> bool:
        """Un événement est réservable s'il est publié et pas encore passé."""
        return self.status is EventStatus.PUBLISHED and not self.is_past(now)

    def publish(self) -> None:
        if self.status is not EventStatus.DRAFT:
            raise InvalidTransition(f"Seul un brouillon peut être publié ({self.status.value})")
        self._change_status(EventStatus.PUBLISHED)

    def cancel(self) -> None:
        if self.status not in (EventStatus.DRAFT, EventStatus.PUBLISHED):
            raise InvalidTransition(f"Impossible d'annuler un événement {self.status.value}")
        self._change_status(EventStatus.CANCELLED)

    def complete(self) -> None:
        if self.status is not EventStatus.PUBLISHED:
            raise InvalidTransition(f"Impossible de clôturer un événement {self.status.value}")
        self._change_status(EventStatus.COMPLETED)

    def change_price(self, price: Decimal) -> None:
        """
        Modifie le prix des futures réservations.

        Les montants déjà enregistrés sur les Booking ne bougent pas :
        ils ont été figés à la création.
        """
        if self.status not in (EventStatus.DRAFT, EventStatus.PUBLISHED):
            raise InvalidTransition(
                f"Impossible de changer le prix d'un événement {self.status.value}"
            )
        price = Decimal(price)
        if price < 0:
            raise ValidationError("Le prix ne peut pas être négatif")
        self.price = price
        self.updated_at = utcnow()
        self.domain_events.append(events.EventUpdated(event_id=self.id))

    def _change_status(self, status: EventStatus) -> None:
        self.status = status
        self.updated_at = utcnow()
        self.domain_events.append(events.EventUpdated(event_id=self.id))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "artistId": self.artist_id,
            "date": as_utc(self.date).isoformat(),
            "price": float(self.price),
            "maxCapacity": self.max_capacity,
            "currentBookings": self.current_bookings,
            "status": self.status.value,
            "description": self.description,
            "duration": self.duration,
            "location": self.location,
            "genres": list(self.genres),
        }


class Booking:
    """
    Agrégat représentant une réservation de billets.

    Une réservation n'est jamais supprimée : l'annulation est une
    transition de statut, ce qui préserve l'historique.
    Le montant total est calculé une seule fois, à la création.
    """

    def __init__(
        self,
        event_id: str,
        user_id: str,
        number_of_tickets: int,
        total_amount: Decimal,
        status: BookingStatus = BookingStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        special_requests: Optional[str] = None,
        id: Optional[str] = None,
    ):
        self.id = id or str(uuid.uuid4())
        self.event_id = event_id
        self.user_id = user_id
        self.number_of_tickets = positive_quantity(number_of_tickets)
        self.total_amount = Decimal(total_amount)
        self.status = status
        self.payment_status = payment_status
        self.special_requests = special_requests
        self.created_at = utcnow()
        self.updated_at = self.created_at
        self.domain_events: list[events.DomainEvent] = []

    @classmethod
    def for_event(
        cls,
        event: Event,
        user_id: str,
        number_of_tickets: int,
        special_requests: Optional[str] = None,
    ) -> Booking:
        """Crée une réservation en attente, au prix courant de l'événement."""
        number_of_tickets = positive_quantity(number_of_tickets)
        booking = cls(
            event_id=event.id,
            user_id=user_id,
            number_of_tickets=number_of_tickets,
            total_amount=event.price * number_of_tickets,
            special_requests=special_requests,
        )
        booking.domain_events.append(
            events.BookingCreated(
                booking_id=booking.id,
                event_id=event.id,
                user_id=user_id,
                number_of_tickets=number_of_tickets,
            )
        )
        return booking

    def __repr__(self) -> str:
        return f"<Booking {self.id}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Booking):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def holds_capacity(self) -> bool:
        """Les réservations non annulées comptent dans `current_bookings`."""
        return self.status is not BookingStatus.CANCELLED

    def change_status(self, status: BookingStatus, payment_status: PaymentStatus) -> None:
        """Applique une transition validée par la machine à états."""
        # Import local : transitions dépend des énumérations de ce module
        from ticketing.domain import transitions

        transitions.validate_transition(self.status, self.payment_status, status, payment_status)
        self.apply_status(self.status, status, payment_status)

    def apply_status(
        self,
        previous_status: BookingStatus,
        status: BookingStatus,
        payment_status: PaymentStatus,
    ) -> None:
        """
        Reflète une transition déjà validée, et déjà écrite en base par
        compare-and-set, puis émet BookingStatusChanged.
        """
        self.status = status
        self.payment_status = payment_status
        self.updated_at = utcnow()
        self.domain_events.append(
            events.BookingStatusChanged(
                booking_id=self.id,
                event_id=self.event_id,
                previous_status=previous_status.value,
                status=status.value,
                payment_status=payment_status.value,
            )
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "userId": self.user_id,
            "numberOfTickets": self.number_of_tickets,
            "totalAmount": float(self.total_amount),
            "specialRequests": self.special_requests,
            "status": self.status.value,
            "paymentStatus": self.payment_status.value,
            "createdAt": as_utc(self.created_at).isoformat(),
        }
