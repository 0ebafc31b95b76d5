"""
Orchestrateur des cas d'usage.

Frontière entre la couche transport et le système : chaque opération
renvoie une Envelope {statusCode, message, data, pagination}, y compris
en cas d'échec. Aucune exception ne franchit cette frontière.

- Les écritures envoient une command sur le message bus ; les events
  committés invalident ensuite le cache.
- Les lectures passent d'abord par le cache, puis par les views SQL,
  et repeuplent le cache (read-through).
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from ticketing.adapters.cache import CacheCoordinator, serialize_params
from ticketing.adapters.repository import DatabaseError
from ticketing.domain import commands, model
from ticketing.service_layer import messagebus
from ticketing.views import views

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Envelope:
    """Réponse uniforme, seul contrat dont dépend la couche transport."""

    status_code: int
    message: str
    data: Any = None
    pagination: Optional[dict[str, int]] = None

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def to_dict(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "message": self.message,
            "data": self.data,
            "pagination": self.pagination,
        }


def enveloped(operation: str) -> Callable:
    """
    Convertit les erreurs d'un cas d'usage en Envelope.

    Les erreurs métier gardent leur message ; les erreurs de stockage
    et les erreurs inattendues sont loggées avec leur contexte et
    renvoyées sous forme de 500 générique.
    """

    def decorator(func: Callable[..., Envelope]) -> Callable[..., Envelope]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Envelope:
            try:
                return func(*args, **kwargs)
            except model.DomainError as e:
                logger.info("%s refusé : %s", operation, e)
                return Envelope(e.status_code, str(e))
            except DatabaseError:
                logger.exception("%s : erreur de base de données (args=%s)", operation, args[1:])
                return Envelope(500, "Database error occurred")
            except Exception:
                logger.exception("%s : erreur inattendue", operation)
                return Envelope(500, "An unknown error occurred")

        return wrapper

    return decorator


class _ReadThrough:
    def __init__(self, bus: messagebus.MessageBus, cache: Optional[CacheCoordinator] = None):
        self.bus = bus
        self.cache = cache or bus.dependencies["cache"]

    def _cached(self, key: str, load: Callable[[], Any]) -> Any:
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        value = load()
        if value is not None:
            self.cache.set(key, value)
        return value

    def _cached_page(
        self,
        family: str,
        qualifier: list[str],
        params: views.PaginationParams,
        load: Callable[[], tuple[list[dict], dict[str, int]]],
    ) -> tuple[list[dict], dict[str, int]]:
        key = self.cache.make_key(family, *qualifier, serialize_params(params.as_key_params()))

        def load_page() -> dict:
            data, pagination = load()
            return {"data": data, "pagination": pagination}

        page = self._cached(key, load_page)
        return page["data"], page["pagination"]


class BookingOrchestrator(_ReadThrough):
    """Cas d'usage des réservations."""

    @enveloped("create_booking")
    def create_booking(
        self,
        event_id: str,
        user_id: str,
        quantity: int,
        special_requests: Optional[str] = None,
    ) -> Envelope:
        [booking] = self.bus.handle(
            commands.CreateBooking(event_id, user_id, quantity, special_requests)
        )
        return Envelope(201, "Booking created successfully", booking)

    @enveloped("update_booking_status")
    def update_booking_status(
        self,
        booking_id: str,
        status: str,
        payment_status: Optional[str] = None,
    ) -> Envelope:
        [booking] = self.bus.handle(
            commands.UpdateBookingStatus(booking_id, status, payment_status)
        )
        return Envelope(200, "Booking updated successfully", booking)

    @enveloped("cancel_booking")
    def cancel_booking(self, booking_id: str, requester: model.AuthContext) -> Envelope:
        [booking] = self.bus.handle(
            commands.CancelBooking(booking_id, requester.user_id, requester.role.value)
        )
        return Envelope(200, "Booking cancelled successfully", booking)

    @enveloped("get_booking")
    def get_booking(self, booking_id: str) -> Envelope:
        booking = self._cached(
            self.cache.make_key("booking", booking_id),
            lambda: views.booking(booking_id, self.bus.uow),
        )
        if booking is None:
            raise model.NotFound("Booking not found")
        return Envelope(200, "Booking fetched successfully", booking)

    def _list(self, qualifier: list[str], params: views.PaginationParams, **filters: Any) -> Envelope:
        data, pagination = self._cached_page(
            "booking", qualifier, params,
            lambda: views.bookings(self.bus.uow, params, **filters),
        )
        return Envelope(200, "Bookings fetched successfully", data, pagination)

    @enveloped("list_bookings")
    def list_bookings(self, params: views.PaginationParams) -> Envelope:
        return self._list(["all"], params)

    @enveloped("list_user_bookings")
    def list_user_bookings(self, user_id: str, params: views.PaginationParams) -> Envelope:
        return self._list(["user", user_id], params, user_id=user_id)

    @enveloped("list_event_bookings")
    def list_event_bookings(self, event_id: str, params: views.PaginationParams) -> Envelope:
        return self._list(["event", event_id], params, event_id=event_id)

    @enveloped("list_bookings_by_status")
    def list_bookings_by_status(self, status: str, params: views.PaginationParams) -> Envelope:
        try:
            parsed = model.BookingStatus(status)
        except ValueError:
            raise model.ValidationError(f"Statut inconnu : {status!r}") from None
        return self._list(["status", parsed.value], params, status=parsed)

    @enveloped("list_bookings_by_payment_status")
    def list_bookings_by_payment_status(
        self, payment_status: str, params: views.PaginationParams
    ) -> Envelope:
        try:
            parsed = model.PaymentStatus(payment_status)
        except ValueError:
            raise model.ValidationError(f"Statut de paiement inconnu : {payment_status!r}") from None
        return self._list(["payment", parsed.value], params, payment_status=parsed)


class EventCatalog(_ReadThrough):
    """Cas d'usage des spectacles : création, publication, prix, lectures."""

    @enveloped("create_event")
    def create_event(
        self,
        title: str,
        artist_id: str,
        date: datetime,
        price: Decimal,
        max_capacity: int,
        description: Optional[str] = None,
        duration: Optional[int] = None,
        location: Optional[dict[str, str]] = None,
        genres: tuple[str, ...] = (),
    ) -> Envelope:
        [spectacle] = self.bus.handle(
            commands.CreateEvent(
                title, artist_id, date, price, max_capacity,
                description=description,
                duration=duration,
                location=location,
                genres=tuple(genres),
            )
        )
        return Envelope(201, "Event created successfully", spectacle)

    @enveloped("publish_event")
    def publish_event(self, event_id: str, requester: model.AuthContext) -> Envelope:
        [spectacle] = self.bus.handle(
            commands.PublishEvent(event_id, requester.user_id, requester.role.value)
        )
        return Envelope(200, "Event published successfully", spectacle)

    @enveloped("cancel_event")
    def cancel_event(self, event_id: str, requester: model.AuthContext) -> Envelope:
        [spectacle] = self.bus.handle(
            commands.CancelEvent(event_id, requester.user_id, requester.role.value)
        )
        return Envelope(200, "Event cancelled successfully", spectacle)

    @enveloped("update_event_price")
    def update_event_price(
        self, event_id: str, price: Decimal, requester: model.AuthContext
    ) -> Envelope:
        [spectacle] = self.bus.handle(
            commands.UpdateEventPrice(event_id, price, requester.user_id, requester.role.value)
        )
        return Envelope(200, "Event updated successfully", spectacle)

    @enveloped("get_event")
    def get_event(self, event_id: str) -> Envelope:
        spectacle = self._cached(
            self.cache.make_key("event", event_id),
            lambda: views.event(event_id, self.bus.uow),
        )
        if spectacle is None:
            raise model.NotFound("Event not found")
        return Envelope(200, "Event fetched successfully", spectacle)

    def _list(self, qualifier: list[str], params: views.PaginationParams, **filters: Any) -> Envelope:
        data, pagination = self._cached_page(
            "event", qualifier, params,
            lambda: views.events(self.bus.uow, params, **filters),
        )
        return Envelope(200, "Events fetched successfully", data, pagination)

    @enveloped("list_events")
    def list_events(self, params: views.PaginationParams) -> Envelope:
        return self._list(["all"], params)

    @enveloped("list_artist_events")
    def list_artist_events(self, artist_id: str, params: views.PaginationParams) -> Envelope:
        return self._list(["artist", artist_id], params, artist_id=artist_id)

    @enveloped("list_events_by_genre")
    def list_events_by_genre(self, genre: str, params: views.PaginationParams) -> Envelope:
        try:
            parsed = model.Genre(genre)
        except ValueError:
            raise model.ValidationError(f"Genre inconnu : {genre!r}") from None
        return self._list(["genre", parsed.value], params, genre=parsed)

    @enveloped("list_upcoming_events")
    def list_upcoming_events(self, params: views.PaginationParams) -> Envelope:
        """
        Spectacles publiés dont la date n'est pas encore passée.

        La page mise en cache reflète l'instant de sa lecture ; elle
        vit au plus le TTL du cache ou jusqu'à la prochaine écriture.
        """
        now = self.bus.dependencies["clock"]()
        return self._list(["upcoming"], params, upcoming_after=now)
