"""
Handlers pour les commands et events.

Les handlers sont les fonctions qui traitent les commands et events
transitant par le message bus.

- Command handlers : exécutent un cas d'usage (peuvent échouer)
- Event handlers : réagissent à un fait committé (invalidation du cache)

Les cas d'usage qui touchent à la fois la capacité d'un Event et un
Booking sont des sagas : chaque étape committe sa propre transaction
et possède une compensation.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Callable

from ticketing.domain import commands, events, model, transitions
from ticketing.service_layer.saga import Saga

if TYPE_CHECKING:
    from datetime import datetime

    from ticketing.adapters.cache import CacheCoordinator
    from ticketing.service_layer.capacity import CapacityLedger
    from ticketing.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

BOOKING_FAMILY = "booking:"
EVENT_FAMILY = "event:"


def _parse_enum(enum_cls: type, value: str, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise model.ValidationError(f"{label} inconnu : {value!r}") from None


def _parse_price(value: object) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise model.ValidationError(f"Prix invalide : {value!r}") from None


def _requester(cmd) -> model.AuthContext:
    return model.AuthContext(
        user_id=cmd.requester_id,
        role=_parse_enum(model.Role, cmd.requester_role, "Rôle"),
    )


# --- Command Handlers : réservations ---


def create_booking(
    cmd: commands.CreateBooking,
    uow: AbstractUnitOfWork,
    ledger: CapacityLedger,
    clock: Callable[[], datetime],
) -> dict:
    """
    Réserve des billets pour un spectacle.

    Saga en deux étapes : consommer la capacité (compensée par une
    libération), puis enregistrer la réservation. Si l'enregistrement
    échoue, la capacité est rendue avant que l'erreur ne remonte.

    Retourne la réservation créée, sérialisée.
    """
    quantity = model.positive_quantity(cmd.quantity)
    with uow:
        spectacle = uow.events.get(cmd.event_id)
        if spectacle is None:
            raise model.NotFound(f"Événement introuvable : {cmd.event_id}")
        if not spectacle.is_bookable(clock()):
            raise model.EventNotBookable(f"L'événement {cmd.event_id} n'est pas réservable")
        # Montant figé au prix lu ici, avant la réservation
        booking = model.Booking.for_event(
            spectacle, cmd.user_id, quantity, special_requests=cmd.special_requests
        )
    snapshot = booking.to_dict()

    def persist_booking() -> None:
        with uow:
            uow.bookings.add(booking)
            uow.commit()

    Saga("create_booking").step(
        lambda: ledger.reserve(cmd.event_id, quantity),
        compensation=lambda: ledger.release(cmd.event_id, quantity),
        name="reserve_capacity",
    ).step(persist_booking).execute()

    logger.info(
        "Réservation %s créée : %s x%d pour %s",
        snapshot["id"], cmd.event_id, quantity, cmd.user_id,
    )
    return snapshot


def update_booking_status(
    cmd: commands.UpdateBookingStatus,
    uow: AbstractUnitOfWork,
    ledger: CapacityLedger,
) -> dict:
    """
    Change le couple (statut, paiement) d'une réservation.

    Le changement de statut est un compare-and-set : si deux
    annulations arrivent en même temps, une seule voit sa ligne
    modifiée et libère la capacité. Le passage à `cancelled` libère
    les places une seule fois ; si cette libération échoue, le statut
    précédent est restauré.
    """
    status = _parse_enum(model.BookingStatus, cmd.status, "Statut")
    with uow:
        booking = uow.bookings.get(cmd.booking_id)
        if booking is None:
            raise model.NotFound(f"Réservation introuvable : {cmd.booking_id}")
        current = (booking.status, booking.payment_status)
        event_id, tickets = booking.event_id, booking.number_of_tickets

    if cmd.payment_status is not None:
        payment_status = _parse_enum(model.PaymentStatus, cmd.payment_status, "Statut de paiement")
    elif status is model.BookingStatus.CANCELLED:
        payment_status = transitions.cancellation_payment_status(current[1])
    else:
        payment_status = current[1]
    target = (status, payment_status)
    transitions.validate_transition(*current, *target)

    result: dict = {}

    def change_status() -> None:
        with uow:
            if not uow.bookings.update_status(cmd.booking_id, current, target, model.utcnow()):
                if uow.bookings.get(cmd.booking_id) is None:
                    raise model.NotFound(f"Réservation introuvable : {cmd.booking_id}")
                raise model.InvalidTransition(
                    f"La réservation {cmd.booking_id} a changé de statut entre-temps"
                )
            # Relue après l'UPDATE : la ligne porte déjà le couple cible
            booking = uow.bookings.get(cmd.booking_id)
            booking.apply_status(current[0], *target)
            result.update(booking.to_dict())
            uow.commit()

    def revert_status() -> None:
        with uow:
            uow.bookings.update_status(cmd.booking_id, target, current, model.utcnow())
            uow.commit()

    saga = Saga("update_booking_status").step(change_status, compensation=revert_status)
    if status is model.BookingStatus.CANCELLED:
        saga.step(lambda: ledger.release(event_id, tickets), name="release_capacity")
    saga.execute()

    logger.info(
        "Réservation %s : %s/%s -> %s/%s",
        cmd.booking_id, current[0].value, current[1].value, status.value, payment_status.value,
    )
    return result


def cancel_booking(
    cmd: commands.CancelBooking,
    uow: AbstractUnitOfWork,
    ledger: CapacityLedger,
) -> dict:
    """
    Annule une réservation au nom d'un utilisateur.

    Seul le titulaire de la réservation ou un administrateur peut
    annuler ; la suite est celle de update_booking_status.
    """
    requester = _requester(cmd)
    with uow:
        booking = uow.bookings.get(cmd.booking_id)
        if booking is None:
            raise model.NotFound(f"Réservation introuvable : {cmd.booking_id}")
        if not requester.can_cancel(booking):
            raise model.Unauthorized("Vous ne pouvez annuler que vos propres réservations")
    return update_booking_status(
        commands.UpdateBookingStatus(
            booking_id=cmd.booking_id,
            status=model.BookingStatus.CANCELLED.value,
        ),
        uow=uow,
        ledger=ledger,
    )


# --- Command Handlers : spectacles ---


def create_event(
    cmd: commands.CreateEvent,
    uow: AbstractUnitOfWork,
) -> dict:
    """Crée un spectacle en brouillon ; il devra être publié pour être réservable."""
    spectacle = model.Event(
        title=cmd.title,
        artist_id=cmd.artist_id,
        date=cmd.date,
        price=_parse_price(cmd.price),
        max_capacity=cmd.max_capacity,
        description=cmd.description,
        duration=cmd.duration,
        location=cmd.location,
        genres=cmd.genres,
    )
    spectacle.domain_events.append(events.EventUpdated(event_id=spectacle.id))
    snapshot = spectacle.to_dict()
    with uow:
        uow.events.add(spectacle)
        uow.commit()
    return snapshot


def _change_event(
    event_id: str,
    uow: AbstractUnitOfWork,
    requester: model.AuthContext,
    change: Callable[[model.Event], None],
) -> dict:
    """Modifie un spectacle ; seul son artiste ou un admin y est autorisé."""
    with uow:
        spectacle = uow.events.get(event_id)
        if spectacle is None:
            raise model.NotFound(f"Événement introuvable : {event_id}")
        if not requester.can_manage_event(spectacle):
            raise model.Unauthorized("Vous ne pouvez gérer que vos propres spectacles")
        change(spectacle)
        snapshot = spectacle.to_dict()
        uow.commit()
    return snapshot


def publish_event(cmd: commands.PublishEvent, uow: AbstractUnitOfWork) -> dict:
    return _change_event(cmd.event_id, uow, _requester(cmd), lambda e: e.publish())


def cancel_event(cmd: commands.CancelEvent, uow: AbstractUnitOfWork) -> dict:
    return _change_event(cmd.event_id, uow, _requester(cmd), lambda e: e.cancel())


def update_event_price(cmd: commands.UpdateEventPrice, uow: AbstractUnitOfWork) -> dict:
    """Change le prix des réservations futures ; les montants existants restent figés."""
    price = _parse_price(cmd.price)
    return _change_event(cmd.event_id, uow, _requester(cmd), lambda e: e.change_price(price))


# --- Event Handlers ---


def invalidate_booking_cache(
    event: events.DomainEvent,
    cache: CacheCoordinator,
) -> None:
    cache.delete_by_prefix(BOOKING_FAMILY)


def invalidate_event_cache(
    event: events.DomainEvent,
    cache: CacheCoordinator,
) -> None:
    """Le compteur de réservations fait partie des lectures d'Event."""
    cache.delete_by_prefix(EVENT_FAMILY)
