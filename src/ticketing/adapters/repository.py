"""
Pattern Repository.

Le repository fournit une abstraction sur la couche de persistance.
Il expose une interface de type collection (add, get) qui masque
les détails de l'accès aux données.

Les mises à jour de capacité et de statut ne passent pas par
l'objet chargé en mémoire : ce sont des UPDATE conditionnels,
exécutés en un seul aller-retour, qui renvoient True si une
ligne a été modifiée. C'est ce qui empêche la surréservation
quand deux requêtes lisent le même état en parallèle.
"""

from __future__ import annotations

import abc
import contextlib
from datetime import datetime
from typing import Iterator

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ticketing.adapters import orm
from ticketing.domain import model


class DatabaseError(Exception):
    """Base injoignable ou contrainte violée ; le détail reste dans les logs."""

    status_code = 500


@contextlib.contextmanager
def database_errors() -> Iterator[None]:
    """Traduit les erreurs SQLAlchemy en DatabaseError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise DatabaseError(str(e)) from e


class AbstractEventRepository(abc.ABC):
    """
    Interface abstraite du repository des spectacles.

    Comme pour les réservations, `seen` trace les agrégats consultés
    afin que le Unit of Work puisse collecter leurs events.
    """

    def __init__(self) -> None:
        self.seen: set[model.Event] = set()

    def add(self, spectacle: model.Event) -> None:
        self._add(spectacle)
        self.seen.add(spectacle)

    def get(self, event_id: str) -> model.Event | None:
        spectacle = self._get(event_id)
        if spectacle:
            self.seen.add(spectacle)
        return spectacle

    def reserve_capacity(self, event_id: str, quantity: int, now: datetime) -> bool:
        """
        Incrémente `current_bookings` si et seulement si l'événement est
        publié, à venir, et que la capacité le permet. Atomique.
        """
        return self._reserve_capacity(event_id, quantity, now)

    def release_capacity(self, event_id: str, quantity: int) -> bool:
        """Décrémente `current_bookings` si le compteur reste positif ou nul."""
        return self._release_capacity(event_id, quantity)

    def floor_capacity(self, event_id: str, quantity: int) -> bool:
        """Ramène à zéro un compteur inférieur à `quantity`."""
        return self._floor_capacity(event_id, quantity)

    @abc.abstractmethod
    def _add(self, spectacle: model.Event) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, event_id: str) -> model.Event | None:
        raise NotImplementedError

    @abc.abstractmethod
    def _reserve_capacity(self, event_id: str, quantity: int, now: datetime) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def _release_capacity(self, event_id: str, quantity: int) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def _floor_capacity(self, event_id: str, quantity: int) -> bool:
        raise NotImplementedError


class AbstractBookingRepository(abc.ABC):
    """Interface abstraite du repository des réservations."""

    def __init__(self) -> None:
        self.seen: set[model.Booking] = set()

    def add(self, booking: model.Booking) -> None:
        self._add(booking)
        self.seen.add(booking)

    def get(self, booking_id: str) -> model.Booking | None:
        booking = self._get(booking_id)
        if booking:
            self.seen.add(booking)
        return booking

    def update_status(
        self,
        booking_id: str,
        expected: tuple[model.BookingStatus, model.PaymentStatus],
        target: tuple[model.BookingStatus, model.PaymentStatus],
        updated_at: datetime,
    ) -> bool:
        """
        Compare-and-set du couple (statut, paiement).

        Ne modifie la ligne que si elle porte encore le couple `expected` ;
        deux annulations concurrentes ne peuvent donc pas réussir toutes
        les deux.
        """
        return self._update_status(booking_id, expected, target, updated_at)

    @abc.abstractmethod
    def _add(self, booking: model.Booking) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, booking_id: str) -> model.Booking | None:
        raise NotImplementedError

    @abc.abstractmethod
    def _update_status(
        self,
        booking_id: str,
        expected: tuple[model.BookingStatus, model.PaymentStatus],
        target: tuple[model.BookingStatus, model.PaymentStatus],
        updated_at: datetime,
    ) -> bool:
        raise NotImplementedError


class SqlAlchemyEventRepository(AbstractEventRepository):
    """Implémentation concrète du repository des spectacles avec SQLAlchemy."""

    def __init__(self, session: Session):
        super().__init__()
        self.session = session

    def _add(self, spectacle: model.Event) -> None:
        with database_errors():
            self.session.add(spectacle)

    def _get(self, event_id: str) -> model.Event | None:
        with database_errors():
            return self.session.get(model.Event, event_id)

    def _reserve_capacity(self, event_id: str, quantity: int, now: datetime) -> bool:
        table = orm.events
        stmt = (
            update(table)
            .where(
                table.c.id == event_id,
                table.c.status == model.EventStatus.PUBLISHED,
                table.c.date > now,
                table.c.current_bookings + quantity <= table.c.max_capacity,
            )
            .values(current_bookings=table.c.current_bookings + quantity)
        )
        return self._execute(stmt)

    def _release_capacity(self, event_id: str, quantity: int) -> bool:
        table = orm.events
        stmt = (
            update(table)
            .where(table.c.id == event_id, table.c.current_bookings >= quantity)
            .values(current_bookings=table.c.current_bookings - quantity)
        )
        return self._execute(stmt)

    def _floor_capacity(self, event_id: str, quantity: int) -> bool:
        table = orm.events
        stmt = (
            update(table)
            .where(table.c.id == event_id, table.c.current_bookings < quantity)
            .values(current_bookings=0)
        )
        return self._execute(stmt)

    def _execute(self, stmt) -> bool:
        with database_errors():
            return self.session.execute(stmt).rowcount == 1


class SqlAlchemyBookingRepository(AbstractBookingRepository):
    """Implémentation concrète du repository des réservations avec SQLAlchemy."""

    def __init__(self, session: Session):
        super().__init__()
        self.session = session

    def _add(self, booking: model.Booking) -> None:
        with database_errors():
            self.session.add(booking)

    def _get(self, booking_id: str) -> model.Booking | None:
        with database_errors():
            return self.session.get(model.Booking, booking_id)

    def _update_status(
        self,
        booking_id: str,
        expected: tuple[model.BookingStatus, model.PaymentStatus],
        target: tuple[model.BookingStatus, model.PaymentStatus],
        updated_at: datetime,
    ) -> bool:
        table = orm.bookings
        stmt = (
            update(table)
            .where(
                table.c.id == booking_id,
                table.c.status == expected[0],
                table.c.payment_status == expected[1],
            )
            .values(status=target[0], payment_status=target[1], updated_at=updated_at)
        )
        with database_errors():
            return self.session.execute(stmt).rowcount == 1
