"""
Views (lecture) pour le pattern CQRS.

Les views sont des fonctions de lecture pure qui interrogent
directement la base de données, sans passer par le modèle de domaine.

C'est le côté Query de CQRS : les écritures passent par le domaine
et le message bus, les lectures interrogent directement les tables
et leurs résultats sont mis en cache par l'orchestrateur.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy import Text, cast, func, select

from ticketing.adapters import orm
from ticketing.domain import model
from ticketing.service_layer import unit_of_work

MAX_LIMIT = 100

BOOKING_SORT_COLUMNS = {
    "createdAt": orm.bookings.c.created_at,
    "totalAmount": orm.bookings.c.total_amount,
    "numberOfTickets": orm.bookings.c.number_of_tickets,
    "status": orm.bookings.c.status,
    "paymentStatus": orm.bookings.c.payment_status,
}

EVENT_SORT_COLUMNS = {
    "createdAt": orm.events.c.created_at,
    "date": orm.events.c.date,
    "price": orm.events.c.price,
    "title": orm.events.c.title,
    "currentBookings": orm.events.c.current_bookings,
}


@dataclass(frozen=True)
class PaginationParams:
    """
    Paramètres de pagination d'une liste.

    `sort_by`/`sort_order` à None signifient « valeur par défaut »
    (createdAt, desc) et ne figurent pas dans la clé de cache.
    """

    page: int = 1
    limit: int = 10
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 1:
            raise model.ValidationError("page doit être un entier >= 1")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or not 1 <= self.limit <= MAX_LIMIT:
            raise model.ValidationError(f"limit doit être un entier entre 1 et {MAX_LIMIT}")
        if self.sort_order not in (None, "asc", "desc"):
            raise model.ValidationError("sortOrder doit valoir asc ou desc")

    @classmethod
    def from_query(cls, query: Mapping[str, Any]) -> PaginationParams:
        """Construit les paramètres depuis une query string (valeurs texte)."""
        try:
            page = int(query.get("page") or 1)
            limit = int(query.get("limit") or 10)
        except (TypeError, ValueError):
            raise model.ValidationError("page et limit doivent être des entiers") from None
        return cls(
            page=page,
            limit=limit,
            sort_by=query.get("sortBy") or None,
            sort_order=query.get("sortOrder") or None,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def as_key_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"page": self.page, "limit": self.limit}
        if self.sort_by is not None:
            params["sortBy"] = self.sort_by
        if self.sort_order is not None:
            params["sortOrder"] = self.sort_order
        return params

    def order_by(self, columns: Mapping[str, Any]):
        sort_by = self.sort_by or "createdAt"
        if sort_by not in columns:
            raise model.ValidationError(f"sortBy inconnu : {sort_by}")
        column = columns[sort_by]
        return column.asc() if self.sort_order == "asc" else column.desc()

    def pagination(self, total: int) -> dict[str, int]:
        return {
            "total": total,
            "page": self.page,
            "limit": self.limit,
            "totalPages": math.ceil(total / self.limit),
        }


def _booking_row(row: Mapping[str, Any]) -> dict:
    return {
        "id": row["id"],
        "eventId": row["event_id"],
        "userId": row["user_id"],
        "numberOfTickets": row["number_of_tickets"],
        "totalAmount": float(row["total_amount"]),
        "specialRequests": row["special_requests"],
        "status": model.BookingStatus(row["status"]).value,
        "paymentStatus": model.PaymentStatus(row["payment_status"]).value,
        "createdAt": model.as_utc(row["created_at"]).isoformat(),
    }


def _event_row(row: Mapping[str, Any]) -> dict:
    return {
        "id": row["id"],
        "title": row["title"],
        "artistId": row["artist_id"],
        "date": model.as_utc(row["date"]).isoformat(),
        "price": float(row["price"]),
        "maxCapacity": row["max_capacity"],
        "currentBookings": row["current_bookings"],
        "status": model.EventStatus(row["status"]).value,
        "description": row["description"],
        "duration": row["duration"],
        "location": row["location"],
        "genres": list(row["genres"] or []),
    }


def booking(booking_id: str, uow: unit_of_work.AbstractUnitOfWork) -> dict | None:
    with uow:
        row = uow.session.execute(
            select(orm.bookings).where(orm.bookings.c.id == booking_id)
        ).mappings().first()
        return _booking_row(row) if row else None


def bookings(
    uow: unit_of_work.AbstractUnitOfWork,
    params: PaginationParams,
    user_id: Optional[str] = None,
    event_id: Optional[str] = None,
    status: Optional[model.BookingStatus] = None,
    payment_status: Optional[model.PaymentStatus] = None,
) -> tuple[list[dict], dict[str, int]]:
    """Page de réservations, filtrée sur les critères fournis."""
    table = orm.bookings
    conditions = []
    if user_id is not None:
        conditions.append(table.c.user_id == user_id)
    if event_id is not None:
        conditions.append(table.c.event_id == event_id)
    if status is not None:
        conditions.append(table.c.status == status)
    if payment_status is not None:
        conditions.append(table.c.payment_status == payment_status)

    count_stmt = select(func.count()).select_from(table)
    page_stmt = select(table)
    if conditions:
        count_stmt = count_stmt.where(*conditions)
        page_stmt = page_stmt.where(*conditions)
    page_stmt = (
        page_stmt.order_by(params.order_by(BOOKING_SORT_COLUMNS))
        .offset(params.offset)
        .limit(params.limit)
    )
    with uow:
        total = uow.session.execute(count_stmt).scalar_one()
        rows = uow.session.execute(page_stmt).mappings().all()
    return [_booking_row(r) for r in rows], params.pagination(total)


def event(event_id: str, uow: unit_of_work.AbstractUnitOfWork) -> dict | None:
    with uow:
        row = uow.session.execute(
            select(orm.events).where(orm.events.c.id == event_id)
        ).mappings().first()
        return _event_row(row) if row else None


def events(
    uow: unit_of_work.AbstractUnitOfWork,
    params: PaginationParams,
    artist_id: Optional[str] = None,
    genre: Optional[model.Genre] = None,
    upcoming_after: Optional[datetime] = None,
) -> tuple[list[dict], dict[str, int]]:
    """
    Page de spectacles, filtrée sur les critères fournis.

    `upcoming_after` ne garde que les spectacles publiés dont la date
    est postérieure à l'instant donné. Les genres sont stockés en
    liste JSON triée ; le filtre cherche la valeur entre guillemets
    dans sa forme texte, ce qui fonctionne sur SQLite comme sur
    PostgreSQL.
    """
    table = orm.events
    conditions = []
    if artist_id is not None:
        conditions.append(table.c.artist_id == artist_id)
    if genre is not None:
        conditions.append(cast(table.c.genres, Text).contains(f'"{genre.value}"'))
    if upcoming_after is not None:
        conditions.append(table.c.status == model.EventStatus.PUBLISHED)
        conditions.append(table.c.date > upcoming_after)

    count_stmt = select(func.count()).select_from(table)
    page_stmt = select(table)
    if conditions:
        count_stmt = count_stmt.where(*conditions)
        page_stmt = page_stmt.where(*conditions)
    page_stmt = (
        page_stmt.order_by(params.order_by(EVENT_SORT_COLUMNS))
        .offset(params.offset)
        .limit(params.limit)
    )
    with uow:
        total = uow.session.execute(count_stmt).scalar_one()
        rows = uow.session.execute(page_stmt).mappings().all()
    return [_event_row(r) for r in rows], params.pagination(total)
