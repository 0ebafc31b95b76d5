"""
Mapping ORM avec SQLAlchemy (classical mapping).

On définit les tables séparément, puis on mappe les classes
du domaine sur ces tables. Cela permet au modèle de domaine
de rester ignorant de la persistance (persistence ignorance).

Les colonnes de statut sont stockées sous forme de chaînes
("pending", "paid"...) via les valeurs des énumérations.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    JSON,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import registry

from ticketing.domain import model

metadata = MetaData()
mapper_registry = registry(metadata=metadata)


def _enum_column(enum_cls: type) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


# --- Définition des tables ---

events = Table(
    "events",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("title", String(255), nullable=False),
    Column("artist_id", String(255), nullable=False, index=True),
    Column("date", DateTime(timezone=True), nullable=False, index=True),
    Column("price", Numeric(10, 2), nullable=False),
    Column("max_capacity", Integer, nullable=False),
    Column("current_bookings", Integer, nullable=False, server_default="0"),
    Column("status", _enum_column(model.EventStatus), nullable=False, index=True),
    Column("description", Text, nullable=True),
    Column("duration", Integer, nullable=True),
    Column("location", JSON, nullable=True),
    Column("genres", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

bookings = Table(
    "bookings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("event_id", String(36), ForeignKey("events.id"), nullable=False, index=True),
    Column("user_id", String(255), nullable=False, index=True),
    Column("number_of_tickets", Integer, nullable=False),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("special_requests", Text, nullable=True),
    Column("status", _enum_column(model.BookingStatus), nullable=False, index=True),
    Column("payment_status", _enum_column(model.PaymentStatus), nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


def start_mappers() -> None:
    """
    Configure le mapping entre les classes du domaine et les tables SQL.

    Les noms d'attributs et de colonnes coïncident ; seule la liste
    `domain_events` n'est pas persistée. Idempotent : l'entrypoint
    et les fixtures de test peuvent l'appeler chacun de leur côté.
    """
    if inspect(model.Event, raiseerr=False) is not None:
        return
    mapper_registry.map_imperatively(model.Event, events)
    mapper_registry.map_imperatively(model.Booking, bookings)


@event.listens_for(model.Event, "load")
def receive_event_load(spectacle: model.Event, _: object) -> None:
    """Initialise la liste d'events du domaine quand un Event est chargé depuis la BDD."""
    spectacle.domain_events = []


@event.listens_for(model.Booking, "load")
def receive_booking_load(booking: model.Booking, _: object) -> None:
    booking.domain_events = []
