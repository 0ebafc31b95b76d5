"""
Bootstrap : assemblage de l'application (Composition Root).

Ce module construit le message bus avec toutes ses dépendances.
C'est ici que l'injection de dépendances est réalisée :
on assemble les composants concrets (ou les fakes pour les tests).

C'est le seul endroit de l'application qui connaît les
implémentations concrètes de chaque abstraction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from ticketing import config
from ticketing.adapters import orm
from ticketing.adapters.cache import (
    AbstractCacheBackend,
    CacheCoordinator,
    InMemoryCacheBackend,
    RedisCacheBackend,
)
from ticketing.domain import commands, events, model
from ticketing.service_layer import handlers, messagebus, unit_of_work
from ticketing.service_layer.capacity import CapacityLedger


def build_cache_backend() -> AbstractCacheBackend:
    if config.get_cache_backend() == "redis":
        return RedisCacheBackend.from_settings(**config.get_redis_settings())
    return InMemoryCacheBackend()


def bootstrap(
    start_orm: bool = True,
    uow: unit_of_work.AbstractUnitOfWork | None = None,
    cache: CacheCoordinator | None = None,
    clock: Callable[[], datetime] = model.utcnow,
    **extra_dependencies: Any,
) -> messagebus.MessageBus:
    """
    Construit et retourne un MessageBus configuré.

    En production, utilise les implémentations concrètes.
    En test, on injecte des fakes via les paramètres.
    """
    if start_orm:
        orm.start_mappers()

    if uow is None:
        uow = unit_of_work.SqlAlchemyUnitOfWork()

    if cache is None:
        cache = CacheCoordinator(build_cache_backend(), default_ttl=config.get_cache_ttl())

    dependencies: dict[str, Any] = {
        "cache": cache,
        "clock": clock,
        "ledger": CapacityLedger(uow, clock=clock),
        **extra_dependencies,
    }

    return messagebus.MessageBus(
        uow=uow,
        event_handlers=EVENT_HANDLERS,
        command_handlers=COMMAND_HANDLERS,
        dependencies=dependencies,
    )


# --- Routage des messages vers les handlers ---

EVENT_HANDLERS: dict[type[events.DomainEvent], list] = {
    events.BookingCreated: [handlers.invalidate_booking_cache],
    events.BookingStatusChanged: [handlers.invalidate_booking_cache],
    events.CapacityChanged: [handlers.invalidate_event_cache],
    events.EventUpdated: [handlers.invalidate_event_cache],
}

COMMAND_HANDLERS: dict[type[commands.Command], Any] = {
    commands.CreateBooking: handlers.create_booking,
    commands.UpdateBookingStatus: handlers.update_booking_status,
    commands.CancelBooking: handlers.cancel_booking,
    commands.CreateEvent: handlers.create_event,
    commands.PublishEvent: handlers.publish_event,
    commands.CancelEvent: handlers.cancel_event,
    commands.UpdateEventPrice: handlers.update_event_price,
}
