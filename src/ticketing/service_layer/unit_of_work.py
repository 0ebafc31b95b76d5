"""
Pattern Unit of Work.

Le Unit of Work (UoW) gère la notion de transaction atomique.
Il coordonne l'écriture en base de données et la collecte
des événements émis par les agrégats au cours de la transaction.

Le UoW agit comme un context manager :
    with uow:
        # ... opérations sur les repositories ...
        uow.commit()

Les events ne sont mis de côté qu'au moment du commit : un agrégat
modifié puis abandonné par un rollback ne publie rien. Un même
handler peut ouvrir plusieurs transactions successives (c'est le
cas des sagas) ; les events de chacune s'accumulent jusqu'à leur
collecte par le message bus.
"""

from __future__ import annotations

import abc
import threading
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from ticketing import config
from ticketing.adapters import repository
from ticketing.domain.events import DomainEvent


def default_session_factory() -> sessionmaker:
    return sessionmaker(bind=create_engine(**config.get_database_settings()))


class AbstractUnitOfWork(abc.ABC):
    """
    Interface abstraite du Unit of Work.

    Fournit les repositories `events` et `bookings` et gère
    commit/rollback. Le rollback est automatique si commit()
    n'est pas appelé (grâce au __exit__ du context manager).
    """

    events: repository.AbstractEventRepository
    bookings: repository.AbstractBookingRepository

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args: object) -> None:
        self.rollback()

    def commit(self, *committed_events: DomainEvent) -> None:
        """
        Committe la transaction puis met de côté les events des agrégats
        vus, ainsi que `committed_events` (faits sans agrégat chargé,
        comme un UPDATE conditionnel de capacité).
        """
        self._commit()
        outbox = self._outbox()
        outbox.extend(committed_events)
        for aggregate in [*self.events.seen, *self.bookings.seen]:
            while aggregate.domain_events:
                outbox.append(aggregate.domain_events.pop(0))

    def collect_new_events(self) -> Iterator[DomainEvent]:
        """Vide la liste des events publiés par les transactions committées."""
        outbox = self._outbox()
        while outbox:
            yield outbox.pop(0)

    def _outbox(self) -> list[DomainEvent]:
        if not hasattr(self, "_committed_events"):
            self._committed_events: list[DomainEvent] = []
        return self._committed_events

    @abc.abstractmethod
    def _commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    Implémentation concrète du UoW avec SQLAlchemy.

    Crée une session à l'entrée du context manager,
    la ferme à la sortie. Rollback automatique si pas de commit.

    La session, les repositories et la liste d'events sont propres
    à chaque thread : une même instance peut servir des requêtes
    concurrentes.
    """

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory or default_session_factory()
        self._local = threading.local()

    @property
    def session(self) -> Session:
        return self._local.session

    @property
    def events(self) -> repository.AbstractEventRepository:
        return self._local.events

    @property
    def bookings(self) -> repository.AbstractBookingRepository:
        return self._local.bookings

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        session = self.session_factory()
        self._local.session = session
        self._local.events = repository.SqlAlchemyEventRepository(session)
        self._local.bookings = repository.SqlAlchemyBookingRepository(session)
        return super().__enter__()

    def __exit__(self, *args: object) -> None:
        super().__exit__(*args)
        self.session.close()

    def _outbox(self) -> list[DomainEvent]:
        if not hasattr(self._local, "outbox"):
            self._local.outbox = []
        return self._local.outbox

    def _commit(self) -> None:
        with repository.database_errors():
            self.session.commit()

    def rollback(self) -> None:
        with repository.database_errors():
            self.session.rollback()
