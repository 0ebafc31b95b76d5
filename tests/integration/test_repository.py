"""
Tests d'intégration des Repositories avec SQLite en mémoire.

Ces tests vérifient que le mapping ORM fonctionne correctement et
que les UPDATE conditionnels font bien leur travail :
- Sauvegarder et recharger un Event et un Booking
- Réserver / libérer de la capacité sans jamais sortir des bornes
- Compare-and-set sur le couple (statut, paiement)
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ticketing.adapters import orm, repository
from ticketing.domain.model import (
    Booking,
    BookingStatus,
    Event,
    EventStatus,
    PaymentStatus,
)

NOW = datetime(2026, 6, 1, 20, 0, tzinfo=timezone.utc)


def créer_spectacle(
    capacité: int = 10,
    réservés: int = 0,
    statut: EventStatus = EventStatus.PUBLISHED,
    date: datetime | None = None,
) -> Event:
    return Event(
        title="Nuit du jazz",
        artist_id="artiste-1",
        date=date or NOW + timedelta(days=7),
        price=Decimal("25.00"),
        max_capacity=capacité,
        current_bookings=réservés,
        status=statut,
        id="spectacle-1",
    )


def compteur(session) -> int:
    return session.execute(
        select(orm.events.c.current_bookings).where(orm.events.c.id == "spectacle-1")
    ).scalar_one()


@pytest.fixture
def session(sqlite_session_factory):
    session = sqlite_session_factory()
    yield session
    session.close()


@pytest.fixture
def events_repo(session):
    return repository.SqlAlchemyEventRepository(session)


def enregistrer(session, spectacle: Event) -> None:
    session.add(spectacle)
    session.commit()


class TestSqlAlchemyEventRepository:
    def test_sauvegarder_et_recharger(self, session, events_repo):
        events_repo.add(créer_spectacle())
        session.commit()
        session.expunge_all()

        rechargé = events_repo.get("spectacle-1")

        assert rechargé.title == "Nuit du jazz"
        assert rechargé.status is EventStatus.PUBLISHED
        assert rechargé.price == Decimal("25.00")
        assert rechargé.domain_events == []
        assert rechargé.is_bookable(NOW)

    def test_get_retourne_none_si_inexistant(self, events_repo):
        assert events_repo.get("inexistant") is None

    def test_seen_trace_les_agrégats(self, session, events_repo):
        enregistrer(session, créer_spectacle())

        repo2 = repository.SqlAlchemyEventRepository(session)
        repo2.get("spectacle-1")
        assert len(repo2.seen) == 1

    def test_réserver_dans_la_capacité(self, session, events_repo):
        enregistrer(session, créer_spectacle(capacité=10, réservés=8))

        assert events_repo.reserve_capacity("spectacle-1", 2, NOW)
        session.commit()

        assert compteur(session) == 10

    def test_réserver_au_delà_de_la_capacité(self, session, events_repo):
        enregistrer(session, créer_spectacle(capacité=10, réservés=9))

        assert not events_repo.reserve_capacity("spectacle-1", 2, NOW)
        assert compteur(session) == 9

    @pytest.mark.parametrize("statut", [EventStatus.DRAFT, EventStatus.CANCELLED])
    def test_réserver_un_spectacle_non_publié(self, session, events_repo, statut):
        enregistrer(session, créer_spectacle(statut=statut))
        assert not events_repo.reserve_capacity("spectacle-1", 1, NOW)

    def test_réserver_un_spectacle_passé(self, session, events_repo):
        enregistrer(session, créer_spectacle(date=NOW - timedelta(minutes=1)))
        assert not events_repo.reserve_capacity("spectacle-1", 1, NOW)

    def test_réserver_un_spectacle_inexistant(self, events_repo):
        assert not events_repo.reserve_capacity("inexistant", 1, NOW)

    def test_libérer(self, session, events_repo):
        enregistrer(session, créer_spectacle(réservés=5))

        assert events_repo.release_capacity("spectacle-1", 3)
        assert compteur(session) == 2

    def test_libérer_plus_que_réservé_est_refusé(self, session, events_repo):
        enregistrer(session, créer_spectacle(réservés=1))

        assert not events_repo.release_capacity("spectacle-1", 3)
        assert compteur(session) == 1

    def test_floor_ramène_à_zéro(self, session, events_repo):
        enregistrer(session, créer_spectacle(réservés=1))

        assert events_repo.floor_capacity("spectacle-1", 3)
        assert compteur(session) == 0

    def test_floor_ne_touche_pas_un_compteur_suffisant(self, session, events_repo):
        enregistrer(session, créer_spectacle(réservés=5))

        assert not events_repo.floor_capacity("spectacle-1", 3)
        assert compteur(session) == 5


class TestSqlAlchemyBookingRepository:
    def test_sauvegarder_et_recharger(self, session):
        spectacle = créer_spectacle()
        enregistrer(session, spectacle)
        booking = Booking.for_event(spectacle, "user-1", 3, special_requests="Fauteuil roulant")
        repo = repository.SqlAlchemyBookingRepository(session)
        repo.add(booking)
        session.commit()
        session.expunge_all()

        rechargé = repo.get(booking.id)

        assert rechargé.number_of_tickets == 3
        assert rechargé.total_amount == Decimal("75.00")
        assert rechargé.status is BookingStatus.PENDING
        assert rechargé.payment_status is PaymentStatus.PENDING
        assert rechargé.special_requests == "Fauteuil roulant"

    def test_compare_and_set(self, session):
        spectacle = créer_spectacle()
        enregistrer(session, spectacle)
        booking = Booking.for_event(spectacle, "user-1", 1)
        enregistrer(session, booking)
        booking_id = booking.id
        repo = repository.SqlAlchemyBookingRepository(session)
        pending = (BookingStatus.PENDING, PaymentStatus.PENDING)
        cancelled = (BookingStatus.CANCELLED, PaymentStatus.PENDING)

        assert repo.update_status(booking_id, pending, cancelled, NOW)
        assert not repo.update_status(booking_id, pending, cancelled, NOW)
        session.commit()

        statut = session.execute(
            select(orm.bookings.c.status).where(orm.bookings.c.id == booking_id)
        ).scalar_one()
        assert statut == BookingStatus.CANCELLED

    def test_erreur_sqlalchemy_traduite(self, session, monkeypatch):
        def base_verrouillée(*args, **kwargs):
            raise OperationalError("UPDATE bookings", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "execute", base_verrouillée)
        repo = repository.SqlAlchemyBookingRepository(session)

        with pytest.raises(repository.DatabaseError):
            repo.update_status(
                "x",
                (BookingStatus.PENDING, PaymentStatus.PENDING),
                (BookingStatus.CONFIRMED, PaymentStatus.PENDING),
                NOW,
            )
