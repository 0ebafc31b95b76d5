"""
Tests de la machine à états des réservations.

Fonctions pures : on parcourt l'ensemble des couples
(statut, paiement) pour vérifier la table des transitions.
"""

import itertools

import pytest

from ticketing.domain.model import BookingStatus, InvalidTransition, PaymentStatus
from ticketing.domain.transitions import (
    BOOKING_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    TERMINAL_BOOKING_STATUSES,
    cancellation_payment_status,
    is_allowed,
    validate_transition,
)

B = BookingStatus
P = PaymentStatus

ALL_PAIRS = list(itertools.product(BookingStatus, PaymentStatus))


class TestTransitionsAutorisées:
    @pytest.mark.parametrize("current, target", [
        ((B.PENDING, P.PENDING), (B.CONFIRMED, P.PAID)),
        ((B.PENDING, P.PENDING), (B.CONFIRMED, P.PENDING)),
        ((B.PENDING, P.PENDING), (B.PENDING, P.PAID)),
        ((B.PENDING, P.PENDING), (B.CANCELLED, P.PENDING)),
        ((B.PENDING, P.PENDING), (B.CANCELLED, P.FAILED)),
        ((B.CONFIRMED, P.PAID), (B.CANCELLED, P.REFUNDED)),
        ((B.CONFIRMED, P.PAID), (B.COMPLETED, P.PAID)),
        ((B.CONFIRMED, P.PENDING), (B.CONFIRMED, P.FAILED)),
    ])
    def test_transition_autorisée(self, current, target):
        validate_transition(*current, *target)
        assert is_allowed(*current, *target)


class TestTransitionsInterdites:
    @pytest.mark.parametrize("current, target", [
        ((B.PENDING, P.PENDING), (B.COMPLETED, P.PENDING)),
        ((B.CONFIRMED, P.PAID), (B.PENDING, P.PAID)),
        ((B.PENDING, P.PAID), (B.PENDING, P.PENDING)),
        ((B.PENDING, P.FAILED), (B.PENDING, P.PAID)),
        ((B.CONFIRMED, P.REFUNDED), (B.CONFIRMED, P.PAID)),
    ])
    def test_transition_interdite(self, current, target):
        with pytest.raises(InvalidTransition):
            validate_transition(*current, *target)
        assert not is_allowed(*current, *target)

    @pytest.mark.parametrize("pair", ALL_PAIRS)
    def test_couple_identique_refusé(self, pair):
        assert not is_allowed(*pair, *pair)

    @pytest.mark.parametrize("current", [
        pair for pair in ALL_PAIRS if pair[0] in TERMINAL_BOOKING_STATUSES
    ])
    def test_statut_terminal_figé(self, current):
        for target in ALL_PAIRS:
            assert not is_allowed(*current, *target)


class TestTable:
    def test_aucune_transition_ne_sort_d_un_statut_terminal(self):
        assert not [t for t in BOOKING_TRANSITIONS if t[0] in TERMINAL_BOOKING_STATUSES]

    def test_les_transitions_autorisées_respectent_les_tables(self):
        """Tout couple accepté ne bouge que selon les tables, composante par composante."""
        for current, target in itertools.product(ALL_PAIRS, ALL_PAIRS):
            if not is_allowed(*current, *target):
                continue
            if current[0] != target[0]:
                assert (current[0], target[0]) in BOOKING_TRANSITIONS
            if current[1] != target[1]:
                assert (current[1], target[1]) in PAYMENT_TRANSITIONS

    def test_remboursement_uniquement_depuis_payé(self):
        sources = {src for src, dst in PAYMENT_TRANSITIONS if dst is P.REFUNDED}
        assert sources == {P.PAID}


class TestPaiementÀLAnnulation:
    def test_payé_devient_remboursé(self):
        assert cancellation_payment_status(P.PAID) is P.REFUNDED

    @pytest.mark.parametrize("payment", [P.PENDING, P.FAILED, P.REFUNDED])
    def test_autres_statuts_inchangés(self, payment):
        assert cancellation_payment_status(payment) is payment

    @pytest.mark.parametrize("payment", [P.PENDING, P.PAID, P.FAILED])
    def test_annulation_toujours_atteignable_depuis_confirmed(self, payment):
        target_payment = cancellation_payment_status(payment)
        assert is_allowed(B.CONFIRMED, payment, B.CANCELLED, target_payment)
