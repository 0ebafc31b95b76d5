"""
Machine à états des réservations.

Fonctions pures : aucune I/O, aucune dépendance hors du domaine.
Le couple (statut, statut de paiement) cible est choisi par
l'orchestrateur ; ce module vérifie seulement qu'il est atteignable.
"""

from __future__ import annotations

from ticketing.domain.model import (
    BookingStatus,
    InvalidTransition,
    PaymentStatus,
)

BOOKING_TRANSITIONS: frozenset[tuple[BookingStatus, BookingStatus]] = frozenset({
    (BookingStatus.PENDING, BookingStatus.CONFIRMED),
    (BookingStatus.PENDING, BookingStatus.CANCELLED),
    (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
    (BookingStatus.CONFIRMED, BookingStatus.COMPLETED),
})

PAYMENT_TRANSITIONS: frozenset[tuple[PaymentStatus, PaymentStatus]] = frozenset({
    (PaymentStatus.PENDING, PaymentStatus.PAID),
    (PaymentStatus.PENDING, PaymentStatus.FAILED),
    (PaymentStatus.PAID, PaymentStatus.REFUNDED),
})

TERMINAL_BOOKING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})


def validate_transition(
    current_status: BookingStatus,
    current_payment: PaymentStatus,
    target_status: BookingStatus,
    target_payment: PaymentStatus,
) -> None:
    """
    Vérifie qu'un couple de statuts cible est atteignable.

    Chaque composante peut rester inchangée si l'autre bouge
    légalement ; un couple identique au couple courant est refusé.
    Une réservation annulée ou terminée ne bouge plus.
    """
    if current_status in TERMINAL_BOOKING_STATUSES:
        raise InvalidTransition(
            f"Réservation déjà {current_status.value} : aucune transition possible"
        )
    if (current_status, current_payment) == (target_status, target_payment):
        raise InvalidTransition(
            f"Transition vide : {current_status.value}/{current_payment.value}"
        )
    if current_status != target_status and (current_status, target_status) not in BOOKING_TRANSITIONS:
        raise InvalidTransition(
            f"Transition interdite : {current_status.value} -> {target_status.value}"
        )
    if current_payment != target_payment and (current_payment, target_payment) not in PAYMENT_TRANSITIONS:
        raise InvalidTransition(
            f"Transition de paiement interdite : {current_payment.value} -> {target_payment.value}"
        )


def is_allowed(
    current_status: BookingStatus,
    current_payment: PaymentStatus,
    target_status: BookingStatus,
    target_payment: PaymentStatus,
) -> bool:
    try:
        validate_transition(current_status, current_payment, target_status, target_payment)
    except InvalidTransition:
        return False
    return True


def cancellation_payment_status(current_payment: PaymentStatus) -> PaymentStatus:
    """Un paiement encaissé est remboursé ; sinon il reste tel quel."""
    if current_payment is PaymentStatus.PAID:
        return PaymentStatus.REFUNDED
    return current_payment
