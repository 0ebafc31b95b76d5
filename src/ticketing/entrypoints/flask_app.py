"""
Point d'entrée Flask.

L'API Flask est un thin adapter : elle se contente de lire
l'identité de l'appelant et les paramètres de la requête, d'appeler
l'orchestrateur, et de renvoyer son Envelope telle quelle.

L'API ne contient aucune logique métier. L'émission des jetons
d'authentification est externe : l'identité arrive déjà résolue
dans les en-têtes X-User-Id et X-User-Role.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import Flask, jsonify, request

from ticketing import config
from ticketing.domain import model
from ticketing.service_layer import bootstrap
from ticketing.service_layer.orchestrator import BookingOrchestrator, Envelope, EventCatalog
from ticketing.views.views import PaginationParams

logging.basicConfig(
    level=config.get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = Flask(__name__)
bus = bootstrap.bootstrap()
bookings = BookingOrchestrator(bus)
catalog = EventCatalog(bus)


def respond(envelope: Envelope):
    return jsonify(envelope.to_dict()), envelope.status_code


def error(status_code: int, message: str):
    return respond(Envelope(status_code, message))


def current_user() -> Optional[model.AuthContext]:
    """Identité de l'appelant, ou None si absente ou malformée."""
    user_id = request.headers.get("X-User-Id")
    role = request.headers.get("X-User-Role", model.Role.USER.value)
    if not user_id:
        return None
    try:
        return model.AuthContext(user_id=user_id, role=model.Role(role))
    except ValueError:
        return None


def pagination() -> PaginationParams:
    return PaginationParams.from_query(request.args)


def paginated(call):
    """Les paramètres de pagination invalides donnent un 400 sans appeler l'orchestrateur."""
    try:
        params = pagination()
    except model.ValidationError as e:
        return error(400, str(e))
    return respond(call(params))


def json_body() -> Optional[dict]:
    """Corps JSON de la requête ; None s'il n'est pas un objet."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


# --- Spectacles ---


@app.route("/events", methods=["POST"])
def create_event_endpoint():
    """
    POST /events
    Body JSON : { title, date, price, maxCapacity,
                  description?, duration?, location?, genres? }
    """
    user = current_user()
    if user is None:
        return error(401, "Authentication required")
    if not user.can_manage_events():
        return error(403, "Only artists can create events")
    data = json_body()
    if data is None:
        return error(400, "JSON object body required")
    try:
        date = datetime.fromisoformat(data["date"])
        price = Decimal(str(data["price"]))
        max_capacity = data["maxCapacity"]
        title = data["title"]
    except (KeyError, TypeError, ValueError, InvalidOperation):
        return error(400, "title, date, price and maxCapacity are required")
    genres = data.get("genres") or []
    if not isinstance(genres, list):
        return error(400, "genres must be a list")
    return respond(
        catalog.create_event(
            title, user.user_id, date, price, max_capacity,
            description=data.get("description"),
            duration=data.get("duration"),
            location=data.get("location"),
            genres=tuple(genres),
        )
    )


@app.route("/events/<event_id>/publish", methods=["POST"])
def publish_event_endpoint(event_id: str):
    user = current_user()
    if user is None:
        return error(401, "Authentication required")
    if not user.can_manage_events():
        return error(403, "Only artists can publish events")
    return respond(catalog.publish_event(event_id, user))


@app.route("/events/<event_id>/cancel", methods=["POST"])
def cancel_event_endpoint(event_id: str):
    user = current_user()
    if user is None:
        return error(401, "Authentication required")
    if not user.can_manage_events():
        return error(403, "Only artists can cancel events")
    return respond(catalog.cancel_event(event_id, user))


@app.route("/events/<event_id>/price", methods=["PATCH"])
def update_event_price_endpoint(event_id: str):
    user = current_user()
    if user is None:
        return error(401, "Authentication required")
    if not user.can_manage_events():
        return error(403, "Only artists can change prices")
    data = json_body()
    if data is None:
        return error(400, "JSON object body required")
    try:
        price = Decimal(str(data["price"]))
    except (KeyError, InvalidOperation):
        return error(400, "price is required")
    return respond(catalog.update_event_price(event_id, price, user))


@app.route("/events", methods=["GET"])
def list_events_endpoint():
    return paginated(catalog.list_events)


@app.route("/events/upcoming", methods=["GET"])
def list_upcoming_events_endpoint():
    return paginated(catalog.list_upcoming_events)


@app.route("/events/genre/<genre>", methods=["GET"])
def list_events_by_genre_endpoint(genre: str):
    return paginated(lambda params: catalog.list_events_by_genre(genre, params))


@app.route("/artists/<artist_id>/events", methods=["GET"])
def list_artist_events_endpoint(artist_id: str):
    return paginated(lambda params: catalog.list_artist_events(artist_id, params))


@app.route("/events/<event_id>", methods=["GET"])
def get_event_endpoint(event_id: str):
    return respond(catalog.get_event(event_id))


@app.route("/events/<event_id>/bookings", methods=["GET"])
def list_event_bookings_endpoint(event_id: str):
    if current_user() is None:
        return error(401, "Authentication required")
    return paginated(lambda params: bookings.list_event_bookings(event_id, params))


# --- Réservations ---


@app.route("/bookings", methods=["POST"])
def create_booking_endpoint():
    """
    POST /bookings
    Body JSON : { eventId, numberOfTickets, specialRequests? }

    Le montant total est calculé côté serveur, jamais lu dans la requête.
    """
    user = current_user()
    if user is None:
        return error(401, "Authentication required")
    data = json_body()
    if data is None:
        return error(400, "JSON object body required")
    if "eventId" not in data or "numberOfTickets" not in data:
        return error(400, "eventId and numberOfTickets are required")
    return respond(
        bookings.create_booking(
            data["eventId"],
            user.user_id,
            data["numberOfTickets"],
            special_requests=data.get("specialRequests"),
        )
    )


@app.route("/bookings", methods=["GET"])
def list_bookings_endpoint():
    if current_user() is None:
        return error(401, "Authentication required")
    return paginated(bookings.list_bookings)


@app.route("/bookings/<booking_id>", methods=["GET"])
def get_booking_endpoint(booking_id: str):
    if current_user() is None:
        return error(401, "Authentication required")
    return respond(bookings.get_booking(booking_id))


@app.route("/bookings/<booking_id>/status", methods=["PATCH"])
def update_booking_status_endpoint(booking_id: str):
    """
    PATCH /bookings/<id>/status  (admin)
    Body JSON : { status, paymentStatus? }
    """
    user = current_user()
    if user is None:
        return error(401, "Authentication required")
    if not user.can_manage_bookings():
        return error(403, "Only admins can change a booking status")
    data = json_body()
    if data is None:
        return error(400, "JSON object body required")
    if "status" not in data:
        return error(400, "status is required")
    return respond(
        bookings.update_booking_status(booking_id, data["status"], data.get("paymentStatus"))
    )


@app.route("/bookings/<booking_id>", methods=["DELETE"])
def cancel_booking_endpoint(booking_id: str):
    user = current_user()
    if user is None:
        return error(401, "Authentication required")
    return respond(bookings.cancel_booking(booking_id, user))


@app.route("/users/<user_id>/bookings", methods=["GET"])
def list_user_bookings_endpoint(user_id: str):
    if current_user() is None:
        return error(401, "Authentication required")
    return paginated(lambda params: bookings.list_user_bookings(user_id, params))


@app.route("/bookings/status/<status>", methods=["GET"])
def list_bookings_by_status_endpoint(status: str):
    if current_user() is None:
        return error(401, "Authentication required")
    return paginated(lambda params: bookings.list_bookings_by_status(status, params))


@app.route("/bookings/payment/<payment_status>", methods=["GET"])
def list_bookings_by_payment_status_endpoint(payment_status: str):
    if current_user() is None:
        return error(401, "Authentication required")
    return paginated(
        lambda params: bookings.list_bookings_by_payment_status(payment_status, params)
    )
