"""
Event Tracking Routes

Flask routes for the interaction collector.
"""

import json
import logging

from flask import Blueprint, request, jsonify

from .event_tracker import EventTracker
from .models import EventPayload

_LOG = logging.getLogger(__name__)


def _request_uid(payload_data: dict):
    return (request.cookies.get("uid") or payload_data.get("user_id") or "").strip()


def create_event_tracking_blueprint(event_tracker: EventTracker) -> Blueprint:
    """Create a Flask blueprint for event tracking routes.

    Args:
        event_tracker: EventTracker service

    Returns:
        Flask blueprint with event tracking routes
    """
    bp = Blueprint('event_tracking', __name__)

    @bp.route("/event", methods=["POST"])
    def ingest_event():
        """Ingest one interaction event."""
        payload_data = request.get_json(silent=True)
        if payload_data is None:
            raw = request.get_data(as_text=True) or "{}"
            try:
                payload_data = json.loads(raw)
            except json.JSONDecodeError:
                return jsonify({"error": "invalid-json"}), 400
        if not isinstance(payload_data, dict):
            return jsonify({"error": "invalid-json"}), 400

        uid = _request_uid(payload_data)
        if not uid:
            return jsonify({"error": "no-uid"}), 400

        try:
            event, access = event_tracker.process_event_payload(uid, EventPayload.from_dict(payload_data))
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        return jsonify({
            "status": "ok",
            "event_id": event.event_id,
            "access_state": access.state.value,
        })

    @bp.route("/events", methods=["GET"])
    def get_events():
        """Get events for the current user (for debugging/admin purposes)."""
        uid = request.cookies.get("uid") or request.args.get("uid")
        if not uid:
            return jsonify({"error": "no-uid"}), 400

        limit = request.args.get("limit", type=int)
        events = event_tracker.get_user_events(uid, limit)
        return jsonify({
            "events": [event.model_dump(mode="json") for event in events],
            "count": len(events),
        })

    @bp.route("/events/stats", methods=["GET"])
    def get_event_stats():
        """Get event counts per kind for the current user."""
        uid = request.cookies.get("uid") or request.args.get("uid")
        if not uid:
            return jsonify({"error": "no-uid"}), 400

        return jsonify({"stats": event_tracker.get_event_stats(uid)})

    return bp
