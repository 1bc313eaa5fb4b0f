"""
Access-state routes for the administration layer.
"""
from flask import Blueprint, jsonify, request

from recommendation_service.anomaly import AccessController
from recommendation_service.errors import InvalidTransitionError, UnauthorizedActorError


def create_access_routes(controller: AccessController) -> Blueprint:
    """Create access control routes blueprint."""
    bp = Blueprint('access_control', __name__, url_prefix='/api/access')

    @bp.route('/<user_id>', methods=['GET'])
    def get_access(user_id):
        """Get access state, last score, block reason and transition history."""
        record = controller.get_access(user_id)
        return jsonify(record.model_dump(mode="json"))

    @bp.route('/<user_id>/unblock', methods=['POST'])
    def unblock(user_id):
        """
        Unblock an automatically blocked user.

        Body:
            - actor: administrator id (falls back to the uid cookie)
            - note: optional free-text note for the audit trail
        """
        data = request.get_json(silent=True) or {}
        actor = (data.get("actor") or request.cookies.get("uid") or "").strip()
        try:
            record = controller.unblock(user_id, actor, note=data.get("note"))
        except UnauthorizedActorError as exc:
            return jsonify({"error": str(exc)}), 403
        except InvalidTransitionError as exc:
            return jsonify({"error": str(exc)}), 409
        return jsonify(record.model_dump(mode="json"))

    @bp.route('/<user_id>/evaluate', methods=['POST'])
    def evaluate(user_id):
        """Run an anomaly evaluation for a user now."""
        data = request.get_json(silent=True) or {}
        signals = data.get("abuse_signals") or []
        if not isinstance(signals, list) or not all(isinstance(s, (int, float)) for s in signals):
            return jsonify({"error": "abuse_signals must be a list of numbers"}), 400
        record = controller.evaluate(user_id, abuse_signals=signals)
        return jsonify(record.model_dump(mode="json"))

    return bp
