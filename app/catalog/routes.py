"""
Catalog feed routes.
"""
import logging

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from recommendation_service.catalog import CatalogService
from recommendation_service.errors import ContentNotFoundError
from recommendation_service.models import ContentItem

_LOG = logging.getLogger(__name__)


def create_catalog_routes(catalog: CatalogService) -> Blueprint:
    """Create catalog feed routes blueprint."""
    bp = Blueprint('catalog', __name__, url_prefix='/api/catalog')

    @bp.route('/items', methods=['POST'])
    def upsert_items():
        """
        Create or update catalog items.

        Body: a single item object, or {"items": [...]}.
        """
        data = request.get_json(silent=True)
        if data is None:
            return jsonify({"error": "invalid-json"}), 400
        raw_items = data.get("items") if isinstance(data, dict) and "items" in data else [data]
        if not isinstance(raw_items, list):
            return jsonify({"error": "items must be a list"}), 400

        try:
            items = [ContentItem.model_validate(raw) for raw in raw_items]
        except ValidationError as exc:
            return jsonify({"error": "invalid-item", "details": exc.errors(include_url=False)}), 400

        results = []
        for item in items:
            vector = catalog.upsert_item(item)
            results.append({
                "content_id": item.content_id,
                "vector": vector is not None,
                "scheme_version": vector.scheme_version if vector else None,
            })
        return jsonify({"status": "ok", "items": results})

    @bp.route('/items/<content_id>', methods=['GET'])
    def get_item(content_id):
        """Get a catalog item."""
        try:
            item = catalog.get_item(content_id)
        except ContentNotFoundError as exc:
            return jsonify({"error": str(exc)}), 404
        return jsonify(item.model_dump(mode="json"))

    @bp.route('/items/<content_id>', methods=['DELETE'])
    def delete_item(content_id):
        """Delete a catalog item and its vector."""
        if not catalog.delete_item(content_id):
            return jsonify({"error": f"Unknown content: {content_id}"}), 404
        return jsonify({"status": "ok"})

    @bp.route('/refresh-vectors', methods=['POST'])
    def refresh_vectors():
        """Re-extract missing or stale vectors for the whole catalog."""
        data = request.get_json(silent=True) or {}
        result = catalog.refresh_vectors(force=bool(data.get("force", False)))
        return jsonify({"status": "ok", **result.summary(), "failed_ids": result.failed_ids})

    return bp
