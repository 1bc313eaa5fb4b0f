"""
Metrics report routes for operational dashboards.
"""
from flask import Blueprint, jsonify, request

from recommendation_service.errors import InvalidRequestError
from recommendation_service.metrics import MetricsService
from recommendation_service.models import RecommendationSource


def create_metrics_routes(metrics_service: MetricsService) -> Blueprint:
    """Create metrics routes blueprint."""
    bp = Blueprint('metrics_report', __name__, url_prefix='/api/metrics')

    @bp.errorhandler(InvalidRequestError)
    def _invalid_request(exc):
        return jsonify({"error": str(exc)}), 400

    def _params():
        try:
            k = int(request.args['k']) if 'k' in request.args else None
            days = float(request.args['days']) if 'days' in request.args else None
        except ValueError:
            raise InvalidRequestError("k and days must be numbers")
        use_cache = request.args.get('refresh', 'false').lower() != 'true'
        return k, metrics_service.window_for_days(days), use_cache

    @bp.route('', methods=['GET'])
    @bp.route('/', methods=['GET'])
    def get_metrics():
        """
        Get a metrics report.

        Query parameters:
            - k: Cut-off rank (default from configuration)
            - days: Window length in days (default from configuration)
            - source: Optional recommendation source segment
            - refresh: 'true' to bypass the report cache
        """
        k, window, use_cache = _params()
        source = request.args.get('source')
        if source is not None and not RecommendationSource.is_valid(source):
            raise InvalidRequestError(f"Unknown source: {source}")
        report = metrics_service.get_report(
            k, window, source=RecommendationSource(source) if source else None, use_cache=use_cache
        )
        return jsonify(report.model_dump(mode="json"))

    @bp.route('/by-source', methods=['GET'])
    def get_metrics_by_source():
        """Get one report per recommendation source."""
        k, window, use_cache = _params()
        reports = metrics_service.get_reports_by_source(k, window, use_cache=use_cache)
        return jsonify({
            source.value: report.model_dump(mode="json") for source, report in reports.items()
        })

    @bp.route('/clear-cache', methods=['POST'])
    def clear_cache():
        """Drop cached reports."""
        removed = metrics_service.clear_cache()
        return jsonify({"status": "ok", "removed": removed})

    return bp
