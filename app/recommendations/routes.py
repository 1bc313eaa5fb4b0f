"""
Recommendation routes for API endpoints.
"""
from flask import Blueprint, jsonify, request

from recommendation_service.errors import (
    ContentNotFoundError,
    InvalidRequestError,
    JobNotFoundError,
)
from recommendation_service.recommendations import BatchRecommendationRunner, RecommendationService


def _job_payload(job) -> dict:
    return job.model_dump(mode="json")


def _optional_int(raw, name: str):
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise InvalidRequestError(f"{name} must be an integer, got {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidRequestError(f"{name} must be an integer, got {raw!r}")


def create_recommendation_routes(
    service: RecommendationService,
    batch_runner: BatchRecommendationRunner,
) -> Blueprint:
    """Create recommendation routes blueprint."""
    bp = Blueprint('recommendations', __name__, url_prefix='/api/recommendations')

    def _k_arg():
        return _optional_int(request.args.get('k'), "k")

    @bp.errorhandler(InvalidRequestError)
    def _invalid_request(exc):
        return jsonify({"error": str(exc)}), 400

    @bp.errorhandler(JobNotFoundError)
    @bp.errorhandler(ContentNotFoundError)
    def _not_found(exc):
        return jsonify({"error": str(exc)}), 404

    @bp.route('/<user_id>', methods=['GET'])
    def get_recommendations(user_id):
        """
        Get a ranked recommendation list for a user.

        Query parameters:
            - k: List length (default from configuration, bounded by max_k)
        """
        result = service.get_recommendations(user_id, _k_arg())
        return jsonify(result.model_dump(mode="json"))

    @bp.route('/collaborative/<user_id>', methods=['GET'])
    def get_collaborative(user_id):
        """Get items engaged with by users similar to this one."""
        result = service.collaborative_for(user_id, _k_arg())
        return jsonify(result.model_dump(mode="json"))

    @bp.route('/similar/<content_id>', methods=['GET'])
    def get_similar(content_id):
        """Get items similar to a content item."""
        result = service.similar_to(content_id, _k_arg())
        return jsonify(result.model_dump(mode="json"))

    @bp.route('/batch', methods=['POST'])
    def submit_batch():
        """
        Trigger batch generation.

        Body:
            - user_ids: explicit list of users, or
            - all_active: true with an optional limit
            - k: list length
            - wait: block until all chunks finish (default false)
        """
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise InvalidRequestError("Request body must be a JSON object")
        user_ids = data.get("user_ids")
        if user_ids is not None and (
            not isinstance(user_ids, list) or not all(isinstance(uid, str) for uid in user_ids)
        ):
            raise InvalidRequestError("user_ids must be a list of strings")
        jobs = batch_runner.submit(
            user_ids=user_ids,
            k=_optional_int(data.get("k"), "k"),
            all_active=bool(data.get("all_active", False)),
            limit=_optional_int(data.get("limit"), "limit"),
            inline=False,
            wait=bool(data.get("wait", False)),
        )
        return jsonify({
            "batch_id": jobs[0].batch_id if jobs else None,
            "jobs": [_job_payload(job) for job in jobs],
            "count": len(jobs),
        }), 202

    @bp.route('/batch/<job_id>', methods=['GET'])
    def get_job(job_id):
        """Get the status of one chunk job."""
        return jsonify(_job_payload(batch_runner.get_job(job_id)))

    @bp.route('/batch/<job_id>/retry', methods=['POST'])
    def retry_job(job_id):
        """Re-run a chunk job wholesale."""
        job = batch_runner.retry(job_id, inline=True)
        return jsonify(_job_payload(job))

    return bp
