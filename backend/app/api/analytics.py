"""Issue analytics API endpoints."""

from flask import Blueprint, current_app, request, jsonify

from app.api.auth import error_response, get_session_headers, resolve_caller
from services.analytics import format_duration
from services.tracker import TrackerService

bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


def get_service():
    """Build a tracker service for the caller in the request headers.

    Returns:
        TrackerService, or None when no session header was sent
    """
    session_id, organization_id = get_session_headers()
    if not session_id:
        return None

    caller = resolve_caller(session_id, organization_id)
    return TrackerService(current_app.extensions["tracker_store"], caller)


@bp.route("/projects/<project_id>", methods=["GET"])
def get_project_analytics(project_id):
    """Get issue counts and time-in-status averages for a project."""
    try:
        service = get_service()
        if service is None:
            return jsonify({"error": "Missing session in headers"}), 401

        return jsonify({"data": service.get_project_analytics(project_id)})
    except Exception as e:
        return error_response(e)


@bp.route("/sprints/<sprint_id>", methods=["GET"])
def get_sprint_analytics(sprint_id):
    """Get issue counts, time-in-status averages and completion rate for a sprint."""
    try:
        service = get_service()
        if service is None:
            return jsonify({"error": "Missing session in headers"}), 401

        return jsonify({"data": service.get_sprint_analytics(sprint_id)})
    except Exception as e:
        return error_response(e)


@bp.route("/organizations/<organization_id>", methods=["GET"])
def get_organization_analytics(organization_id):
    """Get organization-wide counts, per-project performance and user ranking."""
    try:
        service = get_service()
        if service is None:
            return jsonify({"error": "Missing session in headers"}), 401

        return jsonify({"data": service.get_organization_analytics(organization_id)})
    except Exception as e:
        return error_response(e)


@bp.route("/organizations/<organization_id>/users", methods=["GET"])
def get_user_completion(organization_id):
    """Get users ranked by completed issues."""
    try:
        service = get_service()
        if service is None:
            return jsonify({"error": "Missing session in headers"}), 401

        return jsonify({"data": service.get_user_completion_analytics(organization_id)})
    except Exception as e:
        return error_response(e)


@bp.route("/format-duration", methods=["POST"])
def format_duration_endpoint():
    """Format a number of seconds the way dashboards display durations.

    Expects JSON body with:
        - seconds: Duration in seconds
    """
    data = request.get_json(silent=True)

    if not data or "seconds" not in data:
        return jsonify({"error": "Missing required field: seconds"}), 400

    try:
        seconds = int(data["seconds"] or 0)
    except (TypeError, ValueError):
        return jsonify({"error": "seconds must be a number"}), 400

    return jsonify({"data": {"seconds": seconds, "formatted": format_duration(seconds)}})
