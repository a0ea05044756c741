"""Issue API endpoints."""

from flask import Blueprint, request, jsonify

from app.api.analytics import get_service
from app.api.auth import error_response

bp = Blueprint("issues", __name__, url_prefix="/api/issues")

MISSING_SESSION = {"error": "Missing session in headers"}


@bp.route("/sprint/<sprint_id>", methods=["GET"])
def get_sprint_issues(sprint_id):
    """List a sprint's issues ordered by status, then board position."""
    try:
        service = get_service()
        if service is None:
            return jsonify(MISSING_SESSION), 401

        return jsonify({"data": service.get_issues_for_sprint(sprint_id)})
    except Exception as e:
        return error_response(e)


@bp.route("/project/<project_id>", methods=["POST"])
def create_issue(project_id):
    """Create an issue in a project.

    Expects JSON body with:
        - title: Issue title
        - status, priority, description, sprintId, assigneeId, departmentId (optional)
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "Missing request body"}), 400

    try:
        service = get_service()
        if service is None:
            return jsonify(MISSING_SESSION), 401

        return jsonify({"data": service.create_issue(project_id, data)}), 201
    except Exception as e:
        return error_response(e)


@bp.route("/<issue_id>", methods=["PATCH"])
def update_issue(issue_id):
    """Update an issue's status, priority, assignee, description or department."""
    data = request.get_json(silent=True)

    if not isinstance(data, dict) or not data:
        return jsonify({"error": "Missing request body"}), 400

    try:
        service = get_service()
        if service is None:
            return jsonify(MISSING_SESSION), 401

        return jsonify({"data": service.update_issue(issue_id, data)})
    except Exception as e:
        return error_response(e)


@bp.route("/<issue_id>/transition", methods=["POST"])
def record_transition(issue_id):
    """Move an issue to a new status and record it in the issue's analytics.

    Expects JSON body with:
        - newStatus: Status the issue moves into
        - previousStatus: The issue's current status
    """
    data = request.get_json(silent=True)

    if not isinstance(data, dict) or not data.get("newStatus") or not data.get("previousStatus"):
        return jsonify({"error": "Missing required fields: newStatus, previousStatus"}), 400

    try:
        service = get_service()
        if service is None:
            return jsonify(MISSING_SESSION), 401

        analytic = service.record_transition(issue_id, data["newStatus"], data["previousStatus"])
        return jsonify({"data": analytic})
    except Exception as e:
        return error_response(e)


@bp.route("/order", methods=["POST"])
def update_issue_order():
    """Save a board reorder.

    Expects JSON body with:
        - issues: List of { id, status, order }
    """
    data = request.get_json(silent=True)

    if not data or not isinstance(data.get("issues"), list):
        return jsonify({"error": "Missing required field: issues"}), 400

    try:
        service = get_service()
        if service is None:
            return jsonify(MISSING_SESSION), 401

        return jsonify({"data": service.update_issue_order(data["issues"])})
    except Exception as e:
        return error_response(e)


@bp.route("/<issue_id>", methods=["DELETE"])
def delete_issue(issue_id):
    """Delete an issue and its analytics."""
    try:
        service = get_service()
        if service is None:
            return jsonify(MISSING_SESSION), 401

        return jsonify({"data": service.delete_issue(issue_id)})
    except Exception as e:
        return error_response(e)
