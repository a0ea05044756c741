"""Form tracking and form analytics API endpoints."""

from flask import Blueprint, current_app, request, jsonify

from app.api.auth import error_response, get_session_headers, resolve_caller
from services.forms import FormService

bp = Blueprint("forms", __name__, url_prefix="/api/forms")


def get_form_service():
    return FormService(current_app.extensions["tracker_store"])


def get_date_range():
    """Get optional date range from query params.

    Query params:
        - from: ISO date string (e.g., "2024-01-01")
        - to: ISO date string (e.g., "2024-03-31")

    Returns:
        Dict with from/to, or None unless both are given
    """
    start_date = request.args.get("from")
    end_date = request.args.get("to")
    if start_date and end_date:
        return {"from": start_date, "to": end_date}
    return None


@bp.route("/<form_id>/views", methods=["POST"])
def track_view(form_id):
    """Record a form view. Public; optional JSON body { user: { id, name, email } }."""
    data = request.get_json(silent=True) or {}

    try:
        view = get_form_service().track_view(form_id, data.get("user"))
        return jsonify({"data": view}), 201
    except Exception as e:
        return error_response(e)


@bp.route("/<form_id>/submissions", methods=["POST"])
def submit_response(form_id):
    """Submit a form response. Public.

    Expects JSON body with:
        - data: Mapping of field label to value
        - user: Optional { name, email }
    """
    body = request.get_json(silent=True)

    if not body or "data" not in body:
        return jsonify({"error": "Missing required field: data"}), 400

    try:
        submission = get_form_service().submit_response(form_id, body["data"], body.get("user"))
        return jsonify({"data": submission}), 201
    except Exception as e:
        return error_response(e)


@bp.route("/<form_id>/analytics", methods=["GET"])
def get_form_analytics(form_id):
    """Get views, submissions and per-field response counts for a form."""
    session_id, organization_id = get_session_headers()

    if not session_id:
        return jsonify({"error": "Missing session in headers"}), 401

    try:
        caller = resolve_caller(session_id, organization_id)
        analytics = get_form_service().get_form_analytics(caller, form_id, get_date_range())
        return jsonify({"data": analytics})
    except Exception as e:
        return error_response(e)


@bp.route("/organization/<organization_id>", methods=["GET"])
def list_organization_forms(organization_id):
    """List all forms in an organization with view and submission counts."""
    session_id, organization_header = get_session_headers()

    if not session_id:
        return jsonify({"error": "Missing session in headers"}), 401

    try:
        caller = resolve_caller(session_id, organization_header or organization_id)
        forms = get_form_service().list_organization_forms(caller, organization_id)
        return jsonify({"data": forms})
    except Exception as e:
        return error_response(e)
