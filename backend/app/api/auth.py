"""Authentication API endpoints and caller resolution shared by the other blueprints."""

from flask import Blueprint, current_app, request, jsonify
import requests

from services.errors import AuthorizationError, NotFoundError

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def get_session_headers():
    """Extract session id and requested organization from request headers."""
    session_id = request.headers.get("X-Session-Id", "").strip()
    organization_id = request.headers.get("X-Organization-Id", "").strip() or None
    return session_id or None, organization_id


def resolve_caller(session_id, organization_id=None):
    """Resolve the caller through the app's identity provider client."""
    identity_client = current_app.extensions["identity_client"]
    return identity_client.resolve_caller(session_id, organization_id)


def error_response(error):
    """Map a service or identity provider error to a JSON error response."""
    if isinstance(error, AuthorizationError):
        current_app.logger.warning(f"Authorization failed: {error}")
        return jsonify({"error": str(error)}), 403
    if isinstance(error, NotFoundError):
        return jsonify({"error": str(error)}), 404
    if isinstance(error, ValueError):
        return jsonify({"error": str(error)}), 400
    if isinstance(error, requests.exceptions.Timeout):
        return jsonify({"error": "Connection to identity provider timed out"}), 504
    if isinstance(error, requests.exceptions.RequestException):
        return jsonify({"error": f"Failed to connect to identity provider: {str(error)}"}), 500

    current_app.logger.exception("Unhandled error")
    return jsonify({"error": str(error)}), 500


@bp.route("/session", methods=["GET"])
def get_session():
    """Return the caller resolved from the session headers.

    Requires headers:
        - X-Session-Id: Identity provider session id
        - X-Organization-Id: Optional organization to act in
    """
    session_id, organization_id = get_session_headers()

    if not session_id:
        return jsonify({"error": "Missing session in headers"}), 401

    try:
        caller = resolve_caller(session_id, organization_id)
        return jsonify({"data": caller})
    except Exception as e:
        return error_response(e)
