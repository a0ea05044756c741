"""Identity provider client for resolving the calling user and organization."""

from typing import Optional
import logging
import requests

from services.errors import AuthorizationError

logger = logging.getLogger(__name__)


class IdentityClient:
    """Looks up sessions and organization memberships with the identity provider."""

    def __init__(self, api_url: str, secret_key: str):
        self.api_url = api_url.rstrip("/")
        self.secret_key = secret_key

    def _request(self, endpoint: str, params: Optional[dict] = None) -> dict:
        """Make authenticated request to the identity provider API."""
        response = requests.get(
            f"{self.api_url}{endpoint}",
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self.secret_key}"
            },
            params=params,
            timeout=10
        )

        if response.status_code in (401, 403, 404):
            raise AuthorizationError("Invalid or expired session")

        response.raise_for_status()
        return response.json()

    def get_session(self, session_id: str) -> dict:
        """Fetch a session, rejecting anything that is not active."""
        session = self._request(f"/v1/sessions/{session_id}")

        if session.get("status") != "active" or not session.get("user_id"):
            raise AuthorizationError("Session is not active")

        return session

    def get_organization_memberships(self, user_id: str) -> list:
        """Get the organizations a user belongs to, with their role in each."""
        data = self._request(
            f"/v1/users/{user_id}/organization_memberships",
            params={"limit": 100}
        )

        memberships = []
        for membership in data.get("data", []):
            organization = membership.get("organization", {})
            memberships.append({
                "organizationId": organization.get("id"),
                "role": membership.get("role")
            })
        return memberships

    def resolve_caller(self, session_id: str, organization_id: Optional[str] = None) -> dict:
        """Resolve a session into the caller's user id and active organization.

        Args:
            session_id: Session identifier sent by the client
            organization_id: Organization the caller wants to act in; defaults
                to the session's last active organization

        Returns:
            Dict with userId, orgId and role
        """
        if not session_id:
            raise AuthorizationError("Missing session")

        session = self.get_session(session_id)
        user_id = session["user_id"]
        org_id = organization_id or session.get("last_active_organization_id")

        if not org_id:
            raise AuthorizationError("No active organization for session")

        for membership in self.get_organization_memberships(user_id):
            if membership["organizationId"] == org_id:
                return {"userId": user_id, "orgId": org_id, "role": membership["role"]}

        logger.warning(f"User {user_id} is not a member of organization {org_id}")
        raise AuthorizationError("Not a member of this organization")
