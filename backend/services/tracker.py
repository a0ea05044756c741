"""Issue tracking and analytics service."""

from datetime import datetime, timezone
from typing import Callable, Optional
import logging

from services.analytics import (
    PRIORITIES,
    Scope,
    STATUSES,
    aggregate,
    apply_transition,
    new_analytic,
    rank_users_by_completion,
)
from services.errors import AuthorizationError, NotFoundError
from services.store import TrackerStore

logger = logging.getLogger(__name__)

UPDATABLE_ISSUE_FIELDS = ("status", "priority", "assigneeId", "description", "departmentId")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_choice(name: str, value, choices: tuple):
    if value not in choices:
        raise ValueError(f"Invalid {name}: {value}")


class TrackerService:
    """Issue lifecycle and analytics for one authenticated caller.

    The caller is the ``{"userId", "orgId"}`` pair resolved by the identity
    provider; every operation is confined to the caller's organization.
    """

    def __init__(self, store: TrackerStore, caller: Optional[dict],
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.caller = caller or {}
        self.clock = clock or _utcnow

    def _require_caller(self) -> tuple:
        user_id = self.caller.get("userId")
        org_id = self.caller.get("orgId")
        if not user_id or not org_id:
            raise AuthorizationError("Unauthorized")
        return user_id, org_id

    def _require_organization(self, organization_id: str):
        _, org_id = self._require_caller()
        if organization_id != org_id:
            raise AuthorizationError(
                "Unauthorized: You can only access analytics for your current organization"
            )

    def _get_project(self, project_id: str) -> dict:
        _, org_id = self._require_caller()
        project = self.store.get_project(project_id)
        if not project or project.get("organizationId") != org_id:
            raise NotFoundError("Project not found")
        return project

    def _get_sprint(self, sprint_id: str) -> dict:
        _, org_id = self._require_caller()
        sprint = self.store.get_sprint(sprint_id)
        if not sprint or not sprint.get("project") or sprint["project"].get("organizationId") != org_id:
            raise NotFoundError("Sprint not found")
        return sprint

    def _get_issue(self, issue_id: str) -> dict:
        _, org_id = self._require_caller()
        issue = self.store.get_issue(issue_id)
        if not issue or not issue.get("project") or issue["project"].get("organizationId") != org_id:
            raise NotFoundError("Issue not found")
        return issue

    def _get_current_user(self) -> dict:
        user_id, _ = self._require_caller()
        user = self.store.get_user_by_clerk_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    # Status transitions

    def _transition(self, issue: dict, new_status: str, previous_status: str) -> dict:
        """Apply and persist a transition; caller holds the store transaction."""
        analytic = issue.get("analytics")
        if analytic is None:
            since = issue.get("createdAt") or self.clock()
            analytic = new_analytic(issue["id"], since)

        updated = apply_transition(analytic, new_status, previous_status, self.clock())
        return self.store.save_analytic(updated)

    def record_transition(self, issue_id: str, new_status: str, previous_status: str) -> dict:
        """Move an issue to a new status and record it in the issue's analytics.

        The status write and the analytics write commit together.

        Args:
            issue_id: Issue whose status changes
            new_status: Status the issue moves into
            previous_status: Status the issue moves out of; must be the
                issue's stored status

        Returns:
            The updated analytics record
        """
        _check_choice("status", new_status, STATUSES)
        _check_choice("status", previous_status, STATUSES)
        if new_status == previous_status:
            raise ValueError("Status did not change")

        with self.store.transaction():
            issue = self._get_issue(issue_id)
            if issue.get("status") != previous_status:
                raise ValueError(
                    f"Issue {issue_id} is {issue.get('status')}, not {previous_status}"
                )
            self.store.update_issue(issue_id, {"status": new_status})
            analytic = self._transition(issue, new_status, previous_status)

        logger.info(f"Issue {issue_id} moved {previous_status} -> {new_status}")
        return analytic

    # Issue lifecycle

    def get_issues_for_sprint(self, sprint_id: str) -> list:
        self._get_sprint(sprint_id)
        return self.store.list_sprint_issues_ordered(sprint_id)

    def create_issue(self, project_id: str, data: dict) -> dict:
        """Create an issue and its analytics record in one transaction."""
        project = self._get_project(project_id)
        reporter = self._get_current_user()

        status = data.get("status") or "TODO"
        priority = data.get("priority") or "MEDIUM"
        _check_choice("status", status, STATUSES)
        _check_choice("priority", priority, PRIORITIES)
        if not data.get("title"):
            raise ValueError("Issue title is required")

        with self.store.transaction():
            last_order = self.store.max_issue_order(project["id"], status)
            now = self.clock()

            issue = self.store.insert_issue({
                "title": data["title"],
                "description": data.get("description"),
                "status": status,
                "priority": priority,
                "projectId": project["id"],
                "sprintId": data.get("sprintId"),
                "reporterId": reporter["id"],
                "assigneeId": data.get("assigneeId") or None,
                "departmentId": data.get("departmentId") or None,
                "order": last_order + 1 if last_order is not None else 0,
                "createdAt": now,
            })
            issue["analytics"] = self.store.save_analytic(new_analytic(issue["id"], now))

        logger.info(f"Created issue {issue['id']} in project {project['id']}")
        return issue

    def update_issue(self, issue_id: str, data: dict) -> dict:
        """Update issue fields, recording the status change if there is one."""
        new_status = data.get("status")
        if "status" in data:
            _check_choice("status", new_status, STATUSES)
        if "priority" in data:
            _check_choice("priority", data["priority"], PRIORITIES)

        changes = {field: data[field] for field in UPDATABLE_ISSUE_FIELDS if field in data}

        with self.store.transaction():
            issue = self._get_issue(issue_id)
            updated = self.store.update_issue(issue_id, changes)
            if new_status and new_status != issue.get("status"):
                updated["analytics"] = self._transition(issue, new_status, issue.get("status"))
            else:
                updated["analytics"] = issue.get("analytics")

        return updated

    def update_issue_order(self, updated_issues: list) -> dict:
        """Apply a board reorder; status changes update analytics atomically."""
        self._require_caller()

        with self.store.transaction():
            for entry in updated_issues:
                if not isinstance(entry, dict) or not entry.get("id"):
                    raise ValueError("Each reordered issue needs an id")
                issue = self._get_issue(entry["id"])
                status = entry.get("status") or issue.get("status")
                _check_choice("status", status, STATUSES)

                self.store.update_issue(issue["id"], {"status": status, "order": entry.get("order", 0)})

                if status != issue.get("status"):
                    self._transition(issue, status, issue.get("status"))

        return {"success": True}

    def delete_issue(self, issue_id: str) -> dict:
        """Delete an issue; only its reporter or a project admin may do so."""
        user = self._get_current_user()
        issue = self._get_issue(issue_id)

        admin_ids = issue["project"].get("adminIds") or []
        if issue.get("reporterId") != user["id"] and user["id"] not in admin_ids:
            raise AuthorizationError("You don't have permission to delete this issue")

        self.store.delete_issue(issue_id)
        logger.info(f"Deleted issue {issue_id}")
        return {"success": True}

    # Analytics

    def get_project_analytics(self, project_id: str) -> dict:
        project = self._get_project(project_id)
        issues = self.store.list_issues(project_id=project["id"])
        return aggregate(issues, Scope.project(project["id"]))

    def get_sprint_analytics(self, sprint_id: str) -> dict:
        sprint = self._get_sprint(sprint_id)
        issues = self.store.list_issues(sprint_id=sprint["id"])
        return aggregate(issues, Scope.sprint(sprint["id"], sprint.get("status")))

    def get_user_completion_analytics(self, organization_id: str) -> list:
        self._require_organization(organization_id)
        project_ids = [p["id"] for p in self.store.list_projects(organization_id)]
        users = self.store.list_users_with_assigned_issues(project_ids)
        return rank_users_by_completion(users)

    def get_organization_analytics(self, organization_id: str) -> dict:
        self._require_organization(organization_id)
        projects = self.store.list_projects(organization_id, include_issues=True)
        issues = [issue for project in projects for issue in project["issues"]]

        analytics = aggregate(issues, Scope.organization(organization_id, projects))
        analytics["userCompletionData"] = self.get_user_completion_analytics(organization_id)
        return analytics
