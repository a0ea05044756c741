"""In-process data store for tracker records.

Records are plain dicts keyed by id, grouped into tables. Reads hand out
copies so callers can never mutate stored state behind the store's back;
writes grouped under ``transaction()`` commit or roll back together.
"""

import copy
import json
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

TABLES = (
    "users",
    "projects",
    "sprints",
    "issues",
    "issueAnalytics",
    "forms",
    "formSubmissions",
    "formViews",
)

# Fields holding timestamps, parsed when loading seed files
DATE_FIELDS = ("createdAt", "lastStatusChange")

STATUS_ORDER = {"TODO": 0, "IN_PROGRESS": 1, "IN_REVIEW": 2, "DONE": 3}


def parse_date(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value or isinstance(value, datetime):
        return value

    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _new_id() -> str:
    return uuid.uuid4().hex


class TrackerStore:
    """Repository over issue tracker tables with all-or-nothing transactions."""

    def __init__(self, data: Optional[dict] = None):
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = {name: {} for name in TABLES}
        if data:
            self.load(data)

    @classmethod
    def from_seed_file(cls, path: str) -> "TrackerStore":
        """Create a store populated from a JSON seed file."""
        with open(path, "r") as f:
            data = json.load(f)
        store = cls(data)
        logger.info(f"Loaded seed data from {path}")
        return store

    def load(self, data: dict):
        """Insert seed records, given as ``{table: [record, ...]}``."""
        with self.transaction():
            for table, records in data.items():
                if table not in self._tables:
                    logger.warning(f"Ignoring unknown seed table: {table}")
                    continue
                for record in records:
                    record = dict(record)
                    for field in DATE_FIELDS:
                        if field in record:
                            record[field] = parse_date(record[field])
                    self._insert(table, record)

    @contextmanager
    def transaction(self):
        """Group writes so they are applied together or not at all.

        Nested transactions join the outermost one: only the outermost takes
        a snapshot, and only it restores the snapshot on failure.
        """
        with self._lock:
            outermost = self._depth == 0
            snapshot = copy.deepcopy(self._tables) if outermost else None
            self._depth += 1
            try:
                yield self
            except Exception:
                if outermost:
                    self._tables = snapshot
                    logger.warning("Transaction rolled back")
                raise
            finally:
                self._depth -= 1

    # Generic table access

    def _insert(self, table: str, record: dict) -> dict:
        record = dict(record)
        record.setdefault("id", _new_id())
        self._tables[table][record["id"]] = record
        return copy.deepcopy(record)

    def _get(self, table: str, record_id) -> Optional[dict]:
        with self._lock:
            record = self._tables[table].get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def _find(self, table: str, **criteria) -> list:
        with self._lock:
            return [
                copy.deepcopy(record)
                for record in self._tables[table].values()
                if all(record.get(key) == value for key, value in criteria.items())
            ]

    def _update(self, table: str, record_id, changes: dict) -> Optional[dict]:
        with self._lock:
            record = self._tables[table].get(record_id)
            if record is None:
                return None
            record.update(changes)
            return copy.deepcopy(record)

    # Users

    def get_user(self, user_id) -> Optional[dict]:
        return self._get("users", user_id)

    def get_user_by_clerk_id(self, clerk_user_id) -> Optional[dict]:
        users = self._find("users", clerkUserId=clerk_user_id)
        return users[0] if users else None

    def list_users_with_assigned_issues(self, project_ids: list) -> list:
        """Users with at least one assigned issue in ``project_ids``.

        Each user carries ``assignedIssues`` restricted to those projects,
        with ``id`` and ``status`` only.
        """
        project_ids = set(project_ids)
        with self._lock:
            assigned = {}
            for issue in self._tables["issues"].values():
                if issue.get("projectId") in project_ids and issue.get("assigneeId"):
                    assigned.setdefault(issue["assigneeId"], []).append(
                        {"id": issue["id"], "status": issue.get("status")}
                    )

            users = []
            for user in self._tables["users"].values():
                if user["id"] in assigned:
                    entry = copy.deepcopy(user)
                    entry["assignedIssues"] = assigned[user["id"]]
                    users.append(entry)
            return users

    # Projects and sprints

    def get_project(self, project_id) -> Optional[dict]:
        return self._get("projects", project_id)

    def list_projects(self, organization_id, include_issues: bool = False) -> list:
        """Projects of an organization, optionally with issues and sprints."""
        projects = self._find("projects", organizationId=organization_id)
        if include_issues:
            for project in projects:
                project["issues"] = self.list_issues(project_id=project["id"])
                project["sprints"] = self._find("sprints", projectId=project["id"])
        return projects

    def get_sprint(self, sprint_id) -> Optional[dict]:
        """Sprint with its ``project`` attached."""
        sprint = self._get("sprints", sprint_id)
        if sprint is not None:
            sprint["project"] = self.get_project(sprint.get("projectId"))
        return sprint

    # Issues and their analytics

    def _with_analytics(self, issue: dict) -> dict:
        analytics = self._find("issueAnalytics", issueId=issue["id"])
        issue["analytics"] = analytics[0] if analytics else None
        return issue

    def get_issue(self, issue_id) -> Optional[dict]:
        """Issue with its ``project`` and ``analytics`` attached."""
        issue = self._get("issues", issue_id)
        if issue is None:
            return None
        issue["project"] = self.get_project(issue.get("projectId"))
        return self._with_analytics(issue)

    def list_issues(self, project_id=None, sprint_id=None) -> list:
        """Issues filtered by project and/or sprint, each with ``analytics``."""
        criteria = {}
        if project_id is not None:
            criteria["projectId"] = project_id
        if sprint_id is not None:
            criteria["sprintId"] = sprint_id
        with self._lock:
            return [self._with_analytics(issue) for issue in self._find("issues", **criteria)]

    def list_sprint_issues_ordered(self, sprint_id) -> list:
        """Sprint issues ordered by workflow status, then board order."""
        issues = self.list_issues(sprint_id=sprint_id)
        issues.sort(key=lambda i: (STATUS_ORDER.get(i.get("status"), len(STATUS_ORDER)),
                                   i.get("order") or 0))
        for issue in issues:
            issue["assignee"] = self.get_user(issue.get("assigneeId"))
            issue["reporter"] = self.get_user(issue.get("reporterId"))
        return issues

    def max_issue_order(self, project_id, status) -> Optional[int]:
        orders = [
            issue.get("order") or 0
            for issue in self._find("issues", projectId=project_id, status=status)
        ]
        return max(orders) if orders else None

    def insert_issue(self, issue: dict) -> dict:
        with self._lock:
            return self._insert("issues", issue)

    def update_issue(self, issue_id, changes: dict) -> Optional[dict]:
        return self._update("issues", issue_id, changes)

    def delete_issue(self, issue_id) -> bool:
        """Remove an issue together with its analytics record."""
        with self.transaction():
            if self._tables["issues"].pop(issue_id, None) is None:
                return False
            for analytic_id in [
                a["id"] for a in self._tables["issueAnalytics"].values()
                if a.get("issueId") == issue_id
            ]:
                del self._tables["issueAnalytics"][analytic_id]
            return True

    def get_analytic(self, issue_id) -> Optional[dict]:
        analytics = self._find("issueAnalytics", issueId=issue_id)
        return analytics[0] if analytics else None

    def save_analytic(self, analytic: dict) -> dict:
        """Insert or update the analytics record of ``analytic['issueId']``."""
        with self._lock:
            existing = self.get_analytic(analytic["issueId"])
            if existing is not None:
                record = dict(analytic, id=existing["id"])
                return self._update("issueAnalytics", existing["id"], record)
            return self._insert("issueAnalytics", analytic)

    # Forms

    def get_form(self, form_id) -> Optional[dict]:
        return self._get("forms", form_id)

    def list_forms(self, project_id) -> list:
        forms = self._find("forms", projectId=project_id)
        forms.sort(key=lambda f: f.get("createdAt") or datetime.min.replace(tzinfo=timezone.utc),
                   reverse=True)
        return forms

    def list_form_submissions(self, form_id) -> list:
        return self._find("formSubmissions", formId=form_id)

    def list_form_views(self, form_id) -> list:
        return self._find("formViews", formId=form_id)

    def insert_form_submission(self, submission: dict) -> dict:
        with self._lock:
            return self._insert("formSubmissions", submission)

    def insert_form_view(self, view: dict) -> dict:
        with self._lock:
            return self._insert("formViews", view)
