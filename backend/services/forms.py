"""Form view/submission tracking and response analytics."""

from datetime import datetime, timezone
from typing import Optional
import json
import logging
import math

from services.errors import AuthorizationError, NotFoundError
from services.store import TrackerStore, parse_date

logger = logging.getLogger(__name__)


def parse_form_fields(fields) -> list:
    """Return the form's field definitions, or [] when they can't be read."""
    if isinstance(fields, str):
        try:
            fields = json.loads(fields)
        except ValueError:
            return []
    return fields if isinstance(fields, list) else []


def _response_key(value) -> str:
    """String form of a submitted value, so 5 and "5" share a bucket."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else _response_key(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _in_range(record: dict, start: datetime, end: datetime) -> bool:
    created = parse_date(record.get("createdAt"))
    return created is not None and start <= created <= end


def _iso(value) -> Optional[str]:
    value = parse_date(value)
    return value.isoformat() if value else None


def _newest_first(records: list) -> list:
    """Sort by createdAt, newest first; undated records go last."""
    def key(record):
        created = parse_date(record.get("createdAt"))
        return (0, -created.timestamp()) if created else (1, 0)
    return sorted(records, key=key)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def tabulate_form_responses(form: dict, submissions: list, views: list,
                            date_range: Optional[dict] = None) -> dict:
    """Count responses per field and value, plus view/submission totals.

    Args:
        form: Form record; its ``fields`` supply each label's field type
        submissions: Submission records with a ``data`` dict of label -> value
        views: View records
        date_range: Optional ``{"from", "to"}``; applied only when both are set

    Returns:
        Analytics dict for the form; viewers and submitters are listed
        newest first
    """
    if date_range and date_range.get("from") and date_range.get("to"):
        start = parse_date(date_range["from"])
        end = parse_date(date_range["to"])
        if start and end:
            submissions = [s for s in submissions if _in_range(s, start, end)]
            views = [v for v in views if _in_range(v, start, end)]

    submissions = _newest_first(submissions)
    views = _newest_first(views)

    field_types = {}
    for field in parse_form_fields(form.get("fields")):
        if isinstance(field, dict) and field.get("label") not in field_types:
            field_types[field.get("label")] = field.get("type") or "text"

    tallies = {}
    for submission in submissions:
        data = submission.get("data")
        if not isinstance(data, dict):
            continue
        for label, value in data.items():
            counts = tallies.setdefault(label, {})
            key = _response_key(value)
            counts[key] = counts.get(key, 0) + 1

    responses = [
        {
            "fieldLabel": label,
            "fieldType": field_types.get(label, "text"),
            "responses": [{"value": value, "count": count} for value, count in counts.items()]
        }
        for label, counts in tallies.items()
    ]

    unique_viewers = {view.get("userEmail") for view in views if view.get("userEmail")}
    total_views = len(views)
    total_submissions = len(submissions)

    return {
        "totalViews": total_views,
        "uniqueViewers": len(unique_viewers),
        "totalSubmissions": total_submissions,
        "completionRate": _round_half_up(total_submissions / total_views * 100) if total_views > 0 else 0,
        "viewers": [
            {
                "name": view.get("userName") or "Anonymous",
                "email": view.get("userEmail") or "N/A",
                "viewDate": _iso(view.get("createdAt"))
            }
            for view in views
        ],
        "submitters": [
            {
                "name": sub.get("userName") or "Anonymous",
                "email": sub.get("userEmail") or "N/A",
                "submitDate": _iso(sub.get("createdAt"))
            }
            for sub in submissions
        ],
        "responses": responses
    }


class FormService:
    """Public form interactions and caller-scoped form analytics."""

    def __init__(self, store: TrackerStore, clock=None):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _get_form(self, form_id: str) -> dict:
        form = self.store.get_form(form_id)
        if not form:
            raise NotFoundError("Form not found")
        return form

    def track_view(self, form_id: str, user: Optional[dict] = None) -> dict:
        """Record that someone opened a form (anonymous views allowed)."""
        self._get_form(form_id)
        user = user or {}
        return self.store.insert_form_view({
            "formId": form_id,
            "userId": user.get("id"),
            "userEmail": user.get("email"),
            "userName": user.get("name"),
            "createdAt": self.clock(),
        })

    def submit_response(self, form_id: str, data: dict, user: Optional[dict] = None) -> dict:
        """Store a form response."""
        self._get_form(form_id)
        if not isinstance(data, dict):
            raise ValueError("Response data must be an object")

        user = user or {}
        submission = self.store.insert_form_submission({
            "formId": form_id,
            "data": data,
            "userName": user.get("name"),
            "userEmail": user.get("email"),
            "createdAt": self.clock(),
        })
        logger.info(f"Stored submission {submission['id']} for form {form_id}")
        return submission

    def get_form_analytics(self, caller: dict, form_id: str,
                           date_range: Optional[dict] = None) -> dict:
        """Response analytics for a form in the caller's organization."""
        if not caller or not caller.get("userId") or not caller.get("orgId"):
            raise AuthorizationError("Unauthorized")

        form = self._get_form(form_id)
        project = self.store.get_project(form.get("projectId"))
        if not project or project.get("organizationId") != caller["orgId"]:
            raise NotFoundError("Form not found")

        return tabulate_form_responses(
            form,
            self.store.list_form_submissions(form_id),
            self.store.list_form_views(form_id),
            date_range
        )

    def list_organization_forms(self, caller: dict, organization_id: str) -> list:
        """All forms across the organization's projects, with usage counts."""
        if not caller or not caller.get("userId") or caller.get("orgId") != organization_id:
            raise AuthorizationError("Unauthorized")

        forms = []
        for project in self.store.list_projects(organization_id):
            for form in self.store.list_forms(project["id"]):
                forms.append({
                    "id": form["id"],
                    "name": form.get("name"),
                    "description": form.get("description"),
                    "projectId": project["id"],
                    "projectName": project.get("name"),
                    "submissionCount": len(self.store.list_form_submissions(form["id"])),
                    "viewCount": len(self.store.list_form_views(form["id"])),
                    "createdAt": _iso(form.get("createdAt")),
                })
        return forms
