"""Issue analytics calculations.

Everything here is a pure function over already-fetched records: no store
access, no logging, no exceptions for bad data. Malformed input degrades to
zero or is left out of the buckets so a dashboard can always render.
"""

from datetime import datetime
from typing import Optional

STATUSES = ("TODO", "IN_PROGRESS", "IN_REVIEW", "DONE")
PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")

# Workflow states whose dwell time is accumulated, keyed by analytics field
TIME_BUCKETS = {
    "TODO": "timeInTodo",
    "IN_PROGRESS": "timeInProgress",
    "IN_REVIEW": "timeInReview",
}

SPRINT_COMPLETED = "COMPLETED"


class Scope:
    """Aggregation boundary: one project, one sprint, or a whole organization.

    Sprint scopes carry the sprint's own status (completion rate depends on
    it). Organization scopes carry their projects, each with ``issues`` and
    ``sprints`` lists, so per-project performance can be rolled up.
    """

    PROJECT = "project"
    SPRINT = "sprint"
    ORGANIZATION = "organization"

    def __init__(self, kind: str, scope_id: str, sprint_status: Optional[str] = None,
                 projects: Optional[list] = None):
        self.kind = kind
        self.id = scope_id
        self.sprint_status = sprint_status
        self.projects = projects or []

    @classmethod
    def project(cls, project_id: str) -> "Scope":
        return cls(cls.PROJECT, project_id)

    @classmethod
    def sprint(cls, sprint_id: str, status: Optional[str]) -> "Scope":
        return cls(cls.SPRINT, sprint_id, sprint_status=status)

    @classmethod
    def organization(cls, organization_id: str, projects: list) -> "Scope":
        return cls(cls.ORGANIZATION, organization_id, projects=projects)

    def __repr__(self):
        return f"Scope({self.kind!r}, {self.id!r})"


def new_analytic(issue_id: str, since: datetime) -> dict:
    """Build a zeroed analytics record whose clock starts at ``since``."""
    return {
        "issueId": issue_id,
        "timeInTodo": 0,
        "timeInProgress": 0,
        "timeInReview": 0,
        "lastStatusChange": since,
        "statusChanges": 0,
        "completionTime": None,
    }


def apply_transition(analytic: dict, new_status: str, previous_status: str,
                     now: datetime) -> dict:
    """Account for a status change on an issue's analytics record.

    The seconds since the last change are credited to the bucket of the
    status being left. Leaving DONE (or an unknown status) credits nothing.
    Moving into DONE from any other status stamps the completion time as
    the bucket totals before this change plus the final segment.

    Returns a new dict; ``analytic`` is left untouched.
    """
    updated = dict(analytic)

    last_change = analytic.get("lastStatusChange") or now
    # int() truncates toward zero; a clock running backwards counts as no time
    elapsed = max(0, int((now - last_change).total_seconds()))

    before_total = sum(analytic.get(field) or 0 for field in TIME_BUCKETS.values())

    bucket = TIME_BUCKETS.get(previous_status)
    if bucket:
        updated[bucket] = (analytic.get(bucket) or 0) + elapsed

    updated["statusChanges"] = (analytic.get("statusChanges") or 0) + 1
    updated["lastStatusChange"] = now

    if new_status == "DONE" and previous_status != "DONE":
        updated["completionTime"] = before_total + elapsed

    return updated


def _seconds(value) -> int:
    """Numeric seconds, or 0 for anything that isn't a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def _analytics_of(issue: dict) -> Optional[dict]:
    analytics = issue.get("analytics")
    return analytics if isinstance(analytics, dict) else None


def _records(items) -> list:
    """Drop anything that isn't a record dict."""
    if not isinstance(items, (list, tuple)):
        return []
    return [item for item in items if isinstance(item, dict)]


def _count_by(issues: list, key: str, values: tuple) -> dict:
    counts = {value: 0 for value in values}
    for issue in issues:
        value = issue.get(key)
        if isinstance(value, str) and value in counts:
            counts[value] += 1
    return counts


def _average_completion_time(issues: list) -> int:
    total = 0
    count = 0
    for issue in issues:
        analytics = _analytics_of(issue)
        if issue.get("status") != "DONE" or not analytics:
            continue
        completion_time = _seconds(analytics.get("completionTime"))
        if completion_time:
            total += completion_time
            count += 1
    return total // count if count > 0 else 0


def _completion_rate(completed: int, total: int) -> float:
    return (completed / total * 100) if total > 0 else 0


def _status_time_summary(issues: list) -> dict:
    """Totals and per-issue averages of the time buckets."""
    totals = {"Todo": 0, "Progress": 0, "Review": 0}
    with_analytics = 0

    for issue in issues:
        analytics = _analytics_of(issue)
        if not analytics:
            continue
        with_analytics += 1
        totals["Todo"] += _seconds(analytics.get("timeInTodo"))
        totals["Progress"] += _seconds(analytics.get("timeInProgress"))
        totals["Review"] += _seconds(analytics.get("timeInReview"))

    summary = {}
    for suffix, total in totals.items():
        summary[f"totalTimeIn{suffix}"] = total
        summary[f"averageTimeIn{suffix}"] = total // with_analytics if with_analytics > 0 else 0
    return summary


def _project_performance(projects: list) -> list:
    performance = []
    for project in _records(projects):
        project_issues = _records(project.get("issues"))
        completed = sum(1 for issue in project_issues if issue.get("status") == "DONE")
        performance.append({
            "id": project.get("id"),
            "name": project.get("name"),
            "key": project.get("key"),
            "totalIssues": len(project_issues),
            "completedIssues": completed,
            "completionRate": _completion_rate(completed, len(project_issues)),
        })
    return performance


def aggregate(issues: list, scope: Optional[Scope] = None) -> dict:
    """Summarize a collection of issues for a project, sprint, or organization.

    Args:
        issues: Issue dicts with ``status``, ``priority`` and an optional
            ``analytics`` record
        scope: Aggregation boundary; ``None`` returns only the fields shared
            by every scope

    Returns:
        Dict of counts and averages (seconds), all guarded against empty input
    """
    issues = _records(issues)
    by_status = _count_by(issues, "status", STATUSES)

    summary = {
        "totalIssues": len(issues),
        "issuesByStatus": by_status,
        "issuesByPriority": _count_by(issues, "priority", PRIORITIES),
        "completedIssues": by_status["DONE"],
        "averageCompletionTime": _average_completion_time(issues),
    }

    if scope is None:
        return summary

    if scope.kind in (Scope.PROJECT, Scope.SPRINT):
        summary.update(_status_time_summary(issues))

    if scope.kind == Scope.SPRINT:
        if scope.sprint_status == SPRINT_COMPLETED:
            summary["completionRate"] = _completion_rate(summary["completedIssues"], len(issues))
        else:
            summary["completionRate"] = 0

    if scope.kind == Scope.ORGANIZATION:
        projects = _records(scope.projects)
        summary["totalProjects"] = len(projects)
        summary["totalSprints"] = sum(len(_records(p.get("sprints"))) for p in projects)
        summary["projectPerformance"] = _project_performance(scope.projects)

    return summary


def rank_users_by_completion(users: list) -> list:
    """Rank users by how many of their assigned issues are DONE.

    Ties keep their input order (``sorted`` is stable).
    """
    ranking = []
    for user in _records(users):
        assigned = _records(user.get("assignedIssues"))
        total_assigned = len(assigned)
        completed_count = sum(1 for issue in assigned if issue.get("status") == "DONE")
        ranking.append({
            "id": user.get("id"),
            "name": user.get("name") or "Unknown User",
            "imageUrl": user.get("imageUrl"),
            "totalAssigned": total_assigned,
            "completedCount": completed_count,
            "completionRate": _completion_rate(completed_count, total_assigned),
        })

    return sorted(ranking, key=lambda entry: entry["completedCount"], reverse=True)


def format_duration(seconds) -> str:
    """Render seconds as ``"<d>d <h>h <m>m"``, dropping zero days/hours."""
    if not seconds or seconds < 0:
        return "N/A"

    seconds = int(seconds)
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    parts.append(f"{minutes}m")
    return " ".join(parts)
