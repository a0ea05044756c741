"""Shared fixtures for tracker analytics tests."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services.store import TrackerStore

T0 = datetime(2024, 1, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for time-in-status tests."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def caller():
    """Caller as resolved by the identity provider."""
    return {"userId": "user_alice", "orgId": "org_1", "role": "org:admin"}


@pytest.fixture
def seed_data():
    """Two organizations; org_1 has two projects, a completed and an active sprint."""
    return {
        "users": [
            {"id": "u-alice", "clerkUserId": "user_alice", "name": "Alice", "imageUrl": "https://example.com/a.png"},
            {"id": "u-bob", "clerkUserId": "user_bob", "name": "Bob"},
            {"id": "u-carol", "clerkUserId": "user_carol", "name": None},
        ],
        "projects": [
            {"id": "p-plat", "name": "Platform", "key": "PLAT", "organizationId": "org_1", "adminIds": ["u-alice"]},
            {"id": "p-web", "name": "Website", "key": "WEB", "organizationId": "org_1", "adminIds": []},
            {"id": "p-other", "name": "Elsewhere", "key": "ELS", "organizationId": "org_2", "adminIds": []},
        ],
        "sprints": [
            {"id": "s-done", "name": "PLAT 1", "status": "COMPLETED", "projectId": "p-plat"},
            {"id": "s-active", "name": "PLAT 2", "status": "ACTIVE", "projectId": "p-plat"},
            {"id": "s-other", "name": "ELS 1", "status": "COMPLETED", "projectId": "p-other"},
        ],
        "issues": [
            {"id": "i-1", "title": "Set up CI", "status": "DONE", "priority": "HIGH", "projectId": "p-plat",
             "sprintId": "s-done", "reporterId": "u-alice", "assigneeId": "u-bob", "order": 0,
             "createdAt": "2024-01-01T09:00:00Z"},
            {"id": "i-2", "title": "Add caching", "status": "DONE", "priority": "URGENT", "projectId": "p-plat",
             "sprintId": "s-done", "reporterId": "u-alice", "assigneeId": "u-bob", "order": 1,
             "createdAt": "2024-01-01T09:00:00Z"},
            {"id": "i-3", "title": "Fix login", "status": "TODO", "priority": "MEDIUM", "projectId": "p-plat",
             "sprintId": "s-done", "reporterId": "u-bob", "assigneeId": "u-alice", "order": 0,
             "createdAt": "2024-01-01T09:00:00Z"},
            {"id": "i-4", "title": "Dark mode", "status": "IN_REVIEW", "priority": "LOW", "projectId": "p-plat",
             "sprintId": "s-active", "reporterId": "u-bob", "assigneeId": None, "order": 0,
             "createdAt": "2024-01-01T09:00:00Z"},
            {"id": "i-5", "title": "Landing page", "status": "DONE", "priority": "LOW", "projectId": "p-web",
             "sprintId": None, "reporterId": "u-alice", "assigneeId": "u-alice", "order": 0,
             "createdAt": "2024-01-01T09:00:00Z"},
            {"id": "i-6", "title": "Foreign issue", "status": "DONE", "priority": "LOW", "projectId": "p-other",
             "sprintId": "s-other", "reporterId": "u-carol", "assigneeId": "u-carol", "order": 0,
             "createdAt": "2024-01-01T09:00:00Z"},
        ],
        "issueAnalytics": [
            {"issueId": "i-1", "timeInTodo": 100, "timeInProgress": 200, "timeInReview": 0,
             "statusChanges": 2, "lastStatusChange": "2024-01-01T09:05:00Z", "completionTime": 300},
            {"issueId": "i-2", "timeInTodo": 50, "timeInProgress": 400, "timeInReview": 50,
             "statusChanges": 3, "lastStatusChange": "2024-01-01T09:08:20Z", "completionTime": 500},
            {"issueId": "i-4", "timeInTodo": 30, "timeInProgress": 0, "timeInReview": 0,
             "statusChanges": 1, "lastStatusChange": "2024-01-01T09:00:30Z", "completionTime": None},
        ],
        "forms": [
            {"id": "f-1", "name": "Sprint feedback", "description": "How did it go?", "projectId": "p-plat",
             "fields": '[{"label": "Rating", "type": "number"}, {"label": "Comments", "type": "textarea"}]',
             "createdAt": "2024-01-15T10:00:00Z"},
            {"id": "f-other", "name": "Foreign form", "projectId": "p-other", "fields": "[]",
             "createdAt": "2024-01-15T10:00:00Z"},
        ],
        "formSubmissions": [
            {"id": "sub-1", "formId": "f-1", "data": {"Rating": 5, "Comments": "Great"},
             "userName": "Alice", "userEmail": "alice@example.com", "createdAt": "2024-01-16T10:00:00Z"},
            {"id": "sub-2", "formId": "f-1", "data": {"Rating": "5"},
             "createdAt": "2024-01-20T10:00:00Z"},
        ],
        "formViews": [
            {"id": "v-1", "formId": "f-1", "userEmail": "alice@example.com", "userName": "Alice",
             "createdAt": "2024-01-16T09:59:00Z"},
            {"id": "v-2", "formId": "f-1", "userEmail": "alice@example.com", "createdAt": "2024-01-17T09:00:00Z"},
            {"id": "v-3", "formId": "f-1", "createdAt": "2024-01-20T09:59:00Z"},
        ],
    }


@pytest.fixture
def store(seed_data):
    return TrackerStore(seed_data)


@pytest.fixture
def identity_client(caller):
    """Identity client stub that resolves every session to ``caller``."""
    client = Mock()
    client.resolve_caller.return_value = caller
    return client


@pytest.fixture
def app(store, identity_client):
    """Create Flask test app."""
    from app import create_app
    app = create_app(store=store, identity_client=identity_client)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def session_headers():
    return {"X-Session-Id": "sess_123", "X-Organization-Id": "org_1"}
