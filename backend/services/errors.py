"""Error types raised by the tracker services."""


class TrackerError(Exception):
    """Base class for tracker service errors."""


class AuthorizationError(TrackerError):
    """Caller has no session, or is not a member of the requested organization."""


class NotFoundError(TrackerError):
    """Referenced record does not exist or belongs to another organization."""
