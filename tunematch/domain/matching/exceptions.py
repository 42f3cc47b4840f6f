"""Domain-level exceptions for discovery, swipes and matches."""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for matching engine errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class NotFound(MatchingError):
    """A profile, post or match is missing."""

    reason = "not_found"


class ViewerNotFound(NotFound):
    """The requesting user's own profile is missing; fatal to the request."""

    reason = "viewer_not_found"


class MatchNotFound(NotFound):
    reason = "match_not_found"


class Unavailable(MatchingError):
    """Transient storage or dependency failure. Retried above this layer."""

    reason = "unavailable"


class Conflict(MatchingError):
    """A concurrent writer got there first. Success for match creation."""

    reason = "conflict"


class InvalidSwipe(MatchingError):
    reason = "invalid_swipe"


class Forbidden(MatchingError):
    reason = "forbidden"
