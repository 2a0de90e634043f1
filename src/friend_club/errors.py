"""Exception types raised across the friend club core."""

from __future__ import annotations


class FriendClubError(Exception):
    """Base class for application errors."""


class RepoError(FriendClubError):
    """A repository XRPC call returned a non-success response."""

    def __init__(self, method: str, status: int, body: str = "") -> None:
        self.method = method
        self.status = status
        self.body = body
        super().__init__(f"{method} failed with HTTP {status}: {body[:200]}")


class SessionError(FriendClubError):
    """No authenticated context is registered for the given session id."""


__all__ = ["FriendClubError", "RepoError", "SessionError"]
