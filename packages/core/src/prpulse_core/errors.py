"""Outcomes of a failed GitHub fetch.

The refresh loop branches on these types only; everything about how GitHub
signalled the failure (status codes, GraphQL error payloads, headers) is
resolved inside prpulse_core.gh.
"""

from __future__ import annotations

from datetime import datetime


class FetchError(Exception):
    """Base class for every error the fetch layer raises."""


class ClientError(FetchError):
    """GitHub rejected the request (bad token, missing scope, bad query).

    Retrying with the same credential will not help.
    """


class ServerError(FetchError):
    """GitHub failed on its side, or the request timed out. Transient."""


class RateLimited(ClientError):
    """GitHub is rate limiting us until ``unblock_at``."""

    def __init__(self, unblock_at: datetime, message: str = ""):
        self.unblock_at = unblock_at
        super().__init__(message or f"rate limited until {unblock_at.isoformat()}")
