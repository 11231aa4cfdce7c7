"""Domain error taxonomy.

Every error is recoverable at the caller boundary. Each class carries the
HTTP status the web layer answers with.
"""

from __future__ import annotations

from typing import Any


class MedPathError(Exception):
    """Base exception for all MedPath domain errors."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "error_type": self.__class__.__name__,
            "details": self.details,
        }


# --- Lookup failures ---


class UnknownNodeError(MedPathError, LookupError):
    """A referenced node id does not exist."""

    status_code = 404


class NodeNotFoundError(UnknownNodeError):
    """The node targeted by an operation does not exist."""


class EdgeNotFoundError(MedPathError, LookupError):
    status_code = 404


class ReferralNotFoundError(MedPathError, LookupError):
    status_code = 404


class InvalidSourceError(MedPathError, LookupError):
    """Shortest-path source is not in the graph snapshot."""

    status_code = 404


# --- Rule violations ---


class InvalidNodeError(MedPathError, ValueError):
    status_code = 400


class InvalidEdgeError(MedPathError, ValueError):
    status_code = 400


class DuplicateEdgeError(MedPathError, ValueError):
    status_code = 409


class DuplicatePendingError(MedPathError, ValueError):
    status_code = 409


class AlreadyResolvedError(MedPathError, ValueError):
    status_code = 409


class NoBedsAvailableError(MedPathError, ValueError):
    status_code = 409


class UnreachableTargetError(MedPathError, ValueError):
    status_code = 422


class StaleRouteError(UnreachableTargetError):
    """The route stored on a referral no longer exists in the graph."""

    status_code = 409
