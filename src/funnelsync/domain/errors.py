"""Domain-level error types."""

from __future__ import annotations


class PlatformUnavailableError(RuntimeError):
    """A membership platform call timed out or failed with a non-2xx status.

    This is a soft failure: the affected candidate or tenant is deferred to the
    next run and nothing is written for it.
    """

    def __init__(self, message: str, *, tenant: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.tenant = tenant
        self.status_code = status_code


class IntakeValidationError(ValueError):
    """An intake event payload is malformed and was rejected at the boundary."""


class UnknownProspectError(LookupError):
    """An intake event refers to a member that cannot be tied to a city or tenant."""
