"""Role-hierarchy check applied before each removal."""
from __future__ import annotations

from dataclasses import dataclass

from .errors import RemovalPermissionError

INSUFFICIENT_AUTHORITY = "insufficient authority"
UNKNOWN_AUTHORITY = "enforcing authority unknown"


@dataclass(frozen=True)
class AuthorityDecision:
    allowed: bool
    reason: str | None = None


def allow(enforcing: int | None, candidate: int | None) -> AuthorityDecision:
    """Return whether an account at ``enforcing`` may remove ``candidate``.

    Candidates without an authority level (members who left the guild) always
    pass. Otherwise the enforcing level must be strictly higher; an unknown
    enforcing level never outranks anyone.
    """
    if candidate is None:
        return AuthorityDecision(True)
    if enforcing is None:
        return AuthorityDecision(False, UNKNOWN_AUTHORITY)
    if enforcing > candidate:
        return AuthorityDecision(True)
    return AuthorityDecision(False, INSUFFICIENT_AUTHORITY)


def check(member_id: int, enforcing: int | None, candidate: int | None) -> None:
    """Raise :class:`RemovalPermissionError` when :func:`allow` denies."""
    decision = allow(enforcing, candidate)
    if not decision.allowed:
        raise RemovalPermissionError(member_id, decision.reason or INSUFFICIENT_AUTHORITY)
