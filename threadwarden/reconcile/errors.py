"""Exception hierarchy for roster reconciliation."""
from __future__ import annotations


class ReconcileError(Exception):
    """Base class for reconciliation failures."""


class ConfigError(ReconcileError):
    """The tier configuration is unusable. Fatal at startup."""


class FetchError(ReconcileError):
    """A roster or thread lookup failed; the current pass for that group is aborted."""

    def __init__(self, group_id: int, message: str) -> None:
        super().__init__(message)
        self.group_id = group_id


class RemovalError(ReconcileError):
    """A single removal call failed."""

    def __init__(self, group_id: int, member_id: int, message: str) -> None:
        super().__init__(message)
        self.group_id = group_id
        self.member_id = member_id


class RemovalPermissionError(ReconcileError):
    """The enforcing account may not remove this candidate."""

    def __init__(self, member_id: int, reason: str) -> None:
        super().__init__(reason)
        self.member_id = member_id
        self.reason = reason


class StateCorruption(ReconcileError):
    """A stored reconciliation state failed validation."""

    def __init__(self, group_id: int, message: str) -> None:
        super().__init__(message)
        self.group_id = group_id
