"""Value types shared by the reconciliation engine."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field

LEFT_GUILD_NAME = "Unknown (Left Guild)"


class RemovalReason(str, enum.Enum):
    """Why a roster entry was queued for removal."""

    LEFT_PARENT_SCOPE = "left_parent_scope"
    ROLE_MISMATCH = "role_mismatch"


class Phase(str, enum.Enum):
    IDLE = "idle"
    BUILDING = "building"
    BATCH_ACTIVE = "batch_active"


@dataclass
class Group:
    """A managed thread and the role its members must hold."""

    group_id: int
    required_role_id: int | None = None
    last_check: float = 0.0


@dataclass(frozen=True)
class RosterEntry:
    member_id: int
    joined_at: float | None = None


@dataclass(frozen=True)
class ParentMembership:
    """A member's standing in the guild at the time of the pass."""

    role_ids: frozenset[int]
    display_name: str = "Unknown"
    is_bot: bool = False


@dataclass(frozen=True)
class RemovalCandidate:
    member_id: int
    display_name: str
    reason: RemovalReason
    joined_at: float = 0.0
    authority: int | None = None

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "display_name": self.display_name,
            "reason": self.reason.value,
            "joined_at": self.joined_at,
            "authority": self.authority,
        }


@dataclass(frozen=True)
class ReconciliationState:
    """Remaining work for one group's in-progress pass."""

    processed_count: int
    target_count: int
    remaining: tuple[RemovalCandidate, ...]
    last_batch_at: float = 0.0

    @property
    def exhausted(self) -> bool:
        return not self.remaining

    def to_dict(self) -> dict:
        return {
            "processed_count": self.processed_count,
            "target_count": self.target_count,
            "remaining": [c.to_dict() for c in self.remaining],
            "last_batch_at": self.last_batch_at,
        }


@dataclass
class BatchReport:
    """Outcome of one Batch Remover invocation."""

    removed: list[int] = field(default_factory=list)
    denied: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    completed: bool = False

    @property
    def attempted(self) -> int:
        return len(self.removed) + len(self.denied) + len(self.failed)
