"""Group-membership reconciliation engine."""
from .authority import AuthorityDecision, allow
from .candidates import build_candidates, order_candidates
from .directory import RoleGroupDirectory, TierConfig, load_tiers_from_env
from .eligibility import Eligibility, evaluate
from .errors import (
    ConfigError,
    FetchError,
    ReconcileError,
    RemovalError,
    RemovalPermissionError,
    StateCorruption,
)
from .gateway import RosterGateway
from .guard import ConcurrencyGuard
from .models import (
    BatchReport,
    Group,
    ParentMembership,
    Phase,
    ReconciliationState,
    RemovalCandidate,
    RemovalReason,
    RosterEntry,
)
from .reconciler import Reconciler
from .remover import apply_batch
from .store import StateStore

__all__ = [
    # Directory & eligibility
    "RoleGroupDirectory",
    "TierConfig",
    "load_tiers_from_env",
    "Eligibility",
    "evaluate",
    # Engine
    "AuthorityDecision",
    "allow",
    "build_candidates",
    "order_candidates",
    "apply_batch",
    "ConcurrencyGuard",
    "Reconciler",
    "RosterGateway",
    "StateStore",
    # Models
    "BatchReport",
    "Group",
    "ParentMembership",
    "Phase",
    "ReconciliationState",
    "RemovalCandidate",
    "RemovalReason",
    "RosterEntry",
    # Errors
    "ConfigError",
    "FetchError",
    "ReconcileError",
    "RemovalError",
    "RemovalPermissionError",
    "StateCorruption",
]
