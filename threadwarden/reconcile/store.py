"""Keyed store of in-progress reconciliation state."""
from __future__ import annotations

from typing import Any, MutableMapping

from .errors import StateCorruption
from .models import ReconciliationState, RemovalCandidate, RemovalReason


def candidate_from_dict(data: Any) -> RemovalCandidate:
    if not isinstance(data, dict):
        raise ValueError(f"candidate record is {type(data).__name__}, expected dict")
    authority = data.get("authority")
    return RemovalCandidate(
        member_id=int(data["member_id"]),
        display_name=str(data.get("display_name") or "Unknown"),
        reason=RemovalReason(data["reason"]),
        joined_at=float(data.get("joined_at") or 0.0),
        authority=None if authority is None else int(authority),
    )


def state_from_dict(group_id: int, data: Any) -> ReconciliationState:
    """Decode a stored state record, raising StateCorruption if malformed."""
    try:
        if not isinstance(data, dict):
            raise ValueError(f"state record is {type(data).__name__}, expected dict")
        remaining = data["remaining"]
        if not isinstance(remaining, list):
            raise ValueError("remaining is not a list")
        state = ReconciliationState(
            processed_count=int(data["processed_count"]),
            target_count=int(data["target_count"]),
            remaining=tuple(candidate_from_dict(c) for c in remaining),
            last_batch_at=float(data.get("last_batch_at") or 0.0),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StateCorruption(group_id, f"malformed reconciliation state: {exc}") from exc
    if state.processed_count < 0 or state.processed_count > state.target_count:
        raise StateCorruption(
            group_id,
            f"processed_count {state.processed_count} outside 0..{state.target_count}",
        )
    if state.processed_count + len(state.remaining) > state.target_count:
        raise StateCorruption(group_id, "remaining queue longer than the unprocessed target")
    return state


class StateStore:
    """Reconciliation state keyed by group ID.

    Records are kept in their serialized form so any mapping (a dict by
    default) can back the store; every read is validated.
    """

    def __init__(self, backend: MutableMapping[int, Any] | None = None) -> None:
        self._records: MutableMapping[int, Any] = {} if backend is None else backend

    def get(self, group_id: int) -> ReconciliationState | None:
        if group_id not in self._records:
            return None
        return state_from_dict(group_id, self._records[group_id])

    def put(self, group_id: int, state: ReconciliationState) -> None:
        self._records[group_id] = state.to_dict()

    def delete(self, group_id: int) -> bool:
        return self._records.pop(group_id, None) is not None

    def __contains__(self, group_id: int) -> bool:
        return group_id in self._records

    def group_ids(self) -> list[int]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()
