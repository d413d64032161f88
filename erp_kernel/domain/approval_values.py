"""
Approval value objects (``erp_kernel.domain.approval_values``).

Responsibility
--------------
Closed enumerations and immutable value objects shared by the approval
chain template and the approval request aggregate: level definitions,
level decision slots, history entries, comment entries and the
completion event.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* Status fields are closed ``str`` enums, never open strings.
* ``APPROVAL_TRANSITIONS`` defines the only valid request status
  transitions.  Terminal states have no outgoing edges.
* A level decision is immutable once decided: ``approve``/``reject`` on a
  decided slot raise ``LevelAlreadyDecidedError``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from erp_kernel.exceptions import LevelAlreadyDecidedError

UserId = int


# =========================================================================
# Enumerations
# =========================================================================


class EntityType(str, Enum):
    """Business document kinds that go through an approval chain."""

    QUOTATION = "QUOTATION"
    PURCHASE_ORDER = "PURCHASE_ORDER"


class ApprovalStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})


class DecisionStatus(str, Enum):
    """Outcome of a single level slot."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class HistoryAction(str, Enum):
    """Kinds of audit history entries."""

    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


# =========================================================================
# Chain configuration
# =========================================================================


@dataclass(frozen=True)
class ChainLevel:
    """One configured position in an approval chain.

    ``required`` is carried for display; every level is decided in order
    regardless of its value.
    """

    level_order: int
    level_name: str
    approver_user_id: UserId
    required: bool = True

    def __post_init__(self) -> None:
        if self.level_order < 1:
            raise ValueError(
                f"level_order must be >= 1, got {self.level_order}"
            )
        if not self.level_name or not self.level_name.strip():
            raise ValueError("level_name must not be blank")


# =========================================================================
# Level decision slot
# =========================================================================


@dataclass(frozen=True)
class ApprovalLevelDecision:
    """A single slot in a request's chain. Immutable; deciding returns a copy."""

    level_order: int
    level_name: str
    expected_approver_user_id: UserId
    decision: DecisionStatus = DecisionStatus.PENDING
    decided_by_user_id: UserId | None = None
    comments: str | None = None
    decided_at: datetime | None = None

    @property
    def is_decided(self) -> bool:
        return self.decision != DecisionStatus.PENDING

    def approve(
        self, actor_user_id: UserId, comments: str | None, at: datetime,
    ) -> ApprovalLevelDecision:
        return self._decide(DecisionStatus.APPROVED, actor_user_id, comments, at)

    def reject(
        self, actor_user_id: UserId, comments: str | None, at: datetime,
    ) -> ApprovalLevelDecision:
        return self._decide(DecisionStatus.REJECTED, actor_user_id, comments, at)

    def _decide(
        self,
        outcome: DecisionStatus,
        actor_user_id: UserId,
        comments: str | None,
        at: datetime,
    ) -> ApprovalLevelDecision:
        if self.is_decided:
            raise LevelAlreadyDecidedError(self.level_order, self.decision.value)
        return replace(
            self,
            decision=outcome,
            decided_by_user_id=actor_user_id,
            comments=comments,
            decided_at=at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "level_order": self.level_order,
            "level_name": self.level_name,
            "expected_approver_user_id": self.expected_approver_user_id,
            "decision": self.decision.value,
            "decided_by_user_id": self.decided_by_user_id,
            "comments": self.comments,
            "decided_at": _iso(self.decided_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalLevelDecision:
        return cls(
            level_order=data["level_order"],
            level_name=data["level_name"],
            expected_approver_user_id=data["expected_approver_user_id"],
            decision=DecisionStatus(data["decision"]),
            decided_by_user_id=data.get("decided_by_user_id"),
            comments=data.get("comments"),
            decided_at=_parse_iso(data.get("decided_at")),
        )


# =========================================================================
# Audit history and discussion
# =========================================================================


@dataclass(frozen=True)
class ApprovalHistoryEntry:
    """Append-only audit record produced by a state transition."""

    action: HistoryAction
    actor_user_id: UserId
    created_at: datetime
    level_order: int | None = None
    comments: str | None = None

    @classmethod
    def submitted(cls, actor_user_id: UserId, at: datetime) -> ApprovalHistoryEntry:
        return cls(HistoryAction.SUBMITTED, actor_user_id, at)

    @classmethod
    def approved(
        cls,
        level_order: int,
        actor_user_id: UserId,
        comments: str | None,
        at: datetime,
    ) -> ApprovalHistoryEntry:
        return cls(HistoryAction.APPROVED, actor_user_id, at, level_order, comments)

    @classmethod
    def rejected(
        cls,
        level_order: int,
        actor_user_id: UserId,
        reason: str,
        at: datetime,
    ) -> ApprovalHistoryEntry:
        return cls(HistoryAction.REJECTED, actor_user_id, at, level_order, reason)

    @property
    def is_decision(self) -> bool:
        """An approve or reject at some level, as opposed to the submission."""
        return self.action in (HistoryAction.APPROVED, HistoryAction.REJECTED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "actor_user_id": self.actor_user_id,
            "created_at": _iso(self.created_at),
            "level_order": self.level_order,
            "comments": self.comments,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalHistoryEntry:
        return cls(
            action=HistoryAction(data["action"]),
            actor_user_id=data["actor_user_id"],
            created_at=_parse_iso(data["created_at"]),
            level_order=data.get("level_order"),
            comments=data.get("comments"),
        )


@dataclass(frozen=True)
class ApprovalCommentEntry:
    """Discussion comment or mandatory rejection reason."""

    commenter_user_id: UserId
    text: str
    created_at: datetime
    is_rejection_reason: bool = False

    @classmethod
    def discussion(
        cls, commenter_user_id: UserId, text: str, at: datetime,
    ) -> ApprovalCommentEntry:
        return cls(commenter_user_id, text, at, is_rejection_reason=False)

    @classmethod
    def rejection_reason(
        cls, commenter_user_id: UserId, reason: str, at: datetime,
    ) -> ApprovalCommentEntry:
        return cls(commenter_user_id, reason, at, is_rejection_reason=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "commenter_user_id": self.commenter_user_id,
            "text": self.text,
            "created_at": _iso(self.created_at),
            "is_rejection_reason": self.is_rejection_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalCommentEntry:
        return cls(
            commenter_user_id=data["commenter_user_id"],
            text=data["text"],
            created_at=_parse_iso(data["created_at"]),
            is_rejection_reason=data.get("is_rejection_reason", False),
        )


# =========================================================================
# Completion event
# =========================================================================


@dataclass(frozen=True)
class ApprovalCompletedEvent:
    """Raised to entity-specific handlers after a terminal transition is saved.

    ``reason`` is set for rejections only.
    """

    approval_request_id: int | None
    entity_type: EntityType
    entity_id: int
    status: ApprovalStatus
    actor_user_id: UserId
    occurred_at: datetime
    reason: str | None = None
