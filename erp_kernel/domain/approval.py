"""
Approval request aggregate (``erp_kernel.domain.approval``).

Responsibility
--------------
One workflow instance bound to one business document.  Owns its ordered
level decisions, its audit history and its discussion comments, and
exposes the only mutation entry points (``approve``, ``reject``,
``add_comment``) so every invariant is enforced in one place.

Architecture position
---------------------
**Kernel domain layer** -- pure, single-threaded state machine.  ZERO
I/O: no persistence, no notification dispatch, no wall clock (time comes
from an injected ``Clock``).  The caller loads the aggregate, calls one
mutator and saves the whole aggregate in one transaction; the ``version``
field is the optimistic-lock token checked at save time.

State machine
-------------
``PENDING`` -> ``APPROVED`` | ``REJECTED``.  Approve advances one level
(or completes at the final level); reject at any level halts the chain
immediately.  Terminal states have no outgoing transitions.

Invariants enforced
-------------------
* ``1 <= current_level <= total_levels``.
* ``total_levels == len(level_decisions)``; level orders are exactly
  ``1..total_levels``.
* Levels below ``current_level`` are APPROVED; levels above it are
  PENDING and stay PENDING forever once the request completes.
* History holds exactly one SUBMITTED entry (first) and exactly one
  terminal entry iff the request is completed.
* Every mutator validates fully before it mutates anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from erp_kernel.domain.approval_values import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalCommentEntry,
    ApprovalCompletedEvent,
    ApprovalHistoryEntry,
    ApprovalLevelDecision,
    ApprovalStatus,
    DecisionStatus,
    EntityType,
    HistoryAction,
    UserId,
)
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.exceptions import (
    ApprovalAlreadyCompletedError,
    ApprovalChainNotConfiguredError,
    BlankCommentError,
    ChainTemplateMismatchError,
    CorruptApprovalStateError,
    MissingRejectionReasonError,
    OutOfOrderApprovalError,
    UnauthorizedApproverError,
)

if TYPE_CHECKING:
    from erp_kernel.domain.approval_chain import ApprovalChainTemplate


def _is_blank(text: str | None) -> bool:
    return text is None or not text.strip()


# =========================================================================
# Snapshot (persisted / serialized form)
# =========================================================================


@dataclass(frozen=True)
class ApprovalRequestSnapshot:
    """Complete, immutable state of an approval request.

    This is what repositories persist and what ``to_dict`` serializes.
    Restoring a snapshot yields an aggregate that behaves identically to
    the one it was taken from.
    """

    id: int | None
    version: int
    entity_type: EntityType
    entity_id: int
    entity_description: str | None
    current_level: int
    total_levels: int
    status: ApprovalStatus
    submitted_by: UserId
    submitted_at: datetime
    completed_at: datetime | None
    level_decisions: tuple[ApprovalLevelDecision, ...]
    history_entries: tuple[ApprovalHistoryEntry, ...]
    comments: tuple[ApprovalCommentEntry, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "entity_description": self.entity_description,
            "current_level": self.current_level,
            "total_levels": self.total_levels,
            "status": self.status.value,
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "level_decisions": [d.to_dict() for d in self.level_decisions],
            "history_entries": [h.to_dict() for h in self.history_entries],
            "comments": [c.to_dict() for c in self.comments],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalRequestSnapshot:
        completed_at = data.get("completed_at")
        return cls(
            id=data.get("id"),
            version=data["version"],
            entity_type=EntityType(data["entity_type"]),
            entity_id=data["entity_id"],
            entity_description=data.get("entity_description"),
            current_level=data["current_level"],
            total_levels=data["total_levels"],
            status=ApprovalStatus(data["status"]),
            submitted_by=data["submitted_by"],
            submitted_at=datetime.fromisoformat(data["submitted_at"]),
            completed_at=(
                datetime.fromisoformat(completed_at) if completed_at else None
            ),
            level_decisions=tuple(
                ApprovalLevelDecision.from_dict(d) for d in data["level_decisions"]
            ),
            history_entries=tuple(
                ApprovalHistoryEntry.from_dict(h) for h in data["history_entries"]
            ),
            comments=tuple(
                ApprovalCommentEntry.from_dict(c) for c in data.get("comments", [])
            ),
        )


def _check_invariants(state: ApprovalRequestSnapshot) -> None:
    """Raise CorruptApprovalStateError if ``state`` breaks an invariant."""
    ref = str(state.id) if state.id is not None else (
        f"{state.entity_type.value}:{state.entity_id}"
    )

    def fail(reason: str) -> None:
        raise CorruptApprovalStateError(ref, reason)

    decisions = state.level_decisions
    if state.total_levels < 1 or state.total_levels != len(decisions):
        fail(
            f"total_levels={state.total_levels} but "
            f"{len(decisions)} level decisions"
        )
    orders = [d.level_order for d in decisions]
    if orders != list(range(1, state.total_levels + 1)):
        fail(f"level orders {orders} are not 1..{state.total_levels}")
    if not 1 <= state.current_level <= state.total_levels:
        fail(f"current_level={state.current_level} out of range")

    for decision in decisions:
        if decision.level_order < state.current_level:
            expected = DecisionStatus.APPROVED
        elif decision.level_order > state.current_level:
            expected = DecisionStatus.PENDING
        elif state.status == ApprovalStatus.PENDING:
            expected = DecisionStatus.PENDING
        else:
            expected = DecisionStatus(state.status.value)
        if decision.decision != expected:
            fail(
                f"level {decision.level_order} is {decision.decision.value}, "
                f"expected {expected.value}"
            )

    if state.status == ApprovalStatus.APPROVED and (
        state.current_level != state.total_levels
    ):
        fail("approved request must stop at the final level")

    history = state.history_entries
    submitted = [h for h in history if h.action == HistoryAction.SUBMITTED]
    if not history or history[0].action != HistoryAction.SUBMITTED or len(submitted) != 1:
        fail("history must start with exactly one SUBMITTED entry")
    terminal = [
        h for h in history
        if h.action == HistoryAction.REJECTED
        or (h.action == HistoryAction.APPROVED and h.level_order == state.total_levels)
    ]
    expected_terminal = 0 if state.status == ApprovalStatus.PENDING else 1
    if len(terminal) != expected_terminal:
        fail(f"{len(terminal)} terminal history entries for status {state.status.value}")

    if (state.completed_at is None) != (state.status == ApprovalStatus.PENDING):
        fail("completed_at must be set exactly when the request is completed")


# =========================================================================
# Aggregate root
# =========================================================================


class ApprovalRequest:
    """Aggregate root for a multi-level sequential approval.

    New requests come only from :meth:`create`; persisted ones are
    rehydrated with :meth:`from_snapshot`.  Collections are exposed as
    tuples so callers cannot mutate them.
    """

    def __init__(self, state: ApprovalRequestSnapshot) -> None:
        _check_invariants(state)
        self._id = state.id
        self._version = state.version
        self._entity_type = state.entity_type
        self._entity_id = state.entity_id
        self._entity_description = state.entity_description
        self._current_level = state.current_level
        self._total_levels = state.total_levels
        self._status = state.status
        self._submitted_by = state.submitted_by
        self._submitted_at = state.submitted_at
        self._completed_at = state.completed_at
        self._level_decisions = list(state.level_decisions)
        self._history_entries = list(state.history_entries)
        self._comments = list(state.comments)

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self._id} {self._entity_type.value}:"
            f"{self._entity_id} level={self._current_level}/"
            f"{self._total_levels} status={self._status.value}>"
        )

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        entity_type: EntityType,
        entity_id: int,
        entity_description: str | None,
        submitted_by: UserId,
        template: ApprovalChainTemplate,
        *,
        clock: Clock | None = None,
    ) -> ApprovalRequest:
        """Start a new workflow from a snapshot of the template's levels.

        Raises:
            ApprovalChainNotConfiguredError: the template has no levels.
            ChainTemplateMismatchError: the template is for another entity type.
        """
        if template.entity_type != entity_type:
            raise ChainTemplateMismatchError(
                template.entity_type.value, entity_type.value,
            )
        if not template.has_levels():
            raise ApprovalChainNotConfiguredError(entity_type.value)

        now = (clock or SystemClock()).now()
        decisions = tuple(template.create_level_decisions())
        return cls(ApprovalRequestSnapshot(
            id=None,
            version=0,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_description=entity_description,
            current_level=1,
            total_levels=len(decisions),
            status=ApprovalStatus.PENDING,
            submitted_by=submitted_by,
            submitted_at=now,
            completed_at=None,
            level_decisions=decisions,
            history_entries=(ApprovalHistoryEntry.submitted(submitted_by, now),),
        ))

    @classmethod
    def from_snapshot(cls, snapshot: ApprovalRequestSnapshot) -> ApprovalRequest:
        """Rehydrate a persisted aggregate, re-checking its invariants."""
        return cls(snapshot)

    def snapshot(self) -> ApprovalRequestSnapshot:
        return ApprovalRequestSnapshot(
            id=self._id,
            version=self._version,
            entity_type=self._entity_type,
            entity_id=self._entity_id,
            entity_description=self._entity_description,
            current_level=self._current_level,
            total_levels=self._total_levels,
            status=self._status,
            submitted_by=self._submitted_by,
            submitted_at=self._submitted_at,
            completed_at=self._completed_at,
            level_decisions=tuple(self._level_decisions),
            history_entries=tuple(self._history_entries),
            comments=tuple(self._comments),
        )

    def record_persisted(self, request_id: int, version: int) -> None:
        """Adopt the identity and version assigned by a successful save."""
        self._id = request_id
        self._version = version

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def approve(
        self,
        approver_user_id: UserId,
        comments: str | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        """Approve at the current level; advance, or complete at the last level.

        Raises:
            ApprovalAlreadyCompletedError: request is terminal.
            OutOfOrderApprovalError: user approves at another level.
            UnauthorizedApproverError: user is not on this chain.
        """
        self._ensure_pending()
        self._ensure_expected_approver(approver_user_id)

        now = (clock or SystemClock()).now()
        level = self._current_level
        decided = self._level_decisions[level - 1].approve(
            approver_user_id, comments, now,
        )

        self._level_decisions[level - 1] = decided
        self._history_entries.append(
            ApprovalHistoryEntry.approved(level, approver_user_id, comments, now)
        )
        if self.is_at_final_level():
            self._complete(ApprovalStatus.APPROVED, now)
        else:
            self._current_level += 1

    def reject(
        self,
        approver_user_id: UserId,
        reason: str,
        comments: str | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        """Reject at the current level; the whole chain stops here.

        Raises:
            ApprovalAlreadyCompletedError: request is terminal.
            MissingRejectionReasonError: ``reason`` is blank.
            OutOfOrderApprovalError: user rejects at another level.
            UnauthorizedApproverError: user is not on this chain.
        """
        self._ensure_pending()
        if _is_blank(reason):
            raise MissingRejectionReasonError(self._ref)
        self._ensure_expected_approver(approver_user_id)

        now = (clock or SystemClock()).now()
        level = self._current_level
        decided = self._level_decisions[level - 1].reject(
            approver_user_id, comments, now,
        )

        self._level_decisions[level - 1] = decided
        self._history_entries.append(
            ApprovalHistoryEntry.rejected(level, approver_user_id, reason, now)
        )
        self._comments.append(
            ApprovalCommentEntry.rejection_reason(approver_user_id, reason, now)
        )
        self._complete(ApprovalStatus.REJECTED, now)

    def add_comment(
        self,
        commenter_user_id: UserId,
        text: str,
        *,
        clock: Clock | None = None,
    ) -> None:
        """Append a discussion comment; allowed in any status."""
        if _is_blank(text):
            raise BlankCommentError(self._ref)
        now = (clock or SystemClock()).now()
        self._comments.append(
            ApprovalCommentEntry.discussion(commenter_user_id, text, now)
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_pending(self) -> bool:
        return self._status == ApprovalStatus.PENDING

    def is_completed(self) -> bool:
        return self._status in TERMINAL_APPROVAL_STATUSES

    def is_at_final_level(self) -> bool:
        return self._current_level == self._total_levels

    def get_level_decision(self, level_order: int) -> ApprovalLevelDecision | None:
        if 1 <= level_order <= len(self._level_decisions):
            return self._level_decisions[level_order - 1]
        return None

    @property
    def current_level_decision(self) -> ApprovalLevelDecision:
        return self._level_decisions[self._current_level - 1]

    def is_expected_approver(self, user_id: UserId) -> bool:
        """True if ``user_id`` is the approver of the current level."""
        return self.current_level_decision.expected_approver_user_id == user_id

    def is_approver_at_any_level(self, user_id: UserId) -> bool:
        return any(
            d.expected_approver_user_id == user_id for d in self._level_decisions
        )

    def completion_event(self) -> ApprovalCompletedEvent | None:
        """Event for entity handlers, or None while the request is pending."""
        if not self.is_completed():
            return None
        decision = self.current_level_decision
        reason = None
        if self._status == ApprovalStatus.REJECTED:
            reason = self._history_entries[-1].comments
        return ApprovalCompletedEvent(
            approval_request_id=self._id,
            entity_type=self._entity_type,
            entity_id=self._entity_id,
            status=self._status,
            actor_user_id=decision.decided_by_user_id,
            occurred_at=self._completed_at,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Read-only attributes
    # ------------------------------------------------------------------

    @property
    def id(self) -> int | None:
        return self._id

    @property
    def version(self) -> int:
        return self._version

    @property
    def entity_type(self) -> EntityType:
        return self._entity_type

    @property
    def entity_id(self) -> int:
        return self._entity_id

    @property
    def entity_description(self) -> str | None:
        return self._entity_description

    @property
    def current_level(self) -> int:
        return self._current_level

    @property
    def total_levels(self) -> int:
        return self._total_levels

    @property
    def status(self) -> ApprovalStatus:
        return self._status

    @property
    def submitted_by(self) -> UserId:
        return self._submitted_by

    @property
    def submitted_at(self) -> datetime:
        return self._submitted_at

    @property
    def completed_at(self) -> datetime | None:
        return self._completed_at

    @property
    def level_decisions(self) -> tuple[ApprovalLevelDecision, ...]:
        return tuple(self._level_decisions)

    @property
    def history_entries(self) -> tuple[ApprovalHistoryEntry, ...]:
        return tuple(self._history_entries)

    @property
    def comments(self) -> tuple[ApprovalCommentEntry, ...]:
        return tuple(self._comments)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def _ref(self) -> str:
        if self._id is not None:
            return str(self._id)
        return f"{self._entity_type.value}:{self._entity_id}"

    def _ensure_pending(self) -> None:
        if self.is_completed():
            raise ApprovalAlreadyCompletedError(self._ref, self._status.value)

    def _ensure_expected_approver(self, user_id: UserId) -> None:
        if self.is_expected_approver(user_id):
            return
        if self.is_approver_at_any_level(user_id):
            raise OutOfOrderApprovalError(self._ref, user_id, self._current_level)
        raise UnauthorizedApproverError(self._ref, user_id)

    def _complete(self, final_status: ApprovalStatus, at: datetime) -> None:
        if final_status not in APPROVAL_TRANSITIONS[self._status]:
            raise CorruptApprovalStateError(
                self._ref,
                f"illegal transition {self._status.value} -> {final_status.value}",
            )
        self._status = final_status
        self._completed_at = at
