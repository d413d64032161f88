"""
Module: erp_kernel.models.approval
Responsibility: ORM persistence for approval chain templates, approval
    requests, level decisions, audit history and discussion comments.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - One template per entity type: UNIQUE(entity_type).
    - Level orders are unique per template and per request.
    - At most one PENDING request per document: partial unique index on
      (entity_type, entity_id) WHERE status = 'PENDING'.
    - Optimistic locking: ``version`` is the mapper's version_id_col, so every
      UPDATE carries ``WHERE version = :loaded``.  The repository assigns the
      next value explicitly (version_id_generator=False).
    - History and comment rows are append-only.
    - A level decision row is frozen once it holds APPROVED or REJECTED.

Failure modes:
    - IntegrityError on a second pending request for the same document.
    - StaleDataError when the version WHERE clause matches no row.
    - ImmutabilityViolationError on history/comment UPDATE or DELETE, and on
      any change to a decided level slot.

Audit relevance:
    approval_history is the authoritative trail of who submitted, approved
    and rejected what, at which level, and when.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import Base, IdType, TrackedBase, UTCDateTime
from erp_kernel.domain.approval import ApprovalRequestSnapshot
from erp_kernel.domain.approval_chain import ApprovalChainTemplate
from erp_kernel.domain.approval_values import (
    ApprovalCommentEntry,
    ApprovalHistoryEntry,
    ApprovalLevelDecision,
    ApprovalStatus,
    ChainLevel,
    DecisionStatus,
    EntityType,
    HistoryAction,
)
from erp_kernel.exceptions import ImmutabilityViolationError

_PENDING_ONLY = text("status = 'PENDING'")


# =============================================================================
# Chain templates
# =============================================================================


class ApprovalChainTemplateModel(TrackedBase):
    """Persistent approval chain template, one per entity type."""

    __tablename__ = "approval_chain_templates"

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    levels: Mapped[list["ApprovalChainLevelModel"]] = relationship(
        "ApprovalChainLevelModel",
        back_populates="template",
        order_by="ApprovalChainLevelModel.level_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalChainTemplateModel {self.id} {self.entity_type} "
            f"levels={len(self.levels)}>"
        )

    def to_domain(self) -> ApprovalChainTemplate:
        return ApprovalChainTemplate(
            EntityType(self.entity_type),
            self.name,
            [level.to_domain() for level in self.levels],
            id=self.id,
            description=self.description,
            active=self.is_active,
        )

    @classmethod
    def from_domain(cls, template: ApprovalChainTemplate) -> ApprovalChainTemplateModel:
        model = cls(
            entity_type=template.entity_type.value,
            name=template.name,
            description=template.description,
            is_active=template.active,
        )
        model.sync_levels(template.levels)
        return model

    def sync_levels(self, levels: tuple[ChainLevel, ...]) -> None:
        """Make the level rows match ``levels`` (already validated 1..N).

        Rows are updated in place by level order, so replacing a chain
        never inserts a level order that still exists in the table.
        """
        existing = {row.level_order: row for row in self.levels}
        wanted = {level.level_order for level in levels}

        for row in list(self.levels):
            if row.level_order not in wanted:
                self.levels.remove(row)

        for level in levels:
            row = existing.get(level.level_order)
            if row is None:
                self.levels.append(ApprovalChainLevelModel.from_domain(level))
            else:
                row.level_name = level.level_name
                row.approver_user_id = level.approver_user_id
                row.is_required = level.required


class ApprovalChainLevelModel(Base):
    """One configured approver level of a template."""

    __tablename__ = "approval_chain_levels"

    __table_args__ = (
        UniqueConstraint(
            "template_id", "level_order",
            name="uq_approval_chain_levels_order",
        ),
        CheckConstraint("level_order >= 1", name="ck_approval_chain_levels_order"),
    )

    template_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("approval_chain_templates.id"), nullable=False,
    )
    level_order: Mapped[int] = mapped_column(Integer, nullable=False)
    level_name: Mapped[str] = mapped_column(String(100), nullable=False)
    approver_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    template: Mapped[ApprovalChainTemplateModel] = relationship(
        "ApprovalChainTemplateModel", back_populates="levels",
    )

    def to_domain(self) -> ChainLevel:
        return ChainLevel(
            level_order=self.level_order,
            level_name=self.level_name,
            approver_user_id=self.approver_user_id,
            required=self.is_required,
        )

    @classmethod
    def from_domain(cls, level: ChainLevel) -> ApprovalChainLevelModel:
        return cls(
            level_order=level.level_order,
            level_name=level.level_name,
            approver_user_id=level.approver_user_id,
            is_required=level.required,
        )


# =============================================================================
# Approval requests
# =============================================================================


class ApprovalRequestModel(Base):
    """Persistent approval request (aggregate root row).

    Contract:
        Rows are only written by ApprovalRequestRepository, which bumps
        ``version`` on every save.
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_approval_requests_valid_status",
        ),
        CheckConstraint(
            "current_level >= 1 AND current_level <= total_levels",
            name="ck_approval_requests_level_range",
        ),
        Index(
            "ix_approval_requests_pending_unique",
            "entity_type", "entity_id",
            unique=True,
            postgresql_where=_PENDING_ONLY,
            sqlite_where=_PENDING_ONLY,
        ),
        Index(
            "ix_approval_requests_entity_status",
            "entity_type", "entity_id", "status",
        ),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    entity_description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False)
    total_levels: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    submitted_by_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    level_decisions: Mapped[list["ApprovalLevelDecisionModel"]] = relationship(
        "ApprovalLevelDecisionModel",
        back_populates="request",
        order_by="ApprovalLevelDecisionModel.level_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history_entries: Mapped[list["ApprovalHistoryModel"]] = relationship(
        "ApprovalHistoryModel",
        back_populates="request",
        order_by="ApprovalHistoryModel.entry_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    comments: Mapped[list["ApprovalCommentModel"]] = relationship(
        "ApprovalCommentModel",
        back_populates="request",
        order_by="ApprovalCommentModel.entry_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequestModel {self.id} {self.entity_type}:{self.entity_id} "
            f"status={self.status} v{self.version}>"
        )

    def to_snapshot(self) -> ApprovalRequestSnapshot:
        """Convert ORM rows to the aggregate's persisted state."""
        return ApprovalRequestSnapshot(
            id=self.id,
            version=self.version,
            entity_type=EntityType(self.entity_type),
            entity_id=self.entity_id,
            entity_description=self.entity_description,
            current_level=self.current_level,
            total_levels=self.total_levels,
            status=ApprovalStatus(self.status),
            submitted_by=self.submitted_by_id,
            submitted_at=self.submitted_at,
            completed_at=self.completed_at,
            level_decisions=tuple(d.to_domain() for d in self.level_decisions),
            history_entries=tuple(h.to_domain() for h in self.history_entries),
            comments=tuple(c.to_domain() for c in self.comments),
        )

    @classmethod
    def from_snapshot(cls, snapshot: ApprovalRequestSnapshot) -> ApprovalRequestModel:
        """Build a new row graph for an aggregate that was never persisted."""
        model = cls(
            entity_type=snapshot.entity_type.value,
            entity_id=snapshot.entity_id,
            version=snapshot.version,
        )
        model.apply_snapshot(snapshot)
        return model

    def apply_snapshot(self, snapshot: ApprovalRequestSnapshot) -> None:
        """Copy mutable aggregate state onto the rows.

        Decision slots are updated in place by level order; history and
        comments only ever gain rows past the ones already stored.
        """
        self.entity_description = snapshot.entity_description
        self.current_level = snapshot.current_level
        self.total_levels = snapshot.total_levels
        self.status = snapshot.status.value
        self.submitted_by_id = snapshot.submitted_by
        self.submitted_at = snapshot.submitted_at
        self.completed_at = snapshot.completed_at

        rows = {row.level_order: row for row in self.level_decisions}
        for decision in snapshot.level_decisions:
            row = rows.get(decision.level_order)
            if row is None:
                self.level_decisions.append(
                    ApprovalLevelDecisionModel.from_domain(decision)
                )
            elif row.to_domain() != decision:
                row.apply_domain(decision)

        for index in range(len(self.history_entries), len(snapshot.history_entries)):
            self.history_entries.append(
                ApprovalHistoryModel.from_domain(index, snapshot.history_entries[index])
            )
        for index in range(len(self.comments), len(snapshot.comments)):
            self.comments.append(
                ApprovalCommentModel.from_domain(index, snapshot.comments[index])
            )


class ApprovalLevelDecisionModel(Base):
    """Decision slot for one level of one request.

    Contract:
        PENDING slots may be decided exactly once; decided slots are frozen.
    """

    __tablename__ = "approval_level_decisions"

    __table_args__ = (
        UniqueConstraint(
            "approval_request_id", "level_order",
            name="uq_approval_level_decisions_order",
        ),
        CheckConstraint(
            "decision IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_approval_level_decisions_valid_decision",
        ),
    )

    approval_request_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("approval_requests.id"), nullable=False,
    )
    level_order: Mapped[int] = mapped_column(Integer, nullable=False)
    level_name: Mapped[str] = mapped_column(String(100), nullable=False)
    expected_approver_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    decided_by_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    request: Mapped[ApprovalRequestModel] = relationship(
        "ApprovalRequestModel", back_populates="level_decisions",
    )

    def to_domain(self) -> ApprovalLevelDecision:
        return ApprovalLevelDecision(
            level_order=self.level_order,
            level_name=self.level_name,
            expected_approver_user_id=self.expected_approver_id,
            decision=DecisionStatus(self.decision),
            decided_by_user_id=self.decided_by_id,
            comments=self.comments,
            decided_at=self.decided_at,
        )

    @classmethod
    def from_domain(cls, decision: ApprovalLevelDecision) -> ApprovalLevelDecisionModel:
        model = cls(level_order=decision.level_order)
        model.apply_domain(decision)
        return model

    def apply_domain(self, decision: ApprovalLevelDecision) -> None:
        self.level_name = decision.level_name
        self.expected_approver_id = decision.expected_approver_user_id
        self.decision = decision.decision.value
        self.decided_by_id = decision.decided_by_user_id
        self.decided_at = decision.decided_at
        self.comments = decision.comments


class ApprovalHistoryModel(Base):
    """Audit history row. Append-only."""

    __tablename__ = "approval_history"

    __table_args__ = (
        UniqueConstraint(
            "approval_request_id", "entry_index",
            name="uq_approval_history_index",
        ),
        CheckConstraint(
            "action IN ('SUBMITTED', 'APPROVED', 'REJECTED')",
            name="ck_approval_history_valid_action",
        ),
    )

    approval_request_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("approval_requests.id"), nullable=False,
    )
    entry_index: Mapped[int] = mapped_column(Integer, nullable=False)
    level_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    request: Mapped[ApprovalRequestModel] = relationship(
        "ApprovalRequestModel", back_populates="history_entries",
    )

    def to_domain(self) -> ApprovalHistoryEntry:
        return ApprovalHistoryEntry(
            action=HistoryAction(self.action),
            actor_user_id=self.actor_id,
            created_at=self.created_at,
            level_order=self.level_order,
            comments=self.comments,
        )

    @classmethod
    def from_domain(cls, index: int, entry: ApprovalHistoryEntry) -> ApprovalHistoryModel:
        return cls(
            entry_index=index,
            level_order=entry.level_order,
            action=entry.action.value,
            actor_id=entry.actor_user_id,
            comments=entry.comments,
            created_at=entry.created_at,
        )


class ApprovalCommentModel(Base):
    """Discussion comment or rejection reason. Append-only."""

    __tablename__ = "approval_comments"

    __table_args__ = (
        UniqueConstraint(
            "approval_request_id", "entry_index",
            name="uq_approval_comments_index",
        ),
    )

    approval_request_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("approval_requests.id"), nullable=False,
    )
    entry_index: Mapped[int] = mapped_column(Integer, nullable=False)
    commenter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_rejection_reason: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    request: Mapped[ApprovalRequestModel] = relationship(
        "ApprovalRequestModel", back_populates="comments",
    )

    def to_domain(self) -> ApprovalCommentEntry:
        return ApprovalCommentEntry(
            commenter_user_id=self.commenter_id,
            text=self.comment_text,
            created_at=self.created_at,
            is_rejection_reason=self.is_rejection_reason,
        )

    @classmethod
    def from_domain(cls, index: int, entry: ApprovalCommentEntry) -> ApprovalCommentModel:
        return cls(
            entry_index=index,
            commenter_id=entry.commenter_user_id,
            comment_text=entry.text,
            is_rejection_reason=entry.is_rejection_reason,
            created_at=entry.created_at,
        )


# =============================================================================
# ORM-Level Immutability (Append-Only Audit Rows)
# =============================================================================


@event.listens_for(ApprovalHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to approval history rows."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistory",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(ApprovalHistoryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of approval history rows."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistory",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot delete",
    )


@event.listens_for(ApprovalCommentModel, "before_update")
def prevent_comment_update(mapper, connection, target):
    """Prevent updates to approval comments."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalComment",
        entity_id=str(target.id),
        reason="Approval comments are append-only -- cannot modify",
    )


@event.listens_for(ApprovalCommentModel, "before_delete")
def prevent_comment_delete(mapper, connection, target):
    """Prevent deletion of approval comments."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalComment",
        entity_id=str(target.id),
        reason="Approval comments are append-only -- cannot delete",
    )


@event.listens_for(ApprovalLevelDecisionModel, "before_update")
def prevent_decided_level_update(mapper, connection, target):
    """Allow PENDING -> decided once; block every change after that."""
    history = inspect(target).attrs.decision.history
    previous = history.deleted[0] if history.deleted else target.decision
    if previous != DecisionStatus.PENDING.value:
        raise ImmutabilityViolationError(
            entity_type="ApprovalLevelDecision",
            entity_id=str(target.id),
            reason=f"Level {target.level_order} was already {previous} -- cannot modify",
        )


@event.listens_for(ApprovalLevelDecisionModel, "before_delete")
def prevent_level_decision_delete(mapper, connection, target):
    """Prevent deletion of level decision slots."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalLevelDecision",
        entity_id=str(target.id),
        reason="Level decision slots cannot be deleted",
    )
