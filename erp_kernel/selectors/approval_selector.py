"""
Module: erp_kernel.selectors.approval_selector
Responsibility: Read-only queries behind approval screens: request detail,
    an approver's inbox, filtered request lists, audit history and the
    configured chain templates.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ value types and selectors/base.py.

Invariants enforced:
    - Read-only: no mutation of queried data.
    - Inbox semantics match the aggregate: a request is in a user's inbox
      only while PENDING and only if the user is the expected approver of
      the *current* level.
    - Deterministic ordering for stable pagination (timestamp, then id).
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.orm import aliased

from erp_kernel.domain.approval import ApprovalRequestSnapshot
from erp_kernel.domain.approval_values import (
    ApprovalHistoryEntry,
    ApprovalStatus,
    ChainLevel,
    EntityType,
)
from erp_kernel.models.approval import (
    ApprovalChainTemplateModel,
    ApprovalHistoryModel,
    ApprovalLevelDecisionModel,
    ApprovalRequestModel,
)
from erp_kernel.selectors.base import DEFAULT_PAGE_SIZE, BaseSelector, Page


@dataclass(frozen=True)
class ApprovalRequestSummary:
    """One row of an approval list or inbox."""

    id: int
    entity_type: EntityType
    entity_id: int
    entity_description: str | None
    status: ApprovalStatus
    current_level: int
    total_levels: int
    current_level_name: str
    current_approver_user_id: int
    submitted_by: int
    submitted_at: datetime
    completed_at: datetime | None


@dataclass(frozen=True)
class ChainTemplateSummary:
    id: int
    entity_type: EntityType
    name: str
    description: str | None
    active: bool
    levels: tuple[ChainLevel, ...]


_CurrentLevel = aliased(ApprovalLevelDecisionModel)


def _summary_query():
    R = ApprovalRequestModel
    return select(
        R.id,
        R.entity_type,
        R.entity_id,
        R.entity_description,
        R.status,
        R.current_level,
        R.total_levels,
        _CurrentLevel.level_name,
        _CurrentLevel.expected_approver_id,
        R.submitted_by_id,
        R.submitted_at,
        R.completed_at,
    ).join(
        _CurrentLevel,
        and_(
            _CurrentLevel.approval_request_id == R.id,
            _CurrentLevel.level_order == R.current_level,
        ),
    )


def _to_summary(row) -> ApprovalRequestSummary:
    return ApprovalRequestSummary(
        id=row.id,
        entity_type=EntityType(row.entity_type),
        entity_id=row.entity_id,
        entity_description=row.entity_description,
        status=ApprovalStatus(row.status),
        current_level=row.current_level,
        total_levels=row.total_levels,
        current_level_name=row.level_name,
        current_approver_user_id=row.expected_approver_id,
        submitted_by=row.submitted_by_id,
        submitted_at=row.submitted_at,
        completed_at=row.completed_at,
    )


class ApprovalSelector(BaseSelector[ApprovalRequestModel]):
    """Read side for approval requests and chain templates."""

    def get_detail(self, request_id: int) -> ApprovalRequestSnapshot | None:
        """Full state of one request, children included."""
        model = self.session.get(ApprovalRequestModel, request_id)
        return model.to_snapshot() if model is not None else None

    def list_pending_for_approver(
        self,
        user_id: int,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> Page[ApprovalRequestSummary]:
        """Requests waiting on ``user_id`` right now, oldest first."""
        R = ApprovalRequestModel
        stmt = (
            _summary_query()
            .where(
                R.status == ApprovalStatus.PENDING.value,
                _CurrentLevel.expected_approver_id == user_id,
            )
            .order_by(R.submitted_at, R.id)
        )
        rows, meta = self._paginate(stmt, limit, offset)
        return Page(items=tuple(_to_summary(r) for r in rows), meta=meta)

    def list_requests(
        self,
        entity_type: EntityType | None = None,
        status: ApprovalStatus | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> Page[ApprovalRequestSummary]:
        """All requests, newest first, optionally filtered."""
        R = ApprovalRequestModel
        stmt = _summary_query()
        if entity_type is not None:
            stmt = stmt.where(R.entity_type == entity_type.value)
        if status is not None:
            stmt = stmt.where(R.status == status.value)
        stmt = stmt.order_by(R.submitted_at.desc(), R.id.desc())
        rows, meta = self._paginate(stmt, limit, offset)
        return Page(items=tuple(_to_summary(r) for r in rows), meta=meta)

    def get_history(self, request_id: int) -> list[ApprovalHistoryEntry]:
        rows = self.session.execute(
            select(ApprovalHistoryModel)
            .where(ApprovalHistoryModel.approval_request_id == request_id)
            .order_by(ApprovalHistoryModel.entry_index)
        ).scalars().all()
        return [row.to_domain() for row in rows]

    def list_templates(self) -> list[ChainTemplateSummary]:
        models = self.session.execute(
            select(ApprovalChainTemplateModel).order_by(
                ApprovalChainTemplateModel.entity_type,
            )
        ).scalars().all()
        return [
            ChainTemplateSummary(
                id=m.id,
                entity_type=EntityType(m.entity_type),
                name=m.name,
                description=m.description,
                active=m.is_active,
                levels=tuple(level.to_domain() for level in m.levels),
            )
            for m in models
        ]
