"""
ApprovalRequestRepository -- whole-aggregate persistence with optimistic locking.

Responsibility:
    Loads and saves ``ApprovalRequest`` aggregates as a unit: the root row
    plus all three child collections (level decisions, history, comments).
    Detects concurrent modification through the ``version`` column.

Architecture position:
    Kernel > Services -- imperative shell.  Translates between the pure
    aggregate (``domain/approval.py``) and the ORM rows
    (``models/approval.py``).

Invariants enforced:
    - Every successful ``save`` bumps ``version`` by exactly one, issued as
      ``UPDATE ... WHERE version = :expected``.
    - Two saves from the same loaded version cannot both succeed; the
      loser gets ``OptimisticLockError``.
    - Rehydration re-checks aggregate invariants
      (``CorruptApprovalStateError`` on bad rows).

Failure modes:
    - ApprovalNotFoundError: unknown request id.
    - OptimisticLockError: stale aggregate at save time.  After a conflict
      detected during flush the session must be rolled back by the caller.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from erp_kernel.domain.approval import ApprovalRequest
from erp_kernel.domain.approval_values import ApprovalStatus, EntityType
from erp_kernel.exceptions import ApprovalNotFoundError, OptimisticLockError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.approval import ApprovalRequestModel
from erp_kernel.services.base import BaseService

logger = get_logger("services.approval_repository")


class ApprovalRequestRepository(BaseService[ApprovalRequestModel]):
    """Repository for approval request aggregates. Flushes, never commits."""

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        """Insert a never-persisted aggregate; assigns its id."""
        if request.id is not None:
            raise ValueError(f"Approval request {request.id} is already persisted")

        model = ApprovalRequestModel.from_snapshot(request.snapshot())
        self.session.add(model)
        self.session.flush()
        request.record_persisted(model.id, model.version)

        logger.debug(
            "approval_request_inserted",
            extra={"request_id": model.id, "version": model.version},
        )
        return request

    def get(self, request_id: int) -> ApprovalRequest:
        """Load the whole aggregate, refreshed from the database."""
        model = self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise ApprovalNotFoundError(str(request_id))
        return ApprovalRequest.from_snapshot(model.to_snapshot())

    def save(self, request: ApprovalRequest) -> ApprovalRequest:
        """Write the aggregate back and bump its version.

        Raises:
            ApprovalNotFoundError: the aggregate was never added.
            OptimisticLockError: someone else saved this request first.
        """
        if request.id is None:
            raise ApprovalNotFoundError("<unsaved>")

        model = self.session.get(ApprovalRequestModel, request.id)
        if model is None:
            raise ApprovalNotFoundError(str(request.id))

        if model.version != request.version:
            self._conflict(request, found_version=model.version)

        next_version = request.version + 1
        model.apply_snapshot(request.snapshot())
        model.version = next_version
        try:
            self.session.flush()
        except StaleDataError as exc:
            self._conflict(request, found_version=None, cause=exc)

        request.record_persisted(model.id, next_version)
        logger.debug(
            "approval_request_saved",
            extra={"request_id": model.id, "version": next_version},
        )
        return request

    def find_pending_for_entity(
        self, entity_type: EntityType, entity_id: int,
    ) -> ApprovalRequest | None:
        model = self.session.execute(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.entity_type == entity_type.value,
                ApprovalRequestModel.entity_id == entity_id,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
            )
        ).scalar_one_or_none()
        if model is None:
            return None
        return ApprovalRequest.from_snapshot(model.to_snapshot())

    def _conflict(
        self,
        request: ApprovalRequest,
        found_version: int | None,
        cause: Exception | None = None,
    ) -> None:
        logger.warning(
            "approval_optimistic_lock_conflict",
            extra={
                "request_id": request.id,
                "expected_version": request.version,
                "found_version": found_version,
            },
        )
        raise OptimisticLockError("ApprovalRequest", str(request.id)) from cause
