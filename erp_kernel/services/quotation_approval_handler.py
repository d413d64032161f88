"""Quotation status follow-up for completed approval requests."""

from __future__ import annotations

from sqlalchemy.orm import Session

from erp_kernel.domain.approval_values import (
    ApprovalCompletedEvent,
    ApprovalStatus,
    EntityType,
)
from erp_kernel.domain.delivery import QuotationStatus
from erp_kernel.exceptions import QuotationNotFoundError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.delivery import QuotationModel
from erp_kernel.services.event_publisher import EventPublisher

logger = get_logger("services.quotation_approval_handler")

_OUTCOME_STATUS = {
    ApprovalStatus.APPROVED: QuotationStatus.APPROVED,
    ApprovalStatus.REJECTED: QuotationStatus.REJECTED,
}


class QuotationApprovalHandler:
    """Marks a quotation APPROVED or REJECTED when its approval completes.

    Runs in the publishing session, so the status change commits with the
    final approval decision.
    """

    def register(self, publisher: EventPublisher) -> None:
        publisher.subscribe(ApprovalCompletedEvent, self.on_approval_completed)

    def on_approval_completed(self, event: ApprovalCompletedEvent, session: Session) -> None:
        if event.entity_type != EntityType.QUOTATION:
            return

        quotation = session.get(QuotationModel, event.entity_id)
        if quotation is None:
            raise QuotationNotFoundError(event.entity_id)

        new_status = _OUTCOME_STATUS[event.status]
        quotation.status = new_status.value
        session.flush()

        logger.info(
            "quotation_approval_applied",
            extra={
                "quotation_id": event.entity_id,
                "approval_request_id": event.approval_request_id,
                "status": new_status.value,
            },
        )
