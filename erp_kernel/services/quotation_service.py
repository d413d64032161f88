"""
QuotationService -- create quotations and send them into approval.

Responsibility:
    Minimal document-side service for the quotation, the first entity type
    gated by an approval chain.  Creating a quotation records its quoted
    quantities; submitting it moves it to PENDING and starts an approval
    request through ``ApprovalCommandService``.

Architecture position:
    Kernel > Services.  Flush only; the caller owns commit.

Failure modes:
    - InvalidQuotationError: duplicate product or non-positive quantity.
    - QuotationNotFoundError: unknown quotation id.
    - InvalidQuotationStateError: submitting a PENDING or APPROVED quotation.
    - Anything ``ApprovalCommandService.submit`` raises.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.orm import Session

from erp_kernel.domain.approval_values import EntityType, UserId
from erp_kernel.domain.delivery import QuotationLineItemInput, QuotationStatus
from erp_kernel.exceptions import (
    InvalidQuotationError,
    InvalidQuotationStateError,
    QuotationNotFoundError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.delivery import QuotationLineItemModel, QuotationModel
from erp_kernel.services.approval_command_service import ApprovalCommandService
from erp_kernel.services.base import BaseService

logger = get_logger("services.quotation")

_SUBMITTABLE = frozenset({QuotationStatus.DRAFT.value, QuotationStatus.REJECTED.value})


class QuotationService(BaseService[QuotationModel]):
    """Quotation commands; approval outcomes arrive via QuotationApprovalHandler."""

    def __init__(self, session: Session, approval_service: ApprovalCommandService) -> None:
        super().__init__(session)
        self._approvals = approval_service

    def create_quotation(
        self,
        title: str,
        line_items: Sequence[QuotationLineItemInput],
        project_id: int | None = None,
    ) -> int:
        products = [item.product_id for item in line_items]
        if len(set(products)) != len(products):
            raise InvalidQuotationError("Duplicate product in quotation line items")
        for item in line_items:
            if item.quantity <= 0:
                raise InvalidQuotationError(
                    f"Quoted quantity must be positive for product {item.product_id}",
                    product_id=item.product_id,
                )

        quotation = QuotationModel(
            title=title,
            project_id=project_id,
            status=QuotationStatus.DRAFT.value,
            line_items=[
                QuotationLineItemModel(product_id=item.product_id, quantity=item.quantity)
                for item in line_items
            ],
        )
        self.session.add(quotation)
        self.session.flush()
        logger.info(
            "quotation_created",
            extra={"quotation_id": quotation.id, "line_count": len(line_items)},
        )
        return quotation.id

    def submit_for_approval(self, quotation_id: int, submitted_by: UserId) -> int:
        """Move the quotation to PENDING and open its approval request."""
        quotation = self.session.get(QuotationModel, quotation_id)
        if quotation is None:
            raise QuotationNotFoundError(quotation_id)
        if quotation.status not in _SUBMITTABLE:
            raise InvalidQuotationStateError(quotation_id, quotation.status, "submit")

        request_id = self._approvals.submit(
            EntityType.QUOTATION, quotation_id, quotation.title, submitted_by,
        )
        quotation.status = QuotationStatus.PENDING.value
        self.session.flush()
        return request_id
