"""
InvoiceCommandService -- bill only what has been delivered.

Responsibility:
    Creates an invoice against an approved quotation, limited per product
    to the delivered quantity less what earlier invoices already billed.

Architecture position:
    Kernel > Services.  Shares the quotation DocumentLockService with
    DeliveryCommandService: both take ``quotation:<id>`` and lock the
    quotation row FOR UPDATE, so a delivery and an invoice for the same
    quotation never validate against each other's uncommitted totals.
    Like the delivery service it owns its transaction and commits inside
    the lock.

Failure modes:
    - LockAcquisitionError: lock wait timed out; nothing was written.
    - QuotationNotFoundError / QuotationNotApprovedError.
    - InvalidInvoiceError / InvoiceQuantityExceededError from the guard.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from erp_kernel.domain.approval_values import UserId
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.delivery import QuotationStatus
from erp_kernel.domain.invoice import (
    InvoiceLineItemInput,
    validate_invoice_quantities,
)
from erp_kernel.exceptions import QuotationNotApprovedError, QuotationNotFoundError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.delivery import QuotationModel
from erp_kernel.models.invoice import InvoiceLineItemModel, InvoiceModel
from erp_kernel.selectors.delivery_selector import DeliverySelector
from erp_kernel.selectors.invoice_selector import InvoiceSelector
from erp_kernel.services.document_lock import DocumentLockService

logger = get_logger("services.invoice")


class InvoiceCommandService:
    """Creates invoices under the quotation's document lock."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lock_service: DocumentLockService,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._locks = lock_service
        self._clock = clock or SystemClock()

    def create_invoice(
        self,
        quotation_id: int,
        line_items: Sequence[InvoiceLineItemInput],
        invoiced_by: UserId,
    ) -> int:
        """Validate and record an invoice; returns the committed invoice id."""
        with LogContext.bind(document=self._locks.lock_key(quotation_id), actor_id=invoiced_by):
            return self._locks.execute_with_lock(
                quotation_id,
                lambda: self._create_locked(quotation_id, line_items, invoiced_by),
            )

    def _create_locked(
        self,
        quotation_id: int,
        line_items: Sequence[InvoiceLineItemInput],
        invoiced_by: UserId,
    ) -> int:
        session = self._session_factory()
        try:
            quotation = session.execute(
                select(QuotationModel)
                .where(QuotationModel.id == quotation_id)
                .with_for_update()
            ).scalar_one_or_none()
            if quotation is None:
                raise QuotationNotFoundError(quotation_id)
            if quotation.status != QuotationStatus.APPROVED.value:
                raise QuotationNotApprovedError(quotation_id, quotation.status)

            validate_invoice_quantities(
                quotation.quoted_quantities(),
                DeliverySelector(session).delivered_quantities(quotation_id),
                InvoiceSelector(session).invoiced_quantities(quotation_id),
                line_items,
            )

            invoice = InvoiceModel(
                quotation_id=quotation_id,
                invoiced_by_id=invoiced_by,
                invoiced_at=self._clock.now(),
                line_items=[
                    InvoiceLineItemModel(product_id=item.product_id, quantity=item.quantity)
                    for item in line_items
                ],
            )
            session.add(invoice)
            session.flush()
            invoice_id = invoice.id
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(
            "invoice_created",
            extra={
                "invoice_id": invoice_id,
                "quotation_id": quotation_id,
                "line_count": len(line_items),
            },
        )
        return invoice_id
