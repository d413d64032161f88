"""
DeliveryCommandService -- record deliveries without over-delivering a quotation.

Responsibility:
    Creates a delivery against an approved quotation.  The whole
    read-validate-write-commit sequence runs under the per-quotation
    document lock, so concurrent deliveries for the same quotation cannot
    both pass validation against the same "already delivered" totals.

Architecture position:
    Kernel > Services.  Unlike flush-only services this one owns its
    transaction: the lock must cover the commit, so it opens a session
    from the factory inside the lock and commits before releasing it.

Invariants enforced:
    - Deliveries only against APPROVED quotations.
    - Cumulative delivered quantity per product never exceeds the quoted
      quantity (domain guard ``validate_delivery_quantities``).

Failure modes:
    - LockAcquisitionError: lock wait timed out; nothing was written.
    - QuotationNotFoundError / QuotationNotApprovedError.
    - InvalidDeliveryError / DeliveryQuantityExceededError from the guard.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from erp_kernel.domain.approval_values import UserId
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.delivery import (
    DeliveryLineItemInput,
    QuotationStatus,
    validate_delivery_quantities,
)
from erp_kernel.exceptions import QuotationNotApprovedError, QuotationNotFoundError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.delivery import (
    DeliveryLineItemModel,
    DeliveryModel,
    QuotationModel,
)
from erp_kernel.selectors.delivery_selector import DeliverySelector
from erp_kernel.services.document_lock import DocumentLockService

logger = get_logger("services.delivery")


class DeliveryCommandService:
    """Creates deliveries under the quotation's document lock."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lock_service: DocumentLockService,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._locks = lock_service
        self._clock = clock or SystemClock()

    def create_delivery(
        self,
        quotation_id: int,
        line_items: Sequence[DeliveryLineItemInput],
        delivered_by: UserId,
    ) -> int:
        """Validate and record a delivery; returns the committed delivery id."""
        with LogContext.bind(document=self._locks.lock_key(quotation_id), actor_id=delivered_by):
            return self._locks.execute_with_lock(
                quotation_id,
                lambda: self._create_locked(quotation_id, line_items, delivered_by),
            )

    def _create_locked(
        self,
        quotation_id: int,
        line_items: Sequence[DeliveryLineItemInput],
        delivered_by: UserId,
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

            delivered = DeliverySelector(session).delivered_quantities(quotation_id)
            validate_delivery_quantities(
                quotation.quoted_quantities(), delivered, line_items,
            )

            delivery = DeliveryModel(
                quotation_id=quotation_id,
                delivered_by_id=delivered_by,
                delivered_at=self._clock.now(),
                line_items=[
                    DeliveryLineItemModel(product_id=item.product_id, quantity=item.quantity)
                    for item in line_items
                ],
            )
            session.add(delivery)
            session.flush()
            delivery_id = delivery.id
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(
            "delivery_created",
            extra={
                "delivery_id": delivery_id,
                "quotation_id": quotation_id,
                "line_count": len(line_items),
            },
        )
        return delivery_id
