"""
Module: erp_kernel.selectors.delivery_selector
Responsibility: Read-only delivery totals per quotation.  The delivery guard
    compares these against quoted quantities.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select

from erp_kernel.models.delivery import DeliveryLineItemModel, DeliveryModel
from erp_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class DeliveryDTO:
    id: int
    quotation_id: int
    delivered_by: int
    delivered_at: datetime
    quantities: dict[int, Decimal]


class DeliverySelector(BaseSelector[DeliveryModel]):

    def delivered_quantities(self, quotation_id: int) -> dict[int, Decimal]:
        """Sum of delivered quantity per product across all deliveries."""
        rows = self.session.execute(
            select(
                DeliveryLineItemModel.product_id,
                func.sum(DeliveryLineItemModel.quantity),
            )
            .join(DeliveryModel, DeliveryLineItemModel.delivery_id == DeliveryModel.id)
            .where(DeliveryModel.quotation_id == quotation_id)
            .group_by(DeliveryLineItemModel.product_id)
        ).all()
        return {product_id: Decimal(total) for product_id, total in rows}

    def list_for_quotation(self, quotation_id: int) -> list[DeliveryDTO]:
        models = self.session.execute(
            select(DeliveryModel)
            .where(DeliveryModel.quotation_id == quotation_id)
            .order_by(DeliveryModel.delivered_at, DeliveryModel.id)
        ).scalars().all()
        return [
            DeliveryDTO(
                id=m.id,
                quotation_id=m.quotation_id,
                delivered_by=m.delivered_by_id,
                delivered_at=m.delivered_at,
                quantities={line.product_id: line.quantity for line in m.line_items},
            )
            for m in models
        ]
