"""
Module: erp_kernel.selectors.invoice_selector
Responsibility: Read-only invoice totals per quotation, the "already
    invoiced" side of the invoice guard.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select

from erp_kernel.models.invoice import InvoiceLineItemModel, InvoiceModel
from erp_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class InvoiceDTO:
    id: int
    quotation_id: int
    invoiced_by: int
    invoiced_at: datetime
    quantities: dict[int, Decimal]


class InvoiceSelector(BaseSelector[InvoiceModel]):

    def invoiced_quantities(self, quotation_id: int) -> dict[int, Decimal]:
        """Sum of invoiced quantity per product across all invoices."""
        rows = self.session.execute(
            select(
                InvoiceLineItemModel.product_id,
                func.sum(InvoiceLineItemModel.quantity),
            )
            .join(InvoiceModel, InvoiceLineItemModel.invoice_id == InvoiceModel.id)
            .where(InvoiceModel.quotation_id == quotation_id)
            .group_by(InvoiceLineItemModel.product_id)
        ).all()
        return {product_id: Decimal(total) for product_id, total in rows}

    def list_for_quotation(self, quotation_id: int) -> list[InvoiceDTO]:
        models = self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.quotation_id == quotation_id)
            .order_by(InvoiceModel.invoiced_at, InvoiceModel.id)
        ).scalars().all()
        return [
            InvoiceDTO(
                id=m.id,
                quotation_id=m.quotation_id,
                invoiced_by=m.invoiced_by_id,
                invoiced_at=m.invoiced_at,
                quantities={line.product_id: line.quantity for line in m.line_items},
            )
            for m in models
        ]
