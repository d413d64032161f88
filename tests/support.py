"""Shared test users, chain levels and line-item builders."""

from decimal import Decimal

from sqlalchemy.orm import Session

from erp_kernel.domain.approval_values import ChainLevel
from erp_kernel.domain.delivery import (
    DeliveryLineItemInput,
    QuotationLineItemInput,
    QuotationStatus,
)
from erp_kernel.domain.invoice import InvoiceLineItemInput
from erp_kernel.models.delivery import QuotationLineItemModel, QuotationModel

# Approvers U1..U3 sit at levels 1..3 of the default chain.
SUBMITTER = 100
U1 = 101
U2 = 102
U3 = 103
OUTSIDER = 999

DEFAULT_LEVELS = (
    ChainLevel(1, "Team Lead", U1),
    ChainLevel(2, "Department Head", U2),
    ChainLevel(3, "Executive", U3),
)


def quotation_lines(quantities: dict[int, str]) -> list[QuotationLineItemInput]:
    return [
        QuotationLineItemInput(product_id, Decimal(qty))
        for product_id, qty in quantities.items()
    ]


def delivery_lines(quantities: dict[int, str]) -> list[DeliveryLineItemInput]:
    return [
        DeliveryLineItemInput(product_id, Decimal(qty))
        for product_id, qty in quantities.items()
    ]


def invoice_lines(quantities: dict[int, str]) -> list[InvoiceLineItemInput]:
    return [
        InvoiceLineItemInput(product_id, Decimal(qty))
        for product_id, qty in quantities.items()
    ]


def insert_quotation(
    session: Session,
    quantities: dict[int, Decimal] | None = None,
    status: QuotationStatus = QuotationStatus.DRAFT,
    title: str = "Site survey",
) -> int:
    """Insert a quotation with one line per product; flushes, returns the id."""
    quantities = quantities or {1: Decimal("10")}
    quotation = QuotationModel(
        title=title,
        status=status.value,
        line_items=[
            QuotationLineItemModel(product_id=product_id, quantity=Decimal(qty))
            for product_id, qty in quantities.items()
        ],
    )
    session.add(quotation)
    session.flush()
    return quotation.id
