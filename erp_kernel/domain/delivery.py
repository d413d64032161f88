"""
Delivery quantity guard (``erp_kernel.domain.delivery``).

Responsibility
--------------
Pure validation of a proposed delivery against the quotation it ships
from: the cumulative delivered quantity of every product must never
exceed the quoted quantity.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  The caller
(``DeliveryCommandService``) reads the quoted and already-delivered
totals while holding the per-quotation lock and passes them in.

Invariants enforced
-------------------
* At least one line item; no product appears twice.
* Every quantity is strictly positive.
* Every product belongs to the quotation.
* ``requested <= quoted - already_delivered`` per product.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from erp_kernel.exceptions import (
    DeliveryQuantityExceededError,
    InvalidDeliveryError,
)


class QuotationStatus(str, Enum):
    """Quotation lifecycle as driven by its approval request."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class QuotationLineItemInput:
    product_id: int
    quantity: Decimal


@dataclass(frozen=True)
class DeliveryLineItemInput:
    """One product and quantity on a proposed delivery."""

    product_id: int
    quantity: Decimal


def validate_delivery_quantities(
    quoted: Mapping[int, Decimal],
    delivered: Mapping[int, Decimal],
    items: Sequence[DeliveryLineItemInput],
) -> None:
    """Check ``items`` against quoted and already-delivered totals.

    Args:
        quoted: Quoted quantity per product ID.
        delivered: Quantity already delivered per product ID (missing
            products count as zero).
        items: Proposed delivery line items.

    Raises:
        InvalidDeliveryError: structural problem with the line items.
        DeliveryQuantityExceededError: a product would be over-delivered.
    """
    if not items:
        raise InvalidDeliveryError("Delivery must have at least one line item")

    seen: set[int] = set()
    for item in items:
        if item.product_id in seen:
            raise InvalidDeliveryError(
                f"Duplicate product in delivery line items: {item.product_id}",
                product_id=item.product_id,
            )
        seen.add(item.product_id)

        if item.quantity <= 0:
            raise InvalidDeliveryError(
                f"Delivery quantity must be positive for product "
                f"{item.product_id}",
                product_id=item.product_id,
            )

        if item.product_id not in quoted:
            raise InvalidDeliveryError(
                f"Product {item.product_id} is not part of the quotation",
                product_id=item.product_id,
            )

        quoted_qty = quoted[item.product_id]
        delivered_qty = delivered.get(item.product_id, Decimal("0"))
        remaining = quoted_qty - delivered_qty
        if item.quantity > remaining:
            raise DeliveryQuantityExceededError(
                product_id=item.product_id,
                requested=str(item.quantity),
                remaining=str(remaining),
                quoted=str(quoted_qty),
                delivered=str(delivered_qty),
            )
