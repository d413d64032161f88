"""
Invoice quantity guard (``erp_kernel.domain.invoice``).

Responsibility
--------------
Pure validation of a proposed invoice against what has actually shipped:
a product can only be invoiced up to its delivered quantity, less
whatever earlier invoices already billed.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  ``InvoiceCommandService`` reads
the quoted, delivered and invoiced totals under the same per-quotation
lock that deliveries take and passes them in.

Invariants enforced
-------------------
* At least one line item; no product appears twice.
* Every quantity is strictly positive.
* Every product belongs to the quotation.
* ``requested <= delivered - already_invoiced`` per product.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from erp_kernel.exceptions import (
    InvalidInvoiceError,
    InvoiceQuantityExceededError,
)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class InvoiceLineItemInput:
    """One product and quantity on a proposed invoice."""

    product_id: int
    quantity: Decimal


def invoiceable_quantity(
    product_id: int,
    delivered: Mapping[int, Decimal],
    invoiced: Mapping[int, Decimal],
) -> Decimal:
    return delivered.get(product_id, _ZERO) - invoiced.get(product_id, _ZERO)


def validate_invoice_quantities(
    quoted: Mapping[int, Decimal],
    delivered: Mapping[int, Decimal],
    invoiced: Mapping[int, Decimal],
    items: Sequence[InvoiceLineItemInput],
) -> None:
    """Check ``items`` against delivered and already-invoiced totals.

    Args:
        quoted: Quoted quantity per product ID; only the keys are used,
            to reject products that are not on the quotation.
        delivered: Quantity delivered so far per product ID.
        invoiced: Quantity already invoiced per product ID.
        items: Proposed invoice line items.

    Missing products in ``delivered`` or ``invoiced`` count as zero, so a
    quoted product with nothing shipped yet cannot be invoiced at all.

    Raises:
        InvalidInvoiceError: structural problem with the line items.
        InvoiceQuantityExceededError: a product would be over-invoiced.
    """
    if not items:
        raise InvalidInvoiceError("Invoice must have at least one line item")

    seen: set[int] = set()
    for item in items:
        if item.product_id in seen:
            raise InvalidInvoiceError(
                f"Duplicate product in invoice line items: {item.product_id}",
                product_id=item.product_id,
            )
        seen.add(item.product_id)

        if item.quantity <= 0:
            raise InvalidInvoiceError(
                f"Invoice quantity must be positive for product "
                f"{item.product_id}",
                product_id=item.product_id,
            )

        if item.product_id not in quoted:
            raise InvalidInvoiceError(
                f"Product {item.product_id} is not part of the quotation",
                product_id=item.product_id,
            )

        available = invoiceable_quantity(item.product_id, delivered, invoiced)
        if item.quantity > available:
            raise InvoiceQuantityExceededError(
                product_id=item.product_id,
                requested=str(item.quantity),
                invoiceable=str(available),
                delivered=str(delivered.get(item.product_id, _ZERO)),
                invoiced=str(invoiced.get(item.product_id, _ZERO)),
            )
