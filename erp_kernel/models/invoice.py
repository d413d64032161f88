"""
Module: erp_kernel.models.invoice
Responsibility: ORM persistence for invoices billed against a quotation.

Architecture position: Kernel > Models.  Invoices reference quotations
    directly, not individual deliveries; the invoiceable quantity is the
    quotation-wide delivered total minus the invoiced total.

Invariants enforced:
    - One invoice line per product per invoice.
    - Quantities are strictly positive (CHECK constraint).

The cumulative limit is enforced by InvoiceCommandService under the
per-quotation lock.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import Base, IdType, TrackedBase, UTCDateTime


class InvoiceModel(TrackedBase):
    __tablename__ = "invoices"

    quotation_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("quotations.id"), nullable=False, index=True,
    )
    invoiced_by_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    invoiced_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    line_items: Mapped[list["InvoiceLineItemModel"]] = relationship(
        "InvoiceLineItemModel",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.id} quotation={self.quotation_id}>"


class InvoiceLineItemModel(Base):
    __tablename__ = "invoice_line_items"

    __table_args__ = (
        UniqueConstraint(
            "invoice_id", "product_id",
            name="uq_invoice_line_items_product",
        ),
        CheckConstraint("quantity > 0", name="ck_invoice_line_items_quantity"),
    )

    invoice_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("invoices.id"), nullable=False,
    )
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    invoice: Mapped[InvoiceModel] = relationship(
        "InvoiceModel", back_populates="line_items",
    )
