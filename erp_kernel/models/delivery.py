"""
Module: erp_kernel.models.delivery
Responsibility: ORM persistence for quotations (the document an approval
    chain gates) and the deliveries shipped against them.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - One quotation line per product: UNIQUE(quotation_id, product_id).
    - One delivery line per product per delivery.
    - Quantities are strictly positive (CHECK constraints).

Cumulative quantity limits span many delivery rows and cannot be a
table constraint; DeliveryCommandService enforces them under the
per-quotation lock.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import Base, IdType, TrackedBase, UTCDateTime


class QuotationModel(TrackedBase):
    """Quotation header. ``status`` follows its approval request."""

    __tablename__ = "quotations"

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING', 'APPROVED', 'REJECTED')",
            name="ck_quotations_valid_status",
        ),
    )

    project_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")

    line_items: Mapped[list["QuotationLineItemModel"]] = relationship(
        "QuotationLineItemModel",
        back_populates="quotation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<QuotationModel {self.id} status={self.status}>"

    def quoted_quantities(self) -> dict[int, Decimal]:
        return {line.product_id: line.quantity for line in self.line_items}


class QuotationLineItemModel(Base):
    __tablename__ = "quotation_line_items"

    __table_args__ = (
        UniqueConstraint(
            "quotation_id", "product_id",
            name="uq_quotation_line_items_product",
        ),
        CheckConstraint("quantity > 0", name="ck_quotation_line_items_quantity"),
    )

    quotation_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("quotations.id"), nullable=False,
    )
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    quotation: Mapped[QuotationModel] = relationship(
        "QuotationModel", back_populates="line_items",
    )


class DeliveryModel(TrackedBase):
    """A shipment of some quoted products."""

    __tablename__ = "deliveries"

    quotation_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("quotations.id"), nullable=False, index=True,
    )
    delivered_by_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    delivered_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    line_items: Mapped[list["DeliveryLineItemModel"]] = relationship(
        "DeliveryLineItemModel",
        back_populates="delivery",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<DeliveryModel {self.id} quotation={self.quotation_id}>"


class DeliveryLineItemModel(Base):
    __tablename__ = "delivery_line_items"

    __table_args__ = (
        UniqueConstraint(
            "delivery_id", "product_id",
            name="uq_delivery_line_items_product",
        ),
        CheckConstraint("quantity > 0", name="ck_delivery_line_items_quantity"),
    )

    delivery_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("deliveries.id"), nullable=False,
    )
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    delivery: Mapped[DeliveryModel] = relationship(
        "DeliveryModel", back_populates="line_items",
    )
