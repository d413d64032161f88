"""
Pure domain layer.

This module contains the approval state machine, its value objects and
the delivery and invoice quantity guards, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time
- I/O
"""

from erp_kernel.domain.approval import ApprovalRequest, ApprovalRequestSnapshot
from erp_kernel.domain.approval_chain import (
    ApprovalChainTemplate,
    ApprovalChainTemplateProvider,
    validate_level_orders,
)
from erp_kernel.domain.approval_values import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalCommentEntry,
    ApprovalCompletedEvent,
    ApprovalHistoryEntry,
    ApprovalLevelDecision,
    ApprovalStatus,
    ChainLevel,
    DecisionStatus,
    EntityType,
    HistoryAction,
    UserId,
)
from erp_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from erp_kernel.domain.delivery import (
    DeliveryLineItemInput,
    QuotationLineItemInput,
    QuotationStatus,
    validate_delivery_quantities,
)
from erp_kernel.domain.invoice import (
    InvoiceLineItemInput,
    invoiceable_quantity,
    validate_invoice_quantities,
)

__all__ = [
    # Aggregate
    "ApprovalRequest",
    "ApprovalRequestSnapshot",
    # Chain configuration
    "ApprovalChainTemplate",
    "ApprovalChainTemplateProvider",
    "ChainLevel",
    "validate_level_orders",
    # Values
    "APPROVAL_TRANSITIONS",
    "TERMINAL_APPROVAL_STATUSES",
    "ApprovalCommentEntry",
    "ApprovalCompletedEvent",
    "ApprovalHistoryEntry",
    "ApprovalLevelDecision",
    "ApprovalStatus",
    "DecisionStatus",
    "EntityType",
    "HistoryAction",
    "UserId",
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Delivery
    "DeliveryLineItemInput",
    "QuotationLineItemInput",
    "QuotationStatus",
    "validate_delivery_quantities",
    # Invoice
    "InvoiceLineItemInput",
    "invoiceable_quantity",
    "validate_invoice_quantities",
]
