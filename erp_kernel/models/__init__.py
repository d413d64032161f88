"""SQLAlchemy ORM models for the ERP kernel."""

from erp_kernel.models.approval import (
    ApprovalChainLevelModel,
    ApprovalChainTemplateModel,
    ApprovalCommentModel,
    ApprovalHistoryModel,
    ApprovalLevelDecisionModel,
    ApprovalRequestModel,
)
from erp_kernel.models.delivery import (
    DeliveryLineItemModel,
    DeliveryModel,
    QuotationLineItemModel,
    QuotationModel,
)
from erp_kernel.models.invoice import InvoiceLineItemModel, InvoiceModel

__all__ = [
    # Approval chain configuration
    "ApprovalChainTemplateModel",
    "ApprovalChainLevelModel",
    # Approval requests
    "ApprovalRequestModel",
    "ApprovalLevelDecisionModel",
    "ApprovalHistoryModel",
    "ApprovalCommentModel",
    # Documents
    "QuotationModel",
    "QuotationLineItemModel",
    "DeliveryModel",
    "DeliveryLineItemModel",
    "InvoiceModel",
    "InvoiceLineItemModel",
]
