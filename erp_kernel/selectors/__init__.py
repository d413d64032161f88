"""Read-only query selectors."""

from erp_kernel.selectors.approval_selector import (
    ApprovalRequestSummary,
    ApprovalSelector,
    ChainTemplateSummary,
)
from erp_kernel.selectors.base import BaseSelector, Page, PageMeta
from erp_kernel.selectors.delivery_selector import DeliveryDTO, DeliverySelector
from erp_kernel.selectors.invoice_selector import InvoiceDTO, InvoiceSelector

__all__ = [
    "BaseSelector",
    "Page",
    "PageMeta",
    "ApprovalSelector",
    "ApprovalRequestSummary",
    "ChainTemplateSummary",
    "DeliverySelector",
    "DeliveryDTO",
    "InvoiceSelector",
    "InvoiceDTO",
]
