"""Services for the ERP kernel (write side)."""

from erp_kernel.services.approval_command_service import (
    ApprovalCommandService,
    run_in_transaction,
)
from erp_kernel.services.approval_repository import ApprovalRequestRepository
from erp_kernel.services.chain_template_repository import (
    ApprovalChainTemplateRepository,
)
from erp_kernel.services.delivery_service import DeliveryCommandService
from erp_kernel.services.document_lock import DocumentLockService
from erp_kernel.services.event_publisher import EventPublisher
from erp_kernel.services.invoice_service import InvoiceCommandService
from erp_kernel.services.quotation_approval_handler import QuotationApprovalHandler
from erp_kernel.services.quotation_service import QuotationService

__all__ = [
    "ApprovalChainTemplateRepository",
    "ApprovalCommandService",
    "ApprovalRequestRepository",
    "DeliveryCommandService",
    "DocumentLockService",
    "EventPublisher",
    "InvoiceCommandService",
    "QuotationApprovalHandler",
    "QuotationService",
    "run_in_transaction",
]
