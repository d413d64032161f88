"""
Typed Exception Hierarchy for the ERP Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval screens need to tell "not your turn" apart from "no permission",
and form errors apart from conflicts.  Parsing message strings for that is
fragile, so every error is:
  1. A TYPED exception class (catch by type, not message)
  2. Tagged with a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (not just a message string)

Example - RIGHT way:
    try:
        service.approve(request_id, approver_user_id=7)
    except OutOfOrderApprovalError as e:
        api_response(code=e.code, current_level=e.current_level)
    except UnauthorizedApproverError as e:
        api_response(status=403, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ErpKernelError:

    ErpKernelError (base)
    |
    +-- ApprovalError
    |   +-- ApprovalChainNotConfiguredError
    |   +-- InvalidChainConfigurationError
    |   +-- ApprovalAlreadyCompletedError
    |   +-- UnauthorizedApproverError
    |   +-- OutOfOrderApprovalError
    |   +-- MissingRejectionReasonError
    |   +-- BlankCommentError
    |   +-- LevelAlreadyDecidedError
    |   +-- ApprovalNotFoundError
    |   +-- ChainTemplateNotFoundError
    |   +-- DuplicateApprovalRequestError
    |   +-- CorruptApprovalStateError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- LockAcquisitionError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- DeliveryError
    |   +-- InvalidDeliveryError
    |   +-- DeliveryQuantityExceededError
    |   +-- QuotationNotFoundError
    |   +-- InvalidQuotationError
    |   +-- QuotationNotApprovedError
    |   +-- InvalidQuotationStateError
    |
    +-- InvoiceError
        +-- InvalidInvoiceError
        +-- InvoiceQuantityExceededError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                           | When Raised
-------------|--------------------------------|-----------------------------------
Approval     | APPROVAL_CHAIN_NOT_CONFIGURED  | Submitting against an empty chain
             | INVALID_CHAIN_CONFIGURATION    | Level orders not 1..N contiguous
             | APPROVAL_ALREADY_COMPLETED     | Deciding on a terminal request
             | UNAUTHORIZED_APPROVER          | Actor is not on the chain at all
             | OUT_OF_ORDER_APPROVAL          | Actor is on the chain, not current
             | MISSING_REJECTION_REASON       | Blank rejection reason
             | BLANK_COMMENT                  | Blank discussion comment
             | LEVEL_ALREADY_DECIDED          | Re-deciding a decided level slot
             | APPROVAL_NOT_FOUND             | Request ID doesn't exist
             | CHAIN_TEMPLATE_NOT_FOUND       | No active template for the type
             | DUPLICATE_APPROVAL_REQUEST     | Document already has a pending one
             | CORRUPT_APPROVAL_STATE         | Persisted state breaks invariants
-------------|--------------------------------|-----------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT       | Stale version at save time
             | LOCK_ACQUISITION_FAILED        | Document lock wait timed out
-------------|--------------------------------|-----------------------------------
Immutability | IMMUTABILITY_VIOLATION         | Editing append-only audit rows
-------------|--------------------------------|-----------------------------------
Delivery     | INVALID_DELIVERY               | Empty / duplicate / non-positive
             | DELIVERY_QUANTITY_EXCEEDED     | Over the remaining quoted quantity
             | QUOTATION_NOT_FOUND            | Quotation ID doesn't exist
             | INVALID_QUOTATION              | Empty / duplicate / non-positive
             | QUOTATION_NOT_APPROVED         | Quotation approval not finished
             | INVALID_QUOTATION_STATE        | Submitting a pending/approved quote
-------------|--------------------------------|-----------------------------------
Invoice      | INVALID_INVOICE                | Empty / duplicate / non-positive
             | INVOICE_QUANTITY_EXCEEDED      | Over delivered minus invoiced

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Field-level form errors: MissingRejectionReasonError, BlankCommentError.
2. Permission errors: UnauthorizedApproverError.
3. "Not your turn": OutOfOrderApprovalError.
4. User-visible no-op conflicts: ApprovalAlreadyCompletedError.
5. ConcurrencyError -> reload and retry, or tell the user the request
   changed underneath them.  Nothing in the kernel retries automatically.
===============================================================================
"""


class ErpKernelError(Exception):
    """
    Base exception for all ERP kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ERP_KERNEL_ERROR"


# Approval-related exceptions


class ApprovalError(ErpKernelError):
    """Base exception for approval workflow errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalChainNotConfiguredError(ApprovalError):
    """A document type with no configured approvers cannot be submitted."""

    code: str = "APPROVAL_CHAIN_NOT_CONFIGURED"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(
            f"Approval chain for {entity_type} has no levels configured"
        )


class InvalidChainConfigurationError(ApprovalError):
    """Chain level orders do not form a contiguous 1-based sequence."""

    code: str = "INVALID_CHAIN_CONFIGURATION"

    def __init__(self, level_orders: list[int], reason: str):
        self.level_orders = level_orders
        self.reason = reason
        super().__init__(
            f"Invalid approval chain levels {level_orders}: {reason}"
        )


class ChainTemplateMismatchError(InvalidChainConfigurationError):
    """Template belongs to a different entity type than the request."""

    code: str = "CHAIN_TEMPLATE_MISMATCH"

    def __init__(self, template_entity_type: str, entity_type: str):
        self.template_entity_type = template_entity_type
        self.entity_type = entity_type
        self.level_orders = []
        self.reason = f"template is for {template_entity_type}"
        ApprovalError.__init__(
            self,
            f"Cannot create a {entity_type} approval request from a "
            f"{template_entity_type} chain template",
        )


class ApprovalAlreadyCompletedError(ApprovalError):
    """Action attempted on an approval request in a terminal state."""

    code: str = "APPROVAL_ALREADY_COMPLETED"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Approval request {request_id} is already completed "
            f"(status: {status})"
        )


class UnauthorizedApproverError(ApprovalError):
    """Actor is not configured as an approver at any level of the chain."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, request_id: str, user_id: int):
        self.request_id = request_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} is not authorized to decide on "
            f"approval request {request_id}"
        )


class OutOfOrderApprovalError(ApprovalError):
    """Actor is a configured approver, but not at the current level."""

    code: str = "OUT_OF_ORDER_APPROVAL"

    def __init__(self, request_id: str, user_id: int, current_level: int):
        self.request_id = request_id
        self.user_id = user_id
        self.current_level = current_level
        super().__init__(
            f"User {user_id} cannot decide on approval request {request_id} "
            f"out of order: current level is {current_level}"
        )


class MissingRejectionReasonError(ApprovalError):
    """A rejection must state a non-blank reason."""

    code: str = "MISSING_REJECTION_REASON"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"Rejection reason is required for approval request {request_id}"
        )


class BlankCommentError(ApprovalError):
    """Comment text is empty or whitespace."""

    code: str = "BLANK_COMMENT"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"Comment text cannot be blank (approval request {request_id})"
        )


class LevelAlreadyDecidedError(ApprovalError):
    """A level decision slot is immutable once decided."""

    code: str = "LEVEL_ALREADY_DECIDED"

    def __init__(self, level_order: int, decision: str):
        self.level_order = level_order
        self.decision = decision
        super().__init__(
            f"Level {level_order} has already been decided ({decision})"
        )


class ApprovalNotFoundError(ApprovalError):
    """Approval request does not exist."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class ChainTemplateNotFoundError(ApprovalError):
    """No (active) approval chain template matches the lookup."""

    code: str = "CHAIN_TEMPLATE_NOT_FOUND"

    def __init__(self, lookup: str):
        self.lookup = lookup
        super().__init__(f"Approval chain template not found: {lookup}")


class DuplicateApprovalRequestError(ApprovalError):
    """The document already has a pending approval request."""

    code: str = "DUPLICATE_APPROVAL_REQUEST"

    def __init__(self, entity_type: str, entity_id: int, existing_request_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.existing_request_id = existing_request_id
        super().__init__(
            f"{entity_type} {entity_id} already has a pending approval "
            f"request ({existing_request_id})"
        )


class CorruptApprovalStateError(ApprovalError):
    """Persisted approval state violates the aggregate invariants."""

    code: str = "CORRUPT_APPROVAL_STATE"

    def __init__(self, request_id: str, reason: str):
        self.request_id = request_id
        self.reason = reason
        super().__init__(
            f"Approval request {request_id} has corrupt state: {reason}"
        )


# Concurrency-related exceptions


class ConcurrencyError(ErpKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class LockAcquisitionError(ConcurrencyError):
    """Could not acquire a document lock within the timeout."""

    code: str = "LOCK_ACQUISITION_FAILED"

    def __init__(self, lock_key: str, timeout_seconds: float):
        self.lock_key = lock_key
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Another operation is in progress for {lock_key} "
            f"(waited {timeout_seconds}s). Please try again."
        )


# Immutability-related exceptions


class ImmutabilityError(ErpKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Approval history and comment rows are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Delivery-related exceptions


class DeliveryError(ErpKernelError):
    """Base exception for delivery errors."""

    code: str = "DELIVERY_ERROR"


class InvalidDeliveryError(DeliveryError):
    """Delivery line items are structurally invalid."""

    code: str = "INVALID_DELIVERY"

    def __init__(self, reason: str, product_id: int | None = None):
        self.reason = reason
        self.product_id = product_id
        super().__init__(reason)


class DeliveryQuantityExceededError(DeliveryError):
    """Requested quantity exceeds the remaining deliverable quantity."""

    code: str = "DELIVERY_QUANTITY_EXCEEDED"

    def __init__(
        self,
        product_id: int,
        requested: str,
        remaining: str,
        quoted: str,
        delivered: str,
    ):
        self.product_id = product_id
        self.requested = requested
        self.remaining = remaining
        self.quoted = quoted
        self.delivered = delivered
        super().__init__(
            f"Delivery quantity ({requested}) exceeds remaining deliverable "
            f"quantity ({remaining}) for product {product_id}. "
            f"Quotation quantity: {quoted}, already delivered: {delivered}"
        )


class QuotationNotFoundError(DeliveryError):
    """Quotation does not exist."""

    code: str = "QUOTATION_NOT_FOUND"

    def __init__(self, quotation_id: int):
        self.quotation_id = quotation_id
        super().__init__(f"Quotation not found: {quotation_id}")


class InvalidQuotationError(DeliveryError):
    """Quotation line items are structurally invalid."""

    code: str = "INVALID_QUOTATION"

    def __init__(self, reason: str, product_id: int | None = None):
        self.reason = reason
        self.product_id = product_id
        super().__init__(reason)


class QuotationNotApprovedError(DeliveryError):
    """Deliveries and invoices can only be recorded against an approved quotation."""

    code: str = "QUOTATION_NOT_APPROVED"

    def __init__(self, quotation_id: int, status: str):
        self.quotation_id = quotation_id
        self.status = status
        super().__init__(
            f"Quotation {quotation_id} is not approved (status: {status})"
        )


class InvalidQuotationStateError(DeliveryError):
    """Quotation is not in a status that allows the requested action."""

    code: str = "INVALID_QUOTATION_STATE"

    def __init__(self, quotation_id: int, status: str, action: str):
        self.quotation_id = quotation_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} quotation {quotation_id} in status {status}"
        )


# Invoice-related exceptions


class InvoiceError(ErpKernelError):
    """Base exception for invoice errors."""

    code: str = "INVOICE_ERROR"


class InvalidInvoiceError(InvoiceError):
    """Invoice line items are structurally invalid."""

    code: str = "INVALID_INVOICE"

    def __init__(self, reason: str, product_id: int | None = None):
        self.reason = reason
        self.product_id = product_id
        super().__init__(reason)


class InvoiceQuantityExceededError(InvoiceError):
    """Requested quantity exceeds what has been delivered but not yet invoiced."""

    code: str = "INVOICE_QUANTITY_EXCEEDED"

    def __init__(
        self,
        product_id: int,
        requested: str,
        invoiceable: str,
        delivered: str,
        invoiced: str,
    ):
        self.product_id = product_id
        self.requested = requested
        self.invoiceable = invoiceable
        self.delivered = delivered
        self.invoiced = invoiced
        super().__init__(
            f"Invoice quantity ({requested}) exceeds invoiceable quantity "
            f"({invoiceable}) for product {product_id}. "
            f"Delivered: {delivered}, already invoiced: {invoiced}"
        )
