"""
ERP Kernel - multi-level sequential approvals

A reusable approval workflow for business documents with:
- Ordered, named approver levels per document type
- Strict per-level authorization
- Append-only audit history and discussion comments
- Optimistic versioning on every save
- Per-document locking for cumulative-quantity invariants
"""

__version__ = "0.1.0"
