"""
ApprovalCommandService -- write-side entry point for approval workflows.

Responsibility:
    Orchestrates the load -> mutate -> save cycle around the
    ``ApprovalRequest`` aggregate: submission against the active chain
    template, per-level approve/reject, discussion comments, and the
    administrator's replace-all edit of a chain.  Queues completion events
    for entity handlers.

Architecture position:
    Kernel > Services.  May import from domain/, models/ (via repositories),
    db/.  The aggregate does all validation; this service only loads,
    delegates, saves, logs and queues events.

Invariants enforced:
    - One transition per load/save cycle, guarded by the aggregate version.
    - At most one PENDING request per document.
    - Flush only.  The caller owns commit, and calls
      ``publish_pending_events()`` before committing so handler writes land
      in the same transaction (``run_in_transaction`` does both).

Failure modes:
    - ChainTemplateNotFoundError / ApprovalChainNotConfiguredError on submit.
    - DuplicateApprovalRequestError when the document already has a pending
      request.
    - Every aggregate error from approve/reject/add_comment.
    - OptimisticLockError when another transaction saved first.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TypeVar

from sqlalchemy.orm import Session, sessionmaker

from erp_kernel.domain.approval import ApprovalRequest
from erp_kernel.domain.approval_values import (
    ApprovalCompletedEvent,
    ChainLevel,
    EntityType,
    UserId,
)
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.exceptions import DuplicateApprovalRequestError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.approval import ApprovalRequestModel
from erp_kernel.services.approval_repository import ApprovalRequestRepository
from erp_kernel.services.base import BaseService
from erp_kernel.services.chain_template_repository import (
    ApprovalChainTemplateRepository,
)
from erp_kernel.services.event_publisher import EventPublisher

logger = get_logger("services.approval_command")

T = TypeVar("T")


class ApprovalCommandService(BaseService[ApprovalRequestModel]):
    """Commands for approval requests and chain templates."""

    def __init__(
        self,
        session: Session,
        publisher: EventPublisher | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(session)
        self._publisher = publisher or EventPublisher()
        self._clock = clock or SystemClock()
        self._requests = ApprovalRequestRepository(session)
        self._templates = ApprovalChainTemplateRepository(session)
        self._pending_events: list[ApprovalCompletedEvent] = []

    @property
    def pending_events(self) -> tuple[ApprovalCompletedEvent, ...]:
        return tuple(self._pending_events)

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def submit(
        self,
        entity_type: EntityType,
        entity_id: int,
        entity_description: str | None,
        submitted_by: UserId,
    ) -> int:
        """Start approval for a document; returns the new request id."""
        template = self._templates.get_active_template(entity_type)

        existing = self._requests.find_pending_for_entity(entity_type, entity_id)
        if existing is not None:
            raise DuplicateApprovalRequestError(
                entity_type.value, entity_id, str(existing.id),
            )

        request = ApprovalRequest.create(
            entity_type,
            entity_id,
            entity_description,
            submitted_by,
            template,
            clock=self._clock,
        )
        self._requests.add(request)

        with LogContext.bind(approval_request_id=request.id, actor_id=submitted_by):
            logger.info(
                "approval_request_submitted",
                extra={
                    "entity_type": entity_type.value,
                    "entity_id": entity_id,
                    "total_levels": request.total_levels,
                    "template_id": template.id,
                },
            )
        return request.id

    def approve(
        self,
        request_id: int,
        approver_user_id: UserId,
        comments: str | None = None,
    ) -> int:
        """Approve at the current level."""
        request = self._requests.get(request_id)
        level = request.current_level

        request.approve(approver_user_id, comments, clock=self._clock)
        self._requests.save(request)

        with LogContext.bind(approval_request_id=request_id, actor_id=approver_user_id):
            if request.is_completed():
                logger.info(
                    "approval_request_approved",
                    extra={"level_order": level, "total_levels": request.total_levels},
                )
                self._queue_completion(request)
            else:
                logger.info(
                    "approval_level_approved",
                    extra={"level_order": level, "next_level": request.current_level},
                )
        return request.id

    def reject(
        self,
        request_id: int,
        approver_user_id: UserId,
        reason: str,
        comments: str | None = None,
    ) -> int:
        """Reject at the current level; the request becomes REJECTED."""
        request = self._requests.get(request_id)
        level = request.current_level

        request.reject(approver_user_id, reason, comments, clock=self._clock)
        self._requests.save(request)

        with LogContext.bind(approval_request_id=request_id, actor_id=approver_user_id):
            logger.info(
                "approval_request_rejected",
                extra={"level_order": level, "reason": reason},
            )
        self._queue_completion(request)
        return request.id

    def add_comment(self, request_id: int, commenter_user_id: UserId, text: str) -> int:
        request = self._requests.get(request_id)
        request.add_comment(commenter_user_id, text, clock=self._clock)
        self._requests.save(request)
        logger.info(
            "approval_comment_added",
            extra={"request_id": request_id, "commenter_id": commenter_user_id},
        )
        return request.id

    # ------------------------------------------------------------------
    # Chain administration
    # ------------------------------------------------------------------

    def update_chain_levels(self, template_id: int, levels: Iterable[ChainLevel]) -> int:
        """Replace every level of a template. In-flight requests keep their snapshot."""
        template = self._templates.get(template_id)
        template.replace_all_levels(levels)
        self._templates.save(template)
        return template.id

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def publish_pending_events(self) -> int:
        """Dispatch queued completion events in this session; returns the count."""
        events, self._pending_events = self._pending_events, []
        for event in events:
            self._publisher.publish(event, self.session)
        return len(events)

    def _queue_completion(self, request: ApprovalRequest) -> None:
        event = request.completion_event()
        if event is not None:
            self._pending_events.append(event)


def run_in_transaction(
    session_factory: sessionmaker[Session],
    action: Callable[[ApprovalCommandService], T],
    *,
    publisher: EventPublisher | None = None,
    clock: Clock | None = None,
) -> T:
    """Run ``action`` in a fresh session, publish its events, then commit.

    Rolls back and re-raises on any failure, including handler failures.

    Usage:
        request_id = run_in_transaction(
            factory, lambda svc: svc.approve(request_id, approver_user_id=7),
        )
    """
    session = session_factory()
    try:
        service = ApprovalCommandService(session, publisher=publisher, clock=clock)
        result = action(service)
        service.publish_pending_events()
        session.commit()
        return result
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
