"""
Tests for ApprovalCommandService.

Covers submission against the active chain, the approve/reject cycle
through the repository, completion events reaching the quotation handler,
chain edits that must not reach in-flight requests, and the
``run_in_transaction`` commit/rollback wrapper.
"""

import pytest

from erp_kernel.domain.approval_values import (
    ApprovalCompletedEvent,
    ApprovalStatus,
    ChainLevel,
    DecisionStatus,
    EntityType,
    HistoryAction,
)
from erp_kernel.domain.delivery import QuotationStatus
from erp_kernel.exceptions import (
    ApprovalChainNotConfiguredError,
    ApprovalNotFoundError,
    ChainTemplateNotFoundError,
    DuplicateApprovalRequestError,
    MissingRejectionReasonError,
    OutOfOrderApprovalError,
)
from erp_kernel.models.delivery import QuotationModel
from erp_kernel.selectors.approval_selector import ApprovalSelector
from erp_kernel.services.approval_command_service import (
    ApprovalCommandService,
    run_in_transaction,
)
from erp_kernel.services.approval_repository import ApprovalRequestRepository
from erp_kernel.services.chain_template_repository import (
    ApprovalChainTemplateRepository,
)
from erp_kernel.services.event_publisher import EventPublisher
from erp_kernel.services.quotation_approval_handler import QuotationApprovalHandler
from tests.support import SUBMITTER, U1, U2, U3, insert_quotation


def _submit(service, entity_id, entity_type=EntityType.QUOTATION):
    return service.submit(entity_type, entity_id, f"doc {entity_id}", SUBMITTER)


# =============================================================================
# Submission
# =============================================================================


class TestSubmit:

    def test_submit_creates_pending_request(self, approval_service, quotation_chain, session):
        request_id = _submit(approval_service, 1)

        request = ApprovalRequestRepository(session).get(request_id)
        assert request.status == ApprovalStatus.PENDING
        assert request.total_levels == 3
        assert request.entity_description == "doc 1"

    def test_submit_logs_with_request_context(
        self, approval_service, quotation_chain, captured_logs,
    ):
        request_id = _submit(approval_service, 1)

        record = next(
            r for r in captured_logs() if r["message"] == "approval_request_submitted"
        )
        assert record["approval_request_id"] == str(request_id)
        assert record["actor_id"] == str(SUBMITTER)
        assert record["total_levels"] == 3

    def test_no_template_for_entity_type(self, approval_service):
        with pytest.raises(ChainTemplateNotFoundError):
            _submit(approval_service, 1, EntityType.PURCHASE_ORDER)

    def test_template_without_levels(self, approval_service, session, make_template):
        ApprovalChainTemplateRepository(session).add(
            make_template(EntityType.PURCHASE_ORDER, levels=())
        )

        with pytest.raises(ApprovalChainNotConfiguredError):
            _submit(approval_service, 1, EntityType.PURCHASE_ORDER)

    def test_inactive_template_is_not_used(self, approval_service, session, make_template):
        repo = ApprovalChainTemplateRepository(session)
        template = repo.add(make_template())
        template.active = False
        repo.save(template)

        with pytest.raises(ChainTemplateNotFoundError):
            _submit(approval_service, 1)

    def test_second_pending_request_is_rejected(self, approval_service, quotation_chain):
        first = _submit(approval_service, 1)

        with pytest.raises(DuplicateApprovalRequestError) as exc_info:
            _submit(approval_service, 1)
        assert exc_info.value.existing_request_id == str(first)

    def test_resubmission_after_rejection(self, approval_service, quotation_chain):
        first = _submit(approval_service, 1)
        approval_service.reject(first, U1, "fix the totals")

        second = _submit(approval_service, 1)

        assert second != first


# =============================================================================
# Decisions
# =============================================================================


class TestDecisions:

    def test_approve_through_all_levels(
        self, approval_service, quotation_chain, session, captured_logs,
    ):
        request_id = _submit(approval_service, 1)

        approval_service.approve(request_id, U1)
        approval_service.approve(request_id, U2, "fine by me")
        approval_service.approve(request_id, U3)

        request = ApprovalRequestRepository(session).get(request_id)
        assert request.status == ApprovalStatus.APPROVED
        assert request.version == 3
        messages = [r["message"] for r in captured_logs()]
        assert messages.count("approval_level_approved") == 2
        assert messages.count("approval_request_approved") == 1

    def test_completion_event_is_queued_not_published(self, approval_service, quotation_chain):
        request_id = _submit(approval_service, 1)
        approval_service.approve(request_id, U1)
        assert approval_service.pending_events == ()

        approval_service.reject(request_id, U2, "missing freight")

        (event,) = approval_service.pending_events
        assert event.status == ApprovalStatus.REJECTED
        assert event.reason == "missing freight"
        assert event.approval_request_id == request_id

    def test_aggregate_errors_propagate_and_nothing_is_saved(
        self, approval_service, quotation_chain, session,
    ):
        request_id = _submit(approval_service, 1)

        with pytest.raises(OutOfOrderApprovalError):
            approval_service.approve(request_id, U2)
        with pytest.raises(MissingRejectionReasonError):
            approval_service.reject(request_id, U1, "   ")

        assert ApprovalRequestRepository(session).get(request_id).version == 0

    def test_unknown_request(self, approval_service):
        with pytest.raises(ApprovalNotFoundError):
            approval_service.approve(999, U1)

    def test_add_comment(self, approval_service, quotation_chain, session):
        request_id = _submit(approval_service, 1)

        approval_service.add_comment(request_id, U3, "heads up: I am out Friday")

        detail = ApprovalSelector(session).get_detail(request_id)
        assert detail.comments[0].commenter_user_id == U3
        assert detail.version == 1


# =============================================================================
# Chain administration
# =============================================================================


class TestUpdateChainLevels:

    def test_in_flight_request_keeps_its_snapshot(
        self, approval_service, quotation_chain, session,
    ):
        request_id = _submit(approval_service, 1)

        approval_service.update_chain_levels(
            quotation_chain.id, [ChainLevel(1, "Owner", 500)],
        )
        approval_service.approve(request_id, U1)

        request = ApprovalRequestRepository(session).get(request_id)
        assert request.current_level == 2
        assert request.total_levels == 3

    def test_new_submissions_use_the_new_levels(self, approval_service, quotation_chain):
        approval_service.update_chain_levels(
            quotation_chain.id, [ChainLevel(1, "Owner", 500)],
        )

        request_id = _submit(approval_service, 2)
        approval_service.approve(request_id, 500)

        (event,) = approval_service.pending_events
        assert event.status == ApprovalStatus.APPROVED

    def test_unknown_template(self, approval_service):
        with pytest.raises(ChainTemplateNotFoundError):
            approval_service.update_chain_levels(404, [ChainLevel(1, "Owner", 500)])


# =============================================================================
# Events and quotation follow-up
# =============================================================================


class TestPublishing:

    def test_final_approval_marks_quotation_approved(
        self, approval_service, quotation_chain, session,
    ):
        quotation_id = insert_quotation(session, status=QuotationStatus.PENDING)
        request_id = _submit(approval_service, quotation_id)
        for approver in (U1, U2, U3):
            approval_service.approve(request_id, approver)

        assert approval_service.publish_pending_events() == 1

        assert session.get(QuotationModel, quotation_id).status == "APPROVED"
        assert approval_service.pending_events == ()

    def test_rejection_marks_quotation_rejected(
        self, approval_service, quotation_chain, session,
    ):
        quotation_id = insert_quotation(session, status=QuotationStatus.PENDING)
        request_id = _submit(approval_service, quotation_id)
        approval_service.reject(request_id, U1, "wrong site")

        approval_service.publish_pending_events()

        assert session.get(QuotationModel, quotation_id).status == "REJECTED"

    def test_other_entity_types_are_ignored_by_quotation_handler(
        self, approval_service, session, make_template,
    ):
        ApprovalChainTemplateRepository(session).add(
            make_template(EntityType.PURCHASE_ORDER, levels=[ChainLevel(1, "Buyer", U1)])
        )
        quotation_id = insert_quotation(session, status=QuotationStatus.PENDING)
        request_id = _submit(approval_service, quotation_id, EntityType.PURCHASE_ORDER)
        approval_service.approve(request_id, U1)

        approval_service.publish_pending_events()

        assert session.get(QuotationModel, quotation_id).status == "PENDING"


class TestRunInTransaction:

    @pytest.fixture
    def seeded(self, session_factory, make_template):
        with session_factory() as setup:
            ApprovalChainTemplateRepository(setup).add(make_template())
            quotation_id = insert_quotation(setup, status=QuotationStatus.PENDING)
            request_id = ApprovalCommandService(setup).submit(
                EntityType.QUOTATION, quotation_id, "Q", SUBMITTER,
            )
            setup.commit()
        return quotation_id, request_id

    def test_commits_transition_and_handler_writes_together(
        self, session_factory, seeded, publisher,
    ):
        quotation_id, request_id = seeded

        run_in_transaction(session_factory, lambda svc: svc.reject(request_id, U1, "no"),
                           publisher=publisher)

        with session_factory() as check:
            assert check.get(QuotationModel, quotation_id).status == "REJECTED"
            detail = ApprovalSelector(check).get_detail(request_id)
            assert detail.status == ApprovalStatus.REJECTED
            assert detail.level_decisions[0].decision == DecisionStatus.REJECTED

    def test_handler_failure_rolls_back_the_transition(self, session_factory, seeded):
        quotation_id, request_id = seeded
        publisher = EventPublisher()

        def failing_handler(event, session):
            raise RuntimeError("notification backend down")

        publisher.subscribe(ApprovalCompletedEvent, failing_handler)
        QuotationApprovalHandler().register(publisher)

        with pytest.raises(RuntimeError, match="notification backend down"):
            run_in_transaction(
                session_factory, lambda svc: svc.reject(request_id, U1, "no"),
                publisher=publisher,
            )

        with session_factory() as check:
            history = ApprovalSelector(check).get_history(request_id)
            assert [h.action for h in history] == [HistoryAction.SUBMITTED]
            assert check.get(QuotationModel, quotation_id).status == "PENDING"

    def test_returns_action_result(self, session_factory, seeded):
        _, request_id = seeded

        result = run_in_transaction(
            session_factory, lambda svc: svc.add_comment(request_id, U2, "ok"),
        )

        assert result == request_id
