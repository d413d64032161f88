"""
Tests for the ApprovalRequest aggregate.

Pure domain tests: no database.  Covers the sequential state machine,
approver authorization, rejection-reason enforcement, the audit trail,
snapshot rehydration and invariant checking on corrupt state.
"""

from dataclasses import replace

import pytest

from erp_kernel.domain.approval import ApprovalRequest, ApprovalRequestSnapshot
from erp_kernel.domain.approval_chain import ApprovalChainTemplate
from erp_kernel.domain.approval_values import (
    ApprovalStatus,
    ChainLevel,
    DecisionStatus,
    EntityType,
    HistoryAction,
)
from erp_kernel.domain.clock import DeterministicClock
from erp_kernel.exceptions import (
    ApprovalAlreadyCompletedError,
    ApprovalChainNotConfiguredError,
    BlankCommentError,
    ChainTemplateMismatchError,
    CorruptApprovalStateError,
    InvalidChainConfigurationError,
    MissingRejectionReasonError,
    OutOfOrderApprovalError,
    UnauthorizedApproverError,
)
from tests.support import DEFAULT_LEVELS, OUTSIDER, SUBMITTER, U1, U2, U3


def _template(levels=DEFAULT_LEVELS) -> ApprovalChainTemplate:
    return ApprovalChainTemplate(EntityType.QUOTATION, "Quotation approval", levels)


def _request(clock: DeterministicClock, levels=DEFAULT_LEVELS) -> ApprovalRequest:
    return ApprovalRequest.create(
        EntityType.QUOTATION, 42, "Q-42 roof repair", SUBMITTER,
        _template(levels), clock=clock,
    )


@pytest.fixture
def clock():
    return DeterministicClock()


class TestCreate:

    def test_new_request_starts_pending_at_level_one(self, clock):
        request = _request(clock)

        assert request.id is None
        assert request.version == 0
        assert request.status == ApprovalStatus.PENDING
        assert request.current_level == 1
        assert request.total_levels == 3
        assert request.submitted_by == SUBMITTER
        assert request.submitted_at == clock.now()
        assert request.completed_at is None
        assert [d.decision for d in request.level_decisions] == [DecisionStatus.PENDING] * 3
        assert [d.expected_approver_user_id for d in request.level_decisions] == [U1, U2, U3]

    def test_submission_is_the_first_history_entry(self, clock):
        request = _request(clock)

        (entry,) = request.history_entries
        assert entry.action == HistoryAction.SUBMITTED
        assert entry.actor_user_id == SUBMITTER
        assert entry.level_order is None

    def test_empty_chain_cannot_be_submitted(self, clock):
        with pytest.raises(ApprovalChainNotConfiguredError) as exc_info:
            _request(clock, levels=())
        assert exc_info.value.entity_type == "QUOTATION"
        assert exc_info.value.code == "APPROVAL_CHAIN_NOT_CONFIGURED"

    def test_template_for_another_entity_type_is_refused(self, clock):
        po_template = ApprovalChainTemplate(
            EntityType.PURCHASE_ORDER, "Purchase order approval", DEFAULT_LEVELS,
        )

        with pytest.raises(InvalidChainConfigurationError) as exc_info:
            ApprovalRequest.create(
                EntityType.QUOTATION, 1, None, SUBMITTER, po_template, clock=clock,
            )
        assert isinstance(exc_info.value, ChainTemplateMismatchError)
        assert exc_info.value.template_entity_type == "PURCHASE_ORDER"
        assert exc_info.value.code == "CHAIN_TEMPLATE_MISMATCH"

    def test_later_template_edits_do_not_reach_the_request(self, clock):
        template = _template()
        request = ApprovalRequest.create(
            EntityType.QUOTATION, 1, None, SUBMITTER, template, clock=clock,
        )

        template.replace_all_levels([ChainLevel(1, "CFO", OUTSIDER)])

        assert request.total_levels == 3
        assert request.current_level_decision.expected_approver_user_id == U1


class TestSequentialApproval:

    def test_approve_advances_one_level(self, clock):
        request = _request(clock)
        clock.advance(60)

        request.approve(U1, "looks fine", clock=clock)

        assert request.status == ApprovalStatus.PENDING
        assert request.current_level == 2
        first = request.get_level_decision(1)
        assert first.decision == DecisionStatus.APPROVED
        assert first.decided_by_user_id == U1
        assert first.comments == "looks fine"
        assert first.decided_at == clock.now()
        assert request.get_level_decision(2).decision == DecisionStatus.PENDING

    def test_final_level_approval_completes_the_request(self, clock):
        request = _request(clock)
        request.approve(U1, clock=clock)
        request.approve(U2, clock=clock)
        clock.advance(3600)

        request.approve(U3, "go ahead", clock=clock)

        assert request.status == ApprovalStatus.APPROVED
        assert request.is_completed()
        assert request.current_level == 3
        assert request.completed_at == clock.now()
        assert all(d.decision == DecisionStatus.APPROVED for d in request.level_decisions)
        assert [h.action for h in request.history_entries] == [
            HistoryAction.SUBMITTED,
            HistoryAction.APPROVED,
            HistoryAction.APPROVED,
            HistoryAction.APPROVED,
        ]

    def test_single_level_chain_completes_on_first_approval(self, clock):
        request = _request(clock, levels=[ChainLevel(1, "Manager", U1)])

        request.approve(U1, clock=clock)

        assert request.status == ApprovalStatus.APPROVED

    def test_same_user_decides_each_of_their_levels_in_turn(self, clock):
        request = _request(clock, levels=[
            ChainLevel(1, "Manager", U1),
            ChainLevel(2, "Acting Director", U1),
        ])

        request.approve(U1, clock=clock)
        assert request.current_level == 2
        request.approve(U1, clock=clock)

        assert request.status == ApprovalStatus.APPROVED


class TestRejectionScenario:
    """U1 approves, U3 tries early, U2 approves, U3 rejects with a reason."""

    def test_full_scenario(self, clock):
        request = _request(clock)

        request.approve(U1, clock=clock)
        assert request.current_level == 2

        with pytest.raises(OutOfOrderApprovalError) as exc_info:
            request.approve(U3, clock=clock)
        assert exc_info.value.current_level == 2
        assert request.current_level == 2

        request.approve(U2, clock=clock)
        clock.advance(120)
        request.reject(U3, "price too high", clock=clock)

        assert request.status == ApprovalStatus.REJECTED
        assert request.completed_at == clock.now()
        assert request.get_level_decision(3).decision == DecisionStatus.REJECTED

        reasons = [c for c in request.comments if c.is_rejection_reason]
        assert len(reasons) == 1
        assert reasons[0].text == "price too high"
        assert reasons[0].commenter_user_id == U3

        assert len(request.history_entries) == 4
        last = request.history_entries[-1]
        assert last.action == HistoryAction.REJECTED
        assert last.level_order == 3
        assert last.comments == "price too high"

    def test_rejection_at_first_level_leaves_later_levels_pending(self, clock):
        request = _request(clock)

        request.reject(U1, "wrong customer", clock=clock)

        assert request.status == ApprovalStatus.REJECTED
        assert request.current_level == 1
        assert request.get_level_decision(2).decision == DecisionStatus.PENDING
        assert request.get_level_decision(3).decision == DecisionStatus.PENDING


class TestAuthorization:

    def test_outsider_is_unauthorized(self, clock):
        request = _request(clock)
        before = request.snapshot()

        with pytest.raises(UnauthorizedApproverError) as exc_info:
            request.approve(OUTSIDER, clock=clock)

        assert exc_info.value.user_id == OUTSIDER
        assert request.snapshot() == before

    def test_later_level_approver_is_out_of_order(self, clock):
        request = _request(clock)

        with pytest.raises(OutOfOrderApprovalError):
            request.reject(U2, "too early", clock=clock)

        assert request.is_pending()

    def test_submitter_not_on_chain_cannot_approve(self, clock):
        request = _request(clock)

        with pytest.raises(UnauthorizedApproverError):
            request.approve(SUBMITTER, clock=clock)

    def test_is_expected_approver_tracks_current_level(self, clock):
        request = _request(clock)
        assert request.is_expected_approver(U1)
        assert not request.is_expected_approver(U2)

        request.approve(U1, clock=clock)

        assert request.is_expected_approver(U2)
        assert request.is_approver_at_any_level(U3)
        assert not request.is_approver_at_any_level(OUTSIDER)


class TestCompletedRequests:

    @pytest.fixture
    def rejected(self, clock):
        request = _request(clock)
        request.reject(U1, "duplicate quotation", clock=clock)
        return request

    def test_approve_after_rejection_fails(self, rejected):
        with pytest.raises(ApprovalAlreadyCompletedError) as exc_info:
            rejected.approve(U2)
        assert exc_info.value.status == "REJECTED"

    def test_completed_check_comes_before_authorization(self, rejected):
        with pytest.raises(ApprovalAlreadyCompletedError):
            rejected.reject(OUTSIDER, "no")

    def test_completing_twice_is_refused_even_without_the_pending_check(
        self, rejected, clock,
    ):
        with pytest.raises(CorruptApprovalStateError, match="REJECTED -> APPROVED"):
            rejected._complete(ApprovalStatus.APPROVED, clock.now())
        assert rejected.status == ApprovalStatus.REJECTED

    def test_comments_still_allowed_after_completion(self, rejected, clock):
        rejected.add_comment(SUBMITTER, "will revise and resubmit", clock=clock)

        assert rejected.comments[-1].text == "will revise and resubmit"
        assert not rejected.comments[-1].is_rejection_reason


class TestRejectionReason:

    @pytest.mark.parametrize("reason", ["", "   ", "\n\t"])
    def test_blank_reason_leaves_state_unchanged(self, clock, reason):
        request = _request(clock)
        before = request.snapshot()

        with pytest.raises(MissingRejectionReasonError):
            request.reject(U1, reason, clock=clock)

        assert request.snapshot() == before

    def test_reason_is_checked_before_authorization(self, clock):
        request = _request(clock)

        with pytest.raises(MissingRejectionReasonError):
            request.reject(OUTSIDER, "", clock=clock)

    def test_optional_comments_are_kept_on_the_decision(self, clock):
        request = _request(clock)

        request.reject(U1, "margin below floor", "call me", clock=clock)

        assert request.get_level_decision(1).comments == "call me"
        assert request.history_entries[-1].comments == "margin below floor"


class TestComments:

    def test_discussion_comment_is_appended(self, clock):
        request = _request(clock)

        request.add_comment(U2, "Can we get a second supplier quote?", clock=clock)

        (comment,) = request.comments
        assert comment.commenter_user_id == U2
        assert comment.created_at == clock.now()
        assert not comment.is_rejection_reason

    @pytest.mark.parametrize("text", ["", "  "])
    def test_blank_comment_is_rejected(self, clock, text):
        request = _request(clock)

        with pytest.raises(BlankCommentError):
            request.add_comment(U1, text, clock=clock)

        assert request.comments == ()


class TestCompletionEvent:

    def test_no_event_while_pending(self, clock):
        assert _request(clock).completion_event() is None

    def test_approved_event(self, clock):
        request = _request(clock, levels=[ChainLevel(1, "Manager", U1)])
        request.approve(U1, clock=clock)

        event = request.completion_event()

        assert event.status == ApprovalStatus.APPROVED
        assert event.entity_type == EntityType.QUOTATION
        assert event.entity_id == 42
        assert event.actor_user_id == U1
        assert event.reason is None

    def test_rejected_event_carries_reason(self, clock):
        request = _request(clock)
        request.approve(U1, clock=clock)
        request.reject(U2, "scope unclear", clock=clock)

        event = request.completion_event()

        assert event.status == ApprovalStatus.REJECTED
        assert event.actor_user_id == U2
        assert event.reason == "scope unclear"


class TestSnapshots:

    def test_rehydrated_request_behaves_identically(self, clock):
        request = _request(clock)
        request.approve(U1, clock=clock)
        request.record_persisted(7, 2)

        restored = ApprovalRequest.from_snapshot(request.snapshot())
        restored.approve(U2, clock=clock)
        request.approve(U2, clock=clock)

        assert restored.snapshot() == request.snapshot()
        assert restored.id == 7
        assert restored.version == 2

    def test_dict_round_trip(self, clock):
        request = _request(clock)
        request.add_comment(U1, "checking", clock=clock)
        request.reject(U1, "no budget", clock=clock)
        snapshot = request.snapshot()

        assert ApprovalRequestSnapshot.from_dict(snapshot.to_dict()) == snapshot

    def test_returned_collections_are_read_only(self, clock):
        request = _request(clock)

        assert isinstance(request.level_decisions, tuple)
        assert isinstance(request.history_entries, tuple)
        assert isinstance(request.comments, tuple)


class TestCorruptState:

    @pytest.fixture
    def snapshot(self, clock):
        request = _request(clock)
        request.approve(U1, clock=clock)
        return request.snapshot()

    def test_valid_snapshot_loads(self, snapshot):
        assert ApprovalRequest.from_snapshot(snapshot).current_level == 2

    def test_current_level_out_of_range(self, snapshot):
        with pytest.raises(CorruptApprovalStateError):
            ApprovalRequest.from_snapshot(replace(snapshot, current_level=4))

    def test_total_levels_must_match_decisions(self, snapshot):
        with pytest.raises(CorruptApprovalStateError):
            ApprovalRequest.from_snapshot(replace(snapshot, total_levels=2))

    def test_approved_status_below_final_level(self, snapshot):
        with pytest.raises(CorruptApprovalStateError):
            ApprovalRequest.from_snapshot(replace(
                snapshot, status=ApprovalStatus.APPROVED, completed_at=snapshot.submitted_at,
            ))

    def test_pending_decision_below_current_level(self, snapshot):
        first = replace(
            snapshot.level_decisions[0],
            decision=DecisionStatus.PENDING,
            decided_by_user_id=None,
            decided_at=None,
        )
        decisions = (first,) + snapshot.level_decisions[1:]

        with pytest.raises(CorruptApprovalStateError):
            ApprovalRequest.from_snapshot(replace(snapshot, level_decisions=decisions))

    def test_history_must_start_with_submission(self, snapshot):
        with pytest.raises(CorruptApprovalStateError):
            ApprovalRequest.from_snapshot(
                replace(snapshot, history_entries=snapshot.history_entries[1:])
            )

    def test_pending_request_with_completed_at(self, snapshot):
        with pytest.raises(CorruptApprovalStateError) as exc_info:
            ApprovalRequest.from_snapshot(
                replace(snapshot, completed_at=snapshot.submitted_at)
            )
        assert exc_info.value.code == "CORRUPT_APPROVAL_STATE"
