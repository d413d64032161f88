"""
Tests for DeliveryCommandService.

The service owns its transaction, so these tests run against a SQLite file
database and read results back through fresh sessions.
"""

from decimal import Decimal

import pytest

from erp_kernel.domain.clock import DeterministicClock
from erp_kernel.domain.delivery import QuotationStatus
from erp_kernel.exceptions import (
    DeliveryQuantityExceededError,
    InvalidDeliveryError,
    QuotationNotApprovedError,
    QuotationNotFoundError,
)
from erp_kernel.selectors.delivery_selector import DeliverySelector
from erp_kernel.services.delivery_service import DeliveryCommandService
from erp_kernel.services.document_lock import DocumentLockService
from tests.support import U1, delivery_lines, insert_quotation

DRIVER = 300


@pytest.fixture
def deliveries(session_factory, deterministic_clock):
    return DeliveryCommandService(
        session_factory, DocumentLockService(timeout_seconds=1.0), clock=deterministic_clock,
    )


@pytest.fixture
def approved_quotation(session_factory):
    with session_factory() as setup:
        quotation_id = insert_quotation(
            setup, {1: Decimal("10"), 2: Decimal("2")}, QuotationStatus.APPROVED,
        )
        setup.commit()
    return quotation_id


class TestCreateDelivery:

    def test_delivery_is_committed(self, deliveries, approved_quotation, session_factory,
                                   deterministic_clock):
        delivery_id = deliveries.create_delivery(
            approved_quotation, delivery_lines({1: "4", 2: "2"}), DRIVER,
        )

        with session_factory() as check:
            (dto,) = DeliverySelector(check).list_for_quotation(approved_quotation)
        assert dto.id == delivery_id
        assert dto.delivered_by == DRIVER
        assert dto.delivered_at == deterministic_clock.now()
        assert dto.quantities == {1: Decimal("4"), 2: Decimal("2")}

    def test_partial_deliveries_accumulate_up_to_quoted(
        self, deliveries, approved_quotation, session_factory,
    ):
        deliveries.create_delivery(approved_quotation, delivery_lines({1: "6"}), DRIVER)
        deliveries.create_delivery(approved_quotation, delivery_lines({1: "4"}), DRIVER)

        with pytest.raises(DeliveryQuantityExceededError) as exc_info:
            deliveries.create_delivery(approved_quotation, delivery_lines({1: "1"}), DRIVER)
        assert Decimal(exc_info.value.remaining) == 0

        with session_factory() as check:
            totals = DeliverySelector(check).delivered_quantities(approved_quotation)
        assert totals == {1: Decimal("10")}

    def test_rejected_delivery_writes_nothing(
        self, deliveries, approved_quotation, session_factory,
    ):
        with pytest.raises(DeliveryQuantityExceededError):
            deliveries.create_delivery(
                approved_quotation, delivery_lines({1: "1", 2: "3"}), DRIVER,
            )

        with session_factory() as check:
            assert DeliverySelector(check).list_for_quotation(approved_quotation) == []

    def test_invalid_line_items(self, deliveries, approved_quotation):
        with pytest.raises(InvalidDeliveryError):
            deliveries.create_delivery(approved_quotation, [], DRIVER)

    def test_logs_with_document_context(self, deliveries, approved_quotation, captured_logs):
        delivery_id = deliveries.create_delivery(
            approved_quotation, delivery_lines({2: "1"}), DRIVER,
        )

        record = next(r for r in captured_logs() if r["message"] == "delivery_created")
        assert record["delivery_id"] == delivery_id
        assert record["document"] == f"quotation:{approved_quotation}"
        assert record["actor_id"] == str(DRIVER)


class TestQuotationPreconditions:

    @pytest.mark.parametrize(
        "status", [QuotationStatus.DRAFT, QuotationStatus.PENDING, QuotationStatus.REJECTED],
    )
    def test_only_approved_quotations_ship(self, deliveries, session_factory, status):
        with session_factory() as setup:
            quotation_id = insert_quotation(setup, status=status)
            setup.commit()

        with pytest.raises(QuotationNotApprovedError) as exc_info:
            deliveries.create_delivery(quotation_id, delivery_lines({1: "1"}), U1)
        assert exc_info.value.status == status.value

    def test_unknown_quotation(self, deliveries):
        with pytest.raises(QuotationNotFoundError):
            deliveries.create_delivery(777, delivery_lines({1: "1"}), U1)


def test_default_clock_is_system_clock(session_factory, approved_quotation):
    service = DeliveryCommandService(session_factory, DocumentLockService())

    service.create_delivery(approved_quotation, delivery_lines({1: "1"}), DRIVER)

    with session_factory() as check:
        (dto,) = DeliverySelector(check).list_for_quotation(approved_quotation)
    assert dto.delivered_at > DeterministicClock().now()
