"""Tests for the reading lifecycle: submission, approval, rejection and reopen."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from meterbook.core.config import settings
from meterbook.core.database import Base
from meterbook.core.errors import (
    ConcurrencyError,
    DependencyError,
    InvalidTransitionError,
    ValidationError,
)
from meterbook.models.enums import ReadingStatus
from meterbook.models.flat import Flat
from meterbook.schemas.flat import FlatCreate
from meterbook.services import readings as reading_service
from meterbook.services.events import EventChannel
from meterbook.services.flats import create_flat
from meterbook.services.pricing import PricingSnapshot


def _create_flat(
    client: TestClient, flat_id: str, initial_reading: str | None = None
) -> dict:
    """Helper: register a flat through the API."""
    payload = {"flat_id": flat_id, "tenant_name": f"Tenant {flat_id}"}
    if initial_reading is not None:
        payload["initial_reading"] = initial_reading
    response = client.post("/api/flats/", json=payload)
    assert response.status_code == 201
    return response.json()


def _set_pricing(client: TestClient, tariff: str, minimum: str, unit_factor: str) -> None:
    """Helper: save global pricing through the API."""
    response = client.patch(
        "/api/settings/",
        json={"tariff_per_unit": tariff, "minimum_price": minimum, "unit_factor": unit_factor},
    )
    assert response.status_code == 200


def _submit(client: TestClient, flat_id: str, ocr_reading: str | None = None) -> dict:
    """Helper: submit a pending reading, return the response body."""
    payload = {"flat_id": flat_id, "image_ref": f"uploads/{flat_id}.jpg"}
    if ocr_reading is not None:
        payload["ocr_reading"] = ocr_reading
    response = client.post("/api/readings/", json=payload)
    assert response.status_code == 201
    return response.json()


def _approve(client: TestClient, reading_id: str, corrected: object):
    return client.post(
        f"/api/readings/{reading_id}/approve", json={"corrected_reading": corrected}
    )


@pytest.fixture
def flat_a101(client: TestClient) -> dict:
    """Flat A-101 with an initial reading of 1000 and pricing 7.5 / 25 / 2.3."""
    _set_pricing(client, "7.5", "25", "2.3")
    return _create_flat(client, "A-101", initial_reading="1000")


class TestSubmitReading:
    """Tests for tenant submissions."""

    def test_submit_creates_pending_reading(self, client: TestClient, flat_a101: dict) -> None:
        """Test a submission starts pending with no billing fields."""
        data = _submit(client, "A-101", ocr_reading="1049.5")

        assert data["status"] == ReadingStatus.PENDING
        assert data["flat_id"] == "A-101"
        assert Decimal(data["ocr_reading"]) == Decimal("1049.5")
        assert data["corrected_reading"] is None
        assert data["previous_reading"] is None
        assert data["units_used"] is None
        assert data["amount"] is None
        assert data["approved_at"] is None
        assert len(data["year_month"]) == 7

    def test_submit_unknown_flat(self, client: TestClient) -> None:
        """Test submitting for an unregistered flat returns 404."""
        response = client.post("/api/readings/", json={"flat_id": "Z-999"})
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_submit_blank_flat_id(self, client: TestClient) -> None:
        """Test a blank flat id fails request validation."""
        response = client.post("/api/readings/", json={"flat_id": "   "})
        assert response.status_code == 422

    def test_year_month_from_submission_time(self, test_db: Session) -> None:
        """Test the billing month is taken from the submission timestamp."""
        create_flat(test_db, FlatCreate(flat_id="B1"))
        reading = reading_service.submit_reading(
            test_db,
            "B1",
            submitted_at=datetime(2025, 1, 31, 23, 30, tzinfo=UTC),
            events=EventChannel(),
        )
        assert reading.year_month == "2025-01"

    def test_non_finite_ocr_value_is_dropped(self, test_db: Session) -> None:
        """Test unusable OCR suggestions are stored as missing."""
        create_flat(test_db, FlatCreate(flat_id="B1"))
        reading = reading_service.submit_reading(
            test_db, "B1", ocr_value=float("nan"), events=EventChannel()
        )
        assert reading.ocr_reading is None

    @pytest.mark.parametrize("confidence", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_confidence_is_dropped(self, test_db: Session, confidence: float) -> None:
        """Test unusable OCR confidences are stored as missing."""
        create_flat(test_db, FlatCreate(flat_id="B1"))
        reading = reading_service.submit_reading(
            test_db,
            "B1",
            ocr_value=Decimal("12.5"),
            ocr_confidence=confidence,
            events=EventChannel(),
        )
        assert reading.ocr_reading == Decimal("12.5")
        assert reading.ocr_confidence is None

    def test_monthly_limit(self, test_db: Session, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the optional one-reading-per-month rule ignores rejected readings."""
        monkeypatch.setattr(settings, "ENFORCE_MONTHLY_LIMIT", True)
        create_flat(test_db, FlatCreate(flat_id="B1"))
        channel = EventChannel()
        first = reading_service.submit_reading(test_db, "B1", events=channel)

        with pytest.raises(ValidationError):
            reading_service.submit_reading(test_db, "B1", events=channel)

        reading_service.reject_reading(test_db, first.id, "blurry", events=channel)
        second = reading_service.submit_reading(test_db, "B1", events=channel)
        assert second.status == ReadingStatus.PENDING


class TestApproveReading:
    """Tests for approval and bill computation."""

    def test_approve_against_initial_reading(self, client: TestClient, flat_a101: dict) -> None:
        """Test first approval uses the initial reading: 50 units, 862.50."""
        reading = _submit(client, "A-101")

        response = _approve(client, reading["id"], 1050)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == ReadingStatus.APPROVED
        assert Decimal(data["previous_reading"]) == Decimal("1000")
        assert Decimal(data["corrected_reading"]) == Decimal("1050")
        assert Decimal(data["units_used"]) == Decimal("50")
        assert Decimal(data["amount"]) == Decimal("862.50")
        assert Decimal(data["tariff_at_approval"]) == Decimal("7.5")
        assert Decimal(data["unit_factor_at_approval"]) == Decimal("2.3")
        assert Decimal(data["minimum_price_at_approval"]) == Decimal("25")
        assert Decimal(data["minimum_charge_at_approval"]) == Decimal("25")
        assert data["approved_at"] is not None

        receipt = client.get(f"/api/readings/{reading['id']}/receipt")
        assert receipt.status_code == 200
        assert Decimal(receipt.json()["total_kg"]) == Decimal("115")

    def test_meter_rollback_charges_minimum(self, client: TestClient, flat_a101: dict) -> None:
        """Test a lower reading yields zero units and the minimum price."""
        first = _submit(client, "A-101")
        assert _approve(client, first["id"], 1050).status_code == 200

        second = _submit(client, "A-101")
        data = _approve(client, second["id"], 1040).json()
        assert Decimal(data["previous_reading"]) == Decimal("1050")
        assert Decimal(data["units_used"]) == Decimal("0")
        assert Decimal(data["amount"]) == Decimal("25")

    def test_previous_defaults_to_zero(self, client: TestClient) -> None:
        """Test a flat without history or initial reading starts from zero."""
        _set_pricing(client, "7.5", "25", "2.3")
        _create_flat(client, "C1")
        reading = _submit(client, "C1")

        data = _approve(client, reading["id"], "12.4").json()
        assert Decimal(data["previous_reading"]) == Decimal("0")
        assert Decimal(data["units_used"]) == Decimal("12.4")
        # 12.4 * 2.3 * 7.5 = 213.9
        assert Decimal(data["amount"]) == Decimal("213.90")

    def test_approve_twice_is_invalid_transition(
        self, client: TestClient, flat_a101: dict
    ) -> None:
        """Test approving an approved reading returns 409 and changes nothing."""
        reading = _submit(client, "A-101")
        before = _approve(client, reading["id"], 1050).json()

        response = _approve(client, reading["id"], 1100)
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransitionError"

        after = client.get(f"/api/readings/{reading['id']}").json()
        assert after == before

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", "", None, True, False])
    def test_approve_rejects_bad_values(
        self, client: TestClient, flat_a101: dict, value: object
    ) -> None:
        """Test non-numeric or non-finite corrections return 422."""
        reading = _submit(client, "A-101")

        response = _approve(client, reading["id"], value)
        assert response.status_code == 422

        unchanged = client.get(f"/api/readings/{reading['id']}").json()
        assert unchanged["status"] == ReadingStatus.PENDING

    def test_receipt_charge_is_not_the_floor(self, client: TestClient) -> None:
        """Test a 250 minimum price floors the amount but the receipt charges 25."""
        _set_pricing(client, "7.5", "250", "2.3")
        _create_flat(client, "H1", initial_reading="1000")
        reading = _submit(client, "H1")

        data = _approve(client, reading["id"], 1050).json()
        assert Decimal(data["amount"]) == Decimal("862.50")
        assert Decimal(data["minimum_price_at_approval"]) == Decimal("250")

        receipt = client.get(f"/api/readings/{reading['id']}/receipt").json()
        assert Decimal(receipt["minimum_charge"]) == Decimal("25")
        assert Decimal(receipt["total_amount"]) == Decimal("887.50")

    def test_approve_unknown_reading(self, client: TestClient) -> None:
        """Test approving an unknown id returns 404."""
        response = _approve(client, str(uuid4()), 1050)
        assert response.status_code == 404

    def test_tariff_frozen_at_approval(self, client: TestClient, flat_a101: dict) -> None:
        """Test later pricing changes do not alter approved readings."""
        reading = _submit(client, "A-101")
        _approve(client, reading["id"], 1050)

        _set_pricing(client, "9", "40", "2.5")

        data = client.get(f"/api/readings/{reading['id']}").json()
        assert Decimal(data["tariff_at_approval"]) == Decimal("7.5")
        assert Decimal(data["amount"]) == Decimal("862.50")

        summary = client.get(f"/api/billing/summary/{data['year_month']}").json()
        entry = summary["rows"][0]["entries"][0]
        assert Decimal(entry["tariff"]) == Decimal("7.5")
        assert Decimal(entry["unit_factor"]) == Decimal("2.3")

    def test_explicit_pricing_snapshot(self, test_db: Session, pricing: PricingSnapshot) -> None:
        """Test a snapshot passed by the caller is used instead of the store."""
        create_flat(test_db, FlatCreate(flat_id="D1", initial_reading=Decimal("10")))
        channel = EventChannel()
        reading = reading_service.submit_reading(test_db, "D1", events=channel)

        approved = reading_service.approve_reading(
            test_db, reading.id, "30", pricing, events=channel
        )
        assert approved.units_used == Decimal("20")
        # 20 * 2.3 * 7.5 = 345
        assert approved.amount == Decimal("345")

    def test_amount_never_below_minimum(self, client: TestClient, flat_a101: dict) -> None:
        """Test every approval charges at least the minimum price."""
        value = 1000
        for step in (0, 1, 0, 3):
            value += step
            reading = _submit(client, "A-101")
            data = _approve(client, reading["id"], value).json()
            assert Decimal(data["amount"]) >= Decimal("25")


class TestRejectAndReopen:
    """Tests for rejection and reopen transitions."""

    def test_reject_pending_reading(self, client: TestClient, flat_a101: dict) -> None:
        """Test rejection records the reason and leaves billing fields empty."""
        reading = _submit(client, "A-101")

        response = client.post(
            f"/api/readings/{reading['id']}/reject", json={"reason": "blurry photo"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == ReadingStatus.REJECTED
        assert data["rejection_reason"] == "blurry photo"
        assert data["amount"] is None
        assert data["units_used"] is None

    def test_rejected_reading_is_terminal(self, client: TestClient, flat_a101: dict) -> None:
        """Test a rejected reading cannot be approved or reopened."""
        reading = _submit(client, "A-101")
        client.post(f"/api/readings/{reading['id']}/reject", json={"reason": "blurry photo"})

        assert _approve(client, reading["id"], 1050).status_code == 409
        response = client.post(f"/api/readings/{reading['id']}/reopen", json={"reason": "x"})
        assert response.status_code == 409

    @pytest.mark.parametrize("action", ["reject", "reopen"])
    def test_blank_reason_rejected(
        self, client: TestClient, flat_a101: dict, action: str
    ) -> None:
        """Test reject and reopen require a non-empty reason."""
        reading = _submit(client, "A-101")
        if action == "reopen":
            _approve(client, reading["id"], 1050)

        response = client.post(f"/api/readings/{reading['id']}/{action}", json={"reason": "  "})
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_reopen_clears_billing_fields(self, client: TestClient, flat_a101: dict) -> None:
        """Test reopen returns the reading to pending with computed fields cleared."""
        reading = _submit(client, "A-101")
        _approve(client, reading["id"], 1050)

        response = client.post(
            f"/api/readings/{reading['id']}/reopen", json={"reason": "wrong digit"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == ReadingStatus.PENDING
        assert data["reopen_reason"] == "wrong digit"
        assert data["approved_at"] is None
        assert data["previous_reading"] is None
        assert data["units_used"] is None
        assert data["amount"] is None
        assert data["tariff_at_approval"] is None
        assert data["unit_factor_at_approval"] is None
        assert data["minimum_price_at_approval"] is None
        assert data["minimum_charge_at_approval"] is None
        assert Decimal(data["corrected_reading"]) == Decimal("1050")

    def test_reopen_pending_is_invalid(self, client: TestClient, flat_a101: dict) -> None:
        """Test only approved readings can be reopened."""
        reading = _submit(client, "A-101")
        response = client.post(f"/api/readings/{reading['id']}/reopen", json={"reason": "x"})
        assert response.status_code == 409

    def test_reapprove_after_reopen_recomputes(
        self, client: TestClient, flat_a101: dict
    ) -> None:
        """Test re-approval ignores the reading's own earlier approval."""
        reading = _submit(client, "A-101")
        _approve(client, reading["id"], 1500)
        client.post(f"/api/readings/{reading['id']}/reopen", json={"reason": "wrong digit"})

        _set_pricing(client, "8", "30", "2.3")
        data = _approve(client, reading["id"], 1050).json()
        assert Decimal(data["previous_reading"]) == Decimal("1000")
        assert Decimal(data["units_used"]) == Decimal("50")
        # 50 * 2.3 * 8 = 920
        assert Decimal(data["amount"]) == Decimal("920")
        assert Decimal(data["tariff_at_approval"]) == Decimal("8")

    def test_reopened_reading_leaves_the_baseline(
        self, client: TestClient, flat_a101: dict
    ) -> None:
        """Test a reopened reading no longer counts as the previous approval."""
        first = _submit(client, "A-101")
        _approve(client, first["id"], 1200)
        client.post(f"/api/readings/{first['id']}/reopen", json={"reason": "wrong digit"})

        second = _submit(client, "A-101")
        data = _approve(client, second["id"], 1020).json()
        assert Decimal(data["previous_reading"]) == Decimal("1000")


class TestListReadings:
    """Tests for reading queries."""

    def test_filters(self, client: TestClient, flat_a101: dict) -> None:
        """Test filtering by flat and status."""
        _create_flat(client, "B1")
        pending = _submit(client, "A-101")
        approved = _submit(client, "A-101")
        _approve(client, approved["id"], 1050)
        _submit(client, "B1")

        by_flat = client.get("/api/readings/", params={"flat_id": "A-101"}).json()
        assert {r["id"] for r in by_flat} == {pending["id"], approved["id"]}

        by_status = client.get("/api/readings/", params={"status": "approved"}).json()
        assert [r["id"] for r in by_status] == [approved["id"]]

        assert len(client.get("/api/readings/").json()) == 3

    def test_invalid_status_filter(self, client: TestClient) -> None:
        """Test unknown status values fail request validation."""
        response = client.get("/api/readings/", params={"status": "archived"})
        assert response.status_code == 422

    def test_approved_ordered_by_approval_time(self, test_db: Session) -> None:
        """Test approved readings list most recently approved first."""
        create_flat(test_db, FlatCreate(flat_id="E2", initial_reading=Decimal("0")))
        channel = EventChannel()
        start = datetime(2025, 2, 1, tzinfo=UTC)
        older = reading_service.submit_reading(test_db, "E2", submitted_at=start, events=channel)
        newer = reading_service.submit_reading(
            test_db, "E2", submitted_at=start + timedelta(days=1), events=channel
        )
        # Approve the newer submission first so approval order differs
        reading_service.approve_reading(test_db, newer.id, "10", events=channel)
        reading_service.approve_reading(test_db, older.id, "20", events=channel)

        listed = reading_service.list_readings(test_db, "E2", ReadingStatus.APPROVED)
        assert [r.id for r in listed] == [older.id, newer.id]

        everything = reading_service.list_readings(test_db, "E2")
        assert [r.id for r in everything] == [newer.id, older.id]


class TestConcurrency:
    """Tests for serialization of transitions on one flat."""

    def test_lost_update_is_detected(
        self, tmp_path, monkeypatch: pytest.MonkeyPatch, pricing: PricingSnapshot
    ) -> None:
        """Test a concurrent ledger change aborts the approval without side effects."""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'ledger.db'}", connect_args={"check_same_thread": False}
        )
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        db = factory()
        channel = EventChannel()
        try:
            create_flat(db, FlatCreate(flat_id="F2", initial_reading=Decimal("100")))
            reading = reading_service.submit_reading(db, "F2", events=channel)

            original = reading_service.resolve_previous_reading

            def racing_resolve(approved, initial):
                other = factory()
                try:
                    flat = other.query(Flat).filter(Flat.flat_id == "F2").one()
                    flat.ledger_version += 1
                    other.commit()
                finally:
                    other.close()
                return original(approved, initial)

            monkeypatch.setattr(reading_service, "resolve_previous_reading", racing_resolve)
            with pytest.raises(ConcurrencyError):
                reading_service.approve_reading(db, reading.id, "150", pricing, events=channel)

            assert reading_service.get_reading(db, reading.id).status == ReadingStatus.PENDING
            assert reading_service.get_reading(db, reading.id).amount is None

            monkeypatch.setattr(reading_service, "resolve_previous_reading", original)
            approved = reading_service.approve_reading(
                db, reading.id, "150", pricing, events=channel
            )
            assert approved.units_used == Decimal("50")
        finally:
            db.close()
            engine.dispose()

    def test_concurrency_error_is_retryable(self) -> None:
        """Test lost updates are reported as retryable dependency failures."""
        error = ConcurrencyError("flat updated concurrently")
        assert isinstance(error, DependencyError)
        assert error.status_code == 503
        assert error.retryable

    def test_flat_guard_times_out(
        self, test_db: Session, monkeypatch: pytest.MonkeyPatch, pricing: PricingSnapshot
    ) -> None:
        """Test a transition waiting on a busy flat fails fast instead of blocking."""
        monkeypatch.setattr(settings, "STORE_TIMEOUT_SECONDS", 0.05)
        create_flat(test_db, FlatCreate(flat_id="G2"))
        channel = EventChannel()
        reading = reading_service.submit_reading(test_db, "G2", events=channel)

        with reading_service.flat_guard("G2"):
            with pytest.raises(DependencyError):
                reading_service.approve_reading(test_db, reading.id, "5", pricing, events=channel)

        approved = reading_service.approve_reading(
            test_db, reading.id, "5", pricing, events=channel
        )
        assert approved.status == ReadingStatus.APPROVED

    def test_reload_failure_is_a_dependency_error(
        self, test_db: Session, monkeypatch: pytest.MonkeyPatch, pricing: PricingSnapshot
    ) -> None:
        """Test a store failure while reloading the reading is reported as retryable."""
        create_flat(test_db, FlatCreate(flat_id="H2"))
        channel = EventChannel()
        received: list = []
        channel.subscribe(received.append)
        reading = reading_service.submit_reading(test_db, "H2", events=channel)

        def failing_refresh(instance, *args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(test_db, "refresh", failing_refresh)
        with pytest.raises(DependencyError) as exc_info:
            reading_service.approve_reading(test_db, reading.id, "5", pricing, events=channel)
        assert not isinstance(exc_info.value, ConcurrencyError)
        assert [e.kind.value for e in received] == ["submitted"]

    def test_invalid_transition_message(self) -> None:
        """Test transition errors name the action and current status."""
        error = InvalidTransitionError("approve", "approved")
        assert "approve" in error.detail
        assert "approved" in error.detail
