"""
Tests for prescription status transitions, cancellation and expiry.
"""
from datetime import date, timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from pharmacy_fill.exceptions import ConcurrentModification, InvalidState

from fulfillment import lifecycle, services
from fulfillment.models import Prescription, PrescriptionStatus

S = PrescriptionStatus


class TestTransitionTable:

    @pytest.mark.parametrize("current,target", [
        (S.PENDING, S.PARTIALLY_FILLED),
        (S.PENDING, S.FILLED),
        (S.PARTIALLY_FILLED, S.PARTIALLY_FILLED),
        (S.PARTIALLY_FILLED, S.FILLED),
        (S.FILLED, S.READY_FOR_DELIVERY),
        (S.READY_FOR_DELIVERY, S.DELIVERED),
        (S.PENDING, S.EXPIRED),
    ])
    def test_allowed(self, current, target):
        assert lifecycle.can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (S.PENDING, S.READY_FOR_DELIVERY),
        (S.FILLED, S.FILLED),
        (S.FILLED, S.EXPIRED),
        (S.READY_FOR_DELIVERY, S.CANCELLED),
        (S.DELIVERED, S.CANCELLED),
        (S.CANCELLED, S.PENDING),
        (S.EXPIRED, S.FILLED),
    ])
    def test_rejected(self, current, target):
        assert not lifecycle.can_transition(current, target)


@pytest.mark.django_db
class TestCancel:

    def test_cancel_pending(self, prescription):
        lifecycle.cancel(prescription, "patient request")
        reloaded = Prescription.objects.get(id=prescription.id)
        assert reloaded.status == S.CANCELLED
        assert reloaded.version == 1
        assert "Cancelled: patient request" in reloaded.notes

    def test_cancel_appends_to_existing_notes(self, make_prescription):
        prescription = make_prescription(notes="fragile")
        lifecycle.cancel(prescription, "duplicate")
        assert prescription.notes == "fragile | Cancelled: duplicate"

    def test_cancel_twice_raises(self, prescription):
        lifecycle.cancel(prescription)
        with pytest.raises(InvalidState):
            lifecycle.cancel(prescription)

    def test_cannot_cancel_ready_for_delivery(self, make_prescription):
        prescription = make_prescription(status=S.READY_FOR_DELIVERY)
        with pytest.raises(InvalidState):
            lifecycle.cancel(prescription)

    def test_stale_copy_raises_concurrent_modification(self, prescription):
        stale = Prescription.objects.get(id=prescription.id)
        lifecycle.cancel(prescription)
        stale.status = S.PENDING
        with pytest.raises(ConcurrentModification):
            lifecycle.apply_transition(stale, S.FILLED)


@pytest.mark.django_db
class TestDelivery:

    def test_pending_cannot_be_ready(self, prescription):
        with pytest.raises(InvalidState):
            lifecycle.mark_ready_for_delivery(prescription)

    def test_filled_to_delivered(self, make_prescription):
        prescription = make_prescription(status=S.FILLED)
        lifecycle.mark_ready_for_delivery(prescription)
        assert prescription.status == S.READY_FOR_DELIVERY
        lifecycle.mark_delivered(prescription)
        assert prescription.status == S.DELIVERED
        assert prescription.version == 2

    def test_delivered_is_terminal(self, make_prescription):
        prescription = make_prescription(status=S.DELIVERED)
        for target in S:
            assert not lifecycle.can_transition(prescription.status, target)


@pytest.mark.django_db
class TestExpiry:

    def test_lazy_expiry_on_read(self, make_prescription):
        prescription = make_prescription(valid_until=timezone.localdate() - timedelta(days=1))
        loaded = services.get_prescription(prescription.id)
        assert loaded.status == S.EXPIRED
        assert loaded.version == 1

    def test_valid_until_today_is_still_valid(self, make_prescription):
        prescription = make_prescription(valid_until=timezone.localdate())
        assert services.get_prescription(prescription.id).status == S.PENDING

    def test_filled_prescription_does_not_expire(self, make_prescription):
        prescription = make_prescription(status=S.FILLED, valid_until=timezone.localdate() - timedelta(days=1))
        assert not lifecycle.expire_if_due(prescription)
        assert prescription.status == S.FILLED

    def test_no_valid_until_never_expires(self, make_prescription):
        prescription = make_prescription(valid_until=None)
        assert not lifecycle.is_overdue(prescription, date(2999, 1, 1))

    def test_sweep_only_touches_fillable(self, make_prescription):
        past = timezone.localdate() - timedelta(days=3)
        make_prescription(valid_until=past)
        make_prescription(valid_until=past, status=S.PARTIALLY_FILLED)
        make_prescription(valid_until=past, status=S.FILLED)
        make_prescription()

        assert lifecycle.expire_overdue() == 2
        assert Prescription.objects.filter(status=S.EXPIRED).count() == 2
        assert lifecycle.expire_overdue() == 0


@pytest.mark.django_db
class TestExpireCommand:

    def test_expires_with_given_date(self, prescription):
        out = StringIO()
        future = (timezone.localdate() + timedelta(days=365)).isoformat()
        call_command("expire_prescriptions", "--date", future, stdout=out)
        assert "1" in out.getvalue()
        assert Prescription.objects.get(id=prescription.id).status == S.EXPIRED

    def test_bad_date(self):
        with pytest.raises(CommandError):
            call_command("expire_prescriptions", "--date", "18/10/2026")
