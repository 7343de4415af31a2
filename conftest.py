"""
Pytest configuration and shared fixtures.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone


@pytest.fixture
def amoxicillin():
    """Prescribed item A: qty 10."""
    from fulfillment.drafting import PrescribedItemInfo

    return PrescribedItemInfo(id=1, medication_name="Amoxicillin", generic_name="amoxicillin", quantity_prescribed=10)


@pytest.fixture
def ibuprofen():
    """Prescribed item B: qty 20."""
    from fulfillment.drafting import PrescribedItemInfo

    return PrescribedItemInfo(id=2, medication_name="Ibuprofen", generic_name="ibuprofen", quantity_prescribed=20)


@pytest.fixture
def amoxicillin_entry():
    from fulfillment.catalog import InventoryEntry

    return InventoryEntry(
        id=101, name="Amoxicillin 500mg", generic_name="amoxicillin",
        quantity_on_hand=15, unit_price=Decimal("5.00"),
    )


@pytest.fixture
def static_catalog(amoxicillin_entry):
    from fulfillment.catalog import InventoryEntry, StaticInventoryCatalog

    return StaticInventoryCatalog([
        amoxicillin_entry,
        InventoryEntry(id=102, name="Amoxil", generic_name="amoxicillin", quantity_on_hand=3, unit_price=Decimal("6.50")),
        InventoryEntry(id=103, name="Paracetamol", generic_name="acetaminophen", quantity_on_hand=100, unit_price=Decimal("0.20")),
    ])


@pytest.fixture
def inventory(db):
    """InventoryItem rows: Amoxicillin (stock 15 @ 5.00), Advil (stock 200 @ 0.50)."""
    from fulfillment.models import InventoryItem

    amox = InventoryItem.objects.create(
        name="Amoxicillin 500mg", generic_name="amoxicillin",
        quantity=15, unit_price=Decimal("5.00"), unit="capsule", category="antibiotic",
    )
    advil = InventoryItem.objects.create(
        name="Advil", generic_name="ibuprofen",
        quantity=200, unit_price=Decimal("0.50"), unit="tablet", category="analgesic",
    )
    return {"amoxicillin": amox, "advil": advil}


@pytest.fixture
def make_prescription(db):
    """Factory: make_prescription(items=[(name, qty), ...], **fields)."""
    from fulfillment.models import PrescribedItem, Prescription

    def _make(items=(("Amoxicillin", 10), ("Ibuprofen", 20)), **fields):
        fields.setdefault("patient_name", "John Doe")
        fields.setdefault("prescriber_name", "Dr. Jane Smith")
        fields.setdefault("valid_until", timezone.localdate() + timedelta(days=30))
        prescription = Prescription.objects.create(**fields)
        for name, qty in items:
            PrescribedItem.objects.create(
                prescription=prescription,
                medication_name=name,
                generic_name=name.lower(),
                dosage="1 tablet",
                quantity_prescribed=qty,
            )
        return prescription

    return _make


@pytest.fixture
def prescription(make_prescription):
    return make_prescription()


@pytest.fixture
def issue_payload():
    """Payload for POST /api/prescriptions/."""
    return {
        "patient_name": "John Doe",
        "prescriber_name": "Dr. Jane Smith",
        "valid_until": (timezone.localdate() + timedelta(days=30)).isoformat(),
        "items": [
            {"medication_name": "Amoxicillin", "dosage": "500mg", "quantity_prescribed": 10},
            {"medication_name": "Ibuprofen", "dosage": "200mg", "quantity_prescribed": 20},
        ],
    }
