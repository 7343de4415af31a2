"""
Integration tests: full API flow.
"""
import json

import pytest
from django.test import Client

from fulfillment.models import FulfillmentRound, InventoryItem, Prescription


def post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type="application/json")


@pytest.mark.django_db
class TestIssueAndList:

    def test_issue_prescription(self, issue_payload):
        client = Client()
        resp = post_json(client, "/api/prescriptions/", issue_payload)
        assert resp.status_code == 201
        data = resp.json()
        assert data["success"] is True
        assert data["data"]["status"] == "pending"
        assert data["data"]["total_amount"] == "0.00"
        assert data["data"]["prescription_number"].startswith("RX")
        assert [i["quantity_remaining"] for i in data["data"]["items"]] == [10, 20]
        assert Prescription.objects.filter(id=data["data"]["id"]).exists()

    def test_list_filters_by_status(self, make_prescription):
        make_prescription(patient_name="Alice")
        make_prescription(patient_name="Bob", status="filled")
        client = Client()

        resp = client.get("/api/prescriptions/", {"status": "filled"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["total"] == 1
        assert data["prescriptions"][0]["patient_name"] == "Bob"

    def test_list_search_and_paging(self, make_prescription):
        for i in range(3):
            make_prescription(patient_name=f"Carol {i}")
        make_prescription(patient_name="Dave")
        client = Client()

        resp = client.get("/api/prescriptions/", {"search": "carol", "limit": 2, "page": 2})
        data = resp.json()["data"]
        assert data["total"] == 3
        assert data["total_pages"] == 2
        assert data["current_page"] == 2
        assert len(data["prescriptions"]) == 1

    def test_list_unknown_status(self):
        resp = Client().get("/api/prescriptions/", {"status": "lost"})
        assert resp.status_code == 400


@pytest.mark.django_db
class TestFillFlow:

    def test_fill_then_deliver(self, prescription, inventory):
        client = Client()
        amox_item, ibu_item = prescription.items.all()

        resp = client.get(f"/api/prescriptions/{prescription.id}/candidates/{amox_item.id}/", {"q": "amox"})
        assert resp.status_code == 200
        candidates = resp.json()["data"]["results"]
        assert [c["id"] for c in candidates] == [inventory["amoxicillin"].id]
        assert candidates[0]["unit_price"] == "5.00"

        payload = {
            "version": 0,
            "totalAmount": "55.00",
            "dispensedBy": "pharmacist-1",
            "lines": [
                {"lineId": amox_item.id, "sourceKind": "inventory_matched",
                 "inventoryRef": inventory["amoxicillin"].id, "quantityDispensed": 10,
                 "unitPrice": "5.00", "status": "filled"},
                {"lineId": ibu_item.id, "sourceKind": "unavailable", "status": "out_of_stock"},
            ],
        }
        resp = post_json(client, f"/api/prescriptions/{prescription.id}/fill/", payload)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "partially_filled"
        assert data["total_amount"] == "55.00"
        assert data["version"] == 1
        assert data["rounds"][0]["subtotal"] == "50.00"
        assert data["rounds"][0]["tax"] == "5.00"
        assert [line["status"] for line in data["rounds"][0]["lines"]] == ["filled", "out_of_stock"]
        assert data["items"][1]["quantity_remaining"] == 20

        resp = post_json(client, f"/api/prescriptions/{prescription.id}/ready-for-delivery/", {})
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "ready_for_delivery"

        resp = post_json(client, f"/api/prescriptions/{prescription.id}/delivered/", {})
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "delivered"
        assert resp.json()["data"]["is_terminal"] is True

    def test_top_up_round_over_http(self, prescription):
        client = Client()
        amox_item, ibu_item = prescription.items.all()
        first = {
            "lines": [
                {"lineId": amox_item.id, "sourceKind": "manual", "quantityDispensed": 10, "unitPrice": "1.00"},
                {"lineId": ibu_item.id, "sourceKind": "manual", "quantityDispensed": 5, "unitPrice": "1.00"},
            ],
        }
        assert post_json(client, f"/api/prescriptions/{prescription.id}/fill/", first).status_code == 200

        second = {
            "version": 1,
            "lines": [{"lineId": ibu_item.id, "sourceKind": "manual", "quantityDispensed": 15, "unitPrice": "1.00"}],
        }
        resp = post_json(client, f"/api/prescriptions/{prescription.id}/fill/", second)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "filled"
        assert data["total_amount"] == "33.00"
        assert len(data["rounds"]) == 2

    def test_cancel(self, prescription):
        resp = post_json(Client(), f"/api/prescriptions/{prescription.id}/cancel/", {"reason": "patient request"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "cancelled"
        assert "patient request" in data["notes"]

    def test_detail(self, prescription):
        resp = Client().get(f"/api/prescriptions/{prescription.id}/")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["id"] == prescription.id
        assert data["rounds"] == []
        assert data["is_terminal"] is False


@pytest.mark.django_db
class TestInventoryAndStats:

    def test_inventory_search(self, inventory):
        resp = Client().get("/api/inventory/search/", {"q": "ibuprofen"})
        assert resp.status_code == 200
        results = resp.json()["data"]["results"]
        assert [r["name"] for r in results] == ["Advil"]

    def test_inventory_search_without_term_lists_active(self, inventory):
        InventoryItem.objects.create(name="Hidden", quantity=1, is_active=False)
        results = Client().get("/api/inventory/search/").json()["data"]["results"]
        assert len(results) == 2

    def test_stats(self, prescription, inventory):
        client = Client()
        amox_item, ibu_item = prescription.items.all()
        post_json(client, f"/api/prescriptions/{prescription.id}/fill/", {
            "lines": [
                {"lineId": amox_item.id, "sourceKind": "inventory_matched", "inventoryRef": inventory["amoxicillin"].id},
                {"lineId": ibu_item.id, "sourceKind": "unavailable"},
            ],
        })
        assert FulfillmentRound.objects.count() == 1

        resp = client.get("/api/prescriptions/stats/", {"period": 30})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status_counts"]["partially_filled"] == 1
        assert data["revenue_in_period"] == "55.00"
        assert data["top_medications"][0]["medication_name"] == "Amoxicillin"

    def test_stats_period_is_capped(self):
        resp = Client().get("/api/prescriptions/stats/", {"period": 1000000000})
        assert resp.status_code == 200
        assert resp.json()["data"]["period_days"] == 3650

    def test_metrics_endpoint(self):
        resp = Client().get("/metrics")
        assert resp.status_code == 200
        assert b"fulfillment_committed_total" in resp.content

    def test_metrics_filtered_by_name(self):
        resp = Client().get("/metrics", {"name[]": "fulfillment_amount_total"})
        assert resp.status_code == 200
        assert b"fulfillment_amount_total" in resp.content
        assert b"http_5xx_total" not in resp.content

    def test_metrics_rejects_post(self):
        resp = Client().post("/metrics")
        assert resp.status_code == 405
        assert resp.json()["code"] == "METHOD_NOT_ALLOWED"
