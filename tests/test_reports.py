from datetime import datetime

import reports


def _insert_order(mongo, status="processing", unit_price=100.0, quantity=1, created_at=None):
    mongo["order"].insert_one(
        {
            "customer_id": "c",
            "beekeeper_id": "b",
            "product_id": "p",
            "quantity": quantity,
            "unit_price": unit_price,
            "status": status,
            "created_at": created_at or datetime(2024, 6, 1),
            "status_history": [],
        }
    )


def test_trailing_months_crosses_year_boundary():
    months = reports.trailing_months(datetime(2024, 2, 10), months=4)
    assert months == ["2023-11", "2023-12", "2024-01", "2024-02"]
    assert len(reports.trailing_months(datetime(2024, 6, 15))) == 12


def test_empty_order_report():
    report = reports.order_report(now=datetime(2024, 6, 15))
    assert report["total_orders"] == 0
    assert report["total_revenue"] == 0
    assert set(report["by_status"].values()) == {0}
    assert [m["count"] for m in report["monthly"]] == [0] * 12


def test_order_report_totals_and_buckets(mongo):
    rows = [
        ("processing", 250.0, 2, datetime(2024, 6, 3)),
        ("shipped", 120.5, 1, datetime(2024, 5, 20)),
        ("cancelled", 80.0, 3, datetime(2023, 7, 1)),
        ("completed", 99.99, 4, datetime(2023, 6, 30)),
    ]
    for status, price, qty, created in rows:
        _insert_order(mongo, status=status, unit_price=price, quantity=qty, created_at=created)

    report = reports.order_report(now=datetime(2024, 6, 15))
    assert report["total_orders"] == 4
    assert report["total_revenue"] == round(sum(p * q for _, p, q, _ in rows), 2)
    assert report["by_status"] == {"processing": 1, "shipped": 1, "delivered": 0, "completed": 1, "cancelled": 1}

    monthly = {m["month"]: m["count"] for m in report["monthly"]}
    assert list(monthly)[0] == "2023-07"
    assert list(monthly)[-1] == "2024-06"
    assert monthly["2023-07"] == 1
    assert monthly["2024-05"] == 1
    assert monthly["2024-06"] == 1
    # June 2023 falls outside the trailing window
    assert sum(monthly.values()) == 3


def test_appointment_report(client, mongo, make_user, customer, admin_user, book):
    busy = make_user("beekeeper", name="Busy Bee")
    quiet = make_user("beekeeper", name="Quiet Bee")
    assignments = [busy, busy, quiet, None]
    ids = []
    for keeper in assignments:
        appointment_id = book(customer)
        ids.append(appointment_id)
        if keeper:
            client.patch(
                f"/api/admin/appointments/{appointment_id}/assign",
                json={"beekeeper_id": keeper["_id"]},
                headers=admin_user["headers"],
            )
    for appointment_id, keeper, rating in ((ids[0], busy, 5), (ids[2], quiet, 4)):
        client.patch(f"/api/appointments/{appointment_id}/status", json={"status": "completed"}, headers=keeper["headers"])
        client.post(f"/api/appointments/{appointment_id}/review", json={"rating": rating}, headers=customer["headers"])

    report = reports.appointment_report()
    assert report["total_appointments"] == 4
    assert report["by_status"] == {"pending": 1, "accepted": 1, "completed": 2, "cancelled": 0}
    assert report["top_beekeepers"][0] == {"beekeeper_id": busy["_id"], "name": "Busy Bee", "count": 2}
    assert report["top_beekeepers"][1]["count"] == 1
    assert report["reviewed"] == 2
    assert report["average_rating"] == 4.5

    assert len(reports.appointment_report(top_n=1)["top_beekeepers"]) == 1


def test_report_endpoints(client, mongo, admin_user, customer, beekeeper, make_product):
    product = make_product(beekeeper, price=40.0, stock=10)
    client.post("/api/orders", json={"product_id": product["_id"], "quantity": 3}, headers=customer["headers"])

    res = client.get("/api/admin/reports/orders", headers=admin_user["headers"])
    assert res.status_code == 200
    body = res.json()
    assert body["total_orders"] == 1
    assert body["total_revenue"] == 120.0
    assert body["monthly"][-1]["count"] == 1

    res = client.get("/api/admin/reports/appointments?top=3", headers=admin_user["headers"])
    assert res.status_code == 200
    assert res.json()["average_rating"] is None

    assert client.get("/api/admin/reports/appointments?top=0", headers=admin_user["headers"]).status_code == 422
