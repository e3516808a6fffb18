"""
Dashboard aggregates over orders and appointments. Nothing here is stored;
every report is recomputed from the collections on each call.
"""
from datetime import datetime
from typing import List, Optional

from database import collection, lookup_users
from schemas import APPOINTMENT_STATUSES, ORDER_STATUSES, utcnow

MONTHS_WINDOW = 12


def _counts_by_status(collection_name: str, statuses) -> dict:
    counts = {s: 0 for s in statuses}
    for row in collection(collection_name).aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}]):
        counts[row["_id"]] = row["count"]
    return counts


def trailing_months(now: datetime, months: int = MONTHS_WINDOW) -> List[str]:
    """YYYY-MM keys for the last `months` months, oldest first, ending with `now`'s month."""
    keys = []
    year, month = now.year, now.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def order_report(now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    revenue_rows = list(
        collection("order").aggregate(
            [
                {
                    "$group": {
                        "_id": None,
                        "count": {"$sum": 1},
                        "revenue": {"$sum": {"$multiply": ["$unit_price", "$quantity"]}},
                    }
                }
            ]
        )
    )
    totals = revenue_rows[0] if revenue_rows else {"count": 0, "revenue": 0}

    months = trailing_months(now)
    monthly = {m: 0 for m in months}
    for doc in collection("order").find({}, {"created_at": 1}):
        created = doc.get("created_at")
        if created is None:
            continue
        key = f"{created.year:04d}-{created.month:02d}"
        if key in monthly:
            monthly[key] += 1

    return {
        "total_orders": totals["count"],
        "total_revenue": round(float(totals["revenue"] or 0), 2),
        "by_status": _counts_by_status("order", ORDER_STATUSES),
        "monthly": [{"month": m, "count": monthly[m]} for m in months],
    }


def appointment_report(top_n: int = 5) -> dict:
    top_rows = list(
        collection("appointment").aggregate(
            [
                {"$match": {"beekeeper_id": {"$ne": None}}},
                {"$group": {"_id": "$beekeeper_id", "count": {"$sum": 1}}},
                {"$sort": {"count": -1}},
                {"$limit": top_n},
            ]
        )
    )
    names = lookup_users(r["_id"] for r in top_rows)
    top_beekeepers = [
        {
            "beekeeper_id": r["_id"],
            "name": names.get(r["_id"], {}).get("name"),
            "count": r["count"],
        }
        for r in top_rows
    ]

    ratings = [d["rating"] for d in collection("appointment").find({"rating": {"$ne": None}}, {"rating": 1})]
    return {
        "total_appointments": collection("appointment").count_documents({}),
        "by_status": _counts_by_status("appointment", APPOINTMENT_STATUSES),
        "top_beekeepers": top_beekeepers,
        "reviewed": len(ratings),
        "average_rating": round(sum(ratings) / len(ratings), 2) if ratings else None,
    }
