"""
Pest-removal appointments.

    pending  -> accepted   (admin assigns a beekeeper)
    pending  -> cancelled  (customer cancels)
    accepted -> completed  (assigned beekeeper finishes the job)

completed and cancelled are terminal.
"""
import logging
from typing import List, Optional

from pydantic import ValidationError
from pymongo import ReturnDocument

from database import collection, create_document, lookup_users, serialize, to_object_id
from errors import Forbidden, InvalidInput, InvalidState, NotFound
from schemas import APPOINTMENT_STATUSES, Appointment, ContactInfo, Location, Schedule
from workflow import history_entry, transition

logger = logging.getLogger(__name__)

SERVICE_CHARGE = 500

TRANSITIONS = {
    "pending": frozenset({"accepted", "cancelled"}),
    "accepted": frozenset({"completed"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


def _load(appointment_id: str) -> dict:
    doc = collection("appointment").find_one({"_id": to_object_id(appointment_id)})
    if not doc:
        raise NotFound("Appointment not found")
    return doc


def get_appointment(appointment_id: str) -> dict:
    return serialize(_load(appointment_id))


def book(
    customer_id: str,
    full_name: str,
    email: str,
    phone: str,
    date: str,
    time: str,
    address: str,
    hivespot: Optional[str] = None,
    severity: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    photo_path: Optional[str] = None,
) -> str:
    if not collection("user").find_one({"_id": to_object_id(customer_id)}, {"_id": 1}):
        raise InvalidInput("User not found. Please login again.")
    try:
        appointment = Appointment(
            customer_id=customer_id,
            contact=ContactInfo(full_name=full_name, email=email, phone=phone),
            schedule=Schedule(date=date, time=time),
            location=Location(hivespot=hivespot, address=address, latitude=latitude, longitude=longitude),
            severity=severity,
            photo_path=photo_path,
            service_charge=SERVICE_CHARGE,
            status="pending",
            status_history=[history_entry("pending")],
        )
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err["loc"])
        raise InvalidInput(f"Invalid appointment field {field}: {err['msg']}")
    appointment_id = create_document("appointment", appointment)
    logger.info(f"Customer {customer_id} booked appointment {appointment_id} for {date} {time}")
    return appointment_id


def list_for(user_id: str, role: str) -> List[dict]:
    if role == "beekeeper":
        docs = list(collection("appointment").find({"beekeeper_id": user_id}).sort([("schedule.date", -1), ("_id", -1)]))
        customers = lookup_users((d.get("customer_id") for d in docs), fields=("name", "email", "phone"))
        out = []
        for d in docs:
            item = serialize(d)
            item["customer"] = customers.get(d.get("customer_id"))
            out.append(item)
        return out
    docs = collection("appointment").find({"customer_id": user_id}).sort([("schedule.date", -1), ("_id", -1)])
    return [serialize(d) for d in docs]


def list_all() -> List[dict]:
    docs = list(collection("appointment").find().sort([("schedule.date", -1), ("_id", -1)]))
    people = lookup_users([d.get("customer_id") for d in docs] + [d.get("beekeeper_id") for d in docs])
    out = []
    for d in docs:
        item = serialize(d)
        item["customer"] = people.get(d.get("customer_id"))
        item["beekeeper"] = people.get(d.get("beekeeper_id"))
        out.append(item)
    return out


def cancel(appointment_id: str, customer_id: str) -> dict:
    doc = _load(appointment_id)
    if doc.get("customer_id") != customer_id:
        raise Forbidden("User not authorized")
    if doc.get("status") != "pending":
        raise InvalidState("Only pending appointments can be cancelled.")
    return serialize(transition("appointment", doc, "cancelled", TRANSITIONS))


def submit_review(appointment_id: str, customer_id: str, rating: int, review: Optional[str] = None) -> dict:
    doc = _load(appointment_id)
    if doc.get("customer_id") != customer_id:
        raise Forbidden("User not authorized")
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise InvalidInput("Rating must be an integer from 1 to 5")
    if doc.get("status") != "completed":
        raise InvalidState("Only completed appointments can be reviewed.")
    updated = collection("appointment").find_one_and_update(
        {"_id": doc["_id"]},
        {"$set": {"rating": rating, "review": review.strip() if review else review}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info(f"Customer {customer_id} rated appointment {appointment_id}: {rating}")
    return serialize(updated)


def update_status(appointment_id: str, caller_id: str, caller_role: str, new_status: str) -> dict:
    if new_status not in APPOINTMENT_STATUSES:
        raise InvalidInput("Invalid status")
    doc = _load(appointment_id)
    if caller_role != "admin" and (not doc.get("beekeeper_id") or doc["beekeeper_id"] != caller_id):
        raise Forbidden("You are not authorized to update this appointment.")
    if new_status == "accepted" and not doc.get("beekeeper_id"):
        raise InvalidState("Assign a beekeeper to accept this appointment.")
    return serialize(transition("appointment", doc, new_status, TRANSITIONS))


def assign(appointment_id: str, beekeeper_id: str) -> dict:
    beekeeper = collection("user").find_one({"_id": to_object_id(beekeeper_id)})
    if not beekeeper or beekeeper.get("role") != "beekeeper":
        raise InvalidInput("beekeeper_id must be a registered beekeeper")
    if beekeeper.get("is_blocked") or not beekeeper.get("is_approved"):
        raise InvalidInput("Beekeeper is not approved for jobs")
    doc = _load(appointment_id)
    updated = transition("appointment", doc, "accepted", TRANSITIONS, extra={"beekeeper_id": beekeeper_id})
    logger.info(f"Appointment {appointment_id} assigned to beekeeper {beekeeper_id}")
    return serialize(updated)
