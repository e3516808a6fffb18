"""
Status changes for appointments and orders.

Each record carries `status` and an append-only `status_history`. A change is
a single conditional update keyed on the status the caller saw, which sets the
new status and pushes the history entry together, so the last history entry
always matches the current status.
"""
import logging
from typing import Dict, FrozenSet, Optional

from pymongo import ReturnDocument

from database import collection, to_object_id
from errors import InvalidTransition, NotFound
from schemas import StatusEntry

logger = logging.getLogger(__name__)

Transitions = Dict[str, FrozenSet[str]]


def history_entry(status: str) -> dict:
    return StatusEntry(status=status).model_dump()


def can_transition(transitions: Transitions, current: str, new: str) -> bool:
    return new in transitions.get(current, frozenset())


def transition(
    collection_name: str,
    doc: dict,
    new_status: str,
    transitions: Transitions,
    extra: Optional[dict] = None,
) -> dict:
    """Move `doc` to `new_status` and return the stored document after the change."""
    label = collection_name.capitalize()
    current = doc.get("status")
    if not can_transition(transitions, current, new_status):
        raise InvalidTransition(f"{label} cannot move from {current} to {new_status}")
    oid = to_object_id(str(doc["_id"]))
    entry = history_entry(new_status)
    updated = collection(collection_name).find_one_and_update(
        {"_id": oid, "status": current},
        {
            "$set": {"status": new_status, "updated_at": entry["updated_at"], **(extra or {})},
            "$push": {"status_history": entry},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        if collection(collection_name).find_one({"_id": oid}, {"_id": 1}) is None:
            raise NotFound(f"{label} not found")
        # someone else changed the status first
        raise InvalidTransition(f"{label} status changed concurrently; reload and retry")
    logger.info(f"{label} {oid}: {current} -> {new_status}")
    return updated
