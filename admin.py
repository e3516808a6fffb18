import logging
from typing import List

from database import collection, get_documents, serialize, to_object_id
from errors import Conflict, InvalidInput, InvalidState, NotFound
from schemas import ROLES, utcnow

logger = logging.getLogger(__name__)


def list_users() -> List[dict]:
    return [serialize(u) for u in get_documents("user", sort=[("name", 1)])]


def _set_user_fields(user_id: str, fields: dict) -> dict:
    res = collection("user").update_one({"_id": to_object_id(user_id)}, {"$set": {**fields, "updated_at": utcnow()}})
    if res.matched_count == 0:
        raise NotFound("User not found")
    logger.info(f"User {user_id} updated by admin: {fields}")
    return serialize(collection("user").find_one({"_id": to_object_id(user_id)}))


def set_role(user_id: str, role: str) -> dict:
    if role not in ROLES:
        raise InvalidInput(f"Role must be one of {', '.join(ROLES)}")
    return _set_user_fields(user_id, {"role": role})


def set_blocked(user_id: str, is_blocked: bool) -> dict:
    return _set_user_fields(user_id, {"is_blocked": bool(is_blocked)})


def approve(user_id: str) -> dict:
    return _set_user_fields(user_id, {"is_approved": True})


def delete_user(user_id: str, admin_id: str) -> None:
    oid = to_object_id(user_id)
    if not collection("user").find_one({"_id": oid}, {"_id": 1}):
        raise NotFound("User not found")
    if user_id == admin_id:
        raise InvalidState("Administrators cannot delete their own account")
    refs = {
        "appointments": collection("appointment").count_documents(
            {"$or": [{"customer_id": user_id}, {"beekeeper_id": user_id}]}
        ),
        "orders": collection("order").count_documents({"$or": [{"customer_id": user_id}, {"beekeeper_id": user_id}]}),
        "products": collection("product").count_documents({"owner_beekeeper_id": user_id}),
    }
    in_use = {k: v for k, v in refs.items() if v}
    if in_use:
        detail = ", ".join(f"{v} {k}" for k, v in in_use.items())
        logger.warning(f"Refused to delete user {user_id}: still referenced by {detail}")
        raise Conflict(f"User is still referenced by {detail}; block the account instead")
    collection("user").delete_one({"_id": oid})
    logger.info(f"User {user_id} deleted by admin {admin_id}")


def delete_all(collection_name: str, admin_id: str) -> int:
    res = collection(collection_name).delete_many({})
    logger.warning(f"Admin {admin_id} deleted all {res.deleted_count} documents from {collection_name}")
    return res.deleted_count
