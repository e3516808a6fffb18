"""
Honey product listings and stock.

reserve_stock is the only place stock goes down: the availability check and
the decrement are one conditional update, so concurrent orders cannot sell
the same units twice.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from pymongo import ReturnDocument

from database import collection, create_document, lookup_users, serialize, to_object_id
from errors import Forbidden, InsufficientStock, InvalidInput, NotFound
from schemas import Product, utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "price", "stock_quantity", "image_path")


def _with_owner(products: List[dict]) -> List[dict]:
    owners = lookup_users(p.get("owner_beekeeper_id") for p in products)
    out = []
    for p in products:
        item = serialize(p)
        item["beekeeper"] = owners.get(p.get("owner_beekeeper_id"))
        out.append(item)
    return out


def list_available() -> List[dict]:
    products = list(collection("product").find({"stock_quantity": {"$gt": 0}}))
    return _with_owner(products)


def list_mine(beekeeper_id: str) -> List[dict]:
    return [serialize(p) for p in collection("product").find({"owner_beekeeper_id": beekeeper_id})]


def list_all() -> List[dict]:
    return _with_owner(list(collection("product").find()))


def get_product(product_id: str) -> dict:
    doc = collection("product").find_one({"_id": to_object_id(product_id)})
    if not doc:
        raise NotFound("Product not found")
    return serialize(doc)


def create_product(
    beekeeper_id: str,
    name: str,
    price: float,
    stock_quantity: int = 0,
    description: str = "",
    image_path: Optional[str] = None,
) -> dict:
    try:
        product = Product(
            name=name,
            description=description or "",
            price=price,
            stock_quantity=stock_quantity,
            owner_beekeeper_id=beekeeper_id,
            image_path=image_path,
        )
    except ValidationError as e:
        raise InvalidInput(f"Invalid product: {e.errors()[0]['msg']}")
    product_id = create_document("product", product)
    logger.info(f"Beekeeper {beekeeper_id} listed product {product_id}")
    return get_product(product_id)


def get_editable_product(product_id: str, caller_id: str, caller_role: str, action: str = "update") -> dict:
    """Load a product the caller may change: its owner, or any admin."""
    product = get_product(product_id)
    if caller_role != "admin" and product.get("owner_beekeeper_id") != caller_id:
        raise Forbidden(f"Not authorized to {action} this product")
    return product


def update_product(product_id: str, caller_id: str, caller_role: str, patch: Dict[str, Any]) -> dict:
    product = get_editable_product(product_id, caller_id, caller_role)
    changes = {k: v for k, v in patch.items() if k in EDITABLE_FIELDS and v is not None}
    if not changes:
        return product
    # validate the merged result against the same bounds as a new listing
    merged = {**product, **changes}
    try:
        Product(**{k: merged.get(k) for k in Product.model_fields if merged.get(k) is not None})
    except ValidationError as e:
        raise InvalidInput(f"Invalid product: {e.errors()[0]['msg']}")
    collection("product").update_one(
        {"_id": to_object_id(product_id)}, {"$set": {**changes, "updated_at": utcnow()}}
    )
    logger.info(f"Product {product_id} updated by {caller_role} {caller_id}: {sorted(changes)}")
    return get_product(product_id)


def delete_product(product_id: str, caller_id: str, caller_role: str) -> None:
    get_editable_product(product_id, caller_id, caller_role, action="delete")
    collection("product").delete_one({"_id": to_object_id(product_id)})
    logger.info(f"Product {product_id} deleted by {caller_role} {caller_id}")


def reserve_stock(product_id: str, quantity: int) -> dict:
    if quantity <= 0:
        raise InvalidInput("Quantity must be positive")
    oid = to_object_id(product_id)
    updated = collection("product").find_one_and_update(
        {"_id": oid, "stock_quantity": {"$gte": quantity}},
        {"$inc": {"stock_quantity": -quantity}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        if collection("product").find_one({"_id": oid}, {"_id": 1}) is None:
            raise NotFound("Product not found")
        raise InsufficientStock()
    return serialize(updated)


def release_stock(product_id: str, quantity: int) -> None:
    res = collection("product").update_one({"_id": to_object_id(product_id)}, {"$inc": {"stock_quantity": quantity}})
    if res.matched_count == 0:
        logger.warning(f"Could not return {quantity} units to missing product {product_id}")
