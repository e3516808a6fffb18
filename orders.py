"""
Honey orders.

    processing -> shipped | cancelled
    shipped    -> delivered | completed
    delivered  -> completed

completed and cancelled are terminal. delivered is optional; sellers usually
go straight from shipped to completed. Cancelling returns the units to stock.
"""
import logging
from typing import List

from pymongo.errors import PyMongoError

import catalog
from database import collection, create_document, lookup_products, lookup_users, serialize, to_object_id
from errors import Forbidden, Internal, InsufficientStock, InvalidInput, InvalidState, NotFound
from schemas import ORDER_STATUSES, Order
from workflow import history_entry, transition

logger = logging.getLogger(__name__)

TRANSITIONS = {
    "processing": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"delivered", "completed"}),
    "delivered": frozenset({"completed"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


def _load(order_id: str) -> dict:
    doc = collection("order").find_one({"_id": to_object_id(order_id)})
    if not doc:
        raise NotFound("Order not found.")
    return doc


def get_order(order_id: str) -> dict:
    return serialize(_load(order_id))


def create(customer_id: str, product_id: str, quantity) -> dict:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidInput("Invalid product ID or quantity.")
    product = catalog.get_product(product_id)
    if product.get("stock_quantity", 0) < quantity:
        raise InsufficientStock()

    # price and owner are snapshotted from the same atomic update that took the stock
    reserved = catalog.reserve_stock(product_id, quantity)
    order = Order(
        customer_id=customer_id,
        beekeeper_id=reserved["owner_beekeeper_id"],
        product_id=product_id,
        quantity=quantity,
        unit_price=reserved["price"],
        status="processing",
        status_history=[history_entry("processing")],
    )
    try:
        order_id = create_document("order", order)
    except PyMongoError as e:
        logger.error(f"Failed to save order for product {product_id}, releasing {quantity} units: {e}")
        catalog.release_stock(product_id, quantity)
        raise Internal("Server error during checkout.")
    logger.info(f"Customer {customer_id} ordered {quantity} x {product_id} (order {order_id})")
    return get_order(order_id)


def list_mine(customer_id: str) -> List[dict]:
    docs = list(collection("order").find({"customer_id": customer_id}).sort([("created_at", -1), ("_id", -1)]))
    products = lookup_products((d.get("product_id") for d in docs), fields=("name", "image_path"))
    out = []
    for d in docs:
        item = serialize(d)
        item["product"] = products.get(d.get("product_id"))
        out.append(item)
    return out


def list_for_beekeeper(beekeeper_id: str) -> List[dict]:
    product_ids = [str(p["_id"]) for p in collection("product").find({"owner_beekeeper_id": beekeeper_id}, {"_id": 1})]
    if not product_ids:
        return []
    docs = list(collection("order").find({"product_id": {"$in": product_ids}}).sort([("created_at", -1), ("_id", -1)]))
    customers = lookup_users((d.get("customer_id") for d in docs), fields=("name", "email"))
    products = lookup_products(d.get("product_id") for d in docs)
    out = []
    for d in docs:
        item = serialize(d)
        item["customer"] = customers.get(d.get("customer_id"))
        item["product"] = products.get(d.get("product_id"))
        out.append(item)
    return out


def list_all() -> List[dict]:
    docs = list(collection("order").find().sort([("created_at", -1), ("_id", -1)]))
    people = lookup_users([d.get("customer_id") for d in docs] + [d.get("beekeeper_id") for d in docs])
    products = lookup_products(d.get("product_id") for d in docs)
    out = []
    for d in docs:
        item = serialize(d)
        item["customer"] = people.get(d.get("customer_id"))
        item["beekeeper"] = people.get(d.get("beekeeper_id"))
        item["product"] = products.get(d.get("product_id"))
        out.append(item)
    return out


def _seller_id(order: dict) -> str:
    product = collection("product").find_one(
        {"_id": to_object_id(order["product_id"])}, {"owner_beekeeper_id": 1}
    )
    if product is None:
        return order.get("beekeeper_id")
    return product.get("owner_beekeeper_id")


def _return_stock(order: dict) -> None:
    try:
        catalog.release_stock(order["product_id"], order["quantity"])
    except PyMongoError as e:
        # the order is already cancelled; the units have to be restocked by hand
        logger.error(
            f"Order {order['_id']} cancelled but {order['quantity']} units of product "
            f"{order['product_id']} were not returned to stock: {e}"
        )
        raise Internal("Order cancelled, but its stock could not be returned.")


def update_status(order_id: str, caller_id: str, caller_role: str, new_status: str) -> dict:
    if new_status not in ORDER_STATUSES:
        raise InvalidInput("Invalid status")
    doc = _load(order_id)
    if caller_role != "admin" and _seller_id(doc) != caller_id:
        raise Forbidden("You are not authorized to update this order.")
    updated = transition("order", doc, new_status, TRANSITIONS)
    if new_status == "cancelled":
        _return_stock(doc)
    return serialize(updated)


def cancel(order_id: str, customer_id: str) -> dict:
    doc = _load(order_id)
    if doc.get("customer_id") != customer_id:
        raise Forbidden("You are not authorized to cancel this order.")
    if doc.get("status") != "processing":
        raise InvalidState("Only processing orders can be cancelled.")
    updated = transition("order", doc, "cancelled", TRANSITIONS)
    _return_stock(doc)
    logger.info(f"Customer {customer_id} cancelled order {order_id}")
    return serialize(updated)
