"""
Order storage and the order status lifecycle

Line items and totals are stored exactly as the client sent them unless
strict totals are switched on, in which case they are reconciled against
the catalog before anything is written.
"""
import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from database import NOT_DELETED, create_document, find_page, serialize, to_object_id, utc_now
from errors import NotFound, ValidationError
from pagination import PageParams, combine, date_range_condition, search_condition
from products import ProductCatalog
from schemas import Order, OrderStatus

logger = logging.getLogger(__name__)

ORDER_SEARCH_FIELDS = ("orderRef", "customer.name", "customer.phone")
TOTALS_TOLERANCE = 0.01

Transitions = Mapping[OrderStatus, FrozenSet[OrderStatus]]

PERMISSIVE_TRANSITIONS: Transitions = {
    status: frozenset(OrderStatus) for status in OrderStatus
}

STRICT_TRANSITIONS: Transitions = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({
        OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED, OrderStatus.CANCELLED,
    }),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TRANSITION_TABLES: Dict[str, Transitions] = {
    "permissive": PERMISSIVE_TRANSITIONS,
    "strict": STRICT_TRANSITIONS,
}


def parse_status_filter(raw: Optional[str]) -> Optional[OrderStatus]:
    if raw is None or not raw.strip() or raw.strip() == "all":
        return None
    try:
        return OrderStatus(raw.strip())
    except ValueError:
        raise ValidationError(f"Unknown status '{raw}'")


def can_transition(table: Transitions, current: OrderStatus, new: OrderStatus) -> bool:
    return current == new or new in table.get(current, frozenset())


def check_fulfilment(order_type: str, config: Mapping[str, Any]) -> None:
    if order_type == "Delivery" and not config.get("deliveryEnabled", True):
        raise ValidationError("Delivery is currently unavailable")
    if order_type == "Pickup" and not config.get("pickupEnabled", True):
        raise ValidationError("Pickup is currently unavailable")


def reconcile_totals(order: Order, catalog: Optional[ProductCatalog] = None) -> None:
    """Reject an order whose line totals or subtotal don't add up.

    When a line references a catalog product its current price is the one
    that counts, otherwise the submitted unit price is used.
    """
    problems: List[Dict[str, Any]] = []
    computed_subtotal = 0.0
    for index, item in enumerate(order.items):
        price = item.price
        if item.productId and catalog is not None:
            try:
                price = float(catalog.get_public(item.productId)["price"])
            except NotFound:
                problems.append({"item": index, "error": "Unknown product"})
                continue
        expected = round(item.qty * price, 2)
        computed_subtotal += expected
        if abs(item.lineTotal - expected) > TOTALS_TOLERANCE:
            problems.append({"item": index, "expected": expected, "got": item.lineTotal})
    if not problems and abs(order.subtotal - computed_subtotal) > TOTALS_TOLERANCE:
        problems.append({"field": "subtotal", "expected": round(computed_subtotal, 2), "got": order.subtotal})
    if problems:
        raise ValidationError("Order totals do not match", details=problems)


class OrderRepository:
    collection_name = "order"

    def __init__(
        self,
        database: Database,
        transitions: Transitions = PERMISSIVE_TRANSITIONS,
        catalog: Optional[ProductCatalog] = None,
        strict_totals: bool = False,
    ):
        self.database = database
        self.collection = database[self.collection_name]
        self.transitions = transitions
        self.catalog = catalog
        self.strict_totals = strict_totals

    def ensure_indexes(self) -> None:
        self.collection.create_index([("orderRef", ASCENDING)])
        self.collection.create_index([("userId", ASCENDING)])
        self.collection.create_index([("createdAt", DESCENDING)])

    def _list(self, params: PageParams, *conditions: Dict[str, Any]) -> Dict[str, Any]:
        query = combine(NOT_DELETED, *conditions, search_condition(params.search, ORDER_SEARCH_FIELDS))
        return find_page(self.collection, query, params)

    def list_for_user(self, user_id: str, params: PageParams, status: Optional[OrderStatus] = None) -> Dict[str, Any]:
        return self._list(
            params,
            {"userId": user_id},
            {"status": status.value} if status else {},
        )

    def list_all(
        self,
        params: PageParams,
        status: Optional[OrderStatus] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._list(
            params,
            {"status": status.value} if status else {},
            date_range_condition("createdAt", date_from, date_to),
        )

    def create(self, order: Order) -> Dict[str, Any]:
        if self.strict_totals:
            reconcile_totals(order, self.catalog)
        stored = order.model_copy(update={"status": OrderStatus.PENDING.value})
        doc = serialize(create_document(self.database, self.collection_name, stored))
        logger.info("Order %s created (ref %s, user %s)", doc["id"], doc["orderRef"], doc.get("userId"))
        return doc

    def get_by_id(self, order_id: str, include_deleted: bool = False) -> Dict[str, Any]:
        oid = to_object_id(order_id)
        doc = None
        if oid is not None:
            doc = self.collection.find_one(combine({"_id": oid}, {} if include_deleted else NOT_DELETED))
        if doc is None:
            raise NotFound("Order not found")
        return serialize(doc)

    def update_status(self, order_id: str, new_status: OrderStatus) -> Dict[str, Any]:
        current = self.get_by_id(order_id)
        current_status = OrderStatus(current.get("status", OrderStatus.PENDING.value))
        if not can_transition(self.transitions, current_status, new_status):
            raise ValidationError(
                f"Cannot move order from {current_status.value} to {new_status.value}"
            )
        doc = self.collection.find_one_and_update(
            combine({"_id": to_object_id(order_id)}, NOT_DELETED),
            {"$set": {"status": new_status.value, "updatedAt": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFound("Order not found")
        logger.info("Order %s status %s -> %s", order_id, current_status.value, new_status.value)
        return serialize(doc)
