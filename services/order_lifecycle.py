"""
Order lifecycle: creation, delivery-fee resolution and status transitions.

Every status change appends one timeline entry. Notifications are published
as domain events after the order is persisted and are never awaited here.
"""

import logging
import random
import re
import time
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from databases import Database

import crud
from config import (
    CATCH_ALL_AREA,
    CLIENT_PHONE_PATTERN,
    DELIVERED_STATUSES,
    ORDER_NUMBER_PREFIX,
    ORDER_STATUSES,
    TERMINAL_STATUSES,
)
from errors import InvalidStateError, NotFoundError, PersistenceError, ValidationError
from services import events

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 3
STATUS_UPDATE_ATTEMPTS = 3

_client_phone = re.compile(CLIENT_PHONE_PATTERN)


def generate_order_number(now_ms: Optional[int] = None, suffix: Optional[int] = None) -> str:
    """``ZJ`` + last 6 digits of epoch millis + 3-digit random suffix."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if suffix is None:
        suffix = random.randint(0, 999)
    return f"{ORDER_NUMBER_PREFIX}{str(now_ms)[-6:]}{suffix:03d}"


def _to_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(field, f"{field} must be a number")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(field, f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(field, f"{field} must be a number")
    return number


def validate_items(items) -> List[dict]:
    if not isinstance(items, (list, tuple)) or len(items) == 0:
        raise ValidationError("items", "At least one item is required")

    cleaned = []
    for index, item in enumerate(items):
        field = f"items[{index}]"
        if not isinstance(item, dict):
            raise ValidationError(field, "Each item must have a name, quantity and price")

        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"{field}.name", "Item name is required")

        quantity = _to_decimal(item.get("quantity"), f"{field}.quantity")
        if quantity != quantity.to_integral_value() or quantity < 1:
            raise ValidationError(f"{field}.quantity", "Quantity must be a whole number of at least 1")

        price = _to_decimal(item.get("price"), f"{field}.price")
        if price < 0:
            raise ValidationError(f"{field}.price", "Price cannot be negative")

        cleaned.append({"name": name.strip(), "quantity": int(quantity), "price": float(price)})
    return cleaned


def compute_total(items: List[dict], delivery_fee: float) -> float:
    """Sum of price * quantity plus the delivery fee, in decimal arithmetic."""
    subtotal = sum(
        (Decimal(str(item["price"])) * item["quantity"] for item in items),
        Decimal("0"),
    )
    return float(subtotal + Decimal(str(delivery_fee)))


def timeline_entry(status: str, previous_status: Optional[str], actor: str, note: str) -> dict:
    return {
        "status": status,
        "previous_status": previous_status,
        "note": note,
        "updated_by": actor,
        "updated_at": crud.utcnow().isoformat(),
    }


def order_projection(order: dict) -> dict:
    return {
        "id": order["id"],
        "order_number": order["order_number"],
        "items": order["items"],
        "total_amount": order["total_amount"],
        "delivery_fee": order["delivery_fee"],
        "status": order["status"],
        "delivery_address": order["delivery_address"],
        "delivery_time": order.get("delivery_time"),
        "sub_area": order["sub_area"],
        "sub_area_id": order.get("sub_area_id"),
        "sub_area_price": order["sub_area_price"],
        "notes": order.get("notes"),
        "area": order["area"],
        "created_at": order.get("created_at"),
    }


class OrderLifecycle:
    def __init__(self, db: Database, bus: Optional[events.EventBus] = None):
        self.db = db
        self.bus = bus or events.EventBus()

    async def resolve_delivery_fee(self, customer_area: str, sub_area_name: str,
                                   client_fee=None) -> dict:
        """Pick the delivery fee and the sub-area the order binds to.

        Catch-all area uses the client fee as-is. Otherwise an exact
        (name, area) match wins, then a match in any area, then the client fee
        with no sub-area binding.
        """
        fallback_fee = self._client_fee(client_fee)

        if customer_area == CATCH_ALL_AREA:
            return {"delivery_fee": fallback_fee, "sub_area_id": None}

        sub_area = await crud.find_sub_area(self.db, sub_area_name, customer_area)
        if sub_area is None:
            sub_area = await crud.find_sub_area(self.db, sub_area_name)
            if sub_area is not None:
                logger.info(
                    f"🔎 Sub-area '{sub_area_name}' matched in {sub_area['main_area']} "
                    f"instead of {customer_area}"
                )

        if sub_area is not None:
            return {"delivery_fee": float(sub_area["delivery_price"]), "sub_area_id": sub_area["id"]}

        logger.warning(f"⚠️ Sub-area '{sub_area_name}' not found, accepting client fee {fallback_fee}")
        return {"delivery_fee": fallback_fee, "sub_area_id": None}

    @staticmethod
    def _client_fee(client_fee) -> float:
        if client_fee is None or client_fee == "":
            return 0.0
        try:
            fee = Decimal(str(client_fee))
        except (InvalidOperation, TypeError, ValueError):
            return 0.0
        if not fee.is_finite() or fee < 0:
            raise ValidationError("delivery_fee", "Delivery fee cannot be negative")
        return float(fee)

    async def create_order(self, customer: dict, items, delivery_address: str, sub_area: str,
                           client_phone: str, notes: Optional[str] = None,
                           delivery_time: Optional[str] = None, delivery_fee=None) -> dict:
        cleaned_items = validate_items(items)

        if not isinstance(delivery_address, str) or not delivery_address.strip():
            raise ValidationError("delivery_address", "Delivery address is required")
        if not isinstance(sub_area, str) or not sub_area.strip():
            raise ValidationError("sub_area", "Sub-area is required")
        if not isinstance(client_phone, str) or not client_phone.strip():
            raise ValidationError("client_phone", "Client phone number is required")
        client_phone = client_phone.strip()
        if not _client_phone.match(client_phone):
            raise ValidationError("client_phone", "Client phone must start with 07 and be 11 digits")

        sub_area = sub_area.strip()
        fee = await self.resolve_delivery_fee(customer["area"], sub_area, delivery_fee)
        total_amount = compute_total(cleaned_items, fee["delivery_fee"])

        order_data = {
            "customer_id": customer["id"],
            "customer_phone": customer["phone_number"],
            "client_phone": client_phone,
            "store_name": customer["store_name"],
            "items": cleaned_items,
            "total_amount": total_amount,
            "delivery_fee": fee["delivery_fee"],
            "status": "pending",
            "delivery_address": delivery_address.strip(),
            "delivery_time": delivery_time.strip() if isinstance(delivery_time, str) and delivery_time.strip() else None,
            "sub_area": sub_area,
            "sub_area_id": fee["sub_area_id"],
            "sub_area_price": fee["delivery_fee"],
            "notes": notes,
            "area": customer["area"],
            "timeline": [timeline_entry("pending", None, "customer", "تم إنشاء الطلب")],
        }

        order = await self._insert_with_order_number(order_data)
        logger.info(f"✅ Order created: {order['order_number']} ({order['total_amount']})")

        try:
            await crud.increment_customer_orders(self.db, customer["id"])
        except Exception:
            logger.exception(f"❌ Failed to update order counter for customer {customer['id']}")

        self.bus.publish(events.NEW_ORDER, order=order)
        return order

    async def _insert_with_order_number(self, order_data: dict) -> dict:
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order_number = generate_order_number()
            try:
                return await crud.insert_order(self.db, {**order_data, "order_number": order_number})
            except Exception as e:
                if not crud.is_unique_violation(e):
                    logger.exception("❌ Failed to persist order")
                    raise PersistenceError("Failed to create order")
                logger.warning(f"⚠️ Order number {order_number} already taken (attempt {attempt})")
        raise ValidationError("order_number", "Order number already exists")

    async def update_status(self, order_id: int, new_status: str, actor: str = "admin") -> dict:
        if new_status not in ORDER_STATUSES:
            raise ValidationError("status", f"Invalid order status: {new_status}")

        order = await crud.get_order_by_id(self.db, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order["status"] in TERMINAL_STATUSES:
            logger.warning(
                f"⚠️ Order {order['order_number']} moved out of terminal status {order['status']} by {actor}"
            )

        order = await self._transition(
            order, new_status, actor,
            lambda old: f"تم تحديث الحالة من {old} إلى {new_status}",
        )
        self.bus.publish(events.ORDER_STATUS_UPDATE, order=order, new_status=new_status)
        return order

    async def cancel_by_customer(self, order_id: int, customer: dict) -> dict:
        order = await crud.get_customer_order(self.db, order_id, customer["id"])
        if order is None:
            raise NotFoundError("Order not found")
        if order["status"] in TERMINAL_STATUSES:
            raise InvalidStateError("This order can no longer be cancelled")

        order = await self._transition(
            order, "cancelled", "customer",
            lambda old: f"تم إلغاء الطلب من قبل العميل. الحالة السابقة: {old}",
            guard=lambda current: current["status"] not in TERMINAL_STATUSES,
        )
        self.bus.publish(events.ORDER_STATUS_UPDATE, order=order, new_status="cancelled")
        return order

    async def _transition(self, order: dict, new_status: str, actor: str, note, guard=None) -> dict:
        """Version-checked status change; re-reads and re-applies on a concurrent write."""
        for _ in range(STATUS_UPDATE_ATTEMPTS):
            if guard is not None and not guard(order):
                raise InvalidStateError("This order can no longer be cancelled")

            previous_status = order["status"]
            values = {
                "status": new_status,
                "timeline": order["timeline"] + [timeline_entry(new_status, previous_status, actor, note(previous_status))],
            }
            if new_status in DELIVERED_STATUSES:
                values["delivered_at"] = crud.utcnow()

            if await crud.update_order_state(self.db, order["id"], order["version"], values):
                logger.info(f"🔄 Order {order['order_number']}: {previous_status} -> {new_status} by {actor}")
                return await crud.get_order_by_id(self.db, order["id"])

            order = await crud.get_order_by_id(self.db, order["id"])
            if order is None:
                raise NotFoundError("Order not found")

        raise InvalidStateError("Order was modified concurrently, please retry")
