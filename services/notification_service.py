"""
Notification orchestration.

Each domain event produces a durable Notification record first; the push
fan-out happens afterwards and its failures are logged and swallowed. A
failure to write the record itself propagates to the caller.
"""

import logging
from typing import Optional

from databases import Database

import crud
from config import HIGH_PRIORITY_TOTAL, URGENT_PRIORITY_TOTAL
from errors import NotificationDispatchError
from services import events
from services.push_dispatcher import DispatchResult, PushDispatcher

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "confirmed": "تم تأكيد طلبك",
    "preparing": "جاري تحضير طلبك",
    "ready": "طلبك جاهز للتوصيل",
    "delivered": "تم توصيل طلبك بنجاح",
    "cancelled": "تم إلغاء طلبك",
}
DEFAULT_STATUS_MESSAGE = "تحديث حالة الطلب"

HIGH_PRIORITY_STATUSES = {"ready", "cancelled"}


def order_priority(total_amount: float) -> str:
    if total_amount > URGENT_PRIORITY_TOTAL:
        return "urgent"
    if total_amount > HIGH_PRIORITY_TOTAL:
        return "high"
    return "normal"


def status_message(status: str) -> str:
    return STATUS_MESSAGES.get(status, DEFAULT_STATUS_MESSAGE)


def status_priority(status: str) -> str:
    return "high" if status in HIGH_PRIORITY_STATUSES else "normal"


class NotificationService:
    def __init__(self, db: Database, dispatcher: PushDispatcher):
        self.db = db
        self.dispatcher = dispatcher

    def register(self, bus: events.EventBus):
        bus.subscribe(events.NEW_ORDER, self.notify_new_order)
        bus.subscribe(events.ORDER_STATUS_UPDATE, self.notify_order_status_update)
        bus.subscribe(events.CUSTOMER_REGISTERED, self.notify_new_customer)

    async def create_notification(self, notification_data: dict) -> dict:
        notification = await crud.create_notification(self.db, notification_data)
        logger.info(f"📱 Notification created: {notification['title']}")
        return notification

    async def push(self, tokens, title: str, body: str, data: dict) -> Optional[DispatchResult]:
        """Deliver a push; never raises."""
        if not tokens:
            logger.info("⚠️ No push tokens registered for this notification")
            return None
        try:
            return await self.dispatch(tokens, title, body, data)
        except NotificationDispatchError as e:
            logger.error(f"❌ {e.message}")
            return None

    async def dispatch(self, tokens, title: str, body: str, data: dict) -> DispatchResult:
        """Send through the dispatcher, raising NotificationDispatchError on any failure."""
        try:
            return await self.dispatcher.send(tokens, title, body, data)
        except Exception as e:
            raise NotificationDispatchError(f"Push dispatch failed: {e}") from e

    async def notify_new_order(self, order: dict) -> dict:
        total_amount = order["total_amount"]
        notification = await self.create_notification({
            "type": "new_order",
            "title": "طلب جديد!",
            "message": f"طلب جديد من {order['store_name']} - رقم الطلب: {order['order_number']}",
            "recipient": "admin",
            "priority": order_priority(total_amount),
            "data": {
                "orderNumber": order["order_number"],
                "customerName": order["store_name"],
                "totalAmount": total_amount,
                "area": order["area"],
            },
            "order_id": order["id"],
            "customer_id": order["customer_id"],
        })

        try:
            tokens = await crud.get_active_admin_push_tokens(self.db)
        except Exception as e:
            logger.error(f"❌ Could not load admin push tokens: {e}")
            return notification

        await self.push(
            tokens,
            "🔔 طلب جديد!",
            f"طلب جديد من {order['store_name'] or 'عميل'}\n"
            f"رقم الطلب: {order['order_number']}\n"
            f"المبلغ: {total_amount} دينار",
            {
                "type": "new_order",
                "orderId": order["id"],
                "orderNumber": order["order_number"],
                "storeName": order["store_name"],
                "totalAmount": total_amount,
                "area": order["area"],
            },
        )
        return notification

    async def notify_order_status_update(self, order: dict, new_status: str) -> dict:
        message = status_message(new_status)
        notification = await self.create_notification({
            "type": "order_status_update",
            "title": message,
            "message": f"طلب رقم {order['order_number']}: {STATUS_MESSAGES.get(new_status, new_status)}",
            "recipient": "customer",
            "priority": status_priority(new_status),
            "data": {
                "orderNumber": order["order_number"],
                "status": new_status,
                "orderId": order["id"],
            },
            "order_id": order["id"],
            "customer_id": order["customer_id"],
        })

        try:
            customer = await crud.get_customer(self.db, order["customer_id"])
        except Exception as e:
            logger.error(f"❌ Could not load customer push token: {e}")
            return notification

        token = customer.get("push_token") if customer else None
        if not token:
            logger.info("⚠️ Customer not found or no push token")
            return notification

        await self.push(
            [token],
            "🔔 تحديث الطلب",
            f"{message}\nرقم الطلب: {order['order_number']}",
            {
                "type": "order_status_update",
                "orderId": order["id"],
                "orderNumber": order["order_number"],
                "status": new_status,
            },
        )
        return notification

    async def notify_new_customer(self, customer: dict) -> dict:
        return await self.create_notification({
            "type": "customer_registered",
            "title": "عميل جديد!",
            "message": f"تم تسجيل عميل جديد: {customer['store_name']} - {customer['area']}",
            "recipient": "admin",
            "data": {
                "customerName": customer["store_name"],
                "phoneNumber": customer["phone_number"],
                "area": customer["area"],
            },
            "customer_id": customer["id"],
        })
