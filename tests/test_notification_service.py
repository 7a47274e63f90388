"""Tests for notification records and push side effects."""

import pytest

import crud
from errors import NotificationDispatchError
from conftest import EXPO_TOKEN, FakeTransport, make_customer
from services import events
from services.notification_service import (
    DEFAULT_STATUS_MESSAGE,
    NotificationService,
    order_priority,
    status_message,
    status_priority,
)
from services.order_lifecycle import OrderLifecycle
from services.push_dispatcher import PushDispatcher
from services.token_classifier import TokenKind

ITEMS = [{"name": "A", "quantity": 1, "price": 100}]


class ExplodingDispatcher:
    async def send(self, tokens, title, body, data=None):
        raise RuntimeError("push service down")


def service_with(db, transport=None):
    transport = transport or FakeTransport("expo")
    dispatcher = PushDispatcher({TokenKind.EXPO: transport, TokenKind.FCM: FakeTransport("fcm")}, db=db)
    return NotificationService(db, dispatcher), transport


def sample_order(**overrides):
    order = {
        "id": 1,
        "order_number": "ZJ123456001",
        "store_name": "متجر",
        "total_amount": 250.0,
        "area": "الجزائر",
        "customer_id": 1,
    }
    order.update(overrides)
    return order


class TestPriorities:
    @pytest.mark.parametrize("total, expected", [
        (100, "normal"),
        (500, "normal"),
        (500.5, "high"),
        (1000, "high"),
        (1000.01, "urgent"),
    ])
    def test_order_priority_thresholds(self, total, expected):
        assert order_priority(total) == expected

    def test_status_priority(self):
        assert status_priority("ready") == "high"
        assert status_priority("cancelled") == "high"
        assert status_priority("confirmed") == "normal"

    def test_unknown_status_uses_fallback_message(self):
        assert status_message("accepted") == DEFAULT_STATUS_MESSAGE
        assert status_message("delivered") != DEFAULT_STATUS_MESSAGE


class TestNotifyNewOrder:
    def test_creates_admin_record_and_pushes_to_admins(self, db_run):
        async def scenario(db):
            admin = await crud.create_admin(db, "ops-admin", "9999", "Ops")
            await crud.set_admin_push_token(db, admin["id"], EXPO_TOKEN)
            service, transport = service_with(db)
            customer = await make_customer(db)
            notification = await service.notify_new_order(sample_order(customer_id=customer["id"], total_amount=1500))
            return notification, transport

        notification, transport = db_run(scenario)

        assert notification["recipient"] == "admin"
        assert notification["type"] == "new_order"
        assert notification["priority"] == "urgent"
        assert notification["data"]["orderNumber"] == "ZJ123456001"
        assert transport.calls[0]["tokens"] == [EXPO_TOKEN]
        assert transport.calls[0]["data"]["type"] == "new_order"

    def test_inactive_admin_tokens_skipped(self, db_run):
        async def scenario(db):
            admin = await crud.create_admin(db, "old-admin", "9999", "Old")
            await crud.set_admin_push_token(db, admin["id"], EXPO_TOKEN)
            await crud.update_admin(db, admin["id"], {"is_active": False})
            service, transport = service_with(db)
            customer = await make_customer(db)
            await service.notify_new_order(sample_order(customer_id=customer["id"]))
            return transport

        transport = db_run(scenario)
        assert transport.calls == []

    def test_push_failure_keeps_record(self, db_run):
        async def scenario(db):
            admin = await crud.create_admin(db, "ops-admin", "9999", "Ops")
            await crud.set_admin_push_token(db, admin["id"], EXPO_TOKEN)
            customer = await make_customer(db)
            service = NotificationService(db, ExplodingDispatcher())
            notification = await service.notify_new_order(sample_order(customer_id=customer["id"]))
            return notification, await crud.get_admin_notifications(db)

        notification, inbox = db_run(scenario)
        assert notification["id"] == inbox[0]["id"]


class TestPush:
    def test_dispatch_wraps_failure(self, db_run):
        service = NotificationService(None, ExplodingDispatcher())
        with pytest.raises(NotificationDispatchError) as exc:
            db_run(lambda db: service.dispatch([EXPO_TOKEN], "t", "b", {}))
        assert "push service down" in exc.value.message
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_push_logs_dispatch_error_and_returns_none(self, db_run, caplog):
        service = NotificationService(None, ExplodingDispatcher())
        with caplog.at_level("ERROR", logger="services.notification_service"):
            result = db_run(lambda db: service.push([EXPO_TOKEN], "t", "b", {}))
        assert result is None
        assert "Push dispatch failed: push service down" in caplog.text

    def test_push_without_tokens_skips_dispatcher(self, db_run):
        service = NotificationService(None, ExplodingDispatcher())
        assert db_run(lambda db: service.push([], "t", "b", {})) is None


class TestNotifyOrderStatusUpdate:
    def test_pushes_only_to_order_customer(self, db_run):
        other_token = "ExponentPushToken[someone-else]"

        async def scenario(db):
            customer = await make_customer(db, phone="07700000001", push_token=EXPO_TOKEN)
            await make_customer(db, phone="07700000002", push_token=other_token)
            service, transport = service_with(db)
            notification = await service.notify_order_status_update(
                sample_order(customer_id=customer["id"]), "ready"
            )
            return notification, transport, customer

        notification, transport, customer = db_run(scenario)

        assert notification["recipient"] == "customer"
        assert notification["customer_id"] == customer["id"]
        assert notification["priority"] == "high"
        assert [call["tokens"] for call in transport.calls] == [[EXPO_TOKEN]]

    def test_customer_without_token_gets_record_only(self, db_run):
        async def scenario(db):
            customer = await make_customer(db)
            service, transport = service_with(db)
            await service.notify_order_status_update(sample_order(customer_id=customer["id"]), "confirmed")
            return transport, await crud.get_customer_notifications(db, customer["id"])

        transport, inbox = db_run(scenario)
        assert transport.calls == []
        assert len(inbox) == 1


class TestNotificationIsolation:
    def test_order_flow_completes_when_every_push_fails(self, db_run):
        async def scenario(db):
            admin = await crud.create_admin(db, "ops-admin", "9999", "Ops")
            await crud.set_admin_push_token(db, admin["id"], EXPO_TOKEN)
            customer = await make_customer(db, push_token=EXPO_TOKEN)

            bus = events.EventBus()
            NotificationService(db, ExplodingDispatcher()).register(bus)
            lifecycle = OrderLifecycle(db, bus)

            order = await lifecycle.create_order(
                customer, ITEMS, "عنوان", "حي", "07712345678", delivery_fee=0,
            )
            updated = await lifecycle.update_status(order["id"], "ready")
            await bus.drain()
            return order, updated, await crud.get_admin_notifications(db)

        order, updated, admin_inbox = db_run(scenario)

        assert order["status"] == "pending"
        assert updated["status"] == "ready"
        assert [n["type"] for n in admin_inbox] == ["new_order"]

    def test_failing_record_creation_does_not_reach_publisher(self, db_run):
        async def scenario(db):
            customer = await make_customer(db)
            bus = events.EventBus()

            async def broken_handler(**payload):
                raise RuntimeError("notification store unavailable")

            bus.subscribe(events.NEW_ORDER, broken_handler)
            order = await OrderLifecycle(db, bus).create_order(
                customer, ITEMS, "عنوان", "حي", "07712345678",
            )
            await bus.drain()
            return order, bus.pending

        order, pending = db_run(scenario)
        assert order["id"] is not None
        assert pending == 0


class TestInbox:
    def test_customer_inbox_includes_broadcasts_and_skips_expired(self, db_run):
        async def scenario(db):
            customer = await make_customer(db, phone="07700000001")
            other = await make_customer(db, phone="07700000002")
            base = {"type": "system_alert", "title": "t", "message": "m"}
            await crud.create_notification(db, {**base, "recipient": "customer", "customer_id": customer["id"]})
            await crud.create_notification(db, {**base, "recipient": "customer", "customer_id": other["id"]})
            await crud.create_notification(db, {**base, "recipient": "all"})
            expired = crud.utcnow().replace(year=2000)
            await crud.create_notification(
                db, {**base, "recipient": "customer", "customer_id": customer["id"], "expires_at": expired}
            )
            return (
                await crud.get_customer_notifications(db, customer["id"]),
                await crud.get_unread_count(db, "customer", customer["id"]),
            )

        inbox, unread = db_run(scenario)
        assert sorted(n["recipient"] for n in inbox) == ["all", "customer"]
        assert unread == 1

    def test_admin_inbox_orders_by_priority(self, db_run):
        async def scenario(db):
            base = {"type": "new_order", "title": "t", "message": "m", "recipient": "admin"}
            for priority in ["low", "urgent", "normal", "high"]:
                await crud.create_notification(db, {**base, "priority": priority})
            return await crud.get_admin_notifications(db)

        inbox = db_run(scenario)
        assert [n["priority"] for n in inbox] == ["urgent", "high", "normal", "low"]

    def test_mark_all_read(self, db_run):
        async def scenario(db):
            base = {"type": "new_order", "title": "t", "message": "m", "recipient": "admin"}
            await crud.create_notification(db, base)
            await crud.create_notification(db, base)
            await crud.mark_all_notifications_read(db, "admin")
            return await crud.get_unread_count(db, "admin")

        assert db_run(scenario) == 0
