"""Tests for push fan-out, transports and dead-token cleanup."""

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

import crud
from conftest import EXPO_TOKEN, FCM_TOKEN, FakeTransport, make_customer
from services.push_dispatcher import Outcome, PushDispatcher
from services.push_transports import (
    ExpoTransport,
    FCMTransport,
    UnconfiguredFCMTransport,
    build_fcm_transport,
    fcm_error_code,
)
from services.token_classifier import TokenKind


def dispatcher_with(expo=None, fcm=None, db=None):
    return PushDispatcher({
        TokenKind.EXPO: expo or FakeTransport("expo"),
        TokenKind.FCM: fcm or FakeTransport("fcm"),
    }, db=db)


class TestRouting:
    def test_tokens_routed_by_kind(self):
        expo, fcm = FakeTransport("expo"), FakeTransport("fcm")
        dispatcher = dispatcher_with(expo, fcm)

        result = asyncio.run(dispatcher.send([EXPO_TOKEN, FCM_TOKEN], "title", "body", {"type": "x"}))

        assert expo.calls[0]["tokens"] == [EXPO_TOKEN]
        assert fcm.calls[0]["tokens"] == [FCM_TOKEN]
        assert result.success_count == 2
        assert result.failure_count == 0
        assert result.outcomes == {EXPO_TOKEN: Outcome.SENT, FCM_TOKEN: Outcome.SENT}

    def test_duplicate_tokens_sent_once(self):
        expo = FakeTransport("expo")
        dispatcher = dispatcher_with(expo)

        result = asyncio.run(dispatcher.send([EXPO_TOKEN, EXPO_TOKEN], "t", "b"))

        assert expo.calls[0]["tokens"] == [EXPO_TOKEN]
        assert result.success_count == 1

    def test_wrapped_token_sent_normalized(self):
        fcm = FakeTransport("fcm")
        dispatcher = dispatcher_with(fcm=fcm)
        wrapped = "fcm:" + FCM_TOKEN

        result = asyncio.run(dispatcher.send([wrapped], "t", "b"))

        assert fcm.calls[0]["tokens"] == [FCM_TOKEN]
        assert result.outcomes == {wrapped: Outcome.SENT}

    def test_counts_add_up(self):
        fcm = FakeTransport("fcm", fail=[FCM_TOKEN])
        dispatcher = dispatcher_with(fcm=fcm)
        tokens = [EXPO_TOKEN, FCM_TOKEN, "bad"]

        result = asyncio.run(dispatcher.send(tokens, "t", "b"))

        assert result.success_count + result.failure_count == len(tokens)
        assert result.outcomes["bad"] == Outcome.INVALID
        assert result.outcomes[FCM_TOKEN] == Outcome.FAILED

    def test_empty_token_list(self):
        result = asyncio.run(dispatcher_with().send([], "t", "b"))
        assert result.success_count == 0
        assert result.failure_count == 0


class TestChannelIsolation:
    def test_raising_transport_does_not_stop_other_channel(self):
        expo = FakeTransport("expo", raises=RuntimeError("boom"))
        fcm = FakeTransport("fcm")
        dispatcher = dispatcher_with(expo, fcm)

        result = asyncio.run(dispatcher.send([EXPO_TOKEN, FCM_TOKEN], "t", "b"))

        assert result.outcomes[EXPO_TOKEN] == Outcome.FAILED
        assert result.outcomes[FCM_TOKEN] == Outcome.SENT
        assert result.success_count == 1
        assert result.failure_count == 1

    def test_unconfigured_fcm_counts_failures_without_removal(self, db_run):
        async def scenario(db):
            customer = await make_customer(db, push_token=FCM_TOKEN)
            dispatcher = dispatcher_with(fcm=UnconfiguredFCMTransport(), db=db)
            result = await dispatcher.send([FCM_TOKEN], "t", "b")
            return result, await crud.get_customer(db, customer["id"])

        result, customer = db_run(scenario)

        assert result.failure_count == 1
        assert result.outcomes[FCM_TOKEN] == Outcome.FAILED
        assert result.removed_tokens == []
        assert customer["push_token"] == FCM_TOKEN


class TestDeadTokenCleanup:
    def test_dead_token_removed_from_matching_customer_only(self, db_run):
        other_token = "ExponentPushToken[other-device-token]"

        async def scenario(db):
            owner = await make_customer(db, phone="07700000001", push_token=FCM_TOKEN)
            other = await make_customer(db, phone="07700000002", push_token=other_token)
            fcm = FakeTransport("fcm", dead=[FCM_TOKEN])
            dispatcher = dispatcher_with(fcm=fcm, db=db)
            result = await dispatcher.send([FCM_TOKEN, other_token], "t", "b")
            return (
                result,
                await crud.get_customer(db, owner["id"]),
                await crud.get_customer(db, other["id"]),
            )

        result, owner, other = db_run(scenario)

        assert result.outcomes[FCM_TOKEN] == Outcome.DEAD
        assert result.removed_tokens == [FCM_TOKEN]
        assert owner["push_token"] is None
        assert other["push_token"] == other_token

    def test_dead_token_removed_from_admin(self, db_run):
        async def scenario(db):
            admin = await crud.create_admin(db, "ops-admin", "9999", "Ops")
            await crud.set_admin_push_token(db, admin["id"], FCM_TOKEN)
            dispatcher = dispatcher_with(fcm=FakeTransport("fcm", dead=[FCM_TOKEN]), db=db)
            await dispatcher.send([FCM_TOKEN], "t", "b")
            return await crud.get_admin(db, admin["id"])

        admin = db_run(scenario)
        assert admin["push_token"] is None

    def test_invalid_stored_token_is_removed(self, db_run):
        async def scenario(db):
            customer = await make_customer(db, push_token="garbage token")
            dispatcher = dispatcher_with(db=db)
            result = await dispatcher.send(["garbage token"], "t", "b")
            return result, await crud.get_customer(db, customer["id"])

        result, customer = db_run(scenario)

        assert result.outcomes["garbage token"] == Outcome.INVALID
        assert result.removed_tokens == ["garbage token"]
        assert customer["push_token"] is None


class TestExpoTransport:
    def _transport(self, handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ExpoTransport("https://exp.test/push", client=client)

    def test_success_marks_batch_delivered(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"status": "ok"}, {"status": "ok"}]})

        tokens = [EXPO_TOKEN, "ExponentPushToken[second]"]

        async def scenario():
            transport = self._transport(handler)
            try:
                return await transport.send(tokens, "عنوان", "نص", {"orderId": 1})
            finally:
                await transport.close()

        result = asyncio.run(scenario())

        assert result.delivered == tokens
        assert [message["to"] for message in seen["body"]] == tokens
        message = seen["body"][0]
        assert message["sound"] == "default"
        assert message["priority"] == "high"
        assert message["channelId"] == "default"
        assert message["data"] == {"orderId": 1}

    @pytest.mark.parametrize("response", [
        httpx.Response(500, json={"errors": ["down"]}),
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, content=b"not json"),
    ])
    def test_bad_response_fails_whole_batch(self, response):
        async def scenario():
            transport = self._transport(lambda request: response)
            try:
                return await transport.send([EXPO_TOKEN], "t", "b", {})
            finally:
                await transport.close()

        result = asyncio.run(scenario())
        assert result.delivered == []
        assert result.failed == [EXPO_TOKEN]

    def test_network_error_fails_batch(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async def scenario():
            transport = self._transport(handler)
            try:
                return await transport.send([EXPO_TOKEN], "t", "b", {})
            finally:
                await transport.close()

        result = asyncio.run(scenario())
        assert result.failed == [EXPO_TOKEN]


class TestFcmTransport:
    def test_per_token_results(self, monkeypatch):
        dead_token = "d" * 40
        flaky_token = "f" * 40
        responses = [
            SimpleNamespace(success=True, exception=None),
            SimpleNamespace(success=False, exception=messaging.UnregisteredError("gone")),
            SimpleNamespace(success=False, exception=firebase_exceptions.UnavailableError("later")),
        ]
        transport = FCMTransport(app=None)
        monkeypatch.setattr(
            transport, "_send_batch",
            lambda tokens, title, body, data: SimpleNamespace(responses=responses),
        )

        result = asyncio.run(transport.send([FCM_TOKEN, dead_token, flaky_token], "t", "b", {}))

        assert result.delivered == [FCM_TOKEN]
        assert result.dead == [dead_token]
        assert set(result.failed) == {dead_token, flaky_token}

    def test_message_data_values_are_strings(self):
        message = FCMTransport.build_message([FCM_TOKEN], "t", "b", {"orderId": 5, "note": None})
        assert message.data == {"orderId": "5", "note": ""}

    def test_missing_credentials_gives_unconfigured_transport(self):
        assert isinstance(build_fcm_transport(None), UnconfiguredFCMTransport)
        assert isinstance(build_fcm_transport("/does/not/exist.json"), UnconfiguredFCMTransport)


class TestFcmErrorCode:
    def test_unregistered(self):
        assert fcm_error_code(messaging.UnregisteredError("gone")) == "registration-token-not-registered"

    def test_invalid_registration_token(self):
        exc = firebase_exceptions.InvalidArgumentError(
            "The registration token is not a valid FCM registration token"
        )
        assert fcm_error_code(exc) == "invalid-registration-token"

    def test_other_errors_are_not_dead(self):
        code = fcm_error_code(firebase_exceptions.UnavailableError("later"))
        assert code == "unavailable"
        assert fcm_error_code(None) == "unknown-error"
