"""
Push delivery backends.

Each transport delivers one notification to a list of already-classified
tokens and reports which tokens were delivered, which failed, and which were
permanently rejected (dead). Transports log and contain their own network and
credential errors; they do not raise.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import firebase_admin
import httpx
from firebase_admin import credentials, messaging

from config import EXPO_PUSH_URL, PUSH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

FCM_MULTICAST_LIMIT = 500

# FCM error codes meaning the registration will never succeed again
DEAD_TOKEN_CODES = {"invalid-registration-token", "registration-token-not-registered"}


@dataclass
class TransportResult:
    delivered: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    dead: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


class PushTransport:
    """Interface for a push delivery backend."""

    name = "push"

    async def send(self, tokens: List[str], title: str, body: str,
                   data: Dict[str, Any]) -> Optional[TransportResult]:
        raise NotImplementedError

    async def close(self):
        pass


def _short(token: str) -> str:
    return token[:20] + "..." if len(token) > 20 else token


class ExpoTransport(PushTransport):
    """Batch delivery through the Expo push service."""

    name = "expo"

    def __init__(self, url: str = EXPO_PUSH_URL, timeout: float = PUSH_TIMEOUT_SECONDS,
                 client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @staticmethod
    def build_messages(tokens: List[str], title: str, body: str, data: Dict[str, Any]) -> List[dict]:
        return [
            {
                "to": token,
                "title": title,
                "body": body,
                "data": data,
                "sound": "default",
                "priority": "high",
                "channelId": "default",
                "android": {
                    "channelId": "default",
                    "priority": "high",
                    "sound": "default",
                },
                "apns": {
                    "payload": {
                        "aps": {
                            "sound": "default",
                            "badge": 1,
                        },
                    },
                },
            }
            for token in tokens
        ]

    async def send(self, tokens, title, body, data):
        if not tokens:
            return TransportResult()

        messages = self.build_messages(tokens, title, body, data)
        try:
            response = await self._client.post(
                self.url,
                json=messages,
                headers={
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip, deflate",
                    "Content-Type": "application/json",
                },
            )
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"❌ Error sending Expo notifications: {e}")
            return TransportResult(failed=list(tokens), errors={t: str(e) for t in tokens})

        if response.is_success and isinstance(payload, dict) and "data" in payload:
            logger.info(f"✅ Expo push notifications sent to {len(tokens)} token(s)")
            return TransportResult(delivered=list(tokens))

        logger.error(f"❌ Failed to send Expo push notifications ({response.status_code}): {payload}")
        reason = f"expo-http-{response.status_code}"
        return TransportResult(failed=list(tokens), errors={t: reason for t in tokens})

    async def close(self):
        await self._client.aclose()


def fcm_error_code(exc: Optional[Exception]) -> str:
    """Map a firebase-admin send exception to an FCM error code string."""
    if exc is None:
        return "unknown-error"
    if isinstance(exc, messaging.UnregisteredError):
        return "registration-token-not-registered"
    code = str(getattr(exc, "code", "") or "").lower().replace("_", "-")
    if code == "invalid-argument" and "registration token" in str(exc).lower():
        return "invalid-registration-token"
    return code or "unknown-error"


class FCMTransport(PushTransport):
    """Multicast delivery through firebase-admin messaging."""

    name = "fcm"

    def __init__(self, app=None):
        self.app = app

    @staticmethod
    def build_message(tokens: List[str], title: str, body: str, data: Dict[str, Any]):
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=title, body=body),
            data={key: "" if value is None else str(value) for key, value in data.items()},
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(channel_id="default", sound="default"),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
            ),
        )

    def _send_batch(self, tokens, title, body, data):
        message = self.build_message(tokens, title, body, data)
        return messaging.send_each_for_multicast(message, app=self.app)

    async def send(self, tokens, title, body, data):
        result = TransportResult()
        for start in range(0, len(tokens), FCM_MULTICAST_LIMIT):
            batch = tokens[start:start + FCM_MULTICAST_LIMIT]
            try:
                response = await asyncio.to_thread(self._send_batch, batch, title, body, data)
            except Exception as e:
                logger.error(f"❌ Firebase send error: {e}")
                result.failed.extend(batch)
                result.errors.update({t: str(e) for t in batch})
                continue

            for token, send_response in zip(batch, response.responses):
                if send_response.success:
                    result.delivered.append(token)
                    continue
                code = fcm_error_code(send_response.exception)
                result.failed.append(token)
                result.errors[token] = code
                if code in DEAD_TOKEN_CODES:
                    result.dead.append(token)
                    logger.warning(f"⚠️ FCM token {_short(token)} rejected: {code}")

        logger.info(f"✅ Firebase notifications sent: {len(result.delivered)}/{len(tokens)}")
        return result


class UnconfiguredFCMTransport(PushTransport):
    """Stands in for FCM when no messaging credentials are configured."""

    name = "fcm"

    async def send(self, tokens, title, body, data):
        if tokens:
            logger.warning(f"⚠️ Firebase not configured, skipping {len(tokens)} FCM token(s)")
        return None


def build_fcm_transport(credentials_path: Optional[str]) -> PushTransport:
    """Initialize firebase-admin once and wrap it, or fall back to the no-op transport."""
    if not credentials_path:
        logger.warning("⚠️ FIREBASE_CREDENTIALS not set, FCM delivery disabled")
        return UnconfiguredFCMTransport()

    try:
        app = firebase_admin.get_app("push")
    except ValueError:
        app = None

    try:
        if app is None:
            app = firebase_admin.initialize_app(credentials.Certificate(credentials_path), name="push")
    except Exception as e:
        logger.error(f"❌ Firebase initialization failed: {e}")
        return UnconfiguredFCMTransport()

    logger.info("✅ Firebase messaging initialized")
    return FCMTransport(app)
