"""
Push token classification.

Client SDKs hand us registration strings in two families: Expo-hosted tokens
(``ExponentPushToken[...]``) and native FCM registration tokens. Some
wrappers relay FCM tokens as ``prefix:actualToken``; the actual token is
recovered before any validation runs.
"""

import re
from dataclasses import dataclass
from enum import Enum


EXPO_PREFIX = "ExponentPushToken"
FCM_MIN_LENGTH = 32

_FCM_ALLOWED = re.compile(r"^[A-Za-z0-9_\-:.]+$")
_WHITESPACE = re.compile(r"\s")


class TokenKind(str, Enum):
    EXPO = "expo"
    FCM = "fcm"
    INVALID = "invalid"


@dataclass(frozen=True)
class ClassifiedToken:
    kind: TokenKind
    normalized: str


def normalize_token(token: str) -> str:
    """Strip a ``prefix:`` wrapper from a composite token.

    The part after the first colon is the candidate. When that part is empty
    or itself contains colons, the longest colon-delimited segment wins.
    """
    if ":" not in token:
        return token
    candidate = token.split(":", 1)[1]
    if candidate and ":" not in candidate:
        return candidate
    return max(token.split(":"), key=len)


def classify(token) -> ClassifiedToken:
    """Classify a push registration string. Never raises."""
    if not isinstance(token, str) or not token:
        return ClassifiedToken(TokenKind.INVALID, "")

    if token.startswith(EXPO_PREFIX):
        return ClassifiedToken(TokenKind.EXPO, token)

    normalized = normalize_token(token)
    # A wrapped Expo token is still an Expo token
    if normalized.startswith(EXPO_PREFIX):
        return ClassifiedToken(TokenKind.EXPO, normalized)

    if (
        not normalized
        or _WHITESPACE.search(normalized)
        or len(normalized) < FCM_MIN_LENGTH
        or not _FCM_ALLOWED.match(normalized)
    ):
        return ClassifiedToken(TokenKind.INVALID, normalized)

    return ClassifiedToken(TokenKind.FCM, normalized)
