"""
Fan-out of one notification to a set of push tokens.

Tokens are classified, routed to the transport registered for their kind,
and the per-channel results are folded into a single ``DispatchResult``.
Invalid and permanently rejected tokens are removed from whichever customer
or admin currently holds them.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from databases import Database

import crud
from services.push_transports import PushTransport, TransportResult
from services.token_classifier import TokenKind, classify

logger = logging.getLogger(__name__)


class Outcome:
    SENT = "sent"
    FAILED = "failed"
    DEAD = "dead"
    INVALID = "invalid"


@dataclass
class DispatchResult:
    success_count: int = 0
    failure_count: int = 0
    outcomes: Dict[str, str] = field(default_factory=dict)
    removed_tokens: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "outcomes": dict(self.outcomes),
            "removed_tokens": list(self.removed_tokens),
        }


class PushDispatcher:
    def __init__(self, transports: Dict[TokenKind, PushTransport], db: Optional[Database] = None):
        self.transports = transports
        self.db = db

    async def send(self, tokens: Iterable[str], title: str, body: str,
                   data: Optional[Dict[str, Any]] = None) -> DispatchResult:
        data = data or {}
        result = DispatchResult()

        # normalized token -> raw tokens it came from, per transport kind
        routed: Dict[TokenKind, Dict[str, List[str]]] = {}
        dead_raw: List[str] = []

        for raw in dict.fromkeys(tokens or []):
            classified = classify(raw)
            if classified.kind == TokenKind.INVALID:
                result.outcomes[str(raw)] = Outcome.INVALID
                result.failure_count += 1
                if isinstance(raw, str) and raw:
                    dead_raw.append(raw)
                continue
            routed.setdefault(classified.kind, {}).setdefault(classified.normalized, []).append(raw)

        if not routed and not dead_raw:
            logger.info("⚠️ No push tokens available")
            return result

        kinds = list(routed)
        channel_results = await asyncio.gather(
            *(self._send_channel(kind, list(routed[kind]), title, body, data) for kind in kinds)
        )

        for kind, channel_result in zip(kinds, channel_results):
            for normalized, raws in routed[kind].items():
                if channel_result is not None and normalized in channel_result.delivered:
                    outcome = Outcome.SENT
                elif channel_result is not None and normalized in channel_result.dead:
                    outcome = Outcome.DEAD
                    dead_raw.extend(raws)
                else:
                    outcome = Outcome.FAILED
                for raw in raws:
                    result.outcomes[raw] = outcome
                    if outcome == Outcome.SENT:
                        result.success_count += 1
                    else:
                        result.failure_count += 1

        if dead_raw:
            result.removed_tokens = await self._remove_dead_tokens(dead_raw)

        logger.info(
            f"📤 Push dispatch finished: {result.success_count} sent, {result.failure_count} failed"
        )
        return result

    async def _send_channel(self, kind: TokenKind, tokens: List[str], title: str, body: str,
                            data: Dict[str, Any]) -> Optional[TransportResult]:
        transport = self.transports.get(kind)
        if transport is None:
            logger.warning(f"⚠️ No transport registered for {kind.value} tokens")
            return None
        try:
            return await transport.send(tokens, title, body, data)
        except Exception:
            logger.exception(f"❌ {transport.name} transport failed")
            return None

    async def _remove_dead_tokens(self, tokens: List[str]) -> List[str]:
        tokens = list(dict.fromkeys(tokens))
        if self.db is None:
            return []
        try:
            await crud.clear_push_tokens(self.db, tokens)
        except Exception:
            logger.exception("❌ Failed to remove dead push tokens")
            return []
        return tokens

    async def close(self):
        for transport in self.transports.values():
            await transport.close()
