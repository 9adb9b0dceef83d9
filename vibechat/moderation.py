"""Moderation gate — fail-open content check against the White Circle protect API.

Runs once per request before generation. The gate only blocks when the
service answers successfully and reports a violation; timeouts, transport
errors and non-2xx responses all count as "allowed". While the check is in
flight the UI sees a reasoning bracket so the wait is visible.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import httpx

from vibechat.schemas import ReasoningEnd, ReasoningStart, TextPart

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vibechat.config import ModerationConfig
    from vibechat.schemas import Message
    from vibechat.sink import EventWriter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModerationDecision:
    violated: bool


ALLOWED = ModerationDecision(violated=False)


# ---------------------------------------------------------------------------
# Conversation helpers
# ---------------------------------------------------------------------------


def select_candidate(conversation: Sequence[Message]) -> Message | None:
    """Last user or assistant message, or None if there is none."""
    for message in reversed(conversation):
        if message.role in ("user", "assistant"):
            return message
    return None


def first_external_id(conversation: Sequence[Message]) -> str | None:
    """Id of the first message carrying one; keys the service's context history."""
    return next((m.id for m in conversation if m.id), None)


def message_text(message: Message) -> str:
    return "\n".join(part.text for part in message.parts if isinstance(part, TextPart))


def build_payload(
    content: str,
    role: Literal["user", "assistant"],
    external_id: str | None = None,
) -> dict:
    payload: dict = {}
    if external_id:
        payload["external_id"] = external_id
    payload.update(
        include_context=True,       # load prior context keyed by external_id
        include_policy_names=True,  # report which policies were checked
        double_check=True,          # re-check positives with a larger model
        messages=[{"role": role, "content": content}],
    )
    return payload


# ---------------------------------------------------------------------------
# Service call
# ---------------------------------------------------------------------------


async def fetch_moderation(
    config: ModerationConfig,
    *,
    content: str,
    role: Literal["user", "assistant"],
    external_id: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Ask the protect API whether ``content`` violates policy.

    Returns True only for a successful response whose ``violation`` flag is
    truthy. Every failure is logged and reported as False.
    """
    headers = {
        "accept": "application/json",
        "content-type": "application/json",
        "whitecircle-version": config.api_version,
        "Authorization": f"Bearer {config.api_key}",
    }
    payload = build_payload(content, role, external_id)

    try:
        async with httpx.AsyncClient(timeout=config.timeout, transport=transport) as client:
            resp = await asyncio.wait_for(
                client.post(config.url, json=payload, headers=headers),
                timeout=config.timeout,
            )
    except asyncio.TimeoutError:
        logger.error(f"Moderation check timed out after {config.timeout}s")
        return False
    except Exception as e:
        logger.error(f"Error communicating with moderation service: {e}")
        return False

    if not resp.is_success:
        logger.error(f"Moderation service returned HTTP {resp.status_code}")
        return False

    try:
        body = resp.json()
    except ValueError as e:
        logger.error(f"Moderation service returned invalid JSON: {e}")
        return False

    return isinstance(body, dict) and bool(body.get("violation"))


class ModerationGate:
    """Pre-generation check. Disabled when no API key is configured."""

    def __init__(
        self,
        config: ModerationConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def check(
        self, conversation: Sequence[Message], writer: EventWriter
    ) -> ModerationDecision:
        if not self.enabled:
            return ALLOWED

        candidate = select_candidate(conversation)
        if candidate is None:
            logger.warning("No user or assistant message to moderate — skipping check")
            return ALLOWED

        event_id = f"moderation-{uuid.uuid4()}"
        await writer.write(ReasoningStart(id=event_id))
        try:
            violated = await fetch_moderation(
                self.config,
                content=message_text(candidate),
                role=candidate.role,
                external_id=first_external_id(conversation),
                transport=self._transport,
            )
        finally:
            await writer.write(ReasoningEnd(id=event_id))

        if violated:
            logger.info(f"Moderation flagged {candidate.role} message {candidate.id!r}")
        return ModerationDecision(violated=violated)
