from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import requests

from shift_errors import DeliveryError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatWebhookConfig:
    webhook_url: str
    timeout_seconds: int = 15


def post_chat_payload(*, cfg: ChatWebhookConfig, payload: dict[str, Any]) -> None:
    """Post a payload to a chat space via its incoming webhook.

    No OAuth involved: the webhook URL carries its own key/token, so it can
    only post to the one space it was created for.
    """

    url = str(cfg.webhook_url or "").strip()
    if not url:
        raise DeliveryError("Chat webhook_url is empty")

    try:
        resp = requests.post(
            url,
            data=json.dumps(payload),
            headers={"Content-Type": "application/json; charset=UTF-8"},
            timeout=cfg.timeout_seconds,
        )
    except requests.RequestException as e:
        raise DeliveryError(f"Chat webhook request failed: {e}") from e

    if resp.status_code >= 400:
        raise DeliveryError(f"Chat webhook failed ({resp.status_code}): {resp.text[:500]}")

    logger.info("Chat webhook accepted payload (%s)", resp.status_code)


def post_chat_message(*, cfg: ChatWebhookConfig, text: str) -> None:
    if not str(text or "").strip():
        raise DeliveryError("Refusing to post an empty chat message")
    post_chat_payload(cfg=cfg, payload={"text": text})


def post_chat_card(*, cfg: ChatWebhookConfig, card: dict[str, Any], fallback_text: str = "") -> None:
    payload: dict[str, Any] = dict(card)
    if fallback_text:
        payload["text"] = fallback_text
    post_chat_payload(cfg=cfg, payload=payload)
