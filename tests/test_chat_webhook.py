"""Tests for shift_chat_webhook (requests.post is stubbed)."""

import json

import pytest
import requests

import shift_chat_webhook
from shift_chat_webhook import ChatWebhookConfig, post_chat_card, post_chat_message
from shift_errors import DeliveryError


class FakeResponse:
    def __init__(self, status_code=200, text="{}"):
        self.status_code = status_code
        self.text = text


@pytest.fixture
def posted(monkeypatch):
    calls = []

    def fake_post(url, data=None, headers=None, timeout=None):
        calls.append({"url": url, "payload": json.loads(data), "headers": headers, "timeout": timeout})
        return FakeResponse()

    monkeypatch.setattr(shift_chat_webhook.requests, "post", fake_post)
    return calls


CFG = ChatWebhookConfig(webhook_url="https://chat.example/v1/spaces/X/messages?key=k")


class TestPostChat:
    def test_message(self, posted):
        post_chat_message(cfg=CFG, text="hello")
        assert posted[0]["url"] == CFG.webhook_url
        assert posted[0]["payload"] == {"text": "hello"}
        assert posted[0]["timeout"] == 15

    def test_card_with_fallback(self, posted):
        post_chat_card(cfg=CFG, card={"cardsV2": [{"cardId": "c"}]}, fallback_text="fb")
        assert posted[0]["payload"] == {"cardsV2": [{"cardId": "c"}], "text": "fb"}

    def test_empty_message_refused(self, posted):
        with pytest.raises(DeliveryError):
            post_chat_message(cfg=CFG, text="  ")
        assert posted == []

    def test_empty_url(self, posted):
        with pytest.raises(DeliveryError):
            post_chat_message(cfg=ChatWebhookConfig(webhook_url=""), text="hi")

    def test_http_error_status(self, monkeypatch):
        monkeypatch.setattr(shift_chat_webhook.requests, "post", lambda *a, **k: FakeResponse(403, "forbidden"))
        with pytest.raises(DeliveryError, match="403"):
            post_chat_message(cfg=CFG, text="hi")

    def test_network_error(self, monkeypatch):
        def boom(*a, **k):
            raise requests.ConnectionError("down")

        monkeypatch.setattr(shift_chat_webhook.requests, "post", boom)
        with pytest.raises(DeliveryError) as exc:
            post_chat_message(cfg=CFG, text="hi")
        assert exc.value.stage == "delivery"
