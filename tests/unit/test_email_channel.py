# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the email channel."""

import json
from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest
from pydantic import SecretStr

from src.core.config.settings import EmailSettings
from src.infrastructure.notifications import (
    DeliveryStatus,
    EmailChannel,
    NotificationPayload,
    html_to_text,
)


def payload(**overrides) -> NotificationPayload:
    values = {
        "recipient_email": "finance@college.example",
        "subject": "Payment Reminder",
        "html": "<p>Amount: <strong>$1,000.00 AUD</strong></p><p>Thanks &amp; regards</p>",
        "metadata": {"installment_id": "inst-1"},
    }
    values.update(overrides)
    return NotificationPayload(**values)


def resend_settings(**overrides) -> EmailSettings:
    values = {
        "provider": "resend",
        "RESEND_API_KEY": SecretStr("re_test"),
        "from_address": "Pleeno <noreply@pleeno.com>",
    }
    values.update(overrides)
    return EmailSettings(**values)


def smtp_settings() -> EmailSettings:
    return EmailSettings(provider="smtp", smtp_host="mailhog", smtp_port=1025, smtp_use_tls=False)


class TestHtmlToText:
    """Tests for html_to_text."""

    def test_strips_tags_and_unescapes(self) -> None:
        text = html_to_text("<p>Hello <b>Ana</b></p><p>Fish &amp; chips<br/>Line</p>")

        assert text == "Hello Ana\nFish & chips\nLine"


class TestResendTransport:
    """Tests for sending through the Resend API."""

    @pytest.mark.asyncio
    async def test_posts_message_and_returns_id(self) -> None:
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email_123"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await EmailChannel(resend_settings(), http_client=client).send(payload())

        assert result.status == DeliveryStatus.SENT
        assert result.message_id == "email_123"
        assert result.metadata == {"installment_id": "inst-1"}
        assert captured["auth"] == "Bearer re_test"
        assert captured["body"]["to"] == ["finance@college.example"]
        assert captured["body"]["from"] == "Pleeno <noreply@pleeno.com>"
        assert captured["body"]["text"] == "Amount: $1,000.00 AUD\nThanks & regards"

    @pytest.mark.asyncio
    async def test_api_error_is_a_failed_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, text="invalid to address")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await EmailChannel(resend_settings(), http_client=client).send(payload())

        assert result.status == DeliveryStatus.FAILED
        assert "422" in result.error_message
        assert not result.is_success

    @pytest.mark.asyncio
    async def test_network_error_is_a_failed_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await EmailChannel(resend_settings(), http_client=client).send(payload())

        assert result.status == DeliveryStatus.FAILED
        assert "Resend request failed" in result.error_message

    @pytest.mark.asyncio
    async def test_missing_api_key_fails_without_sending(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = EmailSettings(provider="resend")

        result = await EmailChannel(settings).send(payload())

        assert result.status == DeliveryStatus.FAILED
        assert result.error_message == "RESEND_API_KEY is not set"

    @pytest.mark.asyncio
    async def test_empty_recipient_is_skipped(self) -> None:
        result = await EmailChannel(resend_settings()).send(payload(recipient_email=""))

        assert result.status == DeliveryStatus.SKIPPED


class TestSmtpTransport:
    """Tests for sending through SMTP."""

    @pytest.mark.asyncio
    async def test_sends_multipart_message(self) -> None:
        with patch("aiosmtplib.send", new_callable=AsyncMock) as send:
            result = await EmailChannel(smtp_settings()).send(payload())

        assert result.status == DeliveryStatus.SENT
        message = send.await_args.args[0]
        assert message["To"] == "finance@college.example"
        assert message["Subject"] == "Payment Reminder"
        assert [part.get_content_type() for part in message.get_payload()] == [
            "text/plain",
            "text/html",
        ]
        assert send.await_args.kwargs["hostname"] == "mailhog"
        assert send.await_args.kwargs["port"] == 1025

    @pytest.mark.asyncio
    async def test_smtp_error_is_a_failed_result(self) -> None:
        with patch(
            "aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=aiosmtplib.SMTPConnectError("refused"),
        ):
            result = await EmailChannel(smtp_settings()).send(payload())

        assert result.status == DeliveryStatus.FAILED
        assert result.error_message.startswith("SMTP error")
