import httpx

from installflow.config import NotificationConfig
from installflow.services.notifications import (
    EmailChannel, NotificationRouter, SmsChannel, WhatsAppChannel, build_router, recipient_for,
)
from tests.factories import FakeChannel


class _Client:
    email = "alex@example.com"
    phone = "+447700900123"


async def test_router_stops_at_first_success():
    email, sms = FakeChannel("email"), FakeChannel("sms")
    router = NotificationRouter({"email": email, "sms": sms})

    report = await router.deliver(_Client(), "email", "Subject", "Body", fallback="sms")

    assert report.delivered_via == "email"
    assert sms.sent == []


async def test_router_reports_unconfigured_channel():
    sms = FakeChannel("sms")
    router = NotificationRouter({"sms": sms})

    report = await router.deliver(_Client(), "whatsapp", "S", "B", fallback="sms")

    assert report.delivered_via == "sms"
    assert report.attempts[0] == {
        "channel": "whatsapp", "recipient": "+447700900123", "ok": False, "error": "unconfigured",
    }


async def test_router_all_failed():
    router = NotificationRouter({"email": FakeChannel("email", ok=False)})

    report = await router.deliver(_Client(), "email", "S", "B")

    assert not report.delivered
    assert len(report.attempts) == 1


def test_recipient_for_channel():
    assert recipient_for("email", _Client()) == "alex@example.com"
    assert recipient_for("whatsapp", _Client()) == "+447700900123"


async def test_email_without_api_key_is_not_sent():
    assert await EmailChannel("", "from@example.com").send("a@example.com", "S", "B") is False


async def test_sms_without_credentials_is_not_sent():
    assert await SmsChannel("", "", "").send("+447700900123", "S", "B") is False


async def test_sms_requires_e164():
    assert await SmsChannel("AC1", "tok", "+15550000000").send("07700 900123", "S", "B") is False


async def test_whatsapp_posts_prefixed_numbers(monkeypatch):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = request.content.decode()
        return httpx.Response(201, json={"sid": "SM1"})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    ok = await WhatsAppChannel("AC1", "tok", "+15550000000").send("+447700900123", "S", "Hello")

    assert ok is True
    assert captured["url"].endswith("/Accounts/AC1/Messages.json")
    assert "To=whatsapp%3A%2B447700900123" in captured["body"]


async def test_twilio_error_status_is_a_failure(monkeypatch):
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx, "AsyncClient",
        lambda **kwargs: real_client(
            transport=httpx.MockTransport(lambda r: httpx.Response(400, text="bad number")), **kwargs,
        ),
    )

    assert await SmsChannel("AC1", "tok", "+15550000000").send("+447700900123", "S", "B") is False


def test_build_router_wires_all_channels():
    router = build_router(NotificationConfig())
    assert isinstance(router.get("email"), EmailChannel)
    assert isinstance(router.get("whatsapp"), WhatsAppChannel)
    assert router.get("pigeon") is None
