import json
import logging
import smtplib
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import jwt
import pytest

from ahl_allah.core.config import Settings
from ahl_allah.dependencies import get_apple_provider
from ahl_allah.exceptions import Unauthorized
from ahl_allah.infrastructure.audit.std_logger import StdAuditLogger
from ahl_allah.infrastructure.email.smtp_sender import SmtpMailSender, LogMailSender, build_mail_sender
from ahl_allah.infrastructure.oauth.apple_provider import AppleOAuthProvider, APPLE_ISSUER
from ahl_allah.infrastructure.oauth.google_provider import GoogleOAuthProvider
from ahl_allah.infrastructure.otp.twilio_provider import TwilioSmsSender, ConsoleSmsSender, build_sms_sender


def _settings(**overrides):
    base = dict(TWILIO_ACCOUNT_SID="", TWILIO_AUTH_TOKEN="", SMTP_HOST="", EMAIL_FROM="")
    base.update(overrides)
    return Settings(**base)


# =========================
# Twilio
# =========================
class FakeMessages:
    def __init__(self, error=None):
        self.error = error
        self.created = []

    def create(self, **kwargs):
        if self.error:
            raise self.error
        self.created.append(kwargs)
        return SimpleNamespace(sid="SM123")


def test_twilio_sms_sender():
    messages = FakeMessages()
    sender = TwilioSmsSender(_settings(TWILIO_PHONE_NUMBER="+15550000000"), client=SimpleNamespace(messages=messages))
    assert sender.send("+15550001111", "hello") is True
    assert messages.created == [{"to": "+15550001111", "from_": "+15550000000", "body": "hello"}]


def test_twilio_whatsapp_channel():
    messages = FakeMessages()
    sender = TwilioSmsSender(
        _settings(SMS_CHANNEL="whatsapp", TWILIO_WHATSAPP_NUMBER="+15550000000"),
        client=SimpleNamespace(messages=messages),
    )
    sender.send("+15550001111", "hello")
    assert messages.created[0]["to"] == "whatsapp:+15550001111"
    assert messages.created[0]["from_"] == "whatsapp:+15550000000"


def test_twilio_failure_returns_false():
    from twilio.base.exceptions import TwilioException

    sender = TwilioSmsSender(_settings(), client=SimpleNamespace(messages=FakeMessages(TwilioException("boom"))))
    assert sender.send("+15550001111", "hello") is False


def test_console_sender_when_twilio_missing():
    assert isinstance(build_sms_sender(_settings()), ConsoleSmsSender)


# =========================
# SMTP
# =========================
class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port, self.timeout = host, port, timeout
        self.logged_in = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def starttls(self):
        pass

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, msg):
        self.messages.append(msg)

    def quit(self):
        pass


def test_smtp_sender(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP_SSL", FakeSMTP)
    sender = SmtpMailSender(_settings(
        SMTP_HOST="smtp.example.com", SMTP_USER="u", SMTP_PASSWORD="p", EMAIL_FROM="no-reply@example.com",
    ))
    assert sender.send("a@example.com", "Subject", "<b>hi</b>", "hi") is True
    server = FakeSMTP.instances[0]
    assert server.logged_in == ("u", "p")
    assert server.messages[0]["To"] == "a@example.com"
    assert server.messages[0]["From"] == "no-reply@example.com"


def test_smtp_failure_returns_false(monkeypatch):
    class Refusing(FakeSMTP):
        def send_message(self, msg):
            raise smtplib.SMTPRecipientsRefused({})

    monkeypatch.setattr(smtplib, "SMTP_SSL", Refusing)
    sender = SmtpMailSender(_settings(SMTP_HOST="smtp.example.com", EMAIL_FROM="no-reply@example.com"))
    assert sender.send("a@example.com", "Subject", "<b>hi</b>") is False


def test_log_sender_when_smtp_missing():
    assert isinstance(build_mail_sender(_settings()), LogMailSender)


# =========================
# Audit
# =========================
def test_audit_logger_hashes_subject(caplog):
    with caplog.at_level(logging.INFO):
        StdAuditLogger().log("otp_send", subject="+15550001111", details={"purpose": "login"})
    line = next(r.getMessage() for r in caplog.records if r.getMessage().startswith("AUDIT: "))
    entry = json.loads(line[len("AUDIT: "):])
    assert entry["action"] == "otp_send"
    assert "+15550001111" not in line
    assert len(entry["subject_hash"]) == 64


# =========================
# OAuth providers
# =========================
def _google(handler):
    settings = _settings(GOOGLE_CLIENT_ID="gid", GOOGLE_CLIENT_SECRET="gs", GOOGLE_CALLBACK_URL="http://api/cb")
    return GoogleOAuthProvider(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


async def test_google_fetch_profile():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            return httpx.Response(200, json={"access_token": "at"})
        assert request.headers["Authorization"] == "Bearer at"
        return httpx.Response(200, json={"sub": "g-1", "email": "x@example.com", "name": "X", "picture": "p.png"})

    profile = await _google(handler).fetch_profile(code="abc")
    assert profile.provider == "google"
    assert profile.provider_id == "g-1"
    assert profile.avatar == "p.png"


async def test_google_exchange_failure():
    provider = _google(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    with pytest.raises(Unauthorized):
        await provider.fetch_profile(code="abc")


def test_google_authorization_url_carries_state():
    provider = _google(lambda request: httpx.Response(200))
    url = provider.authorization_url("st4te")
    assert "state=st4te" in url
    assert "client_id=gid" in url


@pytest.fixture
def rsa_key():
    rsa = pytest.importorskip("cryptography.hazmat.primitives.asymmetric.rsa")
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _apple(rsa_key):
    settings = _settings(APPLE_CLIENT_ID="com.example.app")
    jwks = SimpleNamespace(get_signing_key_from_jwt=lambda token: SimpleNamespace(key=rsa_key.public_key()))
    return AppleOAuthProvider(settings, jwks_client=jwks)


def _id_token(rsa_key, **overrides):
    now = datetime.now(timezone.utc)
    claims = {"iss": APPLE_ISSUER, "aud": "com.example.app", "sub": "apple-1", "email": "a@privaterelay.appleid.com",
              "iat": now, "exp": now + timedelta(minutes=5)}
    claims.update(overrides)
    return jwt.encode(claims, rsa_key, algorithm="RS256")


async def test_apple_fetch_profile_from_id_token(rsa_key):
    profile = await _apple(rsa_key).fetch_profile(
        id_token=_id_token(rsa_key),
        user_payload=json.dumps({"name": {"firstName": "Yusuf", "lastName": "Ali"}}),
    )
    assert profile.provider_id == "apple-1"
    assert profile.name == "Yusuf Ali"
    assert profile.email == "a@privaterelay.appleid.com"


async def test_apple_rejects_wrong_audience(rsa_key):
    with pytest.raises(Unauthorized):
        await _apple(rsa_key).fetch_profile(id_token=_id_token(rsa_key, aud="someone.else"))


async def test_apple_requires_code_or_token(rsa_key):
    with pytest.raises(Unauthorized):
        await _apple(rsa_key).fetch_profile()


def test_apple_provider_is_shared_across_requests():
    first = get_apple_provider()
    assert first is get_apple_provider()
    assert first._jwks_client is get_apple_provider()._jwks_client
