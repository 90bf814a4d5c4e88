import logging
from datetime import datetime
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

import config
from services import email_service
from services.email_service import (
    NullMailer,
    SesMailer,
    SmtpMailer,
    build_mailer,
    otp_subject,
    render_otp_email,
)


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        pass

    def has_extn(self, name):
        return name == "starttls"

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def sendmail(self, from_addr, to_addrs, msg):
        self.sent.append((from_addr, to_addrs, msg))


class FakeSesClient:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def send_email(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return {"MessageId": "msg-1"}


@pytest.fixture
def smtp_settings(monkeypatch):
    monkeypatch.setattr(config, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(config, "SMTP_PORT", 587)
    monkeypatch.setattr(config, "SMTP_USER", "noreply@example.com")
    monkeypatch.setattr(config, "SMTP_PASS", "hunter2")


def test_subject_embeds_local_timestamp():
    subject = otp_subject(datetime(2026, 10, 18, 15, 4, 5))
    assert subject == "OTP for verification 10/18/2026, 03:04:05 PM"


def test_render_contains_code():
    html_body, text_body = render_otp_email("123456", lifetime=5)
    assert "<h1>Your OTP is 123456</h1>" in html_body
    assert "123456" in text_body
    assert "5 minutes" in text_body


def test_null_backend():
    assert isinstance(build_mailer("null"), NullMailer)


def test_missing_smtp_settings_fall_back_to_null(monkeypatch, caplog):
    monkeypatch.setattr(config, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(config, "SMTP_PORT", None)
    monkeypatch.setattr(config, "SMTP_USER", None)
    monkeypatch.setattr(config, "SMTP_PASS", None)

    with caplog.at_level(logging.WARNING, logger="otp_mail_api"):
        mailer = build_mailer("smtp")

    assert isinstance(mailer, NullMailer)
    assert "SMTP configuration is missing" in caplog.text


def test_full_smtp_settings_build_smtp_mailer(smtp_settings):
    mailer = build_mailer("SMTP")
    assert isinstance(mailer, SmtpMailer)
    assert mailer.host == "smtp.example.com"
    assert mailer.port == 587
    assert mailer.user == "noreply@example.com"
    assert mailer.password == "hunter2"


def test_ses_backend_requires_sender(monkeypatch):
    monkeypatch.setattr(config, "AWS_SES_SENDER_EMAIL", None)
    with pytest.raises(ValueError):
        build_mailer("ses")


def test_unknown_backend():
    with pytest.raises(ValueError):
        build_mailer("pigeon")


def test_smtp_mailer_sends_html(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)

    mailer = SmtpMailer("smtp.example.com", 2525, "noreply@example.com", "pw", timeout=7)
    mailer.send_otp("user@example.com", "654321")

    server = FakeSMTP.instances[-1]
    assert (server.host, server.port, server.timeout) == ("smtp.example.com", 2525, 7)
    assert server.started_tls
    assert server.logged_in == ("noreply@example.com", "pw")

    from_addr, to_addrs, raw = server.sent[0]
    assert from_addr == "noreply@example.com"
    assert to_addrs == ["user@example.com"]
    assert "Subject: OTP for verification" in raw
    assert "text/html" in raw


def test_smtp_message_bodies():
    mailer = SmtpMailer("smtp.example.com", 25, "noreply@example.com", "pw")
    msg = mailer.build_message("user@example.com", "654321")

    assert msg["To"] == "user@example.com"
    assert msg["From"] == "noreply@example.com"
    parts = {part.get_content_type(): part.get_payload(decode=True).decode() for part in msg.get_payload()}
    assert "Your OTP is 654321" in parts["text/html"]
    assert "654321" in parts["text/plain"]


def test_ses_mailer_sends_email():
    client = FakeSesClient()
    SesMailer("noreply@example.com", client=client).send_otp("user@example.com", "111222")

    call = client.calls[0]
    assert call["Source"] == "noreply@example.com"
    assert call["Destination"] == {"ToAddresses": ["user@example.com"]}
    assert call["Message"]["Subject"]["Data"].startswith("OTP for verification")
    assert "111222" in call["Message"]["Body"]["Html"]["Data"]


def test_ses_mailer_reraises_client_error():
    error = ClientError(
        {"Error": {"Code": "MessageRejected", "Message": "Email address is not verified"}},
        "SendEmail",
    )
    client = FakeSesClient(error=error)

    with pytest.raises(ClientError):
        SesMailer("noreply@example.com", client=client).send_otp("user@example.com", "111222")


def test_template_ships_inside_services_package():
    template_dir = Path(email_service.__file__).resolve().parent / "templates"
    assert (template_dir / "otp_email.html.jinja").is_file()
    assert email_service.template.filename.startswith(str(template_dir))
