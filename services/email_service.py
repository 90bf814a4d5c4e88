import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Protocol

import boto3
from botocore.exceptions import ClientError
from jinja2 import Environment, FileSystemLoader, select_autoescape

import config

logger = logging.getLogger("otp_mail_api.email")

# Set up Jinja env
env = Environment(
    loader=FileSystemLoader(Path(__file__).resolve().parent / "templates"),
    autoescape=select_autoescape(["html", "xml"]),
)

template = env.get_template("otp_email.html.jinja")


def otp_subject(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"OTP for verification {now.strftime('%m/%d/%Y, %I:%M:%S %p')}"


def render_otp_email(otp: str, lifetime: int = config.OTP_LIFETIME_MINUTES):
    """Return the (html, text) bodies for an OTP email."""
    html_body = template.render(otp=otp, lifetime=lifetime)
    text_body = f"Your OTP is {otp}. This code expires in {lifetime} minutes."
    return html_body, text_body


class Mailer(Protocol):
    def send_otp(self, to: str, otp: str) -> None: ...


class NullMailer:
    """Used when no mail transport is configured; codes only reach the log."""

    def send_otp(self, to: str, otp: str) -> None:
        return None


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        timeout: int = config.SMTP_TIMEOUT_SECONDS,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.timeout = timeout

    def build_message(self, to: str, otp: str) -> MIMEMultipart:
        html_body, text_body = render_otp_email(otp)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = otp_subject()
        msg["From"] = self.user
        msg["To"] = to
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))
        return msg

    def send_otp(self, to: str, otp: str) -> None:
        msg = self.build_message(to, otp)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.ehlo()
            # Plain connection, upgraded when the server offers it
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            server.login(self.user, self.password)
            server.sendmail(self.user, [to], msg.as_string())

        logger.info(f"OTP email sent via SMTP to {to}")


class SesMailer:
    def __init__(self, sender: str, client=None):
        self.sender = sender
        self.client = client or boto3.client(
            "ses",
            region_name=config.AWS_REGION,
            aws_access_key_id=str(config.AWS_ACCESS_KEY) if config.AWS_ACCESS_KEY else None,
            aws_secret_access_key=(
                str(config.AWS_SECRET_ACCESS_KEY) if config.AWS_SECRET_ACCESS_KEY else None
            ),
        )

    def send_otp(self, to: str, otp: str) -> None:
        html_body, text_body = render_otp_email(otp)

        try:
            resp = self.client.send_email(
                Source=self.sender,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": otp_subject()},
                    "Body": {
                        "Html": {"Data": html_body},
                        "Text": {"Data": text_body},
                    },
                },
            )
        except ClientError as e:
            code = e.response["Error"]["Code"]
            logger.error(f"SES ClientError when sending OTP email to {to}: {code}")
            raise

        logger.info(f"OTP email sent via SES to {to}, Message ID: {resp.get('MessageId')}")


def build_mailer(backend: str | None = None) -> Mailer:
    """
    Pick the mail transport from configuration.

    Missing SMTP settings are a supported setup: a NullMailer is returned and
    OTP codes are only written to the log.
    """
    backend = (backend or config.MAIL_BACKEND).lower()

    if backend == "null":
        return NullMailer()

    if backend == "ses":
        if not config.AWS_SES_SENDER_EMAIL:
            raise ValueError("AWS_SES_SENDER_EMAIL must be set when MAIL_BACKEND=ses")
        return SesMailer(config.AWS_SES_SENDER_EMAIL)

    if backend != "smtp":
        raise ValueError(f"Unknown MAIL_BACKEND: {backend}")

    if config.SMTP_HOST and config.SMTP_PORT and config.SMTP_USER and config.SMTP_PASS:
        return SmtpMailer(
            config.SMTP_HOST,
            config.SMTP_PORT,
            config.SMTP_USER,
            str(config.SMTP_PASS),
        )

    logger.warning(
        "SMTP configuration is missing. OTP codes will be logged to the console instead of being emailed."
    )
    return NullMailer()
