import os
import tempfile

# IMPORTANT: configure the environment before config.py is imported
_tmpdir = tempfile.mkdtemp(prefix="otp-tests-")
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'otp_test.db')}"
os.environ["MAIL_BACKEND"] = "null"

import pytest
from argon2 import PasswordHasher
from sqlmodel import SQLModel, select

from database import engine, get_session
from otpmodel.otp_model import OtpRecord
from services.otp_service import OtpService

# Cheap parameters, tests hash a lot
fast_hasher = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


class RecordingMailer:
    def __init__(self):
        self.sent = []

    def send_otp(self, to: str, otp: str) -> None:
        self.sent.append((to, otp))


class FailingMailer:
    def __init__(self):
        self.calls = 0

    def send_otp(self, to: str, otp: str) -> None:
        self.calls += 1
        raise ConnectionRefusedError("smtp server unreachable")


# Fresh tables for every test
@pytest.fixture(autouse=True)
def _db_clean():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def service(mailer):
    return OtpService(mailer, hasher=fast_hasher)


# ---------- helpers ----------
def records_for(email: str):
    with get_session() as session:
        return session.exec(
            select(OtpRecord).where(OtpRecord.email == email).order_by(OtpRecord.id)
        ).all()
