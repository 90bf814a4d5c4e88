import logging
import secrets
from datetime import datetime, timedelta, timezone

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from fastapi import HTTPException, status
from sqlalchemy import and_, delete, or_
from sqlalchemy.orm import aliased
from sqlmodel import select

from config import OTP_HASH_TIME_COST, OTP_LIFETIME_MINUTES
from database import get_session
from otpmodel.otp_model import OtpRecord
from services.email_service import Mailer, NullMailer

logger = logging.getLogger("otp_mail_api.otp")


class OtpError(HTTPException):
    """Client-fault OTP verification failure."""

    message = "Otp verification failed"

    def __init__(self, message: str | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST, detail=message or self.message
        )


class OtpNotFoundError(OtpError):
    message = "Otp not found"


class OtpExpiredError(OtpError):
    message = "Your otp is expired"


class InvalidOtpError(OtpError):
    message = "Invalid otp entered"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite stores naive datetime, so replace tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


class OtpService:
    def __init__(
        self,
        mailer: Mailer,
        session_factory=get_session,
        hasher: PasswordHasher | None = None,
        lifetime: timedelta = timedelta(minutes=OTP_LIFETIME_MINUTES),
    ):
        self.mailer = mailer
        self.session_factory = session_factory
        self.hasher = hasher or PasswordHasher(time_cost=OTP_HASH_TIME_COST)
        self.lifetime = lifetime

    def send_otp(self, to: str) -> str:
        """
        Generate, store and (if a transport is configured) email an OTP.

        Delivery failures are logged and never raised; the stored record is
        kept either way. Returns the plaintext code.
        """
        otp = generate_otp()
        logger.info(f"Generated OTP for {to}: {otp}")

        hashed = self.hasher.hash(otp)
        now = _now_utc()

        with self.session_factory() as session:
            record = OtpRecord(
                email=to,
                hashed_otp=hashed,
                created_at=now,
                expire_at=now + self.lifetime,
            )
            session.add(record)
            session.commit()

        if isinstance(self.mailer, NullMailer):
            return otp

        try:
            self.mailer.send_otp(to, otp)
        except Exception:
            logger.exception(f"Error sending OTP email to {to}")

        return otp

    def verify_otp(self, email: str, submitted_otp) -> bool:
        """
        Verify the submitted OTP against the latest stored OTP for the email.

        Raises an OtpError subclass on failure. On success every OTP stored
        for the email is deleted.
        """
        with self.session_factory() as session:
            records = session.exec(
                select(OtpRecord)
                .where(OtpRecord.email == email)
                .order_by(OtpRecord.created_at, OtpRecord.id)
            ).all()

            if not records:
                logger.warning(f"OTP verification failed: no OTP found for email={email}")
                raise OtpNotFoundError()

            current = records[-1]

            if _as_utc(current.expire_at) < _now_utc():
                logger.warning(f"OTP verification failed: OTP expired for email={email}")
                raise OtpExpiredError()

            try:
                self.hasher.verify(current.hashed_otp, str(submitted_otp))
            except VerifyMismatchError:
                logger.warning(f"OTP mismatch for email={email}")
                raise InvalidOtpError()
            except InvalidHash:
                logger.error(f"OTP verification failed due to invalid hash for email={email}")
                raise InvalidOtpError()
            except VerificationError:
                logger.exception(f"General Argon2 verification error for email={email}")
                raise InvalidOtpError()

            # Consume the matched record; a concurrent verifier may have won
            consumed = session.exec(
                delete(OtpRecord).where(OtpRecord.id == current.id)
            )
            if not consumed.rowcount:
                session.rollback()
                logger.warning(f"OTP already consumed for email={email}")
                raise OtpNotFoundError()

            session.exec(delete(OtpRecord).where(OtpRecord.email == email))
            session.commit()

        logger.info(f"OTP verified for email={email}")
        return True

    def clear_superseded(self) -> int:
        """
        Delete every record that has a newer record for the same email.

        The current record for an email is never touched, so an expired code
        still reports as expired. Returns the row count.
        """
        newer = aliased(OtpRecord)
        superseded = (
            select(newer.id)
            .where(
                newer.email == OtpRecord.email,
                or_(
                    newer.created_at > OtpRecord.created_at,
                    and_(
                        newer.created_at == OtpRecord.created_at,
                        newer.id > OtpRecord.id,
                    ),
                ),
            )
            .correlate(OtpRecord)
            .exists()
        )

        with self.session_factory() as session:
            result = session.exec(
                delete(OtpRecord)
                .where(superseded)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount or 0
