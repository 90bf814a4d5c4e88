from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


class OtpRecord(SQLModel, table=True):
    __tablename__ = "otp_records"

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    hashed_otp: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expire_at: datetime
