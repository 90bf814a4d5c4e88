from sqlmodel import Session, SQLModel, create_engine

from config import DATABASE_URL
from otpmodel.otp_model import OtpRecord  # noqa: F401 (registers the table)

engine = create_engine(DATABASE_URL, echo=False)


def init_db():
    SQLModel.metadata.create_all(engine)


def get_session():
    return Session(engine)
