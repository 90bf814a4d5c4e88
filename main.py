import string
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi_utilities import repeat_every

from auth import create_access_token
from config import CORS_ORIGINS, OTP_CLEANUP_INTERVAL_SECONDS
from database import init_db
from models import JWTResponse, SendOTPRequest, SuccessResponse, VerifyOTPRequest
from services.email_service import build_mailer
from services.logs_service import logger
from services.otp_service import OtpService

otp_service = OtpService(build_mailer())


def get_otp_service() -> OtpService:
    return otp_service


def clear_superseded_otps() -> int:
    rows_deleted = otp_service.clear_superseded()
    if rows_deleted:
        logger.info(f"OTP cleanup task removed {rows_deleted} superseded entries")
    return rows_deleted


# cron job to clean up superseded OTPs
@repeat_every(seconds=OTP_CLEANUP_INTERVAL_SECONDS)
def otp_cleanup_task():
    clear_superseded_otps()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up... Initializing database.")
    init_db()
    await otp_cleanup_task()  # Initial cleanup on startup
    yield


app = FastAPI(
    title="OTP Mail API",
    description="Issue and verify one-time passcodes sent by email",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create router with /api/v1 prefix
router = APIRouter(prefix="/api/v1")


def normalize_email(raw: str) -> str:
    email = raw.lower().strip()
    if "@" not in email:
        logger.warning(f"Rejected OTP request due to invalid email format: {email}")
        raise HTTPException(400, "Invalid email")
    return email


@router.post(
    "/auth/send-otp",
    response_model=SuccessResponse,
    tags=["Authentication"],
    summary="Send OTP to email",
    description="Generate a one-time password (OTP) for the email and send it "
    "if a mail transport is configured. Delivery failures do not fail the request.",
    responses={
        200: {"description": "The OTP was generated"},
        400: {"description": "The email address is malformed"},
    },
)
def send_otp(
    request: SendOTPRequest, service: OtpService = Depends(get_otp_service)
):
    email = normalize_email(request.email)
    service.send_otp(email)
    return SuccessResponse(success=True)


@router.post(
    "/auth/verify-otp",
    response_model=JWTResponse,
    tags=["Authentication"],
    summary="Verify OTP",
    description="Verify an OTP provided by the user.",
    responses={
        200: {"description": "The OTP is valid. Returns a JWT of type 'otp'"},
        400: {"description": "The OTP is missing, expired, invalid or malformed"},
    },
)
def verify_otp(
    request: VerifyOTPRequest, service: OtpService = Depends(get_otp_service)
):
    email = normalize_email(request.email)
    otp = request.otp.strip()

    if len(otp) != 6 or not all(c in string.digits for c in otp):
        logger.warning(f"Rejected OTP verification due to invalid OTP format for email: {email}")
        raise HTTPException(400, "Invalid OTP format")

    service.verify_otp(email, otp)

    token = create_access_token(email=email)

    logger.info(f"OTP verified successfully for email={email}")
    return JWTResponse(jwt=token)


# Include router in the app
app.include_router(router)


def main():
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
