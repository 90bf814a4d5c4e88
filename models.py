from pydantic import BaseModel


class SendOTPRequest(BaseModel):
    email: str


class VerifyOTPRequest(BaseModel):
    email: str
    otp: str


class SuccessResponse(BaseModel):
    success: bool


class JWTResponse(BaseModel):
    """Response model for JWT token."""

    jwt: str
