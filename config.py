import os

from starlette.config import Config
from starlette.datastructures import CommaSeparatedStrings, Secret

# If APP_CONFIG is set, use that as the path to the .env file, or default to .env
env_file = os.getenv("APP_CONFIG", ".env")
if "APP_CONFIG" in os.environ and not os.path.isfile(env_file):
    raise FileNotFoundError(f"The configuration file specified in APP_CONFIG or the default .env does not exist: {env_file}")

config = Config(env_file)

# JWT Configuration
JWT_SECRET_KEY: Secret = config("JWT_SECRET_KEY", cast=Secret)
JWT_ALGORITHM: str = config("JWT_ALGORITHM", default="HS256")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = config(
    "JWT_ACCESS_TOKEN_EXPIRE_MINUTES", cast=int, default=60
)
JWT_ISSUER: str = config("JWT_ISSUER", default="otp-mail-api")
JWT_AUDIENCE: str = config("JWT_AUDIENCE", default="otp-mail-api")

# Application Configuration
CORS_ORIGINS: CommaSeparatedStrings = config(
    "CORS_ORIGINS", cast=CommaSeparatedStrings, default=CommaSeparatedStrings([])
)
DEBUG: bool = config("DEBUG", cast=bool, default=False)

# Mail Configuration: "smtp", "ses" or "null"
MAIL_BACKEND: str = config("MAIL_BACKEND", default="smtp")

# SMTP Configuration. Delivery is disabled unless all four are set.
SMTP_HOST: str | None = config("SMTP_HOST", default=None)
SMTP_PORT: int | None = config("SMTP_PORT", cast=int, default=None)
SMTP_USER: str | None = config("SMTP_USER", default=None)
SMTP_PASS: Secret | None = config("SMTP_PASS", cast=Secret, default=None)
SMTP_TIMEOUT_SECONDS: int = config("SMTP_TIMEOUT_SECONDS", cast=int, default=30)

# AWS SES Configuration
AWS_REGION: str = config("AWS_REGION", default="us-east-2")
AWS_ACCESS_KEY: Secret | None = config("AWS_ACCESS_KEY", cast=Secret, default=None)
AWS_SECRET_ACCESS_KEY: Secret | None = config(
    "AWS_SECRET_ACCESS_KEY", cast=Secret, default=None
)
AWS_SES_SENDER_EMAIL: str | None = config("AWS_SES_SENDER_EMAIL", default=None)

# OTP Configuration
OTP_LIFETIME_MINUTES: int = config("OTP_LIFETIME_MINUTES", cast=int, default=5)
OTP_HASH_TIME_COST: int = config("OTP_HASH_TIME_COST", cast=int, default=3)

# Database Configuration
DATABASE_URL: str = config("DATABASE_URL", default="sqlite:///./otp_database.db")

# Cron Job Configuration
OTP_CLEANUP_INTERVAL_SECONDS: int = config(
    "OTP_CLEANUP_INTERVAL_SECONDS", cast=int, default=60
)
