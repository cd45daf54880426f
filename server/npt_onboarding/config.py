import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv


@dataclass
class Settings:
    # Database
    database_url: str

    # Token hashing (invite tokens, OTP codes)
    token_hash_secret: str

    # Auth
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    admin_emails: frozenset[str] = field(default_factory=frozenset)
    disable_auth: bool = False

    # Cookies
    onboarding_session_cookie_name: str = "npt_onboarding_session"
    admin_auth_cookie_name: str = "npt_admin_session"

    # Onboarding
    invite_expires_hours: int = 72
    app_base_url: str = "http://localhost:3000"
    manual_form_pdf_path: Optional[str] = None
    session_resolve_url: Optional[str] = None

    # Email (MailerSend)
    mailersend_api_key: Optional[str] = None
    mailersend_from_email: str = "no-reply@npt.local"
    mailersend_from_name: str = "NPT Onboarding"

    # Storage / PDF jobs
    s3_bucket: Optional[str] = None
    s3_region: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    s3_temp_prefix: str = "tmp"
    application_form_pdf_lambda: Optional[str] = None

    # Server
    port: int = 8000
    log_level: str = "INFO"


# Global settings instance
_settings: Optional[Settings] = None


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def parse_admin_emails(raw: Optional[str]) -> frozenset[str]:
    """Parse a comma-separated allow-list into a lower-cased set."""
    if not raw:
        return frozenset()
    return frozenset(
        part.strip().lower()
        for part in raw.split(",")
        if part.strip()
    )


def load_settings() -> Settings:
    global _settings
    load_dotenv()

    database_url = os.getenv("DATABASE_URL", "")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is required")

    token_hash_secret = os.getenv("TOKEN_HASH_SECRET", "")
    if not token_hash_secret:
        raise ValueError("TOKEN_HASH_SECRET environment variable is required")

    jwt_secret_key = os.getenv("JWT_SECRET_KEY", "")
    if not jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY environment variable is required")

    disable_auth = _env_flag("DISABLE_AUTH")
    if disable_auth:
        print("[WARNING] DISABLE_AUTH is set. Every request is treated as an admin request")

    _settings = Settings(
        database_url=database_url.strip().strip('"'),
        token_hash_secret=token_hash_secret,
        jwt_secret_key=jwt_secret_key,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        admin_emails=parse_admin_emails(os.getenv("ADMIN_EMAILS")),
        disable_auth=disable_auth,
        onboarding_session_cookie_name=os.getenv("ONBOARDING_SESSION_COOKIE_NAME", "npt_onboarding_session"),
        admin_auth_cookie_name=os.getenv("ADMIN_AUTH_COOKIE_NAME", "npt_admin_session"),
        invite_expires_hours=int(os.getenv("INVITE_EXPIRES_HOURS", "72")),
        app_base_url=os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
        manual_form_pdf_path=os.getenv("MANUAL_FORM_PDF_PATH"),
        session_resolve_url=os.getenv("SESSION_RESOLVE_URL"),
        mailersend_api_key=os.getenv("MAILERSEND_API_KEY"),
        mailersend_from_email=os.getenv("MAILERSEND_FROM_EMAIL", "no-reply@npt.local"),
        mailersend_from_name=os.getenv("MAILERSEND_FROM_NAME", "NPT Onboarding"),
        s3_bucket=os.getenv("S3_BUCKET"),
        s3_region=os.getenv("S3_REGION", "us-east-1"),
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        s3_temp_prefix=os.getenv("S3_TEMP_PREFIX", "tmp").strip("/"),
        application_form_pdf_lambda=os.getenv("APPLICATION_FORM_PDF_LAMBDA"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
    return _settings


def get_settings() -> Settings:
    """Get the loaded settings. Must call load_settings() first."""
    global _settings
    if _settings is None:
        raise RuntimeError("Settings not initialized. Call load_settings() first.")
    return _settings
