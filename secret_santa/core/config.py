import os
from dataclasses import dataclass
from typing import Optional

from cryptography.fernet import Fernet
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    encryption_key: str
    log_level: str
    log_path: str
    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    smtp_from: Optional[str]


def validate_encryption_key(key: Optional[str]) -> str:
    key = (key or "").strip()
    if not key:
        raise ValueError("ENCRYPTION_KEY is required. Set it in the environment or .env file.")
    try:
        Fernet(key.encode("utf-8"))
    except (ValueError, TypeError) as exc:
        raise ValueError(
            "ENCRYPTION_KEY must be a url-safe base64-encoded 32-byte key "
            "(generate one with `python main.py generate-key`)."
        ) from exc
    return key


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL")
    encryption_key = validate_encryption_key(os.getenv("ENCRYPTION_KEY"))
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_path = os.getenv("LOG_PATH", "logs/secret_santa.log")

    if not database_url:
        raise ValueError("DATABASE_URL is required. Set it in the environment or .env file.")

    smtp_port = os.getenv("SMTP_PORT") or "587"
    try:
        port = int(smtp_port)
    except ValueError as exc:
        raise ValueError(f"SMTP_PORT must be an integer, got {smtp_port!r}.") from exc

    smtp_user = os.getenv("SMTP_USER") or None
    return Settings(
        database_url=database_url,
        encryption_key=encryption_key,
        log_level=log_level,
        log_path=log_path,
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=port,
        smtp_user=smtp_user,
        smtp_password=os.getenv("SMTP_PASS") or None,
        smtp_from=os.getenv("SMTP_FROM") or smtp_user,
    )
