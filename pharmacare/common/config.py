"""Runtime configuration for the WhatsApp bot, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from pharmacare.common.helpers.secrets_helper import SecretsHelper
from pharmacare.common.logger import custom_logger

logger = custom_logger()

DEFAULT_API_VERSION = "v21.0"
DEFAULT_META_ENDPOINT = "https://graph.facebook.com"
DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "catalog" / "catalog.json"

REQUIRED_SETTINGS = {
    "WHATSAPP_TOKEN": "whatsapp_token",
    "WHATSAPP_PHONE_NUMBER_ID": "phone_number_id",
    "WEBHOOK_VERIFY_TOKEN": "verify_token",
}


@dataclass(frozen=True)
class Settings:
    """Configuration container for the Meta API, webhook and conversation."""

    whatsapp_token: str = ""
    phone_number_id: str = ""
    verify_token: str = ""
    api_version: str = DEFAULT_API_VERSION
    meta_endpoint: str = DEFAULT_META_ENDPOINT
    secret_name: Optional[str] = None
    welcome_template_name: Optional[str] = None
    welcome_image_url: Optional[str] = None
    support_phone: str = "+91-9876543210"
    store_name: str = "Ganesh Medicals"
    catalog_path: Path = DEFAULT_CATALOG_PATH
    session_store: str = "memory"
    dynamodb_table: Optional[str] = None
    endpoint_url: Optional[str] = None
    follow_up_delay_seconds: float = 2.0


def _apply_secret_overrides(settings: Settings) -> Settings:
    """Override the Meta credentials with the JSON secret when one is configured."""

    if not settings.secret_name:
        return settings

    try:
        secret = SecretsHelper(
            settings.secret_name, endpoint_url=settings.endpoint_url
        ).get_secret_value()
    except (BotoCoreError, ClientError, RuntimeError):
        logger.exception(
            "Failed to read WhatsApp secret; keeping environment values",
            extra={"secret_name": settings.secret_name},
        )
        return settings

    return replace(
        settings,
        whatsapp_token=secret.get("WHATSAPP_TOKEN") or settings.whatsapp_token,
        phone_number_id=secret.get("WHATSAPP_PHONE_NUMBER_ID")
        or settings.phone_number_id,
        verify_token=secret.get("WEBHOOK_VERIFY_TOKEN") or settings.verify_token,
    )


def load_settings() -> Settings:
    """Load configuration from environment variables and defaults.

    Invalid numeric values (FOLLOW_UP_DELAY_SECONDS) raise ValueError.
    """

    catalog_path = os.getenv("CATALOG_PATH")
    settings = Settings(
        whatsapp_token=os.getenv("WHATSAPP_TOKEN", ""),
        phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID", ""),
        verify_token=os.getenv("WEBHOOK_VERIFY_TOKEN", ""),
        api_version=os.getenv("API_VERSION") or DEFAULT_API_VERSION,
        meta_endpoint=os.getenv("META_ENDPOINT") or DEFAULT_META_ENDPOINT,
        secret_name=os.getenv("SECRET_NAME") or None,
        welcome_template_name=os.getenv("WELCOME_TEMPLATE_NAME") or None,
        welcome_image_url=os.getenv("WELCOME_IMAGE_URL") or None,
        support_phone=os.getenv("SUPPORT_PHONE") or "+91-9876543210",
        store_name=os.getenv("STORE_NAME") or "Ganesh Medicals",
        catalog_path=Path(catalog_path) if catalog_path else DEFAULT_CATALOG_PATH,
        session_store=(os.getenv("SESSION_STORE") or "memory").strip().lower(),
        dynamodb_table=os.getenv("DYNAMODB_TABLE") or None,
        endpoint_url=os.getenv("ENDPOINT_URL") or None,
        follow_up_delay_seconds=float(os.getenv("FOLLOW_UP_DELAY_SECONDS", "2")),
    )
    return _apply_secret_overrides(settings)


def missing_settings(settings: Settings) -> List[str]:
    """Return the names of required settings that are empty."""

    missing = [
        env_name
        for env_name, attr in REQUIRED_SETTINGS.items()
        if not getattr(settings, attr)
    ]
    if settings.session_store == "dynamodb" and not settings.dynamodb_table:
        missing.append("DYNAMODB_TABLE")
    return missing


def log_missing_settings(settings: Settings) -> List[str]:
    missing = missing_settings(settings)
    if missing:
        logger.error(
            "Missing required environment variables",
            extra={"missing": missing},
        )
    return missing
