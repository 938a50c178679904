# Built-in imports
import os
from typing import Optional

# External imports
from aws_lambda_powertools import Logger

DEFAULT_SERVICE_NAME = "pharmacare-whatsapp-bot"


def custom_logger(name: Optional[str] = None) -> Logger:
    """
    Returns a structured JSON logger shared by the whole bot.

    :param name (Optional(str)): Service name override. Loggers created with
        the same service name share the same handlers and appended keys.
    """
    return Logger(
        service=name
        or os.environ.get("POWERTOOLS_SERVICE_NAME", DEFAULT_SERVICE_NAME),
        level=os.environ.get("LOG_LEVEL", "INFO"),
        log_uncaught_exceptions=True,
        owner="pharmacare",
    )


def mask_phone(number: Optional[str]) -> str:
    """Return a log-safe rendition of a phone number."""
    if not number:
        return "<none>"
    n = str(number).strip()
    return "***" if len(n) <= 6 else f"{n[:4]}***{n[-2:]}"
