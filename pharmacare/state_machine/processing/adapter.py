"""Turn raw WhatsApp Cloud API messages into normalized interactions.

Reply ids travel as plain strings (``confirm_add_3``, ``category_Allergy``)
and are parsed once here into an :class:`Action`. Anything unrecognized
becomes ``ActionKind.UNKNOWN`` so the conversation flow can answer with its
fallback instead of silently ignoring a typo.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pharmacare.common.logger import custom_logger

logger = custom_logger()


class InteractionSource(str, Enum):
    TEXT = "text"
    BUTTON = "button"
    LIST = "list"
    OTHER = "other"


class ActionKind(str, Enum):
    MAIN_MENU = "main_menu"
    REORDER = "reorder"
    REORDER_ALL_LAST = "reorder_all_last"
    PLACE_NEW_ORDER = "place_new_order"
    SELECT_CATEGORY = "select_category"
    SHOW_ITEM = "show_item"
    CONFIRM_ADD = "confirm_add"
    VIEW_CART = "view_cart"
    CLEAR_CART = "clear_cart"
    CONFIRM_ORDER = "confirm_order"
    PAYMENT_COD = "payment_cod"
    TRACK_ORDER = "track_order"
    NEW_ORDER = "new_order"
    BACK_TO_MAIN = "back_to_main"
    BACK_TO_CART = "back_to_cart"
    BACK_TO_EXPLORE = "back_to_explore"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    argument: Optional[str] = None
    token: Optional[str] = None


BUTTON_TOKENS: Dict[str, ActionKind] = {
    "reorder": ActionKind.REORDER,
    "place_new_order": ActionKind.PLACE_NEW_ORDER,
    "confirm_order": ActionKind.CONFIRM_ORDER,
    "payment_cod": ActionKind.PAYMENT_COD,
    "clear_cart": ActionKind.CLEAR_CART,
    "back_to_main": ActionKind.BACK_TO_MAIN,
    "back_to_cart": ActionKind.BACK_TO_CART,
    "view_cart": ActionKind.VIEW_CART,
    "track_order": ActionKind.TRACK_ORDER,
    "new_order": ActionKind.NEW_ORDER,
}
BUTTON_PREFIXES: Tuple[Tuple[str, ActionKind], ...] = (
    ("confirm_add_", ActionKind.CONFIRM_ADD),
)

LIST_TOKENS: Dict[str, ActionKind] = {
    "back_to_main": ActionKind.BACK_TO_MAIN,
    "back_to_explore": ActionKind.BACK_TO_EXPLORE,
    "view_cart": ActionKind.VIEW_CART,
    "reorder_all_last": ActionKind.REORDER_ALL_LAST,
}
LIST_PREFIXES: Tuple[Tuple[str, ActionKind], ...] = (
    ("category_", ActionKind.SELECT_CATEGORY),
    ("add_", ActionKind.SHOW_ITEM),
)

GREETING_KEYWORDS = ("hi", "hello", "hey", "start")


@dataclass(frozen=True)
class Interaction:
    """
    Class that represents one normalized inbound event.

    Attributes:
        user_id: str: Sender phone number (digits only).
        source: InteractionSource: Text, button reply, list reply or other.
        action: Action: Parsed action the flow should perform.
        message_id: Optional(str): WhatsApp message id (wamid).
        timestamp: Optional(str): Epoch seconds as sent by WhatsApp.
        message_type: Optional(str): Raw WhatsApp message type.
        reply_id: Optional(str): Raw button/list reply id.
        text: Optional(str): Text body for text messages.
        is_greeting: bool: Whether the text contains a greeting keyword.
    """

    user_id: str
    source: InteractionSource
    action: Action = field(default_factory=lambda: Action(ActionKind.MAIN_MENU))
    message_id: Optional[str] = None
    timestamp: Optional[str] = None
    message_type: Optional[str] = None
    reply_id: Optional[str] = None
    text: Optional[str] = None
    is_greeting: bool = False


def normalize_phone_number(phone_number: Optional[str]) -> str:
    if phone_number is None:
        return ""

    digits = "".join(ch for ch in str(phone_number) if ch.isdigit())
    return digits or str(phone_number)


def _match(
    reply_id: str,
    tokens: Dict[str, ActionKind],
    prefixes: Tuple[Tuple[str, ActionKind], ...],
) -> Action:
    kind = tokens.get(reply_id)
    if kind is not None:
        return Action(kind, token=reply_id)

    for prefix, prefixed_kind in prefixes:
        if reply_id.startswith(prefix):
            argument = reply_id[len(prefix) :]
            if argument:
                return Action(prefixed_kind, argument=argument, token=reply_id)

    return Action(ActionKind.UNKNOWN, token=reply_id)


def parse_action(source: InteractionSource, reply_id: Optional[str]) -> Action:
    """Map a reply id to an Action according to where it came from."""

    if source == InteractionSource.BUTTON:
        return _match((reply_id or "").strip(), BUTTON_TOKENS, BUTTON_PREFIXES)
    if source == InteractionSource.LIST:
        return _match((reply_id or "").strip(), LIST_TOKENS, LIST_PREFIXES)
    return Action(ActionKind.MAIN_MENU)


def is_greeting(text: Optional[str]) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in GREETING_KEYWORDS)


def _reply_details(message: Dict[str, Any]) -> Tuple[InteractionSource, Optional[str]]:
    message_type = message.get("type")

    if message_type == "interactive":
        interactive = message.get("interactive") or {}
        interactive_type = interactive.get("type")
        if interactive_type == "button_reply":
            return (
                InteractionSource.BUTTON,
                (interactive.get("button_reply") or {}).get("id"),
            )
        if interactive_type == "list_reply":
            return (
                InteractionSource.LIST,
                (interactive.get("list_reply") or {}).get("id"),
            )
        return InteractionSource.OTHER, None

    # Template quick-reply buttons arrive as type "button"
    if message_type == "button":
        button = message.get("button") or {}
        return InteractionSource.BUTTON, button.get("payload") or button.get("text")

    if message_type == "text":
        return InteractionSource.TEXT, None

    return InteractionSource.OTHER, None


def parse_interaction(message: Dict[str, Any]) -> Optional[Interaction]:
    """Build an Interaction from one entry of a webhook ``messages`` array.

    Returns None for messages without ``from`` or ``timestamp`` (echoes and
    malformed entries), which the webhook skips.
    """

    if not isinstance(message, dict):
        return None

    from_number = message.get("from")
    timestamp = message.get("timestamp")
    if not from_number or not timestamp:
        logger.debug("Skipping message without sender or timestamp")
        return None

    source, reply_id = _reply_details(message)
    text = None
    if source == InteractionSource.TEXT:
        text = (message.get("text") or {}).get("body")

    return Interaction(
        user_id=normalize_phone_number(from_number),
        source=source,
        action=parse_action(source, reply_id),
        message_id=message.get("id"),
        timestamp=str(timestamp),
        message_type=message.get("type"),
        reply_id=reply_id,
        text=text,
        is_greeting=is_greeting(text),
    )
