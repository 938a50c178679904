"""Per-user conversation session and the helpers to merge updates into it."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class ConversationStep(str, Enum):
    START = "start"
    WELCOME_SHOWN = "welcome_shown"
    LAST_ORDER_SELECTION = "last_order_selection"
    BROWSING_CATEGORIES = "browsing_categories"
    BROWSING_CATEGORY_ITEMS = "browsing_category_items"
    ITEM_DETAIL_SHOWN = "item_detail_shown"
    RECOMMENDATIONS_SHOWN = "recommendations_shown"
    AWAITING_SUBSTITUTION_CHOICE = "awaiting_substitution_choice"
    CART_REVIEW = "cart_review"
    PAYMENT_SELECTION = "payment_selection"
    ORDER_COMPLETED = "order_completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConversationState:
    """Serializable representation of one customer's session.

    Instances are immutable; every change goes through
    :func:`merge_conversation_state`, which returns a new value for the same
    phone number.
    """

    phone_number: str
    current_step: ConversationStep = ConversationStep.START
    welcome_shown: bool = False
    cart: List[str] = field(default_factory=list)
    pending_item: Optional[str] = None
    active_category: Optional[str] = None
    last_order_id: Optional[str] = None
    last_interaction_at: datetime = field(default_factory=_utcnow)

    def as_item(self) -> Dict[str, object]:
        item: Dict[str, object] = {
            "PK": f"SESSION#{self.phone_number}",
            "SK": "STATE",
            "phone_number": self.phone_number,
            "current_step": self.current_step.value,
            "welcome_shown": self.welcome_shown,
            "cart": list(self.cart),
            "last_interaction_at": self.last_interaction_at.isoformat(),
        }
        if self.pending_item:
            item["pending_item"] = self.pending_item
        if self.active_category:
            item["active_category"] = self.active_category
        if self.last_order_id:
            item["last_order_id"] = self.last_order_id
        return item

    @classmethod
    def from_item(
        cls, phone_number: str, item: Optional[Mapping[str, Any]]
    ) -> "ConversationState":
        if not item:
            return cls(phone_number=phone_number)

        raw_timestamp = item.get("last_interaction_at")
        try:
            last_interaction_at = (
                datetime.fromisoformat(raw_timestamp) if raw_timestamp else _utcnow()
            )
        except (TypeError, ValueError):
            last_interaction_at = _utcnow()

        try:
            current_step = ConversationStep(item.get("current_step", "start"))
        except ValueError:
            current_step = ConversationStep.START

        return cls(
            phone_number=phone_number,
            current_step=current_step,
            welcome_shown=bool(item.get("welcome_shown", False)),
            cart=[str(item_id) for item_id in item.get("cart") or []],
            pending_item=item.get("pending_item"),
            active_category=item.get("active_category"),
            last_order_id=item.get("last_order_id"),
            last_interaction_at=last_interaction_at,
        )


_UPDATABLE_FIELDS = {f.name for f in fields(ConversationState)} - {"phone_number"}


def merge_conversation_state(
    existing: ConversationState,
    updates: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> ConversationState:
    """Shallow-merge updates into the state and refresh the interaction time.

    ``None`` is a valid value (it clears optional fields). Unknown keys and
    attempts to change the phone number raise ValueError.
    """

    unknown = set(updates) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown session fields: {sorted(unknown)}")

    values = dict(updates)
    if "cart" in values:
        values["cart"] = list(values["cart"] or [])
    if "current_step" in values:
        values["current_step"] = ConversationStep(values["current_step"])
    values["last_interaction_at"] = now or _utcnow()

    return replace(existing, **values)
