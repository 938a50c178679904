"""Conversation flow for the PharmaCare WhatsApp ordering bot.

The dialogue is a small state machine over :class:`ConversationStep`.
:func:`advance_conversation` decides, for one session and one inbound
interaction, which messages to send and which session fields to change. It
performs no I/O and never mutates the session it receives, so every branch is
unit-testable without a network.

:class:`ConversationFlow` is the facade used by the webhook: it applies the
access gate, serializes turns per user, loads and stores the session and
hands the resulting messages to the dispatcher.

The flow rules are:

* The first interaction of a user always gets the welcome, whatever it
  carries.
* Reply ids are matched against a fixed set of action tokens; anything else
  gets an apology and the welcome again.
* Free text always leads back to the main menu.
* Out-of-stock items never reach the cart; substitutes are offered instead.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from pharmacare.common.catalog import Catalog
from pharmacare.common.conversation_state import ConversationState, ConversationStep
from pharmacare.common.logger import custom_logger, mask_phone
from pharmacare.common.models.directive_models import Directive
from pharmacare.common.session_store import SessionStore
from pharmacare.state_machine.processing import replies
from pharmacare.state_machine.processing.adapter import (
    Action,
    ActionKind,
    Interaction,
    InteractionSource,
)
from pharmacare.state_machine.processing.replies import FlowOptions
from pharmacare.state_machine.processing.send_message import MessageDispatcher

LOGGER = custom_logger()


@dataclass
class TurnResult:
    """Messages to send and the single set of session updates for one turn."""

    messages: List[Directive] = field(default_factory=list)
    updates: Dict[str, Any] = field(default_factory=dict)

    def send(self, *directives: Directive) -> "TurnResult":
        self.messages.extend(directives)
        return self

    def update(self, **fields: Any) -> "TurnResult":
        self.updates.update(fields)
        return self


@dataclass
class _Turn:
    state: ConversationState
    interaction: Interaction
    catalog: Catalog
    options: FlowOptions
    now: datetime
    result: TurnResult = field(default_factory=TurnResult)

    @property
    def cart(self) -> List[str]:
        """Cart as it will be once the pending updates are applied."""
        return list(self.result.updates.get("cart", self.state.cart))


def _show_welcome(turn: _Turn) -> None:
    turn.result.send(*replies.welcome(turn.options))
    turn.result.update(welcome_shown=True, current_step=ConversationStep.WELCOME_SHOWN)


def _fallback(turn: _Turn, apology) -> None:
    turn.result.send(apology)
    _show_welcome(turn)


def _show_categories(turn: _Turn) -> None:
    turn.result.send(replies.category_list(turn.catalog))
    turn.result.update(
        current_step=ConversationStep.BROWSING_CATEGORIES, active_category=None
    )


def _show_cart(turn: _Turn) -> None:
    cart = turn.cart
    if not cart:
        turn.result.send(replies.empty_cart())
        _show_welcome(turn)
        return
    turn.result.send(replies.cart_review(turn.catalog, cart))
    turn.result.update(current_step=ConversationStep.CART_REVIEW)


def _offer_substitutes(turn: _Turn, item) -> None:
    substitutes = turn.catalog.substitutions_for(item.id)
    if not substitutes:
        turn.result.send(replies.no_substitute(item))
        _show_categories(turn)
        return
    turn.result.send(replies.substitutions(item, substitutes))
    turn.result.update(
        current_step=ConversationStep.AWAITING_SUBSTITUTION_CHOICE,
        pending_item=item.id,
    )


def _handle_main_menu(turn: _Turn, action: Action) -> None:
    if turn.interaction.is_greeting:
        LOGGER.debug("Greeting received, showing main menu")
    _show_welcome(turn)


def _handle_reorder(turn: _Turn, action: Action) -> None:
    items = turn.catalog.last_order_items()
    if not items:
        _fallback(turn, replies.no_previous_order())
        return
    turn.result.send(replies.last_order_selection(items))
    turn.result.update(current_step=ConversationStep.LAST_ORDER_SELECTION)


def _handle_reorder_all(turn: _Turn, action: Action) -> None:
    last_order = list(turn.catalog.known_customer.last_order_items)
    turn.result.update(cart=turn.cart + last_order)
    turn.result.send(replies.reorder_all_added())
    _show_cart(turn)


def _handle_browse(turn: _Turn, action: Action) -> None:
    _show_categories(turn)


def _handle_select_category(turn: _Turn, action: Action) -> None:
    category = action.argument
    items = turn.catalog.items_by_category().get(category or "")
    if not items:
        turn.result.send(replies.unknown_category())
        _show_categories(turn)
        return
    turn.result.send(replies.category_items(category, items))
    turn.result.update(
        current_step=ConversationStep.BROWSING_CATEGORY_ITEMS,
        active_category=category,
    )


def _handle_show_item(turn: _Turn, action: Action) -> None:
    item = turn.catalog.get_item(action.argument)
    if item is None:
        _fallback(turn, replies.item_not_found())
        return
    if not item.in_stock:
        _offer_substitutes(turn, item)
        return
    turn.result.send(replies.item_details(item))
    turn.result.update(
        current_step=ConversationStep.ITEM_DETAIL_SHOWN, pending_item=item.id
    )


def _handle_confirm_add(turn: _Turn, action: Action) -> None:
    item = turn.catalog.get_item(action.argument)
    if item is None:
        _fallback(turn, replies.item_not_found())
        return
    if not item.in_stock:
        _offer_substitutes(turn, item)
        return

    turn.result.update(cart=turn.cart + [item.id], pending_item=None)
    turn.result.send(replies.added_to_cart(item))

    recommended = turn.catalog.recommendations_for(item.id)
    if recommended:
        turn.result.send(replies.recommendations(recommended))
    else:
        turn.result.send(replies.continue_shopping())
    turn.result.update(current_step=ConversationStep.RECOMMENDATIONS_SHOWN)


def _handle_view_cart(turn: _Turn, action: Action) -> None:
    _show_cart(turn)


def _handle_clear_cart(turn: _Turn, action: Action) -> None:
    turn.result.update(cart=[], pending_item=None)
    turn.result.send(replies.cart_cleared())
    _show_welcome(turn)


def _handle_confirm_order(turn: _Turn, action: Action) -> None:
    if not turn.cart:
        _show_cart(turn)
        return
    turn.result.send(replies.payment_options(turn.catalog, turn.cart))
    turn.result.update(current_step=ConversationStep.PAYMENT_SELECTION)


def _handle_payment(turn: _Turn, action: Action) -> None:
    cart = turn.cart
    # Payment is only accepted right after the order summary
    if not cart or turn.state.current_step != ConversationStep.PAYMENT_SELECTION:
        _show_cart(turn)
        return

    order_id = replies.generate_order_id(turn.now)
    LOGGER.info(
        "Order finalized",
        extra={
            "order_id": order_id,
            "items": len(cart),
            "total": str(turn.catalog.cart_total(cart)),
        },
    )
    turn.result.send(
        replies.order_confirmation(turn.catalog, cart, order_id, turn.options),
        replies.follow_up(turn.options),
    )
    turn.result.update(
        cart=[],
        pending_item=None,
        last_order_id=order_id,
        current_step=ConversationStep.ORDER_COMPLETED,
    )


def _handle_track_order(turn: _Turn, action: Action) -> None:
    turn.result.send(replies.track_order(turn.state.last_order_id, turn.options))


def _handle_new_order(turn: _Turn, action: Action) -> None:
    turn.result.update(cart=[], pending_item=None, active_category=None)
    _show_welcome(turn)


def _handle_unknown(turn: _Turn, action: Action) -> None:
    LOGGER.info(
        "Unknown action token",
        extra={"token": action.token, "source": turn.interaction.source.value},
    )
    selection = turn.interaction.source == InteractionSource.LIST
    _fallback(turn, replies.not_understood(selection=selection))


ACTION_HANDLERS: Dict[ActionKind, Callable[[_Turn, Action], None]] = {
    ActionKind.MAIN_MENU: _handle_main_menu,
    ActionKind.BACK_TO_MAIN: _handle_main_menu,
    ActionKind.REORDER: _handle_reorder,
    ActionKind.REORDER_ALL_LAST: _handle_reorder_all,
    ActionKind.PLACE_NEW_ORDER: _handle_browse,
    ActionKind.BACK_TO_EXPLORE: _handle_browse,
    ActionKind.SELECT_CATEGORY: _handle_select_category,
    ActionKind.SHOW_ITEM: _handle_show_item,
    ActionKind.CONFIRM_ADD: _handle_confirm_add,
    ActionKind.VIEW_CART: _handle_view_cart,
    ActionKind.BACK_TO_CART: _handle_view_cart,
    ActionKind.CLEAR_CART: _handle_clear_cart,
    ActionKind.CONFIRM_ORDER: _handle_confirm_order,
    ActionKind.PAYMENT_COD: _handle_payment,
    ActionKind.TRACK_ORDER: _handle_track_order,
    ActionKind.NEW_ORDER: _handle_new_order,
    ActionKind.UNKNOWN: _handle_unknown,
}


def advance_conversation(
    state: ConversationState,
    interaction: Interaction,
    catalog: Catalog,
    options: Optional[FlowOptions] = None,
    now: Optional[datetime] = None,
) -> TurnResult:
    """Decide the replies and session updates for one interaction."""

    turn = _Turn(
        state=state,
        interaction=interaction,
        catalog=catalog,
        options=options or FlowOptions(),
        now=now or datetime.now(timezone.utc),
    )

    if not state.welcome_shown:
        _show_welcome(turn)
        return turn.result

    action = interaction.action
    ACTION_HANDLERS[action.kind](turn, action)
    return turn.result


class ConversationFlow:
    """Persistence aware facade used by the webhook."""

    def __init__(
        self,
        catalog: Catalog,
        session_store: SessionStore,
        dispatcher: MessageDispatcher,
        options: Optional[FlowOptions] = None,
    ) -> None:
        self.catalog = catalog
        self.session_store = session_store
        self.dispatcher = dispatcher
        self.options = options or FlowOptions()
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def handle(self, interaction: Interaction) -> Optional[TurnResult]:
        user_id = interaction.user_id

        if not self.catalog.is_known_customer(user_id):
            LOGGER.info(
                "Rejected message from unregistered number",
                extra={"user": mask_phone(user_id)},
            )
            await self.dispatcher.dispatch(user_id, [replies.access_denied()])
            return None

        async with self._lock_for(user_id):
            state = await run_in_threadpool(self.session_store.get, user_id)
            try:
                result = advance_conversation(
                    state, interaction, self.catalog, self.options
                )
            except Exception:
                LOGGER.exception(
                    "Error handling message", extra={"user": mask_phone(user_id)}
                )
                result = TurnResult()
                result.send(replies.something_went_wrong(), *replies.welcome(self.options))
                result.update(
                    welcome_shown=True, current_step=ConversationStep.WELCOME_SHOWN
                )

            await run_in_threadpool(
                self.session_store.update, user_id, **result.updates
            )
            LOGGER.info(
                "Conversation advanced",
                extra={
                    "user": mask_phone(user_id),
                    "action": interaction.action.kind.value,
                    "from_step": state.current_step.value,
                    "to_step": getattr(
                        result.updates.get("current_step"), "value", state.current_step.value
                    ),
                    "messages": len(result.messages),
                },
            )
            await self.dispatcher.dispatch(user_id, result.messages)

        return result


__all__ = [
    "ConversationFlow",
    "TurnResult",
    "advance_conversation",
]
