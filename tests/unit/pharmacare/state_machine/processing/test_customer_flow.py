import asyncio
import re
import time
from typing import List, Optional

import pytest

from pharmacare.common.catalog import load_catalog
from pharmacare.common.conversation_state import (
    ConversationState,
    ConversationStep,
    merge_conversation_state,
)
from pharmacare.common.models.directive_models import (
    ButtonsDirective,
    ListDirective,
    TextDirective,
)
from pharmacare.common.session_store import InMemorySessionStore
from pharmacare.state_machine.processing.adapter import (
    Interaction,
    InteractionSource,
    parse_action,
)
from pharmacare.state_machine.processing.customer_flow import (
    ConversationFlow,
    advance_conversation,
)
from pharmacare.state_machine.processing.replies import FlowOptions
from pharmacare.state_machine.processing.send_message import MessageDispatcher

KNOWN_NUMBER = "919672618163"


@pytest.fixture(scope="module")
def catalog():
    return load_catalog()


def _text(body: str = "hello", user_id: str = KNOWN_NUMBER) -> Interaction:
    return Interaction(
        user_id=user_id,
        source=InteractionSource.TEXT,
        action=parse_action(InteractionSource.TEXT, None),
        text=body,
    )


def _button(reply_id: str, user_id: str = KNOWN_NUMBER) -> Interaction:
    return Interaction(
        user_id=user_id,
        source=InteractionSource.BUTTON,
        action=parse_action(InteractionSource.BUTTON, reply_id),
        reply_id=reply_id,
    )


def _list(reply_id: str, user_id: str = KNOWN_NUMBER) -> Interaction:
    return Interaction(
        user_id=user_id,
        source=InteractionSource.LIST,
        action=parse_action(InteractionSource.LIST, reply_id),
        reply_id=reply_id,
    )


def _welcomed(cart: Optional[List[str]] = None, **fields) -> ConversationState:
    return ConversationState(
        phone_number=KNOWN_NUMBER,
        current_step=fields.pop("current_step", ConversationStep.WELCOME_SHOWN),
        welcome_shown=True,
        cart=list(cart or []),
        **fields,
    )


def _advance(state, interaction, catalog):
    result = advance_conversation(state, interaction, catalog)
    return result, merge_conversation_state(state, result.updates)


def _is_welcome(message) -> bool:
    return isinstance(message, ButtonsDirective) and [
        button.id for button in message.buttons
    ] == ["reorder", "place_new_order"]


@pytest.mark.parametrize(
    "interaction",
    [_text("random words"), _button("confirm_order"), _list("add_1")],
)
def test_first_interaction_always_shows_welcome(catalog, interaction):
    state = ConversationState(phone_number=KNOWN_NUMBER, cart=["1"])

    result, new_state = _advance(state, interaction, catalog)

    assert len(result.messages) == 1
    assert _is_welcome(result.messages[0])
    assert new_state.welcome_shown is True
    assert new_state.current_step == ConversationStep.WELCOME_SHOWN
    assert new_state.cart == ["1"]


def test_welcome_is_not_repeated_for_registered_actions(catalog):
    result, new_state = _advance(_welcomed(), _button("place_new_order"), catalog)

    assert isinstance(result.messages[0], ListDirective)
    assert "welcome_shown" not in result.updates
    assert new_state.current_step == ConversationStep.BROWSING_CATEGORIES


def test_free_text_returns_to_main_menu(catalog):
    state = _welcomed(["1"], current_step=ConversationStep.CART_REVIEW)

    result, new_state = _advance(state, _text("do you have crocin?"), catalog)

    assert _is_welcome(result.messages[0])
    assert new_state.current_step == ConversationStep.WELCOME_SHOWN
    assert new_state.cart == ["1"]


def test_reorder_lists_last_order_items(catalog):
    result, new_state = _advance(_welcomed(), _button("reorder"), catalog)

    (message,) = result.messages
    assert message.row_ids == [
        "add_1",
        "add_3",
        "add_5",
        "reorder_all_last",
        "back_to_main",
    ]
    assert new_state.current_step == ConversationStep.LAST_ORDER_SELECTION


def test_reorder_all_appends_last_order_to_existing_cart(catalog):
    result, new_state = _advance(_welcomed(["7"]), _list("reorder_all_last"), catalog)

    assert new_state.cart == ["7", "1", "3", "5"]
    assert isinstance(result.messages[0], TextDirective)
    assert isinstance(result.messages[-1], ButtonsDirective)
    assert new_state.current_step == ConversationStep.CART_REVIEW


def test_select_category_shows_items(catalog):
    result, new_state = _advance(_welcomed(), _list("category_Pain Relief"), catalog)

    (message,) = result.messages
    assert message.row_ids == ["add_1", "add_2", "add_6", "back_to_explore"]
    assert new_state.active_category == "Pain Relief"
    assert new_state.current_step == ConversationStep.BROWSING_CATEGORY_ITEMS


def test_unknown_category_shows_categories_again(catalog):
    result, new_state = _advance(_welcomed(), _list("category_Homeopathy"), catalog)

    assert isinstance(result.messages[0], TextDirective)
    assert isinstance(result.messages[1], ListDirective)
    assert new_state.current_step == ConversationStep.BROWSING_CATEGORIES


def test_show_item_details(catalog):
    result, new_state = _advance(_welcomed(), _list("add_1"), catalog)

    (message,) = result.messages
    assert isinstance(message, ButtonsDirective)
    assert message.buttons[0].id == "confirm_add_1"
    assert new_state.pending_item == "1"
    assert new_state.current_step == ConversationStep.ITEM_DETAIL_SHOWN


@pytest.mark.parametrize(
    "interaction", [_list("add_999"), _button("confirm_add_999")]
)
def test_unknown_items_degrade_without_touching_cart(catalog, interaction):
    state = _welcomed(["1"])

    result, new_state = _advance(state, interaction, catalog)

    assert isinstance(result.messages[0], TextDirective)
    assert "not found" in result.messages[0].body
    assert _is_welcome(result.messages[-1])
    assert new_state.cart == ["1"]


@pytest.mark.parametrize("interaction", [_list("add_3"), _button("confirm_add_3")])
def test_out_of_stock_item_offers_substitutes(catalog, interaction):
    state = _welcomed(["5"])

    result, new_state = _advance(state, interaction, catalog)

    (message,) = result.messages
    assert isinstance(message, ListDirective)
    assert message.row_ids == ["add_1", "add_6", "back_to_explore"]
    assert new_state.cart == ["5"]
    assert new_state.pending_item == "3"
    assert new_state.current_step == ConversationStep.AWAITING_SUBSTITUTION_CHOICE


def test_out_of_stock_without_substitutes(catalog, monkeypatch):
    monkeypatch.setattr(catalog, "substitutions_for", lambda item_id: [])

    result, new_state = _advance(_welcomed(), _list("add_8"), catalog)

    assert isinstance(result.messages[0], TextDirective)
    assert "Amoxicillin" in result.messages[0].body
    assert isinstance(result.messages[1], ListDirective)
    assert new_state.cart == []
    assert new_state.current_step == ConversationStep.BROWSING_CATEGORIES


def test_confirm_add_appends_and_recommends(catalog):
    state = _welcomed(["1"], pending_item="1")

    result, new_state = _advance(state, _button("confirm_add_1"), catalog)

    assert new_state.cart == ["1", "1"]
    assert new_state.pending_item is None
    assert "Dolo 650" in result.messages[0].body
    assert result.messages[1].row_ids == [
        "add_6",
        "add_12",
        "view_cart",
        "back_to_explore",
    ]
    assert new_state.current_step == ConversationStep.RECOMMENDATIONS_SHOWN


def test_confirm_add_without_recommendations(catalog):
    result, new_state = _advance(_welcomed(), _button("confirm_add_5"), catalog)

    assert new_state.cart == ["5"]
    assert isinstance(result.messages[1], ButtonsDirective)
    assert [button.id for button in result.messages[1].buttons] == [
        "place_new_order",
        "view_cart",
    ]


def test_view_cart_shows_total(catalog):
    result, new_state = _advance(_welcomed(["1", "1", "6"]), _list("view_cart"), catalog)

    (message,) = result.messages
    assert "₹65.00" in message.body
    assert new_state.current_step == ConversationStep.CART_REVIEW


def test_clear_cart_then_view_cart_shows_welcome(catalog):
    _, cleared = _advance(_welcomed(["1", "6"]), _button("clear_cart"), catalog)
    result, new_state = _advance(cleared, _button("view_cart"), catalog)

    assert cleared.cart == []
    assert "empty" in result.messages[0].body
    assert _is_welcome(result.messages[1])
    assert new_state.current_step == ConversationStep.WELCOME_SHOWN


def test_confirm_order_with_empty_cart_routes_to_empty_cart(catalog):
    result, new_state = _advance(_welcomed(), _button("confirm_order"), catalog)

    assert "empty" in result.messages[0].body
    assert new_state.current_step == ConversationStep.WELCOME_SHOWN


def test_payment_finalizes_order(catalog):
    state = _welcomed(["4"], current_step=ConversationStep.PAYMENT_SELECTION)

    result, new_state = _advance(state, _button("payment_cod"), catalog)

    confirmation, follow_up = result.messages
    assert re.search(r"ORD\d{6}", confirmation.body)
    assert "₹120.75" in confirmation.body
    assert follow_up.delay_seconds == FlowOptions().follow_up_delay_seconds
    assert new_state.cart == []
    assert new_state.last_order_id in confirmation.body
    assert new_state.current_step == ConversationStep.ORDER_COMPLETED


def test_track_order_uses_last_order_id(catalog):
    state = _welcomed(last_order_id="ORD000042")

    result, new_state = _advance(state, _button("track_order"), catalog)

    assert "ORD000042" in result.messages[0].body
    assert new_state.current_step == state.current_step


def test_new_order_resets_cart(catalog):
    state = _welcomed(["1"], current_step=ConversationStep.ORDER_COMPLETED)

    result, new_state = _advance(state, _button("new_order"), catalog)

    assert _is_welcome(result.messages[0])
    assert new_state.cart == []


@pytest.mark.parametrize(
    "interaction, apology",
    [
        (_button("xyz123"), "didn't understand that."),
        (_list("xyz123"), "didn't understand that selection."),
    ],
)
def test_unknown_token_apologizes_then_shows_welcome(catalog, interaction, apology):
    state = _welcomed(["1"], current_step=ConversationStep.CART_REVIEW)

    result, new_state = _advance(state, interaction, catalog)

    assert apology in result.messages[0].body
    assert _is_welcome(result.messages[1])
    assert new_state.cart == ["1"]
    assert new_state.current_step == ConversationStep.WELCOME_SHOWN


def test_engine_does_not_mutate_input_state(catalog):
    state = _welcomed(["1"])

    advance_conversation(state, _button("confirm_add_6"), catalog)

    assert state.cart == ["1"]


class _RecordingGateway:
    def __init__(self):
        self.sent = []

    def send_text(self, to, body):
        self.sent.append(("text", to, body))
        return {}

    def send_buttons(self, to, body_text, buttons, header=None, footer=None):
        self.sent.append(("buttons", to, [button.id for button in buttons], body_text))
        return {}

    def send_list(self, to, body_text, button_label, sections, header=None, footer=None):
        row_ids = [row.id for section in sections for row in section.rows]
        self.sent.append(("list", to, row_ids, body_text))
        return {}

    def send_template(self, to, template_name, **kwargs):
        self.sent.append(("template", to, template_name))
        return {}


async def _no_sleep(seconds):
    return None


def _flow(catalog):
    gateway = _RecordingGateway()
    store = InMemorySessionStore()
    flow = ConversationFlow(
        catalog=catalog,
        session_store=store,
        dispatcher=MessageDispatcher(gateway, sleep=_no_sleep),
        options=FlowOptions(follow_up_delay_seconds=0),
    )
    return flow, store, gateway


def test_unregistered_number_is_rejected(catalog):
    flow, store, gateway = _flow(catalog)

    result = asyncio.run(flow.handle(_text(user_id="15551234567")))

    assert result is None
    assert store.count() == 0
    assert len(gateway.sent) == 1
    assert "registered customers" in gateway.sent[0][2]


def test_engine_errors_reset_to_welcome(catalog, monkeypatch):
    flow, store, gateway = _flow(catalog)
    store.update(KNOWN_NUMBER, welcome_shown=True, cart=["1"])

    def _explode(*args, **kwargs):
        raise KeyError("boom")

    monkeypatch.setattr(catalog, "get_item", _explode)
    asyncio.run(flow.handle(_list("add_1")))

    assert "Something went wrong" in gateway.sent[0][2]
    assert gateway.sent[1][2] == ["reorder", "place_new_order"]
    assert store.get(KNOWN_NUMBER).current_step == ConversationStep.WELCOME_SHOWN
    assert store.get(KNOWN_NUMBER).cart == ["1"]


def test_end_to_end_order(catalog):
    flow, store, gateway = _flow(catalog)

    def _step(interaction):
        gateway.sent.clear()
        asyncio.run(flow.handle(interaction))
        return list(gateway.sent)

    sent = _step(_text("any first message"))
    assert sent[0][2] == ["reorder", "place_new_order"]

    sent = _step(_button("place_new_order"))
    assert sent[0][0] == "list"
    assert "category_Pain Relief" in sent[0][2]

    sent = _step(_list("category_Pain Relief"))
    assert sent[0][2] == ["add_1", "add_2", "add_6", "back_to_explore"]

    sent = _step(_list("add_1"))
    assert sent[0][2] == ["confirm_add_1", "place_new_order", "view_cart"]

    sent = _step(_button("confirm_add_1"))
    assert store.get(KNOWN_NUMBER).cart == ["1"]
    assert sent[1][2] == ["add_6", "add_12", "view_cart", "back_to_explore"]

    sent = _step(_list("view_cart"))
    assert "₹25.00" in sent[0][3]
    assert sent[0][2] == ["confirm_order", "place_new_order", "clear_cart"]

    sent = _step(_button("confirm_order"))
    assert sent[0][2] == ["payment_cod", "back_to_cart"]

    sent = _step(_button("payment_cod"))
    assert re.search(r"Order ID: ORD\d{6}", sent[0][2])
    assert sent[1][2] == ["new_order", "track_order"]

    session = store.get(KNOWN_NUMBER)
    assert session.cart == []
    assert session.current_step == ConversationStep.ORDER_COMPLETED
    assert session.last_order_id in sent[0][2]


def test_large_cart_can_still_be_reviewed_and_paid(catalog):
    cart = ["1", "3", "5"] * 40
    state = _welcomed(cart)

    review, reviewed = _advance(state, _button("view_cart"), catalog)
    summary, summarized = _advance(reviewed, _button("confirm_order"), catalog)
    confirmation, paid = _advance(summarized, _button("payment_cod"), catalog)

    (review_message,) = review.messages
    assert "₹6360.00" in review_message.body
    assert "more items" in review_message.body
    assert reviewed.current_step == ConversationStep.CART_REVIEW

    (summary_message,) = summary.messages
    assert [button.id for button in summary_message.buttons] == [
        "payment_cod",
        "back_to_cart",
    ]
    assert "₹6360.00" in summary_message.body
    assert summarized.current_step == ConversationStep.PAYMENT_SELECTION

    assert "₹6360.00" in confirmation.messages[0].body
    assert paid.cart == []
    assert paid.current_step == ConversationStep.ORDER_COMPLETED


def test_stale_payment_button_returns_to_cart(catalog):
    state = _welcomed(["1"], current_step=ConversationStep.RECOMMENDATIONS_SHOWN)

    result, new_state = _advance(state, _button("payment_cod"), catalog)

    (message,) = result.messages
    assert [button.id for button in message.buttons] == [
        "confirm_order",
        "place_new_order",
        "clear_cart",
    ]
    assert new_state.cart == ["1"]
    assert new_state.last_order_id is None
    assert new_state.current_step == ConversationStep.CART_REVIEW


class _SlowSessionStore(InMemorySessionStore):
    def get(self, user_id):
        # Widens the read/write window so unserialized turns would overlap
        time.sleep(0.05)
        return super().get(user_id)


def test_turns_of_one_user_are_serialized(catalog):
    gateway = _RecordingGateway()
    store = _SlowSessionStore()
    store.update(KNOWN_NUMBER, welcome_shown=True)
    flow = ConversationFlow(
        catalog=catalog,
        session_store=store,
        dispatcher=MessageDispatcher(gateway, sleep=_no_sleep),
        options=FlowOptions(follow_up_delay_seconds=0),
    )

    async def _two_quick_taps():
        await asyncio.gather(
            flow.handle(_button("confirm_add_1")),
            flow.handle(_button("confirm_add_1")),
        )

    asyncio.run(_two_quick_taps())

    assert store.get(KNOWN_NUMBER).cart == ["1", "1"]
