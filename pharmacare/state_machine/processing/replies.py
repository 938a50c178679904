"""Builders for every outbound message the conversation flow can send.

All WhatsApp limits are applied here, before a directive exists: at most
three reply buttons, ten list rows in total, 24 characters per row title,
20 per button title and 1024 characters per interactive body. Long carts are
summarized so the subtotal always fits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from pharmacare.common.catalog import Catalog
from pharmacare.common.config import Settings
from pharmacare.common.models.catalog_model import CatalogItem, StockStatus
from pharmacare.common.models.directive_models import (
    MAX_BUTTON_TITLE_LENGTH,
    MAX_HEADER_LENGTH,
    MAX_INTERACTIVE_BODY_LENGTH,
    MAX_LIST_ROWS,
    MAX_ROW_DESCRIPTION_LENGTH,
    MAX_ROW_TITLE_LENGTH,
    MAX_TEXT_BODY_LENGTH,
    ButtonModel,
    ButtonsDirective,
    Directive,
    ListDirective,
    ListRowModel,
    ListSectionModel,
    TemplateDirective,
    TextDirective,
)

OUT_OF_STOCK_SUFFIX = " (OOS)"
PLACEHOLDER_ORDER_ID = "ORD123456"


@dataclass(frozen=True)
class FlowOptions:
    store_name: str = "Ganesh Medicals"
    support_phone: str = "+91-9876543210"
    welcome_template_name: Optional[str] = None
    welcome_image_url: Optional[str] = None
    follow_up_delay_seconds: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "FlowOptions":
        return cls(
            store_name=settings.store_name,
            support_phone=settings.support_phone,
            welcome_template_name=settings.welcome_template_name,
            welcome_image_url=settings.welcome_image_url,
            follow_up_delay_seconds=settings.follow_up_delay_seconds,
        )


def clip(text: str, max_length: int) -> str:
    return text if len(text) <= max_length else text[:max_length].rstrip()


def format_price(amount: Decimal) -> str:
    return f"₹{Decimal(amount):.2f}"


def format_row_title(
    name: str, stock: StockStatus, max_length: int = MAX_ROW_TITLE_LENGTH
) -> str:
    """Shorten a name so that it still fits once the stock suffix is added."""

    suffix = OUT_OF_STOCK_SUFFIX if stock == StockStatus.OUT_OF_STOCK else ""
    remaining = max_length - len(suffix)
    short_name = name if len(name) <= remaining else name[:remaining].strip()
    return f"{short_name}{suffix}"


def generate_order_id(now: datetime) -> str:
    millis = int(now.timestamp() * 1000)
    return f"ORD{str(millis)[-6:]}"


def _button(button_id: str, title: str) -> ButtonModel:
    return ButtonModel(id=button_id, title=clip(title, MAX_BUTTON_TITLE_LENGTH))


def _row(row_id: str, title: str, description: Optional[str] = None) -> ListRowModel:
    return ListRowModel(
        id=row_id,
        title=clip(title, MAX_ROW_TITLE_LENGTH),
        description=clip(description, MAX_ROW_DESCRIPTION_LENGTH)
        if description
        else None,
    )


def _item_row(item: CatalogItem, with_category: bool = True) -> ListRowModel:
    description = format_price(item.price)
    if with_category:
        description = f"{description} - {item.category}"
    return _row(f"add_{item.id}", format_row_title(item.name, item.stock), description)


def _section(title: str, rows: Sequence[ListRowModel]) -> ListSectionModel:
    return ListSectionModel(title=clip(title, MAX_ROW_TITLE_LENGTH), rows=list(rows))


def _header(text: Optional[str]) -> Optional[str]:
    return clip(text, MAX_HEADER_LENGTH) if text else None


def _fit_rows(rows: Sequence[ListRowModel], reserved: int) -> List[ListRowModel]:
    """Keep as many rows as fit next to ``reserved`` navigation rows."""

    return list(rows[: max(MAX_LIST_ROWS - reserved, 0)])


def text(body: str) -> TextDirective:
    return TextDirective(body=body)


def welcome(options: FlowOptions) -> List[Directive]:
    fallback_text = f"Welcome to {options.store_name}! How can I help you today?"
    buttons = ButtonsDirective(
        body=f"Hi! Welcome to {options.store_name}. \n\nHow can we help you today?",
        buttons=[
            _button("reorder", "🔁 Reorder"),
            _button("place_new_order", "🔍 Explore More"),
        ],
        fallback_text=fallback_text,
    )
    if not options.welcome_template_name:
        return [buttons]

    return [
        TemplateDirective(
            template_name=options.welcome_template_name,
            header_type="IMAGE" if options.welcome_image_url else None,
            header_url=options.welcome_image_url,
            fallback=buttons,
            fallback_text=fallback_text,
        )
    ]


def access_denied() -> TextDirective:
    return text(
        "Sorry, this pharmacy bot is currently in POC mode and only serves "
        "registered customers. Please contact support for assistance."
    )


def last_order_selection(items: Sequence[CatalogItem]) -> ListDirective:
    options_rows = [
        _row("reorder_all_last", "🔁 Reorder All Items", "Add all items from last order"),
        _row("back_to_main", "⬅️ Back to Main Menu", "Return to main options"),
    ]
    item_rows = _fit_rows([_item_row(item) for item in items], len(options_rows))
    return ListDirective(
        body="Select items from your last order:",
        button_label="Select Items",
        sections=[
            _section("Your Last Order Items", item_rows),
            _section("Options", options_rows),
        ],
        header="📦 Last Order Items",
        footer="Tap to select individual items",
    )


def category_list(catalog: Catalog) -> ListDirective:
    back_row = _row("back_to_main", "⬅️ Back to Main", "Return to main options")
    category_rows = [
        _row(f"category_{category}", category, f"View all {category} medicines")
        for category in catalog.categories()
    ]
    rows = _fit_rows(category_rows, 1) + [back_row]
    return ListDirective(
        body="To view our medicines, please select a category:",
        button_label="Browse Categories",
        sections=[_section("Select a Category", rows)],
        header="🔬 All Medicines",
    )


def category_items(category: str, items: Sequence[CatalogItem]) -> ListDirective:
    navigation = [
        _row("back_to_explore", "⬅️ Back to Categories", "Choose a different category")
    ]
    item_rows = _fit_rows(
        [_item_row(item, with_category=False) for item in items], len(navigation)
    )
    return ListDirective(
        body=f"Select a medicine from the {category} category:",
        button_label="Add to Cart",
        sections=[
            _section(f"{category} Medicines", item_rows),
            _section("Navigation", navigation),
        ],
        header=_header(f"💊 {category}"),
    )


def item_details(item: CatalogItem) -> ButtonsDirective:
    body = (
        f"💊 {item.name}\n\n"
        f"💰 Price: {format_price(item.price)}\n"
        f"🏷️ Category: {item.category}\n\n"
        "Would you like to add this to your cart?"
    )
    return ButtonsDirective(
        body=body,
        buttons=[
            _button(f"confirm_add_{item.id}", "✅ Add to Cart"),
            _button("place_new_order", "🔍 Continue Shopping"),
            _button("view_cart", "🛒 View Cart"),
        ],
        header="📋 Medicine Details",
        footer="Confirm to add to cart",
        fallback_text="Sorry, couldn't load medicine details. Please try again.",
    )


def added_to_cart(item: CatalogItem) -> TextDirective:
    return text(f"✅ Added {item.name} to your cart!")


def recommendations(items: Sequence[CatalogItem]) -> ListDirective:
    navigation = [
        _row("view_cart", "🛒 View Cart", "Review your order total"),
        _row("back_to_explore", "⬅️ Continue Shopping", "Choose a different medicine"),
    ]
    rows = _fit_rows([_item_row(item) for item in items], len(navigation))
    return ListDirective(
        body="Based on your recent selection, these items might interest you:",
        button_label="View Recommendations",
        sections=[_section("You might also like...", rows + navigation)],
        header="💡 Recommendations",
        footer="We've curated these just for you!",
    )


def continue_shopping() -> ButtonsDirective:
    return ButtonsDirective(
        body="What would you like to do next?",
        buttons=[
            _button("place_new_order", "➕ Add More Items"),
            _button("view_cart", "🛒 View Cart"),
        ],
        header="Item Added",
    )


def substitutions(item: CatalogItem, substitutes: Sequence[CatalogItem]) -> ListDirective:
    navigation = [
        _row("back_to_explore", "⬅️ Back to Categories", "Choose a different medicine")
    ]
    rows = _fit_rows([_item_row(sub) for sub in substitutes], len(navigation))
    return ListDirective(
        body=f"Sorry, {item.name} is out of stock. We recommend these substitutes:",
        button_label="Choose a Substitute",
        sections=[_section("Available Substitutes", rows + navigation)],
        header=_header(f"💊 Substitutions for {item.name}"),
        footer="Tap to select an alternative",
        fallback_text="Sorry, we are out of stock for that medicine. Please try another one.",
    )


def no_substitute(item: CatalogItem) -> TextDirective:
    return text(
        f"Sorry, we are out of stock for {item.name} and could not find a "
        "suitable substitute at this time."
    )


def cart_lines(
    catalog: Catalog, cart: Iterable[str], max_length: Optional[int] = None
) -> str:
    """One line per known id; past ``max_length`` the rest is summarized."""

    lines = []
    for item_id in cart:
        item = catalog.get_item(item_id)
        if item is not None:
            lines.append(f"• {item.name} - {format_price(item.price)}")

    full = "\n".join(lines)
    if max_length is None or len(full) <= max_length:
        return full

    budget = max_length - len(_more_items(len(lines))) - 1
    kept: List[str] = []
    used = 0
    for line in lines:
        needed = len(line) + (1 if kept else 0)
        if used + needed > budget:
            break
        kept.append(line)
        used += needed
    kept.append(_more_items(len(lines) - len(kept)))
    return "\n".join(kept)


def _more_items(count: int) -> str:
    return f"…and {count} more items"


def _cart_body(
    catalog: Catalog, cart: Sequence[str], head: str, tail: str, max_length: int
) -> str:
    lines = cart_lines(catalog, cart, max_length - len(head) - len(tail))
    return f"{head}{lines}{tail}"


def cart_review(catalog: Catalog, cart: Sequence[str]) -> ButtonsDirective:
    body = _cart_body(
        catalog,
        cart,
        "Here's what's in your cart:\n\n",
        f"\n\n💰 Subtotal: {format_price(catalog.cart_total(cart))}\n\n"
        "What would you like to do next?",
        MAX_INTERACTIVE_BODY_LENGTH,
    )
    return ButtonsDirective(
        body=body,
        buttons=[
            _button("confirm_order", "✅ Confirm Order"),
            _button("place_new_order", "➕ Add More"),
            _button("clear_cart", "🗑️ Clear Cart"),
        ],
        header="🛍️ Shopping Cart",
        footer="Choose your next action",
        fallback_text="Sorry, couldn't display cart. Please try again.",
    )


def empty_cart() -> TextDirective:
    return text("Your cart is empty. Let me show you our medicines.")


def cart_cleared() -> TextDirective:
    return text("🗑️ Cart cleared successfully!")


def reorder_all_added() -> TextDirective:
    return text("✅ Added all items from your last order to the cart!")


def payment_options(catalog: Catalog, cart: Sequence[str]) -> ButtonsDirective:
    body = _cart_body(
        catalog,
        cart,
        "📋 Order Summary:\n\n",
        f"\n\n💰 Total Amount: {format_price(catalog.cart_total(cart))}\n\n"
        "Please select your payment method:",
        MAX_INTERACTIVE_BODY_LENGTH,
    )
    return ButtonsDirective(
        body=body,
        buttons=[
            _button("payment_cod", "💵 Cash on Delivery"),
            _button("back_to_cart", "⬅️ Back to Cart"),
        ],
        header="💳 Payment Options",
        footer="Secure payment processing",
        fallback_text="Sorry, couldn't process payment. Please try again.",
    )


def order_confirmation(
    catalog: Catalog, cart: Sequence[str], order_id: str, options: FlowOptions
) -> TextDirective:
    body = _cart_body(
        catalog,
        cart,
        "🎉 Order Placed Successfully!\n\n"
        f"📦 Order ID: {order_id}\n"
        f"👤 Customer: {catalog.known_customer.name}\n\n"
        "📝 Items Ordered:\n",
        "\n\n"
        f"💸 Total Amount: {format_price(catalog.cart_total(cart))}\n"
        "🚚 Payment Method: Cash on Delivery\n\n"
        "⏱️ Your order will be delivered within 30-60 minutes.\n"
        f"📞 For any queries, call: {options.support_phone}\n\n"
        f"Thank you for choosing {options.store_name}! ✨",
        MAX_TEXT_BODY_LENGTH,
    )
    return TextDirective(
        body=body,
        fallback_text="Order placed successfully! You'll receive confirmation shortly.",
    )


def follow_up(options: FlowOptions) -> ButtonsDirective:
    return ButtonsDirective(
        body="Need anything else?",
        buttons=[
            _button("new_order", "🛒 Place New Order"),
            _button("track_order", "📦 Track Order"),
        ],
        footer="We're here to help!",
        delay_seconds=options.follow_up_delay_seconds,
    )


def track_order(order_id: Optional[str], options: FlowOptions) -> TextDirective:
    return text(
        f"📦 Order Status for {order_id or PLACEHOLDER_ORDER_ID}:\n\n"
        "🚚 Your order is being prepared and will be delivered soon!\n\n"
        f"📞 For updates, call: {options.support_phone}"
    )


def no_previous_order() -> TextDirective:
    return text("Sorry, couldn't load your last order items. Please try again.")


def unknown_category() -> TextDirective:
    return text("No medicines found for that category. Please try again.")


def item_not_found() -> TextDirective:
    return text("Sorry, medicine not found. Let me help you start over.")


def not_understood(selection: bool = False) -> TextDirective:
    if selection:
        return text(
            "Sorry, I didn't understand that selection. Let me help you start over."
        )
    return text("Sorry, I didn't understand that. Let me help you start over.")


def something_went_wrong() -> TextDirective:
    return text("Oops! Something went wrong. Let me help you start fresh.")
