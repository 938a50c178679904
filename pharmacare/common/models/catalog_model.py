from decimal import Decimal
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"


class CatalogItem(BaseModel):
    """
    Class that represents a purchasable medicine.

    Attributes:
        id: str: Stable identifier used inside action tokens (add_<id>).
        name: str: Display name.
        price: Decimal: Unit price in rupees.
        category: str: Category label used for browsing.
        stock: StockStatus: Whether the item can be added to a cart.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, pattern=r"^[0-9A-Za-z-]+$")
    name: str = Field(min_length=1)
    price: Decimal = Field(ge=0)
    category: str = Field(min_length=1)
    stock: StockStatus = StockStatus.IN_STOCK

    @property
    def in_stock(self) -> bool:
        return self.stock == StockStatus.IN_STOCK


class KnownCustomer(BaseModel):
    """
    Class that represents the single registered customer.

    Attributes:
        phone_number: str: WhatsApp number (digits only, with country code).
        name: str: Name used in the order confirmation.
        last_order_items: List[str]: Item ids of the previous order, in order.
    """

    model_config = ConfigDict(frozen=True)

    phone_number: str = Field(pattern=r"^\d{6,15}$")
    name: str
    last_order_items: List[str] = Field(default_factory=list)
