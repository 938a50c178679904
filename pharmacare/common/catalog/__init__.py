"""Static medicine catalog used by the conversation flow.

The catalog is read once from ``catalog.json`` (or the file named by
``CATALOG_PATH``) and never mutated afterwards. Relation tables
(recommendations and substitutions) are plain id lookups; ids that do not
resolve to a catalog item are skipped by the helpers below.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pharmacare.common.logger import custom_logger
from pharmacare.common.models.catalog_model import CatalogItem, KnownCustomer

_CATALOG_DATA_PATH = Path(__file__).with_name("catalog.json")

logger = custom_logger()


class Catalog:
    """Read-only view over the medicines, relation tables and known customer."""

    def __init__(
        self,
        items: Iterable[CatalogItem],
        known_customer: KnownCustomer,
        recommendations: Optional[Mapping[str, Sequence[str]]] = None,
        substitutions: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> None:
        self._items: Dict[str, CatalogItem] = OrderedDict()
        for item in items:
            if item.id in self._items:
                raise ValueError(f"Duplicated catalog item id: {item.id}")
            self._items[item.id] = item
        self.known_customer = known_customer
        self._recommendations = {
            key: tuple(value) for key, value in (recommendations or {}).items()
        }
        self._substitutions = {
            key: tuple(value) for key, value in (substitutions or {}).items()
        }

    def __len__(self) -> int:
        return len(self._items)

    def get_item(self, item_id: Optional[str]) -> Optional[CatalogItem]:
        if item_id is None:
            return None
        return self._items.get(str(item_id))

    def items(self) -> List[CatalogItem]:
        return list(self._items.values())

    def items_by_category(self) -> Dict[str, List[CatalogItem]]:
        """Group items by category, keeping catalog order for both levels."""

        groups: Dict[str, List[CatalogItem]] = OrderedDict()
        for item in self._items.values():
            groups.setdefault(item.category, []).append(item)
        return groups

    def categories(self) -> List[str]:
        return list(self.items_by_category())

    def _resolve(self, item_ids: Iterable[str]) -> List[CatalogItem]:
        resolved = []
        for item_id in item_ids:
            item = self.get_item(item_id)
            if item is None:
                logger.warning(
                    "Relation table references unknown item",
                    extra={"item_id": item_id},
                )
                continue
            resolved.append(item)
        return resolved

    def recommendations_for(self, item_id: str) -> List[CatalogItem]:
        return self._resolve(self._recommendations.get(item_id, ()))

    def substitutions_for(self, item_id: str) -> List[CatalogItem]:
        return self._resolve(self._substitutions.get(item_id, ()))

    def last_order_items(self) -> List[CatalogItem]:
        return self._resolve(self.known_customer.last_order_items)

    def is_known_customer(self, phone_number: Optional[str]) -> bool:
        return bool(phone_number) and phone_number == self.known_customer.phone_number

    def cart_total(self, cart: Iterable[str]) -> Decimal:
        """Sum of unit prices in insertion order; unknown ids count as zero."""

        total = Decimal("0")
        for item_id in cart:
            item = self.get_item(item_id)
            if item is not None:
                total += item.price
        return total

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Catalog":
        return cls(
            items=[CatalogItem(**entry) for entry in data.get("items", [])],
            known_customer=KnownCustomer(**data["known_customer"]),
            recommendations=data.get("recommendations") or {},
            substitutions=data.get("substitutions") or {},
        )


def load_catalog(path: Optional[Path] = None) -> Catalog:
    """Load the catalog JSON document from disk."""

    catalog_path = Path(path) if path else _CATALOG_DATA_PATH
    with catalog_path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    catalog = Catalog.from_dict(data)
    logger.info(
        "Catalog loaded",
        extra={
            "path": str(catalog_path),
            "medicines": len(catalog),
            "categories": len(catalog.categories()),
        },
    )
    return catalog


__all__ = ["Catalog", "load_catalog"]
