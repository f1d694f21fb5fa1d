"""Supplier feed normalization.

Raw supplier records are filtered to eligible wedding bands and grouped as
family (supplier series id) → metal code → primary stone type. Only the
first record seen for a given (metal, stone) pair inside a family is kept;
the feed lists some logical variants more than once. A family's web-category
tags come from the first record that opens the family.
"""

import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import structlog

from shared.constants import (
    ELIGIBLE_PRODUCT_TYPE,
    METAL_KEYS,
    NO_STONE,
    QUALITY_MAPPING,
    SUPPLIER_CATEGORY_IDS,
    VALID_JEWELRY_STATES,
    VALID_STATUSES,
    VALID_STONE_TYPES,
)

logger = structlog.get_logger()


@dataclass
class WebCategoryTag:
    """A supplier web category attached to a family."""

    id: int
    name: str = ""
    path: str = ""
    image_url: str = ""


@dataclass
class FeedVariation:
    """Normalized fields of one eligible supplier SKU."""

    sku: str
    metal_code: str
    stone_type: str
    supplier_id: Any = None
    title: str = ""
    supplier_product_id: str = ""
    description: str = ""
    group_description: str = ""
    status: str = ""
    supplier_price: int = 0
    supplier_showcase_price: int = 0
    weight: float = 0
    ring_size: float = 0
    lead_time: int = 0
    on_hand: int = 0
    orderable: bool = False
    currency_code: str = ""
    band_width: str = ""
    quality: str = ""
    set_with: list[Any] = field(default_factory=list)


@dataclass
class FeedFamily:
    """All kept variations of one supplier family."""

    supplier_group_id: str
    web_categories: list[WebCategoryTag] = field(default_factory=list)
    variations: dict[str, dict[str, FeedVariation]] = field(default_factory=dict)

    @property
    def metal_codes(self) -> list[str]:
        return list(self.variations)

    @property
    def stone_types(self) -> list[str]:
        stones: list[str] = []
        for by_stone in self.variations.values():
            for stone in by_stone:
                if stone not in stones:
                    stones.append(stone)
        return stones

    def iter_variations(self) -> Iterator[FeedVariation]:
        for by_stone in self.variations.values():
            yield from by_stone.values()


@dataclass
class TransformedFeed:
    """Output of the transformer."""

    families: dict[str, FeedFamily] = field(default_factory=dict)
    valid_skus: set[str] = field(default_factory=set)
    dropped: int = 0
    duplicates: int = 0

    def iter_variations(self) -> Iterator[tuple[FeedFamily, FeedVariation]]:
        for family in self.families.values():
            for variation in family.iter_variations():
                yield family, variation


# =============================================================================
# Field helpers
# =============================================================================


def _round_half_up(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    return int(math.floor(number + 0.5))


def _number(value: Any, default: float = 0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _int(value: Any) -> int:
    return int(_number(value))


def _descriptive_elements(record: dict[str, Any]) -> dict[str, dict[str, Any]]:
    group = record.get("DescriptiveElementGroup") or {}
    elements: dict[str, dict[str, Any]] = {}
    for element in group.get("DescriptiveElements") or []:
        name = element.get("Name")
        if name and name not in elements:
            elements[name] = element
    return elements


def _element_value(elements: dict[str, dict[str, Any]], name: str) -> str:
    value = (elements.get(name) or {}).get("Value")
    return str(value).strip() if value is not None else ""


def _specification(record: dict[str, Any], name: str) -> str:
    for spec in record.get("Specifications") or []:
        if spec.get("Name") == name and spec.get("Value") is not None:
            return str(spec["Value"]).strip()
    return ""


def _web_categories(record: dict[str, Any]) -> list[WebCategoryTag]:
    allowed = set(SUPPLIER_CATEGORY_IDS)
    tags = []
    for category in record.get("WebCategories") or []:
        category_id = category.get("Id")
        if category_id in allowed:
            tags.append(
                WebCategoryTag(
                    id=int(category_id),
                    name=category.get("Name") or "",
                    path=category.get("Path") or "",
                    image_url=category.get("CategoryImageUrl") or "",
                )
            )
    return tags


def primary_stone_type(record: dict[str, Any], elements: dict[str, dict[str, Any]]) -> str:
    """Resolve the primary stone type, mapping the literal "N/A" to "NS"."""
    stone = (
        _specification(record, "Primary Stone Type")
        or _element_value(elements, "Primary Stone Type")
        or NO_STONE
    )
    return NO_STONE if stone == "N/A" else stone


# =============================================================================
# Transformer
# =============================================================================


class FeedTransformer:
    """Turns raw supplier records into a ``TransformedFeed``."""

    def transform(self, records: list[dict[str, Any]]) -> TransformedFeed:
        feed = TransformedFeed()

        for record in records:
            elements = _descriptive_elements(record)
            family_id = _element_value(elements, "SERIES") or _element_value(elements, "Series")
            metal_code = _element_value(elements, "Quality")
            sku = str(record.get("SKU") or "").strip()
            status = record.get("Status") or ""
            stone = primary_stone_type(record, elements)

            if not self.is_eligible(
                family_id=family_id,
                metal_code=metal_code,
                sku=sku,
                status=status,
                product_type=_element_value(elements, "Product"),
                jewelry_state=_element_value(elements, "Jewelry State"),
                stone=stone,
            ):
                feed.dropped += 1
                continue

            family = feed.families.get(family_id)
            if family is None:
                family = FeedFamily(
                    supplier_group_id=family_id, web_categories=_web_categories(record)
                )
                feed.families[family_id] = family

            by_stone = family.variations.setdefault(metal_code, {})
            if stone in by_stone:
                feed.duplicates += 1
                continue

            by_stone[stone] = self.build_variation(record, elements, metal_code, stone, sku)
            feed.valid_skus.add(sku)

        logger.info(
            "Supplier feed transformed",
            records=len(records),
            families=len(feed.families),
            variations=len(feed.valid_skus),
            dropped=feed.dropped,
            duplicates=feed.duplicates,
        )
        return feed

    @staticmethod
    def is_eligible(
        *,
        family_id: str,
        metal_code: str,
        sku: str,
        status: str,
        product_type: str,
        jewelry_state: str,
        stone: str,
    ) -> bool:
        return bool(
            family_id
            and metal_code in METAL_KEYS
            and sku
            and status in VALID_STATUSES
            and product_type == ELIGIBLE_PRODUCT_TYPE
            and jewelry_state in VALID_JEWELRY_STATES
            and stone in VALID_STONE_TYPES
        )

    @staticmethod
    def build_variation(
        record: dict[str, Any],
        elements: dict[str, dict[str, Any]],
        metal_code: str,
        stone: str,
        sku: str,
    ) -> FeedVariation:
        price = record.get("Price") or {}
        showcase = record.get("ShowcasePrice") or {}
        quality_display = (elements.get("Quality") or {}).get("DisplayValue") or ""

        return FeedVariation(
            sku=sku,
            metal_code=metal_code,
            stone_type=stone,
            supplier_id=record.get("Id"),
            title=record.get("Description") or "",
            supplier_product_id=sku,
            description=record.get("ShortDescription") or "",
            group_description=record.get("GroupDescription") or "",
            status=record.get("Status") or "",
            supplier_price=_round_half_up(price.get("Value")),
            supplier_showcase_price=_round_half_up(showcase.get("Value")),
            weight=_number(record.get("GramWeight")),
            ring_size=_number(record.get("RingSize")),
            lead_time=_int(record.get("LeadTime")),
            on_hand=_int(record.get("OnHand")),
            orderable=bool(record.get("Orderable")),
            currency_code=price.get("CurrencyCode") or "",
            band_width=_specification(record, "Approx. Shank Base Width"),
            quality=QUALITY_MAPPING.get(str(quality_display).strip(), ""),
            set_with=list(record.get("SetWith") or []),
        )
