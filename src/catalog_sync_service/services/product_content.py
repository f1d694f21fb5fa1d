"""Remote product payloads derived from a local variation."""

import re
from dataclasses import dataclass
from typing import Any

import orjson

from catalog_sync_service.errors import ValidationError
from shared.constants import (
    CATALOG_VENDOR,
    DEFAULT_PRODUCT_TYPE,
    DESCRIPTION_KEY,
    DESCRIPTION_NAMESPACE,
    DIAMOND_REQUIRED_FIELDS,
    METAFIELD_NAMESPACE,
    NO_STONE,
    QUALITY_ORDER,
)


@dataclass
class VariationView:
    """A variation joined with its ring, lookups and assignments."""

    variation_id: int
    ring_id: int
    sku: str
    title: str = ""
    supplier_product_id: str = ""
    description: str = ""
    group_description: str = ""
    band_width: str = ""
    stone_type: str = ""
    quality: str = ""
    weight: float = 0
    supplier_price: int = 0
    supplier_showcase_price: int = 0
    diamonds: Any = None
    style_label: str | None = None
    sync: bool = False
    sync_id: str = ""
    variant_sync_id: str = ""
    metal_name: str = ""
    stone_name: str = ""
    group_id: int | None = None
    group_name: str | None = None
    category_name: str | None = None
    category_remote_id: str | None = None
    style_id: int | None = None
    style_name: str | None = None
    gender_name: str | None = None

    @property
    def is_archived(self) -> bool:
        return not self.sync and bool(self.sync_id) and bool(self.variant_sync_id)

    @property
    def is_synced(self) -> bool:
        return self.sync and bool(self.sync_id) and bool(self.variant_sync_id)

    @property
    def needs_diamonds(self) -> bool:
        return self.stone_type != NO_STONE


def parse_diamonds(raw: Any) -> Any:
    """Decode the stored diamonds JSON, returning ``None`` when absent."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, (list, dict)):
        return raw
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None


def has_diamonds(diamonds: Any) -> bool:
    return isinstance(diamonds, (list, dict)) and len(diamonds) > 0


# =============================================================================
# Validation
# =============================================================================


def missing_sync_fields(view: VariationView) -> list[str]:
    """Names of the fields that block pushing this variation."""
    missing = []
    if not (view.title or "").strip():
        missing.append("title")
    if not (view.description or "").strip():
        missing.append("description")
    if not (view.band_width or "").strip():
        missing.append("band width")
    if view.needs_diamonds and not has_diamonds(parse_diamonds(view.diamonds)):
        missing.append("diamonds")
    return missing


def validate_for_sync(view: VariationView) -> None:
    missing = missing_sync_fields(view)
    if missing:
        raise ValidationError(
            f"Product {view.supplier_product_id or view.sku} is missing required fields: "
            + ", ".join(missing)
        )


def validate_diamonds(diamonds: Any) -> None:
    """Every diamond entry must carry the full set of descriptive fields."""
    if isinstance(diamonds, dict):
        entries = list(diamonds.values())
    elif isinstance(diamonds, list):
        entries = diamonds
    else:
        entries = []
    if not entries:
        raise ValidationError("Diamonds are required for stone-set products")
    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise ValidationError(f"Diamond {index} must be an object")
        missing = [
            name
            for name in DIAMOND_REQUIRED_FIELDS
            if entry.get(name) in (None, "")
        ]
        if missing:
            raise ValidationError(f"Diamond {index} is missing: {', '.join(missing)}")


# =============================================================================
# Product description
# =============================================================================


def format_key(key: str) -> str:
    """``min_carat_total_weight`` → ``Min Carat Total Weight``."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


def remove_empty_or_zero(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty, zero and null values and format the remaining keys."""
    return {
        format_key(key): value
        for key, value in data.items()
        if value is not None and value != "" and not (
            isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0
        )
    }


def format_diamonds(diamonds: Any) -> dict[str, Any]:
    if isinstance(diamonds, list):
        items = [(str(index), entry) for index, entry in enumerate(diamonds)]
    elif isinstance(diamonds, dict):
        items = list(diamonds.items())
    else:
        return {}

    formatted = {}
    for key, entry in items:
        if not isinstance(entry, dict):
            continue
        cleaned = remove_empty_or_zero(entry)
        if cleaned:
            formatted[key] = cleaned
    return formatted


def product_description(
    style: str | None,
    metal: str | None,
    width: str | None,
    diamonds: Any,
) -> dict[str, Any]:
    """Build the structured description shown on the storefront."""
    description: dict[str, Any] = {
        "Ring Information": remove_empty_or_zero(
            {"Style": style, "Metal": metal, "Width": width}
        )
    }
    gemstones = format_diamonds(diamonds)
    if gemstones:
        description["Accent Gemstones"] = gemstones
    return description


def description_metafield(view: VariationView, diamonds: Any = None) -> dict[str, Any]:
    return {
        "namespace": DESCRIPTION_NAMESPACE,
        "key": DESCRIPTION_KEY,
        "type": "json",
        "value": orjson.dumps(
            product_description(
                view.style_label,
                view.metal_name,
                view.band_width,
                diamonds if diamonds is not None else parse_diamonds(view.diamonds),
            )
        ).decode(),
    }


# =============================================================================
# Product creation payload
# =============================================================================


def _text_metafield(key: str, value: Any) -> dict[str, Any]:
    return {
        "namespace": METAFIELD_NAMESPACE,
        "key": key,
        "value": "" if value is None else str(value),
        "type": "single_line_text_field",
    }


def product_metafields(view: VariationView) -> list[dict[str, Any]]:
    """The fixed custom metafield set written at creation time."""
    return [
        _text_metafield("group_name", view.group_name),
        _text_metafield("band_width", view.band_width),
        _text_metafield("stone_type", view.stone_type),
        {
            "namespace": METAFIELD_NAMESPACE,
            "key": "diamonds",
            "value": orjson.dumps(parse_diamonds(view.diamonds)).decode(),
            "type": "json",
        },
        _text_metafield("stuller_p_id", view.supplier_product_id),
        _text_metafield("metal", view.metal_name),
        _text_metafield("style", view.style_name),
        _text_metafield("gender", view.gender_name),
    ]


def product_create_input(view: VariationView) -> dict[str, Any]:
    """Input of the product creation mutation."""
    payload: dict[str, Any] = {
        "title": view.title,
        "descriptionHtml": f"<p>{view.description}</p>",
        "vendor": CATALOG_VENDOR,
        "productType": view.group_description or DEFAULT_PRODUCT_TYPE,
        "status": "ACTIVE",
        "seo": {"title": view.title, "description": view.description},
        "metafields": [
            metafield for metafield in product_metafields(view) if metafield["value"] != ""
        ],
    }
    if view.category_remote_id:
        payload["collectionsToJoin"] = [view.category_remote_id]
    return payload


def variant_update_input(view: VariationView, variant_id: str) -> dict[str, Any]:
    return {
        "id": variant_id,
        "price": view.supplier_showcase_price,
        "inventoryPolicy": "DENY",
        "inventoryItem": {
            "sku": view.sku,
            "tracked": True,
            "measurement": {"weight": {"unit": "GRAMS", "value": float(view.weight or 0)}},
        },
    }


# =============================================================================
# Product family grouping
# =============================================================================


def quality_rank(quality: str | None) -> int:
    """Position in the metal-quality ordering; unknown qualities sort first."""
    try:
        return QUALITY_ORDER.index(quality or "")
    except ValueError:
        return -1


def order_product_group(members: list[tuple[str, str | None]]) -> list[str]:
    """Order ``(product_id, quality)`` pairs and return unique product ids."""
    ordered = sorted(members, key=lambda member: quality_rank(member[1]))
    seen: list[str] = []
    for product_id, _ in ordered:
        if product_id and product_id not in seen:
            seen.append(product_id)
    return seen
