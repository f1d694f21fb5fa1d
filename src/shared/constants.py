"""Shared constants across the application."""

# Supplier web categories that map onto remote collections
SUPPLIER_CATEGORY_IDS = [21344, 21345, 21347, 21346, 21350, 26135, 21353, 5303]

# Supplier metal codes and their display names
METAL_KEYS = {
    "14Ky": "14K Yellow Gold",
    "18Ky": "18K Yellow Gold",
    "14Kw": "14K White Gold",
    "18Kw": "18K White Gold",
    "14Kr": "14K Rose Gold",
    "18Kr": "18K Rose Gold",
    "Plat": "Platinum",
}

# Supplier "Quality" display values and their full names
QUALITY_MAPPING = {
    "14K Yellow": "14K Yellow Gold",
    "18K Yellow": "18K Yellow Gold",
    "14K White": "14K White Gold",
    "18K White": "18K White Gold",
    "14K Rose": "14K Rose Gold",
    "18K Rose": "18K Rose Gold",
    "Platinum": "Platinum",
}

# Ordering of sibling products in the product_group metafield
QUALITY_ORDER = [
    "14K Yellow Gold",
    "18K Yellow Gold",
    "14K White Gold",
    "18K White Gold",
    "14K Rose Gold",
    "18K Rose Gold",
    "Platinum",
]

# Feed eligibility
VALID_STATUSES = {"Made To Order", "In Stock"}
VALID_STONE_TYPES = {"Natural Diamond", "Lab-Grown Diamond", "NS"}
VALID_JEWELRY_STATES = {"Set", "N/A"}
ELIGIBLE_PRODUCT_TYPE = "Band"
NO_STONE = "NS"

# Remote catalog
CATALOG_VENDOR = "Stuller"
DEFAULT_PRODUCT_TYPE = "Jewelry"
METAFIELD_NAMESPACE = "custom"
DESCRIPTION_NAMESPACE = "productdata"
DESCRIPTION_KEY = "product_description"
PRODUCT_GROUP_KEY = "product_group"
SUB_COLLECTION_DEFINITION = "Sub Collection Urls"
DISPLAY_METAOBJECT_TYPE = "filter_images"

# Required fields on every diamond entry of a stone-set variation
DIAMOND_REQUIRED_FIELDS = [
    "shape",
    "number",
    "min_carat_total_weight",
    "setting",
    "color",
    "clarity",
]

# Remote page sizes
PUBLICATION_PAGE_SIZE = 100
REMOTE_PAGE_SIZE = 100

# Dictionary name limits
DICTIONARY_NAME_MIN_LENGTH = 2
DICTIONARY_NAME_MAX_LENGTH = 100

# Listing defaults
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100
