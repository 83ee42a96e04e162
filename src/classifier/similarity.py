"""Name-similarity grouping for products no custom group claims.

Products that differ only by pack size, bonus units or a Pro/Plus/Premium
suffix share a base name:

    "Free Sugar Pro 3 bottles"             -> "Free Sugar"
    "Free Sugar Pro 6 bottles + 3 free"    -> "Free Sugar"
"""

import re


_QUANTITY = re.compile(r"\d+\s*(bottle|bottles|unit|units|pack|packs)", re.IGNORECASE)
_BONUS_TAIL = re.compile(r"\+\s*\d+\s*(free|bonus|extra).*", re.IGNORECASE)
_TIER_SUFFIX = re.compile(r"\s+(pro|plus|premium)\s*$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def extract_product_base_name(product_name: str) -> str:
    """Strip quantity, bonus and tier variations from a product name.

    Returns the original name when nothing is left after stripping.
    """
    base = _QUANTITY.sub("", product_name)
    base = _BONUS_TAIL.sub("", base)
    # Quantity removal can leave trailing spaces before the tier suffix
    base = _WHITESPACE.sub(" ", base).strip()
    base = _TIER_SUFFIX.sub("", base)
    base = _WHITESPACE.sub(" ", base).strip()
    return base or product_name


def group_similar_names(names) -> dict[str, list[str]]:
    """Group product names by base name, sorted by base name.

    Names keep their first-seen order inside each group and duplicates
    are listed once.
    """
    groups: dict[str, list[str]] = {}
    for name in names:
        members = groups.setdefault(extract_product_base_name(name), [])
        if name not in members:
            members.append(name)
    return {base: groups[base] for base in sorted(groups)}
