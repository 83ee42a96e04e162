"""Product classifier — maps raw product names onto Arsenal groups and offers."""

from .resolver import (
    UNGROUPED_KEY,
    UNKNOWN_ITEM,
    ArsenalResolver,
    Classification,
    ClassificationKind,
)
from .rules import matches, matches_any
from .similarity import extract_product_base_name, group_similar_names
