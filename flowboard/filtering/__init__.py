"""Repository listing classification and filtering."""

from .formats import category_of, classify_entry, extension_of
from .listing_filter import FilterResult, available_classes, filter_listing, is_retained

__all__ = [
    "classify_entry",
    "extension_of",
    "category_of",
    "filter_listing",
    "is_retained",
    "available_classes",
    "FilterResult",
]
