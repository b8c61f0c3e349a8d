"""Star-model aggregation of sample rows into privacy-safe facts."""

from .aggregator import AggregationResult, StarModelAggregator, SuppressedBucket, aggregate
from .dimensions import age_bracket, convert_material, convert_sex
from .summary import order_of_magnitude, sanity_checks, summarize_collections

__all__ = [
    "AggregationResult",
    "StarModelAggregator",
    "SuppressedBucket",
    "age_bracket",
    "aggregate",
    "convert_material",
    "convert_sex",
    "order_of_magnitude",
    "sanity_checks",
    "summarize_collections",
]
