"""Conversions between entity records and registry request bodies."""

from __future__ import annotations

from typing import Any, Mapping

from dirsync.identifiers import country_code_of

DEFAULT_COLLECTION_TYPE = ("SAMPLE",)
DEFAULT_DATA_CATEGORIES = ("BIOLOGICAL_SAMPLES",)

# EMX2 reference columns, keyed by the attribute used to reference the row.
EMX2_NAME_REFERENCES = frozenset(
    {
        "age_range",
        "sex",
        "disease",
        "sample_type",
        "diagnosis_available",
        "data_categories",
        "storage_temperatures",
        "materials",
        "order_of_magnitude",
        "order_of_magnitude_donors",
        "country",
        "type",
        "capabilities",
    }
)
EMX2_ID_REFERENCES = frozenset(
    {"collection", "national_node", "contact", "biobank", "head", "network", "juridical_person"}
)
# Collection attributes whose EMX2 value is an ontology reference even though it is numeric locally.
_EMX2_STRINGIFIED = frozenset({"order_of_magnitude", "order_of_magnitude_donors"})


def clean_entity(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Drop ``None`` values, empty lists and lists holding only ``None``."""

    cleaned: dict[str, Any] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            items = [item for item in value if item is not None]
            if not items:
                continue
            value = items
        cleaned[key] = value
    return cleaned


def collection_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Collection body with the attributes the registry requires filled in."""

    body = clean_entity(payload)
    body.setdefault("type", list(DEFAULT_COLLECTION_TYPE))
    body.setdefault("data_categories", list(DEFAULT_DATA_CATEGORIES))
    country = country_code_of(body.get("id"))
    if country is not None:
        body.setdefault("country", country)
        body.setdefault("national_node", country)
    return body


def emx2_wrap(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Wrap reference values the way EMX2 GraphQL inputs expect them.

    ``{"sex": ["FEMALE"]}`` becomes ``{"sex": [{"name": "FEMALE"}]}`` and
    ``{"collection": "bbmri-eric:ID:..."}`` becomes ``{"collection": {"id": ...}}``.
    """

    wrapped: dict[str, Any] = {}
    for key, value in payload.items():
        if key in EMX2_NAME_REFERENCES:
            attribute = "name"
        elif key in EMX2_ID_REFERENCES:
            attribute = "id"
        else:
            wrapped[key] = value
            continue
        if key in _EMX2_STRINGIFIED:
            value = str(value)
        if isinstance(value, (list, tuple)):
            wrapped[key] = [{attribute: item} for item in value]
        else:
            wrapped[key] = {attribute: value}
    return wrapped
