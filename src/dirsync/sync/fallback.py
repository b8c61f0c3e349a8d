"""Try the national-node endpoint first, then the country-agnostic one."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_country_fallback(
    call: Callable[[str | None], T],
    country_code: str | None,
    *,
    description: str,
) -> T | None:
    """Run ``call`` against the country-scoped endpoint, falling back to the agnostic one.

    A result of ``None`` or ``False`` counts as failure. Returns the first
    successful result, or ``None`` when both endpoints failed.
    """

    scopes: list[str | None] = [country_code, None] if country_code else [None]
    for scope in scopes:
        result = call(scope)
        if result is not None and result is not False:
            return result
        if scope is not None:
            logger.info("%s failed for country %s, retrying without country code", description, scope)
    logger.warning("%s failed on every endpoint", description)
    return None
