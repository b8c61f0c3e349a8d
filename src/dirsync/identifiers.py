"""BBMRI-ERIC identifier parsing."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ID_PREFIX = "bbmri-eric:ID:"
FACT_ID_PREFIX = "bbmri-eric:factID:"

_ID_RE = re.compile(r"^bbmri-eric:ID:([A-Za-z]{2})(_.+)$")


@dataclass(frozen=True)
class BbmriEricId:
    """Identifier of the form ``bbmri-eric:ID:<country-code>_<suffix>``."""

    country_code: str
    suffix: str

    @classmethod
    def parse(cls, value: str | None) -> "BbmriEricId | None":
        """Parse ``value`` or return ``None`` if it is not a BBMRI-ERIC identifier."""

        if value is None:
            return None
        match = _ID_RE.match(value.strip())
        if match is None:
            logger.info("Not a BBMRI-ERIC identifier: %r", value)
            return None
        return cls(country_code=match.group(1).upper(), suffix=match.group(2))

    @property
    def local_part(self) -> str:
        """Identifier without the ``bbmri-eric:ID:`` prefix, e.g. ``DE_12345``."""

        return f"{self.country_code}{self.suffix}"

    def __str__(self) -> str:
        return f"{ID_PREFIX}{self.local_part}"


def country_code_of(entity_id: str | None) -> str | None:
    """Return the upper-case country code embedded in a collection or biobank ID."""

    parsed = BbmriEricId.parse(entity_id)
    return parsed.country_code if parsed is not None else None
