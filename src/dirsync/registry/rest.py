"""MOLGENIS REST (API v2) client for the Directory."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from dirsync.errors import RegistryError
from dirsync.models import BiobankAttributes, CollectionAttributes, Fact
from dirsync.registry.base import DirectoryRegistry
from dirsync.registry.payloads import clean_entity, collection_payload
from dirsync.registry.session import DirectorySession

logger = logging.getLogger(__name__)

LOGIN_ENDPOINT = "/api/v1/login"
DISEASE_TYPE_ENDPOINT = "/api/v2/eu_bbmri_eric_disease_types"


def entity_endpoint(entity: str, country_code: str | None) -> str:
    """``/api/v2/eu_bbmri_eric_DE_collections`` or ``/api/v2/eu_bbmri_eric_collections``."""

    if country_code:
        return f"/api/v2/eu_bbmri_eric_{country_code.upper()}_{entity}"
    return f"/api/v2/eu_bbmri_eric_{entity}"


class RestDirectoryRegistry(DirectoryRegistry):
    """Directory client speaking the MOLGENIS REST API.

    Entity tables are per national node (``eu_bbmri_eric_DE_facts``) with a
    country-agnostic variant for the central Directory.
    """

    name = "rest"

    def __init__(
        self,
        *,
        base_url: str,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        page_size: int = 1000,
        session: requests.Session | None = None,
    ) -> None:
        self.http = DirectorySession(base_url, timeout=timeout, session=session)
        self.username = username
        self.password = password
        self.page_size = page_size

    def login(self) -> None:
        if not self.username or not self.password:
            raise RegistryError("Directory login requires a user name and password")
        body = self.http.request_json(
            "POST",
            LOGIN_ENDPOINT,
            json={"username": self.username, "password": self.password},
        )
        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            raise RegistryError(f"Directory login failed at {self.http.url(LOGIN_ENDPOINT)}")
        self.http.set_token(str(token))
        logger.info("Logged in to %s as %s", self.http.base_url, self.username)

    def validate_diagnosis_code(self, code: str) -> bool:
        body = self.http.request_json("GET", DISEASE_TYPE_ENDPOINT, params={"q": f"id=='{code}'"})
        if not isinstance(body, dict):
            return False
        total = body.get("total")
        if not isinstance(total, (int, float)):
            logger.warning("Disease type lookup for %s returned no total", code)
            return False
        return total > 0

    def list_fact_ids(
        self,
        collection_id: str,
        page: int,
        country_code: str | None,
    ) -> list[str] | None:
        body = self.http.request_json(
            "GET",
            entity_endpoint("facts", country_code),
            params={
                "q": f'collection=="{collection_id}"',
                "num": self.page_size,
                "start": page * self.page_size,
                "attrs": "id",
            },
        )
        if not isinstance(body, dict) or not isinstance(body.get("items"), list):
            return None
        return [str(item["id"]) for item in body["items"] if isinstance(item, dict) and "id" in item]

    def delete_facts(self, ids: Sequence[str], country_code: str | None) -> bool:
        if not ids:
            return True
        body = self.http.request_json(
            "DELETE",
            entity_endpoint("facts", country_code),
            json={"entityIds": list(ids)},
        )
        return body is not None

    def insert_facts(self, facts: Sequence[Fact], country_code: str | None) -> bool:
        if not facts:
            return True
        body = self.http.request_json(
            "POST",
            entity_endpoint("facts", country_code),
            json={"entities": [fact.to_row() for fact in facts]},
        )
        return body is not None

    def get_collection(
        self,
        collection_id: str,
        country_code: str | None,
    ) -> CollectionAttributes | None:
        item = self._first_item("collections", collection_id, country_code)
        return CollectionAttributes.from_payload(item) if item is not None else None

    def put_collection(self, attrs: CollectionAttributes, country_code: str | None) -> bool:
        body = self.http.request_json(
            "PUT",
            entity_endpoint("collections", country_code),
            json={"entities": [collection_payload(attrs.to_payload())]},
        )
        return body is not None

    def get_biobank(self, biobank_id: str, country_code: str | None) -> BiobankAttributes | None:
        item = self._first_item("biobanks", biobank_id, country_code)
        return BiobankAttributes.from_payload(item) if item is not None else None

    def put_biobank(self, attrs: BiobankAttributes, country_code: str | None) -> bool:
        body = self.http.request_json(
            "PUT",
            entity_endpoint("biobanks", country_code),
            json={"entities": [clean_entity(attrs.to_payload())]},
        )
        return body is not None

    def close(self) -> None:
        self.http.close()

    def _first_item(
        self,
        entity: str,
        entity_id: str,
        country_code: str | None,
    ) -> dict[str, Any] | None:
        body = self.http.request_json(
            "GET",
            entity_endpoint(entity, country_code),
            params={"q": f'id=="{entity_id}"'},
        )
        if not isinstance(body, dict):
            return None
        items = body.get("items")
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            logger.info("No %s entity %s at %s", entity, entity_id, entity_endpoint(entity, country_code))
            return None
        return items[0]
