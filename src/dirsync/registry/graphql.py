"""MOLGENIS EMX2 GraphQL client for the Directory."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

import requests

from dirsync.errors import RegistryError
from dirsync.models import BiobankAttributes, CollectionAttributes, Fact
from dirsync.registry.base import DirectoryRegistry
from dirsync.registry.payloads import clean_entity, collection_payload, emx2_wrap
from dirsync.registry.session import DirectorySession

logger = logging.getLogger(__name__)

API_ENDPOINT = "/api/graphql"
ONTOLOGY_ENDPOINT = "/DirectoryOntologies/api/graphql"

COLLECTION_FIELDS = """
    id name description
    country { name } national_node { id } contact { id } biobank { id }
    type { name } data_categories { name } network { id }
    size order_of_magnitude { name } number_of_donors order_of_magnitude_donors { name }
    sex { name } age_low age_high materials { name } storage_temperatures { name }
    diagnosis_available { name }
"""

BIOBANK_FIELDS = """
    id name acronym description url juridical_person location
    country { name } head { id } contact { id } capabilities { name } network { id }
"""

SIGNIN_MUTATION = """
mutation signin($email: String, $password: String) {
  signin(email: $email, password: $password) { status message token }
}
"""


def _literal(value: str) -> str:
    """Quote a string for use as a GraphQL literal."""

    return json.dumps(value)


class GraphqlDirectoryRegistry(DirectoryRegistry):
    """Directory client for EMX2-based Directory deployments.

    National nodes live in their own schema (``ERIC-DE``); the central
    Directory uses ``ERIC``. Reference-typed attributes are wrapped as EMX2
    expects before they are sent.
    """

    name = "graphql"

    def __init__(
        self,
        *,
        base_url: str,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        page_size: int = 1000,
        country_schema: str = "ERIC-{country}",
        default_schema: str = "ERIC",
        session: requests.Session | None = None,
    ) -> None:
        self.http = DirectorySession(base_url, timeout=timeout, session=session)
        self.username = username
        self.password = password
        self.page_size = page_size
        self.country_schema = country_schema
        self.default_schema = default_schema

    def endpoint(self, country_code: str | None) -> str:
        if country_code:
            schema = self.country_schema.format(country=country_code.upper())
        else:
            schema = self.default_schema
        return f"/{schema}{API_ENDPOINT}"

    def login(self) -> None:
        if not self.username or not self.password:
            raise RegistryError("Directory login requires a user name and password")
        data = self._run(
            API_ENDPOINT,
            SIGNIN_MUTATION,
            {"email": self.username, "password": self.password},
        )
        signin = data.get("signin") if data else None
        token = signin.get("token") if isinstance(signin, dict) else None
        if not token:
            raise RegistryError(f"Directory login failed at {self.http.url(API_ENDPOINT)}")
        self.http.set_token(str(token))
        logger.info("Signed in to %s as %s", self.http.base_url, self.username)

    def validate_diagnosis_code(self, code: str) -> bool:
        query = f"{{ DiseaseTypes(filter: {{ name: {{ equals: {_literal(code)} }} }}) {{ name }} }}"
        data = self._run(ONTOLOGY_ENDPOINT, query)
        if data is None:
            return False
        return any(item.get("name") == code for item in data.get("DiseaseTypes") or [])

    def list_fact_ids(
        self,
        collection_id: str,
        page: int,
        country_code: str | None,
    ) -> list[str] | None:
        query = (
            "{ CollectionFacts("
            f"filter: {{ collection: {{ id: {{ equals: {_literal(collection_id)} }} }} }}, "
            f"limit: {self.page_size}, offset: {page * self.page_size}"
            ") { id } }"
        )
        data = self._run(self.endpoint(country_code), query)
        if data is None:
            return None
        return [str(item["id"]) for item in data.get("CollectionFacts") or [] if "id" in item]

    def delete_facts(self, ids: Sequence[str], country_code: str | None) -> bool:
        if not ids:
            return True
        mutation = (
            "mutation remove($value: [CollectionFactsInput]) "
            "{ delete(CollectionFacts: $value) { message } }"
        )
        value = [{"id": fact_id} for fact_id in ids]
        return self._run(self.endpoint(country_code), mutation, {"value": value}) is not None

    def insert_facts(self, facts: Sequence[Fact], country_code: str | None) -> bool:
        if not facts:
            return True
        mutation = (
            "mutation add($value: [CollectionFactsInput]) "
            "{ insert(CollectionFacts: $value) { message } }"
        )
        value = [emx2_wrap(fact.to_row()) for fact in facts]
        return self._run(self.endpoint(country_code), mutation, {"value": value}) is not None

    def get_collection(
        self,
        collection_id: str,
        country_code: str | None,
    ) -> CollectionAttributes | None:
        item = self._first_item("Collections", COLLECTION_FIELDS, collection_id, country_code)
        return CollectionAttributes.from_payload(item) if item is not None else None

    def put_collection(self, attrs: CollectionAttributes, country_code: str | None) -> bool:
        mutation = (
            "mutation save($value: [CollectionsInput]) "
            "{ update(Collections: $value) { message } }"
        )
        value = [emx2_wrap(collection_payload(attrs.to_payload()))]
        return self._run(self.endpoint(country_code), mutation, {"value": value}) is not None

    def get_biobank(self, biobank_id: str, country_code: str | None) -> BiobankAttributes | None:
        item = self._first_item("Biobanks", BIOBANK_FIELDS, biobank_id, country_code)
        return BiobankAttributes.from_payload(item) if item is not None else None

    def put_biobank(self, attrs: BiobankAttributes, country_code: str | None) -> bool:
        mutation = (
            "mutation save($value: [BiobanksInput]) "
            "{ update(Biobanks: $value) { message } }"
        )
        value = [emx2_wrap(clean_entity(attrs.to_payload()))]
        return self._run(self.endpoint(country_code), mutation, {"value": value}) is not None

    def close(self) -> None:
        self.http.close()

    def _first_item(
        self,
        table: str,
        fields: str,
        entity_id: str,
        country_code: str | None,
    ) -> dict[str, Any] | None:
        query = f"{{ {table}(filter: {{ id: {{ equals: {_literal(entity_id)} }} }}) {{ {fields} }} }}"
        data = self._run(self.endpoint(country_code), query)
        if data is None:
            return None
        items = data.get(table) or []
        if not items:
            logger.info("No %s entity %s at %s", table, entity_id, self.endpoint(country_code))
            return None
        return items[0]

    def _run(
        self,
        path: str,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        body = self.http.request_json("POST", path, json=payload)
        if not isinstance(body, dict):
            return None
        if body.get("errors"):
            messages = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in body["errors"]
            )
            logger.warning("GraphQL request to %s failed: %s", self.http.url(path), messages)
            return None
        data = body.get("data")
        return data if isinstance(data, dict) else {}
