"""Interface to the federated BBMRI-ERIC Directory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from dirsync.models import BiobankAttributes, CollectionAttributes, Fact


class DirectoryRegistry(ABC):
    """Operations Directory Sync needs from the registry.

    Every entity operation takes an optional ``country_code``: with a code the
    call targets the national-node endpoint, with ``None`` the
    country-agnostic one. Remote failures never raise; they are logged and
    reported as ``None`` (reads) or ``False`` (writes) so that the caller can
    try the other endpoint.
    """

    name: str
    page_size: int = 1000

    @abstractmethod
    def login(self) -> None:
        """Authenticate once; raise :class:`dirsync.errors.RegistryError` on refusal."""

    @abstractmethod
    def validate_diagnosis_code(self, code: str) -> bool:
        """Return True when the MIRIAM-qualified ``code`` is in the registry vocabulary."""

    @abstractmethod
    def list_fact_ids(
        self,
        collection_id: str,
        page: int,
        country_code: str | None,
    ) -> list[str] | None:
        """Return one page (0-based) of fact IDs; an empty list means no more pages."""

    @abstractmethod
    def delete_facts(self, ids: Sequence[str], country_code: str | None) -> bool:
        """Delete the given facts."""

    @abstractmethod
    def insert_facts(self, facts: Sequence[Fact], country_code: str | None) -> bool:
        """Insert the given facts."""

    @abstractmethod
    def get_collection(
        self,
        collection_id: str,
        country_code: str | None,
    ) -> CollectionAttributes | None:
        """Fetch the registry's view of a collection."""

    @abstractmethod
    def put_collection(self, attrs: CollectionAttributes, country_code: str | None) -> bool:
        """Replace the registry's view of a collection."""

    @abstractmethod
    def get_biobank(self, biobank_id: str, country_code: str | None) -> BiobankAttributes | None:
        """Fetch the registry's view of a biobank."""

    @abstractmethod
    def put_biobank(self, attrs: BiobankAttributes, country_code: str | None) -> bool:
        """Replace the registry's view of a biobank."""

    def close(self) -> None:
        """Release connections held by the registry client."""
