"""Interface to the clinical data store that feeds a synchronization run."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from dirsync.models import BiobankAttributes, SampleRecord


class ClinicalStore(ABC):
    """Source of sample rows and locally known biobank metadata.

    Implementations raise :class:`dirsync.errors.ClinicalStoreError` when the
    underlying store cannot be read.
    """

    name: str

    @abstractmethod
    def fetch_sample_records(self, collection_id: str | None = None) -> Iterable[SampleRecord]:
        """Yield sample rows, optionally restricted to one collection."""

    @abstractmethod
    def fetch_raw_diagnoses(self, collection_id: str | None = None) -> Iterable[str]:
        """Yield the raw diagnosis codes present in the store."""

    def fetch_biobanks(self) -> list[BiobankAttributes]:
        return []
