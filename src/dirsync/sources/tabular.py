"""Clinical store backed by delimited text exports read with pandas."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

import pandas as pd

from dirsync.errors import ClinicalStoreError
from dirsync.models import BiobankAttributes, SampleRecord
from dirsync.sources.base import ClinicalStore

logger = logging.getLogger(__name__)

DEFAULT_COLUMNS: Mapping[str, str] = {
    "collection_id": "collection_id",
    "patient_id": "patient_id",
    "sample_material": "sample_material",
    "sex": "sex",
    "raw_diagnosis_code": "diagnosis",
    "age_at_diagnosis": "age_at_diagnosis",
}

_BIOBANK_LIST_FIELDS = frozenset({"capabilities", "network"})


class TabularClinicalStore(ClinicalStore):
    """Read sample rows from a CSV (or other delimited) export.

    ``columns`` maps :class:`SampleRecord` field names to the column names
    used in the file. Rows without a collection fall back to
    ``default_collection_id``.
    """

    name = "tabular"

    def __init__(
        self,
        *,
        samples_path: str | Path,
        biobanks_path: str | Path | None = None,
        columns: Mapping[str, str] | None = None,
        delimiter: str = ",",
        default_collection_id: str | None = None,
        chunksize: int = 100_000,
    ) -> None:
        self.samples_path = Path(samples_path)
        self.biobanks_path = Path(biobanks_path) if biobanks_path else None
        self.columns = {**DEFAULT_COLUMNS, **(columns or {})}
        self.delimiter = delimiter
        self.default_collection_id = default_collection_id
        self.chunksize = chunksize

    def fetch_sample_records(self, collection_id: str | None = None) -> Iterator[SampleRecord]:
        for frame in self._frames():
            for row in frame.itertuples(index=False):
                record = self._to_record(row._asdict())
                if record is None:
                    continue
                if collection_id is not None and record.collection_id != collection_id:
                    continue
                yield record

    def fetch_raw_diagnoses(self, collection_id: str | None = None) -> Iterator[str]:
        seen: set[str] = set()
        for record in self.fetch_sample_records(collection_id):
            code = record.raw_diagnosis_code
            if code and code not in seen:
                seen.add(code)
                yield code

    def fetch_biobanks(self) -> list[BiobankAttributes]:
        if self.biobanks_path is None:
            return []
        try:
            frame = pd.read_csv(self.biobanks_path, sep=self.delimiter, dtype=str)
        except (OSError, ValueError) as exc:
            raise ClinicalStoreError(f"Cannot read biobanks from {self.biobanks_path}: {exc}") from exc

        biobanks: list[BiobankAttributes] = []
        for raw in frame.to_dict(orient="records"):
            payload: dict[str, Any] = {}
            for key, value in raw.items():
                text = self._to_string(value)
                if text is None:
                    continue
                if key in _BIOBANK_LIST_FIELDS:
                    payload[key] = [item.strip() for item in text.split(",") if item.strip()]
                else:
                    payload[key] = text
            if payload.get("id"):
                biobanks.append(BiobankAttributes.from_payload(payload))
        return biobanks

    def _frames(self) -> Iterable[pd.DataFrame]:
        wanted = set(self.columns.values())
        try:
            reader = pd.read_csv(
                self.samples_path,
                sep=self.delimiter,
                dtype=str,
                usecols=lambda column: column in wanted,
                chunksize=self.chunksize,
            )
            for frame in reader:
                yield frame.rename(columns={source: field for field, source in self.columns.items()})
        except (OSError, ValueError) as exc:
            raise ClinicalStoreError(f"Cannot read samples from {self.samples_path}: {exc}") from exc

    def _to_record(self, row: Mapping[str, Any]) -> SampleRecord | None:
        collection_id = self._to_string(row.get("collection_id")) or self.default_collection_id
        patient_id = self._to_string(row.get("patient_id"))
        if not collection_id or not patient_id:
            logger.debug("Skipping sample row without collection or patient: %s", dict(row))
            return None
        return SampleRecord(
            collection_id=collection_id,
            patient_id=patient_id,
            sample_material=self._to_string(row.get("sample_material")),
            sex=self._to_string(row.get("sex")),
            raw_diagnosis_code=self._to_string(row.get("raw_diagnosis_code")),
            age_at_diagnosis=self._to_int(row.get("age_at_diagnosis")),
        )

    @staticmethod
    def _to_string(value: Any) -> str | None:
        if value is None or pd.isna(value):
            return None

        cleaned = str(value).strip()
        if not cleaned or cleaned.lower() in {"nan", "none", "null"}:
            return None

        return cleaned

    @staticmethod
    def _to_int(value: Any) -> int | None:
        if value is None or pd.isna(value):
            return None

        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None
