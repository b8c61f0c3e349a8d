"""Local DuckDB stand-in for the Directory ("write to file" mode)."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd

from dirsync.diagnosis.miriam import strip_miriam
from dirsync.errors import RegistryError
from dirsync.models import BiobankAttributes, CollectionAttributes, Fact
from dirsync.registry.base import DirectoryRegistry
from dirsync.registry.payloads import clean_entity, collection_payload

try:
    import duckdb
except ImportError:  # pragma: no cover - exercised only when dependency missing
    duckdb = None

logger = logging.getLogger(__name__)

FACT_COLUMNS: tuple[str, ...] = (
    "id",
    "collection",
    "sex",
    "disease",
    "age_range",
    "sample_type",
    "number_of_donors",
    "number_of_samples",
    "national_node",
    "last_update",
)
_COUNT_COLUMNS = frozenset({"number_of_donors", "number_of_samples"})
_COUNT_DTYPE = "Int64"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS facts (
        id VARCHAR PRIMARY KEY,
        collection VARCHAR NOT NULL,
        sex VARCHAR,
        disease VARCHAR,
        age_range VARCHAR,
        sample_type VARCHAR,
        number_of_donors INTEGER,
        number_of_samples INTEGER,
        national_node VARCHAR,
        last_update VARCHAR
    )
    """,
    "CREATE TABLE IF NOT EXISTS collections (id VARCHAR PRIMARY KEY, payload VARCHAR)",
    "CREATE TABLE IF NOT EXISTS biobanks (id VARCHAR PRIMARY KEY, payload VARCHAR)",
)


class DuckDBFileRegistry(DirectoryRegistry):
    """Keep facts and entities in a DuckDB file and export them as CSV.

    Useful for dry runs and for sites without Directory write access. The
    country code is ignored: there is a single local store. Every diagnosis
    code is accepted unless ``vocabulary_path`` names a file with one accepted
    code per line. Entities that were never written read back as empty
    records, so the first run writes the full local state.
    """

    name = "file"

    def __init__(
        self,
        *,
        output_directory: str | Path,
        db_name: str = "directory.duckdb",
        vocabulary_path: str | Path | None = None,
        page_size: int = 1000,
    ) -> None:
        self.output_directory = Path(output_directory)
        self.db_path = self.output_directory / db_name
        self.vocabulary_path = Path(vocabulary_path) if vocabulary_path else None
        self.page_size = page_size
        self._vocabulary: frozenset[str] | None = None
        self._connection: Any = None

    @property
    def fact_csv_path(self) -> Path:
        return self.output_directory / "DirectoryFactTables.csv"

    @property
    def collection_csv_path(self) -> Path:
        return self.output_directory / "DirectoryCollections.csv"

    @property
    def biobank_csv_path(self) -> Path:
        return self.output_directory / "DirectoryBiobanks.csv"

    def login(self) -> None:
        if duckdb is None:
            raise RegistryError(
                "duckdb is not installed. Add it to requirements before running file mode."
            )
        if self._connection is not None:
            return
        if self.vocabulary_path is not None:
            try:
                codes = self.vocabulary_path.read_text().splitlines()
            except OSError as exc:
                raise RegistryError(
                    f"Cannot read diagnosis vocabulary {self.vocabulary_path}: {exc}"
                ) from exc
            self._vocabulary = frozenset(
                strip_miriam(code) or "" for code in codes if code.strip()
            )
            logger.info("Loaded %s diagnosis codes from %s", len(self._vocabulary), self.vocabulary_path)

        connection = None
        try:
            self.output_directory.mkdir(parents=True, exist_ok=True)
            connection = duckdb.connect(str(self.db_path))
            for statement in _SCHEMA:
                connection.execute(statement)
        except (OSError, duckdb.Error) as exc:
            if connection is not None:
                connection.close()
            raise RegistryError(f"Cannot open local Directory database {self.db_path}: {exc}") from exc
        self._connection = connection
        logger.info("Writing Directory state to %s", self.db_path)

    def validate_diagnosis_code(self, code: str) -> bool:
        if self._vocabulary is None:
            return True
        return strip_miriam(code) in self._vocabulary

    def list_fact_ids(
        self,
        collection_id: str,
        page: int,
        country_code: str | None,
    ) -> list[str] | None:
        rows = self._db().execute(
            "SELECT id FROM facts WHERE collection = ? ORDER BY id LIMIT ? OFFSET ?",
            [collection_id, self.page_size, page * self.page_size],
        ).fetchall()
        return [row[0] for row in rows]

    def delete_facts(self, ids: Sequence[str], country_code: str | None) -> bool:
        if not ids:
            return True
        connection = self._db()
        connection.executemany("DELETE FROM facts WHERE id = ?", [[fact_id] for fact_id in ids])
        self._export_facts()
        return True

    def insert_facts(self, facts: Sequence[Fact], country_code: str | None) -> bool:
        if not facts:
            return True
        frame = pd.DataFrame([fact.to_row() for fact in facts]).reindex(columns=list(FACT_COLUMNS))
        frame = frame.astype(
            {column: _COUNT_DTYPE if column in _COUNT_COLUMNS else "string" for column in FACT_COLUMNS}
        )
        connection = self._db()
        connection.register("fact_frame", frame)
        try:
            connection.execute(
                f"INSERT INTO facts ({', '.join(FACT_COLUMNS)}) "
                f"SELECT {', '.join(FACT_COLUMNS)} FROM fact_frame"
            )
        finally:
            connection.unregister("fact_frame")
        self._export_facts()
        return True

    def get_collection(
        self,
        collection_id: str,
        country_code: str | None,
    ) -> CollectionAttributes | None:
        payload = self._load_entity("collections", collection_id)
        return CollectionAttributes.from_payload(payload)

    def put_collection(self, attrs: CollectionAttributes, country_code: str | None) -> bool:
        self._store_entity("collections", collection_payload(attrs.to_payload()))
        self._export_entities("collections", self.collection_csv_path)
        return True

    def get_biobank(self, biobank_id: str, country_code: str | None) -> BiobankAttributes | None:
        payload = self._load_entity("biobanks", biobank_id)
        return BiobankAttributes.from_payload(payload)

    def put_biobank(self, attrs: BiobankAttributes, country_code: str | None) -> bool:
        self._store_entity("biobanks", clean_entity(attrs.to_payload()))
        self._export_entities("biobanks", self.biobank_csv_path)
        return True

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _db(self) -> Any:
        if self._connection is None:
            self.login()
        return self._connection

    def _load_entity(self, table: str, entity_id: str) -> dict[str, Any]:
        row = self._db().execute(f"SELECT payload FROM {table} WHERE id = ?", [entity_id]).fetchone()
        if row is None:
            return {"id": entity_id}
        return json.loads(row[0])

    def _store_entity(self, table: str, payload: dict[str, Any]) -> None:
        self._db().execute(
            f"INSERT OR REPLACE INTO {table} VALUES (?, ?)",
            [payload["id"], json.dumps(payload, sort_keys=True)],
        )

    def _export_facts(self) -> None:
        frame = self._db().execute(
            f"SELECT {', '.join(FACT_COLUMNS)} FROM facts ORDER BY collection, id"
        ).df()
        frame.to_csv(self.fact_csv_path, index=False)

    def _export_entities(self, table: str, path: Path) -> None:
        rows = self._db().execute(f"SELECT payload FROM {table} ORDER BY id").fetchall()
        records = []
        for (payload,) in rows:
            record = json.loads(payload)
            records.append(
                {
                    key: ",".join(str(item) for item in value) if isinstance(value, list) else value
                    for key, value in record.items()
                }
            )
        pd.DataFrame(records).to_csv(path, index=False)
