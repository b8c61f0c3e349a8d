"""In-memory collaborators shared by the test modules."""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from dirsync.errors import ClinicalStoreError  # noqa: E402
from dirsync.models import BiobankAttributes, CollectionAttributes, SampleRecord  # noqa: E402
from dirsync.registry.base import DirectoryRegistry  # noqa: E402
from dirsync.sources.base import ClinicalStore  # noqa: E402

COLLECTION_DE = "bbmri-eric:ID:DE_biobank1:collection:crc"
COLLECTION_AT = "bbmri-eric:ID:AT_biobank2:collection:lung"
BIOBANK_DE = "bbmri-eric:ID:DE_biobank1"


class InMemoryRegistry(DirectoryRegistry):
    """Registry double that keeps everything in dicts and records every call.

    ``failing`` holds ``(operation, country_code)`` pairs that report a remote
    failure, e.g. ``("insert", "DE")`` or ``("insert", None)``.
    """

    name = "memory"

    def __init__(self, *, vocabulary=None, page_size=1000, ignore_paging=False, failing=None):
        self.vocabulary = set(vocabulary or ())
        self.page_size = page_size
        self.ignore_paging = ignore_paging
        self.failing = set(failing or ())
        self.facts = {}
        self.collections = {}
        self.biobanks = {}
        self.calls = []
        self.validated = []
        self.logins = 0
        self.login_error = None

    def _fails(self, operation, country_code):
        self.calls.append((operation, country_code))
        return (operation, country_code) in self.failing

    def login(self):
        self.logins += 1
        if self.login_error is not None:
            raise self.login_error

    def validate_diagnosis_code(self, code):
        self.validated.append(code)
        return code in self.vocabulary

    def list_fact_ids(self, collection_id, page, country_code):
        if self._fails("list", country_code):
            return None
        ids = sorted(fact_id for fact_id, fact in self.facts.items() if fact.collection_id == collection_id)
        if self.ignore_paging:
            return ids
        return ids[page * self.page_size : (page + 1) * self.page_size]

    def delete_facts(self, ids, country_code):
        if self._fails("delete", country_code):
            return False
        for fact_id in ids:
            self.facts.pop(fact_id, None)
        return True

    def insert_facts(self, facts, country_code):
        if self._fails("insert", country_code):
            return False
        for fact in facts:
            self.facts[fact.id] = fact
        return True

    def get_collection(self, collection_id, country_code):
        if self._fails("get_collection", country_code):
            return None
        return self.collections.get(collection_id)

    def put_collection(self, attrs, country_code):
        if self._fails("put_collection", country_code):
            return False
        self.collections[attrs.id] = attrs
        return True

    def get_biobank(self, biobank_id, country_code):
        if self._fails("get_biobank", country_code):
            return None
        return self.biobanks.get(biobank_id)

    def put_biobank(self, attrs, country_code):
        if self._fails("put_biobank", country_code):
            return False
        self.biobanks[attrs.id] = attrs
        return True


class InMemoryClinicalStore(ClinicalStore):
    """Clinical store double; ``failures`` makes the first N reads raise."""

    name = "memory"

    def __init__(self, rows, *, biobanks=None, failures=0):
        self.rows = list(rows)
        self.biobanks = list(biobanks or ())
        self.failures = failures

    def fetch_sample_records(self, collection_id=None):
        return [row for row in self.rows if collection_id is None or row.collection_id == collection_id]

    def fetch_raw_diagnoses(self, collection_id=None):
        if self.failures > 0:
            self.failures -= 1
            raise ClinicalStoreError("clinical store unavailable")
        return [row.raw_diagnosis_code for row in self.fetch_sample_records(collection_id) if row.raw_diagnosis_code]

    def fetch_biobanks(self):
        return list(self.biobanks)


def donors(count, *, collection_id=COLLECTION_DE, prefix="p", sex="female", diagnosis="C18.0",
           age=35, material="TISSUE", samples_per_donor=1):
    """One row per sample for ``count`` distinct donors sharing every other attribute."""

    return [
        SampleRecord(
            collection_id=collection_id,
            patient_id=f"{prefix}{index}",
            sample_material=material,
            sex=sex,
            raw_diagnosis_code=diagnosis,
            age_at_diagnosis=age,
        )
        for index in range(count)
        for _ in range(samples_per_donor)
    ]


__all__ = [
    "BIOBANK_DE",
    "BiobankAttributes",
    "COLLECTION_AT",
    "COLLECTION_DE",
    "CollectionAttributes",
    "InMemoryClinicalStore",
    "InMemoryRegistry",
    "donors",
]
