import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from http_fakes import FakeResponse, FakeSession  # noqa: E402

from dirsync.errors import RegistryError  # noqa: E402
from dirsync.models import AggregationKey, CollectionAttributes, Fact  # noqa: E402
from dirsync.registry import GraphqlDirectoryRegistry  # noqa: E402
from dirsync.registry.payloads import emx2_wrap  # noqa: E402

BASE = "https://emx2.example.org"
COLLECTION = "bbmri-eric:ID:DE_biobank1:collection:crc"


def _registry(routes) -> tuple[GraphqlDirectoryRegistry, FakeSession]:
    session = FakeSession(routes)
    registry = GraphqlDirectoryRegistry(
        base_url=BASE,
        username="node@example.org",
        password="secret",
        page_size=50,
        session=session,
    )
    return registry, session


def test_endpoint_selects_national_schema() -> None:
    registry, _ = _registry({})

    assert registry.endpoint("de") == "/ERIC-DE/api/graphql"
    assert registry.endpoint(None) == "/ERIC/api/graphql"


def test_signin_stores_token() -> None:
    answer = FakeResponse(payload={"data": {"signin": {"status": "SUCCESS", "token": "tok"}}})
    registry, session = _registry({("POST", f"{BASE}/api/graphql"): answer})

    registry.login()

    assert session.headers["x-molgenis-token"] == "tok"
    assert session.requests[0]["json"]["variables"] == {"email": "node@example.org", "password": "secret"}


def test_signin_errors_raise_registry_error() -> None:
    answer = FakeResponse(payload={"errors": [{"message": "wrong password"}]})
    registry, _ = _registry({("POST", f"{BASE}/api/graphql"): answer})

    with pytest.raises(RegistryError):
        registry.login()


def test_disease_types_are_looked_up_in_ontology_schema() -> None:
    url = f"{BASE}/DirectoryOntologies/api/graphql"
    registry, session = _registry(
        {
            ("POST", url): [
                FakeResponse(payload={"data": {"DiseaseTypes": [{"name": "urn:miriam:icd:C18"}]}}),
                FakeResponse(payload={"data": {"DiseaseTypes": []}}),
            ]
        }
    )

    assert registry.validate_diagnosis_code("urn:miriam:icd:C18") is True
    assert registry.validate_diagnosis_code("urn:miriam:icd:X99") is False
    assert '"urn:miriam:icd:C18"' in session.requests[0]["json"]["query"]


def test_list_fact_ids_uses_limit_and_offset() -> None:
    url = f"{BASE}/ERIC-DE/api/graphql"
    registry, session = _registry(
        {("POST", url): FakeResponse(payload={"data": {"CollectionFacts": [{"id": "a"}, {"id": "b"}]}})}
    )

    assert registry.list_fact_ids(COLLECTION, 2, "DE") == ["a", "b"]
    query = session.requests[0]["json"]["query"]
    assert "limit: 50" in query
    assert "offset: 100" in query


def test_empty_fact_table_is_an_empty_page() -> None:
    url = f"{BASE}/ERIC/api/graphql"
    registry, _ = _registry({("POST", url): FakeResponse(payload={"data": {"CollectionFacts": None}})})

    assert registry.list_fact_ids(COLLECTION, 0, None) == []


def test_insert_wraps_references() -> None:
    url = f"{BASE}/ERIC-DE/api/graphql"
    registry, session = _registry({("POST", url): FakeResponse(payload={"data": {"insert": {"message": "ok"}}})})
    fact = Fact.from_key(
        AggregationKey(COLLECTION, "FEMALE", "urn:miriam:icd:C18", "Adult", "SERUM"),
        number_of_donors=11,
        number_of_samples=11,
        national_node="DE",
    )

    assert registry.insert_facts([fact], "DE") is True

    value = session.requests[0]["json"]["variables"]["value"][0]
    assert value["collection"] == {"id": COLLECTION}
    assert value["sex"] == {"name": "FEMALE"}
    assert value["disease"] == {"name": "urn:miriam:icd:C18"}
    assert value["national_node"] == {"id": "DE"}
    assert value["number_of_donors"] == 11


def test_mutation_errors_are_failures() -> None:
    url = f"{BASE}/ERIC-DE/api/graphql"
    registry, _ = _registry({("POST", url): FakeResponse(payload={"errors": ["permission denied"]})})

    assert registry.delete_facts(["a"], "DE") is False


def test_collection_is_read_from_nested_references() -> None:
    url = f"{BASE}/ERIC-DE/api/graphql"
    item = {
        "id": COLLECTION,
        "name": "Colorectal cancer",
        "country": {"name": "DE"},
        "order_of_magnitude": {"name": "2"},
        "materials": [{"name": "SERUM"}],
        "diagnosis_available": [{"name": "urn:miriam:icd:C18"}],
    }
    registry, session = _registry(
        {
            ("POST", url): [
                FakeResponse(payload={"data": {"Collections": [item]}}),
                FakeResponse(payload={"data": {"update": {"message": "ok"}}}),
            ]
        }
    )

    collection = registry.get_collection(COLLECTION, "DE")

    assert collection == CollectionAttributes(
        id=COLLECTION,
        name="Colorectal cancer",
        country="DE",
        order_of_magnitude=2,
        materials=("SERUM",),
        diagnosis_available=("urn:miriam:icd:C18",),
    )
    assert registry.put_collection(collection, "DE") is True
    value = session.requests[1]["json"]["variables"]["value"][0]
    assert value["order_of_magnitude"] == {"name": "2"}
    assert value["materials"] == [{"name": "SERUM"}]


def test_emx2_wrap_leaves_plain_values_alone() -> None:
    assert emx2_wrap({"id": "x", "size": 3, "network": ["n1"]}) == {
        "id": "x",
        "size": 3,
        "network": [{"id": "n1"}],
    }
