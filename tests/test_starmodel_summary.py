import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from fakes import COLLECTION_DE, donors  # noqa: E402

from dirsync.config import AgeBracket  # noqa: E402
from dirsync.models import SampleRecord  # noqa: E402
from dirsync.outcome import Severity  # noqa: E402
from dirsync.starmodel import AggregationResult  # noqa: E402
from dirsync.starmodel.dimensions import age_bracket, convert_material, convert_sex  # noqa: E402
from dirsync.starmodel.summary import order_of_magnitude, sanity_checks, summarize_collections  # noqa: E402


@pytest.mark.parametrize(
    ("age", "label"),
    [
        (0, "Newborn"),
        (1, "Infant"),
        (12, "Child"),
        (17, "Adolescent"),
        (24, "Young Adult"),
        (44, "Adult"),
        (64, "Middle-aged"),
        (79, "Aged (65-79 years)"),
        (80, "Aged (>80 years)"),
        (None, "Unknown"),
        (-3, "Unknown"),
    ],
)
def test_age_brackets(age, label: str) -> None:
    assert age_bracket(age) == label


def test_closed_custom_brackets_leave_old_ages_unknown() -> None:
    assert age_bracket(90, [AgeBracket("Minor", 18), AgeBracket("Adult", 65)]) == "Unknown"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("serum", "SERUM"),
        ("tissue-frozen", "TISSUE_FROZEN"),
        ("blood-plasma", "SERUM"),
        ("tissue", "TISSUE_PARAFFIN_EMBEDDED"),
        ("cells-vital", "CELLS"),
        ("tissue-other", "OTHER"),
        (None, "OTHER"),
    ],
)
def test_material_conversion(raw, expected: str) -> None:
    assert convert_material(raw) == expected


def test_sex_conversion() -> None:
    assert convert_sex(" female ") == "FEMALE"
    assert convert_sex("") == "UNKNOWN"


def test_order_of_magnitude() -> None:
    assert order_of_magnitude(9) == 0
    assert order_of_magnitude(10) == 1
    assert order_of_magnitude(1500) == 3
    assert order_of_magnitude(0) is None


def test_collection_summary() -> None:
    rows = donors(3, samples_per_donor=2, age=30) + [
        SampleRecord(COLLECTION_DE, "x1", sample_material=None, sex=None, raw_diagnosis_code="C50.9", age_at_diagnosis=70),
    ]

    (summary,) = summarize_collections(rows).values()

    assert summary.size == 7
    assert summary.number_of_donors == 4
    assert summary.sex == ("FEMALE",)
    assert summary.materials == ("TISSUE_PARAFFIN_EMBEDDED",)
    assert summary.diagnosis_available == ("urn:miriam:icd:C18.0", "urn:miriam:icd:C50.9")
    assert (summary.age_low, summary.age_high) == (30, 70)
    assert summary.country == "DE"


def test_sanity_checks_flag_low_coverage() -> None:
    rows = donors(10)

    issues = sanity_checks(rows, AggregationResult())

    assert [issue.severity for issue in issues] == [Severity.WARNING]
    assert "0 of 10" in issues[0].message
