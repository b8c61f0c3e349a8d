import sys
from collections import Counter
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from dirsync.diagnosis import DiagnosisCorrector, build_corrections  # noqa: E402


def _validator(vocabulary):
    calls = Counter()

    def validate(code: str) -> bool:
        calls[code] += 1
        return code in vocabulary

    return validate, calls


def test_invalid_subcategory_is_corrected_to_valid_category() -> None:
    validate, _ = _validator({"urn:miriam:icd:C75"})

    corrections = build_corrections(["C75.5"], validate)

    assert corrections["urn:miriam:icd:C75.5"] == "urn:miriam:icd:C75"
    assert corrections.generalized == ("urn:miriam:icd:C75.5",)


def test_valid_code_maps_to_itself() -> None:
    validate, _ = _validator({"urn:miriam:icd:C18.0", "urn:miriam:icd:C18"})

    corrections = build_corrections(["C18.0"], validate)

    assert corrections.resolve("C18.0") == "urn:miriam:icd:C18.0"


def test_normalized_form_is_tried_after_direct_form() -> None:
    validate, _ = _validator({"urn:miriam:icd:C18.0"})

    corrections = build_corrections(["c18,0"], validate)

    assert corrections.resolve("c18,0") == "urn:miriam:icd:C18.0"


def test_unknown_code_maps_to_none() -> None:
    validate, _ = _validator(set())

    corrections = build_corrections(["C99.9", None, ""], validate)

    assert dict(corrections) == {"urn:miriam:icd:C99.9": None}
    assert corrections.unresolved == ("urn:miriam:icd:C99.9",)
    assert corrections.resolve("C99.9") is None
    assert corrections.resolve(None) is None


def test_each_candidate_is_validated_once_per_build() -> None:
    validate, calls = _validator({"urn:miriam:icd:C75"})

    corrections = DiagnosisCorrector(validate).build(["C75.5", "C75.5", "C75.7", "urn:miriam:icd:C75.5"])

    assert len(corrections) == 2
    assert set(calls.values()) == {1}
    assert corrections["urn:miriam:icd:C75.7"] == "urn:miriam:icd:C75"


def test_corrections_are_deterministic_and_read_only() -> None:
    vocabulary = {"urn:miriam:icd:C75", "urn:miriam:icd:C18.0"}
    codes = ["C75.5", "C18.0", "XYZ", "C18,0"]

    first = build_corrections(codes, _validator(vocabulary)[0])
    second = build_corrections(list(reversed(codes)), _validator(vocabulary)[0])

    assert dict(first) == dict(second)
    with pytest.raises(TypeError):
        first["urn:miriam:icd:C75.5"] = "urn:miriam:icd:C18.0"  # type: ignore[index]


def _recording_validator(vocabulary):
    calls = []

    def validate(code: str) -> bool:
        calls.append(code)
        return code in vocabulary

    return validate, calls


def test_category_of_the_code_as_given_is_the_last_resort() -> None:
    validate, calls = _recording_validator({"urn:miriam:icd:1C18"})

    corrections = build_corrections(["1C18.0"], validate)

    assert corrections["urn:miriam:icd:1C18.0"] == "urn:miriam:icd:1C18"
    assert calls[-1] == "urn:miriam:icd:1C18"


def test_candidates_are_tried_in_order_until_exhausted() -> None:
    validate, calls = _recording_validator(set())

    corrections = build_corrections(["1C18.0"], validate)

    assert corrections["urn:miriam:icd:1C18.0"] is None
    assert calls == [
        "urn:miriam:icd:1C18.0",
        "urn:miriam:icd:C18.0",
        "urn:miriam:icd:C18",
        "urn:miriam:icd:1C18",
    ]
