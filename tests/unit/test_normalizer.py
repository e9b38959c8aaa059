"""Tests for vendor normalization."""

import copy
from typing import Any

import pytest

from udmbridge.conversion.normalizer import VENDOR_RULES, VendorNormalizer
from udmbridge.core.types import EMRSystem, ResourceKind


class TestVendorRules:
    """Tests for the process-wide rule table."""

    def test_all_vendors_loaded(self) -> None:
        assert set(VENDOR_RULES) == set(EMRSystem)

    def test_read_only(self) -> None:
        with pytest.raises(TypeError):
            VENDOR_RULES[EMRSystem.EPIC] = VENDOR_RULES[EMRSystem.CERNER]  # type: ignore[index]


class TestCanonicalStatus:
    """Tests for per-vendor status remapping."""

    @pytest.fixture
    def normalizer(self) -> VendorNormalizer:
        return VendorNormalizer()

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            ("Ordered", "requested"),
            ("ordered", "requested"),
            ("In Progress", "in-progress"),
            ("Completed", "completed"),
            ("active", "active"),
            ("in-progress", "in-progress"),
        ],
    )
    def test_epic(self, normalizer: VendorNormalizer, status: str, expected: str) -> None:
        assert normalizer.canonical_status(status, EMRSystem.EPIC) == expected

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            ("in_progress", "in-progress"),
            ("IN_PROGRESS", "in-progress"),
            ("canceled", "cancelled"),
            ("on_hold", "on-hold"),
            ("draft", "draft"),
        ],
    )
    def test_cerner(self, normalizer: VendorNormalizer, status: str, expected: str) -> None:
        assert normalizer.canonical_status(status, EMRSystem.CERNER) == expected

    def test_generic_fhir_lowercases(self, normalizer: VendorNormalizer) -> None:
        assert normalizer.canonical_status(" Final ", EMRSystem.GENERIC_FHIR) == "final"


class TestCanonicalGender:
    """Tests for administrative sex code mapping."""

    @pytest.fixture
    def normalizer(self) -> VendorNormalizer:
        return VendorNormalizer()

    def test_epic_codes(self, normalizer: VendorNormalizer) -> None:
        assert normalizer.canonical_gender(1, EMRSystem.EPIC) == "male"
        assert normalizer.canonical_gender("2", EMRSystem.EPIC) == "female"
        assert normalizer.canonical_gender("f", EMRSystem.EPIC) == "female"

    def test_cerner_codes(self, normalizer: VendorNormalizer) -> None:
        assert normalizer.canonical_gender(362, EMRSystem.CERNER) == "male"
        assert normalizer.canonical_gender("363", EMRSystem.CERNER) == "female"

    def test_fhir_values_pass_through(self, normalizer: VendorNormalizer) -> None:
        assert normalizer.canonical_gender("Female", EMRSystem.CERNER) == "female"

    def test_unmapped_is_unknown(self, normalizer: VendorNormalizer) -> None:
        assert normalizer.canonical_gender("X", EMRSystem.GENERIC_FHIR) == "unknown"


class TestNormalize:
    """Tests for whole-payload normalization."""

    @pytest.fixture
    def normalizer(self) -> VendorNormalizer:
        return VendorNormalizer()

    @pytest.fixture
    def task(self) -> dict[str, Any]:
        return {
            "resourceType": "Task",
            "identifier": [{"system": "urn:oid:2.16.840.1.113883.3.13.6", "value": "FIN-42"}],
            "status": "in_progress",
            "intent": "Order",
            "priority": "STAT",
            "code": {
                "coding": [{"system": "https://fhir.cerner.com/codeSet/72", "code": "8480-6"}]
            },
        }

    def test_input_not_mutated(self, normalizer: VendorNormalizer, task: dict[str, Any]) -> None:
        """Test the caller's payload is left untouched."""
        original = copy.deepcopy(task)
        normalizer.normalize(task, ResourceKind.TASK, EMRSystem.CERNER)
        assert task == original

    def test_cerner_task(self, normalizer: VendorNormalizer, task: dict[str, Any]) -> None:
        result = normalizer.normalize(task, ResourceKind.TASK, EMRSystem.CERNER)

        assert result["status"] == "in-progress"
        assert result["intent"] == "order"
        assert result["priority"] == "stat"
        assert result["identifier"][0]["system"] == "https://fhir.cerner.com/fin"
        assert result["code"]["coding"][0] == {
            "system": "http://loinc.org",
            "code": "8480-6",
            "display": "Systolic blood pressure",
        }
        assert result["code"]["text"] == "Systolic blood pressure"

    def test_existing_display_and_text_kept(self, normalizer: VendorNormalizer) -> None:
        data = {
            "resourceType": "Observation",
            "status": "final",
            "code": {
                "text": "SBP",
                "coding": [{"system": "http://loinc.org", "code": "8480-6", "display": "SBP"}],
            },
        }
        result = normalizer.normalize(data, ResourceKind.OBSERVATION, EMRSystem.GENERIC_FHIR)
        assert result["code"] == data["code"]

    def test_category_backfill(self, normalizer: VendorNormalizer) -> None:
        data = {
            "category": [
                {
                    "coding": [
                        {
                            "system": "http://terminology.hl7.org/CodeSystem/observation-category",
                            "code": "laboratory",
                        }
                    ]
                }
            ]
        }
        result = normalizer.normalize(data, ResourceKind.OBSERVATION, EMRSystem.EPIC)
        assert result["category"][0]["coding"][0]["display"] == "Laboratory"
        assert result["category"][0]["text"] == "Laboratory"

    def test_patient_gender(self, normalizer: VendorNormalizer) -> None:
        data = {"resourceType": "Patient", "gender": "3", "status": "active"}
        result = normalizer.normalize(data, ResourceKind.PATIENT, EMRSystem.EPIC)
        assert result["gender"] == "other"

    def test_untyped_payload(self, normalizer: VendorNormalizer) -> None:
        """Test payloads without a resource shape still get status mapping."""
        data = {"resourceType": "Appointment", "status": "Ordered", "identifier": "bad"}
        result = normalizer.normalize(data, None, EMRSystem.EPIC)
        assert result["status"] == "requested"
        assert result["identifier"] == "bad"

    def test_observation_items_untouched(self, normalizer: VendorNormalizer) -> None:
        data = {
            "observation": [{"code": "8480-6^Systolic^LN", "value": "120", "unit": "mmHg"}],
        }
        result = normalizer.normalize(data, ResourceKind.OBSERVATION, EMRSystem.EPIC)
        assert result["observation"] == data["observation"]
