"""Per-vendor normalization of transformed records."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Final, assert_never

import structlog

from udmbridge.core.types import EMRSystem, ResourceKind
from udmbridge.schemas.loader import SchemaLoader, VendorRules

logger = structlog.get_logger(__name__)

FHIR_GENDERS: Final[frozenset[str]] = frozenset({"male", "female", "other", "unknown"})

# Codeable concepts whose codings get system rewriting and display backfill
CODED_FIELDS: Final[tuple[str, ...]] = ("category", "code")


def _load_vendor_rules() -> MappingProxyType[EMRSystem, VendorRules]:
    loader = SchemaLoader()
    return MappingProxyType({system: loader.load_vendor_rules(system) for system in EMRSystem})


# Loaded once at import; read-only afterwards
VENDOR_RULES: Final[MappingProxyType[EMRSystem, VendorRules]] = _load_vendor_rules()


class VendorNormalizer:
    """Applies vendor rules to a UDM ``data`` payload in a single pass."""

    def __init__(self, rules: Mapping[EMRSystem, VendorRules] | None = None) -> None:
        """Initialize normalizer.

        Args:
            rules: Rules per vendor; the bundled VENDOR_RULES when omitted.
        """
        self.rules = rules if rules is not None else VENDOR_RULES

    def normalize(
        self, data: dict[str, Any], kind: ResourceKind | None, system: EMRSystem
    ) -> dict[str, Any]:
        """Return a normalized copy of ``data``; the input is left untouched.

        Args:
            data: Transformed payload.
            kind: Resource shape, or None for message types without one.
            system: Vendor whose rules apply.
        """
        rules = self.rules[system]
        result = copy.deepcopy(data)

        self._rewrite_identifier_systems(result, rules)
        for name in CODED_FIELDS:
            self._normalize_coded_field(result, name, rules)

        match kind:
            case ResourceKind.PATIENT:
                if result.get("gender") is not None:
                    result["gender"] = self.canonical_gender(result["gender"], system)
            case ResourceKind.TASK:
                if isinstance(result.get("intent"), str):
                    result["intent"] = result["intent"].strip().lower()
                if isinstance(result.get("priority"), str):
                    result["priority"] = result["priority"].strip().lower()
            case ResourceKind.OBSERVATION | None:
                pass
            case _:
                assert_never(kind)

        if isinstance(result.get("status"), str):
            result["status"] = self.canonical_status(result["status"], system)

        logger.debug(
            "vendor_normalized",
            system=system.value,
            resource_kind=kind.value if kind else None,
        )
        return result

    def canonical_status(self, status: str, system: EMRSystem) -> str:
        """Map a vendor status code to its FHIR form.

        Codes with no table entry pass through in the vendor's canonical
        spelling.
        """
        rules = self.rules[system]
        match system:
            case EMRSystem.EPIC:
                return rules.status_map.get(status.strip().title(), status)
            case EMRSystem.CERNER:
                key = status.strip().lower().replace("_", "-")
                return rules.status_map.get(key, key)
            case EMRSystem.GENERIC_FHIR:
                key = status.strip().lower()
                return rules.status_map.get(key, key)
            case _:
                assert_never(system)

    def canonical_gender(self, value: Any, system: EMRSystem) -> str:
        """Convert a vendor administrative sex code to a FHIR gender."""
        text = str(value).strip()
        if text.lower() in FHIR_GENDERS:
            return text.lower()
        return self.rules[system].gender_map.get(text.upper(), "unknown")

    @staticmethod
    def _rewrite_identifier_systems(data: dict[str, Any], rules: VendorRules) -> None:
        identifiers = data.get("identifier")
        if not isinstance(identifiers, list):
            return
        for identifier in identifiers:
            if isinstance(identifier, dict) and isinstance(identifier.get("system"), str):
                identifier["system"] = rules.system_aliases.get(
                    identifier["system"], identifier["system"]
                )

    @staticmethod
    def _normalize_coded_field(data: dict[str, Any], name: str, rules: VendorRules) -> None:
        value = data.get(name)
        concepts = value if isinstance(value, list) else [value]
        for concept in concepts:
            if not isinstance(concept, dict) or not isinstance(concept.get("coding"), list):
                continue

            for coding in concept["coding"]:
                if not isinstance(coding, dict):
                    continue
                if isinstance(coding.get("system"), str):
                    coding["system"] = rules.system_aliases.get(coding["system"], coding["system"])
                if not coding.get("display"):
                    display = rules.display_for(coding.get("system"), coding.get("code"))
                    if display:
                        coding["display"] = display

            if not concept.get("text"):
                displays = [c.get("display") for c in concept["coding"] if isinstance(c, dict)]
                first = next((d for d in displays if d), None)
                if first:
                    concept["text"] = first
