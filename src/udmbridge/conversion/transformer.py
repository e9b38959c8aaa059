"""Transformation of HL7 v2 messages and FHIR resources into UDM records."""

from __future__ import annotations

import functools
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Final, assert_never

import structlog

from udmbridge.conversion.normalizer import VendorNormalizer
from udmbridge.conversion.validator import (
    INVALID_RESOURCE_TYPE,
    UDMValidator,
    ValidationResult,
)
from udmbridge.core.exceptions import StrictValidationError, TransformError
from udmbridge.core.observability import track_metrics
from udmbridge.core.types import HL7_RESOURCE_KINDS, HL7_RESOURCE_TYPES, EMRSystem, ResourceKind
from udmbridge.parsers.message import HL7Message

logger = structlog.get_logger(__name__)

UDM_VERSION: Final[str] = "1.0"
HL7_IDENTIFIER_SYSTEM: Final[str] = "HL7"
MESSAGE_TYPE_SYSTEM: Final[str] = "http://terminology.hl7.org/CodeSystem/message-type"
MISSING_PATIENT_ID: Final[str] = "MISSING_PATIENT_ID"

# Fields carried over from each supported FHIR resource
FHIR_RESOURCE_FIELDS: Final[MappingProxyType[ResourceKind, tuple[str, ...]]] = MappingProxyType(
    {
        ResourceKind.PATIENT: (
            "identifier",
            "active",
            "name",
            "gender",
            "birthDate",
            "telecom",
        ),
        ResourceKind.TASK: (
            "identifier",
            "status",
            "intent",
            "priority",
            "code",
            "description",
            "authoredOn",
            "lastModified",
            "for",
        ),
        ResourceKind.OBSERVATION: (
            "identifier",
            "status",
            "category",
            "code",
            "subject",
            "effectiveDateTime",
            "valueQuantity",
            "valueString",
        ),
    }
)


@dataclass(frozen=True)
class TransformOptions:
    """Options for a single transform call."""

    strict_validation: bool = False


@dataclass
class EMRData:
    """A vendor-neutral UDM record.

    Holds no reference back to the source message or resource.
    """

    system: EMRSystem
    patient_id: str
    resource_type: str
    data: dict[str, Any]
    validation: ValidationResult
    version: str = UDM_VERSION
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "system": self.system.value,
            "patientId": self.patient_id,
            "resourceType": self.resource_type,
            "data": self.data,
            "lastUpdated": self.last_updated.isoformat(),
            "version": self.version,
            "validation": self.validation.to_dict(),
        }


def resource_kind(resource_type: Any) -> ResourceKind | None:
    """Resource shape for a FHIR resourceType, or None if unsupported."""
    try:
        return ResourceKind(resource_type)
    except ValueError:
        return None


def _reference_id(reference: Any) -> str:
    if isinstance(reference, Mapping):
        value = reference.get("reference")
        if isinstance(value, str) and value:
            return value.rsplit("/", 1)[-1]
    return ""


def extract_fhir_patient_id(resource: Mapping[str, Any], kind: ResourceKind | None) -> str:
    """Patient.id for patients, else the id at the end of subject/for."""
    if kind is ResourceKind.PATIENT:
        return str(resource.get("id") or "")
    return _reference_id(resource.get("subject")) or _reference_id(resource.get("for"))


def hl7_payload(message: HL7Message) -> dict[str, Any]:
    """Build the UDM payload for an HL7 message (before normalization)."""
    message_type = message.message_type.value
    data: dict[str, Any] = {
        "resourceType": HL7_RESOURCE_TYPES[message.message_type],
        "identifier": [
            {"system": HL7_IDENTIFIER_SYSTEM, "value": pid.get_component(3, 1)}
            for pid in message.get_all_segments("PID")
        ],
        "status": "active",
        "category": [
            {
                "coding": [
                    {"system": MESSAGE_TYPE_SYSTEM, "code": message_type, "display": message_type}
                ]
            }
        ],
    }

    kind = HL7_RESOURCE_KINDS.get(message.message_type)
    match kind:
        case ResourceKind.PATIENT:
            pid = message.get_segment("PID")
            patient_id = pid.get_component(3, 1) if pid else ""
            if patient_id:
                data["subject"] = {"reference": f"Patient/{patient_id}", "type": "Patient"}
        case ResourceKind.OBSERVATION:
            data["observation"] = [
                {"code": obx.get_field(3), "value": obx.get_field(5), "unit": obx.get_field(6)}
                for obx in message.get_all_segments("OBX")
            ]
        case ResourceKind.TASK:
            obr = message.get_segment("OBR")
            if obr is not None:
                data["order"] = {
                    "identifier": obr.get_field(2),
                    "status": "active",
                    "intent": "order",
                }
        case None:
            pass
        case _:
            assert_never(kind)

    return data


def fhir_payload(resource: Mapping[str, Any], kind: ResourceKind | None) -> dict[str, Any]:
    """Build the UDM payload for a FHIR resource (before normalization)."""
    match kind:
        case ResourceKind.PATIENT:
            data = _pick(resource, FHIR_RESOURCE_FIELDS[kind])
            data["status"] = "inactive" if resource.get("active") is False else "active"
        case ResourceKind.TASK | ResourceKind.OBSERVATION:
            data = _pick(resource, FHIR_RESOURCE_FIELDS[kind])
        case None:
            data = _pick(resource, ("identifier", "status"))
        case _:
            assert_never(kind)

    return {"resourceType": resource.get("resourceType"), **data}


def _pick(resource: Mapping[str, Any], names: tuple[str, ...]) -> dict[str, Any]:
    return {name: resource[name] for name in names if resource.get(name) is not None}


class UDMTransformer:
    """Builds validated EMRData records from HL7 messages and FHIR resources."""

    def __init__(
        self,
        validator: UDMValidator | None = None,
        normalizer: VendorNormalizer | None = None,
    ) -> None:
        """Initialize transformer.

        Args:
            validator: UDM validator; one over the bundled schema when omitted.
            normalizer: Vendor normalizer; the bundled rules when omitted.
        """
        self.validator = validator or UDMValidator()
        self.normalizer = normalizer or VendorNormalizer()

    @track_metrics("transform_hl7_to_udm")
    def transform_hl7(
        self,
        message: HL7Message,
        system: EMRSystem | str,
        options: TransformOptions | None = None,
    ) -> EMRData:
        """Transform a parsed HL7 v2 message.

        Args:
            message: Parsed message.
            system: EMR system whose normalization rules apply.
            options: Transform options.

        Returns:
            EMRData with validation results attached.

        Raises:
            ValueError: If ``system`` names an unknown EMR system.
            TransformError: If ``message`` is not an HL7Message.
            StrictValidationError: If strict validation is on and errors exist.
        """
        emr_system = EMRSystem.coerce(system)
        if not isinstance(message, HL7Message):
            raise TransformError("HL7 message is required")

        kind = HL7_RESOURCE_KINDS.get(message.message_type)
        data = self.normalizer.normalize(hl7_payload(message), kind, emr_system)

        validation = ValidationResult()
        self._merge(validation, self.validator.validate(data))
        if not message.patient_id:
            validation.add_warning("patientId", MISSING_PATIENT_ID, "No patient id in PID-3")

        return self._finish(
            EMRData(
                system=emr_system,
                patient_id=message.patient_id,
                resource_type=data["resourceType"],
                data=data,
                validation=validation,
            ),
            options or TransformOptions(),
        )

    @track_metrics("transform_fhir_to_udm")
    def transform_fhir(
        self,
        resource: Mapping[str, Any],
        system: EMRSystem | str,
        options: TransformOptions | None = None,
    ) -> EMRData:
        """Transform a FHIR Patient, Task or Observation resource.

        Other resource types produce an INVALID_RESOURCE_TYPE error.

        Raises:
            ValueError: If ``system`` names an unknown EMR system.
            TransformError: If ``resource`` is empty or not a mapping.
            StrictValidationError: If strict validation is on and errors exist.
        """
        emr_system = EMRSystem.coerce(system)
        if not isinstance(resource, Mapping) or not resource:
            raise TransformError("Resource is required")

        kind = resource_kind(resource.get("resourceType"))
        data = self.normalizer.normalize(fhir_payload(resource, kind), kind, emr_system)

        validation = ValidationResult()
        if kind is None:
            validation.add_error(
                "resourceType", INVALID_RESOURCE_TYPE, "Unsupported resource type"
            )
        self._merge(validation, self.validator.validate(data))

        patient_id = extract_fhir_patient_id(resource, kind)
        if not patient_id:
            validation.add_warning("patientId", MISSING_PATIENT_ID, "No patient reference")

        meta = resource.get("meta")
        version_id = meta.get("versionId") if isinstance(meta, Mapping) else None

        return self._finish(
            EMRData(
                system=emr_system,
                patient_id=patient_id,
                resource_type=str(resource.get("resourceType") or ""),
                data=data,
                validation=validation,
                version=str(version_id) if version_id else UDM_VERSION,
            ),
            options or TransformOptions(),
        )

    def transform(
        self,
        source: HL7Message | Mapping[str, Any],
        system: EMRSystem | str,
        options: TransformOptions | None = None,
    ) -> EMRData:
        """Transform either input kind, dispatching on its type."""
        if isinstance(source, HL7Message):
            return self.transform_hl7(source, system, options)
        return self.transform_fhir(source, system, options)

    @staticmethod
    def _merge(target: ValidationResult, other: ValidationResult) -> None:
        seen = {(e.field, e.code) for e in target.errors}
        for error in other.errors:
            if (error.field, error.code) not in seen:
                target.add_error(error.field, error.code, error.message)
        target.warnings.extend(other.warnings)

    @staticmethod
    def _finish(record: EMRData, options: TransformOptions) -> EMRData:
        errors = record.validation.errors
        if errors:
            logger.info(
                "udm_validation_failed",
                resource_type=record.resource_type,
                error_codes=sorted({e.code for e in errors}),
            )
            if options.strict_validation:
                raise StrictValidationError([e.to_exception() for e in errors])
        return record


@functools.lru_cache(maxsize=1)
def default_transformer() -> UDMTransformer:
    """Shared transformer over the bundled schema and vendor rules."""
    return UDMTransformer()


def transform_hl7_to_udm(
    message: HL7Message, system: EMRSystem | str, strict_validation: bool = False
) -> EMRData:
    """Transform an HL7 message with the default transformer."""
    return default_transformer().transform_hl7(
        message, system, TransformOptions(strict_validation=strict_validation)
    )


def transform_fhir_to_udm(
    resource: Mapping[str, Any], system: EMRSystem | str, strict_validation: bool = False
) -> EMRData:
    """Transform a FHIR resource with the default transformer."""
    return default_transformer().transform_fhir(
        resource, system, TransformOptions(strict_validation=strict_validation)
    )
