"""Structural validation of UDM records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from udmbridge.core.exceptions import SchemaValidationError
from udmbridge.core.types import Severity
from udmbridge.schemas.loader import SchemaLoader, UDMSchema

SCHEMA_VALIDATION_ERROR = "SCHEMA_VALIDATION_ERROR"
INVALID_RESOURCE_TYPE = "INVALID_RESOURCE_TYPE"
INVALID_FORMAT = "INVALID_FORMAT"
INVALID_REFERENCE = "INVALID_REFERENCE"
MISSING_IDENTIFIER = "MISSING_IDENTIFIER"
MISSING_DISPLAY = "MISSING_DISPLAY"


@dataclass
class ValidationError:
    """A single validation finding.

    ``message`` names the field path only, never the offending value.
    """

    field: str
    code: str
    message: str
    severity: Severity = Severity.ERROR

    def to_exception(self) -> SchemaValidationError:
        return SchemaValidationError(self.field, self.code, self.message)

    def to_dict(self) -> dict[str, str]:
        return {
            "field": self.field,
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
        }


@dataclass
class ValidationResult:
    """Result of validating a UDM record."""

    is_valid: bool = True
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)
    last_validated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def error_count(self) -> int:
        """Return number of errors."""
        return len(self.errors)

    def add_error(self, field_name: str, code: str, message: str) -> None:
        """Add a validation error."""
        self.errors.append(ValidationError(field_name, code, message, Severity.ERROR))
        self.is_valid = False

    def add_warning(self, field_name: str, code: str, message: str) -> None:
        """Add a validation warning."""
        self.warnings.append(ValidationError(field_name, code, message, Severity.WARNING))

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "lastValidated": self.last_validated.isoformat(),
        }


class UDMValidator:
    """Validates transformed records against the UDM structural subset."""

    PATTERNS = {
        "reference": re.compile(r"^[A-Z][A-Za-z]+/[A-Za-z0-9\-\.]{1,64}$"),
        "date": re.compile(r"^\d{4}(-\d{2}(-\d{2})?)?$"),
        "datetime": re.compile(
            r"^\d{4}(-\d{2}(-\d{2}(T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:\d{2})?)?)?)?$"
        ),
    }

    def __init__(self, schema: UDMSchema | None = None) -> None:
        """Initialize validator.

        Args:
            schema: UDM shape; the bundled udm.yaml when omitted.
        """
        self.schema = schema or SchemaLoader().load_udm_schema()

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        """Validate a transformed record.

        Args:
            data: UDM ``data`` payload.

        Returns:
            ValidationResult with errors and warnings.
        """
        result = ValidationResult()

        for schema_field in self.schema.required_fields:
            if data.get(schema_field.name) is None:
                result.add_error(
                    schema_field.name,
                    SCHEMA_VALIDATION_ERROR,
                    f"Required field '{schema_field.name}' is missing",
                )

        resource_type = data.get("resourceType")
        if resource_type is not None:
            if not isinstance(resource_type, str):
                result.add_error("resourceType", SCHEMA_VALIDATION_ERROR, "Expected string")
            elif resource_type not in self.schema.resource_types:
                result.add_error(
                    "resourceType", INVALID_RESOURCE_TYPE, "Unsupported resource type"
                )

        for schema_field in self.schema.fields:
            if schema_field.name == "resourceType":
                continue
            value = data.get(schema_field.name)
            if value is not None:
                self._validate_type(value, schema_field.type, schema_field.name, result)

        return result

    def _validate_type(
        self, value: Any, expected_type: str, field_name: str, result: ValidationResult
    ) -> None:
        type_lower = expected_type.lower()

        if type_lower.startswith("array<"):
            if not isinstance(value, list):
                result.add_error(field_name, SCHEMA_VALIDATION_ERROR, "Expected array")
                return
            item_type = expected_type[len("array<") : -1]
            if item_type.lower() == "identifier" and not value:
                result.add_warning(field_name, MISSING_IDENTIFIER, "No identifiers present")
            for i, item in enumerate(value):
                self._validate_type(item, item_type, f"{field_name}.{i}", result)
            return

        if type_lower in ("code", "string"):
            if not isinstance(value, str):
                result.add_error(field_name, SCHEMA_VALIDATION_ERROR, "Expected string")

        elif type_lower == "identifier":
            if not isinstance(value, dict):
                result.add_error(field_name, SCHEMA_VALIDATION_ERROR, "Expected object")
                return
            for key in ("system", "value"):
                if not isinstance(value.get(key), str):
                    result.add_error(
                        f"{field_name}.{key}", SCHEMA_VALIDATION_ERROR, "Expected string"
                    )

        elif type_lower == "codeableconcept":
            self._validate_codeable_concept(value, field_name, result)

        elif type_lower == "reference":
            if not isinstance(value, dict):
                result.add_error(field_name, SCHEMA_VALIDATION_ERROR, "Expected object")
                return
            reference = value.get("reference")
            if reference is not None and not (
                isinstance(reference, str) and self.PATTERNS["reference"].match(reference)
            ):
                result.add_error(
                    f"{field_name}.reference",
                    INVALID_REFERENCE,
                    "Reference must have the form Type/id",
                )

        elif type_lower == "date":
            if isinstance(value, date):
                return
            if not (isinstance(value, str) and self.PATTERNS["date"].match(value)):
                result.add_error(field_name, INVALID_FORMAT, "Invalid date format")

        elif type_lower == "datetime":
            if isinstance(value, datetime | date):
                return
            if not (isinstance(value, str) and self.PATTERNS["datetime"].match(value)):
                result.add_error(field_name, INVALID_FORMAT, "Invalid date-time format")

    def _validate_codeable_concept(
        self, value: Any, field_name: str, result: ValidationResult
    ) -> None:
        if not isinstance(value, dict):
            result.add_error(field_name, SCHEMA_VALIDATION_ERROR, "Expected object")
            return

        codings = value.get("coding")
        if codings is None:
            return
        if not isinstance(codings, list):
            result.add_error(f"{field_name}.coding", SCHEMA_VALIDATION_ERROR, "Expected array")
            return

        for i, coding in enumerate(codings):
            path = f"{field_name}.coding.{i}"
            if not isinstance(coding, dict):
                result.add_error(path, SCHEMA_VALIDATION_ERROR, "Expected object")
                continue
            for key in ("system", "code"):
                if not isinstance(coding.get(key), str):
                    result.add_error(f"{path}.{key}", SCHEMA_VALIDATION_ERROR, "Expected string")
            if not coding.get("display"):
                result.add_warning(f"{path}.display", MISSING_DISPLAY, "Coding has no display")
