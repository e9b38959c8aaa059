"""Error taxonomy for HL7 parsing and UDM transformation.

Messages carry segment ids, field paths and codes only; raw field values
never appear in an error.
"""

from __future__ import annotations


class UDMBridgeError(Exception):
    """Base class for all udmbridge errors."""


class ConfigurationError(UDMBridgeError):
    """Raised when a configuration file cannot be used."""


class HL7ParseError(UDMBridgeError):
    """Base class for HL7 v2.x parsing failures."""


class MessageEmptyError(HL7ParseError):
    """Raised when a message contains no non-empty segment."""

    def __init__(self, message: str = "HL7 message cannot be empty") -> None:
        super().__init__(message)


class InvalidSegmentError(HL7ParseError):
    """Raised for a missing leading MSH or an invalid segment id."""

    def __init__(self, message: str, segment_id: str | None = None) -> None:
        super().__init__(message)
        self.segment_id = segment_id


class MalformedHeaderError(HL7ParseError):
    """Raised when the MSH segment lacks required fields."""


class UnsupportedVersionError(MalformedHeaderError):
    """Raised in strict mode when MSH-12 names an unsupported version."""

    def __init__(self, version: str, supported: tuple[str, ...]) -> None:
        super().__init__(
            f"Unsupported HL7 version {version} (supported: {', '.join(supported)})"
        )
        self.version = version
        self.supported = supported


class MissingRequiredSegmentError(HL7ParseError):
    """Raised in strict mode when a required segment is absent."""

    def __init__(self, segment: str, message_type: str) -> None:
        super().__init__(f"Missing required segment {segment} for {message_type} message")
        self.segment = segment
        self.message_type = message_type


class TransformError(UDMBridgeError):
    """Base class for UDM transformation failures."""


class SchemaValidationError(TransformError):
    """One UDM shape violation.

    These are collected rather than raised one by one; they only surface
    inside a StrictValidationError.
    """

    def __init__(self, field: str, code: str, message: str) -> None:
        super().__init__(f"{field}: {message} [{code}]")
        self.field = field
        self.code = code
        self.message = message


class StrictValidationError(TransformError):
    """Raised when strict validation is requested and violations exist."""

    def __init__(self, errors: list[SchemaValidationError]) -> None:
        fields = ", ".join(error.field for error in errors)
        super().__init__(f"Validation failed in strict mode ({len(errors)} errors: {fields})")
        self.errors = errors
