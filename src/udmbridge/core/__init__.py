"""Core module for udmbridge."""

from udmbridge.core.exceptions import (
    ConfigurationError,
    HL7ParseError,
    InvalidSegmentError,
    MalformedHeaderError,
    MessageEmptyError,
    MissingRequiredSegmentError,
    SchemaValidationError,
    StrictValidationError,
    TransformError,
    UDMBridgeError,
    UnsupportedVersionError,
)
from udmbridge.core.types import (
    REQUIRED_SEGMENTS,
    SEGMENT_REGISTRY,
    EMRSystem,
    Encoding,
    MessageType,
    ResourceKind,
    Severity,
)

__all__ = [
    "REQUIRED_SEGMENTS",
    "SEGMENT_REGISTRY",
    "ConfigurationError",
    "EMRSystem",
    "Encoding",
    "HL7ParseError",
    "InvalidSegmentError",
    "MalformedHeaderError",
    "MessageEmptyError",
    "MessageType",
    "MissingRequiredSegmentError",
    "ResourceKind",
    "SchemaValidationError",
    "Severity",
    "StrictValidationError",
    "TransformError",
    "UDMBridgeError",
    "UnsupportedVersionError",
]
