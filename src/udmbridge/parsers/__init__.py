"""HL7 v2.x parsing for udmbridge."""

from udmbridge.parsers.config import HL7ParserConfig, load_parser_config
from udmbridge.parsers.fields import (
    DEFAULT_ENCODING_CHARACTERS,
    EncodingCharacters,
    ParsedField,
    escape,
    parse_field,
    unescape,
)
from udmbridge.parsers.hl7v2 import (
    BatchParseResult,
    HL7v2Parser,
    classify_message_type,
    extract_patient_id,
    split_segments,
    validate_structure,
)
from udmbridge.parsers.message import HL7Header, HL7Message, ParsedSegment, serialize_message

__all__ = [
    "DEFAULT_ENCODING_CHARACTERS",
    "BatchParseResult",
    "EncodingCharacters",
    "HL7Header",
    "HL7Message",
    "HL7ParserConfig",
    "HL7v2Parser",
    "ParsedField",
    "ParsedSegment",
    "classify_message_type",
    "escape",
    "extract_patient_id",
    "load_parser_config",
    "parse_field",
    "serialize_message",
    "split_segments",
    "unescape",
    "validate_structure",
]
