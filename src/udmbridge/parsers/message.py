"""Parsed HL7 v2.x message structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from udmbridge.core.types import DEFAULT_HL7_VERSION, EMRSystem, Encoding, MessageType
from udmbridge.parsers.fields import (
    DEFAULT_ENCODING_CHARACTERS,
    EncodingCharacters,
    ParsedField,
    parse_field,
)


@dataclass(frozen=True)
class ParsedSegment:
    """One segment line (e.g., MSH, PID, OBX).

    ``fields`` holds the raw field text without the leading segment id. For
    MSH the first entry is MSH-2 (the encoding characters), since MSH-1 is
    the field separator itself.
    """

    type: str
    id: str
    fields: tuple[str, ...]
    encoding: Encoding = Encoding.UNICODE
    separators: EncodingCharacters = field(default=DEFAULT_ENCODING_CHARACTERS, repr=False)

    def get_field(self, index: int) -> str:
        """Get raw field by 1-based HL7 position (PID-3 is index 3)."""
        if self.type == "MSH":
            if index == 1:
                return self.separators.field_separator
            position = index - 2
        else:
            position = index - 1
        if 0 <= position < len(self.fields):
            return self.fields[position]
        return ""

    def parse_field(self, index: int) -> ParsedField:
        """Decompose the field at a 1-based HL7 position."""
        if self.type == "MSH" and index in (1, 2):
            # Delimiter fields are taken literally
            value = self.get_field(index)
            return ParsedField(
                raw=value, components=[value], subcomponents=[[value]], repetitions=[value]
            )
        return parse_field(self.get_field(index), self.separators)

    def get_component(self, field_index: int, component_index: int) -> str:
        """Get an unescaped component (both indices 1-based)."""
        return self.parse_field(field_index).get_component(component_index) or ""

    def get_value(self, field_path: str) -> str | None:
        """Get value by field path (e.g., 'PID-3.1', '3.1' or '3.1.2')."""
        path = field_path
        if "-" in path:
            path = path.split("-", 1)[1]

        parts = path.split(".")
        field_index = int(parts[0])

        if len(parts) == 1:
            return self.get_field(field_index) or None

        parsed = self.parse_field(field_index)
        component_index = int(parts[1])
        if len(parts) >= 3:
            return parsed.get_subcomponent(component_index, int(parts[2]))
        return parsed.get_component(component_index)

    def to_hl7(self) -> str:
        """Serialize back to a pipe-delimited segment line."""
        return self.separators.field_separator.join((self.type, *self.fields))

    def to_dict(self) -> dict[str, Any]:
        """JSON projection used when grouping segments by type."""
        return {"fields": list(self.fields), "encoding": self.encoding.value}


@dataclass(frozen=True)
class HL7Header:
    """Routing metadata taken from MSH."""

    sending_application: str
    sending_facility: str
    receiving_application: str
    receiving_facility: str
    message_time: datetime | None
    security: str
    message_type: MessageType
    processing_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sendingApplication": self.sending_application,
            "sendingFacility": self.sending_facility,
            "receivingApplication": self.receiving_application,
            "receivingFacility": self.receiving_facility,
            "messageTime": self.message_time.isoformat() if self.message_time else None,
            "security": self.security,
            "messageType": self.message_type.value,
            "processingId": self.processing_id,
        }


@dataclass(frozen=True)
class HL7Message:
    """A complete parsed HL7 v2.x message. Segment 0 is always MSH."""

    message_type: MessageType
    message_control_id: str
    version: str
    header: HL7Header
    segments: tuple[ParsedSegment, ...]
    emr_system: EMRSystem
    patient_id: str
    message_type_code: str = ""
    trigger_event: str = ""
    encoding_characters: EncodingCharacters = field(
        default=DEFAULT_ENCODING_CHARACTERS, repr=False
    )

    @property
    def msh(self) -> ParsedSegment:
        return self.segments[0]

    def get_segment(self, segment_id: str, index: int = 0) -> ParsedSegment | None:
        """Get segment by ID (e.g., 'PID'). Index for repeating segments."""
        matches = self.get_all_segments(segment_id)
        if index < len(matches):
            return matches[index]
        return None

    def get_all_segments(self, segment_id: str) -> list[ParsedSegment]:
        """Get all segments with given ID, in message order."""
        return [s for s in self.segments if s.type == segment_id]

    def to_dict(self) -> dict[str, Any]:
        """JSON projection with same-typed segments grouped under one key."""
        grouped: dict[str, list[dict[str, Any]]] = {}
        for segment in self.segments:
            grouped.setdefault(segment.type, []).append(segment.to_dict())

        return {
            "messageType": self.message_type.value,
            "messageControlId": self.message_control_id,
            "version": self.version or DEFAULT_HL7_VERSION,
            "emrSystem": self.emr_system.value,
            "patientId": self.patient_id,
            "header": self.header.to_dict(),
            "segments": grouped,
        }


def serialize_message(message: HL7Message, segment_separator: str = "\r") -> str:
    """Rebuild pipe-delimited text from a parsed message."""
    return segment_separator.join(segment.to_hl7() for segment in message.segments)
