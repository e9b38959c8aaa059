"""HL7 v2.x message parser."""

from __future__ import annotations

import re
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Final

import structlog

from udmbridge.core.exceptions import (
    HL7ParseError,
    InvalidSegmentError,
    MalformedHeaderError,
    MessageEmptyError,
    MissingRequiredSegmentError,
    UnsupportedVersionError,
)
from udmbridge.core.types import (
    DEFAULT_HL7_VERSION,
    REQUIRED_SEGMENTS,
    SEGMENT_ID_PATTERN,
    SEGMENT_REGISTRY,
    EMRSystem,
    Encoding,
    MessageType,
)
from udmbridge.parsers.config import HL7ParserConfig
from udmbridge.parsers.fields import DEFAULT_ENCODING_CHARACTERS, EncodingCharacters
from udmbridge.parsers.message import HL7Header, HL7Message, ParsedSegment

logger = structlog.get_logger(__name__)

# "MSH" plus MSH-2 through MSH-9 (message type)
MSH_MIN_TOKENS: Final[int] = 9

MLLP_START_BLOCK: Final[str] = "\x0b"
MLLP_END_BLOCK: Final[str] = "\x1c"
BYTE_ORDER_MARK: Final[str] = "\ufeff"

# File and batch envelope segments, skipped when splitting a batch
BATCH_ENVELOPE_SEGMENTS: Final[frozenset[str]] = frozenset({"FHS", "BHS", "BTS", "FTS"})

_LINE_ENDINGS = re.compile(r"\r\n|\n\r|\n")

_HL7_DATETIME = re.compile(
    r"^(?P<year>\d{4})(?P<month>\d{2})?(?P<day>\d{2})?(?P<hour>\d{2})?(?P<minute>\d{2})?"
    r"(?P<second>\d{2})?(?:\.(?P<fraction>\d{1,6}))?(?P<tz>[+-]\d{4})?$"
)


def normalize_line_endings(raw: str) -> str:
    """Convert \\r\\n, \\n\\r and \\n to the HL7 segment terminator \\r.

    MLLP framing characters and byte order marks at the start of a segment
    are removed.
    """
    text = raw.replace(MLLP_START_BLOCK, "").replace(MLLP_END_BLOCK, "")
    text = _LINE_ENDINGS.sub("\r", text).removeprefix(BYTE_ORDER_MARK)
    return text.replace("\r" + BYTE_ORDER_MARK, "\r")


def split_segments(raw: str) -> list[str]:
    """Split a raw message into trimmed, non-empty segment lines.

    Raises:
        MessageEmptyError: If no non-empty segment remains.
    """
    if not raw:
        raise MessageEmptyError()

    lines = [line.strip() for line in normalize_line_endings(raw).split("\r")]
    lines = [line for line in lines if line]
    if not lines:
        raise MessageEmptyError("No segments found in HL7 message")
    return lines


def parse_hl7_datetime(value: str) -> datetime | None:
    """Parse HL7 DTM (YYYY[MM[DD[HH[MM[SS[.S]]]]]][+/-ZZZZ]).

    Returns None for empty or unparseable values.
    """
    match = _HL7_DATETIME.match(value.strip()) if value else None
    if match is None:
        return None

    parts = match.groupdict()
    tzinfo = None
    if parts["tz"]:
        tz = parts["tz"]
        offset = timedelta(hours=int(tz[1:3]), minutes=int(tz[3:5]))
        tzinfo = timezone(offset if tz[0] == "+" else -offset)

    try:
        return datetime(
            int(parts["year"]),
            int(parts["month"] or 1),
            int(parts["day"] or 1),
            int(parts["hour"] or 0),
            int(parts["minute"] or 0),
            int(parts["second"] or 0),
            int((parts["fraction"] or "0").ljust(6, "0")),
            tzinfo=tzinfo,
        )
    except ValueError:
        return None


def encoding_from_charset(charset: str) -> Encoding:
    """Map an MSH-18 character set to an Encoding (UNICODE by default)."""
    key = re.sub(r"[\s_]", "", charset.upper())
    if key.startswith("ASCII"):
        return Encoding.ASCII
    if key == "ISOIR87":
        return Encoding.ISO_IR87
    if key == "ISOIR159":
        return Encoding.ISO_IR159
    return Encoding.UNICODE


def classify_message_type(code: str) -> MessageType:
    """Match a message type code case-insensitively.

    Codes outside the supported set are classified as ACK rather than
    rejected; the original code stays available on
    ``HL7Message.message_type_code``.
    """
    try:
        return MessageType(code.strip().upper())
    except ValueError:
        return MessageType.ACK


def missing_required_segments(
    message_type: MessageType, segment_types: Iterable[str]
) -> list[str]:
    """List required segments absent from a message, in table order."""
    present = set(segment_types)
    return [s for s in REQUIRED_SEGMENTS[message_type] if s not in present]


def validate_structure(message_type: MessageType, segments: Iterable[ParsedSegment]) -> None:
    """Enforce the required-segment table.

    Raises:
        MissingRequiredSegmentError: Naming the first missing segment.
    """
    missing = missing_required_segments(message_type, (s.type for s in segments))
    if missing:
        raise MissingRequiredSegmentError(missing[0], message_type.value)


def extract_patient_id(segments: Iterable[ParsedSegment]) -> str:
    """First component of PID-3 from the first PID segment, or ''."""
    for segment in segments:
        if segment.type == "PID":
            return segment.get_component(3, 1)
    return ""


def _generate_control_id() -> str:
    return f"MSG_{time.time_ns() // 1_000_000}"


@dataclass
class BatchParseResult:
    """Messages parsed from a multi-message payload."""

    messages: list[HL7Message] = field(default_factory=list)
    errors: list[tuple[int, HL7ParseError]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.messages)


class HL7v2Parser:
    """Parses HL7 v2.x messages into HL7Message objects.

    Instances hold only frozen configuration and may be shared between
    threads.
    """

    def __init__(self, config: HL7ParserConfig | None = None) -> None:
        """Initialize parser.

        Args:
            config: Parser options; strict defaults when omitted.
        """
        self.config = config or HL7ParserConfig()

    def parse(self, raw: str, emr_system: EMRSystem | str = EMRSystem.GENERIC_FHIR) -> HL7Message:
        """Parse raw HL7 v2.x message text.

        Args:
            raw: Raw message (segments separated by \\r, \\n or \\r\\n).
            emr_system: EMR system the message came from.

        Returns:
            Parsed HL7Message.

        Raises:
            MessageEmptyError: If the message has no segments.
            InvalidSegmentError: If the first segment is not MSH, or (strict
                mode) a segment id is invalid.
            MalformedHeaderError: If MSH lacks required fields.
            MissingRequiredSegmentError: Strict mode only.
        """
        system = EMRSystem.coerce(emr_system)
        lines = split_segments(raw)

        if self.config.validate_checksum:
            self._verify_checksum(lines)

        msh = self.parse_msh(lines[0])
        header = self.extract_header(msh)
        version = self._check_version(msh)

        segments: list[ParsedSegment] = [msh]
        for position, line in enumerate(lines[1:], start=1):
            segment = self.parse_segment(line, msh.separators, position, msh.encoding)
            if segment is not None:
                segments.append(segment)

        message_type_code = msh.get_component(9, 1).strip().upper()
        message_type = header.message_type
        if message_type.value != message_type_code:
            logger.warning(
                "unrecognized_message_type",
                message_type_code=message_type_code,
                classified_as=message_type.value,
            )

        if self.config.strict_mode:
            validate_structure(message_type, segments)

        message_control_id = msh.get_field(10).strip() or _generate_control_id()

        logger.debug(
            "hl7_message_parsed",
            message_type=message_type.value,
            segment_count=len(segments),
            dropped_segments=len(lines) - len(segments),
        )

        return HL7Message(
            message_type=message_type,
            message_control_id=message_control_id,
            version=version,
            header=header,
            segments=tuple(segments),
            emr_system=system,
            patient_id=extract_patient_id(segments),
            message_type_code=message_type_code,
            trigger_event=msh.get_component(9, 2),
            encoding_characters=msh.separators,
        )

    def parse_msh(self, line: str) -> ParsedSegment:
        """Parse the MSH segment, reading delimiters from MSH-1 and MSH-2.

        Raises:
            InvalidSegmentError: If the line does not begin with MSH.
            MalformedHeaderError: If MSH is too short or MSH-9 is empty.
        """
        if not line.startswith("MSH"):
            segment_id = line[:3]
            raise InvalidSegmentError(
                "First segment must be MSH",
                segment_id=segment_id if SEGMENT_ID_PATTERN.match(segment_id) else None,
            )
        if len(line) < 4:
            raise MalformedHeaderError("MSH segment is missing its field separator")

        field_separator = line[3]
        tokens = line.split(field_separator)
        if len(tokens) < MSH_MIN_TOKENS:
            raise MalformedHeaderError(
                f"MSH segment has {len(tokens) - 1} fields, expected at least {MSH_MIN_TOKENS - 1}"
            )
        if not tokens[1]:
            raise MalformedHeaderError("MSH-2 encoding characters are missing")
        if not tokens[8]:
            raise MalformedHeaderError("MSH-9 message type is missing")

        separators = EncodingCharacters.from_msh(field_separator, tokens[1])
        charset = tokens[17] if len(tokens) > 17 else ""

        return ParsedSegment(
            type="MSH",
            id="MSH_0",
            fields=tuple(tokens[1:]),
            encoding=encoding_from_charset(charset),
            separators=separators,
        )

    def extract_header(self, msh: ParsedSegment) -> HL7Header:
        """Build the header from an MSH segment using canonical MSH numbering."""
        return HL7Header(
            sending_application=msh.get_field(3),
            sending_facility=msh.get_field(4),
            receiving_application=msh.get_field(5),
            receiving_facility=msh.get_field(6),
            message_time=parse_hl7_datetime(msh.get_component(7, 1)),
            security=msh.get_field(8),
            message_type=classify_message_type(msh.get_component(9, 1)),
            processing_id=msh.get_component(11, 1) or "P",
        )

    def parse_segment(
        self,
        line: str,
        separators: EncodingCharacters = DEFAULT_ENCODING_CHARACTERS,
        position: int = 0,
        encoding: Encoding = Encoding.UNICODE,
    ) -> ParsedSegment | None:
        """Parse a non-MSH segment line.

        Returns None when the segment is dropped (lenient mode).

        Raises:
            InvalidSegmentError: In strict mode, for a malformed id or an id
                outside the registry when custom segments are not allowed.
        """
        tokens = line.split(separators.field_separator)
        segment_id = tokens[0]

        if not SEGMENT_ID_PATTERN.match(segment_id):
            return self._reject_segment("Malformed segment id", None, position)
        if segment_id not in SEGMENT_REGISTRY and not self.config.allow_custom_segments:
            return self._reject_segment(f"Unknown segment {segment_id}", segment_id, position)

        return ParsedSegment(
            type=segment_id,
            id=f"{segment_id}_{position}",
            fields=tuple(tokens[1:]),
            encoding=encoding,
            separators=separators,
        )

    def _reject_segment(self, reason: str, segment_id: str | None, position: int) -> None:
        if self.config.strict_mode:
            raise InvalidSegmentError(f"{reason} at position {position}", segment_id=segment_id)
        logger.debug("segment_dropped", reason=reason, segment_id=segment_id, position=position)
        return None

    def _check_version(self, msh: ParsedSegment) -> str:
        version = msh.get_component(12, 1).strip()
        if not version:
            return DEFAULT_HL7_VERSION
        if version not in self.config.supported_versions:
            if self.config.strict_mode:
                raise UnsupportedVersionError(version, self.config.supported_versions)
            logger.warning("unsupported_hl7_version", version=version)
        return version

    def _verify_checksum(self, lines: list[str]) -> None:
        # HL7 v2 has no message checksum; the option is only recorded
        logger.debug("checksum_validation_skipped", segment_count=len(lines))

    def to_json(self, message: HL7Message) -> dict[str, Any]:
        """Convert a parsed message to its JSON projection."""
        return message.to_dict()

    def parse_batch(
        self, content: str, emr_system: EMRSystem | str = EMRSystem.GENERIC_FHIR
    ) -> BatchParseResult:
        """Parse a payload holding several messages.

        A new message starts at every MSH line; FHS/BHS/BTS/FTS envelope
        segments are ignored. Messages that fail to parse are reported in
        ``errors`` with their index instead of aborting the batch.
        """
        result = BatchParseResult()
        for index, chunk in enumerate(self._split_batch(content)):
            try:
                result.messages.append(self.parse(chunk, emr_system))
            except HL7ParseError as e:
                logger.warning("batch_message_rejected", index=index, error=type(e).__name__)
                result.errors.append((index, e))
        return result

    def parse_file(
        self, filepath: str | Path, emr_system: EMRSystem | str = EMRSystem.GENERIC_FHIR
    ) -> BatchParseResult:
        """Parse HL7 messages from a file."""
        return self.parse_batch(Path(filepath).read_text(encoding="utf-8-sig"), emr_system)

    @staticmethod
    def _split_batch(content: str) -> list[str]:
        chunks: list[list[str]] = []
        for line in normalize_line_endings(content).split("\r"):
            line = line.strip()
            if not line or line[:3] in BATCH_ENVELOPE_SEGMENTS:
                continue
            if line.startswith("MSH") or not chunks:
                chunks.append([])
            chunks[-1].append(line)
        return ["\r".join(chunk) for chunk in chunks]
