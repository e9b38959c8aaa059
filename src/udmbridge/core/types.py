"""Core type definitions for udmbridge."""

from __future__ import annotations

import re
from enum import Enum
from types import MappingProxyType
from typing import Final

DEFAULT_HL7_VERSION: Final[str] = "2.5.1"
SUPPORTED_HL7_VERSIONS: Final[tuple[str, ...]] = ("2.3", "2.4", "2.5", "2.5.1")


class MessageType(Enum):
    """HL7 v2.x message types recognised by the parser."""

    ADT = "ADT"  # Admission, discharge, transfer
    ORM = "ORM"  # Order
    ORU = "ORU"  # Observation result
    SIU = "SIU"  # Scheduling information unsolicited
    MDM = "MDM"  # Medical document management
    DFT = "DFT"  # Detailed financial transaction
    BAR = "BAR"  # Add/change billing account
    ACK = "ACK"  # General acknowledgment


class Encoding(Enum):
    """Character encodings a segment may be declared in (MSH-18)."""

    UNICODE = "UNICODE"
    ASCII = "ASCII"
    ISO_IR87 = "ISO_IR87"  # Japanese Kanji
    ISO_IR159 = "ISO_IR159"  # Japanese supplementary Kanji


class EMRSystem(Enum):
    """EMR vendors a record can originate from."""

    EPIC = "EPIC"
    CERNER = "CERNER"
    GENERIC_FHIR = "GENERIC_FHIR"

    @classmethod
    def coerce(cls, value: EMRSystem | str) -> EMRSystem:
        """Accept an enum member or a loosely spelled name ('Epic', 'GenericFHIR')."""
        if isinstance(value, EMRSystem):
            return value
        key = re.sub(r"[\s_\-]", "", str(value)).upper()
        for member in cls:
            if member.value.replace("_", "") == key:
                return member
        raise ValueError(f"Unsupported EMR system: {value!r}")


class ResourceKind(Enum):
    """Resource shapes the UDM transformer knows how to build."""

    PATIENT = "Patient"
    TASK = "Task"
    OBSERVATION = "Observation"


class Severity(Enum):
    """Severity of a validation finding."""

    ERROR = "ERROR"
    WARNING = "WARNING"


# Segment ids are an uppercase letter followed by two uppercase letters or digits (PID, PV1, NK1)
SEGMENT_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Z][A-Z0-9]{2}$")

SEGMENT_REGISTRY: Final[frozenset[str]] = frozenset(
    {
        "MSH",  # Message header
        "EVN",  # Event type
        "PID",  # Patient identification
        "PD1",  # Patient additional demographic
        "NK1",  # Next of kin
        "PV1",  # Patient visit
        "PV2",  # Patient visit, additional information
        "ORC",  # Common order
        "OBR",  # Observation request
        "OBX",  # Observation/result
        "NTE",  # Notes and comments
        "AL1",  # Allergy
        "DG1",  # Diagnosis
        "PR1",  # Procedures
        "GT1",  # Guarantor
        "IN1",  # Insurance
        "IN2",  # Insurance, additional information
        "MRG",  # Merge patient information
        "SCH",  # Scheduling activity
        "AIS",  # Appointment information, service
        "AIG",  # Appointment information, general resource
        "AIL",  # Appointment information, location
        "AIP",  # Appointment information, personnel
        "RGS",  # Resource group
        "TXA",  # Transcription document header
        "FT1",  # Financial transaction
        "MSA",  # Message acknowledgment
        "ERR",  # Error
        "RXO",  # Pharmacy order
        "RXE",  # Pharmacy encoded order
        "RXR",  # Pharmacy route
        "SPM",  # Specimen
        "TQ1",  # Timing/quantity
    }
)

# Checked in order; the first absent segment is the one reported
REQUIRED_SEGMENTS: Final[MappingProxyType[MessageType, tuple[str, ...]]] = MappingProxyType(
    {
        MessageType.ADT: ("MSH", "EVN", "PID"),
        MessageType.ORM: ("MSH", "PID", "OBR"),
        MessageType.ORU: ("MSH", "PID", "OBR"),
        MessageType.SIU: ("MSH",),
        MessageType.MDM: ("MSH", "PID"),
        MessageType.DFT: ("MSH", "PID"),
        MessageType.BAR: ("MSH", "PID"),
        MessageType.ACK: ("MSH",),
    }
)

# UDM resourceType produced for each HL7 message type
HL7_RESOURCE_TYPES: Final[MappingProxyType[MessageType, str]] = MappingProxyType(
    {
        MessageType.ADT: "Patient",
        MessageType.ORU: "Observation",
        MessageType.ORM: "Task",
        MessageType.SIU: "Appointment",
        MessageType.MDM: "DocumentReference",
        MessageType.DFT: "Claim",
        MessageType.BAR: "Account",
        MessageType.ACK: "MessageHeader",
    }
)

# Message types whose payload has a dedicated UDM shape
HL7_RESOURCE_KINDS: Final[MappingProxyType[MessageType, ResourceKind]] = MappingProxyType(
    {
        MessageType.ADT: ResourceKind.PATIENT,
        MessageType.ORM: ResourceKind.TASK,
        MessageType.ORU: ResourceKind.OBSERVATION,
    }
)
