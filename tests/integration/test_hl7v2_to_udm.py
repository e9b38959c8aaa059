"""Integration tests for HL7 v2.x parsing through to UDM records."""

from pathlib import Path

import pytest

from udmbridge.conversion.transformer import transform_hl7_to_udm
from udmbridge.core.exceptions import MessageEmptyError, MissingRequiredSegmentError
from udmbridge.core.types import EMRSystem, MessageType
from udmbridge.parsers.config import HL7ParserConfig
from udmbridge.parsers.fields import DEFAULT_ENCODING_CHARACTERS, unescape
from udmbridge.parsers.hl7v2 import HL7v2Parser

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures" / "hl7v2"

ADT_LINES = [
    "MSH|^~\\&|SND|SNDFAC|RCV|RCVFAC|20230801120000||ADT^A01|MSG001|P|2.5",
    "EVN|A01|20230801120000",
    "PID|1||12345^^^MRN||Doe^John",
]


class TestEndToEndScenarios:
    """Reference scenarios for the parser and transformer."""

    @pytest.fixture
    def strict_parser(self) -> HL7v2Parser:
        return HL7v2Parser(HL7ParserConfig(strict_mode=True))

    def test_adt_strict(self, strict_parser: HL7v2Parser) -> None:
        """ADT^A01 with MSH, EVN and PID parses in strict mode."""
        message = strict_parser.parse("\r".join(ADT_LINES))

        assert message.message_type is MessageType.ADT
        assert message.patient_id == "12345"
        assert message.message_control_id == "MSG001"

    def test_adt_without_pid(self, strict_parser: HL7v2Parser) -> None:
        """The same message without PID fails the required-segment check."""
        with pytest.raises(MissingRequiredSegmentError) as exc_info:
            strict_parser.parse("\r".join(ADT_LINES[:2]))
        assert exc_info.value.segment == "PID"

    def test_unescape_field_separator(self) -> None:
        assert DEFAULT_ENCODING_CHARACTERS.field_separator == "|"
        assert unescape("Diagnosis\\F\\Code") == "Diagnosis|Code"

    def test_custom_type_is_ack(self, strict_parser: HL7v2Parser) -> None:
        """An unrecognized type code classifies as ACK rather than failing."""
        raw = "MSH|^~\\&|SND|SNDFAC|RCV|RCVFAC|20230801120000||ZZZ^CUSTOM|MSG002|P|2.5"
        message = strict_parser.parse(raw)

        assert message.message_type is MessageType.ACK
        assert message.message_type_code == "ZZZ"

    def test_oru_observation(self, strict_parser: HL7v2Parser) -> None:
        """OBX code, value and unit are carried over raw."""
        raw = "\r".join(
            [
                "MSH|^~\\&|LAB|HOSP|EHR|HOSP|20230802083000||ORU^R01|LAB1|P|2.5.1",
                "PID|1||P1^^^MRN",
                "OBR|1|ORD1",
                "OBX|1|NM|8480-6^Systolic^LN||120|mmHg",
            ]
        )
        record = transform_hl7_to_udm(strict_parser.parse(raw), EMRSystem.GENERIC_FHIR)

        assert record.data["observation"] == [
            {"code": "8480-6^Systolic^LN", "value": "120", "unit": "mmHg"}
        ]

    def test_empty_input(self, strict_parser: HL7v2Parser) -> None:
        with pytest.raises(MessageEmptyError):
            strict_parser.parse("")


class TestFixtureMessages:
    """Fixture files through parse and transform."""

    @pytest.mark.parametrize(
        ("filename", "system", "resource_type", "patient_id"),
        [
            ("adt_a01.hl7", EMRSystem.EPIC, "Patient", "12345678"),
            ("oru_r01.hl7", EMRSystem.GENERIC_FHIR, "Observation", "87654321"),
            ("orm_o01.hl7", EMRSystem.CERNER, "Task", "55500011"),
        ],
    )
    def test_transform_fixture(
        self,
        parser: HL7v2Parser,
        filename: str,
        system: EMRSystem,
        resource_type: str,
        patient_id: str,
    ) -> None:
        message = parser.parse((FIXTURES_DIR / filename).read_text(), system)
        record = transform_hl7_to_udm(message, system)

        assert record.system is system
        assert record.resource_type == resource_type
        assert record.patient_id == patient_id
        assert record.data["identifier"] == [{"system": "HL7", "value": patient_id}]
        assert record.validation.is_valid

    def test_oru_fixture_observations(self, parser: HL7v2Parser, oru_message: str) -> None:
        record = transform_hl7_to_udm(parser.parse(oru_message), EMRSystem.EPIC)

        codes = [item["code"] for item in record.data["observation"]]
        assert codes == ["8480-6^Systolic^LN", "8462-4^Diastolic^LN", "8867-4^Heart rate^LN"]
        assert record.data["observation"][2]["unit"] == "/min"

    def test_batch_to_records(self, parser: HL7v2Parser) -> None:
        batch = parser.parse_file(FIXTURES_DIR / "batch.hl7", EMRSystem.EPIC)
        records = [transform_hl7_to_udm(m, m.emr_system) for m in batch.messages]

        assert [r.patient_id for r in records] == ["10000001", "10000003"]
        assert all(r.system is EMRSystem.EPIC for r in records)
