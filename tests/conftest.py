"""Pytest configuration and fixtures."""

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import structlog

from udmbridge.parsers.config import HL7ParserConfig
from udmbridge.parsers.hl7v2 import HL7v2Parser

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo any structlog configuration a test (or the CLI) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to test fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def parser() -> HL7v2Parser:
    """Strict parser with default configuration."""
    return HL7v2Parser()


@pytest.fixture
def lenient_parser() -> HL7v2Parser:
    """Parser with strict mode off."""
    return HL7v2Parser(HL7ParserConfig.lenient())


@pytest.fixture
def adt_message() -> str:
    return (FIXTURES_DIR / "hl7v2" / "adt_a01.hl7").read_text()


@pytest.fixture
def oru_message() -> str:
    return (FIXTURES_DIR / "hl7v2" / "oru_r01.hl7").read_text()


@pytest.fixture
def orm_message() -> str:
    return (FIXTURES_DIR / "hl7v2" / "orm_o01.hl7").read_text()


def load_fhir(name: str) -> dict[str, Any]:
    data: dict[str, Any] = json.loads((FIXTURES_DIR / "fhir" / name).read_text())
    return data


@pytest.fixture
def epic_patient() -> dict[str, Any]:
    """Epic FHIR Patient with an OID identifier system and a numeric sex code."""
    return load_fhir("patient_epic.json")


@pytest.fixture
def cerner_task() -> dict[str, Any]:
    """Cerner FHIR Task with a vendor status spelling."""
    return load_fhir("task_cerner.json")


@pytest.fixture
def observation() -> dict[str, Any]:
    """FHIR Observation whose codings lack display text."""
    return load_fhir("observation.json")
