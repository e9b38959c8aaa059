"""Tests for the UDM schema and vendor rule loader."""

import tempfile
from pathlib import Path

import pytest

from udmbridge.core.exceptions import ConfigurationError
from udmbridge.core.types import EMRSystem
from udmbridge.schemas import SchemaLoader


class TestBundledSchemas:
    """Tests against the YAML data shipped with the package."""

    @pytest.fixture
    def loader(self) -> SchemaLoader:
        return SchemaLoader()

    def test_load_udm_schema(self, loader: SchemaLoader) -> None:
        """Test the UDM shape lists its required fields."""
        schema = loader.load_udm_schema()

        assert schema.version == "1.0"
        assert [f.name for f in schema.required_fields] == ["resourceType", "identifier", "status"]
        assert "MessageHeader" in schema.resource_types
        field = schema.get_field("effectiveDateTime")
        assert field is not None
        assert field.type == "dateTime"
        assert schema.get_field("nope") is None

    def test_schema_is_cached(self, loader: SchemaLoader) -> None:
        assert loader.load_udm_schema() is loader.load_udm_schema()
        first = loader.load_vendor_rules(EMRSystem.EPIC)
        loader.clear_cache()
        assert loader.load_vendor_rules(EMRSystem.EPIC) is not first

    def test_list_vendors(self, loader: SchemaLoader) -> None:
        assert loader.list_vendors() == ["CERNER", "EPIC", "GENERIC_FHIR"]

    def test_epic_rules(self, loader: SchemaLoader) -> None:
        rules = loader.load_vendor_rules("epic")

        assert rules.system is EMRSystem.EPIC
        assert rules.status_map["Ordered"] == "requested"
        assert rules.gender_map["1"] == "male"
        assert rules.gender_map["M"] == "male"

    def test_cerner_rules(self, loader: SchemaLoader) -> None:
        rules = loader.load_vendor_rules(EMRSystem.CERNER)

        assert rules.gender_map["362"] == "male"
        assert rules.status_map["in-progress"] == "in-progress"
        assert rules.system_aliases["https://fhir.cerner.com/codeSet/72"] == "http://loinc.org"

    def test_common_rules_merged(self, loader: SchemaLoader) -> None:
        """Test shared aliases and displays reach every vendor."""
        for system in EMRSystem:
            rules = loader.load_vendor_rules(system)
            assert rules.system_aliases["urn:oid:2.16.840.1.113883.6.1"] == "http://loinc.org"
            assert rules.display_for("http://loinc.org", "8480-6") == "Systolic blood pressure"

    def test_display_for_unknown(self, loader: SchemaLoader) -> None:
        rules = loader.load_vendor_rules(EMRSystem.GENERIC_FHIR)
        assert rules.display_for("http://loinc.org", "0000-0") is None
        assert rules.display_for(None, "8480-6") is None
        assert rules.display_for("http://example.org", "x") is None

    def test_tables_read_only(self, loader: SchemaLoader) -> None:
        rules = loader.load_vendor_rules(EMRSystem.EPIC)
        with pytest.raises(TypeError):
            rules.status_map["New"] = "draft"  # type: ignore[index]


class TestCustomSchemaDir:
    """Tests for loading from a caller-supplied directory."""

    def test_vendor_without_common(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            vendor_dir = Path(tmpdir) / "vendors"
            vendor_dir.mkdir()
            (vendor_dir / "epic.yaml").write_text("""
system: EPIC
description: Test rules
status_map:
  Ordered: requested
gender_map:
  m: male
""")

            rules = SchemaLoader(tmpdir).load_vendor_rules(EMRSystem.EPIC)

            assert rules.description == "Test rules"
            assert rules.status_map == {"Ordered": "requested"}
            assert rules.gender_map == {"M": "male"}
            assert dict(rules.code_displays) == {}

    def test_missing_vendor_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FileNotFoundError):
                SchemaLoader(tmpdir).load_vendor_rules(EMRSystem.CERNER)

    def test_mismatched_system(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            vendor_dir = Path(tmpdir) / "vendors"
            vendor_dir.mkdir()
            (vendor_dir / "cerner.yaml").write_text("system: EPIC\n")

            with pytest.raises(ConfigurationError, match="declares system"):
                SchemaLoader(tmpdir).load_vendor_rules(EMRSystem.CERNER)

    def test_bad_table(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            vendor_dir = Path(tmpdir) / "vendors"
            vendor_dir.mkdir()
            (vendor_dir / "epic.yaml").write_text("status_map: [a, b]\n")

            with pytest.raises(ConfigurationError, match="status_map"):
                SchemaLoader(tmpdir).load_vendor_rules(EMRSystem.EPIC)

    def test_udm_field_without_type(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "udm.yaml").write_text("fields:\n  - name: status\n")
            with pytest.raises(ConfigurationError):
                SchemaLoader(tmpdir).load_udm_schema()

    def test_list_vendors_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            assert SchemaLoader(tmpdir).list_vendors() == []
