"""YAML loader for the UDM shape and vendor normalization rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from udmbridge.core.exceptions import ConfigurationError
from udmbridge.core.types import EMRSystem

DEFAULT_SCHEMA_DIR = Path(__file__).parent / "data"


@dataclass(frozen=True)
class SchemaField:
    """A top-level field of the UDM record."""

    name: str
    type: str
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class UDMSchema:
    """Structural subset of the Universal Data Model."""

    version: str
    resource_types: frozenset[str]
    fields: tuple[SchemaField, ...]
    description: str = ""

    @property
    def required_fields(self) -> tuple[SchemaField, ...]:
        return tuple(f for f in self.fields if f.required)

    def get_field(self, name: str) -> SchemaField | None:
        for schema_field in self.fields:
            if schema_field.name == name:
                return schema_field
        return None


@dataclass(frozen=True)
class VendorRules:
    """Normalization tables for one EMR vendor.

    Attributes:
        system: Vendor the rules apply to.
        system_aliases: Vendor identifier/coding system URI to canonical URL.
        status_map: Vendor status code to FHIR status code.
        gender_map: Vendor administrative sex code to FHIR gender.
        code_displays: Coding system URL to {code: display} for display backfill.
    """

    system: EMRSystem
    description: str = ""
    system_aliases: MappingProxyType[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    status_map: MappingProxyType[str, str] = field(default_factory=lambda: MappingProxyType({}))
    gender_map: MappingProxyType[str, str] = field(default_factory=lambda: MappingProxyType({}))
    code_displays: MappingProxyType[str, MappingProxyType[str, str]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def display_for(self, system: Any, code: Any) -> str | None:
        """Look up the display text for a coding, or None."""
        if not isinstance(system, str) or not isinstance(code, str):
            return None
        displays = self.code_displays.get(system)
        return displays.get(code) if displays else None


def _string_table(data: Any, name: str) -> dict[str, str]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"'{name}' must be a mapping")
    return {str(k): str(v) for k, v in data.items()}


def _merge_displays(*tables: Any) -> MappingProxyType[str, MappingProxyType[str, str]]:
    merged: dict[str, dict[str, str]] = {}
    for table in tables:
        if not table:
            continue
        if not isinstance(table, dict):
            raise ConfigurationError("'code_displays' must be a mapping")
        for system, displays in table.items():
            merged.setdefault(str(system), {}).update(_string_table(displays, "code_displays"))
    return MappingProxyType({k: MappingProxyType(v) for k, v in merged.items()})


class SchemaLoader:
    """Loads the UDM schema and vendor rules from YAML files."""

    def __init__(self, schema_dir: str | Path | None = None) -> None:
        """Initialize schema loader.

        Args:
            schema_dir: Directory holding udm.yaml, common.yaml and vendors/.
                Defaults to the data bundled with the package.
        """
        self.schema_dir = Path(schema_dir) if schema_dir is not None else DEFAULT_SCHEMA_DIR
        self._cache: dict[str, Any] = {}

    def _read_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Schema file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path.name}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path.name} must contain a mapping")
        return data

    def load_udm_schema(self) -> UDMSchema:
        """Load the UDM shape.

        Raises:
            FileNotFoundError: If udm.yaml doesn't exist.
            ConfigurationError: If the file is malformed.
        """
        if "udm" in self._cache:
            cached: UDMSchema = self._cache["udm"]
            return cached

        data = self._read_yaml(self.schema_dir / "udm.yaml")
        try:
            fields = tuple(
                SchemaField(
                    name=field_data["name"],
                    type=field_data["type"],
                    required=bool(field_data.get("required", False)),
                    description=field_data.get("description", ""),
                )
                for field_data in data.get("fields", [])
            )
        except (KeyError, TypeError) as e:
            raise ConfigurationError("udm.yaml fields need a name and a type") from e

        schema = UDMSchema(
            version=str(data.get("version", "1.0")),
            resource_types=frozenset(data.get("resource_types", [])),
            fields=fields,
            description=data.get("description", ""),
        )

        self._cache["udm"] = schema
        return schema

    def load_vendor_rules(self, system: EMRSystem | str) -> VendorRules:
        """Load normalization rules for a vendor, merged over common.yaml.

        Args:
            system: EMR system (e.g., EMRSystem.EPIC or 'cerner').

        Returns:
            VendorRules with immutable tables.

        Raises:
            FileNotFoundError: If the vendor file doesn't exist.
            ConfigurationError: If a file is malformed.
        """
        emr_system = EMRSystem.coerce(system)
        cache_key = f"vendor:{emr_system.value}"
        if cache_key in self._cache:
            cached: VendorRules = self._cache[cache_key]
            return cached

        common_path = self.schema_dir / "common.yaml"
        common = self._read_yaml(common_path) if common_path.exists() else {}
        data = self._read_yaml(self.schema_dir / "vendors" / f"{emr_system.value.lower()}.yaml")

        declared = data.get("system")
        if declared is not None and EMRSystem.coerce(declared) is not emr_system:
            raise ConfigurationError(
                f"Vendor file for {emr_system.value} declares system {declared}"
            )

        aliases = _string_table(common.get("system_aliases"), "system_aliases")
        aliases.update(_string_table(data.get("system_aliases"), "system_aliases"))
        genders = _string_table(data.get("gender_map"), "gender_map")

        rules = VendorRules(
            system=emr_system,
            description=data.get("description", ""),
            system_aliases=MappingProxyType(aliases),
            status_map=MappingProxyType(_string_table(data.get("status_map"), "status_map")),
            gender_map=MappingProxyType({k.upper(): v for k, v in genders.items()}),
            code_displays=_merge_displays(common.get("code_displays"), data.get("code_displays")),
        )

        self._cache[cache_key] = rules
        return rules

    def list_vendors(self) -> list[str]:
        """List vendors that have a rules file.

        Returns:
            Vendor names (EMRSystem values).
        """
        vendor_dir = self.schema_dir / "vendors"
        if not vendor_dir.exists():
            return []
        return sorted(p.stem.upper() for p in vendor_dir.glob("*.yaml"))

    def clear_cache(self) -> None:
        """Clear the schema cache."""
        self._cache.clear()
