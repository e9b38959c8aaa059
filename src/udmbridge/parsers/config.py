"""HL7 parser configuration."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from udmbridge.core.exceptions import ConfigurationError
from udmbridge.core.types import SUPPORTED_HL7_VERSIONS

# Keys accepted in configuration files, camelCase aliases included
_KEY_ALIASES = {
    "strictMode": "strict_mode",
    "validateChecksum": "validate_checksum",
    "supportedVersions": "supported_versions",
    "allowCustomSegments": "allow_custom_segments",
}


@dataclass(frozen=True)
class HL7ParserConfig:
    """Options controlling how tolerant the parser is.

    Attributes:
        strict_mode: Raise on unknown segments, missing required segments and
            unsupported versions instead of dropping or logging them.
        validate_checksum: Reserved hook; only logged, never enforced.
        supported_versions: HL7 versions accepted in strict mode.
        allow_custom_segments: Keep well-formed segment ids that are not in
            the registry (Z-segments), even in strict mode.
    """

    strict_mode: bool = True
    validate_checksum: bool = False
    supported_versions: tuple[str, ...] = SUPPORTED_HL7_VERSIONS
    allow_custom_segments: bool = False

    @classmethod
    def lenient(cls, **overrides: Any) -> HL7ParserConfig:
        """Config with strict mode off."""
        return cls(strict_mode=False, **overrides)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HL7ParserConfig:
        """Build a config from a mapping with snake_case or camelCase keys.

        Raises:
            ConfigurationError: On unknown keys or badly typed values.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _KEY_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown parser option: {key}")
            values[name] = value

        for flag in ("strict_mode", "validate_checksum", "allow_custom_segments"):
            if flag in values and not isinstance(values[flag], bool):
                raise ConfigurationError(f"Parser option '{flag}' must be a boolean")

        if "supported_versions" in values:
            versions = values["supported_versions"]
            if not isinstance(versions, list | tuple) or not versions:
                raise ConfigurationError(
                    "Parser option 'supported_versions' must be a non-empty list"
                )
            values["supported_versions"] = tuple(str(v) for v in versions)

        return cls(**values)

    def with_overrides(self, **overrides: Any) -> HL7ParserConfig:
        """Return a copy with the given options replaced (None values ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_parser_config(path: str | Path) -> HL7ParserConfig:
    """Load parser configuration from a YAML file.

    The options may sit at the top level or under an ``hl7_parser`` key:

    ```yaml
    hl7_parser:
      strict_mode: false
      allow_custom_segments: true
      supported_versions: ["2.4", "2.5.1"]
    ```

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not a valid parser configuration.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path.name}") from e

    if data is None:
        return HL7ParserConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path.name} must contain a mapping")

    section = data.get("hl7_parser", data)
    if not isinstance(section, dict):
        raise ConfigurationError("'hl7_parser' must be a mapping")
    return HL7ParserConfig.from_dict(section)
