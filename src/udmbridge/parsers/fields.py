"""HL7 v2.x field decomposition and escape-sequence handling."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from typing import Final


@dataclass(frozen=True)
class EncodingCharacters:
    """Delimiters declared by MSH-1 and MSH-2."""

    field_separator: str = "|"
    component_separator: str = "^"
    repetition_separator: str = "~"
    escape_character: str = "\\"
    subcomponent_separator: str = "&"

    @classmethod
    def from_msh(cls, field_separator: str, msh2: str) -> EncodingCharacters:
        """Build from the MSH field separator and the MSH-2 value.

        MSH-2 lists component, repetition, escape and subcomponent characters
        in that order. Characters a sender left out fall back to the defaults.
        """
        defaults = cls()
        chars = list(msh2[:4])
        return cls(
            field_separator=field_separator,
            component_separator=chars[0] if len(chars) > 0 else defaults.component_separator,
            repetition_separator=chars[1] if len(chars) > 1 else defaults.repetition_separator,
            escape_character=chars[2] if len(chars) > 2 else defaults.escape_character,
            subcomponent_separator=chars[3] if len(chars) > 3 else defaults.subcomponent_separator,
        )

    @property
    def msh2(self) -> str:
        """Encoding characters as written in MSH-2."""
        return (
            self.component_separator
            + self.repetition_separator
            + self.escape_character
            + self.subcomponent_separator
        )


DEFAULT_ENCODING_CHARACTERS: Final[EncodingCharacters] = EncodingCharacters()


@dataclass
class ParsedField:
    """A single field broken into repetitions, components and subcomponents."""

    raw: str
    components: list[str] = field(default_factory=list)
    subcomponents: list[list[str]] = field(default_factory=list)
    repetitions: list[str] = field(default_factory=list)

    def get_component(self, index: int) -> str | None:
        """Get component by 1-based index (HL7 convention)."""
        if 1 <= index <= len(self.components):
            return self.components[index - 1] or None
        return None

    def get_subcomponent(self, component: int, subcomponent: int) -> str | None:
        """Get subcomponent by 1-based component and subcomponent indices."""
        if 1 <= component <= len(self.subcomponents):
            parts = self.subcomponents[component - 1]
            if 1 <= subcomponent <= len(parts):
                return parts[subcomponent - 1] or None
        return None

    def __str__(self) -> str:
        return self.raw


@functools.lru_cache(maxsize=32)
def _escape_pattern(escape_character: str) -> re.Pattern[str]:
    esc = re.escape(escape_character)
    return re.compile(f"{esc}(F|S|T|R|E|X(?:[0-9A-Fa-f]{{2}})+){esc}")


def _decode_hex(hex_digits: str) -> str:
    data = bytes.fromhex(hex_digits)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        # ISO-8859-1 is the HL7 default single-byte character set
        return data.decode("latin-1")


def unescape(value: str, encoding: EncodingCharacters = DEFAULT_ENCODING_CHARACTERS) -> str:
    """Replace HL7 escape sequences with the characters they stand for.

    Handles \\F\\ \\S\\ \\T\\ \\R\\ \\E\\ and \\Xhh..\\. The bytes of one \\X\\
    sequence are decoded together as UTF-8, or as ISO-8859-1 when they are
    not valid UTF-8. Formatting sequences such as \\.br\\ are left as they
    are. The text is scanned once, so characters produced by a replacement
    are never reinterpreted.
    """
    if not value or encoding.escape_character not in value:
        return value

    replacements = {
        "F": encoding.field_separator,
        "S": encoding.component_separator,
        "T": encoding.subcomponent_separator,
        "R": encoding.repetition_separator,
        "E": encoding.escape_character,
    }

    def _replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if token[0] == "X":
            return _decode_hex(token[1:])
        return replacements[token]

    return _escape_pattern(encoding.escape_character).sub(_replace, value)


def escape(value: str, encoding: EncodingCharacters = DEFAULT_ENCODING_CHARACTERS) -> str:
    """Escape delimiter characters so the value can be embedded in a field."""
    if not value:
        return value

    esc = encoding.escape_character
    sequences = {
        encoding.escape_character: f"{esc}E{esc}",
        encoding.field_separator: f"{esc}F{esc}",
        encoding.component_separator: f"{esc}S{esc}",
        encoding.subcomponent_separator: f"{esc}T{esc}",
        encoding.repetition_separator: f"{esc}R{esc}",
    }
    return "".join(sequences.get(char, char) for char in value)


def parse_field(raw: str, encoding: EncodingCharacters = DEFAULT_ENCODING_CHARACTERS) -> ParsedField:
    """Decompose a raw field value.

    The first repetition is the canonical value and is the one split into
    components and subcomponents. Component text and subcomponent values are
    unescaped; ``repetitions`` keeps the raw text of every repetition.

    Never raises: a value without separators yields single-element lists and
    an empty value yields empty lists.
    """
    if not raw:
        return ParsedField(raw="")

    repetitions = raw.split(encoding.repetition_separator)
    components = repetitions[0].split(encoding.component_separator)
    subcomponents = [
        [unescape(part, encoding) for part in component.split(encoding.subcomponent_separator)]
        for component in components
    ]

    return ParsedField(
        raw=raw,
        components=[unescape(component, encoding) for component in components],
        subcomponents=subcomponents,
        repetitions=repetitions,
    )
