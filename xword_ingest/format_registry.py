"""
Format descriptor loader for xword-ingest.

Loads format YAML files from xword_ingest/formats/ and provides structured
access via Pydantic models. Each descriptor defines:
- format_name: unique identifier ("ipuz", "puz", "jpz", "xd")
- content_type: how the dispatcher hands input to the decoder (binary | text)
- priority: position in the default try-order (lower = earlier)
- extensions: filename extensions that hint at this format
- sniff: content rules that hint at this format

Why YAML instead of hardcoded:
- Sniffing rules (prefixes, markers, header-line patterns) are data, and are
  easier to review and tweak than branching code.
- Separation of detection knowledge (YAML) from decoding logic (Python).
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

# Directory containing format YAML files (sibling package)
_FORMATS_DIR = Path(__file__).parent / "formats"


class SniffRule(BaseModel):
    """One content rule; every populated condition must hold for a match.

    - starts_with: the stripped content starts with any of these strings.
    - contains: the content contains any of these strings.
    - line_pattern: some line matches this regex (case-insensitive).
    - binary_fallback: matches byte input that no text rule claimed.
    """

    model_config = ConfigDict(frozen=True)

    starts_with: list[str] = Field(default_factory=list)
    contains: list[str] = Field(default_factory=list)
    line_pattern: str | None = None
    binary_fallback: bool = False
    confidence: Literal["high", "medium", "low"] = "high"

    @field_validator("line_pattern")
    @classmethod
    def _check_pattern(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"Invalid line_pattern {value!r}: {e}") from e
        return value

    def matches(self, text: str, lines: list[str]) -> bool:
        """Test the textual conditions of this rule.

        ``binary_fallback`` is evaluated by the detector, not here.
        """
        if not (self.starts_with or self.contains or self.line_pattern):
            return False
        if self.starts_with and not any(text.startswith(p) for p in self.starts_with):
            return False
        if self.contains and not any(c in text for c in self.contains):
            return False
        if self.line_pattern:
            pattern = re.compile(self.line_pattern, re.IGNORECASE)
            if not any(pattern.search(line) for line in lines):
                return False
        return True


class FormatSpec(BaseModel):
    """A complete format descriptor loaded from YAML."""

    model_config = ConfigDict(frozen=True)

    format_name: str
    display_name: str = ""
    description: str = ""
    content_type: Literal["binary", "text"]
    priority: int = 99
    extensions: list[str] = Field(default_factory=list)
    sniff: list[SniffRule] = Field(default_factory=list)

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        return [ext.lower().lstrip(".") for ext in value]


def load_format(path: Path) -> FormatSpec:
    """Load a single format YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"Format descriptor {path} is not a mapping")
    return FormatSpec(**raw)


def load_all_formats(formats_dir: Path | None = None) -> list[FormatSpec]:
    """Load all format YAML files, sorted by default try-order.

    Args:
        formats_dir: Directory to scan for .yaml files. Defaults to
            the built-in formats/ directory.

    Returns:
        List of FormatSpec objects, lowest ``priority`` first.
    """
    formats_dir = formats_dir or _FORMATS_DIR
    formats: list[FormatSpec] = []
    for yaml_path in sorted(formats_dir.glob("*.yaml")):
        try:
            spec = load_format(yaml_path)
            formats.append(spec)
            logger.debug("Loaded format: %s from %s", spec.format_name, yaml_path)
        except Exception as e:
            logger.warning("Failed to load format from %s: %s", yaml_path, e)
    formats.sort(key=lambda f: (f.priority, f.format_name))
    logger.debug("Loaded %d formats", len(formats))
    return formats


@lru_cache(maxsize=1)
def _builtin_formats() -> tuple[FormatSpec, ...]:
    return tuple(load_all_formats())


def default_formats() -> list[FormatSpec]:
    """The built-in descriptors, read from disk once per process."""
    return list(_builtin_formats())


def get_format(name: str, formats: list[FormatSpec] | None = None) -> FormatSpec:
    """Look up a descriptor by name.

    Raises:
        KeyError: If no descriptor has that name.
    """
    for spec in formats if formats is not None else default_formats():
        if spec.format_name == name:
            return spec
    raise KeyError(name)
