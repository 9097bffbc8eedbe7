"""
Parse options and hard limits for xword-ingest.

This module defines the Pydantic model callers use to tune ``parse()`` and
the per-format ``decode_*`` functions, plus the built-in grid ceiling.

Key models:
- ParseOptions: filename hint, text encoding, optional tighter grid ceiling,
  optional binary checksum verification.
- GridSize: a ``{width, height}`` pair.

Key functions:
- resolve_options(options, **overrides) -> ParseOptions: accept a model,
  a mapping or keyword overrides; convert validation failures into
  ``InvalidOptionsError`` so callers only ever see the package's errors.

Why Pydantic:
- Options arrive from callers as loose dicts as often as typed objects.
  Pydantic gives strict validation and clear messages in both cases.
"""

from __future__ import annotations

import codecs
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from xword_ingest.exceptions import ErrorContext, InvalidOptionsError

logger = logging.getLogger(__name__)

# Maximum grid dimensions. Most crosswords are 15x15 to 21x21; 100x100
# leaves plenty of headroom while bounding per-cell allocation.
MAX_GRID_WIDTH = 100
MAX_GRID_HEIGHT = 100


class GridSize(BaseModel):
    """A width/height ceiling."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class ParseOptions(BaseModel):
    """Options accepted by ``parse()`` and every ``decode_*`` function."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    filename: str | None = Field(
        None, description="Filename hint; only affects the order formats are tried in"
    )
    encoding: str = Field(
        "utf-8", description="Text encoding for text formats supplied as bytes"
    )
    max_grid_size: GridSize | None = Field(
        None, description="Optional ceiling tighter than the built-in 100x100"
    )
    verify_checksums: bool = Field(
        False, description="Verify .puz header and file checksums"
    )

    @field_validator("encoding")
    @classmethod
    def _check_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError:
            raise ValueError(f"Unknown text encoding: '{value}'") from None
        return value

    def effective_limits(self) -> tuple[int, int]:
        """Return the ``(max_width, max_height)`` actually enforced."""
        max_w, max_h = MAX_GRID_WIDTH, MAX_GRID_HEIGHT
        if self.max_grid_size is not None:
            max_w = min(max_w, self.max_grid_size.width)
            max_h = min(max_h, self.max_grid_size.height)
        return max_w, max_h

    def grid_fits(self, width: int, height: int) -> bool:
        """True if ``width`` x ``height`` is positive and within the limits."""
        max_w, max_h = self.effective_limits()
        return 0 < width <= max_w and 0 < height <= max_h


def resolve_options(
    options: ParseOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> ParseOptions:
    """Normalize caller-supplied options into a validated ``ParseOptions``.

    Raises:
        InvalidOptionsError: If any option fails validation.
    """
    if isinstance(options, ParseOptions) and not overrides:
        return options

    if options is None:
        raw: dict[str, Any] = {}
    elif isinstance(options, ParseOptions):
        raw = options.model_dump()
    elif isinstance(options, Mapping):
        raw = dict(options)
    else:
        raise InvalidOptionsError(
            f"options must be ParseOptions or a mapping, got {type(options).__name__}"
        )
    raw.update(overrides)

    # Accept the camelCase spelling some callers use.
    if "maxGridSize" in raw and "max_grid_size" not in raw:
        raw["max_grid_size"] = raw.pop("maxGridSize")

    try:
        return ParseOptions(**raw)
    except ValidationError as e:
        raise InvalidOptionsError(
            f"Invalid parse options: {e.errors()[0].get('msg', e)}",
            context=ErrorContext(details={"errors": e.errors(include_url=False)}),
            cause=e,
        ) from e
