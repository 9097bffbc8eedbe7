"""
Canonical puzzle model shared by every decoder.

All four formats converge on these pydantic models. They are frozen, so a
``Puzzle`` returned by ``parse()`` is an immutable value object, and they
validate the invariants every converter must honour:

- ``Grid.cells`` is rectangular: ``height`` rows of ``width`` cells.
- A black cell never carries a ``solution``.
- Cell and clue numbers are positive.

Anything a format can express that has no canonical slot (styles, bars,
vendor extensions, variety clue sections, ...) travels in the opaque
``additional_properties`` mapping of the owning entity.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Cell(BaseModel):
    """One grid square."""

    model_config = ConfigDict(frozen=True)

    is_black: bool
    solution: str | None = None
    number: int | None = Field(None, gt=0)
    is_circled: bool | None = None
    has_rebus: bool | None = None
    rebus_key: int | None = None
    additional_properties: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_black_has_no_solution(self) -> Cell:
        if self.is_black and self.solution is not None:
            raise ValueError("Black cells cannot carry a solution")
        return self


class Grid(BaseModel):
    """A rectangular grid of cells."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    cells: list[list[Cell]]
    additional_properties: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_rectangular(self) -> Grid:
        if len(self.cells) != self.height:
            raise ValueError(
                f"Grid has {len(self.cells)} rows, expected height {self.height}"
            )
        for y, row in enumerate(self.cells):
            if len(row) != self.width:
                raise ValueError(
                    f"Grid row {y} has {len(row)} cells, expected width {self.width}"
                )
        return self

    def black_positions(self) -> list[tuple[int, int]]:
        """``(row, col)`` of every black cell, row-major."""
        return [
            (y, x)
            for y, row in enumerate(self.cells)
            for x, cell in enumerate(row)
            if cell.is_black
        ]


class Clue(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int = Field(..., gt=0)
    text: str
    additional_properties: dict[str, Any] | None = None


class Clues(BaseModel):
    """Across and down clue lists.

    Non-standard groupings (variety sections such as "Rows" or "Spiral")
    are never folded into across/down; they live in
    ``additional_properties`` keyed by their section name.
    """

    model_config = ConfigDict(frozen=True)

    across: list[Clue] = Field(default_factory=list)
    down: list[Clue] = Field(default_factory=list)
    additional_properties: dict[str, Any] | None = None


class Puzzle(BaseModel):
    """The canonical decoded puzzle. Only ``grid`` and ``clues`` are required."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    author: str | None = None
    copyright: str | None = None
    notes: str | None = None
    date: str | None = None
    grid: Grid
    clues: Clues
    rebus_table: dict[int, str] | None = None
    additional_properties: dict[str, Any] | None = None
