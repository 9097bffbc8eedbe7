"""
Standard crossword cell numbering.

Cells are visited row-major. An open cell receives the next number
(starting at 1) iff it starts an across entry (left neighbour off-grid or
closed, right neighbour open) or starts a down entry (top neighbour off-grid
or closed, cell below open). A cell that starts both still gets a single
number, shared by both entries.

Only the binary and line-text converters use this. JSON and XML sources
carry authoritative numbers that may follow barred or irregular topologies
this neighbour rule cannot express, so their numbers pass through untouched.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class NumberedPosition:
    """A numbered cell and which entries start there."""
    row: int
    col: int
    number: int
    across: bool
    down: bool


def compute_numbering(open_grid: Sequence[Sequence[bool]]) -> list[NumberedPosition]:
    """Number a grid given only its topology.

    Args:
        open_grid: ``open_grid[row][col]`` is True for a playable cell and
            False for a black (or void) one. Must be rectangular.

    Returns:
        Numbered positions in row-major order.
    """
    height = len(open_grid)
    width = len(open_grid[0]) if height else 0
    positions: list[NumberedPosition] = []
    number = 1

    for row in range(height):
        for col in range(width):
            if not open_grid[row][col]:
                continue
            starts_across = (
                (col == 0 or not open_grid[row][col - 1])
                and col + 1 < width
                and open_grid[row][col + 1]
            )
            starts_down = (
                (row == 0 or not open_grid[row - 1][col])
                and row + 1 < height
                and open_grid[row + 1][col]
            )
            if starts_across or starts_down:
                positions.append(
                    NumberedPosition(row, col, number, bool(starts_across), bool(starts_down))
                )
                number += 1

    return positions


def number_grid(open_grid: Sequence[Sequence[bool]]) -> list[list[int | None]]:
    """Return a grid of the same shape holding each cell's number or None."""
    numbers: list[list[int | None]] = [[None] * len(row) for row in open_grid]
    for pos in compute_numbering(open_grid):
        numbers[pos.row][pos.col] = pos.number
    return numbers
