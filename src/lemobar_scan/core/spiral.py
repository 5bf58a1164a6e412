"""Outward square spiral over the integer lattice.

The walk starts at ``(0, 0)`` and cycles east, north, west, south. Legs come
in pairs of equal length: 1 east, 1 north, 2 west, 2 south, 3 east, 3 north
and so on, so every lattice cell is visited exactly once.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

DIRECTIONS: tuple[tuple[int, int], ...] = ((1, 0), (0, 1), (-1, 0), (0, -1))


@dataclass
class SpiralState:
    x: int = 0
    y: int = 0
    direction: int = 0
    leg_length: int = 1
    steps_remaining: int = 1

    @property
    def position(self) -> tuple[int, int]:
        return self.x, self.y

    def advance(self) -> tuple[int, int]:
        """Return the current position and move one step along the spiral."""
        point = (self.x, self.y)
        dx, dy = DIRECTIONS[self.direction]
        self.x += dx
        self.y += dy
        self.steps_remaining -= 1
        if self.steps_remaining == 0:
            # the leg grows after every north and every south leg
            if self.direction % 2 == 1:
                self.leg_length += 1
            self.direction = (self.direction + 1) % len(DIRECTIONS)
            self.steps_remaining = self.leg_length
        return point


def spiral_offsets(state: SpiralState | None = None) -> Iterator[tuple[int, int]]:
    """Yield spiral offsets forever, resuming from ``state`` when given."""
    current = state if state is not None else SpiralState()
    while True:
        yield current.advance()


class SpiralPath:
    """Restartable spiral: each iteration starts again from the origin."""

    def __iter__(self) -> Iterator[tuple[int, int]]:
        return spiral_offsets()
