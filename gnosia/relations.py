"""Directional trust/favor matrices between characters."""

import random
from typing import Sequence

from gnosia.rules import REL_MAX, REL_MIN


def _clamp(value: float, low: float = REL_MIN, high: float = REL_MAX) -> float:
    return max(low, min(high, value))


class RelationshipMatrix:
    """
    Two N x N matrices, trust[i][j] and favor[i][j], both in [0, 100].
    Row i is i's view of j. The diagonal is never read or written.
    """

    def __init__(self, size: int, trust: float = 50.0, favor: float = 50.0):
        self.size = size
        self.trust = [[trust] * size for _ in range(size)]
        self.favor = [[favor] * size for _ in range(size)]

    @classmethod
    def init(cls, characters: Sequence, rng: random.Random) -> "RelationshipMatrix":
        """
        Sample an initial matrix from each observer's personality.
        social+cheer shifts the center up, desire widens the spread,
        kindness biases favor upward.
        """
        matrix = cls(len(characters))
        for i, observer in enumerate(characters):
            p = observer.personality
            center = 40.0 + (p.social + p.cheer) / 2 * 20.0
            spread = 8.0 + p.desire * 20.0
            favor_center = center + (p.kindness - 0.5) * 16.0
            for j in range(len(characters)):
                if i == j:
                    continue
                matrix.trust[i][j] = _clamp(rng.uniform(center - spread, center + spread))
                matrix.favor[i][j] = _clamp(rng.uniform(favor_center - spread, favor_center + spread))
        return matrix

    def add(self, frm: int, to: int, trust_delta: float = 0.0, favor_delta: float = 0.0) -> None:
        """Bounded add. No-op on the diagonal; saturates silently at the bounds."""
        if frm == to:
            return
        self.trust[frm][to] = _clamp(self.trust[frm][to] + trust_delta)
        self.favor[frm][to] = _clamp(self.favor[frm][to] + favor_delta)

    def get_trust(self, frm: int, to: int) -> float:
        return self.trust[frm][to]

    def get_favor(self, frm: int, to: int) -> float:
        return self.favor[frm][to]

    def to_lists(self) -> tuple[list[list[float]], list[list[float]]]:
        """Copies of both matrices, for snapshots."""
        return [row[:] for row in self.trust], [row[:] for row in self.favor]
