"""Shared fixtures: hand-built match states with fixed roles and flat relations."""

import random

import pytest

from gnosia.relations import RelationshipMatrix
from gnosia.rules import Role, SUSPICION_START
from gnosia.state import Character, MatchState, Personality, Settings, Stats

NAMES = ["Ann", "Ben", "Cal", "Dot", "Eli", "Fay", "Gus", "Hal"]


class FixedRandom(random.Random):
    """random() always returns `value`; every chance check below it succeeds."""

    def __init__(self, value: float = 0.0):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def build_state(
    n: int = 6,
    roles: dict[int, Role] | None = None,
    stats: dict[int, Stats] | None = None,
    personality: dict[int, Personality] | None = None,
    settings: Settings | None = None,
    rng: random.Random | None = None,
) -> MatchState:
    roles = roles or {}
    stats = stats or {}
    personality = personality or {}
    characters = [
        Character(
            name=NAMES[i],
            stats=stats.get(i, Stats()),
            personality=personality.get(i, Personality()),
            role=roles.get(i, Role.CREW),
        )
        for i in range(n)
    ]
    return MatchState(
        match_id="test",
        characters=characters,
        settings=settings or Settings(),
        relations=RelationshipMatrix(n),
        rng=rng or random.Random(7),
        aggro=[0.0] * n,
        suspicion=[SUSPICION_START] * n,
    )


@pytest.fixture
def make_state():
    return build_state
