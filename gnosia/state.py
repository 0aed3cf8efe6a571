"""Match state types for the Gnosia simulator."""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from gnosia.relations import RelationshipMatrix
from gnosia.rules import Phase, Role, Winner


@dataclass(frozen=True)
class Stats:
    """Six stats in [0, 50]."""

    charisma: float = 0.0
    logic: float = 0.0
    acting: float = 0.0
    charm: float = 0.0
    stealth: float = 0.0
    intuition: float = 0.0


@dataclass(frozen=True)
class Personality:
    """Six traits in [0, 1]."""

    cheer: float = 0.5
    social: float = 0.5
    logical: float = 0.5
    kindness: float = 0.5
    desire: float = 0.5
    courage: float = 0.5


@dataclass
class Character:
    """A crew member. Role is assigned once at match start."""

    name: str
    stats: Stats = field(default_factory=Stats)
    personality: Personality = field(default_factory=Personality)
    gender: str = ""
    age: int = 0
    allowed: dict[str, bool] = field(default_factory=dict)  # missing key means allowed
    alive: bool = True
    role: Role = Role.CREW
    claim: Optional[Role] = None

    def allows(self, command_id: str) -> bool:
        return self.allowed.get(command_id, True)


@dataclass(frozen=True)
class Settings:
    """Optional roles and infiltrator count."""

    infiltrators: int = 1
    engineer: bool = False
    doctor: bool = False
    guardian: bool = False
    waiters: bool = False
    ac_watcher: bool = False
    bug: bool = False

    def enabled_claimable_roles(self) -> list[Role]:
        roles = []
        if self.engineer:
            roles.append(Role.ENGINEER)
        if self.doctor:
            roles.append(Role.DOCTOR)
        if self.waiters:
            roles.append(Role.WAITER)
        return roles


@dataclass
class Flags:
    """Match-wide public flags. Certification sets only grow."""

    human_certified: set[int] = field(default_factory=set)
    infiltrator_certified: set[int] = field(default_factory=set)
    cooperation: dict[int, int] = field(default_factory=dict)  # symmetric
    vote_hints: dict[int, float] = field(default_factory=dict)  # >0 vote for, <0 vote against


@dataclass
class Memory:
    lie_detected_by: dict[int, set[int]] = field(default_factory=dict)  # observer -> liars
    scanned: set[int] = field(default_factory=set)  # engineer scan history

    def has_detected(self, observer: int, liar: Optional[int] = None) -> bool:
        found = self.lie_detected_by.get(observer, set())
        if liar is None:
            return bool(found)
        return liar in found


@dataclass(frozen=True)
class TurnContext:
    """
    One day-turn's discussion context. Never mutated; the committer swaps in
    a new instance after every applied command.
    """

    day: int
    turn: int
    phase: Phase = Phase.DAY
    root_id: Optional[str] = None
    root_actor: Optional[int] = None
    root_target: Optional[int] = None
    attacked: Optional[int] = None
    spoken: frozenset[int] = frozenset()
    used: tuple[str, ...] = ()
    block_rebuttal: bool = False
    support_window: float = 0.0
    requested_role: Optional[Role] = None
    excluded_role: Optional[Role] = None
    thank_for: tuple[tuple[int, int], ...] = ()  # (thanker, benefactor)
    last_command: Optional[str] = None
    ended: bool = False

    def benefactor_of(self, idx: int) -> Optional[int]:
        for thanker, benefactor in self.thank_for:
            if thanker == idx:
                return benefactor
        return None


class EventKind(str, Enum):
    """Type of log event."""

    MATCH_START = "match_start"
    PHASE_CHANGE = "phase_change"
    TURN_START = "turn_start"
    COMMAND = "command"
    LIE_DETECTED = "lie_detected"
    VOTE = "vote"
    EVASION = "evasion"
    COLD_SLEEP = "cold_sleep"
    FREE_ACTION = "free_action"
    INVESTIGATION = "investigation"
    PROTECTION = "protection"
    NIGHT_DEATH = "night_death"
    REPORT = "report"
    WIN = "win"
    ROLE_REVEAL = "role_reveal"


@dataclass
class Event:
    """A single log line."""

    kind: EventKind
    day: int
    phase: Phase
    message: str
    actor: Optional[int] = None
    target: Optional[int] = None


@dataclass
class MatchState:
    """Everything one running match owns."""

    match_id: str
    characters: list[Character]
    settings: Settings
    relations: RelationshipMatrix
    rng: random.Random
    aggro: list[float] = field(default_factory=list)
    suspicion: list[float] = field(default_factory=list)
    flags: Flags = field(default_factory=Flags)
    memory: Memory = field(default_factory=Memory)
    day: int = 1
    turn: int = 0
    phase: Phase = Phase.DAY
    events: list[Event] = field(default_factory=list)
    winner: Optional[Winner] = None
    last_cold_sleep: Optional[int] = None
    doctor_reported: bool = False
    daily_used: dict[int, set[str]] = field(default_factory=dict)
    match_used: dict[int, set[str]] = field(default_factory=dict)
    seed: Optional[int] = None

    def is_alive(self, idx: int) -> bool:
        return self.characters[idx].alive

    def alive_indices(self) -> list[int]:
        """Return indices of alive characters."""
        return [i for i, c in enumerate(self.characters) if c.alive]

    def alive_with_role(self, role: Role) -> list[int]:
        """Return alive indices with the given role."""
        return [i for i, c in enumerate(self.characters) if c.alive and c.role == role]

    def name(self, idx: Optional[int]) -> str:
        return self.characters[idx].name if idx is not None else "nobody"

    def log(
        self,
        kind: EventKind,
        message: str,
        actor: Optional[int] = None,
        target: Optional[int] = None,
    ) -> None:
        """Append an event (mutates state)."""
        self.events.append(
            Event(kind=kind, day=self.day, phase=self.phase, message=message, actor=actor, target=target)
        )
