"""Game rules and constants for the Gnosia simulator."""

from enum import Enum


class Role(str, Enum):
    """Hidden role tags."""

    CREW = "crew"
    INFILTRATOR = "infiltrator"
    ENGINEER = "engineer"
    DOCTOR = "doctor"
    GUARDIAN = "guardian"
    WAITER = "waiter"
    AC_WATCHER = "ac_watcher"
    BUG = "bug"


class Phase(str, Enum):
    """Scheduler phase. Commands are tagged with DAY, VOTE or NIGHT_FREE."""

    DAY = "day"
    VOTE = "vote"
    NIGHT_FREE = "night_free"
    NIGHT_ROLES = "night_roles"
    ENDED = "ended"


class Category(str, Enum):
    """Command category."""

    ROOT = "root"
    FOLLOW = "follow"
    REACT = "react"
    META = "meta"
    RESOLVE = "resolve"


class TargetArity(str, Enum):
    NONE = "none"
    OPTIONAL = "optional"
    REQUIRED = "required"


class Winner(str, Enum):
    CREW = "crew"
    INFILTRATORS = "infiltrators"
    BUG = "bug"


# Roster bounds
MIN_PLAYERS = 5
MAX_PLAYERS = 15

# Day-turns before the vote
DAY_TURNS = 5

STAT_NAMES = ("charisma", "logic", "acting", "charm", "stealth", "intuition")
TRAIT_NAMES = ("cheer", "social", "logical", "kindness", "desire", "courage")
STAT_MAX = 50.0

REL_MIN = 0.0
REL_MAX = 100.0
SUSPICION_START = 50.0
AGGRO_DECAY = 2.5

# Suspicion added to a liar when someone sees through the claim
LIE_SUSPICION_BUMP = 8.0

# Vote weight multipliers
VOTE_CERTIFIED_HUMAN = 0.18
VOTE_CERTIFIED_INFILTRATOR = 1.6
VOTE_COOPERATING = 0.18
VOTE_LIE_DETECTED = 1.8
VOTE_FELLOW_INFILTRATOR = 0.15
VOTE_HINT_SCALE = 0.5

# Last-resort vote evasion (plead)
EVASION_MIN_STEALTH = 35
EVASION_BASE = 0.12

# Initial knowledge between role-mates: (trust, favor)
INFILTRATOR_BOND = (35.0, 25.0)
WAITER_BOND = (40.0, 30.0)

# Roles that may claim; Guardian never claims
CLAIMABLE_ROLES = (Role.ENGINEER, Role.DOCTOR, Role.WAITER)

# Roles allowed to claim falsely
LYING_ROLES = frozenset({Role.INFILTRATOR, Role.AC_WATCHER, Role.BUG})

# (max roster size, max infiltrators)
_INFILTRATOR_CAPS = ((6, 1), (8, 2), (10, 3), (12, 4), (14, 5))


def max_infiltrators(num_players: int) -> int:
    """Largest infiltrator count allowed for a roster of this size."""
    for size, cap in _INFILTRATOR_CAPS:
        if num_players <= size:
            return cap
    return 6


def is_liar(role: Role) -> bool:
    return role in LYING_ROLES


def is_human(role: Role) -> bool:
    """True for roles that would honestly declare themselves human."""
    return role not in (Role.INFILTRATOR, Role.BUG)
