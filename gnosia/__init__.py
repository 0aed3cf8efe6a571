"""Gnosia simulator core: roles, commands, decision engine and day/night scheduling."""

from gnosia.engine import advance, check_winner, render_log, run_match, snapshot, start_match
from gnosia.rules import Phase, Role, Winner
from gnosia.state import Character, MatchState, Personality, Settings, Stats

__all__ = [
    "advance",
    "check_winner",
    "render_log",
    "run_match",
    "snapshot",
    "start_match",
    "Phase",
    "Role",
    "Winner",
    "Character",
    "MatchState",
    "Personality",
    "Settings",
    "Stats",
]
