"""Match engine: day/night scheduling, vote, night resolution and win check. No I/O."""

import copy
import logging
import random
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence

from gnosia import ai
from gnosia.commands import Effect, get_command, scaled
from gnosia.relations import RelationshipMatrix
from gnosia.roles import assign_roles, role_counts
from gnosia.rules import (
    DAY_TURNS,
    INFILTRATOR_BOND,
    MAX_PLAYERS,
    MIN_PLAYERS,
    SUSPICION_START,
    WAITER_BOND,
    Phase,
    Role,
    Winner,
    max_infiltrators,
)
from gnosia.state import Character, EventKind, MatchState, Settings
from gnosia.turn import apply_effect, run_turn

logger = logging.getLogger(__name__)

# Suspicion added when the Engineer's scan turns up an infiltrator
SCAN_SUSPICION = 15.0


def validate_setup(characters: Sequence[Character], settings: Settings) -> None:
    """Raise ValueError if the roster or settings cannot start a match."""
    n = len(characters)
    if not MIN_PLAYERS <= n <= MAX_PLAYERS:
        raise ValueError(f"roster must have {MIN_PLAYERS}-{MAX_PLAYERS} characters, got {n}")
    if not 1 <= settings.infiltrators <= max_infiltrators(n):
        raise ValueError(f"infiltrators must be between 1 and {max_infiltrators(n)} for {n} characters")
    names = [c.name for c in characters]
    if len(set(names)) != len(names):
        raise ValueError("character names must be unique")


def _bond(state: MatchState, members: list[int], trust: float, favor: float) -> None:
    for a in members:
        for b in members:
            state.relations.add(a, b, trust, favor)


def start_match(
    characters: Sequence[Character],
    settings: Settings,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None,
    match_id: str = "match",
) -> MatchState:
    """
    Create a match: assign roles, sample relationships, apply role-mate
    knowledge. The caller's characters are copied, never mutated.
    """
    validate_setup(characters, settings)
    rng = rng or random.Random(seed)
    roster = copy.deepcopy(list(characters))
    for character, role in zip(roster, assign_roles(len(roster), settings, rng)):
        character.role = role
        character.alive = True
        character.claim = None

    n = len(roster)
    state = MatchState(
        match_id=match_id,
        characters=roster,
        settings=settings,
        relations=RelationshipMatrix.init(roster, rng),
        rng=rng,
        aggro=[0.0] * n,
        suspicion=[SUSPICION_START] * n,
        seed=seed,
    )
    _bond(state, state.alive_with_role(Role.INFILTRATOR), *INFILTRATOR_BOND)
    _bond(state, state.alive_with_role(Role.WAITER), *WAITER_BOND)
    state.log(EventKind.MATCH_START, f"The match begins with {n} crew members aboard.")
    state.log(EventKind.PHASE_CHANGE, "--- Day 1 ---")
    counts = role_counts([c.role for c in roster])
    logger.info("match %s started: %d characters, roles %s", match_id, n,
                ", ".join(f"{r.value}={k}" for r, k in counts.items() if k))
    return state


def check_winner(state: MatchState) -> Optional[Winner]:
    """
    Infiltrators win once they match the rest; crew wins when none remain.
    A living Bug takes the win from either side.
    """
    alive = state.alive_indices()
    g = len(state.alive_with_role(Role.INFILTRATOR))
    humans = len(alive) - g
    outcome = None
    if g == 0:
        outcome = Winner.CREW
    elif g >= humans:
        outcome = Winner.INFILTRATORS
    if outcome is not None and state.alive_with_role(Role.BUG):
        return Winner.BUG
    return outcome


def is_match_over(state: MatchState) -> bool:
    return state.phase == Phase.ENDED


def _finish_if_won(state: MatchState) -> bool:
    winner = check_winner(state)
    if winner is None:
        return False
    state.winner = winner
    state.phase = Phase.ENDED
    messages = {
        Winner.CREW: "All infiltrators are gone. The crew wins.",
        Winner.INFILTRATORS: "The infiltrators have taken over the ship.",
        Winner.BUG: "The Bug survives and the universe is swallowed. The Bug wins.",
    }
    state.log(EventKind.WIN, messages[winner])
    for i, character in enumerate(state.characters):
        status = "alive" if character.alive else "gone"
        state.log(EventKind.ROLE_REVEAL, f"{character.name}: {character.role.value} ({status})", actor=i)
    logger.info("match %s ended on day %d: %s", state.match_id, state.day, winner.value)
    return True


def _retire(state: MatchState, idx: int) -> None:
    """Remove a character from play and dissolve its cooperation pair."""
    state.characters[idx].alive = False
    partner = state.flags.cooperation.pop(idx, None)
    if partner is not None:
        state.flags.cooperation.pop(partner, None)


def tally_votes(votes: dict[int, int], rng: random.Random) -> Optional[int]:
    """Plurality winner of voter -> target; ties broken uniformly at random."""
    if not votes:
        return None
    counts = Counter(votes.values())
    top = max(counts.values())
    tied = sorted(c for c, n in counts.items() if n == top)
    if len(tied) == 1:
        return tied[0]
    return rng.choice(tied)


def resolve_vote(state: MatchState) -> Optional[int]:
    """Everyone votes, the plurality target may plead, then goes to cold sleep (mutates state)."""
    votes: dict[int, int] = {}
    for voter in state.alive_indices():
        target = ai.pick_vote(state, voter, state.rng)
        if target is None:
            continue
        votes[voter] = target
        state.log(EventKind.VOTE, f"{state.name(voter)} votes for {state.name(target)}.", actor=voter, target=target)

    victim = tally_votes(votes, state.rng)
    if victim is None:
        state.log(EventKind.VOTE, "No votes were cast. Nobody is put to sleep.")
        return None

    plead = get_command("plead")
    if plead.context_legal(state, None, victim):
        effect = plead.apply(state, None, victim, None, state.rng)
        apply_effect(state, effect, victim, kind=EventKind.EVASION)
        if effect.cancel_elimination:
            return None

    _retire(state, victim)
    state.last_cold_sleep = victim
    state.doctor_reported = False
    state.log(EventKind.COLD_SLEEP, f"{state.name(victim)} was put into cold sleep.", target=victim)
    logger.info("day %d: %s put into cold sleep", state.day, state.name(victim))
    return victim


def resolve_free_actions(state: MatchState) -> None:
    """Each unpaired character takes one free action; pairing uses up both sides."""
    busy: set[int] = set()
    for actor in state.alive_indices():
        if actor in busy:
            continue
        busy.add(actor)
        pool = [t for t in state.alive_indices() if t not in busy]
        action = ai.pick_night_action(state, actor, pool, state.rng)
        if action.kind == "alone" or action.target is None:
            stealth = scaled(state.characters[actor], "stealth")
            effect = Effect(aggro=[(actor, -(2 + stealth * 2.5))])
            effect.say(f"{state.name(actor)} spends the night alone.")
        elif action.kind == "hang_out":
            effect = Effect()
            effect.relate(actor, action.target, 2.0, 4.0)
            effect.relate(action.target, actor, 2.0, 4.0)
            effect.say(f"{state.name(actor)} spends the night with {state.name(action.target)}.")
        else:
            effect = get_command("night_cooperate").apply(state, None, actor, action.target, state.rng)
        if action.target is not None:
            busy.add(action.target)
        apply_effect(state, effect, actor, action.target, kind=EventKind.FREE_ACTION)


def _join_names(names: list[str]) -> str:
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + " and " + names[-1]


def resolve_night_roles(state: MatchState) -> list[int]:
    """
    Engineer scan, Guardian protection, infiltrator attack, Doctor report,
    in that order. Returns everyone who vanished tonight.
    """
    rng = state.rng
    deaths: list[int] = []

    for engineer in state.alive_with_role(Role.ENGINEER)[:1]:
        target = ai.pick_engineer_target(state, engineer, rng)
        if target is None:
            continue
        state.memory.scanned.add(target)
        role = state.characters[target].role
        if role == Role.BUG:
            _retire(state, target)
            deaths.append(target)
            state.log(EventKind.INVESTIGATION, f"The Engineer scanned {state.name(target)}. Something unravels.",
                      target=target)
        elif role == Role.INFILTRATOR:
            apply_effect(state, Effect(suspicion=[(target, SCAN_SUSPICION)]))
            state.log(EventKind.INVESTIGATION, f"The Engineer's scan: {state.name(target)} is an infiltrator.",
                      target=target)
        else:
            state.log(EventKind.INVESTIGATION, f"The Engineer's scan: {state.name(target)} is human.",
                      target=target)

    protected = None
    for guardian in state.alive_with_role(Role.GUARDIAN)[:1]:
        protected = ai.pick_guardian_target(state, guardian, rng)
        state.log(EventKind.PROTECTION, "The Guardian keeps watch over someone.")

    victim = ai.pick_infiltrator_victim(state, rng)
    if victim is not None:
        if victim == protected or state.characters[victim].role == Role.BUG:
            logger.info("night %d: attack on %s failed", state.day, state.name(victim))
        else:
            _retire(state, victim)
            deaths.append(victim)

    if state.last_cold_sleep is not None and not state.doctor_reported and state.alive_with_role(Role.DOCTOR):
        sleeper = state.last_cold_sleep
        verdict = "an infiltrator" if state.characters[sleeper].role == Role.INFILTRATOR else "human"
        state.log(EventKind.REPORT, f"The Doctor's report: {state.name(sleeper)} was {verdict}.", target=sleeper)
        state.doctor_reported = True

    if deaths:
        state.log(EventKind.NIGHT_DEATH, f"{_join_names([state.name(d) for d in deaths])} vanished.")
    else:
        state.log(EventKind.NIGHT_DEATH, "Nobody vanished last night.")
    return deaths


def _begin_day(state: MatchState) -> None:
    state.day += 1
    state.turn = 0
    state.phase = Phase.DAY
    state.flags.vote_hints.clear()
    state.daily_used.clear()
    state.log(EventKind.PHASE_CHANGE, f"--- Day {state.day} ---")


def step(state: MatchState) -> None:
    """Advance exactly one logical step in place."""
    if state.phase == Phase.DAY:
        run_turn(state)
        if state.turn >= DAY_TURNS:
            state.phase = Phase.VOTE
            state.log(EventKind.PHASE_CHANGE, "=== Vote ===")
    elif state.phase == Phase.VOTE:
        resolve_vote(state)
        if _finish_if_won(state):
            return
        state.phase = Phase.NIGHT_FREE
        state.log(EventKind.PHASE_CHANGE, f"--- Night {state.day} ---")
    elif state.phase == Phase.NIGHT_FREE:
        resolve_free_actions(state)
        state.phase = Phase.NIGHT_ROLES
    elif state.phase == Phase.NIGHT_ROLES:
        resolve_night_roles(state)
        if _finish_if_won(state):
            return
        _begin_day(state)


def advance(state: MatchState) -> MatchState:
    """One scheduler step. Returns a new state; does not mutate input."""
    if is_match_over(state):
        return state
    state = copy.deepcopy(state)
    step(state)
    return state


def run_match(state: MatchState, max_steps: int = 10_000) -> MatchState:
    """Step until the match ends or max_steps is reached. Returns a new state."""
    state = copy.deepcopy(state)
    for _ in range(max_steps):
        if is_match_over(state):
            break
        step(state)
    return state


@dataclass
class CharacterView:
    index: int
    name: str
    alive: bool
    role: Optional[Role]
    claim: Optional[Role]
    aggro: float
    suspicion: float
    certified: Optional[str]


@dataclass
class MatchSnapshot:
    match_id: str
    day: int
    turn: int
    phase: Phase
    winner: Optional[Winner]
    characters: list[CharacterView]
    trust: list[list[float]]
    favor: list[list[float]]


def snapshot(state: MatchState, reveal: bool = False) -> MatchSnapshot:
    """
    Point-in-time view. Roles stay hidden until the match ends unless
    reveal is set.
    """
    show_all = reveal or is_match_over(state)
    views = []
    for i, c in enumerate(state.characters):
        certified = None
        if i in state.flags.human_certified:
            certified = "human"
        elif i in state.flags.infiltrator_certified:
            certified = "infiltrator"
        views.append(
            CharacterView(
                index=i,
                name=c.name,
                alive=c.alive,
                role=c.role if show_all else None,
                claim=c.claim,
                aggro=state.aggro[i],
                suspicion=state.suspicion[i],
                certified=certified,
            )
        )
    trust, favor = state.relations.to_lists()
    return MatchSnapshot(
        match_id=state.match_id,
        day=state.day,
        turn=state.turn,
        phase=state.phase,
        winner=state.winner,
        characters=views,
        trust=trust,
        favor=favor,
    )


def render_log(state: MatchState) -> str:
    """The match log as plain text, one line per event."""
    return "\n".join(e.message for e in state.events)
