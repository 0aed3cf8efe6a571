"""Turn controller: runs one day-turn and commits command effects."""

import logging
from typing import Optional

from gnosia import ai
from gnosia.commands import Effect, get_command, new_context, next_context, scaled
from gnosia.rules import AGGRO_DECAY, DAY_TURNS, LIE_SUSPICION_BUMP, TargetArity
from gnosia.state import EventKind, MatchState, TurnContext

logger = logging.getLogger(__name__)


def _clamp_suspicion(value: float) -> float:
    return max(0.0, min(100.0, value))


def form_pair(state: MatchState, a: int, b: int) -> None:
    """Pair two characters for cooperation if neither already has a partner."""
    if a == b or a in state.flags.cooperation or b in state.flags.cooperation:
        return
    state.flags.cooperation[a] = b
    state.flags.cooperation[b] = a


def apply_effect(
    state: MatchState,
    effect: Effect,
    actor: Optional[int] = None,
    target: Optional[int] = None,
    kind: EventKind = EventKind.COMMAND,
) -> None:
    """
    Single committer for every command effect (mutates state). Touching a
    dead character is a programmer error.
    """
    for delta in effect.relations:
        assert state.is_alive(delta.frm) and state.is_alive(delta.to), "relation change involves a dead character"
        state.relations.add(delta.frm, delta.to, delta.trust, delta.favor)
    for idx, amount in effect.aggro:
        assert state.is_alive(idx), "aggro change for a dead character"
        state.aggro[idx] = max(0.0, state.aggro[idx] + amount)
    for idx, amount in effect.suspicion:
        assert state.is_alive(idx), "suspicion change for a dead character"
        state.suspicion[idx] = _clamp_suspicion(state.suspicion[idx] + amount)
    state.flags.human_certified.update(effect.certify_human)
    state.flags.infiltrator_certified.update(effect.certify_infiltrator)
    for idx, role in effect.claims:
        state.characters[idx].claim = role
    if effect.cooperation is not None:
        form_pair(state, *effect.cooperation)
    for idx, weight in effect.vote_hints:
        state.flags.vote_hints[idx] = state.flags.vote_hints.get(idx, 0.0) + weight
    for line in effect.log:
        state.log(kind, line, actor=actor, target=target)


def _record_usage(state: MatchState, command_id: str, actor: int) -> None:
    limit = get_command(command_id).limit
    if limit == "day":
        state.daily_used.setdefault(actor, set()).add(command_id)
    elif limit == "match":
        state.match_used.setdefault(actor, set()).add(command_id)


def commit(state: MatchState, ctx: TurnContext, actor: int, command_id: str, target: Optional[int] = None) -> TurnContext:
    """Apply one command and return the context that replaces ctx."""
    command = get_command(command_id)
    assert actor not in ctx.spoken, f"character {actor} already spoke this turn"
    assert command.context_legal(state, ctx, actor, target), f"illegal {command_id} by {actor} on {target}"
    effect = command.apply(state, ctx, actor, target, state.rng)
    apply_effect(state, effect, actor, target)
    _record_usage(state, command_id, actor)
    logger.debug("day %d turn %d: %s by %d on %s", ctx.day, ctx.turn, command_id, actor, target)
    return next_context(ctx, command, actor, target, effect)


def detection_chance(state: MatchState, observer: int, liar: int) -> float:
    intuition = scaled(state.characters[observer], "intuition")
    acting = scaled(state.characters[liar], "acting")
    return (
        0.06
        + intuition * 0.22
        - acting * 0.16
        - state.relations.get_trust(observer, liar) / 100 * 0.08
        + state.suspicion[liar] / 100 * 0.06
    )


def lie_detection_pass(state: MatchState) -> list[tuple[int, int]]:
    """
    Every alive character whose claim differs from its role may be seen
    through by each other alive character. Returns new (observer, liar) pairs.
    """
    found = []
    alive = state.alive_indices()
    for liar in alive:
        character = state.characters[liar]
        if character.claim is None or character.claim == character.role:
            continue
        for observer in alive:
            if observer == liar or state.memory.has_detected(observer, liar):
                continue
            if state.rng.random() < detection_chance(state, observer, liar):
                state.memory.lie_detected_by.setdefault(observer, set()).add(liar)
                state.suspicion[liar] = _clamp_suspicion(state.suspicion[liar] + LIE_SUSPICION_BUMP)
                state.log(
                    EventKind.LIE_DETECTED,
                    f"{state.name(observer)} senses that {state.name(liar)} is lying.",
                    actor=observer,
                    target=liar,
                )
                found.append((observer, liar))
    return found


def close_turn(state: MatchState) -> None:
    """Aggro decay, then the lie-detection pass."""
    for idx in state.alive_indices():
        state.aggro[idx] = max(0.0, state.aggro[idx] - AGGRO_DECAY)
    lie_detection_pass(state)


def run_turn(state: MatchState) -> TurnContext:
    """
    Run one full day-turn (mutates state): root pick, follow-up chain,
    then turn-close maintenance. Returns the final context.
    """
    rng = state.rng
    state.turn += 1
    ctx = new_context(state.day, state.turn)
    state.log(EventKind.TURN_START, f"-- Day {state.day}, turn {state.turn}/{DAY_TURNS} --")

    speaker = ai.pick_root_speaker(state, rng)
    command_id = ai.pick_root_command(state, ctx, speaker, rng) if speaker is not None else None
    if command_id is None:
        state.log(EventKind.COMMAND, "Nobody speaks up.")
    else:
        target = None
        if get_command(command_id).arity == TargetArity.REQUIRED:
            target = ai.pick_target_for_root(state, ctx, speaker, command_id, rng)
        ctx = commit(state, ctx, speaker, command_id, target)
        # each character speaks at most once, so the chain is bounded by the roster
        for _ in range(len(state.characters)):
            if ctx.ended:
                break
            choice = ai.pick_follow_up(state, ctx, rng)
            if choice is None:
                break
            ctx = commit(state, ctx, *choice)

    close_turn(state)
    return ctx
