"""
Decision engine: weighted random choices for every character decision.
Functions read state and never mutate it; randomness comes only from the
rng argument.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

from gnosia.commands import (
    ATTACK_ROOTS,
    COMMANDS,
    Command,
    commands_in,
    day_followups,
    get_command,
    scaled,
)
from gnosia.rules import (
    VOTE_CERTIFIED_HUMAN,
    VOTE_CERTIFIED_INFILTRATOR,
    VOTE_COOPERATING,
    VOTE_FELLOW_INFILTRATOR,
    VOTE_HINT_SCALE,
    VOTE_LIE_DETECTED,
    Category,
    Role,
    is_human,
    is_liar,
)
from gnosia.state import MatchState, TurnContext

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOGIC_ROOTS = frozenset({"vote_for", "vote_against", "certify_human", "certify_infiltrator", "exclude_role"})
SOCIAL_ROOTS = frozenset({"smalltalk", "cooperate", "cover"})
AGGRESSIVE_ROOTS = frozenset({"suspect"})
REVEAL_ROOTS = frozenset({"claim_role", "request_role_reveal", "ask_declare_human"})
RISKY_ROOTS = frozenset({"suspect", "vote_for", "certify_infiltrator", "exclude_role", "ask_declare_human"})
# Aimed at someone; dampened when the speaker would hit a fellow infiltrator
HOSTILE = frozenset({"suspect", "vote_for", "certify_infiltrator", "agree_suspicion", "rebut", "join_rebut"})

ATTACK_FOLLOWS = frozenset({"agree_suspicion", "rebut", "join_rebut"})
DEFEND_FOLLOWS = frozenset({"defend", "join_defend"})
AGREEMENT = frozenset({"agree_suspicion", "join_defend", "join_rebut", "agree_proposal", "join_smalltalk", "declare_human"})
DEFENSIVE = frozenset({"deny", "ask_for_help", "feel_sad", "evade"})

ALLY_FACTOR = 0.1
SUCCESSOR_BOOST = 1.3
MIN_WEIGHT = 0.01


def weighted_choice(rng: random.Random, options: Sequence[tuple[T, float]]) -> Optional[T]:
    """
    Draw one item proportionally to its weight. Returns None when there are
    no options or every weight is zero.
    """
    total = sum(max(0.0, w) for _, w in options)
    if total <= 0:
        return None
    r = rng.random() * total
    for item, w in options:
        r -= max(0.0, w)
        if r <= 0:
            return item
    return options[-1][0]


def _fellow_infiltrators(state: MatchState, a: int, b: int) -> bool:
    return state.characters[a].role == Role.INFILTRATOR and state.characters[b].role == Role.INFILTRATOR


def root_speaker_weight(state: MatchState, idx: int) -> float:
    stealth = scaled(state.characters[idx], "stealth")
    return 1 - min(0.75, (state.aggro[idx] / 60) * (1 - stealth)) + 0.05


def pick_root_speaker(state: MatchState, rng: random.Random) -> Optional[int]:
    """Who opens the turn. Silenced characters never open."""
    options = [
        (i, root_speaker_weight(state, i))
        for i in state.alive_indices()
        if i not in state.flags.infiltrator_certified
    ]
    return weighted_choice(rng, options)


def root_command_weight(state: MatchState, speaker: int, command_id: str) -> float:
    character = state.characters[speaker]
    p = character.personality
    w = 1.0
    if command_id in LOGIC_ROOTS:
        w *= 0.8 + p.logical * 1.2
    if command_id in SOCIAL_ROOTS:
        w *= 0.8 + (p.social + p.cheer) * 0.8 + p.kindness * 0.6
    if command_id in AGGRESSIVE_ROOTS:
        w *= 0.7 + (1 - p.kindness) * 0.8
    if command_id in REVEAL_ROOTS:
        w *= 0.7 + p.courage * 1.2
    if command_id == "claim_role" and is_liar(character.role):
        w *= 0.3 + p.desire * 0.7
    if command_id in RISKY_ROOTS:
        w *= 1 - min(0.55, state.aggro[speaker] / 120)
    if command_id in ATTACK_ROOTS and state.memory.has_detected(speaker):
        w *= 1.6
    return max(MIN_WEIGHT, w)


def pick_root_command(state: MatchState, ctx: TurnContext, speaker: int, rng: random.Random) -> Optional[str]:
    """Among root commands the speaker can legally use on someone, pick one."""
    options = [
        (cmd.id, root_command_weight(state, speaker, cmd.id))
        for cmd in commands_in(Category.ROOT)
        if cmd.candidates(state, ctx, speaker)
    ]
    return weighted_choice(rng, options)


def target_weight(state: MatchState, speaker: int, command_id: str, target: int) -> float:
    susp = state.suspicion[target]
    trust = state.relations.get_trust(speaker, target)
    favor = state.relations.get_favor(speaker, target)
    distrust = max(0.0, (60 - trust) / 60)
    if command_id == "suspect":
        w = 0.4 + susp / 100 * 1.6 + distrust * 0.8
    elif command_id == "cover":
        w = 0.4 + favor / 100 * 1.6 + trust / 100 * 0.9
    elif command_id == "vote_for":
        w = 0.5 + susp / 100 * 1.8 + state.aggro[target] / 120
    elif command_id == "vote_against":
        w = 0.6 + favor / 100 * 1.2 + trust / 100 * 1.0
    elif command_id == "certify_human":
        w = 0.7 + trust / 100 * 1.5
    elif command_id == "certify_infiltrator":
        w = 0.7 + susp / 100 * 2.0 + distrust
    elif command_id == "cooperate":
        w = 0.8 + favor / 100 * 1.7
    else:
        w = 1.0
    if command_id == "suspect" and target in state.flags.human_certified:
        w *= 0.05
    if command_id == "cover" and target in state.flags.infiltrator_certified:
        w *= 0.05
    if command_id in HOSTILE:
        if _fellow_infiltrators(state, speaker, target):
            w *= ALLY_FACTOR
        if state.memory.has_detected(speaker, target):
            w *= 1.5
    return max(MIN_WEIGHT, w)


def pick_target_for_root(
    state: MatchState,
    ctx: TurnContext,
    speaker: int,
    command_id: str,
    rng: random.Random,
) -> Optional[int]:
    command = get_command(command_id)
    targets = [t for t in command.candidates(state, ctx, speaker) if t is not None]
    return weighted_choice(rng, [(t, target_weight(state, speaker, command_id, t)) for t in targets])


def silence_chance(state: MatchState, ctx: TurnContext, idx: int) -> float:
    """Probability a character holds back from a follow-up."""
    stealth = scaled(state.characters[idx], "stealth")
    silence = 0.35 + stealth * 0.25 + min(0.35, state.aggro[idx] / 180)
    if idx == ctx.attacked:
        silence *= 0.5
    return max(0.05, min(0.9, silence))


def follow_weight(state: MatchState, ctx: TurnContext, actor: int, command: Command, target: Optional[int]) -> float:
    """Context-aware weight of one follow/react/meta option."""
    character = state.characters[actor]
    p = character.personality
    cid = command.id
    rt, ra = ctx.root_target, ctx.root_actor
    w = 1.0

    if rt is not None and rt != actor:
        susp = state.suspicion[rt]
        trust = state.relations.get_trust(actor, rt)
        favor = state.relations.get_favor(actor, rt)
        if cid in ATTACK_FOLLOWS:
            w *= 0.6 + susp / 100 * 1.3 + max(0.0, (60 - trust) / 60) * 0.6
            if _fellow_infiltrators(state, actor, rt):
                w *= ALLY_FACTOR
        elif cid in DEFEND_FOLLOWS:
            w *= 0.6 + favor / 100 * 1.4 + trust / 100 * 0.6 + p.kindness * 0.6
            if _fellow_infiltrators(state, actor, rt) or state.flags.cooperation.get(actor) == rt:
                w *= 1.5
        elif cid == "agree_proposal" and ctx.root_id == "vote_for":
            w *= 0.6 + susp / 100
        elif cid == "agree_proposal" and ctx.root_id == "vote_against":
            w *= 0.6 + favor / 100
        elif cid == "disagree_proposal" and ctx.root_id == "vote_for":
            w *= 0.2 + favor / 100 * 0.8
        elif cid == "disagree_proposal" and ctx.root_id == "vote_against":
            w *= 0.2 + susp / 100 * 0.8

    if cid == "ask_for_help":
        w *= (1.2 + (p.cheer + p.social) * 0.4) * (0.2 + state.relations.get_favor(target, actor) / 100)
    elif cid == "deny":
        w *= 1.2
    elif cid == "evade":
        w *= 0.6 + scaled(character, "stealth")
    elif cid == "feel_sad":
        w *= 0.8 + scaled(character, "charm") * 1.2
    elif cid in ("counter", "dont_be_fooled", "block_rebuttal"):
        w *= 0.8 + p.logical
    elif cid == "emphasize":
        w *= 0.8 + scaled(character, "acting") * 1.2
    elif cid == "ask_agreement":
        w *= 0.8 + scaled(character, "charisma") * 1.2
    elif cid == "loud" and ra is not None:
        w *= 0.3 + state.aggro[ra] / 40
    elif cid == "thank":
        w *= 1.0 + p.kindness
    elif cid == "claim_too":
        w *= 0.25 + p.courage * 0.5 + p.desire * 0.5 if is_liar(character.role) else 2.0 + p.courage
    elif cid == "disagree_proposal" and ctx.excluded_role is not None:
        w *= 2.0 if character.claim == ctx.excluded_role else 0.3
    elif cid == "join_smalltalk":
        w *= 0.8 + p.social + p.cheer
    elif cid == "stop_smalltalk":
        w *= 0.2 + p.logical * 0.6 + (1 - p.social) * 0.3
    elif cid == "declare_human":
        w *= 1.5 + p.kindness if is_human(character.role) else 1.0 + scaled(character, "acting")
    elif cid == "refuse_declare":
        w *= 0.1 + (1 - p.social) * 0.2 if is_human(character.role) else 0.2 + p.desire * 0.3
    elif cid == "stop_declare":
        w *= 0.1 + p.courage * 0.2 if is_human(character.role) else 0.2 + p.courage * 0.4

    if cid == "dont_be_fooled" and ra is not None and state.memory.has_detected(actor, ra):
        w *= 1.8
    if cid in AGREEMENT:
        w *= 1 + ctx.support_window
    if ctx.last_command is not None and cid in COMMANDS[ctx.last_command].successor_hints():
        w *= SUCCESSOR_BOOST
    if cid not in DEFENSIVE:
        w *= 1 - min(0.35, state.aggro[actor] / 180)
    return max(MIN_WEIGHT, w)


def follow_options(state: MatchState, ctx: TurnContext, actor: int) -> list[tuple[tuple[str, Optional[int]], float]]:
    options = []
    for command in day_followups():
        for target in command.candidates(state, ctx, actor):
            options.append(((command.id, target), follow_weight(state, ctx, actor, command, target)))
    return options


def pick_follow_up(state: MatchState, ctx: TurnContext, rng: random.Random) -> Optional[tuple[int, str, Optional[int]]]:
    """
    Next (speaker, command_id, target) in the chain, or None to end it.
    Each unspoken character with a legal option rolls against its silence
    chance; the speaker is drawn uniformly from those who want to talk.
    """
    if ctx.ended or ctx.root_id is None:
        return None
    attempts: list[tuple[int, str, Optional[int]]] = []
    for idx in state.alive_indices():
        if idx in ctx.spoken:
            continue
        options = follow_options(state, ctx, idx)
        if not options:
            continue
        if rng.random() <= silence_chance(state, ctx, idx):
            continue
        choice = weighted_choice(rng, options)
        if choice is not None:
            attempts.append((idx, choice[0], choice[1]))
    if not attempts:
        logger.debug("chain ends on day %d turn %d after %s", ctx.day, ctx.turn, ctx.last_command)
        return None
    return rng.choice(attempts)


@dataclass(frozen=True)
class NightAction:
    kind: str  # "alone", "hang_out" or "night_cooperate"
    target: Optional[int] = None


def pick_night_action(state: MatchState, actor: int, available: Sequence[int], rng: random.Random) -> NightAction:
    """Free action for one character; `available` are the still-unpaired characters."""
    p = state.characters[actor].personality
    partners = [t for t in available if t != actor]
    coop = get_command("night_cooperate")
    coop_targets = [t for t in partners if coop.context_legal(state, None, actor, t)]

    options: list[tuple[str, float]] = [("alone", 0.6 + (1 - p.social) * 0.8)]
    if partners:
        options.append(("hang_out", 0.8 + p.social * 1.2 + p.cheer * 0.6))
    if coop_targets:
        options.append(("night_cooperate", 0.6 + p.social * 1.0 + (1 - p.desire) * 0.4))
    kind = weighted_choice(rng, options)
    if kind == "alone":
        return NightAction("alone")
    pool = partners if kind == "hang_out" else coop_targets
    target = weighted_choice(rng, [(t, 0.2 + state.relations.get_favor(actor, t) / 100) for t in pool])
    return NightAction(kind, target)


def vote_weight(state: MatchState, voter: int, candidate: int) -> float:
    favor = state.relations.get_favor(voter, candidate) / 100
    trust = state.relations.get_trust(voter, candidate) / 100
    w = 1 + state.suspicion[candidate] / 35 + state.aggro[candidate] / 80 + (1 - favor) * 0.8 + (1 - trust) * 0.6
    hint = state.flags.vote_hints.get(candidate, 0.0)
    if hint > 0:
        w *= 1 + hint * VOTE_HINT_SCALE
    elif hint < 0:
        w /= 1 + abs(hint) * VOTE_HINT_SCALE
    if candidate in state.flags.human_certified:
        w *= VOTE_CERTIFIED_HUMAN
    if candidate in state.flags.infiltrator_certified:
        w *= VOTE_CERTIFIED_INFILTRATOR
    if state.flags.cooperation.get(voter) == candidate:
        w *= VOTE_COOPERATING
    if state.memory.has_detected(voter, candidate):
        w *= VOTE_LIE_DETECTED
    if _fellow_infiltrators(state, voter, candidate):
        w *= VOTE_FELLOW_INFILTRATOR
    return w


def pick_vote(state: MatchState, voter: int, rng: random.Random) -> Optional[int]:
    options = [(c, vote_weight(state, voter, c)) for c in state.alive_indices() if c != voter]
    return weighted_choice(rng, options)


def pick_engineer_target(state: MatchState, engineer: int, rng: random.Random) -> Optional[int]:
    others = [t for t in state.alive_indices() if t != engineer]
    fresh = [t for t in others if t not in state.memory.scanned]
    pool = fresh or others
    options = [
        (t, 0.1 + state.suspicion[t] / 100 * 1.5 + state.aggro[t] / 60
         + (100 - state.relations.get_trust(engineer, t)) / 100)
        for t in pool
    ]
    return weighted_choice(rng, options)


def pick_guardian_target(state: MatchState, guardian: int, rng: random.Random) -> Optional[int]:
    options = [
        (t, 0.2 + state.relations.get_favor(guardian, t) / 100 + state.relations.get_trust(guardian, t) / 100 * 0.8)
        for t in state.alive_indices()
        if t != guardian
    ]
    return weighted_choice(rng, options)


def pick_infiltrator_victim(state: MatchState, rng: random.Random) -> Optional[int]:
    """Joint choice of every alive infiltrator; other infiltrators are never candidates."""
    hunters = state.alive_with_role(Role.INFILTRATOR)
    if not hunters:
        return None
    options = []
    for v in state.alive_indices():
        if state.characters[v].role == Role.INFILTRATOR:
            continue
        dislike = sum(
            (100 - state.relations.get_favor(g, v)) / 100 * (0.5 + state.characters[g].personality.desire)
            + (100 - state.relations.get_trust(g, v)) / 100 * 0.8
            for g in hunters
        )
        threat = sum((100 - state.relations.get_trust(v, g)) / 100 for g in hunters) / len(hunters)
        w = 0.2 + dislike + threat + state.aggro[v] / 60 + (100 - state.suspicion[v]) / 100 * 0.5
        options.append((v, w))
    return weighted_choice(rng, options)
