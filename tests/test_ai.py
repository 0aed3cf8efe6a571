"""Unit tests for the decision engine."""

import random
from dataclasses import replace

import pytest

from conftest import FixedRandom, build_state
from gnosia import ai
from gnosia.commands import get_command, new_context
from gnosia.rules import (
    VOTE_CERTIFIED_HUMAN,
    VOTE_CERTIFIED_INFILTRATOR,
    VOTE_FELLOW_INFILTRATOR,
    VOTE_LIE_DETECTED,
    Phase,
    Role,
    TargetArity,
)
from gnosia.state import Stats
from gnosia.turn import commit


def test_weighted_choice_empty_or_zero():
    rng = random.Random(0)
    assert ai.weighted_choice(rng, []) is None
    assert ai.weighted_choice(rng, [("a", 0.0), ("b", 0.0)]) is None


def test_weighted_choice_skips_zero_weight():
    rng = random.Random(0)
    for _ in range(50):
        assert ai.weighted_choice(rng, [("a", 0.0), ("b", 1.0), ("c", 0.0)]) == "b"


def test_weighted_choice_edges():
    assert ai.weighted_choice(FixedRandom(0.0), [("a", 1.0), ("b", 1.0)]) == "a"
    assert ai.weighted_choice(FixedRandom(0.99), [("a", 1.0), ("b", 1.0)]) == "b"


def test_root_speaker_weight_drops_with_aggro():
    state = build_state(stats={1: Stats(stealth=50)})
    calm = ai.root_speaker_weight(state, 0)
    state.aggro[0] = 60.0
    state.aggro[1] = 60.0
    assert ai.root_speaker_weight(state, 0) < calm
    # full stealth hides the aggro entirely
    assert ai.root_speaker_weight(state, 1) == pytest.approx(calm)
    state.aggro[0] = 1000.0
    assert ai.root_speaker_weight(state, 0) == pytest.approx(0.3)


def test_certified_infiltrator_never_opens():
    state = build_state()
    state.flags.infiltrator_certified.update({0, 1, 2, 3, 4})
    for seed in range(20):
        assert ai.pick_root_speaker(state, random.Random(seed)) == 5


def test_root_command_is_legal():
    state = build_state(stats={i: Stats(logic=30, charisma=30, stealth=30, intuition=30, charm=30) for i in range(6)})
    ctx = new_context(1, 1)
    for seed in range(30):
        rng = random.Random(seed)
        speaker = ai.pick_root_speaker(state, rng)
        cid = ai.pick_root_command(state, ctx, speaker, rng)
        assert cid is not None
        target = None
        if get_command(cid).arity == TargetArity.REQUIRED:
            target = ai.pick_target_for_root(state, ctx, speaker, cid, rng)
            assert target is not None and target != speaker
        assert get_command(cid).context_legal(state, ctx, speaker, target)


def test_target_weight_prefers_suspicious():
    state = build_state()
    state.suspicion[1] = 90.0
    state.suspicion[2] = 10.0
    assert ai.target_weight(state, 0, "suspect", 1) > ai.target_weight(state, 0, "suspect", 2)


def test_target_weight_shields_fellow_infiltrator():
    state = build_state(roles={0: Role.INFILTRATOR, 1: Role.INFILTRATOR})
    assert ai.target_weight(state, 0, "suspect", 1) < ai.target_weight(state, 0, "suspect", 2)


def test_follow_up_is_legal_and_unspoken():
    for seed in range(30):
        state = build_state(rng=random.Random(seed))
        ctx = commit(state, new_context(1, 1), 0, "suspect", 1)
        choice = ai.pick_follow_up(state, ctx, state.rng)
        if choice is None:
            continue
        actor, cid, target = choice
        assert actor not in ctx.spoken
        assert get_command(cid).context_legal(state, ctx, actor, target)


def test_follow_up_none_without_root_or_after_end():
    state = build_state()
    assert ai.pick_follow_up(state, new_context(1, 1), state.rng) is None
    ctx = commit(state, new_context(1, 1), 0, "suspect", 1)
    ctx = replace(ctx, ended=True)
    assert ai.pick_follow_up(state, ctx, state.rng) is None


def test_follow_up_none_when_everyone_silent():
    state = build_state(rng=FixedRandom(0.0))
    ctx = commit(state, new_context(1, 1), 0, "suspect", 1)
    assert ai.pick_follow_up(state, ctx, state.rng) is None


def test_silence_chance_halved_for_attacked():
    state = build_state()
    ctx = commit(state, new_context(1, 1), 0, "suspect", 1)
    assert ai.silence_chance(state, ctx, 1) == pytest.approx(ai.silence_chance(state, ctx, 2) / 2)


def test_vote_weight_multipliers():
    state = build_state(roles={4: Role.INFILTRATOR, 5: Role.INFILTRATOR})
    base = ai.vote_weight(state, 0, 1)
    state.flags.human_certified.add(1)
    assert ai.vote_weight(state, 0, 1) == pytest.approx(base * VOTE_CERTIFIED_HUMAN)

    state.flags.infiltrator_certified.add(2)
    assert ai.vote_weight(state, 0, 2) == pytest.approx(base * VOTE_CERTIFIED_INFILTRATOR)

    state.memory.lie_detected_by[0] = {3}
    assert ai.vote_weight(state, 0, 3) == pytest.approx(base * VOTE_LIE_DETECTED)

    assert ai.vote_weight(state, 4, 5) == pytest.approx(ai.vote_weight(state, 4, 0) * VOTE_FELLOW_INFILTRATOR)


def test_vote_hint_sign():
    state = build_state()
    base = ai.vote_weight(state, 0, 1)
    state.flags.vote_hints[1] = 2.0
    assert ai.vote_weight(state, 0, 1) == pytest.approx(base * 2.0)
    state.flags.vote_hints[1] = -2.0
    assert ai.vote_weight(state, 0, 1) == pytest.approx(base / 2.0)


def test_pick_vote_never_self():
    state = build_state()
    for seed in range(30):
        assert ai.pick_vote(state, 2, random.Random(seed)) not in (None, 2)


def test_infiltrator_victim_is_never_infiltrator():
    state = build_state(roles={0: Role.INFILTRATOR, 3: Role.INFILTRATOR})
    for seed in range(50):
        victim = ai.pick_infiltrator_victim(state, random.Random(seed))
        assert victim is not None
        assert state.characters[victim].role != Role.INFILTRATOR


def test_infiltrator_victim_none_without_infiltrators():
    assert ai.pick_infiltrator_victim(build_state(), random.Random(0)) is None


def test_engineer_prefers_unscanned():
    state = build_state(roles={0: Role.ENGINEER})
    state.memory.scanned.update({1, 2, 3, 4})
    for seed in range(20):
        assert ai.pick_engineer_target(state, 0, random.Random(seed)) == 5


def test_guardian_never_protects_self():
    state = build_state(roles={2: Role.GUARDIAN})
    for seed in range(20):
        assert ai.pick_guardian_target(state, 2, random.Random(seed)) != 2


def test_night_cooperate_only_when_opted_in():
    state = build_state()
    state.phase = Phase.NIGHT_FREE
    for seed in range(40):
        action = ai.pick_night_action(state, 0, [1, 2, 3], random.Random(seed))
        assert action.kind in ("alone", "hang_out")
        if action.kind == "hang_out":
            assert action.target in (1, 2, 3)

    state.characters[0].allowed["night_cooperate"] = True
    kinds = {ai.pick_night_action(state, 0, [1, 2, 3], random.Random(seed)).kind for seed in range(100)}
    assert "night_cooperate" in kinds


def test_night_action_alone_without_partners():
    state = build_state()
    state.phase = Phase.NIGHT_FREE
    assert ai.pick_night_action(state, 0, [0], random.Random(1)).kind == "alone"
