"""Unit tests for the turn controller: committing effects, lie detection and day-turns."""

import random

import pytest

from conftest import FixedRandom, build_state
from gnosia.commands import Effect
from gnosia.rules import AGGRO_DECAY, LIE_SUSPICION_BUMP, Role
from gnosia.state import EventKind
from gnosia.turn import apply_effect, close_turn, form_pair, lie_detection_pass, run_turn


def test_form_pair_is_symmetric_and_exclusive():
    state = build_state()
    form_pair(state, 0, 1)
    assert state.flags.cooperation == {0: 1, 1: 0}
    form_pair(state, 1, 2)
    form_pair(state, 3, 3)
    assert state.flags.cooperation == {0: 1, 1: 0}


def test_apply_effect_clamps_and_logs():
    state = build_state()
    effect = Effect(aggro=[(0, -5.0)], suspicion=[(1, 80.0), (2, -80.0)])
    effect.relate(0, 1, 10.0, -10.0)
    effect.say("hello")
    apply_effect(state, effect, actor=0, target=1)
    assert state.aggro[0] == 0.0
    assert state.suspicion[1] == 100.0
    assert state.suspicion[2] == 0.0
    assert state.relations.get_trust(0, 1) == 60
    assert state.relations.get_favor(0, 1) == 40
    assert state.events[-1].message == "hello"
    assert state.events[-1].kind == EventKind.COMMAND
    assert state.events[-1].actor == 0


def test_apply_effect_on_dead_character_asserts():
    state = build_state()
    state.characters[3].alive = False
    with pytest.raises(AssertionError):
        apply_effect(state, Effect(suspicion=[(3, 1.0)]))
    effect = Effect()
    effect.relate(0, 3, 1.0, 1.0)
    with pytest.raises(AssertionError):
        apply_effect(state, effect)


def test_lie_detection_flags_liar_once():
    state = build_state(
        roles={2: Role.INFILTRATOR},
        rng=FixedRandom(0.0),
    )
    state.characters[2].claim = Role.ENGINEER
    found = lie_detection_pass(state)
    # every other alive character sees through the flat-stat liar
    assert sorted(found) == [(o, 2) for o in (0, 1, 3, 4, 5)]
    assert state.suspicion[2] == min(100.0, 50 + 5 * LIE_SUSPICION_BUMP)
    assert all(state.memory.has_detected(o, 2) for o in (0, 1, 3, 4, 5))
    assert [e.kind for e in state.events].count(EventKind.LIE_DETECTED) == 5

    assert lie_detection_pass(state) == []
    assert state.suspicion[2] == min(100.0, 50 + 5 * LIE_SUSPICION_BUMP)


def test_lie_detection_ignores_honest_claims():
    state = build_state(roles={2: Role.ENGINEER}, rng=FixedRandom(0.0))
    state.characters[2].claim = Role.ENGINEER
    assert lie_detection_pass(state) == []


def test_close_turn_decays_aggro():
    state = build_state()
    state.aggro[0] = 10.0
    state.aggro[1] = 1.0
    close_turn(state)
    assert state.aggro[0] == pytest.approx(10.0 - AGGRO_DECAY)
    assert state.aggro[1] == 0.0


def test_run_turn_invariants():
    for seed in range(25):
        state = build_state(rng=random.Random(seed))
        ctx = run_turn(state)
        assert state.turn == 1
        assert ctx.root_id is not None
        # one speaker per command, plus any helper pulled in
        assert len(ctx.used) <= len(ctx.spoken)
        assert ctx.used[0] == ctx.root_id
        for i in range(6):
            assert 0 <= state.suspicion[i] <= 100
            assert state.aggro[i] >= 0
        assert state.events[0].kind == EventKind.TURN_START


def test_run_turn_skips_dead_and_silenced():
    for seed in range(15):
        state = build_state(rng=random.Random(seed))
        state.characters[5].alive = False
        state.flags.infiltrator_certified.add(4)
        ctx = run_turn(state)
        assert 5 not in ctx.spoken
        assert ctx.root_actor != 4
