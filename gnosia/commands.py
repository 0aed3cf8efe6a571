"""
Command catalog: every day, vote and night command with its legality rules
and effect function. Effects are computed here and committed by the turn
controller; nothing in this module mutates MatchState.
"""

import random
from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar, Optional

from gnosia.roles import can_claim, claimable_roles
from gnosia.rules import CLAIMABLE_ROLES, EVASION_BASE, EVASION_MIN_STEALTH, STAT_MAX, Category, Phase, Role, TargetArity, is_human
from gnosia.state import Character, MatchState, TurnContext

# Additive base of attack/support damage, before the stat-proportional term
ATTACK_BASE = 2.0
SUPPORT_BASE = 1.5

# Follow-up variants hit at this fraction of the root's power and aggro
JOIN_POWER = 0.55
JOIN_AGGRO = 0.6

BLOCK_AGGRO_MULT = 2.2

ATTACK_ROOTS = frozenset({"suspect", "vote_for", "certify_infiltrator"})
PROPOSAL_ROOTS = frozenset({"vote_for", "vote_against", "exclude_role"})
# Roots after which an attacked character may react
REACT_ROOTS = ATTACK_ROOTS | {"cover", "vote_against"}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def scaled(character: Character, stat: str) -> float:
    """Stat normalized to [0, 1]."""
    return getattr(character.stats, stat) / STAT_MAX


def aggro_gain(character: Character, base: float) -> float:
    """Aggro earned by speaking; stealth mitigates up to 55%."""
    return base * (1 - min(0.55, scaled(character, "stealth") * 0.55))


def lie_exposure(character: Character) -> float:
    return _clamp(1.15 - scaled(character, "acting") * 0.7, 0.35, 1.15)


def detection_weight(character: Character) -> float:
    return _clamp(scaled(character, "intuition"), 0.0, 1.0)


def defense_factor(character: Character) -> float:
    """Fraction of incoming damage that gets through (charm mitigates up to 45%)."""
    return 1 - min(0.45, scaled(character, "charm") * 0.45)


def attack_damage(attacker: Character, target: Character, scale: float = 1.0) -> tuple[float, float]:
    """(trust_dmg, favor_dmg) of an attack, after the target's defense."""
    mitigation = defense_factor(target) * scale
    trust_dmg = (ATTACK_BASE + scaled(attacker, "logic") * 16) * mitigation
    favor_dmg = (ATTACK_BASE + scaled(attacker, "acting") * 16) * mitigation
    return trust_dmg, favor_dmg


def deny_relief(character: Character) -> float:
    """Suspicion removed by a denial."""
    return 2.0 + scaled(character, "logic") * 6


@dataclass
class RelationDelta:
    frm: int
    to: int
    trust: float = 0.0
    favor: float = 0.0


@dataclass
class Effect:
    """Everything one command changes. Applied by a single committer."""

    log: list[str] = field(default_factory=list)
    relations: list[RelationDelta] = field(default_factory=list)
    aggro: list[tuple[int, float]] = field(default_factory=list)
    suspicion: list[tuple[int, float]] = field(default_factory=list)
    certify_human: list[int] = field(default_factory=list)
    certify_infiltrator: list[int] = field(default_factory=list)
    claims: list[tuple[int, Role]] = field(default_factory=list)
    cooperation: Optional[tuple[int, int]] = None
    vote_hints: list[tuple[int, float]] = field(default_factory=list)
    also_spoke: list[int] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    end_turn: bool = False
    cancel_elimination: bool = False

    def relate(self, frm: int, to: int, trust: float = 0.0, favor: float = 0.0) -> None:
        self.relations.append(RelationDelta(frm, to, trust, favor))

    def say(self, line: str) -> None:
        self.log.append(line)


ApplyFn = Callable[[MatchState, Optional[TurnContext], int, Optional[int], random.Random], Effect]
CheckFn = Callable[[MatchState, Optional[TurnContext], int], bool]
TargetCheckFn = Callable[[MatchState, Optional[TurnContext], int, int], bool]


@dataclass(frozen=True, eq=False)
class Command:
    """Base command definition. Subclasses fix the category and its context rule."""

    id: str
    name: str
    apply: ApplyFn
    arity: TargetArity = TargetArity.NONE
    phase: Phase = Phase.DAY
    requires: tuple[tuple[str, float], ...] = ()
    after: frozenset[str] = frozenset()
    check: Optional[CheckFn] = None
    target_check: Optional[TargetCheckFn] = None
    successors: tuple[str, ...] = ()
    rebuttal: bool = False
    limit: Optional[str] = None  # "day" or "match"
    opt_in: bool = False

    category: ClassVar[Category]

    @property
    def user_selectable(self) -> bool:
        return self.category != Category.META

    def stat_requirement(self, character: Character) -> bool:
        return all(getattr(character.stats, stat) >= minimum for stat, minimum in self.requires)

    def successor_hints(self) -> tuple[str, ...]:
        return self.successors

    def is_enabled_for(self, character: Character) -> bool:
        if not self.user_selectable:
            return True
        if self.opt_in:
            return character.allowed.get(self.id, False)
        return character.allows(self.id)

    def limit_reached(self, state: MatchState, actor: int) -> bool:
        if self.limit == "day":
            return self.id in state.daily_used.get(actor, set())
        if self.limit == "match":
            return self.id in state.match_used.get(actor, set())
        return False

    def _actor_legal(self, state: MatchState, actor: int) -> bool:
        character = state.characters[actor]
        return (
            character.alive
            and self.stat_requirement(character)
            and self.is_enabled_for(character)
            and not self.limit_reached(state, actor)
        )

    def _category_legal(self, state: MatchState, ctx: TurnContext, actor: int) -> bool:
        raise NotImplementedError

    def _target_legal(self, state: MatchState, ctx: Optional[TurnContext], actor: int, target: Optional[int]) -> bool:
        if target is None:
            return self.arity != TargetArity.REQUIRED
        if self.arity == TargetArity.NONE:
            return False
        if target == actor or not 0 <= target < len(state.characters) or not state.is_alive(target):
            return False
        return self.target_check is None or self.target_check(state, ctx, actor, target)

    def context_legal(self, state: MatchState, ctx: Optional[TurnContext], actor: int, target: Optional[int] = None) -> bool:
        """Full legality of `actor` using this command on `target` right now."""
        if ctx is None or ctx.phase != self.phase or ctx.ended:
            return False
        if actor in ctx.spoken or not self._actor_legal(state, actor):
            return False
        if not self._category_legal(state, ctx, actor):
            return False
        if self.rebuttal and ctx.block_rebuttal:
            return False
        if self.check is not None and not self.check(state, ctx, actor):
            return False
        return self._target_legal(state, ctx, actor, target)

    def candidates(self, state: MatchState, ctx: Optional[TurnContext], actor: int) -> list[Optional[int]]:
        """Legal targets for actor; [None] for untargeted commands, [] if illegal."""
        if self.arity == TargetArity.REQUIRED:
            return [t for t in state.alive_indices() if self.context_legal(state, ctx, actor, t)]
        return [None] if self.context_legal(state, ctx, actor, None) else []


class RootCommand(Command):
    """Opens a turn. Silenced (certified-infiltrator) characters cannot open."""

    category = Category.ROOT

    def _category_legal(self, state, ctx, actor):
        return ctx.root_id is None and actor not in state.flags.infiltrator_certified


class FollowCommand(Command):
    category = Category.FOLLOW

    def _category_legal(self, state, ctx, actor):
        return ctx.root_id in self.after and actor not in state.flags.infiltrator_certified


class ReactCommand(Command):
    """Answers a root. Silenced characters may only react when they are the one attacked."""

    category = Category.REACT

    def _category_legal(self, state, ctx, actor):
        if actor in state.flags.infiltrator_certified and actor != ctx.attacked:
            return False
        return ctx.root_id in self.after


class MetaCommand(Command):
    """Selected internally during chains; never offered to the user."""

    category = Category.META

    def _category_legal(self, state, ctx, actor):
        return ctx.root_id in self.after


class ResolveCommand(Command):
    """Used by the scheduler outside day-turns (vote evasion, night actions)."""

    category = Category.RESOLVE

    def _category_legal(self, state, ctx, actor):
        return True

    def context_legal(self, state, ctx, actor, target=None):
        if state.phase != self.phase or not self._actor_legal(state, actor):
            return False
        if self.check is not None and not self.check(state, ctx, actor):
            return False
        return self._target_legal(state, ctx, actor, target)


def _others(state: MatchState, *exclude: Optional[int]) -> list[int]:
    return [i for i in state.alive_indices() if i not in exclude]


def _persuasion(state: MatchState, observer: int, speaker: int) -> float:
    return 0.2 + state.relations.get_trust(observer, speaker) / 100 * 0.3


def _attack(state: MatchState, effect: Effect, actor: int, target: int, scale: float, aggro_base: float) -> None:
    attacker = state.characters[actor]
    victim = state.characters[target]
    trust_dmg, favor_dmg = attack_damage(attacker, victim, scale)
    effect.relate(actor, target, -trust_dmg, -favor_dmg)
    for obs in _others(state, actor, target):
        p = _persuasion(state, obs, actor)
        effect.relate(obs, target, -trust_dmg * p, -favor_dmg * p)
    effect.relate(target, actor, 0.0, -2.0 * scale)
    effect.suspicion.append((target, (3 + scaled(attacker, "logic") * 5) * defense_factor(victim) * scale))
    effect.aggro.append((actor, aggro_gain(attacker, aggro_base)))


def _support(state: MatchState, effect: Effect, actor: int, target: int, scale: float, aggro_base: float) -> None:
    helper = state.characters[actor]
    heal_trust = (SUPPORT_BASE + scaled(helper, "logic") * 10) * scale
    heal_favor = (SUPPORT_BASE + scaled(helper, "charm") * 10) * scale
    effect.relate(actor, target, heal_trust, heal_favor)
    for obs in _others(state, actor, target):
        p = _persuasion(state, obs, actor)
        effect.relate(obs, target, heal_trust * p, heal_favor * p)
    effect.relate(target, actor, 1.5 * scale, 2.5 * scale)
    effect.suspicion.append((target, -(2 + scaled(helper, "logic") * 4) * scale))
    effect.aggro.append((actor, aggro_gain(helper, aggro_base)))


def _protected(ctx: TurnContext) -> Optional[int]:
    """Whoever the current chain is defending."""
    return ctx.root_target if ctx.root_id == "cover" else ctx.attacked


# --- Root -----------------------------------------------------------------


def _apply_suspect(state, ctx, actor, target, rng):
    effect = Effect()
    _attack(state, effect, actor, target, 1.0, 3.5)
    effect.context.update(attacked=target, support_window=0.25)
    effect.say(f"{state.name(actor)}: \"I suspect {state.name(target)}.\"")
    return effect


def _apply_cover(state, ctx, actor, target, rng):
    effect = Effect()
    _support(state, effect, actor, target, 1.0, 2.0)
    effect.context.update(support_window=0.2, thank_for=((target, actor),))
    effect.say(f"{state.name(actor)}: \"{state.name(target)} is trustworthy.\"")
    return effect


def choose_claim(state: MatchState, actor: int, rng: random.Random) -> Optional[Role]:
    """Role the actor would claim: its true role if claimable, else a fake."""
    character = state.characters[actor]
    options = claimable_roles(character.role, state.settings)
    if not options:
        return None
    if character.role in options:
        return character.role
    return rng.choice(options)


def _can_open_claim(state, ctx, actor):
    character = state.characters[actor]
    return character.claim is None and bool(claimable_roles(character.role, state.settings))


def _apply_claim_role(state, ctx, actor, target, rng):
    effect = Effect()
    role = choose_claim(state, actor, rng)
    effect.claims.append((actor, role))
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 2.5)))
    effect.say(f"{state.name(actor)}: \"I am the {role.value.replace('_', ' ')}.\"")
    return effect


def _has_claimable(state, ctx, actor):
    return bool(state.settings.enabled_claimable_roles())


def _apply_request_reveal(state, ctx, actor, target, rng):
    effect = Effect()
    role = rng.choice(state.settings.enabled_claimable_roles())
    effect.context.update(requested_role=role, support_window=0.3)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 2.0)))
    effect.say(f"{state.name(actor)}: \"Will the {role.value.replace('_', ' ')} come forward?\"")
    return effect


def _apply_ask_declare(state, ctx, actor, target, rng):
    effect = Effect()
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 3.0)))
    effect.say(f"{state.name(actor)}: \"Everyone, declare that you are human.\"")
    return effect


def _apply_smalltalk(state, ctx, actor, target, rng):
    effect = Effect()
    stealth = state.characters[actor].stats.stealth
    effect.aggro.append((actor, -(1.5 + stealth * 0.08)))
    effect.say(f"{state.name(actor)} starts some idle chatter.")
    return effect


def _apply_vote_for(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    effect.vote_hints.append((target, 1 + scaled(character, "logic")))
    effect.suspicion.append((target, 2 + scaled(character, "logic") * 3))
    effect.aggro.append((actor, aggro_gain(character, 3.0)))
    effect.context.update(attacked=target, support_window=0.3)
    effect.say(f"{state.name(actor)}: \"Let's vote for {state.name(target)}.\"")
    return effect


def _apply_vote_against(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    effect.vote_hints.append((target, -(1 + scaled(character, "logic"))))
    effect.suspicion.append((target, -(1 + scaled(character, "logic") * 2)))
    effect.aggro.append((actor, aggro_gain(character, 2.0)))
    effect.context.update(thank_for=((target, actor),), support_window=0.2)
    effect.say(f"{state.name(actor)}: \"We shouldn't vote for {state.name(target)}.\"")
    return effect


def claimants(state: MatchState, role: Role) -> list[int]:
    return [i for i in state.alive_indices() if state.characters[i].claim == role]


def contested_role(state: MatchState) -> Optional[Role]:
    """Claimed role with the most alive claimants, if at least two."""
    best, best_count = None, 1
    for role in CLAIMABLE_ROLES:
        count = len(claimants(state, role))
        # the real waiter pair always accounts for two claimants
        if role == Role.WAITER:
            count -= 1
        if count > best_count:
            best, best_count = role, count
    return best


def _apply_exclude_role(state, ctx, actor, target, rng):
    effect = Effect()
    role = contested_role(state)
    for idx in claimants(state, role):
        if idx != actor:
            effect.vote_hints.append((idx, 1.0))
            effect.suspicion.append((idx, 3.0))
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 4.0)))
    effect.context.update(excluded_role=role, support_window=0.2)
    effect.say(f"{state.name(actor)}: \"Let's put every {role.value.replace('_', ' ')} claimant to sleep.\"")
    return effect


def _unpaired_actor(state, ctx, actor):
    return actor not in state.flags.cooperation


def _unpaired_target(state, ctx, actor, target):
    return target not in state.flags.cooperation


def _apply_cooperate(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    liking = (state.relations.get_favor(target, actor) - 50) / 100 * 0.3
    chance = _clamp(0.25 + character.stats.charm * 0.01 + liking, 0.2, 0.85)
    effect.aggro.append((actor, aggro_gain(character, 1.5)))
    if rng.random() < chance:
        effect.cooperation = (actor, target)
        effect.relate(actor, target, 2.0, 3.0)
        effect.relate(target, actor, 2.0, 3.0)
        effect.say(f"{state.name(actor)} asks {state.name(target)} to cooperate. {state.name(target)} agrees.")
    else:
        effect.relate(actor, target, 0.0, -2.0)
        effect.say(f"{state.name(actor)} asks {state.name(target)} to cooperate, but is turned down.")
    return effect


def _uncertified(state, ctx, actor, target):
    return target not in state.flags.human_certified and target not in state.flags.infiltrator_certified


def _apply_certify_human(state, ctx, actor, target, rng):
    effect = Effect()
    effect.certify_human.append(target)
    effect.relate(target, actor, 2.0, 3.5)
    for obs in _others(state, actor, target):
        effect.relate(obs, target, 3.0, 0.0)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 3.0)))
    effect.context.update(thank_for=((target, actor),))
    effect.say(f"{state.name(actor)}: \"{state.name(target)} is definitely human.\"")
    return effect


def _apply_certify_infiltrator(state, ctx, actor, target, rng):
    effect = Effect()
    effect.certify_infiltrator.append(target)
    effect.suspicion.append((target, 15.0))
    for obs in _others(state, actor, target):
        effect.relate(obs, target, -5.0, 0.0)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 5.0)))
    effect.context.update(attacked=target)
    effect.say(f"{state.name(actor)}: \"{state.name(target)} is definitely an infiltrator.\"")
    return effect


# --- Follow ---------------------------------------------------------------


def _not_root_parties(state, ctx, actor):
    return actor != ctx.root_actor and actor != ctx.root_target


def _apply_agree_suspicion(state, ctx, actor, target, rng):
    effect = Effect()
    _attack(state, effect, actor, ctx.root_target, JOIN_POWER, 3.5 * JOIN_AGGRO)
    effect.context.update(support_window=ctx.support_window + 0.1)
    effect.say(f"{state.name(actor)}: \"I agree, {state.name(ctx.root_target)} is suspicious.\"")
    return effect


def _can_defend(state, ctx, actor):
    return ctx.attacked is not None and actor not in (ctx.attacked, ctx.root_actor)


def _add_thanks(ctx: TurnContext, thanker: int, benefactor: int) -> tuple[tuple[int, int], ...]:
    kept = tuple(pair for pair in ctx.thank_for if pair[0] != thanker)
    return kept + ((thanker, benefactor),)


def _apply_defend(state, ctx, actor, target, rng):
    effect = Effect()
    _support(state, effect, actor, ctx.attacked, 1.0, 2.5)
    effect.context.update(thank_for=_add_thanks(ctx, ctx.attacked, actor))
    effect.say(f"{state.name(actor)}: \"Wait, {state.name(ctx.attacked)} isn't suspicious.\"")
    return effect


def _can_join_defend(state, ctx, actor):
    protected = _protected(ctx)
    if protected is None or actor in (protected, ctx.root_actor):
        return False
    if ctx.root_id == "cover":
        return True
    return "defend" in ctx.used and not ctx.block_rebuttal


def _apply_join_defend(state, ctx, actor, target, rng):
    effect = Effect()
    protected = _protected(ctx)
    _support(state, effect, actor, protected, JOIN_POWER, 2.5 * JOIN_AGGRO)
    effect.say(f"{state.name(actor)}: \"I'll vouch for {state.name(protected)} too.\"")
    return effect


def _apply_emphasize(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    victim = ctx.root_target
    push = 1 + scaled(character, "acting") * 6
    sign = -1 if ctx.root_id in ATTACK_ROOTS else 1
    if sign < 0:
        push *= defense_factor(state.characters[victim])
    for obs in _others(state, actor, victim):
        effect.relate(obs, victim, 0.0, sign * push)
    effect.aggro.append((actor, aggro_gain(character, 2.0)))
    effect.context.update(support_window=ctx.support_window + 0.1)
    effect.say(f"{state.name(actor)} dramatically backs {state.name(ctx.root_actor)} up.")
    return effect


def _not_root_target(state, ctx, actor):
    return actor != ctx.root_target


def _apply_ask_agreement(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    effect.context.update(support_window=ctx.support_window + 0.2 + scaled(character, "charisma") * 0.4)
    effect.aggro.append((actor, aggro_gain(character, 2.5)))
    effect.say(f"{state.name(actor)}: \"Everyone agrees, right?\"")
    return effect


def _can_block(state, ctx, actor):
    return not ctx.block_rebuttal and "block_rebuttal" not in ctx.used and actor != ctx.root_target


def _apply_block_rebuttal(state, ctx, actor, target, rng):
    effect = Effect()
    effect.context.update(block_rebuttal=True)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 3.0 * BLOCK_AGGRO_MULT)))
    effect.say(f"{state.name(actor)}: \"No objections. We're not hearing excuses.\"")
    return effect


def _claim_wanted(state: MatchState, ctx: TurnContext) -> Optional[Role]:
    if ctx.root_id == "request_role_reveal":
        return ctx.requested_role
    if ctx.root_id == "claim_role" and ctx.root_actor is not None:
        return state.characters[ctx.root_actor].claim
    return None


def _can_claim_too(state, ctx, actor):
    character = state.characters[actor]
    wanted = _claim_wanted(state, ctx)
    return character.claim is None and wanted is not None and can_claim(character.role, wanted, state.settings)


def _apply_claim_too(state, ctx, actor, target, rng):
    effect = Effect()
    role = _claim_wanted(state, ctx)
    effect.claims.append((actor, role))
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 2.5)))
    if ctx.root_id == "claim_role" and role != Role.WAITER:
        for obs in _others(state, actor, ctx.root_actor):
            effect.relate(obs, actor, -2.0, 0.0)
            effect.relate(obs, ctx.root_actor, -2.0, 0.0)
        effect.say(f"{state.name(actor)}: \"No, I am the real {role.value.replace('_', ' ')}!\"")
    else:
        effect.say(f"{state.name(actor)}: \"I am the {role.value.replace('_', ' ')}.\"")
    return effect


def _has_benefactor(state, ctx, actor):
    benefactor = ctx.benefactor_of(actor)
    return benefactor is not None and state.is_alive(benefactor)


def _apply_thank(state, ctx, actor, target, rng):
    effect = Effect()
    benefactor = ctx.benefactor_of(actor)
    effect.relate(actor, benefactor, 2.0, 4.0)
    effect.relate(benefactor, actor, 1.0, 2.0)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 0.5)))
    effect.say(f"{state.name(actor)}: \"Thank you, {state.name(benefactor)}.\"")
    return effect


# --- React ----------------------------------------------------------------


def _is_attacked(state, ctx, actor):
    return actor == ctx.attacked


def _apply_deny(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    effect.suspicion.append((actor, -deny_relief(character)))
    for obs in _others(state, actor):
        effect.relate(obs, actor, (1 + scaled(character, "logic") * 4) * 0.5, 0.0)
    effect.aggro.append((actor, aggro_gain(character, 2.0)))
    effect.context.update(support_window=ctx.support_window * 0.5)
    effect.say(f"{state.name(actor)}: \"That's not true. I'm not the enemy.\"")
    return effect


def _can_rebut(state, ctx, actor):
    return ctx.root_target is not None and _not_root_parties(state, ctx, actor)


def _apply_rebut(state, ctx, actor, target, rng):
    effect = Effect()
    _attack(state, effect, actor, ctx.root_target, 0.8, 3.0)
    effect.context.update(attacked=ctx.root_target)
    effect.say(f"{state.name(actor)}: \"I disagree. {state.name(ctx.root_target)} is suspicious.\"")
    return effect


def _can_join_rebut(state, ctx, actor):
    return "rebut" in ctx.used and _can_rebut(state, ctx, actor)


def _apply_join_rebut(state, ctx, actor, target, rng):
    effect = Effect()
    _attack(state, effect, actor, ctx.root_target, 0.8 * JOIN_POWER, 3.0 * JOIN_AGGRO)
    effect.say(f"{state.name(actor)}: \"Same here. I can't trust {state.name(ctx.root_target)}.\"")
    return effect


def _can_counter(state, ctx, actor):
    return actor == ctx.attacked and ctx.root_actor is not None and ctx.root_actor != actor


def _apply_counter(state, ctx, actor, target, rng):
    effect = Effect()
    _attack(state, effect, actor, ctx.root_actor, 0.95, 4.0)
    effect.context.update(support_window=0.0)
    effect.say(f"{state.name(actor)}: \"Accusing me? {state.name(ctx.root_actor)} is the suspicious one!\"")
    return effect


def _apply_evade(state, ctx, actor, target, rng):
    effect = Effect()
    stealth = state.characters[actor].stats.stealth
    effect.aggro.append((actor, -(1 + stealth * 0.08)))
    effect.end_turn = True
    effect.say(f"{state.name(actor)} deftly changes the subject.")
    return effect


def _helper_ok(state, ctx, actor, target):
    return target != ctx.root_actor and target not in ctx.spoken


def help_chance(state: MatchState, actor: int, helper: int) -> float:
    stats = state.characters[actor].stats
    liking = state.relations.get_favor(helper, actor) / 100 * 0.2
    return _clamp(0.20 + stats.acting * 0.01 + stats.charisma * 0.005 + liking, 0.1, 0.9)


def _apply_ask_for_help(state, ctx, actor, target, rng):
    effect = Effect()
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 1.5)))
    effect.say(f"{state.name(actor)}: \"{state.name(target)}, help me out here!\"")
    if rng.random() < help_chance(state, actor, target):
        _support(state, effect, target, actor, 1.0, 2.0)
        effect.also_spoke.append(target)
        effect.context.update(block_rebuttal=False, thank_for=_add_thanks(ctx, actor, target))
        effect.say(f"{state.name(target)} steps in to defend {state.name(actor)}.")
    else:
        effect.end_turn = True
        effect.say(f"{state.name(target)} stays silent.")
    return effect


def _apply_feel_sad(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    for obs in _others(state, actor):
        effect.relate(obs, actor, 0.0, 1 + scaled(character, "charm") * 5)
    effect.suspicion.append((actor, -(1 + scaled(character, "charm") * 3)))
    effect.aggro.append((actor, aggro_gain(character, 0.5)))
    effect.say(f"{state.name(actor)}: \"Why would you say that...?\"")
    return effect


def _not_root_actor(state, ctx, actor):
    return ctx.root_actor is not None and actor != ctx.root_actor


def _apply_dont_be_fooled(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    w = detection_weight(character)
    liar = ctx.root_actor
    effect.suspicion.append((liar, 3 + 6 * w))
    for obs in _others(state, actor, liar):
        effect.relate(obs, liar, -(1 + 4 * w) * 0.5, 0.0)
    effect.relate(actor, liar, -3.0, -2.0)
    effect.aggro.append((actor, aggro_gain(character, 3.0)))
    effect.say(f"{state.name(actor)}: \"Don't let {state.name(liar)} fool you!\"")
    return effect


def _apply_loud(state, ctx, actor, target, rng):
    effect = Effect()
    effect.aggro.append((ctx.root_actor, 5.0))
    effect.relate(actor, ctx.root_actor, -1.0, -3.0)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 1.5)))
    effect.say(f"{state.name(actor)}: \"{state.name(ctx.root_actor)}, you're being awfully loud.\"")
    return effect


# --- Meta -----------------------------------------------------------------


def _can_agree_proposal(state, ctx, actor):
    return actor != ctx.root_actor and actor != ctx.root_target


def _apply_agree_proposal(state, ctx, actor, target, rng):
    effect = Effect()
    if ctx.root_id == "vote_for":
        effect.vote_hints.append((ctx.root_target, 0.5))
    elif ctx.root_id == "vote_against":
        effect.vote_hints.append((ctx.root_target, -0.5))
    elif ctx.excluded_role is not None:
        for idx in claimants(state, ctx.excluded_role):
            if idx != actor:
                effect.vote_hints.append((idx, 0.3))
    effect.context.update(support_window=ctx.support_window + 0.05)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 1.0)))
    effect.say(f"{state.name(actor)}: \"I agree.\"")
    return effect


def _apply_disagree_proposal(state, ctx, actor, target, rng):
    effect = Effect()
    effect.relate(actor, ctx.root_actor, -2.0, -1.0)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 2.0)))
    effect.end_turn = True
    effect.say(f"{state.name(actor)}: \"I'm against it.\"")
    return effect


def _apply_join_smalltalk(state, ctx, actor, target, rng):
    effect = Effect()
    host = ctx.root_actor
    effect.relate(actor, host, 1.0, 2.0)
    effect.relate(host, actor, 1.0, 2.0)
    effect.aggro.append((actor, -(1 + state.characters[actor].stats.stealth * 0.04)))
    effect.say(f"{state.name(actor)} joins the chatter.")
    return effect


def _apply_stop_smalltalk(state, ctx, actor, target, rng):
    effect = Effect()
    effect.relate(ctx.root_actor, actor, 0.0, -2.0)
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 2.0)))
    effect.end_turn = True
    effect.say(f"{state.name(actor)}: \"Enough chit-chat. Let's get back to it.\"")
    return effect


def _apply_declare_human(state, ctx, actor, target, rng):
    effect = Effect()
    character = state.characters[actor]
    if is_human(character.role):
        effect.suspicion.append((actor, -1.0))
    else:
        effect.suspicion.append((actor, 3.0 * lie_exposure(character)))
    effect.say(f"{state.name(actor)}: \"I'm human.\"")
    return effect


def _apply_refuse_declare(state, ctx, actor, target, rng):
    effect = Effect()
    effect.suspicion.append((actor, 6.0))
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 3.0)))
    effect.say(f"{state.name(actor)}: \"I won't play along with this.\"")
    return effect


def _apply_stop_declare(state, ctx, actor, target, rng):
    effect = Effect()
    effect.suspicion.append((actor, 2.0))
    effect.aggro.append((actor, aggro_gain(state.characters[actor], 2.0)))
    effect.end_turn = True
    effect.say(f"{state.name(actor)}: \"This is pointless. Let's stop.\"")
    return effect


# --- Resolve --------------------------------------------------------------


def plead_chance(character: Character) -> float:
    return EVASION_BASE + scaled(character, "acting") * 0.10


def _apply_plead(state, ctx, actor, target, rng):
    effect = Effect()
    if rng.random() < plead_chance(state.characters[actor]):
        effect.cancel_elimination = True
        effect.say(f"{state.name(actor)} begs on hands and knees. The crew relents.")
    else:
        effect.say(f"{state.name(actor)} begs for mercy, but nobody listens.")
    return effect


def night_coop_chance(state: MatchState, actor: int, target: int) -> float:
    return _clamp(0.3 + state.relations.get_favor(target, actor) / 100 * 0.5, 0.1, 0.85)


def _apply_night_cooperate(state, ctx, actor, target, rng):
    effect = Effect()
    if rng.random() < night_coop_chance(state, actor, target):
        effect.cooperation = (actor, target)
        effect.relate(actor, target, 3.0, 3.0)
        effect.relate(target, actor, 3.0, 3.0)
        effect.say(f"{state.name(actor)} and {state.name(target)} agree to cooperate.")
    else:
        effect.say(f"{state.name(actor)} proposes cooperation to {state.name(target)}, who declines.")
    return effect


_ALL: tuple[Command, ...] = (
    # root
    RootCommand("suspect", "Suspect", _apply_suspect, TargetArity.REQUIRED,
                successors=("agree_suspicion", "deny", "defend")),
    RootCommand("cover", "Cover", _apply_cover, TargetArity.REQUIRED,
                successors=("join_defend", "rebut", "thank")),
    RootCommand("claim_role", "Claim role", _apply_claim_role, check=_can_open_claim, limit="day",
                successors=("claim_too", "dont_be_fooled")),
    RootCommand("request_role_reveal", "Request role reveal", _apply_request_reveal,
                requires=(("charisma", 10),), check=_has_claimable, limit="day", successors=("claim_too",)),
    RootCommand("ask_declare_human", "Ask to declare human", _apply_ask_declare,
                requires=(("intuition", 20),), limit="match", successors=("declare_human",)),
    RootCommand("smalltalk", "Smalltalk", _apply_smalltalk, requires=(("stealth", 10),), limit="day",
                successors=("join_smalltalk",)),
    RootCommand("vote_for", "Vote for", _apply_vote_for, TargetArity.REQUIRED,
                requires=(("logic", 10),), limit="day", successors=("agree_proposal",)),
    RootCommand("vote_against", "Vote against", _apply_vote_against, TargetArity.REQUIRED,
                requires=(("logic", 15),), limit="day", successors=("agree_proposal",)),
    RootCommand("exclude_role", "Exclude all of role", _apply_exclude_role,
                requires=(("logic", 30),), check=lambda s, c, a: contested_role(s) is not None,
                limit="match", successors=("agree_proposal",)),
    RootCommand("cooperate", "Cooperate", _apply_cooperate, TargetArity.REQUIRED,
                requires=(("charm", 15),), check=_unpaired_actor, target_check=_unpaired_target, limit="day"),
    RootCommand("certify_human", "Certify human", _apply_certify_human, TargetArity.REQUIRED,
                requires=(("logic", 20),), target_check=_uncertified, successors=("thank",)),
    RootCommand("certify_infiltrator", "Certify infiltrator", _apply_certify_infiltrator, TargetArity.REQUIRED,
                requires=(("logic", 20),), target_check=_uncertified, successors=("deny",)),
    # follow
    FollowCommand("agree_suspicion", "Agree with suspicion", _apply_agree_suspicion,
                  after=frozenset({"suspect"}), check=_not_root_parties, successors=("agree_suspicion",)),
    FollowCommand("defend", "Defend", _apply_defend, after=frozenset({"suspect"}),
                  check=_can_defend, rebuttal=True, successors=("join_defend", "thank")),
    FollowCommand("join_defend", "Join defense", _apply_join_defend, after=frozenset({"suspect", "cover"}),
                  check=_can_join_defend, successors=("join_defend", "thank")),
    FollowCommand("emphasize", "Emphasize", _apply_emphasize, requires=(("acting", 15),),
                  after=frozenset({"suspect", "cover", "vote_for", "certify_human", "certify_infiltrator"}),
                  check=_not_root_target),
    FollowCommand("ask_agreement", "Ask for agreement", _apply_ask_agreement, requires=(("charisma", 25),),
                  after=frozenset({"suspect", "cover", "vote_for", "vote_against", "exclude_role"}),
                  check=_not_root_target, successors=("agree_suspicion", "agree_proposal", "join_defend")),
    FollowCommand("block_rebuttal", "Block rebuttal", _apply_block_rebuttal, requires=(("charisma", 40),),
                  after=frozenset({"suspect", "cover", "vote_for", "certify_infiltrator"}), check=_can_block),
    FollowCommand("claim_too", "Claim too", _apply_claim_too,
                  after=frozenset({"request_role_reveal", "claim_role"}), check=_can_claim_too,
                  successors=("claim_too",)),
    FollowCommand("thank", "Thank", _apply_thank,
                  after=frozenset({"suspect", "cover", "certify_human", "vote_against"}), check=_has_benefactor),
    # react
    ReactCommand("deny", "Deny", _apply_deny, after=REACT_ROOTS, check=_is_attacked, rebuttal=True,
                 successors=("defend",)),
    ReactCommand("rebut", "Rebut", _apply_rebut, after=frozenset({"cover", "vote_against"}),
                 check=_can_rebut, rebuttal=True, successors=("join_rebut", "deny")),
    ReactCommand("join_rebut", "Join rebuttal", _apply_join_rebut, after=frozenset({"cover", "vote_against"}),
                 check=_can_join_rebut, rebuttal=True),
    ReactCommand("counter", "Counterattack", _apply_counter, requires=(("logic", 25), ("acting", 25)),
                 after=ATTACK_ROOTS, check=_can_counter, rebuttal=True),
    ReactCommand("evade", "Evade", _apply_evade, requires=(("stealth", 25),), after=REACT_ROOTS,
                 check=_is_attacked),
    ReactCommand("ask_for_help", "Ask for help", _apply_ask_for_help, TargetArity.REQUIRED,
                 requires=(("acting", 30),), after=REACT_ROOTS, check=_is_attacked, target_check=_helper_ok),
    ReactCommand("feel_sad", "Feel sad", _apply_feel_sad, requires=(("charm", 25),), after=REACT_ROOTS,
                 check=_is_attacked),
    ReactCommand("dont_be_fooled", "Don't be fooled", _apply_dont_be_fooled, requires=(("intuition", 30),),
                 after=frozenset({"suspect", "cover", "claim_role", "vote_for", "vote_against",
                                  "certify_human", "certify_infiltrator"}),
                 check=_not_root_actor),
    ReactCommand("loud", "Loud", _apply_loud, after=frozenset({"suspect", "cover"}), check=_not_root_actor),
    # meta
    MetaCommand("agree_proposal", "Agree", _apply_agree_proposal, after=PROPOSAL_ROOTS,
                check=_can_agree_proposal, successors=("agree_proposal",)),
    MetaCommand("disagree_proposal", "Disagree", _apply_disagree_proposal, after=PROPOSAL_ROOTS,
                check=_not_root_actor),
    MetaCommand("join_smalltalk", "Join smalltalk", _apply_join_smalltalk, after=frozenset({"smalltalk"}),
                successors=("join_smalltalk",)),
    MetaCommand("stop_smalltalk", "Stop smalltalk", _apply_stop_smalltalk, after=frozenset({"smalltalk"})),
    MetaCommand("declare_human", "Declare human", _apply_declare_human, after=frozenset({"ask_declare_human"}),
                successors=("declare_human",)),
    MetaCommand("refuse_declare", "Refuse to declare", _apply_refuse_declare,
                after=frozenset({"ask_declare_human"})),
    MetaCommand("stop_declare", "Stop declaring", _apply_stop_declare, after=frozenset({"ask_declare_human"})),
    # resolve
    ResolveCommand("plead", "Plead", _apply_plead, phase=Phase.VOTE,
                   requires=(("stealth", EVASION_MIN_STEALTH),), opt_in=True),
    ResolveCommand("night_cooperate", "Night cooperation", _apply_night_cooperate, TargetArity.REQUIRED,
                   phase=Phase.NIGHT_FREE, check=_unpaired_actor, target_check=_unpaired_target, opt_in=True),
)

COMMANDS: dict[str, Command] = {c.id: c for c in _ALL}


def get_command(command_id: str) -> Command:
    """Return command by id. Raises KeyError for unknown ids."""
    return COMMANDS[command_id]


def commands_in(category: Category) -> list[Command]:
    return [c for c in _ALL if c.category == category]


def day_followups() -> list[Command]:
    """Every command that can follow a root during a day-turn."""
    return [c for c in _ALL if c.category in (Category.FOLLOW, Category.REACT, Category.META)]


def new_context(day: int, turn: int) -> TurnContext:
    return TurnContext(day=day, turn=turn)


def next_context(ctx: TurnContext, command: Command, actor: int, target: Optional[int], effect: Effect) -> TurnContext:
    """The context that follows committing `effect`. Never mutates ctx."""
    updates: dict[str, Any] = dict(effect.context)
    if command.category == Category.ROOT:
        updates.update(root_id=command.id, root_actor=actor, root_target=target)
    spoken = set(ctx.spoken) | {actor} | set(effect.also_spoke)
    updates.update(
        spoken=frozenset(spoken),
        used=ctx.used + (command.id,),
        last_command=command.id,
        ended=ctx.ended or effect.end_turn,
    )
    return replace(ctx, **updates)
