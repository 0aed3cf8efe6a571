"""Role assignment and claim eligibility."""

import random
from typing import Sequence

from gnosia.rules import CLAIMABLE_ROLES, Role, is_liar, max_infiltrators
from gnosia.state import Settings


def _take(pool: list[int], count: int, rng: random.Random) -> list[int]:
    """Remove and return `count` random indices from pool (fewer if it runs out)."""
    picked = rng.sample(pool, min(count, len(pool)))
    for idx in picked:
        pool.remove(idx)
    return picked


def assign_roles(num_characters: int, settings: Settings, rng: random.Random) -> list[Role]:
    """
    Partition indices into roles. Every pick is uniform without replacement
    from the indices still tagged Crew, so roles never collide. Optional
    roles that no longer fit are skipped silently.
    """
    if not 1 <= settings.infiltrators <= max_infiltrators(num_characters):
        raise ValueError(
            f"infiltrators must be between 1 and {max_infiltrators(num_characters)} for {num_characters} characters"
        )
    roles = [Role.CREW] * num_characters
    pool = list(range(num_characters))

    for idx in _take(pool, settings.infiltrators, rng):
        roles[idx] = Role.INFILTRATOR
    if settings.waiters and len(pool) >= 2:
        for idx in _take(pool, 2, rng):
            roles[idx] = Role.WAITER
    if settings.bug:
        for idx in _take(pool, 1, rng):
            roles[idx] = Role.BUG
    if settings.ac_watcher:
        for idx in _take(pool, 1, rng):
            roles[idx] = Role.AC_WATCHER
    for enabled, role in (
        (settings.engineer, Role.ENGINEER),
        (settings.doctor, Role.DOCTOR),
        (settings.guardian, Role.GUARDIAN),
    ):
        if enabled:
            for idx in _take(pool, 1, rng):
                roles[idx] = role
    return roles


def claimable_roles(role: Role, settings: Settings) -> list[Role]:
    """Roles a character with `role` may publicly claim."""
    enabled = settings.enabled_claimable_roles()
    if is_liar(role):
        return enabled
    if role in CLAIMABLE_ROLES and role in enabled:
        return [role]
    return []


def can_claim(role: Role, claimed: Role, settings: Settings) -> bool:
    return claimed in claimable_roles(role, settings)


def role_counts(roles: Sequence[Role]) -> dict[Role, int]:
    counts = {r: 0 for r in Role}
    for r in roles:
        counts[r] += 1
    return counts
