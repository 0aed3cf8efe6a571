"""Environment-driven defaults for the Gnosia simulator."""

import os

# Env var names
ENV_SEED = "GNOSIA_SEED"
ENV_MAX_STEPS = "GNOSIA_MAX_STEPS"

DEFAULT_MAX_STEPS = 2000


def get_default_seed() -> int | None:
    """Seed from GNOSIA_SEED, or None for an unseeded match."""
    raw = os.environ.get(ENV_SEED)
    if raw is None or not raw.strip():
        return None
    return int(raw)


def get_max_steps() -> int:
    """Step cap for running a match to its end."""
    raw = os.environ.get(ENV_MAX_STEPS)
    if raw is None or not raw.strip():
        return DEFAULT_MAX_STEPS
    return max(1, int(raw))
