"""Environment-driven defaults."""

from gnosia.config import DEFAULT_MAX_STEPS, ENV_MAX_STEPS, ENV_SEED, get_default_seed, get_max_steps


def test_seed_unset(monkeypatch):
    monkeypatch.delenv(ENV_SEED, raising=False)
    assert get_default_seed() is None
    monkeypatch.setenv(ENV_SEED, "  ")
    assert get_default_seed() is None


def test_seed_from_env(monkeypatch):
    monkeypatch.setenv(ENV_SEED, "42")
    assert get_default_seed() == 42


def test_max_steps(monkeypatch):
    monkeypatch.delenv(ENV_MAX_STEPS, raising=False)
    assert get_max_steps() == DEFAULT_MAX_STEPS
    monkeypatch.setenv(ENV_MAX_STEPS, "50")
    assert get_max_steps() == 50
    monkeypatch.setenv(ENV_MAX_STEPS, "0")
    assert get_max_steps() == 1
