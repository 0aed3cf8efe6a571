"""In-memory match store. Replace with DB later if needed."""

from typing import Any

from gnosia.state import MatchState

# match_id -> { state, spectate }
_store: dict[str, dict[str, Any]] = {}


def create(match_id: str, state: MatchState, spectate: bool = False) -> None:
    _store[match_id] = {"state": state, "spectate": spectate}


def get(match_id: str) -> dict[str, Any] | None:
    return _store.get(match_id)


def update(match_id: str, state: MatchState) -> None:
    if match_id in _store:
        _store[match_id]["state"] = state


def delete(match_id: str) -> None:
    _store.pop(match_id, None)


def list_matches() -> list[str]:
    return list(_store.keys())
