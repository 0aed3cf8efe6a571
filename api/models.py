"""Pydantic request/response models for the API."""

from pydantic import BaseModel, Field, model_validator

from gnosia.engine import snapshot
from gnosia.roster import CharacterRecord, SettingsRecord
from gnosia.rules import MAX_PLAYERS, MIN_PLAYERS, max_infiltrators
from gnosia.state import MatchState


class MatchCreateRequest(BaseModel):
    """Body for POST /matches. Without `characters`, a default roster is used."""

    num_characters: int = Field(default=MIN_PLAYERS, ge=MIN_PLAYERS, le=MAX_PLAYERS)
    characters: list[CharacterRecord] | None = Field(
        default=None,
        description="Full roster; length sets the character count when given",
        min_length=MIN_PLAYERS,
        max_length=MAX_PLAYERS,
    )
    settings: SettingsRecord = Field(default_factory=SettingsRecord)
    seed: int | None = Field(default=None, description="Seed for a reproducible match; falls back to GNOSIA_SEED")
    spectate: bool = Field(default=False, description="If true, snapshots show every role.")

    @model_validator(mode="after")
    def check_roster(self) -> "MatchCreateRequest":
        count = len(self.characters) if self.characters is not None else self.num_characters
        if self.characters is not None:
            names = [c.name for c in self.characters]
            if len(set(names)) != len(names):
                raise ValueError("character names must be unique")
        cap = max_infiltrators(count)
        if self.settings.infiltrators > cap:
            raise ValueError(f"infiltrators ({self.settings.infiltrators}) must be <= {cap} for {count} characters")
        return self


class CharacterPublic(BaseModel):
    """Character as shown to clients: role hidden mid-match unless spectating."""

    index: int
    name: str
    alive: bool
    role: str | None = None
    claim: str | None = None
    aggro: float
    suspicion: float
    certified: str | None = Field(default=None, description="human or infiltrator once certified")


class EventPublic(BaseModel):
    kind: str
    day: int
    phase: str
    message: str
    actor: int | None = None
    target: int | None = None


class MatchStateResponse(BaseModel):
    """Public match state for GET /matches/{id}."""

    match_id: str
    day: int
    turn: int
    phase: str
    winner: str | None = Field(default=None, description="crew, infiltrators or bug once ended")
    characters: list[CharacterPublic]
    trust: list[list[float]]
    favor: list[list[float]]
    events: list[EventPublic] = Field(default_factory=list)
    spectate: bool = False


class CommandPublic(BaseModel):
    id: str
    name: str
    category: str
    target: str
    requires: dict[str, float]
    user_selectable: bool


def match_to_public(state: MatchState, spectate: bool = False, since: int = 0) -> MatchStateResponse:
    """Build the public response; events from index `since` onward."""
    snap = snapshot(state, reveal=spectate)
    characters = [
        CharacterPublic(
            index=c.index,
            name=c.name,
            alive=c.alive,
            role=c.role.value if c.role is not None else None,
            claim=c.claim.value if c.claim is not None else None,
            aggro=round(c.aggro, 2),
            suspicion=round(c.suspicion, 2),
            certified=c.certified,
        )
        for c in snap.characters
    ]
    events = [
        EventPublic(
            kind=e.kind.value,
            day=e.day,
            phase=e.phase.value,
            message=e.message,
            actor=e.actor,
            target=e.target,
        )
        for e in state.events[since:]
    ]
    return MatchStateResponse(
        match_id=snap.match_id,
        day=snap.day,
        turn=snap.turn,
        phase=snap.phase.value,
        winner=snap.winner.value if snap.winner is not None else None,
        characters=characters,
        trust=snap.trust,
        favor=snap.favor,
        events=events,
        spectate=spectate,
    )
