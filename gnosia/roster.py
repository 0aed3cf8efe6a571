"""Roster and settings schema: validation and JSON round-trip."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator, model_validator

from gnosia.rules import MAX_PLAYERS, STAT_MAX
from gnosia.state import Character, Personality, Settings, Stats

ROSTER_VERSION = 1
MAX_NAME_LENGTH = 40


class StatsModel(BaseModel):
    charisma: float = Field(default=0, ge=0, le=STAT_MAX)
    logic: float = Field(default=0, ge=0, le=STAT_MAX)
    acting: float = Field(default=0, ge=0, le=STAT_MAX)
    charm: float = Field(default=0, ge=0, le=STAT_MAX)
    stealth: float = Field(default=0, ge=0, le=STAT_MAX)
    intuition: float = Field(default=0, ge=0, le=STAT_MAX)


class PersonalityModel(BaseModel):
    cheer: float = Field(default=0.5, ge=0, le=1)
    social: float = Field(default=0.5, ge=0, le=1)
    logical: float = Field(default=0.5, ge=0, le=1)
    kindness: float = Field(default=0.5, ge=0, le=1)
    desire: float = Field(default=0.5, ge=0, le=1)
    courage: float = Field(default=0.5, ge=0, le=1)


class CharacterRecord(BaseModel):
    """One saved character. `allowed` maps command id to opt-in/opt-out."""

    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    gender: str = Field(default="")
    age: int = Field(default=0, ge=0)
    stats: StatsModel = Field(default_factory=StatsModel)
    personality: PersonalityModel = Field(default_factory=PersonalityModel)
    allowed: dict[str, bool] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v

    def to_character(self) -> Character:
        return Character(
            name=self.name,
            gender=self.gender,
            age=self.age,
            stats=Stats(**self.stats.model_dump()),
            personality=Personality(**self.personality.model_dump()),
            allowed=dict(self.allowed),
        )

    @classmethod
    def from_character(cls, character: Character) -> "CharacterRecord":
        return cls(
            name=character.name,
            gender=character.gender,
            age=character.age,
            stats=StatsModel(**vars(character.stats)),
            personality=PersonalityModel(**vars(character.personality)),
            allowed=dict(character.allowed),
        )


class SettingsRecord(BaseModel):
    infiltrators: int = Field(default=1, ge=1, le=6)
    engineer: bool = False
    doctor: bool = False
    guardian: bool = False
    waiters: bool = False
    ac_watcher: bool = False
    bug: bool = False

    def to_settings(self) -> Settings:
        return Settings(**self.model_dump())


class RosterFile(BaseModel):
    """Saved roster document."""

    version: int = Field(default=ROSTER_VERSION)
    saved_at: datetime | None = None
    characters: list[CharacterRecord] = Field(default_factory=list, max_length=MAX_PLAYERS)

    @field_validator("version")
    @classmethod
    def version_supported(cls, v: int) -> int:
        if v != ROSTER_VERSION:
            raise ValueError(f"unsupported roster version {v}")
        return v

    @model_validator(mode="after")
    def names_unique(self) -> "RosterFile":
        names = [c.name for c in self.characters]
        if len(set(names)) != len(names):
            raise ValueError("character names must be unique")
        return self


def dump_roster(characters: list[Character]) -> str:
    """Serialize characters to a roster JSON document."""
    doc = RosterFile(
        saved_at=datetime.now(timezone.utc),
        characters=[CharacterRecord.from_character(c) for c in characters],
    )
    return doc.model_dump_json(indent=2)


def load_roster(data: str) -> list[Character]:
    """Parse a roster JSON document. Raises pydantic.ValidationError on bad input."""
    doc = RosterFile.model_validate_json(data)
    return [record.to_character() for record in doc.characters]
