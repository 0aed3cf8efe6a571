"""FastAPI app: create, step, run and inspect Gnosia matches."""

import logging
import random
import uuid

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from gnosia.commands import COMMANDS
from gnosia.config import get_default_seed, get_max_steps
from gnosia.engine import advance, is_match_over, render_log, run_match, start_match
from gnosia.roster import CharacterRecord, PersonalityModel, RosterFile, StatsModel
from gnosia.rules import STAT_MAX, STAT_NAMES, TRAIT_NAMES
from api.match_store import (
    create as store_create,
    delete as store_delete,
    get as store_get,
    list_matches,
    update as store_update,
)
from api.models import (
    CommandPublic,
    MatchCreateRequest,
    MatchStateResponse,
    match_to_public,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Gnosia Simulator API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Default character names pool
DEFAULT_NAMES = [
    "Setsu", "Gina", "SQ", "Raqio", "Stella", "Shigemichi", "Chipie", "Comet",
    "Jonas", "Kukrushka", "Otome", "Sha-Ming", "Remnan", "Yuriko", "Liam",
]


def _default_roster(count: int, rng: random.Random) -> list[CharacterRecord]:
    """Random stats and personality for the first `count` default names."""
    return [
        CharacterRecord(
            name=name,
            stats=StatsModel(**{s: rng.randint(0, int(STAT_MAX)) for s in STAT_NAMES}),
            personality=PersonalityModel(**{t: round(rng.random(), 2) for t in TRAIT_NAMES}),
        )
        for name in DEFAULT_NAMES[:count]
    ]


def _entry_or_404(match_id: str) -> dict:
    entry = store_get(match_id)
    if not entry:
        raise HTTPException(404, "Match not found")
    return entry


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/commands", response_model=list[CommandPublic], tags=["Commands"], summary="List commands")
def list_commands():
    """Every command with its category, target arity and stat gates."""
    return [
        CommandPublic(
            id=c.id,
            name=c.name,
            category=c.category.value,
            target=c.arity.value,
            requires=dict(c.requires),
            user_selectable=c.user_selectable,
        )
        for c in COMMANDS.values()
    ]


@app.post("/matches", response_model=dict, tags=["Matches"], summary="Create match")
def create_match(body: MatchCreateRequest):
    """Create and start a new match. Returns match_id."""
    seed = body.seed if body.seed is not None else get_default_seed()
    rng = random.Random(seed)
    records = body.characters or _default_roster(body.num_characters, rng)
    match_id = str(uuid.uuid4())
    try:
        state = start_match(
            [r.to_character() for r in records],
            body.settings.to_settings(),
            seed=seed,
            rng=rng,
            match_id=match_id,
        )
    except ValueError as e:
        raise HTTPException(400, str(e)) from e
    store_create(match_id, state, spectate=body.spectate)
    return {"match_id": match_id}


@app.get("/matches", response_model=dict, tags=["Matches"], summary="List matches")
def list_all_matches():
    return {"matches": list_matches()}


@app.get("/matches/{match_id}", response_model=MatchStateResponse, tags=["Matches"], summary="Get match state")
def get_match(match_id: str, since: int = 0):
    """Snapshot plus the log from event index `since`."""
    entry = _entry_or_404(match_id)
    return match_to_public(entry["state"], spectate=entry["spectate"], since=since)


@app.post("/matches/{match_id}/step", response_model=MatchStateResponse, tags=["Matches"], summary="Run one step")
def step_match(match_id: str):
    """Advance one scheduler step: a day-turn, the vote, free actions or role resolution."""
    entry = _entry_or_404(match_id)
    state = entry["state"]
    if is_match_over(state):
        raise HTTPException(400, "Match is over")
    since = len(state.events)
    state = advance(state)
    store_update(match_id, state)
    return match_to_public(state, spectate=entry["spectate"], since=since)


@app.post("/matches/{match_id}/run", response_model=MatchStateResponse, tags=["Matches"], summary="Run to the end")
def run_match_endpoint(match_id: str):
    """Step until the match ends or GNOSIA_MAX_STEPS is reached."""
    entry = _entry_or_404(match_id)
    state = run_match(entry["state"], max_steps=get_max_steps())
    if not is_match_over(state):
        logger.warning("match %s still running after %d steps", match_id, get_max_steps())
    store_update(match_id, state)
    return match_to_public(state, spectate=entry["spectate"])


@app.get("/matches/{match_id}/log", response_class=PlainTextResponse, tags=["Matches"], summary="Match log")
def get_match_log(match_id: str):
    entry = _entry_or_404(match_id)
    return render_log(entry["state"])


@app.delete("/matches/{match_id}", tags=["Matches"], summary="Delete match")
def delete_match(match_id: str):
    _entry_or_404(match_id)
    store_delete(match_id)
    return {"deleted": match_id}


@app.post("/roster/validate", response_model=RosterFile, tags=["Roster"], summary="Validate roster")
def validate_roster(body: RosterFile):
    """Validate a saved roster document and echo it back normalized."""
    return body
