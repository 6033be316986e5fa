import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel, Field

from flashdeck.application.config import resolve_config
from flashdeck.application.factory import create_session
from flashdeck.application.scheduler.sm2 import describe_interval
from flashdeck.application.session.manager import ReviewSession, SessionStatus
from flashdeck.consts import VERSION
from flashdeck.domain.constants import MAX_SESSIONS, SESSION_IDLE_TIMEOUT
from flashdeck.domain.errors import (
    CardNotFoundError,
    DeckNotFoundError,
    FlashdeckError,
    SessionStateError,
    StoreFailure,
    ValidationError,
)
from flashdeck.domain.review.models import Card

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("flashdeck.server")

# Live review sessions. Idle ones are closed when the next session starts.
sessions: dict[str, ReviewSession] = {}
# time.monotonic() of the last request that touched each session
last_used: dict[str, float] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"flashdeck server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info(f"flashdeck server shutting down, closing {len(sessions)} sessions")
    for session_id in list(sessions):
        await _close_session(session_id)


app = FastAPI(
    title="flashdeck",
    description="Review session API for spaced-repetition decks.",
    version=VERSION,
    lifespan=lifespan,
)

start_time = time.time()


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class CardModel(BaseModel):
    id: str
    front: str
    back: str
    hint: str | None = None
    mnemonic: str | None = None
    is_new: bool
    repetitions: int
    interval_days: int
    ease_factor: float
    learning_stage: str


class SessionResponse(BaseModel):
    session_id: str
    deck_id: str
    status: str
    total_cards: int
    position: int
    progress_percent: int
    review_cards: int
    new_cards: int
    ratings: dict[str, int]
    can_undo: bool
    undo_depth: int = 0
    due_review_total: int = 0
    due_new_total: int = 0
    current_card: CardModel | None = None
    next_review_at: datetime | None = None
    next_review_message: str | None = None
    error: str | None = None


class CreateSessionRequest(BaseModel):
    deck_id: str
    ahead_days: int = Field(default=0, ge=0)


class RatingRequest(BaseModel):
    card_id: str
    rating: int


class PredictedInterval(BaseModel):
    label: str
    interval_days: int
    next_review_at: datetime | None


class PreviewResponse(BaseModel):
    card_id: str
    intervals: dict[str, PredictedInterval]


def _card_model(card: Card | None) -> CardModel | None:
    if card is None:
        return None
    return CardModel(
        id=card.id,
        front=card.front,
        back=card.back,
        hint=card.hint,
        mnemonic=card.mnemonic,
        is_new=card.is_new,
        repetitions=card.memory.repetitions,
        interval_days=card.memory.interval_days,
        ease_factor=card.memory.ease_factor,
        learning_stage=card.memory.learning_stage.value,
    )


def _session_response(session_id: str, session: ReviewSession) -> SessionResponse:
    summary = session.summary()
    return SessionResponse(
        session_id=session_id,
        deck_id=session.deck_id,
        status=summary.status.value,
        total_cards=summary.total_cards,
        position=summary.position,
        progress_percent=summary.progress_percent,
        review_cards=summary.review_cards,
        new_cards=summary.new_cards,
        ratings=summary.ratings,
        can_undo=session.can_undo,
        undo_depth=summary.undo_depth,
        due_review_total=summary.due_review_total,
        due_new_total=summary.due_new_total,
        current_card=_card_model(session.current_card),
        next_review_at=summary.next_review_at,
        next_review_message=summary.next_review_message,
        error=str(session.error) if session.error else None,
    )


def _http_error(e: FlashdeckError) -> HTTPException:
    if isinstance(e, (CardNotFoundError, DeckNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, SessionStateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, StoreFailure):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _get_session(session_id: str) -> ReviewSession:
    try:
        session = sessions[session_id]
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}") from None
    last_used[session_id] = time.monotonic()
    return session


async def _close_session(session_id: str) -> None:
    session = sessions.pop(session_id, None)
    last_used.pop(session_id, None)
    if session is not None:
        await session.aclose()


async def _evict_sessions() -> None:
    """Close idle sessions, then the least recently used ones over MAX_SESSIONS."""
    now = time.monotonic()
    idle = [sid for sid in sessions if now - last_used.get(sid, now) > SESSION_IDLE_TIMEOUT]
    for session_id in idle:
        logger.info(f"Session {session_id} expired after {SESSION_IDLE_TIMEOUT}s idle")
        await _close_session(session_id)

    while sessions and len(sessions) >= MAX_SESSIONS:
        oldest = min(sessions, key=lambda sid: last_used.get(sid, now))
        logger.info(f"Session limit reached, evicting session {oldest}")
        await _close_session(oldest)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.post("/sessions", response_model=SessionResponse, status_code=201)
async def start_session(req: CreateSessionRequest):
    """
    Start a review session for a deck.

    If the card store cannot be reached the session is still created, stays
    in `loading` and reports the error; retry with POST /sessions/{id}/load.
    """
    try:
        session = create_session(resolve_config(), req.deck_id, ahead_days=req.ahead_days)
    except FlashdeckError as e:
        raise _http_error(e) from e

    await _evict_sessions()
    session_id = uuid.uuid4().hex
    sessions[session_id] = session
    last_used[session_id] = time.monotonic()
    logger.info(f"Session {session_id} started for deck {req.deck_id}")

    try:
        await session.load()
    except DeckNotFoundError as e:
        await _close_session(session_id)
        raise _http_error(e) from e
    except StoreFailure as e:
        logger.warning(f"Session {session_id} could not load: {e}")

    return _session_response(session_id, session)


@app.post("/sessions/{session_id}/load", response_model=SessionResponse)
async def retry_load(session_id: str):
    session = _get_session(session_id)
    if session.status is not SessionStatus.LOADING:
        raise HTTPException(status_code=409, detail=f"Session is {session.status.value}")
    try:
        await session.load()
    except FlashdeckError as e:
        raise _http_error(e) from e
    return _session_response(session_id, session)


@app.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return _session_response(session_id, _get_session(session_id))


@app.get("/sessions/{session_id}/preview", response_model=PreviewResponse)
async def preview(session_id: str):
    """Predicted outcome of each rating for the current card. Changes nothing."""
    session = _get_session(session_id)
    try:
        outcomes = session.preview()
    except FlashdeckError as e:
        raise _http_error(e) from e

    return PreviewResponse(
        card_id=session.current_card.id,
        intervals={
            str(rating.value): PredictedInterval(
                label=describe_interval(state.interval_days),
                interval_days=state.interval_days,
                next_review_at=state.next_review_at,
            )
            for rating, state in outcomes.items()
        },
    )


@app.post("/sessions/{session_id}/ratings", response_model=SessionResponse)
async def submit_rating(session_id: str, req: RatingRequest):
    session = _get_session(session_id)
    card = session.current_card
    if card is None:
        raise HTTPException(status_code=409, detail=f"Session is {session.status.value}")
    if card.id != req.card_id:
        raise HTTPException(
            status_code=409, detail=f"Card {req.card_id} is not the current card ({card.id})"
        )

    try:
        await session.submit_rating(card, req.rating)
    except FlashdeckError as e:
        raise _http_error(e) from e
    return _session_response(session_id, session)


@app.post("/sessions/{session_id}/undo", response_model=SessionResponse)
async def undo(session_id: str):
    session = _get_session(session_id)
    try:
        await session.undo()
    except FlashdeckError as e:
        raise _http_error(e) from e
    return _session_response(session_id, session)


@app.post("/sessions/{session_id}/restart", response_model=SessionResponse)
async def review_again(session_id: str):
    session = _get_session(session_id)
    try:
        await session.review_again()
    except FlashdeckError as e:
        raise _http_error(e) from e
    return _session_response(session_id, session)


@app.delete("/sessions/{session_id}", status_code=204)
async def discard_session(session_id: str):
    """Leave a session. Its undo history is gone with it."""
    _get_session(session_id)
    await _close_session(session_id)
    return Response(status_code=204)
