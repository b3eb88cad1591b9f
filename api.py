#!/usr/bin/env python3
"""
FastAPI service for the English/Uzbek flashcard trainer.

The API keeps one practice session per browser tab in memory and mirrors the
imported vocabulary into the same SQLite database the console trainer in
trainer.py uses. Clients import word lists, flip and move between cards, and
rebuild the example sentence token by token.
"""
from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import lexify
from lexify import CollaboratorError, VocabularyStore, VocabWord
from services import GoogleTranslator, TranslationEntry, Utterance
from trainer import PracticeSession

logger = logging.getLogger(__name__)

Language = Literal["en", "uz"]
ImportFormat = Literal["json", "text"]
SpeechTarget = Literal["word", "example"]

app = FastAPI(
    title="Lexify API",
    description="English/Uzbek vocabulary flashcards with sentence reconstruction.",
    version="0.1.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

SESSIONS: Dict[str, PracticeSession] = {}
SESSIONS_LOCK = threading.Lock()
SESSION_IDLE_SECONDS = float(os.environ.get("LEXIFY_SESSION_IDLE_SECONDS", "3600"))
MAX_SESSIONS = int(os.environ.get("LEXIFY_MAX_SESSIONS", "500"))


def _init_database() -> None:
    conn = lexify.connect_db(lexify.DB_PATH)
    lexify.ensure_schema(conn)
    conn.close()


lexify.configure_logging()
_init_database()


def get_store() -> VocabularyStore:
    return VocabularyStore(lexify.DB_PATH)


def get_translator() -> GoogleTranslator:
    return GoogleTranslator()


def get_session(session_id: str) -> PracticeSession:
    with SESSIONS_LOCK:
        session = SESSIONS.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found.")
    session.last_used = time.monotonic()
    return session


def _prune_sessions() -> None:
    """Drop idle sessions and keep at most MAX_SESSIONS - 1 so a new one fits."""
    cutoff = time.monotonic() - SESSION_IDLE_SECONDS
    with SESSIONS_LOCK:
        for session_id in [sid for sid, s in SESSIONS.items() if s.last_used < cutoff]:
            del SESSIONS[session_id]
        overflow = len(SESSIONS) - MAX_SESSIONS + 1
        if overflow <= 0:
            return
        for session_id in sorted(SESSIONS, key=lambda sid: SESSIONS[sid].last_used)[:overflow]:
            del SESSIONS[session_id]
        logger.info("Evicted %d session(s) over the limit of %d", overflow, MAX_SESSIONS)


class WordOut(BaseModel):
    uz: str
    en: str
    exampleText: str


class SaveRequest(BaseModel):
    vocabulary: Optional[List[Any]] = None


class SaveResult(BaseModel):
    success: bool
    inserted_count: int
    message: str


class ImportRequest(BaseModel):
    format: ImportFormat = "json"
    content: str


class JumpRequest(BaseModel):
    page: str


class LanguageRequest(BaseModel):
    language: Language


class TokenRequest(BaseModel):
    position: int


class SpeechRequest(BaseModel):
    target: SpeechTarget = "word"


class ReconstructionOut(BaseModel):
    available_tokens: List[str]
    selected_tokens: List[str]
    consumed: List[int]
    verdict: str
    complete: bool


class TranslationOut(BaseModel):
    status: str
    text: str
    error: Optional[str] = None
    visible: bool


class UtteranceOut(BaseModel):
    text: str
    language: str
    rate: float
    sequence: int


class SessionOut(BaseModel):
    id: str
    total_words: int
    current_index: int
    page: int
    page_input: str
    flipped: bool
    language: Language
    front: str
    word: Optional[WordOut] = None
    reconstruction: Optional[ReconstructionOut] = None
    translation: Optional[TranslationOut] = None
    error: Optional[str] = None


class ActionResponse(BaseModel):
    accepted: bool
    session: SessionOut


def _word_out(word: VocabWord) -> WordOut:
    return WordOut(**word.to_dict())


def _translation_out(entry: Optional[TranslationEntry]) -> Optional[TranslationOut]:
    if entry is None:
        return None
    return TranslationOut(status=entry.status, text=entry.text, error=entry.error, visible=entry.visible)


def _utterance_out(utterance: Utterance) -> UtteranceOut:
    return UtteranceOut(
        text=utterance.text,
        language=utterance.language,
        rate=utterance.rate,
        sequence=utterance.sequence,
    )


def _session_out(session_id: str, session: PracticeSession) -> SessionOut:
    with session.lock:
        return _render_session(session_id, session)


def _render_session(session_id: str, session: PracticeSession) -> SessionOut:
    session.refresh()
    nav = session.navigation
    word = session.current_word
    state = session.reconstruction
    reconstruction = None
    if state is not None:
        reconstruction = ReconstructionOut(
            available_tokens=list(state.available_tokens),
            selected_tokens=list(state.selected_tokens),
            consumed=sorted(state.consumed),
            verdict=state.verdict,
            complete=state.complete,
        )
    return SessionOut(
        id=session_id,
        total_words=len(session.words),
        current_index=nav.current_index,
        page=nav.page,
        page_input=session.page_input,
        flipped=nav.flipped,
        language=session.language,
        front=session.front_text,
        word=_word_out(word) if (word is not None and nav.flipped) else None,
        reconstruction=reconstruction,
        translation=_translation_out(session.translation),
        error=session.error,
    )


def _action(session_id: str, session: PracticeSession, accepted: bool) -> ActionResponse:
    return ActionResponse(accepted=accepted, session=_session_out(session_id, session))


@app.get("/")
def root() -> Dict[str, str]:
    return {"message": "Lexify API is ready.", "db": str(lexify.DB_PATH)}


@app.get("/vocabulary", response_model=List[WordOut])
def list_vocabulary(store: VocabularyStore = Depends(get_store)) -> List[WordOut]:
    try:
        words = store.load()
    except CollaboratorError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
    return [_word_out(word) for word in words]


@app.post("/vocabulary", response_model=SaveResult)
def save_vocabulary(payload: SaveRequest, store: VocabularyStore = Depends(get_store)) -> SaveResult:
    if payload.vocabulary is None:
        raise HTTPException(status_code=400, detail="Vocabulary array is required")
    result = lexify.validate_records(payload.vocabulary)
    if not result.valid:
        raise HTTPException(status_code=400, detail=result.error)
    try:
        count = store.save(result.data)
    except CollaboratorError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
    return SaveResult(success=True, inserted_count=count, message="Vocabulary saved successfully")


@app.post("/sessions", response_model=SessionOut, status_code=201)
def create_session(
    store: VocabularyStore = Depends(get_store),
    translator: GoogleTranslator = Depends(get_translator),
) -> SessionOut:
    session = PracticeSession(store=store, translator=translator)
    session.load_saved()
    session_id = uuid.uuid4().hex
    _prune_sessions()
    with SESSIONS_LOCK:
        SESSIONS[session_id] = session
    return _session_out(session_id, session)


@app.get("/sessions/{session_id}", response_model=SessionOut)
def session_detail(session_id: str, session: PracticeSession = Depends(get_session)) -> SessionOut:
    return _session_out(session_id, session)


@app.delete("/sessions/{session_id}", status_code=204)
def close_session(session_id: str, session: PracticeSession = Depends(get_session)) -> Response:
    with SESSIONS_LOCK:
        SESSIONS.pop(session_id, None)
    return Response(status_code=204)


@app.post("/sessions/{session_id}/import", response_model=SessionOut)
def import_vocabulary(
    session_id: str,
    payload: ImportRequest,
    session: PracticeSession = Depends(get_session),
) -> SessionOut:
    importer = session.import_json if payload.format == "json" else session.import_text
    try:
        result = importer(payload.content)
    except CollaboratorError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
    if not result.valid:
        raise HTTPException(status_code=400, detail=result.error)
    return _session_out(session_id, session)


@app.post("/sessions/{session_id}/flip", response_model=ActionResponse)
def flip(session_id: str, session: PracticeSession = Depends(get_session)) -> ActionResponse:
    return _action(session_id, session, session.flip())


@app.post("/sessions/{session_id}/next", response_model=ActionResponse)
def next_word(session_id: str, session: PracticeSession = Depends(get_session)) -> ActionResponse:
    return _action(session_id, session, session.next())


@app.post("/sessions/{session_id}/previous", response_model=ActionResponse)
def previous_word(session_id: str, session: PracticeSession = Depends(get_session)) -> ActionResponse:
    return _action(session_id, session, session.previous())


@app.post("/sessions/{session_id}/random", response_model=ActionResponse)
def random_word(session_id: str, session: PracticeSession = Depends(get_session)) -> ActionResponse:
    return _action(session_id, session, session.random())


@app.post("/sessions/{session_id}/jump", response_model=ActionResponse)
def jump(
    session_id: str,
    payload: JumpRequest,
    session: PracticeSession = Depends(get_session),
) -> ActionResponse:
    return _action(session_id, session, session.jump_page(payload.page))


@app.post("/sessions/{session_id}/language", response_model=SessionOut)
def set_language(
    session_id: str,
    payload: LanguageRequest,
    session: PracticeSession = Depends(get_session),
) -> SessionOut:
    session.set_language(payload.language)
    return _session_out(session_id, session)


@app.post("/sessions/{session_id}/select", response_model=ActionResponse)
def select_token(
    session_id: str,
    payload: TokenRequest,
    session: PracticeSession = Depends(get_session),
) -> ActionResponse:
    return _action(session_id, session, session.select(payload.position))


@app.post("/sessions/{session_id}/deselect", response_model=ActionResponse)
def deselect_token(
    session_id: str,
    payload: TokenRequest,
    session: PracticeSession = Depends(get_session),
) -> ActionResponse:
    return _action(session_id, session, session.deselect(payload.position))


@app.post("/sessions/{session_id}/translation", response_model=TranslationOut)
def toggle_translation(session_id: str, session: PracticeSession = Depends(get_session)) -> TranslationOut:
    entry = session.toggle_translation()
    if entry is None:
        raise HTTPException(status_code=404, detail="No vocabulary loaded.")
    return _translation_out(entry)


@app.post("/sessions/{session_id}/speech", response_model=Optional[UtteranceOut])
def speak(
    session_id: str,
    payload: SpeechRequest,
    session: PracticeSession = Depends(get_session),
) -> Optional[UtteranceOut]:
    utterance = session.speak(payload.target)
    return _utterance_out(utterance) if utterance is not None else None


@app.get("/sessions/{session_id}/speech", response_model=Optional[UtteranceOut])
def current_speech(session_id: str, session: PracticeSession = Depends(get_session)) -> Optional[UtteranceOut]:
    utterance = getattr(session.speech.speaker, "current", None)
    return _utterance_out(utterance) if utterance is not None else None


@app.get("/sessions/{session_id}/export")
def export_vocabulary(session_id: str, session: PracticeSession = Depends(get_session)) -> JSONResponse:
    return JSONResponse(
        content=session.export(),
        headers={"Content-Disposition": 'attachment; filename="vocabulary.json"'},
    )


@app.delete("/sessions/{session_id}/vocabulary", response_model=SessionOut)
def clear_vocabulary(session_id: str, session: PracticeSession = Depends(get_session)) -> SessionOut:
    session.clear()
    return _session_out(session_id, session)
