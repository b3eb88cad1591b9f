"""
Core of the English/Uzbek vocabulary flashcard trainer.

Turns pasted JSON or comma-separated text into a vocabulary set, keeps the
navigation and sentence-reconstruction state of a practice session as
immutable snapshots, and mirrors the active set into a SQLite database.
"""
from __future__ import annotations

import json
import logging
import os
import random
import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

BASE_DIR = Path(__file__).resolve().parent
DB_PATH = Path(os.environ.get("LEXIFY_DB_PATH", BASE_DIR / "vocabulary.db"))
LOG_LEVEL = os.environ.get("LEXIFY_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

SOURCE_LANGUAGE = "en"
TARGET_LANGUAGE = "uz"
VERDICT_DISPLAY_SECONDS = 2.0

VERDICT_UNKNOWN = "unknown"
VERDICT_CORRECT = "correct"
VERDICT_INCORRECT = "incorrect"

REQUIRED_FIELDS = ("uz", "en", "exampleText")

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LexifyError(Exception):
    """Base class for failures that end up in front of the user as a message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SchemaError(LexifyError):
    """A parsed record set does not match the vocabulary schema."""

    def __init__(self, message: str, position: int = 0, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.position = position
        self.field = field


class FormatError(LexifyError):
    """Raw input could not be parsed; ``line`` is 1-based."""

    def __init__(self, message: str, line: int = 0) -> None:
        super().__init__(message)
        self.line = line


class EmptyInputError(LexifyError):
    pass


class CollaboratorError(LexifyError):
    """Persistence, translation or network failure, carrying the upstream message."""


@dataclass(frozen=True)
class VocabWord:
    en: str
    uz: str
    example_text: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"uz": self.uz, "en": self.en, "exampleText": self.example_text}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    data: Tuple[VocabWord, ...] = ()
    error: Optional[str] = None

    @classmethod
    def accepted(cls, words: Sequence[VocabWord]) -> "ValidationResult":
        return cls(valid=True, data=tuple(words))

    @classmethod
    def rejected(cls, error: LexifyError) -> "ValidationResult":
        return cls(valid=False, error=error.message)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


def parse_json(content: str) -> object:
    if not content or not content.strip():
        raise EmptyInputError("No vocabulary data provided")
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise FormatError(f"Invalid JSON format: {exc}", line=exc.lineno) from exc


def _has_text(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def records_from_value(value: object) -> Tuple[VocabWord, ...]:
    if not isinstance(value, list):
        raise SchemaError("JSON must be an array of vocabulary objects")
    if not value:
        raise EmptyInputError("JSON array cannot be empty")

    words: List[VocabWord] = []
    for position, item in enumerate(value, start=1):
        if not isinstance(item, dict):
            raise SchemaError(f"Item {position} is not an object", position=position)
        for field_name in REQUIRED_FIELDS:
            if not _has_text(item.get(field_name)):
                raise SchemaError(
                    f"Item {position}: '{field_name}' field is missing or not a string",
                    position=position,
                    field=field_name,
                )
        words.append(VocabWord(en=item["en"], uz=item["uz"], example_text=item["exampleText"]))
    return tuple(words)


def validate_records(value: object) -> ValidationResult:
    try:
        return ValidationResult.accepted(records_from_value(value))
    except LexifyError as exc:
        return ValidationResult.rejected(exc)


def validate_json(content: str) -> ValidationResult:
    try:
        value = parse_json(content)
    except LexifyError as exc:
        return ValidationResult.rejected(exc)
    return validate_records(value)


def parse_line(line: str, line_number: int) -> VocabWord:
    """Split one ``english, uzbek[, example]`` line.

    Only the first two commas separate fields; anything after the second one
    belongs to the example sentence, commas included.
    """
    first = line.find(",")
    if first == -1:
        raise FormatError(
            f"Line {line_number}: Must use comma to separate English and Uzbek",
            line=line_number,
        )
    second = line.find(",", first + 1)
    en = line[:first].strip()
    if second == -1:
        uz = line[first + 1 :].strip()
        example = ""
    else:
        uz = line[first + 1 : second].strip()
        example = line[second + 1 :].strip()
    if not en or not uz:
        raise FormatError(
            f"Line {line_number}: Both English and Uzbek are required",
            line=line_number,
        )
    return VocabWord(en=en, uz=uz, example_text=example)


def words_from_text(content: str) -> Tuple[VocabWord, ...]:
    lines = [line for line in (content or "").split("\n") if line.strip()]
    if not lines:
        raise EmptyInputError("No vocabulary lines found")
    return tuple(parse_line(line, idx) for idx, line in enumerate(lines, start=1))


def convert_text(content: str) -> ValidationResult:
    try:
        return ValidationResult.accepted(words_from_text(content))
    except LexifyError as exc:
        return ValidationResult.rejected(exc)


def export_words(words: Sequence[VocabWord]) -> List[Dict[str, str]]:
    return [word.to_dict() for word in words]


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NavigationState:
    current_index: int = 0
    flipped: bool = False

    @property
    def page(self) -> int:
        return self.current_index + 1


def flip_card(state: NavigationState) -> NavigationState:
    return replace(state, flipped=not state.flipped)


def next_card(state: NavigationState, length: int) -> NavigationState:
    if not state.flipped or state.current_index >= length - 1:
        return state
    return NavigationState(current_index=state.current_index + 1)


def previous_card(state: NavigationState, length: int) -> NavigationState:
    if not state.flipped or state.current_index <= 0 or length == 0:
        return state
    return NavigationState(current_index=state.current_index - 1)


def random_card(state: NavigationState, length: int, rng: Optional[random.Random] = None) -> NavigationState:
    if not state.flipped or length <= 0:
        return state
    rng = rng or random
    return NavigationState(current_index=rng.randrange(length))


def jump_to(state: NavigationState, length: int, page: int) -> NavigationState:
    if not 1 <= page <= length:
        return state
    return NavigationState(current_index=page - 1)


def parse_page(raw: str) -> Optional[int]:
    cleaned = (raw or "").strip()
    if not cleaned.isdecimal():
        return None
    return int(cleaned)


# ---------------------------------------------------------------------------
# Sentence reconstruction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconstructionState:
    """Tokens of one example sentence and the learner's picks so far.

    ``selected_positions[k]`` is the index into ``available_tokens`` that
    ``selected_tokens[k]`` was taken from, so repeated words stay apart.
    """

    sentence: str
    available_tokens: Tuple[str, ...]
    selected_tokens: Tuple[str, ...] = ()
    selected_positions: Tuple[int, ...] = ()
    verdict: str = VERDICT_UNKNOWN
    verdict_expiry: Optional[float] = None

    @property
    def consumed(self) -> FrozenSet[int]:
        return frozenset(self.selected_positions)

    @property
    def complete(self) -> bool:
        return len(self.selected_positions) == len(self.available_tokens)


def tokenize(sentence: str) -> List[str]:
    return sentence.split()


def shuffle_tokens(tokens: Sequence[str], rng: Optional[random.Random] = None) -> List[str]:
    rng = rng or random
    shuffled = list(tokens)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def start_reconstruction(sentence: str, rng: Optional[random.Random] = None) -> Optional[ReconstructionState]:
    tokens = tokenize(sentence or "")
    if not tokens:
        return None
    return ReconstructionState(sentence=sentence, available_tokens=tuple(shuffle_tokens(tokens, rng)))


def evaluate(state: ReconstructionState, now: float) -> ReconstructionState:
    attempt = " ".join(state.selected_tokens)
    verdict = VERDICT_CORRECT if attempt == state.sentence else VERDICT_INCORRECT
    return replace(state, verdict=verdict, verdict_expiry=now + VERDICT_DISPLAY_SECONDS)


def select_token(state: ReconstructionState, position: int, now: float) -> ReconstructionState:
    if not 0 <= position < len(state.available_tokens) or position in state.consumed:
        return state
    picked = replace(
        state,
        selected_tokens=state.selected_tokens + (state.available_tokens[position],),
        selected_positions=state.selected_positions + (position,),
        verdict=VERDICT_UNKNOWN,
        verdict_expiry=None,
    )
    if picked.complete:
        return evaluate(picked, now)
    return picked


def deselect_token(state: ReconstructionState, selection_position: int) -> ReconstructionState:
    """Undo one pick by its index in the selection.

    The entry is removed from the selection and the exact available position it
    was taken from becomes selectable again, so with repeated words the other
    copies stay consumed. Any verdict is cleared because the sentence is no
    longer complete.
    """
    if not 0 <= selection_position < len(state.selected_tokens):
        return state
    tokens = list(state.selected_tokens)
    positions = list(state.selected_positions)
    del tokens[selection_position]
    del positions[selection_position]
    return replace(
        state,
        selected_tokens=tuple(tokens),
        selected_positions=tuple(positions),
        verdict=VERDICT_UNKNOWN,
        verdict_expiry=None,
    )


def expire_verdict(state: ReconstructionState, now: float) -> ReconstructionState:
    if state.verdict_expiry is None or now < state.verdict_expiry:
        return state
    return replace(state, verdict=VERDICT_UNKNOWN, verdict_expiry=None)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def connect_db(path: Optional[Path] = None) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path or DB_PATH), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS vocabulary (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            position INTEGER NOT NULL,
            en TEXT NOT NULL,
            uz TEXT NOT NULL,
            example_text TEXT NOT NULL DEFAULT '',
            saved_at TEXT NOT NULL
        );
        """
    )
    conn.commit()


def save_vocabulary(conn: sqlite3.Connection, words: Sequence[VocabWord]) -> int:
    saved_at = now_iso()
    with conn:
        conn.execute("DELETE FROM vocabulary")
        conn.executemany(
            """
            INSERT INTO vocabulary (position, en, uz, example_text, saved_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (position, word.en, word.uz, word.example_text, saved_at)
                for position, word in enumerate(words)
            ],
        )
    return len(words)


def load_vocabulary(conn: sqlite3.Connection) -> Tuple[VocabWord, ...]:
    rows = conn.execute(
        "SELECT en, uz, example_text FROM vocabulary ORDER BY position, id"
    ).fetchall()
    return tuple(VocabWord(en=row["en"], uz=row["uz"], example_text=row["example_text"]) for row in rows)


def clear_vocabulary(conn: sqlite3.Connection) -> int:
    with conn:
        cur = conn.execute("DELETE FROM vocabulary")
    return cur.rowcount


class VocabularyStore:
    """Best-effort SQLite mirror of the active vocabulary set."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else DB_PATH

    def _run(self, action, *args):
        try:
            conn = connect_db(self.path)
        except sqlite3.Error as exc:
            raise CollaboratorError(f"Could not open vocabulary database: {exc}") from exc
        try:
            ensure_schema(conn)
            return action(conn, *args)
        except sqlite3.Error as exc:
            raise CollaboratorError(f"Vocabulary database error: {exc}") from exc
        finally:
            conn.close()

    def save(self, words: Sequence[VocabWord]) -> int:
        count = self._run(save_vocabulary, words)
        logger.info("Saved %d words to %s", count, self.path)
        return count

    def load(self) -> Tuple[VocabWord, ...]:
        return self._run(load_vocabulary)

    def clear(self) -> int:
        return self._run(clear_vocabulary)
