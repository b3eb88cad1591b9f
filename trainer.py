#!/usr/bin/env python3
"""
Practice session for the English/Uzbek flashcard trainer.

A session owns the active vocabulary set and the navigation, reconstruction
and translation state for it. The web API keeps one session per browser; this
module also runs a console trainer over a vocabulary file:

    python trainer.py words.json
    python trainer.py words.txt
    python trainer.py            # continue with the saved vocabulary
"""
from __future__ import annotations

import functools
import logging
import random
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import lexify
from lexify import (
    CollaboratorError,
    NavigationState,
    ReconstructionState,
    ValidationResult,
    VocabularyStore,
    VocabWord,
)
from services import GoogleTranslator, SpeechChannel, Speaker, TranslationCache, TranslationEntry, Utterance

LANGUAGES = ("en", "uz")
SPEECH_TARGETS = ("word", "example")

QUIT_COMMANDS = {"q", "quit", "exit"}
HELP_COMMANDS = {"?", "h", "help"}

logger = logging.getLogger(__name__)


def _serialized(method):
    """Run a session action while holding the session lock."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)

    return wrapper


class PracticeSession:
    def __init__(
        self,
        store: Optional[VocabularyStore] = None,
        translator=None,
        speech: Optional[SpeechChannel] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.translations = TranslationCache(translator or GoogleTranslator())
        self.speech = speech or SpeechChannel()
        self.rng = rng or random.Random()
        self.clock = clock
        self.words: Tuple[VocabWord, ...] = ()
        self.navigation = NavigationState()
        self.reconstruction: Optional[ReconstructionState] = None
        self.language = "en"
        self.page_input = ""
        self.error: Optional[str] = None
        self.lock = threading.RLock()
        self.last_used = time.monotonic()

    @property
    def current_word(self) -> Optional[VocabWord]:
        if not self.words:
            return None
        return self.words[self.navigation.current_index]

    @property
    def front_text(self) -> str:
        word = self.current_word
        if word is None:
            return ""
        return word.en if self.language == "en" else word.uz

    # -- ingestion ---------------------------------------------------------

    @_serialized
    def import_json(self, content: str) -> ValidationResult:
        return self._ingest(lexify.validate_json(content))

    @_serialized
    def import_text(self, content: str) -> ValidationResult:
        return self._ingest(lexify.convert_text(content))

    def _ingest(self, result: ValidationResult) -> ValidationResult:
        if not result.valid:
            logger.info("Rejected vocabulary import: %s", result.error)
            self.error = result.error
            return result
        if self.store is not None:
            try:
                self.store.save(result.data)
            except CollaboratorError as exc:
                logger.warning("Vocabulary import not saved: %s", exc.message)
                self.error = exc.message
                raise
        self.error = None
        self.install(result.data)
        logger.info("Imported %d words", len(result.data))
        return result

    @_serialized
    def install(self, words) -> None:
        self.words = tuple(words)
        self.navigation = NavigationState()
        self.reconstruction = None
        self.translations.clear()
        self.page_input = ""
        self._announce()

    @_serialized
    def load_saved(self) -> int:
        if self.store is None:
            return 0
        try:
            words = self.store.load()
        except CollaboratorError as exc:
            logger.warning("Saved vocabulary not loaded: %s", exc.message)
            self.error = exc.message
            return 0
        if words:
            self.install(words)
        return len(words)

    @_serialized
    def clear(self) -> None:
        if self.store is not None:
            try:
                self.store.clear()
            except CollaboratorError as exc:
                logger.warning("Saved vocabulary not cleared: %s", exc.message)
                self.error = exc.message
        self.install(())

    def export(self) -> List[Dict[str, str]]:
        return lexify.export_words(self.words)

    # -- navigation --------------------------------------------------------

    def _move(self, state: NavigationState) -> bool:
        previous = self.navigation
        if state is previous:
            return False
        self.navigation = state
        self.error = None
        word_changed = state.current_index != previous.current_index
        if state.flipped:
            if word_changed or not previous.flipped:
                word = self.current_word
                self.reconstruction = lexify.start_reconstruction(word.example_text, self.rng)
        else:
            self.reconstruction = None
            self.translations.hide(self.words[previous.current_index])
            if previous.flipped or word_changed:
                self._announce()
        return True

    def _navigate(self, state: NavigationState) -> bool:
        accepted = self._move(state)
        if accepted:
            self.page_input = str(self.navigation.page)
        return accepted

    @_serialized
    def flip(self) -> bool:
        if not self.words:
            return False
        return self._move(lexify.flip_card(self.navigation))

    @_serialized
    def next(self) -> bool:
        return self._navigate(lexify.next_card(self.navigation, len(self.words)))

    @_serialized
    def previous(self) -> bool:
        return self._navigate(lexify.previous_card(self.navigation, len(self.words)))

    @_serialized
    def random(self) -> bool:
        return self._navigate(lexify.random_card(self.navigation, len(self.words), self.rng))

    @_serialized
    def jump_to(self, page: Optional[int]) -> bool:
        state = self.navigation
        if page is not None:
            state = lexify.jump_to(self.navigation, len(self.words), page)
        if state is self.navigation:
            self.page_input = str(self.navigation.page)
            return False
        return self._navigate(state)

    @_serialized
    def jump_page(self, raw: str) -> bool:
        self.page_input = raw
        return self.jump_to(lexify.parse_page(raw))

    @_serialized
    def set_language(self, language: str) -> None:
        if language not in LANGUAGES:
            raise ValueError(f"Unknown language {language!r}")
        self.language = language
        if self.navigation.flipped:
            self._move(lexify.flip_card(self.navigation))

    # -- reconstruction ----------------------------------------------------

    @_serialized
    def refresh(self) -> None:
        if self.reconstruction is not None:
            self.reconstruction = lexify.expire_verdict(self.reconstruction, self.clock())

    @_serialized
    def select(self, position: int) -> bool:
        if self.reconstruction is None:
            return False
        state = lexify.select_token(self.reconstruction, position, self.clock())
        accepted = state is not self.reconstruction
        if accepted:
            self.error = None
        self.reconstruction = state
        return accepted

    @_serialized
    def deselect(self, selection_position: int) -> bool:
        if self.reconstruction is None:
            return False
        state = lexify.deselect_token(self.reconstruction, selection_position)
        accepted = state is not self.reconstruction
        if accepted:
            self.error = None
        self.reconstruction = state
        return accepted

    # -- collaborators -----------------------------------------------------

    @_serialized
    def toggle_translation(self) -> Optional[TranslationEntry]:
        word = self.current_word
        if word is None:
            return None
        self.error = None
        entry = self.translations.toggle(word)
        if entry.visible and entry.error:
            self.error = entry.error
        return entry

    @property
    def translation(self) -> Optional[TranslationEntry]:
        word = self.current_word
        return self.translations.get(word) if word is not None else None

    @_serialized
    def speak(self, target: str = "word") -> Optional[Utterance]:
        word = self.current_word
        if word is None:
            return None
        if target not in SPEECH_TARGETS:
            raise ValueError(f"Unknown speech target {target!r}")
        text = word.en if target == "word" else word.example_text
        self.error = None
        try:
            return self.speech.speak(text)
        except CollaboratorError as exc:
            logger.warning("Speech failed: %s", exc.message)
            self.error = exc.message
            return None

    def _announce(self) -> None:
        if self.current_word is not None and self.language == "en" and not self.navigation.flipped:
            self.speak("word")


# ---------------------------------------------------------------------------
# Console trainer
# ---------------------------------------------------------------------------


class PrintSpeaker(Speaker):
    def play(self, utterance: Utterance) -> None:
        print(f"  ♪ {utterance.text}")

    def cancel(self) -> None:
        pass


def read_vocabulary_file(session: PracticeSession, path: Path) -> ValidationResult:
    content = path.read_text(encoding="utf-8")
    if content.lstrip().startswith("["):
        return session.import_json(content)
    return session.import_text(content)


def show_card(session: PracticeSession) -> None:
    word = session.current_word
    nav = session.navigation
    print("\n----------------------------------------")
    print(f"Word {nav.page} of {len(session.words)}  [{session.language.upper()}]")
    if not nav.flipped:
        print(f"  {session.front_text}")
        print("  (f = flip)")
        return
    print(f"  {word.en}  →  {word.uz}")
    if word.example_text:
        print(f'  "{word.example_text}"')
    entry = session.translation
    if entry is not None and entry.visible:
        print(f'  "{entry.text}"' if entry.text else f"  {entry.error}")
    show_reconstruction(session)


def show_reconstruction(session: PracticeSession) -> None:
    session.refresh()
    state = session.reconstruction
    if state is None:
        return
    tokens = []
    for position, token in enumerate(state.available_tokens, start=1):
        mark = "·" if (position - 1) in state.consumed else str(position)
        tokens.append(f"{mark}:{token}")
    print("  Tokens:   " + "  ".join(tokens))
    picked = [f"{idx}:{token}" for idx, token in enumerate(state.selected_tokens, start=1)]
    print("  Sentence: " + ("  ".join(picked) if picked else "-"))
    if state.verdict == lexify.VERDICT_CORRECT:
        print("  ✅ Correct!")
    elif state.verdict == lexify.VERDICT_INCORRECT:
        print("  ❌ Not quite, try again.")


def print_instructions() -> None:
    print("\nCommands:")
    print("  f        flip the card")
    print("  n / p    next / previous word (after flipping)")
    print("  r        random word (after flipping)")
    print("  g N      go to word N")
    print("  s N      pick token N for the sentence")
    print("  u N      remove picked word N from the sentence")
    print("  t        show/hide the example translation")
    print("  a / e    play the word / the example")
    print("  l        switch between EN and UZ on the front")
    print("  q        quit")


def _argument(parts: List[str]) -> Optional[int]:
    if len(parts) < 2:
        return None
    return lexify.parse_page(parts[1])


def handle_command(session: PracticeSession, raw: str) -> bool:
    parts = raw.strip().split()
    if not parts:
        return True
    command = parts[0].lower()
    if command in QUIT_COMMANDS:
        return False
    if command in HELP_COMMANDS:
        print_instructions()
    elif command == "f":
        session.flip()
    elif command in {"n", "p", "r"}:
        move = {"n": session.next, "p": session.previous, "r": session.random}[command]
        if not move():
            print("Flip the card first (or there is no word in that direction).")
    elif command == "g":
        if not session.jump_page(parts[1] if len(parts) > 1 else ""):
            print(f"Enter a number between 1 and {len(session.words)}.")
    elif command in {"s", "u"}:
        number = _argument(parts)
        if number is None:
            print("Add the token number, e.g. 's 3'.")
        elif command == "s":
            session.select(number - 1)
        else:
            session.deselect(number - 1)
    elif command == "t":
        session.toggle_translation()
    elif command in {"a", "e"}:
        session.speak("word" if command == "a" else "example")
    elif command == "l":
        session.set_language("uz" if session.language == "en" else "en")
    else:
        print("Unknown command, type '?' for help.")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    lexify.configure_logging("WARNING")
    session = PracticeSession(
        store=VocabularyStore(lexify.DB_PATH),
        speech=SpeechChannel(PrintSpeaker()),
    )

    if argv:
        path = Path(argv[0])
        if not path.exists():
            print(f"File not found: {path}")
            return 1
        try:
            result = read_vocabulary_file(session, path)
        except CollaboratorError as exc:
            print(f"Could not save {path.name}: {exc.message}")
            return 1
        if not result.valid:
            print(f"Could not import {path.name}: {result.error}")
            return 1
        print(f"Imported {len(result.data)} words from {path.name}.")
    elif not session.load_saved():
        print(session.error or "No saved vocabulary. Pass a JSON or text file to start.")
        return 1

    print("Lexify flashcards (English ↔ Uzbek)")
    print_instructions()
    try:
        while True:
            show_card(session)
            if session.error:
                print(f"  ! {session.error}")
                session.error = None
            if not handle_command(session, input("> ")):
                print("Goodbye!")
                break
    except (KeyboardInterrupt, EOFError):
        print("\nInterrupted. Goodbye!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
