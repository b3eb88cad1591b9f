"""
Collaborators of the practice session: example-sentence translation and
text-to-speech.

Both are kept behind small classes so the web API and the console trainer can
swap the backends, and so tests can run without network or audio.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Dict, Optional

import requests

from lexify import SOURCE_LANGUAGE, TARGET_LANGUAGE, CollaboratorError, VocabWord

TRANSLATE_URL = os.environ.get(
    "LEXIFY_TRANSLATE_URL", "https://translate.googleapis.com/translate_a/single"
)
TRANSLATE_TIMEOUT = float(os.environ.get("LEXIFY_TRANSLATE_TIMEOUT", "10"))

SPEECH_LANGUAGE = "en-US"
SPEECH_RATE = 0.9

TRANSLATION_PENDING = "pending"
TRANSLATION_RESOLVED = "resolved"
TRANSLATION_FAILED = "failed"

logger = logging.getLogger(__name__)


class GoogleTranslator:
    """Client for the public ``translate_a/single`` endpoint."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        url: str = TRANSLATE_URL,
        timeout: float = TRANSLATE_TIMEOUT,
    ) -> None:
        self.session = session or requests.Session()
        self.url = url
        self.timeout = timeout

    def translate(self, text: str, source: str, target: str) -> str:
        params = {"client": "gtx", "sl": source, "tl": target, "dt": "t", "q": text}
        try:
            resp = self.session.get(self.url, params=params, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise CollaboratorError(f"Translation request failed: {exc}") from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise CollaboratorError("Translation service returned invalid JSON") from exc
        try:
            # Long inputs come back split into several sentence chunks.
            translated = "".join(chunk[0] for chunk in data[0] if chunk and chunk[0])
        except (IndexError, KeyError, TypeError) as exc:
            raise CollaboratorError("Translation service returned an unexpected payload") from exc
        if not translated:
            raise CollaboratorError("Translation service returned an empty result")
        return translated


@dataclass(frozen=True)
class TranslationEntry:
    status: str
    text: str = ""
    error: Optional[str] = None
    visible: bool = False


class TranslationCache:
    """Per-word translation of example sentences for one practice session.

    A word is looked up at most once. Later requests only toggle whether the
    cached result (or failure message) is shown.
    """

    def __init__(
        self,
        translator,
        source: str = SOURCE_LANGUAGE,
        target: str = TARGET_LANGUAGE,
    ) -> None:
        self.translator = translator
        self.source = source
        self.target = target
        self._entries: Dict[VocabWord, TranslationEntry] = {}

    def get(self, word: VocabWord) -> Optional[TranslationEntry]:
        return self._entries.get(word)

    def toggle(self, word: VocabWord) -> TranslationEntry:
        entry = self._entries.get(word)
        if entry is not None:
            entry = replace(entry, visible=not entry.visible)
            self._entries[word] = entry
            return entry

        if not word.example_text.strip():
            entry = TranslationEntry(
                status=TRANSLATION_FAILED, error="No example sentence to translate", visible=True
            )
            self._entries[word] = entry
            return entry

        self._entries[word] = TranslationEntry(status=TRANSLATION_PENDING)
        try:
            text = self.translator.translate(word.example_text, self.source, self.target)
        except CollaboratorError as exc:
            logger.warning("Translation of %r failed: %s", word.en, exc.message)
            entry = TranslationEntry(status=TRANSLATION_FAILED, error=exc.message, visible=True)
        else:
            entry = TranslationEntry(status=TRANSLATION_RESOLVED, text=text, visible=True)
        self._entries[word] = entry
        return entry

    def hide(self, word: VocabWord) -> None:
        entry = self._entries.get(word)
        if entry is not None and entry.visible:
            self._entries[word] = replace(entry, visible=False)

    def clear(self) -> None:
        self._entries.clear()


@dataclass(frozen=True)
class Utterance:
    text: str
    language: str = SPEECH_LANGUAGE
    rate: float = SPEECH_RATE
    sequence: int = 0


class Speaker:
    def play(self, utterance: Utterance) -> None:
        raise NotImplementedError

    def cancel(self) -> None:
        raise NotImplementedError


class QueuedSpeaker(Speaker):
    """Keeps the latest utterance for a browser client to pick up and play."""

    def __init__(self) -> None:
        self.current: Optional[Utterance] = None

    def play(self, utterance: Utterance) -> None:
        self.current = utterance

    def cancel(self) -> None:
        self.current = None


class SpeechChannel:
    """At most one utterance is audible; each request cancels the previous one."""

    def __init__(self, speaker: Optional[Speaker] = None, rate: float = SPEECH_RATE) -> None:
        self.speaker = speaker or QueuedSpeaker()
        self.rate = rate
        self._sequence = 0

    def speak(self, text: str, language: str = SPEECH_LANGUAGE) -> Optional[Utterance]:
        if not text or not text.strip():
            return None
        self.speaker.cancel()
        self._sequence += 1
        utterance = Utterance(text=text, language=language, rate=self.rate, sequence=self._sequence)
        self.speaker.play(utterance)
        return utterance
