import os
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Keep the module-level database of api.py out of the working tree.
os.environ.setdefault("LEXIFY_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="lexify-"), "vocabulary.db"))

from lexify import CollaboratorError, VocabularyStore
from services import SpeechChannel, Speaker


class FakeTranslator:
    def __init__(self, result="Men kitob o'qidim.", error=None):
        self.result = result
        self.error = error
        self.calls = []

    def translate(self, text, source, target):
        self.calls.append((text, source, target))
        if self.error:
            raise CollaboratorError(self.error)
        return self.result


class RecordingSpeaker(Speaker):
    def __init__(self):
        self.events = []

    def play(self, utterance):
        self.events.append(("play", utterance.text, utterance.language))

    def cancel(self):
        self.events.append(("cancel",))

    @property
    def spoken(self):
        return [event[1] for event in self.events if event[0] == "play"]


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class BrokenStore:
    def save(self, words):
        raise CollaboratorError("disk full")

    def load(self):
        raise CollaboratorError("database is locked")

    def clear(self):
        raise CollaboratorError("database is locked")


SAMPLE_JSON = """
[
  {"uz": "kitob", "en": "book", "exampleText": "I read a book"},
  {"uz": "salom", "en": "hello", "exampleText": "hello my old friend"},
  {"uz": "mushuk", "en": "cat", "exampleText": "the cat saw the dog"}
]
"""


@pytest.fixture
def sample_json():
    return SAMPLE_JSON


@pytest.fixture
def translator():
    return FakeTranslator()


@pytest.fixture
def failing_translator():
    return FakeTranslator(error="Translation request failed: timed out")


@pytest.fixture
def speaker():
    return RecordingSpeaker()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broken_store():
    return BrokenStore()


@pytest.fixture
def store(tmp_path):
    return VocabularyStore(tmp_path / "vocabulary.db")


@pytest.fixture
def make_session(translator, speaker, clock):
    import random

    from trainer import PracticeSession

    def factory(store=None, translator=translator, seed=7):
        return PracticeSession(
            store=store,
            translator=translator,
            speech=SpeechChannel(speaker),
            rng=random.Random(seed),
            clock=clock,
        )

    return factory
