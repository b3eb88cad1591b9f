import pytest

from lexify import CollaboratorError, VocabularyStore, VocabWord

WORDS = [
    VocabWord(en="book", uz="kitob", example_text="I read a book."),
    VocabWord(en="hello", uz="salom"),
    VocabWord(en="cat", uz="mushuk", example_text="The cat sleeps."),
]


def test_save_and_load_keep_order(store):
    assert store.save(WORDS) == 3
    assert store.load() == tuple(WORDS)


def test_save_replaces_previous_set(store):
    store.save(WORDS)

    store.save(WORDS[1:2])

    assert store.load() == (WORDS[1],)


def test_load_from_fresh_database(store):
    assert store.load() == ()


def test_clear(store):
    store.save(WORDS)

    assert store.clear() == 3
    assert store.load() == ()


def test_unusable_path_raises_collaborator_error(tmp_path):
    broken = VocabularyStore(tmp_path)

    with pytest.raises(CollaboratorError):
        broken.save(WORDS)
