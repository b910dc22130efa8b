import pytest

from basespeak.services.segmenter import segment


def test_45_words_make_three_chunks():
    words = [f"w{i}" for i in range(1, 46)]
    chunks = segment(" ".join(words), words_per_chunk=20)

    assert [len(c.split()) for c in chunks] == [20, 20, 5]
    assert " ".join(chunks).split() == words


def test_empty_text_gives_no_chunks():
    assert segment("") == []
    assert segment("   \n ") == []


def test_whitespace_is_normalized_inside_chunks():
    assert segment("one   two\nthree", words_per_chunk=2) == ["one two", "three"]


def test_chunk_size_must_be_positive():
    with pytest.raises(ValueError):
        segment("a b c", words_per_chunk=0)
