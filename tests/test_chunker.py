import pytest

from poi_guide.utils.chunker import split_text_into_chunks


def _squash(text: str) -> str:
    return "".join(text.split())


def test_short_text_is_single_chunk():
    assert split_text_into_chunks("Hello there.", 100) == ["Hello there."]


def test_splits_only_at_sentence_boundaries():
    text = "Sentence one. Sentence two. Sentence three."
    chunks = split_text_into_chunks(text, 30)

    assert chunks == ["Sentence one. Sentence two.", "Sentence three."]


def test_prefers_paragraph_boundaries():
    first = "First paragraph has a few words."
    second = "Second paragraph is here too."
    chunks = split_text_into_chunks(f"{first}\n\n{second}", 40)

    assert chunks == [first, second]


def test_small_paragraphs_are_packed_together():
    text = "A.\n\nB.\n\nC." + "\n\n" + "D" * 20
    chunks = split_text_into_chunks(text, 15)

    assert chunks[0] == "A.\n\nB.\n\nC."
    assert chunks[1] == "D" * 15
    assert chunks[2] == "D" * 5


@pytest.mark.parametrize("max_chars", [1, 7, 25, 80, 4000])
def test_every_chunk_fits_and_order_is_preserved(max_chars):
    text = (
        "The Colosseum was completed in 80 AD under Titus. It could hold tens of thousands!\n\n"
        "Gladiators fought here? Yes, and animal hunts were staged too.\n\n"
        + "Supercalifragilisticexpialidocious" * 3
    )
    chunks = split_text_into_chunks(text, max_chars)

    assert all(len(chunk) <= max_chars for chunk in chunks)
    assert _squash("".join(chunks)) == _squash(text)


def test_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        split_text_into_chunks("text", 0)
