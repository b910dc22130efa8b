"""
Split reply text into word chunks, one lip-sync render per chunk.
"""

DEFAULT_WORDS_PER_CHUNK = 20


def segment(text: str, words_per_chunk: int = DEFAULT_WORDS_PER_CHUNK) -> list[str]:
    """
    Group the words of text into chunks of at most words_per_chunk words.

    Order is preserved and words are re-joined with single spaces. Blank
    text gives an empty list, never a single empty chunk.
    """
    if words_per_chunk < 1:
        raise ValueError("words_per_chunk must be at least 1")

    words = (text or "").split()
    return [
        " ".join(words[i:i + words_per_chunk])
        for i in range(0, len(words), words_per_chunk)
    ]
